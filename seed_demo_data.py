"""
Seed Demo Data — Standalone script and pytest fixture.

Creates one demo account per role (student, teacher, parent, admin), core
subjects, a CPA fractions lesson, diagnostic questions with a matching
learning path, SEL content, knowledge-graph concepts and an expert session.

Every row has a fixed id and is written with INSERT OR IGNORE, so seeding
twice is harmless.

Usage:
    python seed_demo_data.py           # Seed into the configured database
    python seed_demo_data.py --reset   # Clear demo accounts first
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta

from werkzeug.security import generate_password_hash

DEMO_PASSWORD = "Demo1234"

DEMO_USERS = [
    {"id": 200, "name": "Maya Student", "email": "student@demo.learnify", "role": "student", "age": 10},
    {"id": 201, "name": "Mr. Okafor", "email": "teacher@demo.learnify", "role": "teacher", "age": None},
    {"id": 202, "name": "Priya Parent", "email": "parent@demo.learnify", "role": "parent", "age": None},
    {"id": 203, "name": "Site Admin", "email": "admin@demo.learnify", "role": "admin", "age": None},
]

SUBJECTS = [
    (1, "Mathematics", "#4f46e5"),
    (2, "Science", "#059669"),
    (3, "English", "#d97706"),
]

FRACTIONS_LESSON = {
    "id": 1,
    "title": "Understanding Fractions",
    "description": "Explore halves, quarters and equivalent fractions with objects, pictures and numbers.",
    "subject_id": 1,
    "level": "Year 4",
    "content": "Fractions describe equal parts of a whole.",
}

FRACTIONS_STEPS = [
    {
        "id": 1, "order": 1, "type": "concrete", "difficulty": 2,
        "content": "Cut a pizza into 4 equal slices. Each slice is one quarter of the pizza.",
        "image_url": "/images/lessons/pizza-quarters.png",
        "question": {
            "text": "How many quarters make a whole pizza?",
            "options": ["2", "3", "4", "5"],
            "correctAnswer": "4",
            "explanation": "Four equal quarters make one whole.",
            "simpleText": "Count the slices. How many slices is the whole pizza?",
            "simpleOptions": ["2", "4"],
            "simpleExplanation": "There are 4 slices, so 4 quarters make the whole pizza.",
            "advancedText": "How many eighths make a whole pizza?",
            "advancedOptions": ["4", "6", "8", "10"],
            "advancedExplanation": "Cutting each quarter in half gives 8 eighths.",
        },
    },
    {
        "id": 2, "order": 2, "type": "pictorial", "difficulty": 3,
        "content": "This bar is split into 6 equal parts and 3 are shaded.",
        "image_url": "/images/lessons/bar-three-sixths.png",
        "question": {
            "text": "Which fraction of the bar is shaded?",
            "options": ["1/3", "1/2", "2/3", "3/4"],
            "correctAnswer": "1/2",
            "explanation": "3 of 6 parts is 3/6, which is the same as 1/2.",
            "simpleExplanation": "Half of the parts are shaded, so the answer is 1/2.",
            "advancedText": "Which fraction is equivalent to the shaded part?",
            "advancedOptions": ["2/4", "2/3", "4/6", "5/8"],
            "advancedExplanation": "3/6 simplifies to 1/2, and 2/4 is also 1/2.",
        },
    },
    {
        "id": 3, "order": 3, "type": "abstract", "difficulty": 4,
        "content": "Equivalent fractions name the same amount: 1/2 = 2/4 = 4/8.",
        "image_url": "",
        "question": {
            "text": "Which fraction equals 2/4?",
            "options": ["1/4", "1/2", "3/4", "2/8"],
            "correctAnswer": "1/2",
            "explanation": "Divide the top and bottom of 2/4 by 2 to get 1/2.",
            "simpleText": "Is 2/4 the same as 1/2?",
            "simpleOptions": ["Yes", "No"],
            "advancedText": "Which fraction equals 6/8?",
            "advancedOptions": ["2/3", "3/4", "5/6", "7/8"],
            "advancedExplanation": "Divide the top and bottom of 6/8 by 2 to get 3/4.",
        },
    },
]

# (id, subject_id, topic, question, options, correct_answer, skill, difficulty)
DIAGNOSTIC_QUESTIONS = [
    (1, 1, "fractions", "What is 1/2 of 8?", ["2", "4", "6", "8"], "4", "fraction of amount", 1),
    (2, 1, "fractions", "Which is larger: 1/3 or 1/4?", ["1/3", "1/4"], "1/3", "comparing fractions", 2),
    (3, 1, "fractions", "Which fraction equals 3/6?", ["1/3", "1/2", "2/3"], "1/2", "equivalent fractions", 2),
    (4, 1, "fractions", "What is 1/4 + 2/4?", ["3/8", "3/4", "1/2"], "3/4", "adding fractions", 3),
    (5, 1, "fractions", "What is 2/3 + 1/6?", ["3/9", "5/6", "1/2"], "5/6", "adding fractions", 4),
    (6, 1, None, "What is 7 x 8?", ["54", "56", "64"], "56", "multiplication", 1),
    (7, 1, None, "What is 45 / 5?", ["8", "9", "10"], "9", "division", 2),
    (8, 2, None, "What gas do plants take in for photosynthesis?",
     ["Oxygen", "Carbon dioxide", "Nitrogen"], "Carbon dioxide", "plant biology", 2),
]

LEARNING_PATH = {"id": 1, "subject_id": 1, "topic": "fractions", "title": "Fractions Foundations"}

LEARNING_PATH_NODES = [
    (1, 1, 1, "Parts of a whole", "fraction of amount"),
    (2, 1, 2, "Equivalent fractions", "equivalent fractions"),
    (3, 1, 3, "Comparing fractions", "comparing fractions"),
    (4, 1, 4, "Adding fractions", "adding fractions"),
]

AFFIRMATIONS = [
    (1, "Mistakes help my brain grow.", "5-7"),
    (2, "I can try again and get better.", "5-7"),
    (3, "I can do hard things when I keep practising.", "8-11"),
    (4, "Every mistake teaches me something new.", "8-11"),
    (5, "I am not there yet, but I am getting closer.", "8-11"),
    (6, "Challenges are chances to grow my abilities.", "12-14"),
    (7, "Effort and good strategies are how I improve.", "12-14"),
]

MINDFULNESS_PROMPTS = [
    (1, "Balloon Breathing", "Breathe in slowly like you are filling a balloon, then let it out.", "5-7", 60),
    (2, "Five Senses", "Name five things you can see, four you can hear and three you can feel.", "8-11", 120),
    (3, "Calm Counting", "Breathe in for four counts, hold for four, breathe out for four.", "8-11", 90),
    (4, "Thought Clouds", "Notice each thought and imagine it drifting past like a cloud.", "12-14", 180),
]

CONCEPTS = [
    (1, 1, "Fractions"),
    (2, 1, "Equivalent Fractions"),
    (3, 1, "Decimals"),
    (4, 1, "Percentages"),
    (5, 2, "Photosynthesis"),
]

# (id, source, target, strength, connection_type)
CONCEPT_CONNECTIONS = [
    (1, 1, 2, 0.9, "prerequisite"),
    (2, 1, 3, 0.7, "related"),
    (3, 3, 4, 0.8, "related"),
]


def seed(db) -> dict:
    """Seed demo data into the database. Returns summary dict."""
    now = datetime.now()
    stamp = now.isoformat()
    password = generate_password_hash(DEMO_PASSWORD)

    for user in DEMO_USERS:
        db.execute(
            "INSERT OR IGNORE INTO users (id, name, email, password_hash, role, age, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (user["id"], user["name"], user["email"], password, user["role"], user["age"], stamp),
        )
    db.execute(
        "INSERT OR IGNORE INTO parent_links (parent_id, student_id, created_at) VALUES (202, 200, ?)",
        (stamp,),
    )

    db.executemany("INSERT OR IGNORE INTO subjects (id, name, color) VALUES (?, ?, ?)", SUBJECTS)

    lesson = FRACTIONS_LESSON
    db.execute(
        "INSERT OR IGNORE INTO lessons (id, title, description, subject_id, level, content, created_by, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, 201, ?)",
        (lesson["id"], lesson["title"], lesson["description"], lesson["subject_id"],
         lesson["level"], lesson["content"], stamp),
    )
    for step in FRACTIONS_STEPS:
        db.execute(
            "INSERT OR IGNORE INTO lesson_steps (id, lesson_id, step_order, type, content, image_url, "
            "difficulty_level, question_data) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (step["id"], lesson["id"], step["order"], step["type"], step["content"],
             step["image_url"], step["difficulty"], json.dumps(step["question"])),
        )

    for qid, subject_id, topic, question, options, answer, skill, difficulty in DIAGNOSTIC_QUESTIONS:
        db.execute(
            "INSERT OR IGNORE INTO diagnostic_questions (id, subject_id, topic, question, options, "
            "correct_answer, skill, difficulty) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (qid, subject_id, topic, question, json.dumps(options), answer, skill, difficulty),
        )

    path = LEARNING_PATH
    db.execute(
        "INSERT OR IGNORE INTO learning_paths (id, subject_id, topic, title) VALUES (?, ?, ?, ?)",
        (path["id"], path["subject_id"], path["topic"], path["title"]),
    )
    db.executemany(
        "INSERT OR IGNORE INTO learning_path_nodes (id, path_id, node_order, title, skill) VALUES (?, ?, ?, ?, ?)",
        LEARNING_PATH_NODES,
    )

    db.executemany(
        "INSERT OR IGNORE INTO growth_mindset_affirmations (id, text, age_group) VALUES (?, ?, ?)",
        AFFIRMATIONS,
    )
    db.executemany(
        "INSERT OR IGNORE INTO mindfulness_prompts (id, title, prompt, age_group, duration_seconds) "
        "VALUES (?, ?, ?, ?, ?)",
        MINDFULNESS_PROMPTS,
    )

    db.executemany("INSERT OR IGNORE INTO concepts (id, subject_id, name) VALUES (?, ?, ?)", CONCEPTS)
    db.executemany(
        "INSERT OR IGNORE INTO concept_connections (id, source_concept_id, target_concept_id, strength, "
        "connection_type) VALUES (?, ?, ?, ?, ?)",
        CONCEPT_CONNECTIONS,
    )
    db.execute(
        "INSERT OR IGNORE INTO concept_mastery (user_id, concept_id, mastery_level) VALUES (200, 1, 0.6)"
    )

    db.execute(
        "INSERT OR IGNORE INTO expert_sessions (id, title, speaker, scheduled_at) VALUES (1, ?, ?, ?)",
        ("Life as a Marine Biologist", "Dr. Lena Ortiz", (now + timedelta(days=7)).isoformat()),
    )

    db.commit()

    return {
        "users": len(DEMO_USERS),
        "subjects": len(SUBJECTS),
        "lessons": 1,
        "diagnostic_questions": len(DIAGNOSTIC_QUESTIONS),
        "affirmations": len(AFFIRMATIONS),
        "mindfulness_prompts": len(MINDFULNESS_PROMPTS),
        "concepts": len(CONCEPTS),
    }


def clear_demo(db) -> None:
    """Remove demo accounts. Dependent rows go with them via ON DELETE CASCADE."""
    ids = [u["id"] for u in DEMO_USERS]
    placeholders = ",".join("?" * len(ids))
    db.execute(f"DELETE FROM users WHERE id IN ({placeholders})", ids)
    db.commit()


if __name__ == "__main__":
    from app import create_app
    from database import get_db, init_db, run_migrations

    app = create_app()
    with app.app_context():
        init_db()
        run_migrations()
        db = get_db()
        if "--reset" in sys.argv:
            clear_demo(db)
            print("Demo accounts cleared.")
        summary = seed(db)
        print(f"Seeded: {summary}")
