"""Learning path routes — diagnostic quiz, scoring and path progress."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required

from adaptive import score_diagnostic
from ai_resilience import ask_json
from helpers import current_user_id, json_body, parse_int
from db_stores import DiagnosticStoreDB, LearningPathStoreDB, SubjectStoreDB

logger = logging.getLogger(__name__)

bp = Blueprint("learning_paths", __name__)

INSIGHTS_SYSTEM = (
    "You are an expert educational AI that analyzes student diagnostic results "
    "and provides personalized learning insights. Respond with JSON only."
)


def _insights_prompt(score, subject_name: str, topic: str | None) -> str:
    skills = "\n".join(
        f"- {skill}: {s['proficiency']:.2f}% ({s['correct']}/{s['total']})"
        for skill, s in score.skills.items()
    )
    evaluations = "\n".join(
        f"- Question on {e['skill']} (Difficulty: {e['difficulty']}/5): "
        f"{'Correct' if e['isCorrect'] else 'Incorrect'}"
        for e in score.evaluations
    )
    topic_line = f"Topic: {topic}\n" if topic else ""
    return f"""DIAGNOSTIC RESULTS:
Overall Proficiency: {score.overall_proficiency:.2f}%
Subject: {subject_name}
{topic_line}
Skill Proficiencies:
{skills}

Question Evaluations:
{evaluations}

Based on these results, provide personalized learning insights in the following JSON format:
{{
  "strengths": ["Strength 1", "Strength 2"],
  "areasForGrowth": ["Area 1", "Area 2"],
  "recommendations": [
    {{"title": "...", "description": "...", "actionText": "...", "actionUrl": "/recommended/path"}}
  ],
  "learningStyle": {{
    "primary": "Visual/Auditory/Kinesthetic/Reading-Writing",
    "primaryPercentage": 65,
    "primaryDescription": "...",
    "secondary": [{{"name": "...", "percentage": 25}}]
  }}
}}

Limit to 3 strengths, 3 areas for growth, and 3 recommendations."""


def _learning_insights(score, subject_id: int, topic: str | None):
    """AI-written insights, or None when the call or decoding fails."""
    subject = SubjectStoreDB.get(subject_id)
    subject_name = subject["name"] if subject else "this subject"
    try:
        return ask_json(_insights_prompt(score, subject_name, topic), system=INSIGHTS_SYSTEM)
    except Exception:
        logger.exception("learning insights generation failed subject=%s", subject_id)
        return None


@bp.route("/api/learning-paths/diagnostic")
@login_required
def diagnostic_questions():
    subject_id = parse_int(request.args.get("subjectId"))
    if subject_id is None:
        return jsonify({"success": False, "message": "Subject ID is required"}), 400

    topic = request.args.get("topic") or None
    questions = DiagnosticStoreDB.questions(subject_id, topic)
    return jsonify({
        "success": True,
        "questions": [
            {
                "id": q["id"],
                "question": q["question"],
                "options": q["options"],
                "difficulty": q["difficulty"],
                "skill": q["skill"],
            }
            for q in questions
        ],
    })


@bp.route("/api/learning-paths/diagnostic/submit", methods=["POST"])
@login_required
def submit_diagnostic():
    data = json_body()
    subject_id = parse_int(data.get("subjectId"))
    responses = data.get("responses")
    if subject_id is None or not isinstance(responses, dict) or not responses:
        return jsonify({"success": False, "message": "Missing required fields"}), 400

    uid = current_user_id()
    topic = data.get("topic") or None
    questions = DiagnosticStoreDB.questions_by_ids(list(responses.keys()))
    score = score_diagnostic(questions, responses)
    DiagnosticStoreDB.save_result(uid, subject_id, topic, responses, score)

    body = {
        "success": True,
        "diagnosticResults": {
            "overallProficiency": score.overall_proficiency,
            "masteredSkills": score.mastered_skills,
            "inProgressSkills": score.in_progress_skills,
            "evaluations": score.evaluations,
        },
    }

    path = LearningPathStoreDB.find(subject_id, topic)
    if path:
        progress = LearningPathStoreDB.apply_diagnostic(
            uid, path, score.mastered_skills, score.in_progress_skills,
        )
        body["updatedLearningPath"] = {
            **path,
            "userProgress": {
                "currentNodeId": progress["current_node_id"],
                "completedNodeIds": progress["completed_node_ids"],
                "masteredSkills": progress["mastered_skills"],
                "inProgressSkills": progress["in_progress_skills"],
                "overallProgress": progress["overall_progress"],
            },
        }
        body["learningInsights"] = _learning_insights(score, subject_id, topic)

    return jsonify(body)
