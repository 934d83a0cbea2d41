"""Lesson routes — catalogue, adaptive lesson delivery, completion and XP."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required

from adaptive import (
    DEFAULT_DIFFICULTY,
    adapt_question,
    adaptive_hints,
    adjust_difficulty,
    clamp_difficulty,
    difficulty_direction,
    lesson_accuracy,
    lesson_achievements_for,
    lesson_xp,
)
from helpers import current_user_id, json_body, parse_int, role_required
from db_stores import (
    AchievementStoreDB,
    LessonProgressDB,
    LessonStoreDB,
    SubjectStoreDB,
    XpLedgerDB,
)

logger = logging.getLogger(__name__)

bp = Blueprint("lessons", __name__)

LESSON_REQUIRED_FIELDS = ("title", "description", "subject", "level", "content")


@bp.route("/api/lessons")
@login_required
def list_lessons():
    subject_id = parse_int(request.args.get("subjectId"))
    return jsonify(LessonStoreDB.list(subject_id))


@bp.route("/api/lessons", methods=["POST"])
@role_required("teacher")
def create_lesson():
    data = json_body()
    missing = [f for f in LESSON_REQUIRED_FIELDS if not data.get(f)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    steps = data.get("steps") or []
    if not isinstance(steps, list):
        return jsonify({"error": "steps must be a list"}), 400

    subject = SubjectStoreDB.get_or_create(str(data["subject"]))
    lesson = LessonStoreDB.create(
        title=str(data["title"]).strip(),
        description=str(data["description"]).strip(),
        subject_id=subject["id"],
        level=str(data["level"]),
        content=str(data["content"]),
        created_by=current_user_id(),
        steps=steps,
    )
    logger.info("lesson created id=%s subject=%s", lesson["id"], subject["name"])
    return jsonify(lesson), 201


@bp.route("/api/lessons/<int:lesson_id>")
@login_required
def get_lesson(lesson_id):
    lesson = LessonStoreDB.get(lesson_id)
    if not lesson:
        return jsonify({"success": False, "message": "Lesson not found"}), 404

    difficulty = clamp_difficulty(request.args.get("difficulty", DEFAULT_DIFFICULTY))
    steps = []
    for step in LessonStoreDB.steps(lesson_id):
        steps.append({
            "id": step["id"],
            "order": step["step_order"],
            "type": step["type"],
            "content": step["content"],
            "imageUrl": step["image_url"],
            "difficultyLevel": step["difficulty_level"],
            "question": adapt_question(step["question_data"], step["difficulty_level"], difficulty),
        })

    return jsonify({
        "success": True,
        "lesson": {
            "id": lesson["id"],
            "title": lesson["title"],
            "subject": lesson["subject_name"],
            "description": lesson["description"],
        },
        "difficultyLevel": difficulty,
        "steps": steps,
        "userProgress": LessonProgressDB(current_user_id()).get(lesson_id),
    })


@bp.route("/api/lessons/<int:lesson_id>/adjust-difficulty", methods=["POST"])
@login_required
def adjust_lesson_difficulty(lesson_id):
    data = json_body()
    results = data.get("results") or []
    if not isinstance(results, list):
        return jsonify({"error": "results must be a list of booleans"}), 400

    current = clamp_difficulty(data.get("difficultyLevel", DEFAULT_DIFFICULTY))
    new_level = adjust_difficulty(current, [bool(r) for r in results])
    direction = difficulty_direction(current, new_level)
    hints = adaptive_hints(data.get("stepType", "concrete"), direction) if direction else []
    return jsonify({"difficultyLevel": new_level, "direction": direction, "hints": hints})


def _award_subject_achievements(uid: int, lesson: dict) -> list[dict]:
    """Unlock per-subject lesson-count achievements and credit their XP."""
    subject_id = lesson["subject_id"]
    if subject_id is None:
        return []
    count = LessonProgressDB(uid).completed_count_for_subject(subject_id)
    store = AchievementStoreDB(uid)
    ledger = XpLedgerDB(uid)
    unlocked = []
    for a in lesson_achievements_for(count, lesson["subject_name"]):
        row = store.unlock(a["type"], a["name"], a["description"], subject_id, a["xp"])
        if row is None:
            continue
        ledger.award(a["xp"], "ACHIEVEMENT", f"Earned {a['name']} achievement", subject_id)
        unlocked.append(row)
    return unlocked


@bp.route("/api/progress/lesson-complete", methods=["POST"])
@login_required
def lesson_complete():
    data = json_body()
    lesson_id = parse_int(data.get("lessonId"))
    if lesson_id is None:
        return jsonify({"success": False, "message": "Lesson ID is required"}), 400

    lesson = LessonStoreDB.get(lesson_id)
    if not lesson:
        return jsonify({"success": False, "message": "Lesson not found"}), 404

    responses = data.get("responses") or {}
    if not isinstance(responses, dict):
        return jsonify({"success": False, "message": "responses must be an object"}), 400

    uid = current_user_id()
    difficulty = clamp_difficulty(data.get("difficultyLevel", DEFAULT_DIFFICULTY))
    accuracy = lesson_accuracy(responses)
    correct = sum(1 for r in responses.values() if isinstance(r, dict) and r.get("isCorrect"))

    xp_earned = parse_int(data.get("xpEarned"), 0)
    if xp_earned > XpLedgerDB.MAX_AWARD:
        return jsonify({"success": False, "message": f"xpEarned must not exceed {XpLedgerDB.MAX_AWARD}"}), 400
    if xp_earned <= 0:
        xp_earned = lesson_xp(difficulty, correct, len(responses) - correct)

    try:
        LessonProgressDB(uid).record_completion(
            lesson_id, accuracy, difficulty, responses,
            time_spent_minutes=parse_int(data.get("timeSpentMinutes"), 0),
        )
        XpLedgerDB(uid).award(
            xp_earned, "LESSON_COMPLETION",
            f"Completed lesson {lesson_id} at difficulty level {difficulty}",
            lesson["subject_id"],
        )
    except Exception:
        logger.exception("lesson completion failed user=%s lesson=%s", uid, lesson_id)
        return jsonify({"success": False, "message": "Failed to record lesson completion"}), 500

    try:
        achievements = _award_subject_achievements(uid, lesson)
    except Exception:
        logger.exception("achievement check failed user=%s lesson=%s", uid, lesson_id)
        achievements = []

    return jsonify({
        "success": True,
        "xpEarned": xp_earned,
        "accuracy": round(accuracy * 100),
        "achievements": achievements,
    })
