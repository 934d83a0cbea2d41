"""Quiz routes — subject catalogue, quizzes and scored attempts."""

from __future__ import annotations

import logging
import math

from flask import Blueprint, jsonify, request
from flask_login import login_required

from helpers import current_user_id, json_body, parse_int, role_required
from db_stores import QuizStoreDB, SubjectStoreDB

logger = logging.getLogger(__name__)

bp = Blueprint("quizzes", __name__)


@bp.route("/api/subjects")
@login_required
def list_subjects():
    return jsonify({"subjects": SubjectStoreDB.all()})


@bp.route("/api/quizzes")
@login_required
def list_quizzes():
    subject_id = parse_int(request.args.get("subjectId"))
    return jsonify({"quizzes": QuizStoreDB.list(subject_id)})


@bp.route("/api/quizzes", methods=["POST"])
@role_required("teacher")
def create_quiz():
    data = json_body()
    title = str(data.get("title") or "").strip()
    subject_id = parse_int(data.get("subjectId"))
    if not title or subject_id is None:
        return jsonify({"error": "title and subjectId are required"}), 400
    if not SubjectStoreDB.get(subject_id):
        return jsonify({"error": "Subject not found"}), 404

    quiz = QuizStoreDB.create(title, subject_id)
    logger.info("quiz created id=%s subject=%s", quiz["id"], subject_id)
    return jsonify(quiz), 201


@bp.route("/api/quizzes/<int:quiz_id>/attempts")
@login_required
def list_attempts(quiz_id):
    if not QuizStoreDB.get(quiz_id):
        return jsonify({"error": "Quiz not found"}), 404
    return jsonify({"attempts": QuizStoreDB.attempts(current_user_id(), quiz_id)})


@bp.route("/api/quizzes/<int:quiz_id>/attempts", methods=["POST"])
@login_required
def record_attempt(quiz_id):
    """Record a scored attempt (0-100) for the signed-in user."""
    if not QuizStoreDB.get(quiz_id):
        return jsonify({"error": "Quiz not found"}), 404

    data = json_body()
    raw = data.get("score")
    try:
        score = float(raw)
    except (TypeError, ValueError):
        score = None
    if isinstance(raw, bool) or score is None or not math.isfinite(score) or not 0 <= score <= 100:
        return jsonify({"error": "score must be a number between 0 and 100"}), 400

    attempt = QuizStoreDB.record_attempt(
        current_user_id(), quiz_id, score,
        time_spent_minutes=parse_int(data.get("timeSpentMinutes"), 0),
    )
    return jsonify({"success": True, "attempt": attempt}), 201
