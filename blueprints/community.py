"""Peer teaching and community routes — teach-back, mentorships, expert sessions."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required

from helpers import current_user_id, json_body, parse_int
from db_stores import ExpertSessionStoreDB, MentorshipStoreDB, SubjectStoreDB, TeachBackStoreDB, UserStoreDB

logger = logging.getLogger(__name__)

bp = Blueprint("community", __name__)


@bp.route("/api/peer-teaching/teach-back", methods=["POST"])
@login_required
def teach_back():
    data = json_body()
    required = ("sessionId", "questionId", "answer")
    if any(not data.get(f) for f in required) or data.get("correct") is None:
        return jsonify({"message": "Missing required fields"}), 400

    saved = TeachBackStoreDB.add(
        current_user_id(), data["sessionId"], data["questionId"],
        str(data["answer"]), bool(data["correct"]),
    )
    return jsonify({"message": "Teach back response saved successfully", "data": saved}), 201


# ── Mentorships ─────────────────────────────────────────────

@bp.route("/api/peer-teaching/mentorships")
@login_required
def list_mentorships():
    return jsonify({"mentorships": MentorshipStoreDB.for_user(current_user_id())})


@bp.route("/api/peer-teaching/mentorships", methods=["POST"])
@login_required
def create_mentorship():
    data = json_body()
    uid = current_user_id()
    mentor_id = parse_int(data.get("mentorId"))
    mentee_id = parse_int(data.get("menteeId"))
    subject_id = parse_int(data.get("subjectId"))
    goals = str(data.get("goals") or "").strip()

    if mentor_id is None or mentee_id is None or subject_id is None or not goals:
        return jsonify({"error": "mentorId, menteeId, subjectId and goals are required"}), 400
    if mentor_id == mentee_id:
        return jsonify({"error": "A student cannot mentor themselves"}), 400
    if uid not in (mentor_id, mentee_id):
        return jsonify({"error": "You must be the mentor or the mentee"}), 403
    if not UserStoreDB.get(mentor_id) or not UserStoreDB.get(mentee_id):
        return jsonify({"error": "User not found"}), 404
    if not SubjectStoreDB.get(subject_id):
        return jsonify({"error": "Subject not found"}), 404

    mentorship = MentorshipStoreDB.create(mentor_id, mentee_id, subject_id, goals, requested_by=uid)
    logger.info("mentorship requested id=%s by=%s", mentorship["id"], uid)
    return jsonify({"mentorship": mentorship}), 201


def _respond(mentorship_id: int, status: str):
    uid = current_user_id()
    mentorship = MentorshipStoreDB.get(mentorship_id)
    if not mentorship:
        return jsonify({"error": "Mentorship not found"}), 404
    if uid not in (mentorship["mentor_id"], mentorship["mentee_id"]) or uid == mentorship["requested_by"]:
        return jsonify({"error": "Only the invited party can respond"}), 403
    if mentorship["status"] != "pending":
        return jsonify({"error": f"Mentorship is already {mentorship['status']}"}), 409
    return jsonify({"mentorship": MentorshipStoreDB.set_status(mentorship_id, status)})


@bp.route("/api/peer-teaching/mentorships/<int:mentorship_id>/accept", methods=["POST"])
@login_required
def accept_mentorship(mentorship_id):
    return _respond(mentorship_id, "active")


@bp.route("/api/peer-teaching/mentorships/<int:mentorship_id>/decline", methods=["POST"])
@login_required
def decline_mentorship(mentorship_id):
    return _respond(mentorship_id, "declined")


# ── Expert sessions ─────────────────────────────────────────

@bp.route("/api/expert-sessions")
@login_required
def expert_sessions():
    sessions = ExpertSessionStoreDB.upcoming(current_user_id())
    for s in sessions:
        s["attending"] = bool(s["attending"])
    return jsonify({"sessions": sessions})


@bp.route("/api/expert-sessions/rsvp", methods=["POST"])
@login_required
def rsvp():
    data = json_body() if request.is_json else request.form.to_dict()
    session_id = parse_int(data.get("expertSessionId"))
    if session_id is None:
        return jsonify({"error": "Missing expertSessionId"}), 400
    if not ExpertSessionStoreDB.get(session_id):
        return jsonify({"error": "Expert session not found"}), 404

    raw = data.get("rsvp")
    attending = raw is True or str(raw).lower() == "true"
    return jsonify({"success": True, **ExpertSessionStoreDB.rsvp(session_id, current_user_id(), attending)})
