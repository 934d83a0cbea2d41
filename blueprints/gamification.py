"""Gamification routes — daily XP claims, streak badges, staff XP grants."""

from __future__ import annotations

import logging
from datetime import date, datetime

from flask import Blueprint, jsonify, request
from flask_login import login_required

from adaptive import daily_xp, level_for_xp, next_streak, streak_badge
from audit import log_event
from helpers import can_view_student, current_user_id, is_staff, json_body, parse_int, role_required
from db_stores import AchievementStoreDB, BadgeStoreDB, UserStoreDB, XpLedgerDB

logger = logging.getLogger(__name__)

bp = Blueprint("gamification", __name__)


def _user_summary(user: dict) -> dict:
    return {
        "id": user["id"],
        "name": user["name"],
        "xp": user["xp"],
        "level": level_for_xp(user["xp"]),
        "streak": user["streak"],
        "lastActive": user["last_active"] or None,
    }


@bp.route("/api/earn-xp", methods=["POST"])
@login_required
def earn_xp():
    data = json_body()
    uid = current_user_id()
    target_id = parse_int(data.get("userId"), uid)
    if target_id != uid and not is_staff():
        return jsonify({"message": "Not allowed to claim XP for another user"}), 403

    user = UserStoreDB.get(target_id)
    if not user:
        return jsonify({"message": "User not found"}), 404

    today = date.today()
    ledger = XpLedgerDB(target_id)
    if ledger.claimed_daily_on(today):
        return jsonify({
            "message": "Daily XP already claimed",
            "xpGained": 0,
            "user": _user_summary(user),
            "badge": None,
        })

    streak = next_streak(user["streak"], user["last_active"], today)
    xp_gain = daily_xp(streak)
    ledger.award(xp_gain, "DAILY", f"Daily XP (streak {streak})")
    UserStoreDB.update_streak(target_id, streak, datetime.now().isoformat())

    badge = None
    label = streak_badge(streak)
    if label:
        badge = BadgeStoreDB(target_id).add(label)
        logger.info("badge awarded user=%s label=%s", target_id, label)

    return jsonify({
        "message": "XP awarded",
        "xpGained": xp_gain,
        "user": _user_summary(UserStoreDB.get(target_id)),
        "badge": badge,
    })


@bp.route("/api/update-xp", methods=["POST"])
@role_required("teacher")
def update_xp():
    data = json_body()
    student_id = parse_int(data.get("studentId"))
    xp_gained = parse_int(data.get("xpGained"))
    if student_id is None or xp_gained is None or xp_gained <= 0:
        return jsonify({"success": False, "error": "studentId and a positive xpGained are required"}), 400
    if xp_gained > XpLedgerDB.MAX_AWARD:
        return jsonify({"success": False, "error": f"xpGained must not exceed {XpLedgerDB.MAX_AWARD}"}), 400

    student = UserStoreDB.get(student_id)
    if not student or student["role"] != "student":
        return jsonify({"success": False, "error": "Student not found"}), 404

    new_xp = XpLedgerDB(student_id).award(xp_gained, "MANUAL", f"Awarded by user {current_user_id()}")
    log_event("xp_manual_award", current_user_id(), f"student={student_id} amount={xp_gained}")
    return jsonify({"success": True, "newXP": new_xp})


@bp.route("/api/get-student-xp", methods=["POST"])
@login_required
def get_student_xp():
    data = json_body()
    student_id = parse_int(data.get("studentId"))
    if student_id is None:
        return jsonify({"success": False, "error": "Student ID is required"}), 400
    if not can_view_student(student_id):
        return jsonify({"success": False, "error": "Not allowed to view this student"}), 403

    student = UserStoreDB.get(student_id)
    if not student:
        return jsonify({"success": False, "error": "Student not found"}), 404
    return jsonify({"success": True, "currentXP": student["xp"]})


@bp.route("/api/xp/transactions")
@login_required
def xp_transactions():
    limit = min(200, max(1, parse_int(request.args.get("limit"), 50)))
    return jsonify({"transactions": XpLedgerDB(current_user_id()).transactions(limit)})


@bp.route("/api/achievements")
@login_required
def achievements():
    uid = current_user_id()
    return jsonify({
        "achievements": AchievementStoreDB(uid).recent(50),
        "badges": BadgeStoreDB(uid).all(),
    })
