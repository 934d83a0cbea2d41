"""Core routes — role dashboards, dashboard redirect, health check."""

from __future__ import annotations

import logging
from datetime import date

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from adaptive import level_for_xp, level_progress_pct, xp_for_level
from helpers import current_user_id, role_required
from db_stores import (
    AchievementStoreDB,
    BadgeStoreDB,
    LessonProgressDB,
    LessonStoreDB,
    MoodLogDB,
    ParentLinkDB,
    UserStoreDB,
    XpLedgerDB,
)

logger = logging.getLogger(__name__)

bp = Blueprint("core", __name__)


@bp.route("/healthz")
def healthz():
    return jsonify({"status": "ok"})


@bp.route("/dashboard")
@login_required
def dashboard():
    return jsonify({"redirect": f"/{current_user.role}"})


@bp.route("/unauthorized")
def unauthorized():
    return jsonify({"error": "You do not have access to this page."}), 403


@bp.route("/student")
@role_required("student")
def student_dashboard():
    uid = current_user_id()
    user = UserStoreDB.get(uid)
    xp = user["xp"]
    level = level_for_xp(xp)
    moods = MoodLogDB(uid).for_day(date.today())
    return jsonify({
        "user": {"id": uid, "name": user["name"]},
        "xp": xp,
        "level": level,
        "xpProgressPct": level_progress_pct(xp),
        "xpForNextLevel": xp_for_level(level + 1),
        "streak": user["streak"],
        "badges": BadgeStoreDB(uid).all(),
        "recentAchievements": AchievementStoreDB(uid).recent(5),
        "inProgressLessons": LessonProgressDB(uid).in_progress(),
        "todayMood": moods[0] if moods else None,
    })


@bp.route("/teacher")
@role_required("teacher")
def teacher_dashboard():
    uid = current_user_id()
    counts = UserStoreDB.count_by_role()
    return jsonify({
        "lessonsAuthored": LessonStoreDB.count_by_author(uid),
        "studentCount": counts["student"],
        "averageAccuracy": round(LessonProgressDB.class_average_accuracy() * 100),
        "recentCompletions": LessonProgressDB.recent_completions(10),
    })


@bp.route("/parent")
@role_required("parent")
def parent_dashboard():
    children = ParentLinkDB.children(current_user_id())
    for child in children:
        child["level"] = level_for_xp(child["xp"])
        child["average_accuracy"] = round(child["average_accuracy"] * 100)
    return jsonify({"children": children})


@bp.route("/admin")
@role_required("admin")
def admin_dashboard():
    return jsonify({
        "usersByRole": UserStoreDB.count_by_role(),
        "lessonCount": LessonStoreDB.count(),
        "xpIssued": XpLedgerDB.total_issued(),
    })
