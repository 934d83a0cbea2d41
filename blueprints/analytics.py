"""Analytics routes — performance dashboard, study sessions, CSV export."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime

from flask import Blueprint, Response, jsonify, request
from flask_login import login_required

from analytics import PerformanceReport, TIME_RANGES, normalize_timestamp, session_minutes
from audit import log_event
from helpers import can_view_student, current_user_id, json_body, parse_int
from db_stores import StudySessionStoreDB

logger = logging.getLogger(__name__)

bp = Blueprint("analytics", __name__)


def _report_params():
    """(user_id, subject_id, time_range) from the query string."""
    uid = parse_int(request.args.get("userId"), current_user_id())
    subject_id = request.args.get("subjectId") or "all"
    if subject_id != "all":
        subject_id = parse_int(subject_id, "all")
    time_range = request.args.get("timeRange") or "month"
    if time_range not in TIME_RANGES:
        time_range = "month"
    return uid, subject_id, time_range


@bp.route("/api/analytics/performance")
@login_required
def performance():
    uid, subject_id, time_range = _report_params()
    if not can_view_student(uid):
        return jsonify({"success": False, "message": "Unauthorized to view this user's data"}), 403

    try:
        report = PerformanceReport(uid, subject_id, time_range).build()
    except Exception:
        logger.exception("performance report failed user=%s", uid)
        return jsonify({"success": False, "message": "Failed to fetch performance data"}), 500
    return jsonify({"success": True, **report})


@bp.route("/api/analytics/study-sessions")
@login_required
def list_study_sessions():
    start_raw = request.args.get("startDate")
    end_raw = request.args.get("endDate")
    if not start_raw or not end_raw:
        return jsonify({"error": "Missing date range parameters"}), 400
    try:
        start = date.fromisoformat(start_raw[:10])
        end = date.fromisoformat(end_raw[:10])
    except ValueError:
        return jsonify({"error": "Dates must be YYYY-MM-DD"}), 400

    subject_id = parse_int(request.args.get("subjectId"))
    rows = StudySessionStoreDB(current_user_id()).between(
        datetime.combine(start, datetime.min.time()).isoformat(),
        datetime.combine(end, datetime.max.time()).isoformat(),
        subject_id,
    )
    return jsonify({
        "sessions": [
            {
                "id": s["id"],
                "subjectId": s["subject_id"],
                "subjectName": s["subject_name"],
                "type": s["type"],
                "title": s["title"],
                "duration": session_minutes(s["start_time"], s["end_time"]),
                "date": s["start_time"][:10],
                "completed": bool(s["completed"]),
            }
            for s in rows
        ],
    })


@bp.route("/api/analytics/study-sessions", methods=["POST"])
@login_required
def create_study_session():
    data = json_body()
    if not data.get("startTime"):
        return jsonify({"error": "startTime is required"}), 400
    times = {}
    for field in ("startTime", "endTime"):
        if data.get(field):
            try:
                times[field] = normalize_timestamp(data[field])
            except ValueError:
                return jsonify({"error": f"{field} must be an ISO timestamp"}), 400

    session = StudySessionStoreDB(current_user_id()).create(
        start_time=times["startTime"],
        end_time=times.get("endTime", ""),
        subject_id=parse_int(data.get("subjectId")),
        session_type=str(data.get("type") or "PRACTICE"),
        title=str(data.get("title") or ""),
        completed=bool(data.get("completed")),
    )
    return jsonify({"success": True, "session": session}), 201


@bp.route("/api/analytics/export")
@login_required
def export_performance():
    uid, subject_id, time_range = _report_params()
    if not can_view_student(uid):
        return jsonify({"success": False, "message": "Unauthorized to export this user's data"}), 403

    csv_text = PerformanceReport(uid, subject_id, time_range).export_csv()
    log_event("data_export", current_user_id(), f"type=performance_csv student={uid} range={time_range}")

    safe_subject = re.sub(r"[^A-Za-z0-9_-]", "", str(subject_id))
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="performance_data_{time_range}_{safe_subject}.csv"'
        },
    )
