"""Parent routes — link a child account and list linked children."""

from __future__ import annotations

from flask import Blueprint, jsonify

from adaptive import level_for_xp
from audit import log_event
from helpers import current_user_id, json_body, role_required
from db_stores import ParentLinkDB, UserStoreDB

bp = Blueprint("parent", __name__)


@bp.route("/api/parent/link", methods=["POST"])
@role_required("parent")
def link_child():
    email = str(json_body().get("studentEmail") or "").strip().lower()
    if not email:
        return jsonify({"error": "studentEmail is required"}), 400

    student = UserStoreDB.get_by_email(email)
    if not student or student["role"] != "student":
        return jsonify({"error": "No student account with that email"}), 404

    uid = current_user_id()
    if not ParentLinkDB.link(uid, student["id"]):
        return jsonify({"error": "Student already linked"}), 409

    log_event("parent_link", uid, f"student_id={student['id']}")
    return jsonify({"success": True, "student": {"id": student["id"], "name": student["name"]}}), 201


@bp.route("/api/parent/children")
@role_required("parent")
def children():
    kids = ParentLinkDB.children(current_user_id())
    return jsonify({
        "children": [
            {
                "id": c["id"],
                "name": c["name"],
                "xp": c["xp"],
                "level": level_for_xp(c["xp"]),
                "streak": c["streak"],
                "lastActive": c["last_active"] or None,
                "averageAccuracy": round(c["average_accuracy"] * 100),
            }
            for c in kids
        ]
    })
