"""Admin routes — global feature toggles and the audit trail."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from audit import log_event, recent_events
from helpers import current_user_id, json_body, parse_int, role_required
from db_stores import SettingsStoreDB

bp = Blueprint("admin", __name__)


@bp.route("/api/admin/settings")
@role_required("admin")
def get_settings():
    return jsonify({"settings": SettingsStoreDB.load(current_app.config["FEATURE_FLAGS"])})


@bp.route("/api/admin/settings", methods=["POST"])
@role_required("admin")
def save_settings():
    defaults = current_app.config["FEATURE_FLAGS"]
    data = json_body()
    unknown = sorted(set(data) - set(defaults))
    if unknown:
        return jsonify({"error": f"Unknown settings: {', '.join(unknown)}"}), 400
    if not all(isinstance(v, bool) for v in data.values()):
        return jsonify({"error": "Setting values must be true or false"}), 400

    SettingsStoreDB.save(data)
    log_event("settings_updated", current_user_id(), ", ".join(f"{k}={v}" for k, v in sorted(data.items())))
    return jsonify({"success": True, "settings": SettingsStoreDB.load(defaults)})


@bp.route("/api/admin/audit-log")
@role_required("admin")
def audit_log():
    limit = max(1, min(parse_int(request.args.get("limit"), 50), 200))
    return jsonify({"events": recent_events(limit, parse_int(request.args.get("userId")))})
