"""Social-emotional learning routes — moods, growth mindset, mindfulness."""

from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request
from flask_login import login_required

from adaptive import age_group
from helpers import current_user_id, json_body, parse_int
from db_stores import AffirmationStoreDB, MindfulnessStoreDB, MoodLogDB, UserStoreDB

bp = Blueprint("sel", __name__)

MIN_INTENSITY = 1
MAX_INTENSITY = 10


def _user_age_group() -> str:
    user = UserStoreDB.get(current_user_id())
    return age_group(user["age"] if user else None)


@bp.route("/api/sel/moods")
@login_required
def list_moods():
    log = MoodLogDB(current_user_id())
    day_raw = request.args.get("date")
    if not day_raw:
        return jsonify({"entries": log.all()})
    try:
        day = date.fromisoformat(day_raw)
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    return jsonify({"entries": log.for_day(day)})


@bp.route("/api/sel/moods", methods=["POST"])
@login_required
def create_mood():
    data = json_body()
    mood = str(data.get("mood") or "").strip()
    intensity = parse_int(data.get("intensity"))
    if not mood or intensity is None:
        return jsonify({"error": "Missing required fields"}), 400
    if not MIN_INTENSITY <= intensity <= MAX_INTENSITY:
        return jsonify({"error": f"intensity must be between {MIN_INTENSITY} and {MAX_INTENSITY}"}), 400

    entry = MoodLogDB(current_user_id()).add(mood, intensity, str(data.get("notes") or ""))
    return jsonify({"entry": entry}), 201


@bp.route("/api/sel/growth-mindset/daily")
@login_required
def daily_affirmation():
    affirmation = AffirmationStoreDB(current_user_id()).daily(_user_age_group())
    if affirmation is None:
        return jsonify({"error": "No affirmations available"}), 404
    return jsonify({"affirmation": affirmation})


@bp.route("/api/sel/growth-mindset/acknowledge", methods=["POST"])
@login_required
def acknowledge_affirmation():
    affirmation_id = parse_int(json_body().get("affirmationId"))
    if affirmation_id is None:
        return jsonify({"error": "Missing affirmation ID"}), 400
    record = AffirmationStoreDB(current_user_id()).acknowledge(affirmation_id)
    if record is None:
        return jsonify({"error": "Affirmation not found"}), 404
    return jsonify({"success": True, "userAffirmation": record})


@bp.route("/api/sel/mindfulness-prompts/daily")
@login_required
def daily_mindfulness_prompt():
    prompt = MindfulnessStoreDB(current_user_id()).daily(_user_age_group())
    if prompt is None:
        return jsonify({"error": "No mindfulness prompts available"}), 404
    return jsonify({"prompt": prompt})


@bp.route("/api/sel/mindfulness-prompts/complete", methods=["POST"])
@login_required
def complete_mindfulness_prompt():
    data = json_body()
    prompt_id = parse_int(data.get("promptId"))
    response = str(data.get("response") or "").strip()
    if prompt_id is None or not response:
        return jsonify({"error": "Missing required fields"}), 400
    store = MindfulnessStoreDB(current_user_id())
    if store.get(prompt_id) is None:
        return jsonify({"error": "Prompt not found"}), 404
    record = store.complete(prompt_id, response)
    return jsonify({"success": True, "userPrompt": record})
