"""Learner profile routes — learning-style profile and knowledge graph."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from helpers import current_user_id, json_body, parse_int
from db_stores import KnowledgeGraphDB, LearningStyleProfileDB

bp = Blueprint("profile", __name__)


@bp.route("/api/learning-styles/save-profile")
@login_required
def get_learning_style():
    profile = LearningStyleProfileDB(current_user_id()).load()
    if profile is None:
        return jsonify({"error": "Learning style profile not found"}), 404
    return jsonify({"profile": profile})


@bp.route("/api/learning-styles/save-profile", methods=["POST"])
@login_required
def save_learning_style():
    data = json_body()
    scores = {s: data.get(s) for s in LearningStyleProfileDB.STYLES}
    valid_scores = all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in scores.values()
    )
    if not valid_scores or data.get("dominantStyle") not in LearningStyleProfileDB.STYLES:
        return jsonify({"error": "Invalid learning style data"}), 400

    store = LearningStyleProfileDB(current_user_id())
    existed = store.load() is not None
    profile = store.save(dominant_style=data["dominantStyle"], **scores)
    verb = "updated" if existed else "created"
    return jsonify({"message": f"Learning style profile {verb} successfully", "profile": profile})


@bp.route("/api/knowledge-graph")
@login_required
def knowledge_graph():
    graph = KnowledgeGraphDB(current_user_id())
    concepts = graph.concepts(parse_int(request.args.get("subjectId")))
    connections = graph.connections([c["id"] for c in concepts])
    return jsonify({
        "concepts": [
            {
                "id": c["id"],
                "name": c["name"],
                "mastery": c["mastery"],
                "subjectId": c["subject_id"],
                "subjectName": c["subject_name"],
            }
            for c in concepts
        ],
        "connections": connections,
    })
