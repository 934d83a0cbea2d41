"""Immersive learning routes — XR models, virtual field trips, AR worksheets, STEM simulator."""

from __future__ import annotations

import logging
import random

from flask import Blueprint, jsonify, request
from flask_login import login_required

from helpers import current_user_id, json_body, parse_int, teacher_required
from db_stores import SubjectStoreDB, XRContentStoreDB

logger = logging.getLogger(__name__)

bp = Blueprint("labs", __name__)

SENSOR_RANGES = {
    "temperature": (20, 30),     # Celsius
    "humidity": (40, 60),        # %
    "pressure": (1000, 1010),    # hPa
    "light": (500, 1000),        # lux
    "soilMoisture": (20, 80),    # %
}


def _missing(data: dict, fields: tuple[str, ...]) -> list[str]:
    return [f for f in fields if not data.get(f)]


def _subject_or_error(data: dict):
    subject_id = parse_int(data.get("subjectId"))
    if subject_id is None or not SubjectStoreDB.get(subject_id):
        return None, (jsonify({"error": "Subject not found"}), 404)
    return subject_id, None


@bp.route("/api/xr/models")
@login_required
def list_models():
    models = XRContentStoreDB.models(
        parse_int(request.args.get("subjectId")), request.args.get("category") or None,
    )
    return jsonify({"models": models})


@bp.route("/api/xr/models", methods=["POST"])
@teacher_required
def create_model():
    data = json_body()
    if _missing(data, ("name", "modelUrl", "category", "subjectId")):
        return jsonify({"error": "Missing required fields"}), 400
    subject_id, err = _subject_or_error(data)
    if err:
        return err

    model = XRContentStoreDB.create_model(
        name=str(data["name"]),
        description=str(data.get("description") or ""),
        model_url=str(data["modelUrl"]),
        thumbnail_url=str(data.get("thumbnailUrl") or ""),
        category=str(data["category"]),
        subject_id=subject_id,
    )
    logger.info("xr model created id=%s by=%s", model["id"], current_user_id())
    return jsonify({"model": model}), 201


@bp.route("/api/xr/field-trips")
@login_required
def list_field_trips():
    return jsonify({"fieldTrips": XRContentStoreDB.field_trips(parse_int(request.args.get("subjectId")))})


@bp.route("/api/xr/field-trips", methods=["POST"])
@teacher_required
def create_field_trip():
    data = json_body()
    if _missing(data, ("title", "panoramaUrl", "subjectId")):
        return jsonify({"error": "Missing required fields"}), 400
    hotspots = data.get("hotspots") or []
    if not isinstance(hotspots, list):
        return jsonify({"error": "hotspots must be a list"}), 400
    subject_id, err = _subject_or_error(data)
    if err:
        return err

    trip = XRContentStoreDB.create_field_trip(
        title=str(data["title"]),
        description=str(data.get("description") or ""),
        panorama_url=str(data["panoramaUrl"]),
        hotspots=hotspots,
        model_id=parse_int(data.get("modelId")),
        subject_id=subject_id,
    )
    return jsonify({"fieldTrip": trip}), 201


@bp.route("/api/xr/worksheets")
@login_required
def list_worksheets():
    return jsonify({"worksheets": XRContentStoreDB.worksheets(parse_int(request.args.get("subjectId")))})


@bp.route("/api/xr/worksheets", methods=["POST"])
@teacher_required
def create_worksheet():
    data = json_body()
    if _missing(data, ("title", "worksheetUrl", "contentUrl", "subjectId")):
        return jsonify({"error": "Missing required fields"}), 400
    subject_id, err = _subject_or_error(data)
    if err:
        return err

    worksheet = XRContentStoreDB.create_worksheet(
        title=str(data["title"]),
        description=str(data.get("description") or ""),
        worksheet_url=str(data["worksheetUrl"]),
        marker_image=str(data.get("markerImage") or ""),
        content_url=str(data["contentUrl"]),
        subject_id=subject_id,
    )
    return jsonify({"worksheet": worksheet}), 201


@bp.route("/api/xr/worksheets/scan", methods=["POST"])
@login_required
def scan_worksheet():
    """Resolve a scanned worksheet image to its AR content.

    Marker recognition is not performed; the most recently published
    worksheet is returned.
    """
    data = json_body()
    if not data.get("imageData"):
        return jsonify({"error": "Missing image data"}), 400

    worksheet = XRContentStoreDB.latest_worksheet()
    if not worksheet:
        return jsonify({"success": False, "message": "No worksheets found in the system"})

    XRContentStoreDB.record_scan(current_user_id(), worksheet["id"])
    return jsonify({
        "success": True,
        "worksheetId": worksheet["id"],
        "title": worksheet["title"],
        "contentUrl": worksheet["content_url"],
    })


@bp.route("/api/iot-stem/simulator")
@login_required
def sensor_simulator():
    data = {name: random.uniform(lo, hi) for name, (lo, hi) in SENSOR_RANGES.items()}
    return jsonify({"data": data, "message": "Simulated sensor data generated successfully"})
