"""AI routes — answer feedback and the custom lesson launcher."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from ai_resilience import configured_model, parse_ai_json, resilient_llm_call
from extensions import limiter
from helpers import can_view_student, current_user_id, json_body, parse_int
from db_stores import AIFeedbackStoreDB, DiagnosticStoreDB, SettingsStoreDB, UserStoreDB

logger = logging.getLogger(__name__)

bp = Blueprint("ai", __name__)

FEEDBACK_CACHE_TTL = 3600


def build_feedback_prompt(data: dict) -> str:
    subject = data.get("subject") or "general"
    topic = data.get("topic") or ""
    correct = f"CORRECT ANSWER: {data['correctAnswer']}\n" if data.get("correctAnswer") else ""
    history = f"STUDENT LEARNING HISTORY:\n{data['studentHistory']}\n" if data.get("studentHistory") else ""
    return f"""You are an expert {subject} teacher with experience in personalized education.

QUESTION CONTEXT:
{data['questionContext']}

STUDENT RESPONSE:
{data['studentResponse']}

{correct}SUBJECT: {subject}
TOPIC: {topic}
{history}
Analyze the student's response and give specific, encouraging feedback covering
strengths, areas for improvement and next steps.

Format your response as a JSON object with the following structure:
{{
  "overallFeedback": "A paragraph of general feedback",
  "strengthPoints": ["Strength 1"],
  "improvementPoints": ["Area 1"],
  "nextSteps": ["Next step 1"],
  "conceptualUnderstanding": "excellent|good|partial|limited|unclear",
  "suggestedResources": [
    {{"title": "Resource title", "type": "video|article|practice|interactive", "url": "", "description": ""}}
  ],
  "misconceptions": ["Misconception 1"]
}}"""


@bp.route("/api/ai/generate-feedback", methods=["POST"])
@login_required
@limiter.limit("30 per hour")
def generate_feedback():
    data = json_body()
    if not data.get("studentResponse") or not data.get("questionContext"):
        return jsonify({"success": False, "message": "Missing required fields"}), 400

    provider, model = configured_model()
    try:
        text, meta = resilient_llm_call(
            provider, model, build_feedback_prompt(data), cache_ttl=FEEDBACK_CACHE_TTL,
        )
    except Exception:
        logger.exception("feedback generation failed provider=%s", provider)
        return jsonify({"success": False, "message": "Failed to generate feedback"}), 500

    try:
        feedback = parse_ai_json(text)
    except ValueError:
        logger.warning("unparsable feedback from %s: %.200s", provider, text)
        return jsonify({"success": False, "message": "Failed to parse AI response"}), 500

    logger.info("feedback generated provider=%s cost=%s cache_hit=%s",
                provider, meta.get("cost_estimate_usd"), meta.get("cache_hit"))

    if data.get("questionId"):
        AIFeedbackStoreDB(current_user_id()).save(data["questionId"], feedback)

    return jsonify({"success": True, "feedback": feedback})


@bp.route("/api/ai/feedback-history")
@login_required
def feedback_history():
    limit = min(max(parse_int(request.args.get("limit"), 20), 1), 100)
    items = AIFeedbackStoreDB(current_user_id()).history(limit)
    return jsonify({
        "feedback": [
            {
                "id": f["id"],
                "questionId": f["question_id"],
                "feedback": f["feedback"],
                "createdAt": f["created_at"],
            }
            for f in items
        ]
    })


@bp.route("/api/ai-lesson-launcher", methods=["POST"])
@login_required
def ai_lesson_launcher():
    flags = SettingsStoreDB.load(current_app.config["FEATURE_FLAGS"])
    if not flags.get("aiLessonLauncher"):
        return jsonify({"error": "The AI lesson launcher is turned off."}), 403

    data = json_body()
    student_id = parse_int(data.get("studentId"), current_user_id())
    if not can_view_student(student_id):
        return jsonify({"error": "Not allowed to build lessons for this student"}), 403

    student = UserStoreDB.get(student_id)
    if not student:
        return jsonify({"error": "Student not found"}), 404

    latest = DiagnosticStoreDB.latest_result(student_id)
    weak_areas = (latest["in_progress_skills"] if latest else [])[:3] or ["core skills review"]
    subject = latest["subject_name"] if latest else "General"

    lesson = (
        f"Custom Lesson for {student['name']} ({subject})\n\n"
        f"Focus Areas: {', '.join(weak_areas)}\n\n"
        f"Objective: Help the student improve in weak topics.\n\n"
        f"Step 1: Intro to {weak_areas[0]}\n"
        f"Step 2: Practice questions\n"
        f"Step 3: Mini quiz"
    )
    return jsonify({"lesson": lesson, "focusAreas": weak_areas, "subject": subject})
