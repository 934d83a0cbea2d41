"""Tests for diagnostic quizzes and learning path progress."""

from __future__ import annotations

import json
from unittest.mock import patch

FRACTION_ANSWERS = {"1": "4", "2": "1/3", "3": "1/2", "4": "3/8", "5": "5/6"}

INSIGHTS = {
    "strengths": ["Comparing fractions"],
    "areasForGrowth": ["Adding fractions"],
    "recommendations": [],
    "learningStyle": {"primary": "Visual", "primaryPercentage": 60},
}


class TestDiagnosticQuestions:
    def test_requires_subject(self, auth_client):
        assert auth_client.get("/api/learning-paths/diagnostic").status_code == 400

    def test_ordered_by_difficulty_without_answers(self, auth_client):
        data = auth_client.get("/api/learning-paths/diagnostic?subjectId=1").get_json()
        questions = data["questions"]
        assert len(questions) == 7
        difficulties = [q["difficulty"] for q in questions]
        assert difficulties == sorted(difficulties)
        assert all("correct_answer" not in q for q in questions)
        assert questions[0]["options"] == ["2", "4", "6", "8"]

    def test_topic_filter(self, auth_client):
        questions = auth_client.get(
            "/api/learning-paths/diagnostic?subjectId=1&topic=fraction"
        ).get_json()["questions"]
        assert [q["id"] for q in questions] == [1, 2, 3, 4, 5]

    def test_unknown_topic_falls_back_to_general(self, auth_client):
        questions = auth_client.get(
            "/api/learning-paths/diagnostic?subjectId=1&topic=decimals"
        ).get_json()["questions"]
        assert [q["id"] for q in questions] == [6, 7]


class TestDiagnosticSubmit:
    def test_requires_fields(self, auth_client):
        assert auth_client.post("/api/learning-paths/diagnostic/submit", json={"subjectId": 1}).status_code == 400
        assert auth_client.post("/api/learning-paths/diagnostic/submit", json={
            "responses": {"1": "4"},
        }).status_code == 400

    @patch("blueprints.learning_paths.ask_json", return_value=INSIGHTS)
    def test_scores_and_starts_path(self, mock_ask, auth_client, db):
        resp = auth_client.post("/api/learning-paths/diagnostic/submit", json={
            "subjectId": 1, "topic": "fractions", "responses": FRACTION_ANSWERS,
        })
        data = resp.get_json()
        assert resp.status_code == 200
        results = data["diagnosticResults"]
        assert results["overallProficiency"] == 80
        assert results["inProgressSkills"] == ["adding fractions"]
        assert sorted(results["masteredSkills"]) == [
            "comparing fractions", "equivalent fractions", "fraction of amount",
        ]

        path = data["updatedLearningPath"]
        assert path["title"] == "Fractions Foundations"
        assert path["userProgress"]["currentNodeId"] == 1
        assert path["userProgress"]["inProgressSkills"] == ["adding fractions"]
        assert data["learningInsights"] == INSIGHTS

        row = db.execute("SELECT * FROM diagnostic_results WHERE user_id = 1").fetchone()
        assert row["overall_proficiency"] == 80
        assert json.loads(row["in_progress_skills"]) == ["adding fractions"]

        prompt = mock_ask.call_args[0][0]
        assert "Overall Proficiency: 80.00%" in prompt
        assert "Subject: Mathematics" in prompt

    @patch("blueprints.learning_paths.ask_json", return_value=INSIGHTS)
    def test_resubmission_updates_progress(self, mock_ask, auth_client, db):
        auth_client.post("/api/learning-paths/diagnostic/submit", json={
            "subjectId": 1, "topic": "fractions", "responses": FRACTION_ANSWERS,
        })
        data = auth_client.post("/api/learning-paths/diagnostic/submit", json={
            "subjectId": 1, "topic": "fractions", "responses": {"4": "3/4", "5": "5/6"},
        }).get_json()
        assert data["updatedLearningPath"]["userProgress"]["masteredSkills"] == ["adding fractions"]
        count = db.execute("SELECT COUNT(*) FROM learning_path_progress WHERE user_id = 1").fetchone()[0]
        assert count == 1

    def test_insights_null_when_ai_fails(self, auth_client):
        data = auth_client.post("/api/learning-paths/diagnostic/submit", json={
            "subjectId": 1, "responses": FRACTION_ANSWERS,
        }).get_json()
        assert "updatedLearningPath" in data
        assert data["learningInsights"] is None

    @patch("blueprints.learning_paths.ask_json", side_effect=ValueError("not json"))
    def test_insights_null_on_bad_json(self, mock_ask, auth_client):
        data = auth_client.post("/api/learning-paths/diagnostic/submit", json={
            "subjectId": 1, "responses": FRACTION_ANSWERS,
        }).get_json()
        assert data["learningInsights"] is None

    def test_no_path_for_subject(self, auth_client):
        data = auth_client.post("/api/learning-paths/diagnostic/submit", json={
            "subjectId": 2, "responses": {"8": "Carbon dioxide"},
        }).get_json()
        assert data["diagnosticResults"]["masteredSkills"] == ["plant biology"]
        assert "updatedLearningPath" not in data
