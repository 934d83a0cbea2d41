"""Tests for the subject catalogue, quizzes and quiz attempts."""

from __future__ import annotations

import pytest


def _quiz(teacher_client, title="Fractions Check", subject_id=1):
    resp = teacher_client.post("/api/quizzes", json={"title": title, "subjectId": subject_id})
    assert resp.status_code == 201
    return resp.get_json()


class TestSubjects:
    def test_lists_seeded_subjects_by_name(self, auth_client):
        subjects = auth_client.get("/api/subjects").get_json()["subjects"]
        assert [s["name"] for s in subjects] == ["English", "Mathematics", "Science"]

    def test_requires_login(self, client):
        assert client.get("/api/subjects").status_code == 401


class TestQuizzes:
    def test_teacher_creates_and_lists(self, teacher_client, auth_client):
        quiz = _quiz(teacher_client)
        assert quiz["title"] == "Fractions Check"
        assert quiz["subject_name"] == "Mathematics"
        _quiz(teacher_client, "Plants", subject_id=2)

        everything = auth_client.get("/api/quizzes").get_json()["quizzes"]
        assert [q["title"] for q in everything] == ["Fractions Check", "Plants"]
        maths = auth_client.get("/api/quizzes?subjectId=1").get_json()["quizzes"]
        assert [q["id"] for q in maths] == [quiz["id"]]

    def test_student_cannot_create(self, auth_client):
        assert auth_client.post("/api/quizzes", json={"title": "x", "subjectId": 1}).status_code == 403

    def test_create_validation(self, teacher_client):
        assert teacher_client.post("/api/quizzes", json={"title": "x"}).status_code == 400
        assert teacher_client.post("/api/quizzes", json={"title": "x", "subjectId": 999}).status_code == 404


class TestAttempts:
    def test_attempt_recorded_and_feeds_analytics(self, teacher_client, auth_client):
        quiz = _quiz(teacher_client)
        resp = auth_client.post(f"/api/quizzes/{quiz['id']}/attempts", json={"score": 75, "timeSpentMinutes": 6})
        assert resp.status_code == 201
        attempt = resp.get_json()["attempt"]
        assert attempt["score"] == 75
        assert attempt["time_spent_minutes"] == 6

        attempts = auth_client.get(f"/api/quizzes/{quiz['id']}/attempts").get_json()["attempts"]
        assert [a["id"] for a in attempts] == [attempt["id"]]

        performance = auth_client.get("/api/analytics/performance?timeRange=week").get_json()["performance"]
        assert performance["averageScore"] == 75
        assert performance["subjectPerformance"] == [{"id": 1, "name": "Mathematics", "score": 75}]

    def test_attempts_are_per_user(self, teacher_client, auth_client):
        quiz = _quiz(teacher_client)
        teacher_client.post(f"/api/quizzes/{quiz['id']}/attempts", json={"score": 40})
        assert auth_client.get(f"/api/quizzes/{quiz['id']}/attempts").get_json()["attempts"] == []

    @pytest.mark.parametrize("score", [None, "high", -1, 101, True, "nan"])
    def test_rejects_bad_score(self, teacher_client, auth_client, score):
        quiz = _quiz(teacher_client)
        resp = auth_client.post(f"/api/quizzes/{quiz['id']}/attempts", json={"score": score})
        assert resp.status_code == 400

    def test_unknown_quiz(self, auth_client):
        assert auth_client.post("/api/quizzes/999/attempts", json={"score": 50}).status_code == 404
        assert auth_client.get("/api/quizzes/999/attempts").status_code == 404
