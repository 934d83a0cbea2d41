"""Tests for teach-back responses, mentorships and expert sessions."""

from __future__ import annotations

import pytest


class TestTeachBack:
    def test_saves_incorrect_answer(self, auth_client, db):
        resp = auth_client.post("/api/peer-teaching/teach-back", json={
            "sessionId": "s-1", "questionId": 7, "answer": "Plants eat sunlight", "correct": False,
        })
        assert resp.status_code == 201
        saved = resp.get_json()["data"]
        assert saved["questionId"] == "7"
        assert saved["correct"] is False
        row = db.execute("SELECT * FROM teach_back_responses WHERE user_id = 1").fetchone()
        assert row["correct"] == 0

    @pytest.mark.parametrize("payload", [
        {"questionId": "q", "answer": "a", "correct": True},
        {"sessionId": "s", "answer": "a", "correct": True},
        {"sessionId": "s", "questionId": "q", "correct": True},
        {"sessionId": "s", "questionId": "q", "answer": "a"},
    ])
    def test_missing_fields(self, auth_client, payload):
        resp = auth_client.post("/api/peer-teaching/teach-back", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Missing required fields"


def _request(client, mentor_id=5, mentee_id=1, **extra):
    return client.post("/api/peer-teaching/mentorships", json={
        "mentorId": mentor_id, "menteeId": mentee_id, "subjectId": 1, "goals": "Fractions practice", **extra,
    })


class TestMentorships:
    def test_request_is_pending(self, auth_client):
        resp = _request(auth_client)
        assert resp.status_code == 201
        mentorship = resp.get_json()["mentorship"]
        assert mentorship["status"] == "pending"
        assert mentorship["requested_by"] == 1

    def test_listed_for_both_parties(self, auth_client, other_student_client):
        _request(auth_client)
        for client in (auth_client, other_student_client):
            mentorships = client.get("/api/peer-teaching/mentorships").get_json()["mentorships"]
            assert [(m["mentor_name"], m["mentee_name"]) for m in mentorships] == [
                ("Other Student", "Test Student"),
            ]

    def test_validation(self, auth_client):
        assert _request(auth_client, goals="").status_code == 400
        assert _request(auth_client, mentor_id=1, mentee_id=1).status_code == 400
        assert _request(auth_client, mentor_id=5, mentee_id=999).status_code == 403
        assert _request(auth_client, mentor_id=999).status_code == 404
        assert _request(auth_client, subjectId=42).status_code == 404

    def test_outsider_cannot_request(self, teacher_client):
        assert _request(teacher_client).status_code == 403

    def test_other_party_accepts(self, auth_client, other_student_client):
        mentorship_id = _request(auth_client).get_json()["mentorship"]["id"]
        resp = other_student_client.post(f"/api/peer-teaching/mentorships/{mentorship_id}/accept")
        assert resp.get_json()["mentorship"]["status"] == "active"

    def test_requester_cannot_accept_own_request(self, auth_client):
        mentorship_id = _request(auth_client).get_json()["mentorship"]["id"]
        assert auth_client.post(f"/api/peer-teaching/mentorships/{mentorship_id}/accept").status_code == 403

    def test_outsider_cannot_respond(self, auth_client, teacher_client):
        mentorship_id = _request(auth_client).get_json()["mentorship"]["id"]
        assert teacher_client.post(f"/api/peer-teaching/mentorships/{mentorship_id}/decline").status_code == 403

    def test_only_pending_can_change(self, auth_client, other_student_client):
        mentorship_id = _request(auth_client).get_json()["mentorship"]["id"]
        other_student_client.post(f"/api/peer-teaching/mentorships/{mentorship_id}/decline")
        resp = other_student_client.post(f"/api/peer-teaching/mentorships/{mentorship_id}/accept")
        assert resp.status_code == 409
        assert "declined" in resp.get_json()["error"]

    def test_unknown_mentorship(self, auth_client):
        assert auth_client.post("/api/peer-teaching/mentorships/999/accept").status_code == 404


class TestExpertSessions:
    def test_list_not_attending_by_default(self, auth_client):
        sessions = auth_client.get("/api/expert-sessions").get_json()["sessions"]
        assert sessions[0]["title"] == "Life as a Marine Biologist"
        assert sessions[0]["attending"] is False
        assert sessions[0]["attendee_count"] == 0

    def test_rsvp_json(self, auth_client):
        resp = auth_client.post("/api/expert-sessions/rsvp", json={"expertSessionId": 1, "rsvp": True})
        assert resp.get_json() == {"success": True, "expertSessionId": 1, "userId": 1, "attending": True}
        session = auth_client.get("/api/expert-sessions").get_json()["sessions"][0]
        assert session["attending"] is True
        assert session["attendee_count"] == 1

    def test_rsvp_form_then_cancel(self, auth_client, db):
        auth_client.post("/api/expert-sessions/rsvp", data={"expertSessionId": "1", "rsvp": "true"})
        resp = auth_client.post("/api/expert-sessions/rsvp", data={"expertSessionId": "1", "rsvp": "false"})
        assert resp.get_json()["attending"] is False
        rows = db.execute("SELECT * FROM expert_session_attendees WHERE user_id = 1").fetchall()
        assert len(rows) == 1
        assert rows[0]["attending"] == 0

    def test_rsvp_validation(self, auth_client):
        assert auth_client.post("/api/expert-sessions/rsvp", json={"rsvp": True}).status_code == 400
        assert auth_client.post("/api/expert-sessions/rsvp", json={
            "expertSessionId": 99, "rsvp": True,
        }).status_code == 404
