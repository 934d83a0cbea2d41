"""Tests for parent linking and admin feature toggles."""

from __future__ import annotations

from datetime import date

from config import FEATURE_FLAGS


class TestParentLink:
    def test_link_second_child(self, parent_client, db):
        resp = parent_client.post("/api/parent/link", json={"studentEmail": "Other@Example.com"})
        assert resp.status_code == 201
        assert resp.get_json()["student"] == {"id": 5, "name": "Other Student"}
        audit = db.execute("SELECT * FROM audit_log WHERE action = 'parent_link'").fetchone()
        assert audit["user_id"] == 3
        assert audit["detail"] == "student_id=5"

    def test_duplicate_link(self, parent_client):
        resp = parent_client.post("/api/parent/link", json={"studentEmail": "test@example.com"})
        assert resp.status_code == 409

    def test_non_student_email(self, parent_client):
        assert parent_client.post("/api/parent/link", json={"studentEmail": "teacher@test.com"}).status_code == 404
        assert parent_client.post("/api/parent/link", json={"studentEmail": "nobody@test.com"}).status_code == 404

    def test_missing_email(self, parent_client):
        assert parent_client.post("/api/parent/link", json={}).status_code == 400

    def test_student_cannot_link(self, auth_client):
        assert auth_client.post("/api/parent/link", json={"studentEmail": "other@example.com"}).status_code == 403


class TestParentChildren:
    def test_lists_linked_children(self, parent_client):
        children = parent_client.get("/api/parent/children").get_json()["children"]
        assert children == [{
            "id": 1, "name": "Test Student", "xp": 0, "level": 1, "streak": 0,
            "lastActive": None, "averageAccuracy": 0,
        }]

    def test_last_active_after_daily_claim(self, parent_client, auth_client):
        auth_client.post("/api/earn-xp", json={})
        child = parent_client.get("/api/parent/children").get_json()["children"][0]
        assert child["lastActive"][:10] == date.today().isoformat()

    def test_accuracy_reflects_lessons(self, parent_client, auth_client):
        auth_client.post("/api/progress/lesson-complete", json={
            "lessonId": 1,
            "responses": {"1": {"answer": "4", "isCorrect": True}, "2": {"answer": "x", "isCorrect": False}},
        })
        child = parent_client.get("/api/parent/children").get_json()["children"][0]
        assert child["averageAccuracy"] == 50
        assert child["xp"] > 0


class TestAdminSettings:
    def test_defaults(self, admin_client):
        assert admin_client.get("/api/admin/settings").get_json()["settings"] == FEATURE_FLAGS

    def test_save_persists_and_audits(self, admin_client, db):
        resp = admin_client.post("/api/admin/settings", json={"lifeSkills": False})
        settings = resp.get_json()["settings"]
        assert settings["lifeSkills"] is False
        assert settings["xpSystem"] is True
        assert admin_client.get("/api/admin/settings").get_json()["settings"]["lifeSkills"] is False
        audit = db.execute("SELECT * FROM audit_log WHERE action = 'settings_updated'").fetchone()
        assert audit["detail"] == "lifeSkills=False"

    def test_unknown_key(self, admin_client):
        resp = admin_client.post("/api/admin/settings", json={"darkMode": True})
        assert resp.status_code == 400
        assert "darkMode" in resp.get_json()["error"]

    def test_non_boolean_value(self, admin_client):
        assert admin_client.post("/api/admin/settings", json={"xpSystem": "yes"}).status_code == 400

    def test_admin_only(self, teacher_client, auth_client):
        assert teacher_client.get("/api/admin/settings").status_code == 403
        assert auth_client.post("/api/admin/settings", json={"xpSystem": False}).status_code == 403

    def test_launcher_toggle(self, admin_client, auth_client):
        assert auth_client.post("/api/ai-lesson-launcher", json={}).status_code == 200
        admin_client.post("/api/admin/settings", json={"aiLessonLauncher": False})
        assert auth_client.post("/api/ai-lesson-launcher", json={}).status_code == 403
