"""Tests for moods, growth-mindset affirmations, mindfulness prompts and learner profiles."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest


class TestMoods:
    def test_log_and_list_today(self, auth_client):
        resp = auth_client.post("/api/sel/moods", json={"mood": "happy", "intensity": 7, "notes": "Good day"})
        assert resp.status_code == 201
        assert resp.get_json()["entry"]["mood"] == "happy"

        entries = auth_client.get(f"/api/sel/moods?date={date.today().isoformat()}").get_json()["entries"]
        assert [e["mood"] for e in entries] == ["happy"]
        assert auth_client.get("/api/sel/moods?date=2000-01-01").get_json()["entries"] == []

    def test_today_mood_on_dashboard(self, auth_client):
        auth_client.post("/api/sel/moods", json={"mood": "calm", "intensity": 4})
        assert auth_client.get("/student").get_json()["todayMood"]["mood"] == "calm"

    def test_intensity_bounds(self, auth_client):
        assert auth_client.post("/api/sel/moods", json={"mood": "sad", "intensity": 0}).status_code == 400
        assert auth_client.post("/api/sel/moods", json={"mood": "sad", "intensity": 11}).status_code == 400
        assert auth_client.post("/api/sel/moods", json={"mood": "sad", "intensity": 10}).status_code == 201

    def test_requires_fields(self, auth_client):
        assert auth_client.post("/api/sel/moods", json={"intensity": 5}).status_code == 400

    def test_bad_date(self, auth_client):
        assert auth_client.get("/api/sel/moods?date=yesterday").status_code == 400

    def test_moods_are_private(self, auth_client, other_student_client):
        auth_client.post("/api/sel/moods", json={"mood": "excited", "intensity": 8})
        assert other_student_client.get("/api/sel/moods").get_json()["entries"] == []


class TestGrowthMindset:
    def test_daily_is_stable_within_a_day(self, auth_client, db):
        first = auth_client.get("/api/sel/growth-mindset/daily").get_json()["affirmation"]
        second = auth_client.get("/api/sel/growth-mindset/daily").get_json()["affirmation"]
        assert first["id"] == second["id"]
        # Student 1 is 10 years old
        assert first["age_group"] == "8-11"
        count = db.execute("SELECT COUNT(*) FROM user_affirmations WHERE user_id = 1").fetchone()[0]
        assert count == 1

    def test_age_group_for_older_student(self, other_student_client):
        affirmation = other_student_client.get("/api/sel/growth-mindset/daily").get_json()["affirmation"]
        assert affirmation["age_group"] == "12-14"

    def test_skips_recently_seen(self, auth_client, db):
        yesterday = (datetime.now() - timedelta(days=1)).isoformat()
        for affirmation_id in (3, 4):
            db.execute(
                "INSERT INTO user_affirmations (user_id, affirmation_id, created_at) VALUES (1, ?, ?)",
                (affirmation_id, yesterday),
            )
        db.commit()
        affirmation = auth_client.get("/api/sel/growth-mindset/daily").get_json()["affirmation"]
        assert affirmation["id"] == 5

    def test_all_recent_falls_back_to_group(self, auth_client, db):
        yesterday = (datetime.now() - timedelta(days=1)).isoformat()
        for affirmation_id in (3, 4, 5):
            db.execute(
                "INSERT INTO user_affirmations (user_id, affirmation_id, created_at) VALUES (1, ?, ?)",
                (affirmation_id, yesterday),
            )
        db.commit()
        affirmation = auth_client.get("/api/sel/growth-mindset/daily").get_json()["affirmation"]
        assert affirmation["age_group"] == "8-11"

    def test_none_available(self, auth_client, db):
        db.execute("DELETE FROM growth_mindset_affirmations")
        db.commit()
        assert auth_client.get("/api/sel/growth-mindset/daily").status_code == 404

    def test_acknowledge(self, auth_client):
        affirmation = auth_client.get("/api/sel/growth-mindset/daily").get_json()["affirmation"]
        resp = auth_client.post("/api/sel/growth-mindset/acknowledge", json={"affirmationId": affirmation["id"]})
        assert resp.get_json()["userAffirmation"]["acknowledged"] == 1

    def test_acknowledge_without_record(self, auth_client):
        assert auth_client.post("/api/sel/growth-mindset/acknowledge", json={"affirmationId": 1}).status_code == 404
        assert auth_client.post("/api/sel/growth-mindset/acknowledge", json={}).status_code == 400


class TestMindfulness:
    def test_daily_prompt_for_age_group(self, auth_client):
        prompt = auth_client.get("/api/sel/mindfulness-prompts/daily").get_json()["prompt"]
        assert prompt["age_group"] == "8-11"

    def test_completed_prompt_is_reused(self, auth_client):
        prompt = auth_client.get("/api/sel/mindfulness-prompts/daily").get_json()["prompt"]
        resp = auth_client.post("/api/sel/mindfulness-prompts/complete", json={
            "promptId": prompt["id"], "response": "I heard birds",
        })
        record = resp.get_json()["userPrompt"]
        assert record["completed"] == 1
        assert record["response"] == "I heard birds"
        again = auth_client.get("/api/sel/mindfulness-prompts/daily").get_json()["prompt"]
        assert again["id"] == prompt["id"]

    def test_complete_updates_todays_record(self, auth_client, db):
        prompt = auth_client.get("/api/sel/mindfulness-prompts/daily").get_json()["prompt"]
        auth_client.post("/api/sel/mindfulness-prompts/complete", json={"promptId": prompt["id"], "response": "a"})
        auth_client.post("/api/sel/mindfulness-prompts/complete", json={"promptId": prompt["id"], "response": "b"})
        rows = db.execute(
            "SELECT * FROM user_mindfulness_prompts WHERE user_id = 1 AND prompt_id = ?", (prompt["id"],),
        ).fetchall()
        assert len(rows) == 1
        assert rows[0]["response"] == "b"

    def test_complete_validation(self, auth_client):
        assert auth_client.post("/api/sel/mindfulness-prompts/complete", json={"promptId": 1}).status_code == 400
        assert auth_client.post("/api/sel/mindfulness-prompts/complete", json={
            "promptId": 999, "response": "x",
        }).status_code == 404


class TestLearningStyles:
    PROFILE = {"visual": 40, "auditory": 20, "reading": 15, "kinesthetic": 25, "dominantStyle": "visual"}

    def test_missing_profile(self, auth_client):
        assert auth_client.get("/api/learning-styles/save-profile").status_code == 404

    def test_create_then_update(self, auth_client):
        resp = auth_client.post("/api/learning-styles/save-profile", json=self.PROFILE)
        assert "created" in resp.get_json()["message"]
        resp = auth_client.post("/api/learning-styles/save-profile", json={
            **self.PROFILE, "kinesthetic": 50, "dominantStyle": "kinesthetic",
        })
        assert "updated" in resp.get_json()["message"]
        profile = auth_client.get("/api/learning-styles/save-profile").get_json()["profile"]
        assert profile["dominant_style"] == "kinesthetic"
        assert profile["kinesthetic"] == 50

    def test_invalid_profile(self, auth_client):
        assert auth_client.post("/api/learning-styles/save-profile", json={
            **self.PROFILE, "dominantStyle": "telepathic",
        }).status_code == 400
        assert auth_client.post("/api/learning-styles/save-profile", json={
            **self.PROFILE, "visual": "lots",
        }).status_code == 400


class TestKnowledgeGraph:
    @pytest.fixture
    def mastery(self, db):
        db.executemany(
            "INSERT INTO concept_mastery (user_id, concept_id, mastery_level) VALUES (1, ?, ?)",
            [(1, 0.8), (2, 0.4), (4, 0.1), (5, 0.5)],
        )
        db.commit()

    def test_concepts_and_connections(self, auth_client, mastery):
        data = auth_client.get("/api/knowledge-graph").get_json()
        assert [c["id"] for c in data["concepts"]] == [1, 2, 4, 5]
        assert data["concepts"][0] == {
            "id": 1, "name": "Fractions", "mastery": 0.8, "subjectId": 1, "subjectName": "Mathematics",
        }
        # Decimals (3) is not mastered by this user, so 1->3 and 3->4 are left out
        assert [(c["source"], c["target"]) for c in data["connections"]] == [(1, 2)]

    def test_subject_filter(self, auth_client, mastery):
        data = auth_client.get("/api/knowledge-graph?subjectId=2").get_json()
        assert [c["name"] for c in data["concepts"]] == ["Photosynthesis"]
        assert data["connections"] == []

    def test_empty_for_new_user(self, other_student_client):
        assert other_student_client.get("/api/knowledge-graph").get_json() == {"concepts": [], "connections": []}

    def test_set_mastery_clamps(self, app_ctx, db):
        from db_stores import KnowledgeGraphDB

        KnowledgeGraphDB(1).set_mastery(3, 1.7)
        row = db.execute("SELECT mastery_level FROM concept_mastery WHERE user_id = 1 AND concept_id = 3").fetchone()
        assert row["mastery_level"] == 1.0
