"""Tests for daily XP, streaks, badges and staff XP grants."""

from __future__ import annotations

from datetime import date, timedelta

import pytest


def _set_streak(db, user_id, streak, last_active):
    db.execute("UPDATE users SET streak = ?, last_active = ? WHERE id = ?", (streak, last_active, user_id))
    db.commit()


class TestEarnXP:
    def test_first_claim_starts_streak(self, auth_client, db):
        data = auth_client.post("/api/earn-xp", json={}).get_json()
        assert data["message"] == "XP awarded"
        assert data["xpGained"] == 10
        assert data["user"]["streak"] == 1
        assert data["user"]["xp"] == 10
        assert data["badge"] is None
        tx = db.execute("SELECT * FROM xp_transactions WHERE user_id = 1").fetchall()
        assert [t["source"] for t in tx] == ["DAILY"]

    def test_second_claim_same_day(self, auth_client, db):
        auth_client.post("/api/earn-xp", json={})
        data = auth_client.post("/api/earn-xp", json={}).get_json()
        assert data["message"] == "Daily XP already claimed"
        assert data["xpGained"] == 0
        assert data["user"]["streak"] == 1
        assert db.execute("SELECT xp FROM users WHERE id = 1").fetchone()["xp"] == 10

    def test_consecutive_day_reaches_badge_with_bonus(self, auth_client, db):
        yesterday = (date.today() - timedelta(days=1)).isoformat() + "T18:00:00"
        _set_streak(db, 1, 4, yesterday)
        data = auth_client.post("/api/earn-xp", json={}).get_json()
        assert data["user"]["streak"] == 5
        assert data["xpGained"] == 15
        assert data["badge"]["label"] == "5-Day Streak"

        achievements = auth_client.get("/api/achievements").get_json()
        assert [b["label"] for b in achievements["badges"]] == ["5-Day Streak"]

    def test_gap_resets_streak(self, auth_client, db):
        _set_streak(db, 1, 9, (date.today() - timedelta(days=3)).isoformat())
        data = auth_client.post("/api/earn-xp", json={}).get_json()
        assert data["user"]["streak"] == 1
        assert data["xpGained"] == 10

    def test_student_cannot_claim_for_another(self, auth_client):
        assert auth_client.post("/api/earn-xp", json={"userId": 5}).status_code == 403

    def test_teacher_claims_for_student(self, teacher_client):
        data = teacher_client.post("/api/earn-xp", json={"userId": 5}).get_json()
        assert data["user"]["id"] == 5

    def test_unknown_user(self, teacher_client):
        assert teacher_client.post("/api/earn-xp", json={"userId": 999}).status_code == 404


class TestStaffXP:
    def test_teacher_awards_xp(self, teacher_client, db):
        resp = teacher_client.post("/api/update-xp", json={"studentId": 1, "xpGained": 25})
        assert resp.get_json() == {"success": True, "newXP": 25}
        tx = db.execute("SELECT * FROM xp_transactions WHERE user_id = 1").fetchone()
        assert tx["source"] == "MANUAL"
        audit = db.execute("SELECT * FROM audit_log WHERE action = 'xp_manual_award'").fetchone()
        assert audit["user_id"] == 2

    def test_rejects_out_of_range(self, teacher_client):
        assert teacher_client.post("/api/update-xp", json={"studentId": 1, "xpGained": 0}).status_code == 400
        assert teacher_client.post("/api/update-xp", json={"studentId": 1, "xpGained": -5}).status_code == 400
        assert teacher_client.post("/api/update-xp", json={"studentId": 1, "xpGained": 10 ** 20}).status_code == 400

    def test_student_forbidden(self, auth_client):
        assert auth_client.post("/api/update-xp", json={"studentId": 1, "xpGained": 5}).status_code == 403

    def test_unknown_student(self, teacher_client):
        assert teacher_client.post("/api/update-xp", json={"studentId": 999, "xpGained": 5}).status_code == 404


class TestGetStudentXP:
    def test_self(self, auth_client):
        assert auth_client.post("/api/get-student-xp", json={"studentId": 1}).get_json() == {
            "success": True, "currentXP": 0,
        }

    def test_missing_id(self, auth_client):
        assert auth_client.post("/api/get-student-xp", json={}).status_code == 400

    def test_other_student_forbidden(self, auth_client):
        assert auth_client.post("/api/get-student-xp", json={"studentId": 5}).status_code == 403

    def test_linked_parent(self, parent_client):
        assert parent_client.post("/api/get-student-xp", json={"studentId": 1}).status_code == 200
        assert parent_client.post("/api/get-student-xp", json={"studentId": 5}).status_code == 403

    def test_unknown_student_for_staff(self, teacher_client):
        assert teacher_client.post("/api/get-student-xp", json={"studentId": 999}).status_code == 404


class TestLedger:
    def test_transactions_listed_newest_first(self, auth_client, teacher_client):
        teacher_client.post("/api/update-xp", json={"studentId": 1, "xpGained": 5})
        auth_client.post("/api/earn-xp", json={})
        tx = auth_client.get("/api/xp/transactions").get_json()["transactions"]
        assert [t["source"] for t in tx] == ["DAILY", "MANUAL"]

    def test_award_rejects_bad_input(self, app_ctx):
        from db_stores import XpLedgerDB

        ledger = XpLedgerDB(1)
        with pytest.raises(ValueError):
            ledger.award(0, "DAILY")
        with pytest.raises(ValueError):
            ledger.award(5, "GIFT")
        with pytest.raises(ValueError):
            ledger.award(XpLedgerDB.MAX_AWARD + 1, "MANUAL")
        assert ledger.award(5, "MANUAL") == 5
