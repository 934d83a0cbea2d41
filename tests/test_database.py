"""Tests for schema creation, migrations, seeding and the audit trail."""

from __future__ import annotations

import sqlite3

import pytest

from database import MIGRATIONS, get_db, init_db, run_migrations


class TestSchema:
    def test_core_tables_exist(self, db):
        tables = {r["name"] for r in db.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        for name in ("users", "lessons", "lesson_steps", "lesson_progress", "xp_transactions",
                     "diagnostic_questions", "learning_paths", "mood_entries", "mentorships",
                     "ar_worksheets", "audit_log", "app_settings"):
            assert name in tables

    def test_connection_pragmas(self, app_ctx):
        db = get_db()
        assert db.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert db.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_connection_reused_within_context(self, app_ctx):
        assert get_db() is get_db()

    def test_lockout_columns_added(self, db):
        columns = {r["name"] for r in db.execute("PRAGMA table_info(users)")}
        assert {"login_attempts", "locked_until"} <= columns


class TestMigrations:
    def test_all_versions_recorded(self, db):
        versions = [r["version"] for r in db.execute("SELECT version FROM schema_version ORDER BY version")]
        assert versions == [v for v, _ in MIGRATIONS]

    def test_rerun_is_noop(self, app_ctx, db):
        init_db()
        run_migrations()
        count = db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        assert count == len(MIGRATIONS)


class TestForeignKeys:
    def test_deleting_user_cascades(self, db):
        db.execute("INSERT INTO mood_entries (user_id, mood, intensity, created_at) VALUES (5, 'ok', 5, '2026-01-01')")
        db.commit()
        db.execute("DELETE FROM users WHERE id = 5")
        db.commit()
        assert db.execute("SELECT COUNT(*) FROM mood_entries WHERE user_id = 5").fetchone()[0] == 0

    def test_unknown_user_rejected(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute("INSERT INTO mood_entries (user_id, mood, intensity, created_at) VALUES (999, 'ok', 5, 'x')")


class TestSeed:
    def test_seed_is_idempotent(self, app_ctx, db):
        from seed_demo_data import seed

        before = db.execute("SELECT COUNT(*) FROM diagnostic_questions").fetchone()[0]
        summary = seed(get_db())
        after = db.execute("SELECT COUNT(*) FROM diagnostic_questions").fetchone()[0]
        assert before == after
        assert summary["users"] == 4

    def test_demo_login(self, client):
        resp = client.post("/login", json={"email": "student@demo.learnify", "password": "Demo1234"})
        assert resp.status_code == 200

    def test_clear_demo_removes_accounts(self, app_ctx, db):
        from seed_demo_data import DEMO_USERS, clear_demo

        clear_demo(get_db())
        ids = [u["id"] for u in DEMO_USERS]
        remaining = db.execute(
            f"SELECT COUNT(*) FROM users WHERE id IN ({','.join('?' * len(ids))})", ids,
        ).fetchone()[0]
        assert remaining == 0


class TestAudit:
    def test_log_event_outside_request(self, app_ctx, db):
        from audit import log_event

        log_event("seed_run", None, "rows=12")
        row = db.execute("SELECT * FROM audit_log WHERE action = 'seed_run'").fetchone()
        assert row["detail"] == "rows=12"
        assert row["ip_address"] == ""

    def test_recent_events_for_user(self, app_ctx):
        from audit import log_event, recent_events

        log_event("a", 1)
        log_event("b", 2)
        log_event("c", 1)
        assert [e["action"] for e in recent_events(user_id=1)] == ["c", "a"]
        assert [e["action"] for e in recent_events(limit=1)] == ["c"]

    def test_admin_audit_log_endpoint(self, admin_client, client):
        client.post("/login", json={"email": "test@example.com", "password": "wrong"})
        events = admin_client.get("/api/admin/audit-log?userId=1").get_json()["events"]
        assert events[0]["action"] == "login_failed"

    def test_audit_log_admin_only(self, teacher_client):
        assert teacher_client.get("/api/admin/audit-log").status_code == 403
