"""
Test fixtures for Learnify.

Provides app, client, role-specific logged-in clients and db fixtures backed
by a file-based SQLite database seeded with the demo content. Real LLM calls
are blocked for the whole session.
"""

from __future__ import annotations

from datetime import datetime
from unittest.mock import patch

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from werkzeug.security import generate_password_hash

TEST_PASSWORD = "TestPass123"

# id, name, email, role, age
TEST_USERS = [
    (1, "Test Student", "test@example.com", "student", 10),
    (2, "Test Teacher", "teacher@test.com", "teacher", None),
    (3, "Test Parent", "parent@test.com", "parent", None),
    (4, "Test Admin", "admin@test.com", "admin", None),
    (5, "Other Student", "other@example.com", "student", 13),
]


@pytest.fixture(scope="session")
def password_hash():
    # Low iteration count keeps per-test user setup fast.
    return generate_password_hash(TEST_PASSWORD, method="pbkdf2:sha256:1000")


@pytest.fixture(autouse=True)
def block_llm_calls():
    """Fail any real provider call and start every test with a clean breaker and cache."""
    from ai_resilience import get_cache, get_circuit_breaker

    get_circuit_breaker().reset()
    get_cache().clear()
    with patch("ai_resilience._do_call", side_effect=RuntimeError("LLM calls are disabled in tests")):
        yield


@pytest.fixture
def app(tmp_path, password_hash):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "AI_PROVIDER": "openai",
        "AI_MODEL": "gpt-4o",
    })

    with app.app_context():
        from database import get_db, init_db, run_migrations
        from seed_demo_data import seed

        init_db()
        run_migrations()

        db = get_db()
        seed(db)
        now = datetime.now().isoformat()
        for uid, name, email, role, age in TEST_USERS:
            db.execute(
                "INSERT INTO users (id, name, email, password_hash, role, age, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (uid, name, email, password_hash, role, age, now),
            )
        db.execute("INSERT INTO parent_links (parent_id, student_id, created_at) VALUES (3, 1, ?)", (now,))
        db.commit()

    # No app context stays pushed: each request gets its own g.
    yield app


@pytest.fixture
def app_ctx(app):
    """Pushed app context for calling stores and reports directly."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def _login(app, email):
    client = app.test_client()
    resp = client.post("/login", json={"email": email, "password": TEST_PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def auth_client(app):
    """Authenticated test client (logged in as student 1)."""
    return _login(app, "test@example.com")


@pytest.fixture
def other_student_client(app):
    """Student 5, not linked to the test parent."""
    return _login(app, "other@example.com")


@pytest.fixture
def teacher_client(app):
    return _login(app, "teacher@test.com")


@pytest.fixture
def parent_client(app):
    """Parent 3, linked to student 1."""
    return _login(app, "parent@test.com")


@pytest.fixture
def admin_client(app):
    return _login(app, "admin@test.com")


@pytest.fixture
def db(app):
    """Direct database connection for asserting on stored rows."""
    from database import connect

    conn = connect(app.config["DATABASE"])
    yield conn
    conn.close()
