"""
SQLite storage for Learnify.

One sqlite3 connection per app context, stored on flask.g. SCHEMA creates
the tables; later changes are numbered MIGRATIONS recorded in
schema_version.
"""

from __future__ import annotations

import fcntl
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from flask import current_app, g

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent / "learnify.db"


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Users (all roles)
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    password_hash TEXT,
    role TEXT NOT NULL DEFAULT 'student',
    age INTEGER,
    xp INTEGER NOT NULL DEFAULT 0,
    streak INTEGER NOT NULL DEFAULT 0,
    last_active TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS parent_links (
    parent_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    student_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (parent_id, student_id)
);

-- Curriculum
CREATE TABLE IF NOT EXISTS subjects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    color TEXT NOT NULL DEFAULT '#4f46e5'
);

CREATE TABLE IF NOT EXISTS lessons (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL,
    level TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    created_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS lesson_steps (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    lesson_id INTEGER NOT NULL REFERENCES lessons(id) ON DELETE CASCADE,
    step_order INTEGER NOT NULL DEFAULT 0,
    type TEXT NOT NULL DEFAULT 'concrete',
    content TEXT NOT NULL DEFAULT '',
    image_url TEXT NOT NULL DEFAULT '',
    difficulty_level INTEGER NOT NULL DEFAULT 3,
    question_data TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_lesson_steps_lesson ON lesson_steps(lesson_id, step_order);

CREATE TABLE IF NOT EXISTS lesson_progress (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    lesson_id INTEGER NOT NULL REFERENCES lessons(id) ON DELETE CASCADE,
    completed INTEGER NOT NULL DEFAULT 0,
    attempts_count INTEGER NOT NULL DEFAULT 0,
    highest_difficulty_completed INTEGER NOT NULL DEFAULT 0,
    best_accuracy REAL NOT NULL DEFAULT 0.0,
    response_data TEXT NOT NULL DEFAULT '{}',
    time_spent_minutes INTEGER NOT NULL DEFAULT 0,
    last_attempted_at TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT '',
    UNIQUE(user_id, lesson_id)
);

CREATE TABLE IF NOT EXISTS quizzes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS quiz_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    quiz_id INTEGER NOT NULL REFERENCES quizzes(id) ON DELETE CASCADE,
    score REAL NOT NULL DEFAULT 0.0,
    time_spent_minutes INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_quiz_attempts_user ON quiz_attempts(user_id, created_at);

CREATE TABLE IF NOT EXISTS study_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL,
    type TEXT NOT NULL DEFAULT 'PRACTICE',
    title TEXT NOT NULL DEFAULT '',
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL DEFAULT '',
    completed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_study_sessions_user ON study_sessions(user_id, start_time);

-- Gamification
CREATE TABLE IF NOT EXISTS xp_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    amount INTEGER NOT NULL,
    source TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_xp_user_date ON xp_transactions(user_id, created_at);

CREATE TABLE IF NOT EXISTS user_achievements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    achievement_type TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    subject_id INTEGER REFERENCES subjects(id) ON DELETE CASCADE,
    xp_awarded INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT '',
    UNIQUE(user_id, achievement_type, subject_id)
);

CREATE TABLE IF NOT EXISTS badges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    label TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ''
);

-- Diagnostics and learning paths
CREATE TABLE IF NOT EXISTS diagnostic_questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_id INTEGER NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
    topic TEXT,
    question TEXT NOT NULL,
    options TEXT NOT NULL DEFAULT '[]',
    correct_answer TEXT NOT NULL,
    skill TEXT NOT NULL,
    difficulty INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS diagnostic_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    subject_id INTEGER NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
    topic TEXT,
    responses TEXT NOT NULL DEFAULT '{}',
    evaluations TEXT NOT NULL DEFAULT '[]',
    overall_proficiency REAL NOT NULL DEFAULT 0.0,
    mastered_skills TEXT NOT NULL DEFAULT '[]',
    in_progress_skills TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS learning_paths (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_id INTEGER NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
    topic TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS learning_path_nodes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path_id INTEGER NOT NULL REFERENCES learning_paths(id) ON DELETE CASCADE,
    node_order INTEGER NOT NULL DEFAULT 0,
    title TEXT NOT NULL,
    skill TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS learning_path_progress (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    path_id INTEGER NOT NULL REFERENCES learning_paths(id) ON DELETE CASCADE,
    current_node_id INTEGER,
    completed_node_ids TEXT NOT NULL DEFAULT '[]',
    mastered_skills TEXT NOT NULL DEFAULT '[]',
    in_progress_skills TEXT NOT NULL DEFAULT '[]',
    overall_progress REAL NOT NULL DEFAULT 0.0,
    UNIQUE(user_id, path_id)
);

-- Knowledge graph
CREATE TABLE IF NOT EXISTS concepts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_id INTEGER NOT NULL REFERENCES subjects(id) ON DELETE CASCADE,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS concept_mastery (
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    concept_id INTEGER NOT NULL REFERENCES concepts(id) ON DELETE CASCADE,
    mastery_level REAL NOT NULL DEFAULT 0.0,
    PRIMARY KEY (user_id, concept_id)
);

CREATE TABLE IF NOT EXISTS concept_connections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_concept_id INTEGER NOT NULL REFERENCES concepts(id) ON DELETE CASCADE,
    target_concept_id INTEGER NOT NULL REFERENCES concepts(id) ON DELETE CASCADE,
    strength REAL NOT NULL DEFAULT 0.5,
    connection_type TEXT NOT NULL DEFAULT 'related'
);

CREATE TABLE IF NOT EXISTS learning_style_profiles (
    user_id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    visual REAL NOT NULL DEFAULT 0,
    auditory REAL NOT NULL DEFAULT 0,
    reading REAL NOT NULL DEFAULT 0,
    kinesthetic REAL NOT NULL DEFAULT 0,
    dominant_style TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Social-emotional learning
CREATE TABLE IF NOT EXISTS mood_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    mood TEXT NOT NULL,
    intensity INTEGER NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_mood_user_date ON mood_entries(user_id, created_at);

CREATE TABLE IF NOT EXISTS growth_mindset_affirmations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    text TEXT NOT NULL,
    age_group TEXT NOT NULL DEFAULT '8-11'
);

CREATE TABLE IF NOT EXISTS user_affirmations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    affirmation_id INTEGER NOT NULL REFERENCES growth_mindset_affirmations(id) ON DELETE CASCADE,
    seen INTEGER NOT NULL DEFAULT 1,
    acknowledged INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS mindfulness_prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    prompt TEXT NOT NULL,
    age_group TEXT NOT NULL DEFAULT '8-11',
    duration_seconds INTEGER NOT NULL DEFAULT 60
);

CREATE TABLE IF NOT EXISTS user_mindfulness_prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    prompt_id INTEGER NOT NULL REFERENCES mindfulness_prompts(id) ON DELETE CASCADE,
    response TEXT NOT NULL DEFAULT '',
    completed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ''
);

-- Peer teaching and community
CREATE TABLE IF NOT EXISTS teach_back_responses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    session_id TEXT NOT NULL,
    question_id TEXT NOT NULL,
    answer TEXT NOT NULL,
    correct INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS mentorships (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mentor_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    mentee_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL,
    goals TEXT NOT NULL DEFAULT '',
    start_date TEXT NOT NULL DEFAULT '',
    requested_by INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS expert_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    speaker TEXT NOT NULL DEFAULT '',
    scheduled_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS expert_session_attendees (
    session_id INTEGER NOT NULL REFERENCES expert_sessions(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    attending INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (session_id, user_id)
);

-- XR content
CREATE TABLE IF NOT EXISTS xr_models (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    model_url TEXT NOT NULL,
    thumbnail_url TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL,
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS virtual_field_trips (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    panorama_url TEXT NOT NULL,
    hotspots TEXT NOT NULL DEFAULT '[]',
    model_id INTEGER REFERENCES xr_models(id) ON DELETE SET NULL,
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS ar_worksheets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    worksheet_url TEXT NOT NULL,
    marker_image TEXT NOT NULL DEFAULT '',
    content_url TEXT NOT NULL,
    subject_id INTEGER REFERENCES subjects(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS worksheet_scans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    worksheet_id INTEGER NOT NULL REFERENCES ar_worksheets(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL DEFAULT ''
);

-- AI feedback history
CREATE TABLE IF NOT EXISTS ai_feedback (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    question_id TEXT NOT NULL DEFAULT '',
    feedback TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT ''
);
"""


# Each migration: (version, sql). Applied in order, never edited once shipped.
MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: Audit log
    (1, """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            action TEXT NOT NULL,
            detail TEXT NOT NULL DEFAULT '',
            ip_address TEXT NOT NULL DEFAULT '',
            user_agent TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_log(user_id, created_at);
    """),
    # Migration 2: Account lockout
    (2, """
        ALTER TABLE users ADD COLUMN login_attempts INTEGER NOT NULL DEFAULT 0;
        ALTER TABLE users ADD COLUMN locked_until TEXT NOT NULL DEFAULT '';
    """),
    # Migration 3: Admin-managed global settings
    (3, """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT ''
        );
    """),
]


def _db_path() -> str:
    return current_app.config.get("DATABASE") or str(DEFAULT_DB_PATH)


def connect(path: str) -> sqlite3.Connection:
    """Open a connection with Row results, WAL journaling and enforced foreign keys."""
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def get_db() -> sqlite3.Connection:
    """The connection bound to the current app context, opened on first use."""
    if "db" not in g:
        g.db = connect(_db_path())
    return g.db


def close_db(e=None) -> None:
    conn = g.pop("db", None)
    if conn is not None:
        conn.close()


def init_db() -> None:
    """Create any missing tables from SCHEMA."""
    db = get_db()
    db.executescript(SCHEMA)
    db.commit()


@contextmanager
def _migration_lock(db_path: str):
    """Exclusive lock so concurrent workers do not apply the same migration twice.

    Runs unlocked when the lock file cannot be created (read-only directory).
    """
    try:
        handle = open(Path(db_path).with_suffix(".migration.lock"), "w")
    except OSError:
        yield
        return
    with handle:
        fcntl.flock(handle, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)


def _already_applied(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "duplicate column" in msg or "already exists" in msg


def run_migrations() -> list[int]:
    """Apply pending MIGRATIONS in order; returns the versions applied."""
    applied_now: list[int] = []
    with _migration_lock(_db_path()):
        db = get_db()
        done = {r["version"] for r in db.execute("SELECT version FROM schema_version")}
        for version, sql in MIGRATIONS:
            if version in done:
                continue
            try:
                db.executescript(sql)
            except sqlite3.OperationalError as exc:
                if not _already_applied(exc):
                    raise
                logger.warning("migration %s partly present already: %s", version, exc)
            db.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, datetime.now().isoformat()),
            )
            db.commit()
            applied_now.append(version)
    if applied_now:
        logger.info("applied migrations %s", applied_now)
    return applied_now


def init_app(app) -> None:
    """Close connections at teardown; create and migrate the schema before the first request."""
    app.teardown_appcontext(close_db)
    state = {"ready": False}

    @app.before_request
    def _prepare_schema():
        if not state["ready"]:
            init_db()
            run_migrations()
            state["ready"] = True
