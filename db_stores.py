"""
DB-backed store classes for Learnify.

Each class wraps parameterised SQL for one entity family and returns plain
dicts (``dict(row)``) so route handlers can jsonify results directly.
"""

from __future__ import annotations

import json
import random
from datetime import datetime, date, timedelta

from database import get_db


def _now() -> str:
    return datetime.now().isoformat()


def _day_bounds(day: date | None = None) -> tuple[str, str]:
    """ISO start (inclusive) and end (exclusive) of a calendar day."""
    day = day or date.today()
    start = datetime.combine(day, datetime.min.time())
    return start.isoformat(), (start + timedelta(days=1)).isoformat()


def _loads(value, default):
    if not value:
        return default
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


# ── Users and roles ─────────────────────────────────────────

class UserStoreDB:
    """Read-side helpers over the users table."""

    @staticmethod
    def get(user_id: int) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT id, name, email, role, age, xp, streak, last_active, created_at "
            "FROM users WHERE id = ?", (user_id,),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def get_by_email(email: str) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT id, name, email, role, age, xp, streak FROM users WHERE email = ?",
            (email.strip().lower(),),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def update_streak(user_id: int, streak: int, last_active: str) -> None:
        db = get_db()
        db.execute(
            "UPDATE users SET streak = ?, last_active = ? WHERE id = ?",
            (streak, last_active, user_id),
        )
        db.commit()

    @staticmethod
    def count_by_role() -> dict[str, int]:
        db = get_db()
        rows = db.execute("SELECT role, COUNT(*) AS n FROM users GROUP BY role").fetchall()
        counts = {"student": 0, "teacher": 0, "parent": 0, "admin": 0}
        for r in rows:
            counts[r["role"]] = r["n"]
        return counts


class ParentLinkDB:
    """Parent to student links."""

    @staticmethod
    def link(parent_id: int, student_id: int) -> bool:
        db = get_db()
        try:
            db.execute(
                "INSERT INTO parent_links (parent_id, student_id, created_at) VALUES (?, ?, ?)",
                (parent_id, student_id, _now()),
            )
            db.commit()
            return True
        except db.IntegrityError:
            return False

    @staticmethod
    def is_linked(parent_id: int, student_id: int) -> bool:
        db = get_db()
        row = db.execute(
            "SELECT 1 FROM parent_links WHERE parent_id = ? AND student_id = ?",
            (parent_id, student_id),
        ).fetchone()
        return row is not None

    @staticmethod
    def children(parent_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT u.id, u.name, u.email, u.xp, u.streak, u.last_active, "
            "COALESCE(AVG(lp.best_accuracy), 0) AS average_accuracy "
            "FROM parent_links pl JOIN users u ON u.id = pl.student_id "
            "LEFT JOIN lesson_progress lp ON lp.user_id = u.id "
            "WHERE pl.parent_id = ? GROUP BY u.id ORDER BY u.name",
            (parent_id,),
        ).fetchall()
        return [dict(r) for r in rows]


# ── Curriculum ──────────────────────────────────────────────

class SubjectStoreDB:

    @staticmethod
    def all() -> list[dict]:
        db = get_db()
        return [dict(r) for r in db.execute("SELECT * FROM subjects ORDER BY name").fetchall()]

    @staticmethod
    def get(subject_id: int) -> dict | None:
        db = get_db()
        row = db.execute("SELECT * FROM subjects WHERE id = ?", (subject_id,)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def get_or_create(name: str) -> dict:
        db = get_db()
        name = name.strip()
        row = db.execute("SELECT * FROM subjects WHERE name = ?", (name,)).fetchone()
        if row:
            return dict(row)
        cur = db.execute("INSERT INTO subjects (name) VALUES (?)", (name,))
        db.commit()
        return {"id": cur.lastrowid, "name": name, "color": "#4f46e5"}


class LessonStoreDB:
    """Lessons and their CPA steps."""

    @staticmethod
    def list(subject_id: int | None = None) -> list[dict]:
        db = get_db()
        sql = (
            "SELECT l.*, s.name AS subject_name FROM lessons l "
            "LEFT JOIN subjects s ON s.id = l.subject_id"
        )
        params: tuple = ()
        if subject_id is not None:
            sql += " WHERE l.subject_id = ?"
            params = (subject_id,)
        sql += " ORDER BY l.created_at DESC, l.id DESC"
        return [dict(r) for r in db.execute(sql, params).fetchall()]

    @staticmethod
    def get(lesson_id: int) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT l.*, s.name AS subject_name FROM lessons l "
            "LEFT JOIN subjects s ON s.id = l.subject_id WHERE l.id = ?",
            (lesson_id,),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def steps(lesson_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM lesson_steps WHERE lesson_id = ? ORDER BY step_order, id",
            (lesson_id,),
        ).fetchall()
        steps = []
        for r in rows:
            step = dict(r)
            step["question_data"] = _loads(step["question_data"], None)
            steps.append(step)
        return steps

    @staticmethod
    def create(title: str, description: str, subject_id: int, level: str, content: str,
               created_by: int | None = None, steps: list[dict] | None = None) -> dict:
        db = get_db()
        cur = db.execute(
            "INSERT INTO lessons (title, description, subject_id, level, content, created_by, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (title, description, subject_id, level, content, created_by, _now()),
        )
        lesson_id = cur.lastrowid
        for i, step in enumerate(steps or []):
            question = step.get("questionData") or step.get("question")
            db.execute(
                "INSERT INTO lesson_steps (lesson_id, step_order, type, content, image_url, "
                "difficulty_level, question_data) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    lesson_id,
                    step.get("order", i),
                    step.get("type", "concrete"),
                    step.get("content", ""),
                    step.get("imageUrl", ""),
                    step.get("difficultyLevel", 3),
                    json.dumps(question) if question else "",
                ),
            )
        db.commit()
        return LessonStoreDB.get(lesson_id)

    @staticmethod
    def count_by_author(user_id: int) -> int:
        db = get_db()
        return db.execute("SELECT COUNT(*) FROM lessons WHERE created_by = ?", (user_id,)).fetchone()[0]

    @staticmethod
    def count() -> int:
        return get_db().execute("SELECT COUNT(*) FROM lessons").fetchone()[0]


class LessonProgressDB:
    """Per-user lesson progress. Accuracy and difficulty only ever ratchet up."""

    def __init__(self, user_id: int):
        self.user_id = user_id

    def get(self, lesson_id: int) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT * FROM lesson_progress WHERE user_id = ? AND lesson_id = ?",
            (self.user_id, lesson_id),
        ).fetchone()
        if not row:
            return None
        progress = dict(row)
        progress["response_data"] = _loads(progress["response_data"], {})
        progress["completed"] = bool(progress["completed"])
        return progress

    def record_completion(self, lesson_id: int, accuracy: float, difficulty: int,
                          responses: dict | None = None, time_spent_minutes: int = 0) -> dict:
        db = get_db()
        now = _now()
        db.execute(
            "INSERT INTO lesson_progress (user_id, lesson_id, completed, attempts_count, "
            "highest_difficulty_completed, best_accuracy, response_data, time_spent_minutes, "
            "last_attempted_at, created_at) VALUES (?, ?, 1, 1, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id, lesson_id) DO UPDATE SET "
            "completed = 1, "
            "attempts_count = attempts_count + 1, "
            "highest_difficulty_completed = MAX(highest_difficulty_completed, excluded.highest_difficulty_completed), "
            "best_accuracy = MAX(best_accuracy, excluded.best_accuracy), "
            "response_data = excluded.response_data, "
            "time_spent_minutes = time_spent_minutes + excluded.time_spent_minutes, "
            "last_attempted_at = excluded.last_attempted_at",
            (self.user_id, lesson_id, difficulty, accuracy, json.dumps(responses or {}),
             time_spent_minutes, now, now),
        )
        db.commit()
        return self.get(lesson_id)

    def completed_count_for_subject(self, subject_id: int) -> int:
        db = get_db()
        return db.execute(
            "SELECT COUNT(*) FROM lesson_progress lp JOIN lessons l ON l.id = lp.lesson_id "
            "WHERE lp.user_id = ? AND lp.completed = 1 AND l.subject_id = ?",
            (self.user_id, subject_id),
        ).fetchone()[0]

    def in_progress(self, limit: int = 5) -> list[dict]:
        """Lessons attempted but not completed, plus completed ones below 80% accuracy."""
        db = get_db()
        rows = db.execute(
            "SELECT lp.lesson_id, l.title, lp.best_accuracy, lp.attempts_count, lp.last_attempted_at "
            "FROM lesson_progress lp JOIN lessons l ON l.id = lp.lesson_id "
            "WHERE lp.user_id = ? AND (lp.completed = 0 OR lp.best_accuracy < 0.8) "
            "ORDER BY lp.last_attempted_at DESC LIMIT ?",
            (self.user_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def class_average_accuracy() -> float:
        db = get_db()
        row = db.execute(
            "SELECT AVG(lp.best_accuracy) FROM lesson_progress lp "
            "JOIN users u ON u.id = lp.user_id WHERE u.role = 'student'"
        ).fetchone()
        return row[0] or 0.0

    @staticmethod
    def recent_completions(limit: int = 10) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT lp.user_id, u.name AS student_name, lp.lesson_id, l.title AS lesson_title, "
            "lp.best_accuracy, lp.last_attempted_at "
            "FROM lesson_progress lp JOIN users u ON u.id = lp.user_id "
            "JOIN lessons l ON l.id = lp.lesson_id "
            "WHERE lp.completed = 1 ORDER BY lp.last_attempted_at DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [dict(r) for r in rows]


class QuizStoreDB:
    """Quizzes and scored attempts (feed performance analytics)."""

    @staticmethod
    def get(quiz_id: int) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT q.*, COALESCE(s.name, 'Unknown') AS subject_name FROM quizzes q "
            "LEFT JOIN subjects s ON s.id = q.subject_id WHERE q.id = ?",
            (quiz_id,),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def list(subject_id: int | None = None) -> list[dict]:
        db = get_db()
        sql = (
            "SELECT q.*, COALESCE(s.name, 'Unknown') AS subject_name FROM quizzes q "
            "LEFT JOIN subjects s ON s.id = q.subject_id"
        )
        params: tuple = ()
        if subject_id is not None:
            sql += " WHERE q.subject_id = ?"
            params = (subject_id,)
        return [dict(r) for r in db.execute(sql + " ORDER BY q.id", params).fetchall()]

    @staticmethod
    def create(title: str, subject_id: int | None) -> dict:
        db = get_db()
        cur = db.execute("INSERT INTO quizzes (title, subject_id) VALUES (?, ?)", (title, subject_id))
        db.commit()
        return QuizStoreDB.get(cur.lastrowid)

    @staticmethod
    def record_attempt(user_id: int, quiz_id: int, score: float, time_spent_minutes: int = 0,
                       created_at: str | None = None) -> dict:
        db = get_db()
        cur = db.execute(
            "INSERT INTO quiz_attempts (user_id, quiz_id, score, time_spent_minutes, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (user_id, quiz_id, max(0.0, min(100.0, score)), max(0, time_spent_minutes), created_at or _now()),
        )
        db.commit()
        return dict(db.execute("SELECT * FROM quiz_attempts WHERE id = ?", (cur.lastrowid,)).fetchone())

    @staticmethod
    def attempts(user_id: int, quiz_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM quiz_attempts WHERE user_id = ? AND quiz_id = ? ORDER BY created_at DESC, id DESC",
            (user_id, quiz_id),
        ).fetchall()
        return [dict(r) for r in rows]


class StudySessionStoreDB:

    SESSION_TYPES = ("PRACTICE", "REVIEW", "LESSON", "OTHER")

    def __init__(self, user_id: int):
        self.user_id = user_id

    def create(self, start_time: str, end_time: str = "", subject_id: int | None = None,
               session_type: str = "PRACTICE", title: str = "", completed: bool = False) -> dict:
        session_type = session_type.upper() if session_type else "OTHER"
        if session_type not in self.SESSION_TYPES:
            session_type = "OTHER"
        db = get_db()
        cur = db.execute(
            "INSERT INTO study_sessions (user_id, subject_id, type, title, start_time, end_time, "
            "completed, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (self.user_id, subject_id, session_type, title, start_time, end_time or "",
             int(bool(completed)), _now()),
        )
        db.commit()
        row = db.execute("SELECT * FROM study_sessions WHERE id = ?", (cur.lastrowid,)).fetchone()
        return dict(row)

    def between(self, start: str, end: str, subject_id: int | None = None) -> list[dict]:
        db = get_db()
        sql = (
            "SELECT ss.*, COALESCE(s.name, 'Unknown') AS subject_name FROM study_sessions ss "
            "LEFT JOIN subjects s ON s.id = ss.subject_id "
            "WHERE ss.user_id = ? AND ss.start_time >= ? AND ss.start_time <= ?"
        )
        params: list = [self.user_id, start, end]
        if subject_id is not None:
            sql += " AND ss.subject_id = ?"
            params.append(subject_id)
        sql += " ORDER BY ss.start_time"
        return [dict(r) for r in db.execute(sql, params).fetchall()]


# ── Gamification ────────────────────────────────────────────

class XpLedgerDB:
    """XP balance changes. Every award is a transaction row plus a users.xp bump."""

    SOURCES = ("LESSON_COMPLETION", "ACHIEVEMENT", "DAILY", "MANUAL")
    # Largest single credit
    MAX_AWARD = 1000

    def __init__(self, user_id: int):
        self.user_id = user_id

    def award(self, amount: int, source: str, description: str = "",
              subject_id: int | None = None) -> int:
        """Credit XP and return the new balance."""
        if amount <= 0:
            raise ValueError("XP awards must be positive")
        if amount > self.MAX_AWARD:
            raise ValueError(f"XP awards are capped at {self.MAX_AWARD}")
        if source not in self.SOURCES:
            raise ValueError(f"Unknown XP source: {source}")
        db = get_db()
        db.execute(
            "INSERT INTO xp_transactions (user_id, amount, source, description, subject_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (self.user_id, amount, source, description, subject_id, _now()),
        )
        db.execute("UPDATE users SET xp = xp + ? WHERE id = ?", (amount, self.user_id))
        db.commit()
        return self.balance()

    def balance(self) -> int:
        db = get_db()
        row = db.execute("SELECT xp FROM users WHERE id = ?", (self.user_id,)).fetchone()
        return row["xp"] if row else 0

    def transactions(self, limit: int = 50) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM xp_transactions WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (self.user_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]

    def claimed_daily_on(self, day: date) -> bool:
        start, end = _day_bounds(day)
        db = get_db()
        row = db.execute(
            "SELECT 1 FROM xp_transactions WHERE user_id = ? AND source = 'DAILY' "
            "AND created_at >= ? AND created_at < ? LIMIT 1",
            (self.user_id, start, end),
        ).fetchone()
        return row is not None

    @staticmethod
    def total_issued() -> int:
        db = get_db()
        return db.execute("SELECT COALESCE(SUM(amount), 0) FROM xp_transactions").fetchone()[0]


class AchievementStoreDB:

    def __init__(self, user_id: int):
        self.user_id = user_id

    def has(self, achievement_type: str, subject_id: int | None) -> bool:
        db = get_db()
        row = db.execute(
            "SELECT 1 FROM user_achievements WHERE user_id = ? AND achievement_type = ? "
            "AND subject_id IS ?",
            (self.user_id, achievement_type, subject_id),
        ).fetchone()
        return row is not None

    def unlock(self, achievement_type: str, name: str, description: str,
               subject_id: int | None, xp_awarded: int) -> dict | None:
        """Insert an achievement. Returns None when it was already unlocked."""
        if self.has(achievement_type, subject_id):
            return None
        db = get_db()
        cur = db.execute(
            "INSERT OR IGNORE INTO user_achievements (user_id, achievement_type, name, description, "
            "subject_id, xp_awarded, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (self.user_id, achievement_type, name, description, subject_id, xp_awarded, _now()),
        )
        db.commit()
        if not cur.rowcount:
            return None
        row = db.execute("SELECT * FROM user_achievements WHERE id = ?", (cur.lastrowid,)).fetchone()
        return dict(row)

    def recent(self, limit: int = 20) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM user_achievements WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (self.user_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]


class BadgeStoreDB:

    def __init__(self, user_id: int):
        self.user_id = user_id

    def add(self, label: str) -> dict:
        db = get_db()
        now = _now()
        cur = db.execute(
            "INSERT INTO badges (user_id, label, created_at) VALUES (?, ?, ?)",
            (self.user_id, label, now),
        )
        db.commit()
        return {"id": cur.lastrowid, "user_id": self.user_id, "label": label, "created_at": now}

    def all(self) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM badges WHERE user_id = ? ORDER BY created_at DESC", (self.user_id,),
        ).fetchall()
        return [dict(r) for r in rows]


# ── Diagnostics and learning paths ──────────────────────────

class DiagnosticStoreDB:

    @staticmethod
    def _question(row) -> dict:
        q = dict(row)
        q["options"] = _loads(q["options"], [])
        return q

    @staticmethod
    def questions(subject_id: int, topic: str | None = None, limit: int = 10) -> list[dict]:
        """Questions easiest first. A topic with no questions falls back to general ones."""
        db = get_db()
        rows = []
        if topic:
            rows = db.execute(
                "SELECT * FROM diagnostic_questions WHERE subject_id = ? AND topic LIKE ? "
                "ORDER BY difficulty, id LIMIT ?",
                (subject_id, f"%{topic}%", limit),
            ).fetchall()
        if not rows:
            sql = "SELECT * FROM diagnostic_questions WHERE subject_id = ?"
            if topic:
                sql += " AND topic IS NULL"
            rows = db.execute(sql + " ORDER BY difficulty, id LIMIT ?", (subject_id, limit)).fetchall()
        return [DiagnosticStoreDB._question(r) for r in rows]

    @staticmethod
    def questions_by_ids(ids: list) -> list[dict]:
        clean = [int(i) for i in ids if str(i).isdigit()]
        if not clean:
            return []
        db = get_db()
        placeholders = ",".join("?" for _ in clean)
        rows = db.execute(
            f"SELECT * FROM diagnostic_questions WHERE id IN ({placeholders})", clean,
        ).fetchall()
        return [DiagnosticStoreDB._question(r) for r in rows]

    @staticmethod
    def save_result(user_id: int, subject_id: int, topic: str | None, responses: dict,
                    score) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO diagnostic_results (user_id, subject_id, topic, responses, evaluations, "
            "overall_proficiency, mastered_skills, in_progress_skills, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                user_id, subject_id, topic or None, json.dumps(responses),
                json.dumps(score.evaluations), score.overall_proficiency,
                json.dumps(score.mastered_skills), json.dumps(score.in_progress_skills), _now(),
            ),
        )
        db.commit()
        return cur.lastrowid

    @staticmethod
    def latest_result(user_id: int) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT dr.*, s.name AS subject_name FROM diagnostic_results dr "
            "LEFT JOIN subjects s ON s.id = dr.subject_id "
            "WHERE dr.user_id = ? ORDER BY dr.created_at DESC, dr.id DESC LIMIT 1",
            (user_id,),
        ).fetchone()
        if not row:
            return None
        result = dict(row)
        for key in ("evaluations", "mastered_skills", "in_progress_skills"):
            result[key] = _loads(result[key], [])
        return result


class LearningPathStoreDB:

    @staticmethod
    def find(subject_id: int, topic: str | None = None) -> dict | None:
        db = get_db()
        sql = "SELECT * FROM learning_paths WHERE subject_id = ?"
        params: list = [subject_id]
        if topic:
            sql += " AND topic LIKE ?"
            params.append(f"%{topic}%")
        row = db.execute(sql + " ORDER BY id LIMIT 1", params).fetchone()
        if not row:
            return None
        path = dict(row)
        path["nodes"] = [
            dict(r) for r in db.execute(
                "SELECT * FROM learning_path_nodes WHERE path_id = ? ORDER BY node_order, id",
                (path["id"],),
            ).fetchall()
        ]
        return path

    @staticmethod
    def _progress(row) -> dict:
        p = dict(row)
        for key in ("completed_node_ids", "mastered_skills", "in_progress_skills"):
            p[key] = _loads(p[key], [])
        return p

    @staticmethod
    def get_progress(user_id: int, path_id: int) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT * FROM learning_path_progress WHERE user_id = ? AND path_id = ?",
            (user_id, path_id),
        ).fetchone()
        return LearningPathStoreDB._progress(row) if row else None

    @staticmethod
    def apply_diagnostic(user_id: int, path: dict, mastered: list[str], in_progress: list[str]) -> dict:
        """Create progress at the first node, or refresh skills on existing progress."""
        db = get_db()
        existing = LearningPathStoreDB.get_progress(user_id, path["id"])
        if existing is None:
            first_node = path["nodes"][0]["id"] if path.get("nodes") else None
            db.execute(
                "INSERT INTO learning_path_progress (user_id, path_id, current_node_id, "
                "completed_node_ids, mastered_skills, in_progress_skills, overall_progress) "
                "VALUES (?, ?, ?, '[]', ?, ?, 0)",
                (user_id, path["id"], first_node, json.dumps(mastered), json.dumps(in_progress)),
            )
        else:
            db.execute(
                "UPDATE learning_path_progress SET mastered_skills = ?, in_progress_skills = ? "
                "WHERE id = ?",
                (json.dumps(mastered), json.dumps(in_progress), existing["id"]),
            )
        db.commit()
        return LearningPathStoreDB.get_progress(user_id, path["id"])


# ── Learner profile ─────────────────────────────────────────

class LearningStyleProfileDB:

    STYLES = ("visual", "auditory", "reading", "kinesthetic")

    def __init__(self, user_id: int):
        self.user_id = user_id

    def load(self) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT * FROM learning_style_profiles WHERE user_id = ?", (self.user_id,),
        ).fetchone()
        return dict(row) if row else None

    def save(self, visual: float, auditory: float, reading: float, kinesthetic: float,
             dominant_style: str) -> dict:
        db = get_db()
        db.execute(
            "INSERT INTO learning_style_profiles (user_id, visual, auditory, reading, kinesthetic, "
            "dominant_style, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET visual = excluded.visual, "
            "auditory = excluded.auditory, reading = excluded.reading, "
            "kinesthetic = excluded.kinesthetic, dominant_style = excluded.dominant_style, "
            "updated_at = excluded.updated_at",
            (self.user_id, visual, auditory, reading, kinesthetic, dominant_style, _now()),
        )
        db.commit()
        return self.load()


class KnowledgeGraphDB:
    """Concept mastery for a user and the connections among those concepts."""

    def __init__(self, user_id: int):
        self.user_id = user_id

    def concepts(self, subject_id: int | None = None) -> list[dict]:
        db = get_db()
        sql = (
            "SELECT c.id, c.name, cm.mastery_level AS mastery, c.subject_id, s.name AS subject_name "
            "FROM concept_mastery cm JOIN concepts c ON c.id = cm.concept_id "
            "JOIN subjects s ON s.id = c.subject_id WHERE cm.user_id = ?"
        )
        params: list = [self.user_id]
        if subject_id is not None:
            sql += " AND c.subject_id = ?"
            params.append(subject_id)
        return [dict(r) for r in db.execute(sql + " ORDER BY c.id", params).fetchall()]

    @staticmethod
    def connections(concept_ids: list[int]) -> list[dict]:
        if not concept_ids:
            return []
        db = get_db()
        placeholders = ",".join("?" for _ in concept_ids)
        rows = db.execute(
            "SELECT source_concept_id AS source, target_concept_id AS target, strength, "
            "connection_type AS type FROM concept_connections "
            f"WHERE source_concept_id IN ({placeholders}) AND target_concept_id IN ({placeholders})",
            [*concept_ids, *concept_ids],
        ).fetchall()
        return [dict(r) for r in rows]

    def set_mastery(self, concept_id: int, mastery_level: float) -> None:
        db = get_db()
        db.execute(
            "INSERT INTO concept_mastery (user_id, concept_id, mastery_level) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id, concept_id) DO UPDATE SET mastery_level = excluded.mastery_level",
            (self.user_id, concept_id, max(0.0, min(1.0, mastery_level))),
        )
        db.commit()


# ── Social-emotional learning ───────────────────────────────

class MoodLogDB:

    def __init__(self, user_id: int):
        self.user_id = user_id

    def add(self, mood: str, intensity: int, notes: str = "") -> dict:
        db = get_db()
        now = _now()
        cur = db.execute(
            "INSERT INTO mood_entries (user_id, mood, intensity, notes, created_at) VALUES (?, ?, ?, ?, ?)",
            (self.user_id, mood, intensity, notes, now),
        )
        db.commit()
        return {"id": cur.lastrowid, "mood": mood, "intensity": intensity, "notes": notes, "created_at": now}

    def for_day(self, day: date | None = None) -> list[dict]:
        start, end = _day_bounds(day)
        db = get_db()
        rows = db.execute(
            "SELECT * FROM mood_entries WHERE user_id = ? AND created_at >= ? AND created_at < ? "
            "ORDER BY created_at DESC",
            (self.user_id, start, end),
        ).fetchall()
        return [dict(r) for r in rows]

    def all(self, limit: int = 100) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM mood_entries WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (self.user_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]


class _DailyContentStore:
    """Shared 'one item a day' selection for affirmations and mindfulness prompts.

    Subclasses name the content table, the per-user history table and the
    history column pointing at the content row.
    """

    content_table = ""
    history_table = ""
    ref_column = ""
    reuse_condition = ""
    recent_days = 7

    def __init__(self, user_id: int):
        self.user_id = user_id

    def get(self, content_id: int) -> dict | None:
        db = get_db()
        row = db.execute(f"SELECT * FROM {self.content_table} WHERE id = ?", (content_id,)).fetchone()
        return dict(row) if row else None

    def _today_record(self) -> dict | None:
        start, end = _day_bounds()
        db = get_db()
        row = db.execute(
            f"SELECT c.* FROM {self.history_table} h JOIN {self.content_table} c ON c.id = h.{self.ref_column} "
            f"WHERE h.user_id = ? AND h.created_at >= ? AND h.created_at < ?{self.reuse_condition} "
            "ORDER BY h.created_at DESC LIMIT 1",
            (self.user_id, start, end),
        ).fetchone()
        return dict(row) if row else None

    def _recent_ids(self) -> list[int]:
        start, _ = _day_bounds(date.today() - timedelta(days=self.recent_days))
        db = get_db()
        rows = db.execute(
            f"SELECT DISTINCT {self.ref_column} FROM {self.history_table} "
            "WHERE user_id = ? AND created_at >= ?",
            (self.user_id, start),
        ).fetchall()
        return [r[0] for r in rows]

    def _record(self, content_id: int) -> None:
        db = get_db()
        db.execute(
            f"INSERT INTO {self.history_table} (user_id, {self.ref_column}, created_at) VALUES (?, ?, ?)",
            (self.user_id, content_id, _now()),
        )
        db.commit()

    def daily(self, group: str, rng=random) -> dict | None:
        """Today's item: reuse today's, else a fresh one for the age group, else any."""
        existing = self._today_record()
        if existing:
            return existing

        db = get_db()
        exclude = self._recent_ids()
        sql = f"SELECT * FROM {self.content_table} WHERE age_group = ?"
        params: list = [group]
        if exclude:
            sql += f" AND id NOT IN ({','.join('?' for _ in exclude)})"
            params.extend(exclude)
        candidates = [dict(r) for r in db.execute(sql, params).fetchall()]

        if candidates:
            chosen = rng.choice(candidates)
        else:
            row = db.execute(
                f"SELECT * FROM {self.content_table} WHERE age_group = ? ORDER BY id LIMIT 1", (group,),
            ).fetchone()
            if not row:
                return None
            chosen = dict(row)

        self._record(chosen["id"])
        return chosen


class AffirmationStoreDB(_DailyContentStore):
    content_table = "growth_mindset_affirmations"
    history_table = "user_affirmations"
    ref_column = "affirmation_id"

    def acknowledge(self, affirmation_id: int) -> dict | None:
        start, end = _day_bounds()
        db = get_db()
        row = db.execute(
            "SELECT id FROM user_affirmations WHERE user_id = ? AND affirmation_id = ? "
            "AND created_at >= ? AND created_at < ? ORDER BY created_at DESC LIMIT 1",
            (self.user_id, affirmation_id, start, end),
        ).fetchone()
        if not row:
            return None
        db.execute("UPDATE user_affirmations SET acknowledged = 1 WHERE id = ?", (row["id"],))
        db.commit()
        return dict(db.execute("SELECT * FROM user_affirmations WHERE id = ?", (row["id"],)).fetchone())


class MindfulnessStoreDB(_DailyContentStore):
    content_table = "mindfulness_prompts"
    history_table = "user_mindfulness_prompts"
    ref_column = "prompt_id"
    reuse_condition = " AND h.completed = 1"

    def complete(self, prompt_id: int, response: str) -> dict:
        start, end = _day_bounds()
        db = get_db()
        row = db.execute(
            "SELECT id FROM user_mindfulness_prompts WHERE user_id = ? AND prompt_id = ? "
            "AND created_at >= ? AND created_at < ? ORDER BY created_at DESC LIMIT 1",
            (self.user_id, prompt_id, start, end),
        ).fetchone()
        if row:
            record_id = row["id"]
            db.execute(
                "UPDATE user_mindfulness_prompts SET response = ?, completed = 1 WHERE id = ?",
                (response, record_id),
            )
        else:
            cur = db.execute(
                "INSERT INTO user_mindfulness_prompts (user_id, prompt_id, response, completed, created_at) "
                "VALUES (?, ?, ?, 1, ?)",
                (self.user_id, prompt_id, response, _now()),
            )
            record_id = cur.lastrowid
        db.commit()
        return dict(db.execute("SELECT * FROM user_mindfulness_prompts WHERE id = ?", (record_id,)).fetchone())


# ── Peer teaching and community ─────────────────────────────

class TeachBackStoreDB:

    @staticmethod
    def add(user_id: int, session_id: str, question_id: str, answer: str, correct: bool) -> dict:
        db = get_db()
        now = _now()
        cur = db.execute(
            "INSERT INTO teach_back_responses (user_id, session_id, question_id, answer, correct, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, str(session_id), str(question_id), answer, int(bool(correct)), now),
        )
        db.commit()
        return {
            "id": cur.lastrowid, "sessionId": str(session_id), "questionId": str(question_id),
            "answer": answer, "correct": bool(correct), "createdAt": now,
        }


class MentorshipStoreDB:

    @staticmethod
    def create(mentor_id: int, mentee_id: int, subject_id: int | None, goals: str,
               requested_by: int) -> dict:
        db = get_db()
        now = _now()
        cur = db.execute(
            "INSERT INTO mentorships (mentor_id, mentee_id, subject_id, goals, start_date, "
            "requested_by, status, created_at) VALUES (?, ?, ?, ?, ?, ?, 'pending', ?)",
            (mentor_id, mentee_id, subject_id, goals, now[:10], requested_by, now),
        )
        db.commit()
        return MentorshipStoreDB.get(cur.lastrowid)

    @staticmethod
    def get(mentorship_id: int) -> dict | None:
        db = get_db()
        row = db.execute("SELECT * FROM mentorships WHERE id = ?", (mentorship_id,)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def for_user(user_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT m.*, mentor.name AS mentor_name, mentee.name AS mentee_name "
            "FROM mentorships m JOIN users mentor ON mentor.id = m.mentor_id "
            "JOIN users mentee ON mentee.id = m.mentee_id "
            "WHERE m.mentor_id = ? OR m.mentee_id = ? ORDER BY m.created_at DESC",
            (user_id, user_id),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def set_status(mentorship_id: int, status: str) -> dict | None:
        db = get_db()
        db.execute("UPDATE mentorships SET status = ? WHERE id = ?", (status, mentorship_id))
        db.commit()
        return MentorshipStoreDB.get(mentorship_id)


class ExpertSessionStoreDB:

    @staticmethod
    def get(session_id: int) -> dict | None:
        db = get_db()
        row = db.execute("SELECT * FROM expert_sessions WHERE id = ?", (session_id,)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def upcoming(user_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT es.*, COALESCE(a.attending, 0) AS attending, "
            "(SELECT COUNT(*) FROM expert_session_attendees x WHERE x.session_id = es.id "
            "AND x.attending = 1) AS attendee_count "
            "FROM expert_sessions es LEFT JOIN expert_session_attendees a "
            "ON a.session_id = es.id AND a.user_id = ? ORDER BY es.scheduled_at",
            (user_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    @staticmethod
    def rsvp(session_id: int, user_id: int, attending: bool) -> dict:
        db = get_db()
        db.execute(
            "INSERT INTO expert_session_attendees (session_id, user_id, attending, updated_at) "
            "VALUES (?, ?, ?, ?) ON CONFLICT(session_id, user_id) DO UPDATE SET "
            "attending = excluded.attending, updated_at = excluded.updated_at",
            (session_id, user_id, int(bool(attending)), _now()),
        )
        db.commit()
        return {"expertSessionId": session_id, "userId": user_id, "attending": bool(attending)}


# ── XR content ──────────────────────────────────────────────

class XRContentStoreDB:
    """3D models, virtual field trips and AR worksheets."""

    @staticmethod
    def models(subject_id: int | None = None, category: str | None = None) -> list[dict]:
        db = get_db()
        sql = "SELECT m.*, s.name AS subject_name FROM xr_models m LEFT JOIN subjects s ON s.id = m.subject_id WHERE 1=1"
        params: list = []
        if subject_id is not None:
            sql += " AND m.subject_id = ?"
            params.append(subject_id)
        if category:
            sql += " AND m.category = ?"
            params.append(category)
        return [dict(r) for r in db.execute(sql + " ORDER BY m.created_at DESC, m.id DESC", params).fetchall()]

    @staticmethod
    def create_model(name: str, description: str, model_url: str, thumbnail_url: str,
                     category: str, subject_id: int) -> dict:
        db = get_db()
        cur = db.execute(
            "INSERT INTO xr_models (name, description, model_url, thumbnail_url, category, subject_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (name, description, model_url, thumbnail_url, category, subject_id, _now()),
        )
        db.commit()
        return dict(db.execute("SELECT * FROM xr_models WHERE id = ?", (cur.lastrowid,)).fetchone())

    @staticmethod
    def _trip(row) -> dict:
        trip = dict(row)
        trip["hotspots"] = _loads(trip["hotspots"], [])
        return trip

    @staticmethod
    def field_trips(subject_id: int | None = None) -> list[dict]:
        db = get_db()
        sql = "SELECT * FROM virtual_field_trips"
        params: tuple = ()
        if subject_id is not None:
            sql += " WHERE subject_id = ?"
            params = (subject_id,)
        rows = db.execute(sql + " ORDER BY created_at DESC, id DESC", params).fetchall()
        return [XRContentStoreDB._trip(r) for r in rows]

    @staticmethod
    def create_field_trip(title: str, description: str, panorama_url: str, hotspots: list,
                          model_id: int | None, subject_id: int) -> dict:
        db = get_db()
        cur = db.execute(
            "INSERT INTO virtual_field_trips (title, description, panorama_url, hotspots, model_id, "
            "subject_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (title, description, panorama_url, json.dumps(hotspots or []), model_id, subject_id, _now()),
        )
        db.commit()
        row = db.execute("SELECT * FROM virtual_field_trips WHERE id = ?", (cur.lastrowid,)).fetchone()
        return XRContentStoreDB._trip(row)

    @staticmethod
    def worksheets(subject_id: int | None = None) -> list[dict]:
        db = get_db()
        sql = "SELECT * FROM ar_worksheets"
        params: tuple = ()
        if subject_id is not None:
            sql += " WHERE subject_id = ?"
            params = (subject_id,)
        return [dict(r) for r in db.execute(sql + " ORDER BY created_at DESC, id DESC", params).fetchall()]

    @staticmethod
    def create_worksheet(title: str, description: str, worksheet_url: str, marker_image: str,
                         content_url: str, subject_id: int) -> dict:
        db = get_db()
        cur = db.execute(
            "INSERT INTO ar_worksheets (title, description, worksheet_url, marker_image, content_url, "
            "subject_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (title, description, worksheet_url, marker_image, content_url, subject_id, _now()),
        )
        db.commit()
        return dict(db.execute("SELECT * FROM ar_worksheets WHERE id = ?", (cur.lastrowid,)).fetchone())

    @staticmethod
    def latest_worksheet() -> dict | None:
        db = get_db()
        row = db.execute("SELECT * FROM ar_worksheets ORDER BY created_at DESC, id DESC LIMIT 1").fetchone()
        return dict(row) if row else None

    @staticmethod
    def record_scan(user_id: int, worksheet_id: int) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO worksheet_scans (user_id, worksheet_id, created_at) VALUES (?, ?, ?)",
            (user_id, worksheet_id, _now()),
        )
        db.commit()
        return cur.lastrowid


# ── AI feedback and settings ────────────────────────────────

class AIFeedbackStoreDB:

    def __init__(self, user_id: int):
        self.user_id = user_id

    def save(self, question_id: str, feedback: dict) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO ai_feedback (user_id, question_id, feedback, created_at) VALUES (?, ?, ?, ?)",
            (self.user_id, str(question_id), json.dumps(feedback), _now()),
        )
        db.commit()
        return cur.lastrowid

    def history(self, limit: int = 20) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM ai_feedback WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (self.user_id, limit),
        ).fetchall()
        out = []
        for r in rows:
            item = dict(r)
            item["feedback"] = _loads(item["feedback"], {})
            out.append(item)
        return out


class SettingsStoreDB:
    """Admin-managed global toggles stored as JSON values in app_settings."""

    @staticmethod
    def load(defaults: dict[str, bool]) -> dict[str, bool]:
        db = get_db()
        settings = dict(defaults)
        for row in db.execute("SELECT key, value FROM app_settings").fetchall():
            if row["key"] in settings:
                settings[row["key"]] = bool(_loads(row["value"], settings[row["key"]]))
        return settings

    @staticmethod
    def save(values: dict[str, bool]) -> None:
        db = get_db()
        now = _now()
        for key, value in values.items():
            db.execute(
                "INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, json.dumps(bool(value)), now),
            )
        db.commit()
