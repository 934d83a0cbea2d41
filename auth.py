"""
Accounts — registration, login with lockout, logout and the current user.

Every route answers JSON and accepts either a JSON body or form fields.
Passwords are hashed with werkzeug.security; sessions are Flask-Login's.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from database import get_db
from extensions import limiter

MAX_FAILED_LOGINS = 5
LOCKOUT_WINDOW = timedelta(minutes=15)

# Admin accounts are provisioned, never self-registered.
REGISTERABLE_ROLES = ("student", "teacher", "parent")

PASSWORD_RULES = (
    (lambda p: len(p) >= 8, "Password must be at least 8 characters."),
    (lambda p: any(c.isupper() for c in p), "Password must contain at least one uppercase letter."),
    (lambda p: any(c.islower() for c in p), "Password must contain at least one lowercase letter."),
    (lambda p: any(c.isdigit() for c in p), "Password must contain at least one digit."),
)

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class User(UserMixin):
    """Session identity: id, display name, email and role."""

    def __init__(self, id: int, name: str, email: str, role: str = "student"):
        self.id = id
        self.name = name
        self.email = email
        self.role = role

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(row["id"], row["name"], row["email"], row["role"])

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


def _account_row(email: str):
    return get_db().execute(
        "SELECT id, name, email, password_hash, role, login_attempts, locked_until "
        "FROM users WHERE email = ?", (email,),
    ).fetchone()


@login_manager.user_loader
def load_user(user_id):
    row = get_db().execute(
        "SELECT id, name, email, role FROM users WHERE id = ?", (int(user_id),),
    ).fetchone()
    return User.from_row(row) if row else None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required"}), 401


def password_problem(password: str) -> str | None:
    for check, message in PASSWORD_RULES:
        if not check(password):
            return message
    return None


def _minutes_locked(row) -> int:
    """Whole minutes left on a lockout, 0 when the account is usable."""
    try:
        until = datetime.fromisoformat(row["locked_until"])
    except (TypeError, ValueError):
        return 0
    seconds = (until - datetime.now()).total_seconds()
    return math.ceil(seconds / 60) if seconds > 0 else 0


def _record_failure(row) -> int:
    # Only reached once any lock has lapsed; a lapsed lock starts a new count
    attempts = 1 if row["locked_until"] else row["login_attempts"] + 1
    locked_until = ""
    if attempts >= MAX_FAILED_LOGINS:
        locked_until = (datetime.now() + LOCKOUT_WINDOW).isoformat()
    db = get_db()
    db.execute(
        "UPDATE users SET login_attempts = ?, locked_until = ? WHERE id = ?",
        (attempts, locked_until, row["id"]),
    )
    db.commit()
    return attempts


def _clear_failures(user_id: int) -> None:
    db = get_db()
    db.execute("UPDATE users SET login_attempts = 0, locked_until = '' WHERE id = ?", (user_id,))
    db.commit()


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per 15 minutes")
def login():
    data = _payload()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))
    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    row = _account_row(email)
    if row is None:
        return jsonify({"error": "Invalid email or password."}), 401

    minutes = _minutes_locked(row)
    if minutes:
        log_event("login_locked", row["id"], f"email={email}")
        return jsonify({"error": f"Account temporarily locked. Try again in {minutes} minute(s)."}), 423

    if not row["password_hash"] or not check_password_hash(row["password_hash"], password):
        attempts = _record_failure(row)
        log_event("login_failed", row["id"], f"email={email} attempts={attempts}")
        return jsonify({"error": "Invalid email or password."}), 401

    _clear_failures(row["id"])
    user = User.from_row(row)
    login_user(user, remember=True)
    log_event("login_success", user.id)
    return jsonify({"success": True, "user": user.to_dict(), "redirect": f"/{user.role}"})


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("3 per hour")
def register():
    data = _payload()
    name = str(data.get("name", "")).strip()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))
    role = str(data.get("role") or "student").strip().lower()

    if not (name and email and password):
        return jsonify({"error": "Name, email and password are required."}), 400
    if role not in REGISTERABLE_ROLES:
        return jsonify({"error": f"Cannot register with role '{role}'."}), 400
    problem = password_problem(password)
    if problem:
        return jsonify({"error": problem}), 400

    raw_age = data.get("age")
    try:
        age = None if raw_age in (None, "") else int(raw_age)
    except (TypeError, ValueError):
        return jsonify({"error": "age must be a number."}), 400

    if _account_row(email) is not None:
        return jsonify({"error": "An account with this email already exists."}), 409

    db = get_db()
    cur = db.execute(
        "INSERT INTO users (name, email, password_hash, role, age, created_at) VALUES (?, ?, ?, ?, ?, ?)",
        (name, email, generate_password_hash(password), role, age, datetime.now().isoformat()),
    )
    db.commit()

    user = User(cur.lastrowid, name, email, role)
    log_event("register", user.id, f"email={email} role={role}")
    login_user(user, remember=True)
    return jsonify({"success": True, "user": user.to_dict()}), 201


@auth_bp.route("/api/me")
@login_required
def me():
    row = get_db().execute(
        "SELECT id, name, email, role, age, xp, streak, last_active FROM users WHERE id = ?",
        (current_user.id,),
    ).fetchone()
    return jsonify(dict(row))


@auth_bp.route("/logout", methods=["POST"])
def logout():
    log_event("logout", current_user.id if current_user.is_authenticated else None)
    logout_user()
    return jsonify({"success": True})
