"""
Shared helpers used across blueprints.

Kept out of app.py to break circular dependencies.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, request
from flask_login import current_user

from auth import login_manager
from db_stores import ParentLinkDB


def current_user_id() -> int:
    """Return the current authenticated user's ID."""
    if current_user.is_authenticated:
        return current_user.id
    abort(401)


def role_required(*roles: str) -> Callable:
    """Decorator that requires one of the given roles. Admins always pass."""
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated(*args: Any, **kwargs: Any) -> Any:
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            role = getattr(current_user, "role", "student")
            if role != "admin" and role not in roles:
                abort(403)
            return f(*args, **kwargs)
        return decorated
    return decorator


teacher_required = role_required("teacher")


def is_staff() -> bool:
    return current_user.is_authenticated and current_user.role in ("teacher", "admin")


def can_view_student(student_id: int) -> bool:
    """Self, teachers, admins, and parents linked to the student."""
    if not current_user.is_authenticated:
        return False
    if int(student_id) == current_user.id or is_staff():
        return True
    if current_user.role == "parent":
        return ParentLinkDB.is_linked(current_user.id, int(student_id))
    return False


def json_body() -> dict:
    """Request JSON as a dict; 400 when the body is not a JSON object."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object.")
    return data


def parse_int(value: Any, default: int | None = None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default
