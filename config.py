"""
Settings for Learnify, read from the environment.

A .env file next to this module is loaded first, so local runs can keep
provider keys out of the shell. FLASK_ENV picks the config class.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent
DEV_SECRET = "dev-key-change-in-production"

load_dotenv(PROJECT_ROOT / ".env")


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default)


# Defaults for the admin panel toggles; overrides live in app_settings.
FEATURE_FLAGS: dict[str, bool] = {
    "aiLessonLauncher": True,
    "xpSystem": True,
    "lifeSkills": True,
    "textToSpeech": True,
    "gamification": True,
    "revisionNotes": True,
}


class BaseConfig:
    SECRET_KEY = _env("SECRET_KEY", DEV_SECRET)
    DATABASE = _env("DATABASE_URL", str(PROJECT_ROOT / "learnify.db"))

    # Worksheet scans post base64 images
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024

    # Flask-Login remember cookie and session cookie
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    PERMANENT_SESSION_LIFETIME = 24 * 60 * 60

    # openai | claude | gemini
    AI_PROVIDER = _env("AI_PROVIDER", "openai")
    AI_MODEL = _env("AI_MODEL", "gpt-4o")
    OPENAI_API_KEY = _env("OPENAI_API_KEY")
    ANTHROPIC_API_KEY = _env("ANTHROPIC_API_KEY")
    GOOGLE_API_KEY = _env("GOOGLE_API_KEY")

    LOG_FORMAT = _env("LOG_FORMAT", "text")
    LOG_LEVEL = _env("LOG_LEVEL", "INFO")

    # Flask-Limiter keeps counters in memory unless a Redis URL is given
    RATELIMIT_STORAGE_URI = _env("REDIS_URL") or "memory://"

    FEATURE_FLAGS = FEATURE_FLAGS


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = _env("LOG_FORMAT", "json")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True

    @classmethod
    def validate(cls) -> None:
        """Refuse to start with the development secret; warn without any AI key."""
        if cls.SECRET_KEY in (DEV_SECRET, ""):
            raise RuntimeError("Invalid production configuration: SECRET_KEY must be set to a secure value.")
        if not any((cls.OPENAI_API_KEY, cls.ANTHROPIC_API_KEY, cls.GOOGLE_API_KEY)):
            warnings.warn("No AI provider key configured; feedback and insights will be unavailable.")


class TestingConfig(BaseConfig):
    TESTING = True
    RATELIMIT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
