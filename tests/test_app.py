"""Tests for the app factory — security headers, JSON errors, config."""

from __future__ import annotations

import json
import logging
import sys
from unittest.mock import patch

import pytest


class TestSecurityHeaders:
    def test_headers_on_every_response(self, client):
        resp = client.get("/healthz")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert resp.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
        assert "max-age" in resp.headers["Strict-Transport-Security"]

    def test_headers_on_errors(self, client):
        assert client.get("/api/nope").headers["X-Content-Type-Options"] == "nosniff"


class TestJSONErrors:
    def test_not_found(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.is_json
        assert "error" in resp.get_json()

    def test_method_not_allowed(self, client):
        resp = client.get("/login")
        assert resp.status_code == 405
        assert resp.is_json

    def test_body_must_be_object(self, auth_client):
        resp = auth_client.post("/api/sel/moods", json=["happy", 5])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Request body must be a JSON object."

    def test_unexpected_error_is_logged(self, auth_client):
        with patch("blueprints.sel.MoodLogDB.all", side_effect=RuntimeError("disk on fire")), \
                patch("app.logger.exception") as log_exception:
            resp = auth_client.get("/api/sel/moods")
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}
        log_exception.assert_called_once()


class TestConfig:
    def test_feature_flags_default(self, app):
        assert app.config["FEATURE_FLAGS"]["aiLessonLauncher"] is True

    def test_config_by_env(self, monkeypatch):
        from app import create_app

        monkeypatch.setenv("FLASK_ENV", "testing")
        app = create_app()
        assert app.config["TESTING"] is True
        assert app.config["RATELIMIT_ENABLED"] is False

    def test_production_requires_secret(self, monkeypatch):
        from config import ProductionConfig

        monkeypatch.setattr(ProductionConfig, "SECRET_KEY", "dev-key-change-in-production")
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            ProductionConfig.validate()


class TestLogFormat:
    def test_json_lines(self):
        from logging_config import JSONFormatter

        record = logging.LogRecord("learnify.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.request_id = "abc123"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "learnify.test"
        assert entry["request_id"] == "abc123"
        assert "timestamp" in entry
        assert "exception" not in entry

    def test_json_includes_exception(self):
        from logging_config import JSONFormatter

        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in entry["exception"]

    def test_text_format(self):
        from logging_config import TEXT_FORMAT

        assert TEXT_FORMAT == "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
