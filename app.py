"""
Learnify — Flask application factory.

Adaptive learning API: CPA lessons, XP and streaks, diagnostic learning
paths, performance analytics, AI feedback, social-emotional learning tools,
peer mentoring and immersive (XR/IoT) content.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

import database
from auth import auth_bp, login_manager
from blueprints import register_blueprints
from config import FEATURE_FLAGS, config_by_name
from extensions import limiter
from logging_config import init_logging

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
HSTS = "max-age=31536000; includeSubDomains"


def _load_config(app: Flask, test_config: dict[str, Any] | None) -> None:
    if test_config is not None:
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        validate = getattr(cfg, "validate", None)
        if validate:
            validate()
    app.secret_key = app.config.get("SECRET_KEY") or "dev-key-change-in-production"
    app.config.setdefault("FEATURE_FLAGS", dict(FEATURE_FLAGS))


def _register_error_handlers(app: Flask) -> None:
    """Every error leaves as JSON: {"error": message}."""

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def unexpected_error(e: Exception):
        logger.exception("unhandled error: %s", type(e).__name__)
        return jsonify({"error": "Internal server error"}), 500


def _register_security_headers(app: Flask) -> None:

    @app.after_request
    def add_headers(response: Response) -> Response:
        response.headers.update(SECURITY_HEADERS)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = HSTS
        return response


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    _load_config(app, test_config)

    init_logging(app)
    database.init_app(app)

    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    login_manager.init_app(app)
    app.register_blueprint(auth_bp)
    register_blueprints(app)

    _register_error_handlers(app)
    _register_security_headers(app)

    logger.info("learnify started env=%s ai=%s/%s", os.environ.get("FLASK_ENV", "development"),
                app.config.get("AI_PROVIDER", "openai"), app.config.get("AI_MODEL", "gpt-4o"))
    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
