"""
Logging setup — JSON lines in production, readable text in development.

Each record emitted inside a request carries the request ID and the signed-in
user's ID. Every request except the health probe gets one access line.
"""

from __future__ import annotations

import json
import logging
import time
import uuid

from flask import Flask, g, has_request_context, request

QUIET_PATHS = {"/healthz"}
ACCESS_FIELDS = ("method", "path", "status", "duration_ms")


class RequestContextFilter(logging.Filter):
    """Stamp records with request_id and user_id ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(g, "request_id", "-")
            # Only reads an already-loaded user; never triggers a DB lookup
            record.user_id = getattr(g.get("_login_user"), "id", None) or "-"
        else:
            record.request_id = getattr(record, "request_id", "-")
            record.user_id = getattr(record, "user_id", "-")
        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("request_id", "user_id", *ACCESS_FIELDS):
            value = getattr(record, key, "-")
            if value != "-":
                entry[key] = value
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def init_logging(app: Flask) -> None:
    """Install the root handler and the request-ID / access-log hooks."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.addFilter(RequestContextFilter())
    if app.config.get("LOG_FORMAT", "text") == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)

    # werkzeug repeats our access line
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    access_log = logging.getLogger("learnify.access")

    @app.before_request
    def _start_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_started = time.perf_counter()

    @app.after_request
    def _finish_request(response):
        response.headers["X-Request-ID"] = g.get("request_id", "-")
        if request.path not in QUIET_PATHS:
            elapsed = round((time.perf_counter() - g.get("request_started", time.perf_counter())) * 1000)
            access_log.info(
                "%s %s %s %dms req=%s", request.method, request.path, response.status_code, elapsed,
                g.get("request_id", "-"),
                extra={"method": request.method, "path": request.path,
                       "status": response.status_code, "duration_ms": elapsed},
            )
        return response
