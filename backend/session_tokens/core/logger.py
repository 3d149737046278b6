"""JSON logging for the session service.

Every record leaves the process as one JSON object on stdout carrying the
request id of the HTTP request that produced it (if any) and the structured
fields listed in :data:`EXTRA_KEYS`. Token material that slips into a
message or a traceback is masked before it is written.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from flask import Flask, g, has_request_context, request

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_HEADERS = ("X-Request-ID", "X-Correlation-ID")

# Structured fields copied from ``extra={...}`` onto the JSON payload.
EXTRA_KEYS = (
    "event",
    "user_id",
    "token_id",
    "previous_token_id",
    "token_hint",
    "valid",
    "expired",
    "count",
    "reason",
    "operation",
    "setting",
    "endpoint",
    "elapsed_ms",
    "status",
)

# Compact JWS (header.payload.signature) and "Bearer <credential>" values
_JWT_PATTERN = re.compile(r"\beyJ[\w-]*\.[\w-]+\.[\w-]*")
_BEARER_PATTERN = re.compile(r"(?i)\b(bearer\s+)\S+")
REDACTED = "[redacted]"


def redact_tokens(text: str) -> str:
    """Mask access tokens and bearer credentials inside free text."""
    text = _JWT_PATTERN.sub(REDACTED, text)
    return _BEARER_PATTERN.sub(rf"\g<1>{REDACTED}", text)


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line with redacted free text."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": redact_tokens(record.getMessage()),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update({key: getattr(record, key) for key in EXTRA_KEYS if hasattr(record, key)})
        if record.exc_info:
            payload["exc_info"] = redact_tokens(self.formatException(record.exc_info))
        return json.dumps(payload, default=str)


class RequestIdFilter(logging.Filter):
    """Stamp ``request_id`` on every record (``None`` outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = ensure_request_id() if has_request_context() else None
        return True


def ensure_request_id() -> str:
    """Return the id of the current request, adopting a caller-supplied one.

    The first of :data:`CORRELATION_HEADERS` present on the request wins;
    otherwise a uuid4 is minted and cached on ``g``.
    """
    if not has_request_context():
        return str(uuid4())
    cached = g.get("request_id")
    if cached:
        return cached
    incoming = next((request.headers[h] for h in CORRELATION_HEADERS if request.headers.get(h)), None)
    g.request_id = incoming or str(uuid4())
    return g.request_id


def _level(level: str | int) -> int | str:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else level.upper()


def configure_logging(level: str | int = "INFO") -> None:
    """Replace root handlers with one JSON stdout handler at ``level``."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestIdFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_level(level))


def init_app(app: Flask) -> None:
    """Seed the request id per request and echo it back as a response header."""
    app.logger.addFilter(RequestIdFilter())

    @app.before_request
    def _seed_request_id() -> None:
        ensure_request_id()

    @app.after_request
    def _inject_response_header(response):
        response.headers.setdefault(REQUEST_ID_HEADER, ensure_request_id())
        return response


__all__ = ["configure_logging", "init_app", "ensure_request_id", "redact_tokens", "JSONFormatter"]
