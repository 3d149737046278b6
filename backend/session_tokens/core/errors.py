"""Centralized JSON (RFC 7807) error handling for the API."""

from __future__ import annotations

import logging
import random
import time
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, current_app, jsonify, request
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from session_tokens.core.config import parse_jitter_range
from session_tokens.core.logger import ensure_request_id
from session_tokens.services._shared.errors import (
    ConflictError,
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    StorageError,
)

log = logging.getLogger(__name__)


def _http_status_to_code(status_code: int) -> str:
    """Map common HTTP status codes to canonical, stable error codes."""
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        415: "unsupported_media_type",
        500: "internal_server_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "error")


def _as_problem(
    *,
    status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build an RFC 7807 Problem Details dict.

    :param status: HTTP status code.
    :param code: Stable machine-consumable error code.
    :param message: Human-readable error summary (safe for clients).
    :param details: Optional safe, structured details.
    :returns: Problem+JSON dictionary.
    :rtype: dict
    """
    problem: dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path,
        "code": code,
    }
    if details:
        problem["details"] = details
    problem["request_id"] = ensure_request_id()
    return problem


def _problem_response(problem: dict[str, Any]) -> Response:
    """Return a Flask response with ``application/problem+json`` media type."""
    resp = jsonify(problem)
    resp.mimetype = "application/problem+json"
    return resp


def apply_failure_jitter() -> float:
    """
    Sleep for a random delay drawn from ``AUTH_FAILURE_JITTER_MS``.

    Applied before every authentication failure response so that rejection
    timing does not reveal which check failed.

    :returns: Seconds slept (``0.0`` when the range is ``0``).
    """
    low, high = parse_jitter_range(current_app.config.get("AUTH_FAILURE_JITTER_MS"))
    if high <= 0:
        return 0.0
    delay = random.uniform(low, high) / 1000.0
    time.sleep(delay)
    return delay


class APIError(Exception):
    """
    Represent a JSON-serializable API error.

    Parameters
    ----------
    message : str
        Human-readable description presented to clients.
    status_code : int, optional
        HTTP status code to return. Defaults to ``400``.
    code : str, optional
        Machine-readable identifier, typically snake_case.
    details : dict[str, Any] | None, optional
        Optional structured payload included in the response body.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "bad_request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}

    def to_problem(self) -> dict[str, Any]:
        return _as_problem(
            status=self.status_code,
            code=self.code,
            message=self.message,
            details=self.details or None,
        )


class NotFound(APIError):
    """404 when resources are missing."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=HTTPStatus.NOT_FOUND, code="not_found")


class Conflict(APIError):
    """409 for uniqueness collisions."""

    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(message, status_code=HTTPStatus.CONFLICT, code="conflict")


class Unauthorized(APIError):
    """401 when authentication fails."""

    def __init__(self, message: str = "Unauthorized", code: str = "unauthorized") -> None:
        super().__init__(message, status_code=HTTPStatus.UNAUTHORIZED, code=code)


def init_app(app: Flask) -> None:
    """
    Attach JSON error handlers to the Flask app.

    Notes
    -----
    - Guarantees RFC 7807 responses for all handled errors.
    - Every 401 (and the registration 409) waits out the failure jitter first.
    - Storage failures are logged with context and returned as an opaque 500.
    """

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        if err.status_code == HTTPStatus.UNAUTHORIZED:
            apply_failure_jitter()
        problem = err.to_problem()
        level = log.error if err.status_code >= 500 else log.warning
        level(
            "APIError: code=%s status=%s msg=%s",
            err.code,
            err.status_code,
            err.message,
            extra={"event": "http.api_error", "status": err.status_code},
        )
        return _problem_response(problem), err.status_code

    @app.errorhandler(ExpiredTokenError)
    def handle_expired_token(err: ExpiredTokenError):
        return handle_api_error(Unauthorized("Token expired", code="token_expired"))

    @app.errorhandler(InvalidTokenError)
    def handle_invalid_token(err: InvalidTokenError):
        return handle_api_error(Unauthorized("Invalid token", code="invalid_token"))

    @app.errorhandler(InvalidCredentialsError)
    def handle_invalid_credentials(err: InvalidCredentialsError):
        return handle_api_error(Unauthorized("Invalid credentials", code="invalid_credentials"))

    @app.errorhandler(ConflictError)
    def handle_conflict(err: ConflictError):
        apply_failure_jitter()
        # Generic message: do not confirm which field collided
        return handle_api_error(Conflict("Registration failed"))

    @app.errorhandler(NotFoundError)
    def handle_not_found(err: NotFoundError):
        return handle_api_error(NotFound(f"{err.entity} not found"))

    @app.errorhandler(StorageError)
    def handle_storage_error(err: StorageError):
        problem = _as_problem(
            status=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="internal_server_error",
            message="Unexpected error",
        )
        log.error(
            "StorageError: operation=%s",
            err.operation,
            extra={"event": "http.storage_error", "operation": err.operation},
            exc_info=err,
        )
        return _problem_response(problem), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        problem = _as_problem(
            status=HTTPStatus.BAD_REQUEST,
            code="validation_error",
            message="Validation failed",
            details={"errors": err.messages},
        )
        log.warning("ValidationError", extra={"event": "http.validation_error", "status": 400})
        return _problem_response(problem), HTTPStatus.BAD_REQUEST

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        error_code = _http_status_to_code(status)
        message = (err.description or error_code.replace("_", " ").capitalize()).strip()
        if status == HTTPStatus.NOT_FOUND:
            message = f"Route '{request.path}' not found"
        problem = _as_problem(status=status, code=error_code, message=message)
        level = log.error if status >= 500 else log.warning
        level(
            "HTTPException: code=%s status=%s detail=%s",
            error_code,
            status,
            message,
            extra={"event": "http.exception", "status": status},
        )
        return _problem_response(problem), status

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        # Never leak internal details
        problem = _as_problem(
            status=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="internal_server_error",
            message="Unexpected error",
        )
        log.error(
            "Unhandled exception",
            extra={"event": "http.unhandled"},
            exc_info=err,
        )
        return _problem_response(problem), HTTPStatus.INTERNAL_SERVER_ERROR


__all__ = [
    "APIError",
    "Conflict",
    "NotFound",
    "Unauthorized",
    "apply_failure_jitter",
    "init_app",
]
