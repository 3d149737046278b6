"""Shared API helpers for request authentication and cross-cutting concerns."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Response, current_app, jsonify, request

from session_tokens.core.errors import Unauthorized
from session_tokens.core.extensions import get_session_service
from session_tokens.services._shared.base import RequestIdentity
from session_tokens.services.auth.service import AuthService

F = TypeVar("F", bound=Callable[..., Any])

BEARER_PREFIX = "Bearer "


def bearer_token(*, required: bool = True) -> str | None:
    """
    Extract the token from ``Authorization: Bearer <token>``.

    :param required: When ``True`` a missing or malformed header raises.
    :raises Unauthorized: Header absent or not a bearer credential.
    """
    header = request.headers.get("Authorization", "")
    if not header:
        if required:
            raise Unauthorized("Missing bearer token")
        return None
    if not header.startswith(BEARER_PREFIX) or not header[len(BEARER_PREFIX) :].strip():
        if required:
            raise Unauthorized("Malformed authorization header")
        return None
    return header[len(BEARER_PREFIX) :].strip()


def authenticate_request() -> RequestIdentity:
    """
    Validate the request's access token and return the caller identity.

    :raises Unauthorized: No usable bearer header.
    :raises InvalidTokenError: Token rejected.
    :raises ExpiredTokenError: Token expired.
    """
    token = bearer_token()
    claims = get_session_service(current_app).validate_access(token or "")
    return RequestIdentity(user_id=claims.user_id, email=claims.email)


def require_auth(func: F) -> F:
    """Ensure the request carries a valid access token; inject ``identity``."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        kwargs["identity"] = authenticate_request()
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def get_auth_service() -> AuthService:
    """Return an :class:`AuthService` bound to the process-wide session engine."""

    return AuthService(sessions=get_session_service(current_app))


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request.endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]
