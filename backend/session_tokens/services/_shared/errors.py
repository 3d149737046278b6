"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and never import Flask or HTTP
helpers. They are the stable contract between token stores, the token codec
and the session/auth services.

The translation to HTTP responses (RFC 7807) is handled by
``session_tokens/core/errors.py``.

Taxonomy
--------
- :class:`InvalidTokenError`: bad signature, bad format, wrong algorithm,
  unknown/used/revoked refresh token. Deliberately merged so callers cannot
  tell *why* a token was refused.
- :class:`ExpiredTokenError`: well-formed, correctly signed access token whose
  ``exp`` has elapsed. Never raised for refresh-token lookups.
- :class:`NotFoundError`: storage-level absence. Translated to
  :class:`InvalidTokenError` at the session boundary.
- :class:`StorageError`: timeout or backend failure. Opaque to clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

if TYPE_CHECKING:
    from session_tokens.services.sessions.dto import AccessTokenClaims


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    :param exc: The exception raised by SQLAlchemy during flush/commit.
    :param constraint_name: Constraint name to look for (e.g. ``uq_users_email``).
    :returns: ``True`` when the driver message mentions the constraint.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return constraint_name.lower() in message


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    These are *not* HTTP errors; the API layer maps them to status codes.
    """

    pass


class InvalidTokenError(ServiceError):
    """Raised when a token cannot be accepted for any reason other than expiry."""

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class ExpiredTokenError(ServiceError):
    """
    Raised when a correctly signed access token is past its expiry.

    :param claims: The token's verified claims, when the codec decoded them.
        Only meant for flows that must identify the holder of a stale token.
    """

    def __init__(
        self, message: str = "Token expired", *, claims: AccessTokenClaims | None = None
    ) -> None:
        super().__init__(message)
        self.claims = claims


class InvalidCredentialsError(ServiceError):
    """Raised when an email/password pair does not authenticate."""

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found in a store or repository.

    :param entity: Entity name (e.g., ``"RefreshToken"``).
    :type entity: str
    :param key: Identifier or search key. Never echo raw token values here.
    :type key: str | int
    """

    entity: str
    key: str | int

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint or business rule conflict occurs.

    :param entity: Entity name (e.g., ``"User"``).
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    entity: str
    detail: str

    def __str__(self) -> str:  # pragma: no cover
        return f"Conflict on {self.entity}: {self.detail}"


class StorageError(ServiceError):
    """
    Raised when durable storage fails or exceeds its per-call timeout.

    :param operation: Store operation that failed (``create``, ``invalidate``...).
    :param message: Operator-facing description; never sent to clients.
    """

    def __init__(self, operation: str, message: str = "storage backend failure") -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
