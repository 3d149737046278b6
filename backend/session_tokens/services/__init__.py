"""Service layer public API.

Re-exports
----------
- Session engine (from ``session_tokens.services.sessions``)
    * :class:`SessionService`
    * DTOs: :class:`RefreshToken`, :class:`AccessTokenClaims`,
      :class:`SessionConfig`, :class:`IssuedSession`

- Error taxonomy (from ``session_tokens.services._shared.errors``)

:class:`~session_tokens.services.auth.service.AuthService` is not re-exported
here because it pulls in the ORM models; import it from its module.
"""

from __future__ import annotations

from session_tokens.services._shared.errors import (
    ConflictError,
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ServiceError,
    StorageError,
)
from session_tokens.services.sessions.dto import (
    AccessTokenClaims,
    IssuedSession,
    RefreshToken,
    SessionConfig,
)
from session_tokens.services.sessions.service import SessionService

__all__ = [
    "AccessTokenClaims",
    "ConflictError",
    "ExpiredTokenError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "IssuedSession",
    "NotFoundError",
    "RefreshToken",
    "ServiceError",
    "SessionConfig",
    "SessionService",
    "StorageError",
]
