# session_tokens/infra/jwt/pyjwt_token_codec.py
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from session_tokens.services._shared.errors import ExpiredTokenError, InvalidTokenError
from session_tokens.services._shared.ports import TokenCodec
from session_tokens.services.sessions.dto import (
    SIGNING_ALGORITHM,
    AccessTokenClaims,
    SessionConfig,
    utcnow,
)

log = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "iat", "exp"]


@dataclass(frozen=True, slots=True)
class PyJWTTokenCodec(TokenCodec):
    """
    HS256 access-token codec backed by PyJWT.

    :param secret: Shared HMAC secret.
    :param ttl: Access token lifetime.
    :param clock: Source of "now" used for ``iat``/``exp`` when signing.

    .. note::
       ``jwt.decode`` is always called with ``algorithms=["HS256"]`` so a token
       whose header names any other algorithm (``none``, ``HS512``, ``RS256``...)
       is rejected before its signature is even considered.
    """

    secret: str
    ttl: timedelta
    clock: Callable[[], datetime] = field(default=utcnow, compare=False)

    @classmethod
    def from_config(cls, cfg: SessionConfig) -> PyJWTTokenCodec:
        return cls(secret=cfg.secret, ttl=cfg.access_ttl)

    # ----------------------------- Signing -----------------------------

    def sign(self, user_id: int, email: str) -> str:
        now = self.clock()
        payload: dict[str, Any] = {
            "sub": str(user_id),
            "user_id": int(user_id),
            "email": email,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=SIGNING_ALGORITHM)

    # ---------------------------- Verification -------------------------

    def verify(self, token: str) -> AccessTokenClaims:
        if not token:
            raise InvalidTokenError()
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[SIGNING_ALGORITHM],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError(claims=self._expired_claims(token)) from exc
        except jwt.InvalidTokenError as exc:
            log.info(
                "access_token.rejected",
                extra={"event": "access_token.rejected", "reason": type(exc).__name__},
            )
            raise InvalidTokenError() from exc

        return self._claims_from_payload(payload)

    def _expired_claims(self, token: str) -> AccessTokenClaims:
        """Decode a token already known to be expired; signature and algorithm still apply."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[SIGNING_ALGORITHM],
                options={"require": REQUIRED_CLAIMS, "verify_exp": False},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError() from exc
        return self._claims_from_payload(payload)

    @staticmethod
    def _claims_from_payload(payload: dict[str, Any]) -> AccessTokenClaims:
        """Rebuild claims, refusing anything with an ill-typed subject or email."""
        subject = payload.get("sub")
        email = payload.get("email")
        if not isinstance(subject, str) or not (subject.isascii() and subject.isdigit()):
            raise InvalidTokenError()
        if not isinstance(email, str):
            raise InvalidTokenError()
        return AccessTokenClaims(
            user_id=int(subject),
            email=email,
            issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=UTC),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=UTC),
        )
