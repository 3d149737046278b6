# session_tokens/services/sessions/service.py
from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import datetime

from session_tokens.services._shared.errors import (
    InvalidTokenError,
    NotFoundError,
    StorageError,
)
from session_tokens.services._shared.ports import RefreshTokenStore, TokenCodec, UserRecord
from session_tokens.services.sessions.dto import (
    AccessTokenClaims,
    IssuedSession,
    RefreshToken,
    SessionConfig,
    utcnow,
)

log = logging.getLogger(__name__)

# 32 random bytes before URL-safe base64 encoding.
REFRESH_TOKEN_BYTES = 32


def generate_token_value() -> str:
    """Return a fresh unguessable URL-safe refresh token string."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


def token_hint(value: str) -> str:
    """Short, non-reversible fingerprint of a token value for log lines."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


class SessionService:
    """
    Token lifecycle orchestration (issue / validate / rotate / revoke).

    The service holds no mutable state besides its collaborators and the
    immutable :class:`SessionConfig`, so one instance serves every request
    thread. Access tokens are validated statelessly; refresh tokens live in
    the :class:`RefreshTokenStore`, whose conditional invalidate is the
    serialization point for concurrent rotations of the same token.
    """

    def __init__(
        self,
        *,
        codec: TokenCodec,
        store: RefreshTokenStore,
        config: SessionConfig,
        token_factory: Callable[[], str] = generate_token_value,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        :param codec: Access token signer/verifier.
        :param store: Durable refresh token store.
        :param config: Immutable secret and TTL settings.
        :param token_factory: Source of random refresh token strings.
        :param clock: Source of "now" (UTC).
        """
        self.codec = codec
        self.store = store
        self.cfg = config
        self._new_token_value = token_factory
        self._now = clock

    @property
    def access_ttl_seconds(self) -> int:
        return int(self.cfg.access_ttl.total_seconds())

    # ------------------------------------------------------------------ #
    # Issue
    # ------------------------------------------------------------------ #

    def issue_session(self, user: UserRecord) -> IssuedSession:
        """
        Persist a new refresh token for ``user`` and sign a matching access token.

        All-or-nothing: the refresh token is stored *before* the access token is
        signed, so a store failure leaves the caller with nothing.

        :raises StorageError: When the refresh token cannot be persisted.
        """
        refresh = self._persist_new_refresh_token(user.id)
        access = self.codec.sign(user.id, user.email)
        log.info(
            "session.issued",
            extra={"event": "session.issued", "user_id": user.id, "token_id": refresh.id},
        )
        return IssuedSession(
            access_token=access,
            refresh_token=refresh,
            expires_in=self.access_ttl_seconds,
        )

    # ------------------------------------------------------------------ #
    # Validate
    # ------------------------------------------------------------------ #

    def validate_access(self, token: str) -> AccessTokenClaims:
        """
        Verify an access token without touching the store.

        A revoked user's access token stays valid until its own short TTL
        elapses; revocation only blocks the next refresh.

        :raises ExpiredTokenError: Token is well-formed and signed but expired.
        :raises InvalidTokenError: Any other verification failure.
        """
        return self.codec.verify(token)

    # ------------------------------------------------------------------ #
    # Rotate
    # ------------------------------------------------------------------ #

    def rotate(self, old_value: str, email_hint: str) -> IssuedSession:
        """
        Exchange an active refresh token for a brand-new pair.

        Unknown, used, revoked and expired tokens all raise the same
        :class:`InvalidTokenError`.

        :param old_value: Refresh token string presented by the client.
        :param email_hint: Email to embed in the new access token (refresh
            tokens store no email).
        :raises InvalidTokenError: Token is not active, or a concurrent rotation
            consumed it first.
        :raises StorageError: Lookup or persistence of the new token failed.
        """
        try:
            current = self.store.get_by_token(old_value)
        except NotFoundError as exc:
            log.warning(
                "refresh_token.rejected",
                extra={"event": "refresh_token.rejected", "token_hint": token_hint(old_value)},
            )
            raise InvalidTokenError() from exc

        now = self._now()
        if not current.is_valid or current.is_expired(now):
            log.warning(
                "refresh_token.rejected",
                extra={
                    "event": "refresh_token.rejected",
                    "token_id": current.id,
                    "user_id": current.user_id,
                    "valid": current.is_valid,
                    "expired": current.is_expired(now),
                },
            )
            raise InvalidTokenError()

        access = self.codec.sign(current.user_id, email_hint)
        replacement = self._persist_new_refresh_token(current.user_id)

        if not self._retire(current, replacement):
            raise InvalidTokenError()

        log.info(
            "session.rotated",
            extra={
                "event": "session.rotated",
                "user_id": current.user_id,
                "token_id": replacement.id,
                "previous_token_id": current.id,
            },
        )
        return IssuedSession(
            access_token=access,
            refresh_token=replacement,
            expires_in=self.access_ttl_seconds,
        )

    def _retire(self, current: RefreshToken, replacement: RefreshToken) -> bool:
        """
        Invalidate the superseded token after a rotation.

        :returns: ``False`` only when another rotation already consumed
            ``current``; the replacement is then withdrawn. A storage failure is
            logged and treated as success because the new session is valid.
        """
        try:
            flipped = self.store.invalidate(current.token)
        except StorageError:
            log.error(
                "refresh_token.invalidate_failed",
                extra={
                    "event": "refresh_token.invalidate_failed",
                    "token_id": current.id,
                    "user_id": current.user_id,
                },
                exc_info=True,
            )
            return True

        if flipped:
            return True

        log.warning(
            "refresh_token.rotation_race_lost",
            extra={
                "event": "refresh_token.rotation_race_lost",
                "token_id": current.id,
                "user_id": current.user_id,
            },
        )
        try:
            self.store.invalidate(replacement.token)
        except StorageError:
            log.error(
                "refresh_token.withdraw_failed",
                extra={"event": "refresh_token.withdraw_failed", "token_id": replacement.id},
                exc_info=True,
            )
        return False

    # ------------------------------------------------------------------ #
    # Revoke
    # ------------------------------------------------------------------ #

    def revoke(self, value: str) -> bool:
        """
        Invalidate a single refresh token.

        :returns: ``True`` if the token was active before this call.
        """
        return self.store.invalidate(value)

    def revoke_all(self, user_id: int) -> int:
        """
        Invalidate every refresh token of ``user_id`` (logout everywhere).

        Store errors propagate unchanged; the caller decides severity.

        :returns: Number of tokens invalidated by this call.
        """
        count = self.store.invalidate_all_for_user(user_id)
        log.info(
            "session.revoked_all",
            extra={"event": "session.revoked_all", "user_id": user_id, "count": count},
        )
        return count

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _persist_new_refresh_token(self, user_id: int) -> RefreshToken:
        token = RefreshToken.new(
            user_id=user_id,
            token=self._new_token_value(),
            ttl=self.cfg.refresh_ttl,
            now=self._now(),
        )
        return self.store.create(token)
