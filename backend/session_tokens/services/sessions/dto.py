# session_tokens/services/sessions/dto.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

# Only HMAC-SHA256 is ever accepted or produced.
SIGNING_ALGORITHM = "HS256"
TOKEN_TYPE = "Bearer"


def utcnow() -> datetime:
    """Return a timezone-aware UTC ``now``."""
    return datetime.now(UTC)


# ----------------------------- Entities ----------------------------------- #


@dataclass(slots=True)
class RefreshToken:
    """
    Opaque refresh token as exchanged between the store and the session service.

    :param user_id: Owning user id.
    :type user_id: int
    :param token: Random URL-safe token string (unique across all rows).
    :type token: str
    :param expires_at: Absolute expiry (UTC).
    :type expires_at: datetime
    :param created_at: Creation timestamp (UTC).
    :type created_at: datetime
    :param is_valid: Validity flag; only ever flips from ``True`` to ``False``.
    :type is_valid: bool
    :param id: Store-assigned identity (``None`` until persisted).
    :type id: int | None
    """

    user_id: int
    token: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)
    is_valid: bool = True
    id: int | None = None

    @classmethod
    def new(
        cls,
        *,
        user_id: int,
        token: str,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> RefreshToken:
        """
        Build a fresh, valid token expiring ``ttl`` after ``now``.

        :raises ValueError: If ``ttl`` is not positive.
        """
        if ttl <= timedelta(0):
            raise ValueError("Refresh token TTL must be positive.")
        created = now or utcnow()
        return cls(user_id=user_id, token=token, expires_at=created + ttl, created_at=created)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return ``True`` once ``now`` is past ``expires_at`` (computed, never stored)."""
        return (now or utcnow()) > self.expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        return self.is_valid and not self.is_expired(now)

    def invalidate(self) -> None:
        self.is_valid = False


@dataclass(frozen=True, slots=True)
class AccessTokenClaims:
    """
    Claims carried by a signed access token.

    :param user_id: Subject user id.
    :param email: Email of the subject at signing time.
    :param issued_at: ``iat`` claim (UTC).
    :param expires_at: ``exp`` claim (UTC).
    """

    user_id: int
    email: str
    issued_at: datetime
    expires_at: datetime

    @property
    def subject(self) -> str:
        return str(self.user_id)


# ------------------------------- Config ----------------------------------- #


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """
    Process-wide, read-only session settings.

    :param secret: Shared HMAC signing secret.
    :type secret: str
    :param access_ttl: Access token lifetime.
    :type access_ttl: timedelta
    :param refresh_ttl: Refresh token lifetime.
    :type refresh_ttl: timedelta
    """

    secret: str
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    algorithm: str = field(default=SIGNING_ALGORITHM, init=False)

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("Signing secret must not be empty.")
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise ValueError("Token lifetimes must be positive.")


# ------------------------------- Output ----------------------------------- #


@dataclass(frozen=True, slots=True)
class IssuedSession:
    """
    Access/refresh pair handed back to the transport layer.

    :param access_token: Signed access JWT.
    :param refresh_token: Persisted refresh token entity.
    :param expires_in: Access token lifetime in seconds.
    """

    access_token: str
    refresh_token: RefreshToken
    expires_in: int
    token_type: str = TOKEN_TYPE

    def as_response(self) -> dict[str, str | int]:
        """Return the wire representation sent to clients."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token.token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
        }
