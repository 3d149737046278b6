from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

import redis

from session_tokens.services._shared.errors import NotFoundError, StorageError
from session_tokens.services._shared.ports import RefreshTokenStore
from session_tokens.services.sessions.dto import RefreshToken

log = logging.getLogger(__name__)

T = TypeVar("T")


def _s(value: Any, default: str = "") -> str:
    """Decode a Redis reply (bytes or str, depending on ``decode_responses``)."""
    if value is None:
        return default
    if isinstance(value, bytes | bytearray):
        return value.decode()
    return str(value)


@dataclass(slots=True)
class RedisRefreshTokenStore(RefreshTokenStore):
    """
    Redis-backed refresh token store.

    Layout
    ------
    - ``rt:{token}``: hash ``{id, user_id, expires_at, created_at, is_valid}``
      (timestamps as UTC epoch seconds, ``is_valid`` as ``"1"``/``"0"``).
    - ``rt:u:{user_id}``: set of token values owned by the user.
    - ``rt:seq``: counter providing store-assigned ids.

    Keys carry no TTL: expiry is evaluated at read time and rows are never
    deleted by this store.

    :param r: A connected Redis client. The per-call timeout is the client's
        ``socket_timeout``; a timeout surfaces as :class:`StorageError`.
    """

    r: redis.Redis

    SEQ_KEY = "rt:seq"

    # -------------------- helpers --------------------

    @staticmethod
    def _k(value: str) -> str:
        return f"rt:{value}"

    @staticmethod
    def _ku(user_id: int) -> str:
        return f"rt:u:{user_id}"

    @staticmethod
    def _to_ts(dt: datetime) -> str:
        return repr(dt.astimezone(UTC).timestamp())

    @staticmethod
    def _from_ts(raw: Any) -> datetime:
        return datetime.fromtimestamp(float(_s(raw, "0")), tz=UTC)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except redis.RedisError as exc:
            log.error(
                "refresh_store.backend_error",
                extra={"event": "refresh_store.backend_error", "operation": operation},
                exc_info=True,
            )
            raise StorageError(operation, type(exc).__name__) from exc

    def _optimistic(self, key: str, body: Callable[[Any], T]) -> T:
        """Run ``body(pipe)`` under ``WATCH key`` until it commits without interference."""
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    return body(p)
            except redis.WatchError:
                # Concurrent modification detected; retry
                continue

    # -------------------- API ------------------------

    def create(self, token: RefreshToken) -> RefreshToken:
        key = self._k(token.token)
        with self._guard("create"):
            new_id = int(self.r.incr(self.SEQ_KEY))

            def _insert(p: Any) -> None:
                if p.exists(key):
                    p.unwatch()
                    raise StorageError("create", "duplicate refresh token value")
                p.multi()
                p.hset(
                    key,
                    mapping={
                        "id": str(new_id),
                        "user_id": str(token.user_id),
                        "expires_at": self._to_ts(token.expires_at),
                        "created_at": self._to_ts(token.created_at),
                        "is_valid": "1" if token.is_valid else "0",
                    },
                )
                p.sadd(self._ku(token.user_id), token.token)
                p.execute()

            self._optimistic(key, _insert)

        return RefreshToken(
            id=new_id,
            user_id=token.user_id,
            token=token.token,
            expires_at=token.expires_at,
            created_at=token.created_at,
            is_valid=token.is_valid,
        )

    def get_by_token(self, value: str) -> RefreshToken:
        with self._guard("get_by_token"):
            h = self.r.hgetall(self._k(value))
        if not h:
            raise NotFoundError("RefreshToken", "<redacted>")
        fields = {_s(k): v for k, v in h.items()}
        return RefreshToken(
            id=int(_s(fields.get("id"), "0")),
            user_id=int(_s(fields.get("user_id"), "0")),
            token=value,
            expires_at=self._from_ts(fields.get("expires_at")),
            created_at=self._from_ts(fields.get("created_at")),
            is_valid=_s(fields.get("is_valid"), "0") == "1",
        )

    def invalidate(self, value: str) -> bool:
        key = self._k(value)

        def _flip(p: Any) -> bool:
            if _s(p.hget(key, "is_valid")) != "1":
                p.unwatch()
                return False
            p.multi()
            p.hset(key, "is_valid", "0")
            p.execute()
            return True

        with self._guard("invalidate"):
            return self._optimistic(key, _flip)

    def invalidate_all_for_user(self, user_id: int) -> int:
        with self._guard("invalidate_all_for_user"):
            members = [_s(m) for m in self.r.smembers(self._ku(user_id))]
        return sum(1 for value in sorted(members) if self.invalidate(value))
