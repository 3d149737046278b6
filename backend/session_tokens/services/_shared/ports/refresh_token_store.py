from __future__ import annotations

import threading
from dataclasses import replace
from typing import Protocol

from session_tokens.services._shared.errors import NotFoundError, StorageError
from session_tokens.services.sessions.dto import RefreshToken

# Per-call bound applied by durable adapters.
DEFAULT_STORE_TIMEOUT_SECONDS = 5.0


class RefreshTokenStore(Protocol):
    """
    Durable store for opaque refresh tokens.

    Every call is a blocking I/O operation bounded by a per-call timeout.
    Timeouts and backend failures surface as
    :class:`~session_tokens.services._shared.errors.StorageError`; nothing is
    retried internally, callers decide.
    """

    def create(self, token: RefreshToken) -> RefreshToken:
        """
        Persist a new token and return it with its store-assigned ``id``.

        :raises StorageError: On backend failure or duplicate token value.
        """
        ...

    def get_by_token(self, value: str) -> RefreshToken:
        """
        Exact-match lookup on the token string.

        :raises NotFoundError: When no row holds ``value``.
        :raises StorageError: On backend failure.
        """
        ...

    def invalidate(self, value: str) -> bool:
        """
        Mark the token invalid only if it is currently valid.

        Idempotent: absent or already-invalid tokens are not an error.

        :returns: ``True`` if this call flipped the row, ``False`` otherwise.
        """
        ...

    def invalidate_all_for_user(self, user_id: int) -> int:
        """
        Mark every valid token of ``user_id`` invalid.

        :returns: Number of rows flipped by this call.
        """
        ...


class InMemoryRefreshTokenStore(RefreshTokenStore):
    """
    In-memory refresh token store with the same atomicity contract.

    .. note::
       Uses a threading lock so the conditional invalidate behaves like a
       single-row ``UPDATE ... WHERE is_valid`` in tests.
    """

    def __init__(self) -> None:
        self._by_token: dict[str, RefreshToken] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def create(self, token: RefreshToken) -> RefreshToken:
        with self._lock:
            if token.token in self._by_token:
                raise StorageError("create", "duplicate refresh token value")
            self._seq += 1
            stored = replace(token, id=self._seq)
            self._by_token[token.token] = stored
            return replace(stored)

    def get_by_token(self, value: str) -> RefreshToken:
        with self._lock:
            stored = self._by_token.get(value)
            if stored is None:
                raise NotFoundError("RefreshToken", "<redacted>")
            return replace(stored)

    def invalidate(self, value: str) -> bool:
        with self._lock:
            stored = self._by_token.get(value)
            if stored is None or not stored.is_valid:
                return False
            stored.invalidate()
            return True

    def invalidate_all_for_user(self, user_id: int) -> int:
        with self._lock:
            flipped = 0
            for stored in self._by_token.values():
                if stored.user_id == user_id and stored.is_valid:
                    stored.invalidate()
                    flipped += 1
            return flipped

    def tokens_for_user(self, user_id: int) -> list[RefreshToken]:
        """Return copies of every token owned by ``user_id`` (test helper)."""
        with self._lock:
            return [replace(t) for t in self._by_token.values() if t.user_id == user_id]
