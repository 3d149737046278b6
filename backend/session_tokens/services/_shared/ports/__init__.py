"""
session_tokens.services._shared.ports
=====================================

Collection of *ports* (hexagonal interfaces) that define the contracts for
token signing, refresh-token persistence and user lookup.

Modules
-------
- :mod:`token_codec`:
    Defines :class:`~.TokenCodec` for signing and verification of access tokens.

- :mod:`refresh_token_store`:
    Defines :class:`~.RefreshTokenStore` and the lock-based
    :class:`~.InMemoryRefreshTokenStore` used by unit tests.

- :mod:`user_directory`:
    Defines :class:`~.UserDirectory` for lookup of users by id or email.

Concrete adapters (PyJWT, SQLAlchemy, Redis) live under
``session_tokens.infra``.
"""

from __future__ import annotations

from .refresh_token_store import (
    DEFAULT_STORE_TIMEOUT_SECONDS,
    InMemoryRefreshTokenStore,
    RefreshTokenStore,
)
from .token_codec import TokenCodec
from .user_directory import UserDirectory, UserRecord

__all__ = [
    "DEFAULT_STORE_TIMEOUT_SECONDS",
    "InMemoryRefreshTokenStore",
    "RefreshTokenStore",
    "TokenCodec",
    "UserDirectory",
    "UserRecord",
]
