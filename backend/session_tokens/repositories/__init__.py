"""Repository package exposing persistence-layer access for the user model."""

from __future__ import annotations

from session_tokens.repositories.base import BaseRepository
from session_tokens.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
]
