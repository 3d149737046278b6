from __future__ import annotations

from typing import Protocol


class UserRecord(Protocol):
    """Minimal user shape the session layer needs."""

    id: int
    email: str


class UserDirectory(Protocol):
    """
    Read-only lookup of user accounts owned by the user repository.

    Both methods return ``None`` when the user does not exist.
    """

    def get_by_id(self, user_id: int) -> UserRecord | None: ...

    def get_by_email(self, email: str) -> UserRecord | None: ...
