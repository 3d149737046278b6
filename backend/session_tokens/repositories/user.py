"""User repository: lookup by id/email and credential checks."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from session_tokens.models.user import User
from session_tokens.repositories.base import BaseRepository


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    Implements the ``UserDirectory`` port consumed by the session layer. It
    NEVER issues or validates tokens.
    """

    model = User

    def get_by_id(self, user_id: int) -> User | None:
        """Fetch a user by primary key, ``None`` when absent."""
        return self.get(user_id)

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive).

        :param email: Email address to normalise and search.
        :returns: User instance or ``None`` when not found.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        return cast(User | None, self.session.execute(stmt).scalars().first())

    def exists_by_email(self, email: str) -> bool:
        stmt = select(User.id).where(User.email == normalize_email(email))
        return bool(self.session.execute(stmt).first())

    def authenticate(self, email: str, password: str) -> User | None:
        """Return the user when ``password`` matches, else ``None``.

        Unknown email and wrong password are indistinguishable to the caller.
        """
        user = self.get_by_email(email)
        if not user or not user.verify_password(password):
            return None
        return user
