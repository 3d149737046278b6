"""
SQLAlchemy implementation of UnitOfWork for Flask.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from session_tokens.core.extensions import db
from session_tokens.repositories import UserRepository
from session_tokens.uow.base import UnitOfWork


class SQLAlchemyUnitOfWork(UnitOfWork):
    """
    UoW over the Flask-scoped session.

    :param read_only: When ``True`` the scope always rolls back on exit and
        :meth:`commit` is refused, so lookups can never persist stray changes.
    """

    def __init__(self, *, read_only: bool = False, session: Session | None = None) -> None:
        self.session: Session = session if session is not None else db.session
        self.read_only = read_only
        self.users = UserRepository(session=self.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None and not self.read_only:
            try:
                self.commit()
            except Exception:
                self.rollback()
                raise
        else:
            self.rollback()

    def commit(self) -> None:
        if self.read_only:
            raise RuntimeError("Read-only UnitOfWork does not allow commit().")
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
