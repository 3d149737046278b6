# session_tokens/services/_shared/base.py
from __future__ import annotations

from dataclasses import dataclass

from session_tokens.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork


@dataclass(frozen=True, slots=True)
class RequestIdentity:
    """
    Authenticated caller, produced by access-token validation.

    Passed explicitly into views and services instead of living in ambient
    request state.

    :param user_id: Subject user id.
    :param email: Email claim of the access token.
    """

    user_id: int
    email: str


class BaseService:
    """
    Base class for application services that touch the user tables.

    Responsibilities
    ----------------
    * Provide read-write and read-only Units of Work.
    * Keep services orchestration-only: no Flask request objects, no HTTP.
    """

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """
        Create a read-write Unit of Work (commits on clean exit).

        :rtype: SQLAlchemyUnitOfWork
        """
        return SQLAlchemyUnitOfWork()

    def ro_uow(self) -> SQLAlchemyUnitOfWork:
        """
        Create a read-only Unit of Work (always rolls back).

        :rtype: SQLAlchemyUnitOfWork
        """
        return SQLAlchemyUnitOfWork(read_only=True)
