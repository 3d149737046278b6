# session_tokens/infra/sql/sqlalchemy_refresh_token_store.py
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from session_tokens.models.refresh_token import RefreshTokenRecord
from session_tokens.services._shared.errors import NotFoundError, StorageError
from session_tokens.services._shared.ports import (
    DEFAULT_STORE_TIMEOUT_SECONDS,
    RefreshTokenStore,
)
from session_tokens.services.sessions.dto import RefreshToken

log = logging.getLogger(__name__)


def _aware(dt: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip; values are always written in UTC.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


class SQLAlchemyRefreshTokenStore(RefreshTokenStore):
    """
    Relational refresh token store.

    Each call runs in its own short transaction obtained from
    ``session_factory`` and commits before returning, so a token write is
    never left half-applied when the caller abandons the request.

    :param session_factory: Callable returning a new :class:`~sqlalchemy.orm.Session`
        (typically a ``sessionmaker`` bound to the application engine).
    :param timeout_seconds: Per-call bound. Enforced server-side on PostgreSQL
        (``SET LOCAL statement_timeout``). Connection checkout and connect are
        bounded by the engine options from :func:`~session_tokens.core.config.sql_engine_options`.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    # -------------------- helpers --------------------

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        """Open a bounded transaction and translate driver failures to StorageError."""
        try:
            with self._session_factory() as session, session.begin():
                self._apply_timeout(session)
                yield session
        except IntegrityError as exc:
            log.error(
                "refresh_store.integrity_error",
                extra={"event": "refresh_store.integrity_error", "operation": operation},
            )
            raise StorageError(operation, "refresh token constraint violated") from exc
        except SQLAlchemyError as exc:
            log.error(
                "refresh_store.backend_error",
                extra={"event": "refresh_store.backend_error", "operation": operation},
                exc_info=True,
            )
            raise StorageError(operation, type(exc).__name__) from exc

    def _apply_timeout(self, session: Session) -> None:
        if session.get_bind().dialect.name == "postgresql":
            ms = max(1, int(self.timeout_seconds * 1000))
            session.execute(text(f"SET LOCAL statement_timeout = {ms}"))

    @staticmethod
    def _to_entity(row: RefreshTokenRecord) -> RefreshToken:
        return RefreshToken(
            id=row.id,
            user_id=row.user_id,
            token=row.token,
            expires_at=_aware(row.expires_at),
            created_at=_aware(row.created_at),
            is_valid=bool(row.is_valid),
        )

    # -------------------- API ------------------------

    def create(self, token: RefreshToken) -> RefreshToken:
        with self._transaction("create") as session:
            row = RefreshTokenRecord(
                user_id=token.user_id,
                token=token.token,
                expires_at=token.expires_at,
                created_at=token.created_at,
                is_valid=token.is_valid,
            )
            session.add(row)
            session.flush()
            created = self._to_entity(row)
        return created

    def get_by_token(self, value: str) -> RefreshToken:
        with self._transaction("get_by_token") as session:
            row = session.execute(
                select(RefreshTokenRecord).where(RefreshTokenRecord.token == value)
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError("RefreshToken", "<redacted>")
            found = self._to_entity(row)
        return found

    def invalidate(self, value: str) -> bool:
        # Conditional update: the WHERE on is_valid makes check-and-flip one
        # atomic row operation, so only one concurrent caller sees rowcount 1.
        stmt = (
            update(RefreshTokenRecord)
            .where(RefreshTokenRecord.token == value, RefreshTokenRecord.is_valid.is_(True))
            .values(is_valid=False)
            .execution_options(synchronize_session=False)
        )
        with self._transaction("invalidate") as session:
            result = session.execute(stmt)
        return result.rowcount == 1

    def invalidate_all_for_user(self, user_id: int) -> int:
        stmt = (
            update(RefreshTokenRecord)
            .where(RefreshTokenRecord.user_id == user_id, RefreshTokenRecord.is_valid.is_(True))
            .values(is_valid=False)
            .execution_options(synchronize_session=False)
        )
        with self._transaction("invalidate_all_for_user") as session:
            result = session.execute(stmt)
        return int(result.rowcount or 0)
