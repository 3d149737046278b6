# session_tokens/services/auth/service.py
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from session_tokens.models.user import User
from session_tokens.repositories.user import UserRepository
from session_tokens.services._shared.base import BaseService, RequestIdentity
from session_tokens.services._shared.errors import (
    ConflictError,
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    StorageError,
    violates,
)
from session_tokens.services._shared.ports import UserDirectory
from session_tokens.services.auth.dto import (
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    UserOut,
)
from session_tokens.services.sessions.dto import IssuedSession
from session_tokens.services.sessions.service import SessionService

log = logging.getLogger(__name__)


class AuthService(BaseService):
    """
    Account use-cases on top of the session engine (register / login /
    refresh / logout / whoami).

    The service owns user lookups (via the Unit of Work) and delegates every
    token decision to :class:`SessionService`. Store calls are always made
    after the user transaction has closed, so the two persistence scopes never
    interleave.
    """

    def __init__(self, *, sessions: SessionService) -> None:
        """
        :param sessions: Shared token lifecycle engine.
        """
        super().__init__()
        self.sessions = sessions

    # ------------------------------------------------------------------ #
    # Register / Login
    # ------------------------------------------------------------------ #

    def register(self, dto: RegisterIn) -> IssuedSession:
        """
        Create an account and issue its first session.

        :raises ConflictError: Email already registered.
        :raises StorageError: Refresh token could not be persisted.
        """
        try:
            with self.rw_uow() as uow:
                repo: UserRepository = uow.users
                if repo.exists_by_email(dto.email):
                    raise ConflictError("User", "email already registered")
                user = repo.add(User(name=dto.name, email=dto.email, password=dto.password))
                account = UserOut(id=user.id, name=user.name, email=user.email)
        except IntegrityError as exc:
            # Concurrent registration of the same email
            if violates(exc, "uq_users_email") or violates(exc, "users.email"):
                raise ConflictError("User", "email already registered") from exc
            raise

        log.info("user.registered", extra={"event": "user.registered", "user_id": account.id})
        return self.sessions.issue_session(account)

    def login(self, dto: LoginIn) -> IssuedSession:
        """
        Verify credentials and issue a session.

        :raises InvalidCredentialsError: Unknown email or wrong password
            (indistinguishable on purpose).
        """
        with self.ro_uow() as uow:
            repo: UserRepository = uow.users
            user = repo.authenticate(dto.email, dto.password)
            if user is None:
                log.warning("auth.login_failed", extra={"event": "auth.login_failed"})
                raise InvalidCredentialsError()
            account = UserOut(id=user.id, name=user.name, email=user.email)

        return self.sessions.issue_session(account)

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    def refresh(self, dto: RefreshIn) -> IssuedSession:
        """
        Rotate a refresh token.

        The email embedded in the new access token comes from the bearer
        token when it still verifies and belongs to the same user; otherwise
        it is read from the refresh token's owner.

        :raises InvalidTokenError: Refresh token unknown, used, revoked,
            expired, or its owner no longer exists.
        """
        owner_id = self._owner_of(dto.refresh_token)
        email = self._email_from_bearer(dto.bearer_token, owner_id)
        if email is None:
            email = self._email_of(owner_id)
        return self.sessions.rotate(dto.refresh_token, email)

    # ------------------------------------------------------------------ #
    # Logout / Whoami
    # ------------------------------------------------------------------ #

    def logout(self, dto: LogoutIn) -> int:
        """
        Revoke every refresh token of the caller.

        An expired bearer token is tolerated when the body carries a refresh
        token owned by the bearer's subject; that user is then signed out.
        Store failures are logged and swallowed so logout always completes.

        :returns: Number of tokens revoked (``0`` when the store failed).
        :raises ExpiredTokenError: Bearer expired and no refresh token given.
        :raises InvalidTokenError: Bearer token rejected, or the fallback
            refresh token is unknown or belongs to someone else.
        """
        expired_holder: int | None = None
        try:
            user_id = self.sessions.validate_access(dto.bearer_token).user_id
        except ExpiredTokenError as exc:
            if not dto.refresh_token or exc.claims is None:
                raise
            user_id = expired_holder = exc.claims.user_id

        try:
            if expired_holder is not None and self._owner_of(dto.refresh_token) != expired_holder:
                raise InvalidTokenError()
            return self.sessions.revoke_all(user_id)
        except StorageError as exc:
            log.error(
                "session.revoke_all_failed",
                extra={
                    "event": "session.revoke_all_failed",
                    "user_id": user_id,
                    "operation": exc.operation,
                },
                exc_info=True,
            )
            return 0

    def whoami(self, identity: RequestIdentity) -> UserOut:
        """
        Return the public profile of the authenticated user.

        :raises NotFoundError: The user was deleted after the token was issued.
        """
        with self.ro_uow() as uow:
            user = uow.users.get_by_id(identity.user_id)
            if user is None:
                raise NotFoundError("User", identity.user_id)
            return UserOut(id=user.id, name=user.name, email=user.email)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _owner_of(self, refresh_value: str) -> int:
        try:
            return self.sessions.store.get_by_token(refresh_value).user_id
        except NotFoundError as exc:
            raise InvalidTokenError() from exc

    def _email_from_bearer(self, bearer: str | None, owner_id: int) -> str | None:
        if not bearer:
            return None
        try:
            claims = self.sessions.validate_access(bearer)
        except (InvalidTokenError, ExpiredTokenError):
            return None
        return claims.email if claims.user_id == owner_id else None

    def _email_of(self, user_id: int) -> str:
        with self.ro_uow() as uow:
            directory: UserDirectory = uow.users
            user = directory.get_by_id(user_id)
            if user is None:
                raise InvalidTokenError()
            return user.email
