# session_tokens/services/auth/dto.py
from __future__ import annotations

from dataclasses import dataclass

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class RegisterIn:
    """
    Input DTO for account registration.

    :param name: Display name.
    :type name: str
    :param email: User email (normalized by the model).
    :type email: str
    :param password: Raw password (hashed by the model setter).
    :type password: str
    """

    name: str
    email: str
    password: str


@dataclass(frozen=True, slots=True)
class LoginIn:
    """
    Input DTO for login.

    :param email: User email.
    :type email: str
    :param password: Raw password to verify.
    :type password: str
    """

    email: str
    password: str


@dataclass(frozen=True, slots=True)
class RefreshIn:
    """
    Input DTO for token refresh.

    :param refresh_token: Opaque refresh token value.
    :type refresh_token: str
    :param bearer_token: Access token from the ``Authorization`` header, if
        any; used only to recover the email claim (may be expired).
    :type bearer_token: str | None
    """

    refresh_token: str
    bearer_token: str | None = None


@dataclass(frozen=True, slots=True)
class LogoutIn:
    """
    Input DTO for logout.

    :param bearer_token: Access token from the ``Authorization`` header.
    :type bearer_token: str
    :param refresh_token: Optional refresh token from the body; identifies the
        user when the access token has already expired.
    :type refresh_token: str | None
    """

    bearer_token: str
    refresh_token: str | None = None


# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class UserOut:
    """Public-safe user representation."""

    id: int
    name: str
    email: str
