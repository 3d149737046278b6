"""Convenience exports for request/response schemas."""

from __future__ import annotations

from .auth import (
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    RegisterSchema,
    TokenResponseSchema,
    WhoAmISchema,
)

__all__ = [
    "LoginSchema",
    "LogoutSchema",
    "RefreshSchema",
    "RegisterSchema",
    "TokenResponseSchema",
    "WhoAmISchema",
]
