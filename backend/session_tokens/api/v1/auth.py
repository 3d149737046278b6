"""Authentication endpoints using the service layer."""

from __future__ import annotations

from flask import Blueprint, request

from session_tokens.api.deps import (
    bearer_token,
    get_auth_service,
    json_response,
    require_auth,
    timing,
)
from session_tokens.schemas import (
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    RegisterSchema,
    TokenResponseSchema,
    WhoAmISchema,
)
from session_tokens.services._shared.base import RequestIdentity
from session_tokens.services.auth.dto import LoginIn, LogoutIn, RefreshIn, RegisterIn

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshSchema()
logout_schema = LogoutSchema()
token_schema = TokenResponseSchema()
whoami_schema = WhoAmISchema()


def _body() -> dict:
    return request.get_json(silent=True) or {}


@bp.post("/register")
@timing
def register():
    """Create an account and return its first token pair."""

    data = register_schema.load(_body())
    issued = get_auth_service().register(RegisterIn(**data))
    return json_response(token_schema.dump(issued.as_response()), status=201)


@bp.post("/login")
@timing
def login():
    """Authenticate credentials and issue a token pair."""

    data = login_schema.load(_body())
    issued = get_auth_service().login(LoginIn(**data))
    return json_response(token_schema.dump(issued.as_response()))


@bp.post("/refresh")
@timing
def refresh():
    """Exchange a refresh token for a new pair; the old token stops working."""

    data = refresh_schema.load(_body())
    dto = RefreshIn(refresh_token=data["refresh_token"], bearer_token=bearer_token(required=False))
    issued = get_auth_service().refresh(dto)
    return json_response(token_schema.dump(issued.as_response()))


@bp.post("/logout")
@timing
def logout():
    """Revoke every refresh token of the caller."""

    token = bearer_token()
    data = logout_schema.load(_body())
    get_auth_service().logout(LogoutIn(bearer_token=token or "", refresh_token=data["refresh_token"]))
    return "", 204


@bp.get("/me")
@require_auth
@timing
def me(identity: RequestIdentity):
    """Return identity details for the authenticated user."""

    user = get_auth_service().whoami(identity)
    return json_response(whoami_schema.dump(user))
