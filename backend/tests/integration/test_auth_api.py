"""End-to-end HTTP flows through the Flask test client (SQL refresh store)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from flask import Flask
from flask.testing import FlaskClient
from session_tokens.core.extensions import get_session_service
from session_tokens.infra.jwt.pyjwt_token_codec import PyJWTTokenCodec

from tests.factories.user import DEFAULT_PASSWORD, UserFactory

BASE = "/api/v1/auth"


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _login(client: FlaskClient, email: str, password: str = DEFAULT_PASSWORD) -> dict:
    resp = client.post(f"{BASE}/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


def _expired_access(app: Flask, user_id: int, email: str) -> str:
    secret = get_session_service(app).cfg.secret
    past = datetime.now(UTC) - timedelta(hours=1)
    return PyJWTTokenCodec(secret=secret, ttl=timedelta(minutes=1), clock=lambda: past).sign(user_id, email)


@pytest.fixture()
def user(session):
    return UserFactory(email="jane@example.com", name="Jane")


# ------------------------------ Register ---------------------------------- #
def test_register_returns_token_pair(client):
    resp = client.post(
        f"{BASE}/register",
        json={"name": "New", "email": "new@example.com", "password": "s3cretpass"},
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert set(body) == {"access_token", "refresh_token", "expires_in", "token_type"}
    assert body["token_type"] == "Bearer"
    assert body["expires_in"] == 900


def test_register_duplicate_email_is_409(client, user):
    resp = client.post(
        f"{BASE}/register",
        json={"name": "Dup", "email": "JANE@example.com", "password": "s3cretpass"},
    )

    assert resp.status_code == 409
    assert resp.mimetype == "application/problem+json"
    assert resp.get_json()["code"] == "conflict"


def test_register_validation_is_400(client):
    resp = client.post(f"{BASE}/register", json={"email": "not-an-email", "password": "x"})

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "validation_error"
    assert {"name", "email", "password"} <= set(body["details"]["errors"])


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"name": "Al", "email": "al@localhost", "password": "longenough1"}, "email"),
        ({"name": "   ", "email": "al@example.com", "password": "longenough1"}, "name"),
    ],
    ids=["dotless-domain", "blank-name"],
)
def test_register_rejects_input_the_user_model_refuses(client, payload, field):
    resp = client.post(f"{BASE}/register", json=payload)

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "validation_error"
    assert set(body["details"]["errors"]) == {field}


# -------------------------------- Login ----------------------------------- #
def test_login_and_me(client, user):
    tokens = _login(client, "jane@example.com")

    resp = client.get(f"{BASE}/me", headers=_bearer(tokens["access_token"]))

    assert resp.status_code == 200
    assert resp.get_json() == {"id": user.id, "name": "Jane", "email": "jane@example.com"}


@pytest.mark.parametrize(
    "email, password",
    [("jane@example.com", "wrong-password"), ("ghost@example.com", DEFAULT_PASSWORD)],
)
def test_login_failures_share_one_response(client, user, email, password):
    resp = client.post(f"{BASE}/login", json={"email": email, "password": password})

    assert resp.status_code == 401
    body = resp.get_json()
    assert body["detail"] == "Invalid credentials"
    assert body["code"] == "invalid_credentials"
    assert body["request_id"]


# ------------------------------- Refresh ---------------------------------- #
def test_refresh_rotates_and_old_token_stops_working(client, user):
    tokens = _login(client, "jane@example.com")

    first = client.post(f"{BASE}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert first.status_code == 200
    rotated = first.get_json()
    assert rotated["refresh_token"] != tokens["refresh_token"]

    again = client.post(f"{BASE}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert again.status_code == 401
    assert again.get_json()["code"] == "invalid_token"

    me = client.get(f"{BASE}/me", headers=_bearer(rotated["access_token"]))
    assert me.get_json()["email"] == "jane@example.com"


def test_refresh_requires_body(client):
    resp = client.post(f"{BASE}/refresh", json={})

    assert resp.status_code == 400


# -------------------------------- Logout ---------------------------------- #
def test_logout_revokes_refresh_tokens(client, user):
    tokens = _login(client, "jane@example.com")

    resp = client.post(f"{BASE}/logout", headers=_bearer(tokens["access_token"]))
    assert resp.status_code == 204

    after = client.post(f"{BASE}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert after.status_code == 401


def test_logout_with_expired_bearer_uses_body_token(app, client, user):
    tokens = _login(client, "jane@example.com")
    expired = _expired_access(app, user.id, user.email)

    resp = client.post(
        f"{BASE}/logout",
        headers=_bearer(expired),
        json={"refresh_token": tokens["refresh_token"]},
    )
    assert resp.status_code == 204

    after = client.post(f"{BASE}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert after.status_code == 401


def test_logout_with_expired_bearer_cannot_sign_out_another_user(app, client, user):
    other = UserFactory(email="other@example.com")
    victim_tokens = _login(client, "other@example.com")
    expired = _expired_access(app, user.id, user.email)

    resp = client.post(
        f"{BASE}/logout",
        headers=_bearer(expired),
        json={"refresh_token": victim_tokens["refresh_token"]},
    )
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "invalid_token"

    still = client.post(f"{BASE}/refresh", json={"refresh_token": victim_tokens["refresh_token"]})
    assert still.status_code == 200
    assert still.get_json()["token_type"] == "Bearer"
    assert other.id != user.id


def test_logout_without_bearer_is_401(client):
    resp = client.post(f"{BASE}/logout")

    assert resp.status_code == 401


# ------------------------------ Access tokens ----------------------------- #
def test_me_with_expired_token_reports_expiry(app, client, user):
    resp = client.get(f"{BASE}/me", headers=_bearer(_expired_access(app, user.id, user.email)))

    assert resp.status_code == 401
    assert resp.get_json()["code"] == "token_expired"


@pytest.mark.parametrize(
    "header",
    ["Bearer garbage", "Basic abc", "Bearer "],
    ids=["garbage", "wrong-scheme", "empty"],
)
def test_me_rejects_bad_authorization_headers(client, header):
    resp = client.get(f"{BASE}/me", headers={"Authorization": header})

    assert resp.status_code == 401
    assert resp.mimetype == "application/problem+json"


def test_request_id_is_echoed(client):
    resp = client.get(f"{BASE}/me", headers={"X-Request-ID": "req-123"})

    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.get_json()["request_id"] == "req-123"


# ------------------------------ Storage errors ---------------------------- #
def test_store_failure_is_opaque_500(app, client, user, monkeypatch):
    from session_tokens.services._shared.errors import StorageError

    def boom(token):
        raise StorageError("create", "connection refused at 10.0.0.5")

    monkeypatch.setattr(get_session_service(app).store, "create", boom)

    resp = client.post(f"{BASE}/login", json={"email": "jane@example.com", "password": DEFAULT_PASSWORD})

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["detail"] == "Unexpected error"
    assert "10.0.0.5" not in resp.get_data(as_text=True)
