"""Unit tests for the failure jitter applied by the HTTP error layer."""

from __future__ import annotations

from session_tokens.core import errors


def test_jitter_disabled_when_range_is_zero(app, monkeypatch):
    slept: list[float] = []
    monkeypatch.setattr(errors.time, "sleep", slept.append)
    app.config["AUTH_FAILURE_JITTER_MS"] = "0"

    assert errors.apply_failure_jitter() == 0.0
    assert slept == []


def test_jitter_stays_within_configured_bounds(app, monkeypatch):
    slept: list[float] = []
    monkeypatch.setattr(errors.time, "sleep", slept.append)
    app.config["AUTH_FAILURE_JITTER_MS"] = "100-300"

    for _ in range(25):
        errors.apply_failure_jitter()

    assert len(slept) == 25
    assert all(0.1 <= s <= 0.3 for s in slept)


def test_every_unauthorized_response_is_delayed(app, client, monkeypatch):
    slept: list[float] = []
    monkeypatch.setattr(errors.time, "sleep", slept.append)
    app.config["AUTH_FAILURE_JITTER_MS"] = "5-5"

    client.get("/api/v1/auth/me")
    client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    client.post("/api/v1/auth/refresh", json={"refresh_token": "unknown"})
    client.post("/api/v1/auth/login", json={"email": "no@example.com", "password": "whatever"})

    assert slept == [0.005] * 4
