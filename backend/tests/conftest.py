"""Pytest fixtures for the session token service.

Each test that needs the database gets a fresh application bound to an
in-memory SQLite database. The refresh token store opens its own sessions on
the same engine, so tables are created per test instead of wrapping the test
in a SAVEPOINT that the store could not see.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import fakeredis
import pytest
from flask import Flask
from session_tokens.core.config import TestingConfig
from session_tokens.core.extensions import db as _db
from session_tokens.factory import create_app
from session_tokens.infra.jwt.pyjwt_token_codec import PyJWTTokenCodec
from session_tokens.services._shared.ports import InMemoryRefreshTokenStore
from session_tokens.services.sessions.dto import SessionConfig
from session_tokens.services.sessions.service import SessionService

SECRET = "unit-test-secret"


class TestConfig(TestingConfig):
    """Testing configuration for creating the Flask app.

    Notes
    -----
    - In-memory SQLite, SQL refresh store, no failure jitter.
    - ``REDIS_URL`` is cleared so no external service is contacted.
    """

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    REDIS_URL = None
    LOG_LEVEL = "WARNING"


class Clock:
    """Mutable UTC clock injected into codecs and services.

    Starts at the real current time: PyJWT checks ``exp`` against the wall
    clock, so signing clocks must stay close to it.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def app() -> Iterator[Flask]:
    """Create a Flask application configured for testing, with tables created."""
    # Ensure env-based config does not leak into tests
    os.environ.pop("DATABASE_URL", None)
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def db(app):
    """Database extension bound to the testing application."""
    return _db


@pytest.fixture()
def session(db):
    """Flask-scoped session, also wired into Factory Boy."""
    from tests.factories import SQLAlchemySession

    SQLAlchemySession.set(db.session)
    yield db.session
    SQLAlchemySession.set(None)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def session_config() -> SessionConfig:
    return SessionConfig(
        secret=SECRET,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


@pytest.fixture()
def memory_store() -> InMemoryRefreshTokenStore:
    return InMemoryRefreshTokenStore()


@pytest.fixture()
def fake_redis():
    """Provide a fresh FakeRedis instance for each test."""
    r = fakeredis.FakeRedis()
    r.flushall()
    return r


@pytest.fixture()
def codec(session_config, clock) -> PyJWTTokenCodec:
    return PyJWTTokenCodec(secret=session_config.secret, ttl=session_config.access_ttl, clock=clock)


@pytest.fixture()
def session_service(codec, memory_store, session_config, clock) -> SessionService:
    """SessionService wired to the in-memory store and the shared test clock."""
    return SessionService(codec=codec, store=memory_store, config=session_config, clock=clock)


@pytest.fixture()
def freeze_time() -> Callable[[str | None], Any]:
    """Factory returning :func:`freezegun.freeze_time`.

    Examples
    --------
    >>> def test_with_frozen_time(freeze_time):
    ...     with freeze_time("2024-01-01"):
    ...         ...
    """

    from freezegun import freeze_time as _freeze_time

    def _factory(target: str | None = None) -> Any:
        return _freeze_time(target or "2024-01-01")

    return _factory
