"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import redis
from flask import Flask
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from redis.exceptions import RedisError
from sqlalchemy import MetaData
from sqlalchemy.orm import sessionmaker

if TYPE_CHECKING:
    from session_tokens.services._shared.ports import RefreshTokenStore
    from session_tokens.services.sessions.service import SessionService

# Global naming convention for all constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singletons (import-safe)
db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
migrate = Migrate(render_as_batch=True)


def init_app(app: Flask) -> None:
    """Initialize SQLAlchemy, migrations, Redis and the session service.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. The session service is
        stored in ``app.extensions["session_service"]``.
    """
    _bound_engine_options(app)
    db.init_app(app)

    # Ensure models are imported so Alembic sees metadata
    from session_tokens import models as _models  # noqa: F401

    migrate.init_app(app, db)

    app.extensions["redis_client"] = _connect_redis(app)
    app.extensions["session_service"] = build_session_service(app)


def _bound_engine_options(app: Flask) -> None:
    """Merge the store timeout into ``SQLALCHEMY_ENGINE_OPTIONS``; explicit settings win."""
    from session_tokens.core.config import sql_engine_options

    timeout = float(app.config.get("REFRESH_STORE_TIMEOUT_SECONDS", 5.0))
    bounded = sql_engine_options(app.config["SQLALCHEMY_DATABASE_URI"], timeout)
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    connect_args = {**bounded.pop("connect_args", {}), **options.get("connect_args", {})}
    options = {**bounded, **options}
    if connect_args:
        options["connect_args"] = connect_args
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options


def build_refresh_store(app: Flask) -> RefreshTokenStore:
    """Select the refresh token store adapter from ``REFRESH_TOKEN_BACKEND``.

    ``sql`` (default) uses the application database; ``redis`` requires
    ``REDIS_URL``. Unknown values fail fast at startup.
    """
    # Imported here: the SQL store maps models that depend on ``db`` above.
    from session_tokens.infra.redis.redis_refresh_token_store import RedisRefreshTokenStore
    from session_tokens.infra.sql.sqlalchemy_refresh_token_store import (
        SQLAlchemyRefreshTokenStore,
    )

    timeout = float(app.config.get("REFRESH_STORE_TIMEOUT_SECONDS", 5.0))
    backend = str(app.config.get("REFRESH_TOKEN_BACKEND", "sql")).lower()

    if backend == "redis":
        return RedisRefreshTokenStore(r=get_redis(app))
    if backend == "sql":
        return SQLAlchemyRefreshTokenStore(
            session_factory=sql_session_factory(app), timeout_seconds=timeout
        )
    raise RuntimeError(
        f"Unknown REFRESH_TOKEN_BACKEND {backend!r} (expected 'sql' or 'redis')."
    )


def build_session_service(app: Flask) -> SessionService:
    """Wire codec, refresh store and config into one shared :class:`SessionService`."""
    from session_tokens.core.config import session_config_from_mapping
    from session_tokens.infra.jwt.pyjwt_token_codec import PyJWTTokenCodec
    from session_tokens.services.sessions.service import SessionService

    cfg = session_config_from_mapping(app.config)
    return SessionService(
        codec=PyJWTTokenCodec.from_config(cfg),
        store=build_refresh_store(app),
        config=cfg,
    )


def get_session_service(app: Flask) -> SessionService:
    """Return the process-wide session service."""
    service = app.extensions.get("session_service")
    if service is None:
        raise RuntimeError("Session service is not initialized. Call init_app() first.")
    return service


def _connect_redis(app: Flask) -> redis.Redis | None:
    """Create a Redis client bounded by the refresh store timeout, if configured."""
    redis_url = app.config.get("REDIS_URL")
    if not redis_url:
        return None

    timeout = float(app.config.get("REFRESH_STORE_TIMEOUT_SECONDS", 5.0))
    client = redis.Redis.from_url(
        redis_url,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
    try:
        client.ping()
    except RedisError as exc:
        raise RuntimeError(f"Failed to connect to Redis at {redis_url!r}") from exc
    return client


def get_redis(app: Flask) -> redis.Redis:
    """Return the initialized Redis client."""
    client = app.extensions.get("redis_client")
    if client is None:
        raise RuntimeError("Redis client is not initialized. Set REDIS_URL.")
    return client


def sql_session_factory(app: Flask) -> sessionmaker[Any]:
    """Build a session factory bound to the app engine, outside Flask's scoped session."""
    with app.app_context():
        engine = db.engine
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)
