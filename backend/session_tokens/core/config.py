"""Application settings with environment-based simple classes."""

from __future__ import annotations

import logging
import math
import os
import re
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Final

from dotenv import load_dotenv
from sqlalchemy.engine import make_url

from session_tokens.services.sessions.dto import SessionConfig

# Public selector env var
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'

DEFAULT_JWT_SECRET: Final[str] = "default_secret_key_change_in_production"
DEFAULT_ACCESS_TTL: Final[timedelta] = timedelta(minutes=15)
DEFAULT_REFRESH_TTL: Final[timedelta] = timedelta(days=7)

log = logging.getLogger(__name__)

# Load .env in development (no-op when absent)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset.

    Returns
    -------
    bool
        ``True`` for ``{"1", "true", "yes", "y", "on"}`` ignoring case.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_float(name: str, default: float) -> float:
    """Parse a float from the environment, falling back to ``default``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Invalid %s=%r; using default %s", name, raw, default)
        return default


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, "d": 86400.0}


def parse_duration(raw: str | int | float | timedelta | None) -> timedelta | None:
    """Parse a duration string such as ``"15m"``, ``"1h30m"`` or ``"168h"``.

    Bare numbers are read as seconds. Returns ``None`` when the value is
    missing, unparseable or not strictly positive.
    """
    if raw is None:
        return None
    if isinstance(raw, timedelta):
        return raw if raw > timedelta(0) else None
    if isinstance(raw, int | float):
        return timedelta(seconds=raw) if raw > 0 else None

    text = raw.strip().lower()
    if not text:
        return None
    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                return None
            seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            pos = match.end()
        if pos != len(text):
            return None
    return timedelta(seconds=seconds) if seconds > 0 else None


def session_config_from_mapping(source: Mapping[str, Any]) -> SessionConfig:
    """Resolve the immutable :class:`SessionConfig` from a config mapping.

    Reads ``JWT_SECRET``, ``JWT_EXPIRY`` and ``REFRESH_TOKEN_EXPIRY``. Each
    missing or unparseable value falls back to its documented default and
    logs a WARNING so a production deployment never silently runs on it.
    """
    secret = source.get("JWT_SECRET") or ""
    if not secret:
        log.warning(
            "JWT_SECRET not set; using the built-in default secret",
            extra={"event": "config.fallback", "setting": "JWT_SECRET"},
        )
        secret = DEFAULT_JWT_SECRET

    access_ttl = parse_duration(source.get("JWT_EXPIRY"))
    if access_ttl is None:
        log.warning(
            "JWT_EXPIRY invalid or not set (%r); defaulting to 15 minutes",
            source.get("JWT_EXPIRY"),
            extra={"event": "config.fallback", "setting": "JWT_EXPIRY"},
        )
        access_ttl = DEFAULT_ACCESS_TTL

    refresh_ttl = parse_duration(source.get("REFRESH_TOKEN_EXPIRY"))
    if refresh_ttl is None:
        log.warning(
            "REFRESH_TOKEN_EXPIRY invalid or not set (%r); defaulting to 7 days",
            source.get("REFRESH_TOKEN_EXPIRY"),
            extra={"event": "config.fallback", "setting": "REFRESH_TOKEN_EXPIRY"},
        )
        refresh_ttl = DEFAULT_REFRESH_TTL

    return SessionConfig(secret=secret, access_ttl=access_ttl, refresh_ttl=refresh_ttl)


def parse_jitter_range(raw: str | tuple[int, int] | None) -> tuple[int, int]:
    """Parse ``AUTH_FAILURE_JITTER_MS`` (``"100-300"``, ``"0"``) into a ms range."""
    if raw is None:
        return (100, 300)
    if isinstance(raw, tuple):
        low, high = raw
    else:
        parts = [p.strip() for p in str(raw).split("-", 1)]
        try:
            low = int(parts[0])
            high = int(parts[1]) if len(parts) == 2 else low
        except ValueError:
            log.warning("Invalid AUTH_FAILURE_JITTER_MS=%r; using 100-300", raw)
            return (100, 300)
    low, high = max(0, low), max(0, high)
    return (min(low, high), max(low, high))


def sql_engine_options(database_uri: str, timeout_seconds: float) -> dict[str, Any]:
    """Engine options bounding connection checkout and connect by the store timeout.

    ``pool_timeout`` caps the wait for a pooled connection. The connect bound
    is a driver argument: ``connect_timeout`` (whole seconds) for PostgreSQL
    and MySQL, ``timeout`` for sqlite3. In-memory SQLite runs on a
    single-connection pool that takes no ``pool_timeout``.
    """
    url = make_url(database_uri)
    backend = url.get_backend_name()
    options: dict[str, Any] = {"pool_timeout": timeout_seconds}
    if backend == "sqlite":
        if url.database in (None, "", ":memory:") or url.query.get("mode") == "memory":
            options.pop("pool_timeout")
        options["connect_args"] = {"timeout": timeout_seconds}
    elif backend in {"postgresql", "mysql", "mariadb"}:
        options["connect_args"] = {"connect_timeout": max(1, math.ceil(timeout_seconds))}
    return options


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret (unused by tokens; kept for extensions).
    JWT_SECRET: str | None
        Shared HS256 signing secret. ``None`` triggers the logged fallback.
    JWT_EXPIRY / REFRESH_TOKEN_EXPIRY: str | None
        Duration strings (``"15m"``, ``"168h"``); see :func:`parse_duration`.
    REFRESH_TOKEN_BACKEND: str
        ``"sql"`` (default) or ``"redis"``.
    REDIS_URL: str | None
        Redis connection URL, required for the ``redis`` backend.
    REFRESH_STORE_TIMEOUT_SECONDS: float
        Per-call bound applied to every refresh token store operation.
    AUTH_FAILURE_JITTER_MS: str
        Random delay range applied to every 401 response.
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    LOG_LEVEL: str
        Root logging verbosity.
    """

    API_BASE_PREFIX = "/api"

    # Secrets / tokens
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")
    JWT_SECRET = os.getenv("JWT_SECRET")
    JWT_EXPIRY = os.getenv("JWT_EXPIRY")
    REFRESH_TOKEN_EXPIRY = os.getenv("REFRESH_TOKEN_EXPIRY")

    # Refresh token storage
    REFRESH_TOKEN_BACKEND = os.getenv("REFRESH_TOKEN_BACKEND", "sql").strip().lower()
    REDIS_URL = os.getenv("REDIS_URL")
    REFRESH_STORE_TIMEOUT_SECONDS = env_float("REFRESH_STORE_TIMEOUT_SECONDS", 5.0)

    # Transport
    AUTH_FAILURE_JITTER_MS = os.getenv("AUTH_FAILURE_JITTER_MS", "100-300")

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development."""

    DEBUG = env_bool("FLASK_DEBUG", True)


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - In-memory SQLite unless ``TEST_DATABASE_URL`` is set.
    - Fixed secret and no failure jitter so tests stay fast and deterministic.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    JWT_SECRET = "testing-secret"
    JWT_EXPIRY = "15m"
    REFRESH_TOKEN_EXPIRY = "168h"
    REFRESH_TOKEN_BACKEND = "sql"
    AUTH_FAILURE_JITTER_MS = "0"
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments."""

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False


CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
