"""Application settings with environment-based simple classes."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import Any, Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'


# Load .env in development (no-op when missing)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_json(name: str, default: Any) -> Any:
    """Parse a JSON document from an environment variable.

    Returns ``default`` when the variable is unset or blank. Invalid JSON
    raises :class:`ValueError` at import time so a broken deployment fails
    loudly instead of silently running without services.
    """
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    try:
        return json.loads(val)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must contain valid JSON") from exc


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret used for session signing (required by the session cache
        backend). Should be overridden in production.
    SQLALCHEMY_DATABASE_URI: str
        Database connection string for the model cache backend.
    REDIS_URL: str | None
        Redis connection string; the Redis cache backend is unavailable when unset.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    OAUTH_ENVIRONMENT: str
        Environment name embedded in cache keys and used to pick service blocks.
    OAUTH_CACHE_DIR: str
        Directory of the file cache backend.
    OAUTH_HTTP_TIMEOUT: float
        Timeout in seconds for provider requests.
    OAUTH_LOCK_TIMEOUT: float
        Upper bound in seconds for any token cache lock wait.
    OAUTH_LOCK_TTL: float
        Seconds after which an abandoned backend lock is considered stale.
    OAUTH_REALM: str
        Realm advertised in the OAuth ``Authorization`` header.
    OAUTH_CACHES: dict
        Token cache namespaces, ``name -> {"backend": ..., **options}``.
    OAUTH_SERVICES: dict
        Provider configurations, ``service -> environment -> options``.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    API_BASE_PREFIX = "/api"

    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    # DB / Redis
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    REDIS_URL = os.getenv("REDIS_URL")

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # OAuth consumer
    OAUTH_ENVIRONMENT = os.getenv("OAUTH_ENVIRONMENT", os.getenv(ENV_VAR, "development"))
    OAUTH_CACHE_DIR = os.getenv("OAUTH_CACHE_DIR", "./var/oauth")
    OAUTH_HTTP_TIMEOUT = float(os.getenv("OAUTH_HTTP_TIMEOUT", "10"))
    OAUTH_LOCK_TIMEOUT = float(os.getenv("OAUTH_LOCK_TIMEOUT", "30"))
    OAUTH_LOCK_TTL = float(os.getenv("OAUTH_LOCK_TTL", "60"))
    OAUTH_REALM = os.getenv("OAUTH_REALM", "oauthkit")
    OAUTH_CACHES: dict[str, Any] = env_json(
        "OAUTH_CACHES",
        {"default": {"backend": "model"}, "session": {"backend": "session"}},
    )
    OAUTH_SERVICES: dict[str, Any] = env_json("OAUTH_SERVICES", {})
    # Extra signing adapters selectable by name (name -> factory)
    OAUTH_ADAPTERS: dict[str, Any] = {}

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Enables debug mode by default and honors ``SQLALCHEMY_ECHO`` for verbose
    SQL logging when requested.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Keeps every token cache namespace in memory.
    - Propagates exceptions so pytest can surface tracebacks directly.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    PROPAGATE_EXCEPTIONS = True
    OAUTH_ENVIRONMENT = "testing"
    OAUTH_LOCK_TIMEOUT = 2.0
    OAUTH_CACHES = {"default": {"backend": "memory"}}


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Keeps debug and SQL echoing disabled while relying on WSGI-level log
    configuration for noise control.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Class to pass to :meth:`flask.Config.from_object`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
