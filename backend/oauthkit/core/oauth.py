"""Build the token cache and :class:`OAuthConsumer` from Flask configuration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from flask import Flask, current_app

from oauthkit.infra.file.file_cache import FileCacheBackend
from oauthkit.infra.flask_session.session_cache import SessionCacheBackend
from oauthkit.infra.redis.redis_cache import RedisCacheBackend
from oauthkit.infra.sqlalchemy.model_cache import ModelCacheBackend
from oauthkit.schemas.service_config import CacheConfigSchema
from oauthkit.services._shared.ports.cache_backend import CacheBackend, InMemoryCacheBackend
from oauthkit.services.consumer.registry import ADAPTERS, ServiceRegistry
from oauthkit.services.consumer.service import OAuthConsumer
from oauthkit.services.token_cache.service import TokenCache

log = logging.getLogger(__name__)

EXTENSION_KEY = "oauth_consumer"


def build_backend(entry: Mapping[str, Any], app: Flask) -> CacheBackend:
    """
    Instantiate the cache backend described by one ``OAUTH_CACHES`` entry.

    :param entry: ``{"backend": "memory"|"file"|"redis"|"model"|"session", ...}``.
    :param app: Application providing directory, Redis client and lock TTL.
    :raises marshmallow.ValidationError: When the entry is invalid.
    """
    data = CacheConfigSchema().load(dict(entry))
    kind = data["backend"]
    lock_ttl = data["lock_ttl"] or float(app.config.get("OAUTH_LOCK_TTL", 60.0))
    kwargs: dict[str, Any] = {}
    if data["expiry"]:
        kwargs["default_expiry"] = timedelta(seconds=data["expiry"])

    if kind == "memory":
        return InMemoryCacheBackend(lock_ttl=lock_ttl, **kwargs)
    if kind == "file":
        directory = data["directory"] or app.config.get("OAUTH_CACHE_DIR", "./var/oauth")
        return FileCacheBackend(directory, lock_ttl=lock_ttl, **kwargs)
    if kind == "redis":
        from oauthkit.core.extensions import get_redis

        return RedisCacheBackend(
            get_redis(), prefix=data["prefix"] or "oauth:", lock_ttl=lock_ttl, **kwargs
        )
    if kind == "model":
        return ModelCacheBackend(lock_ttl=lock_ttl, **kwargs)
    return SessionCacheBackend(prefix=data["prefix"] or "oauth.", **kwargs)


def init_app(app: Flask) -> None:
    """Create the application's :class:`OAuthConsumer` and register it as an extension."""
    entries = app.config.get("OAUTH_CACHES", {})
    caches = {name: build_backend(entry, app) for name, entry in entries.items()}
    cache = TokenCache(caches, lock_timeout=app.config.get("OAUTH_LOCK_TIMEOUT", 30.0))
    registry = ServiceRegistry(
        app.config.get("OAUTH_SERVICES", {}),
        app.config.get("OAUTH_ENVIRONMENT", "development"),
        adapters={**ADAPTERS, **app.config.get("OAUTH_ADAPTERS", {})},
        defaults={"realm": app.config.get("OAUTH_REALM", "oauthkit")},
        timeout=float(app.config.get("OAUTH_HTTP_TIMEOUT", 10.0)),
    )
    app.extensions[EXTENSION_KEY] = OAuthConsumer(registry, cache)
    log.debug("oauth.consumer_ready")


def get_consumer(app: Flask | None = None) -> OAuthConsumer:
    """Return the consumer of ``app`` (default: the current application)."""
    target = app or current_app
    try:
        return target.extensions[EXTENSION_KEY]
    except KeyError:
        raise RuntimeError("OAuth consumer is not initialized. Call init_app() first.") from None
