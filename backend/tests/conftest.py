"""Pytest fixtures providing an isolated application and OAuth consumer per test.

Every test gets a fresh application, so token caches, lock tables and
signing adapters never leak between cases.
"""

from __future__ import annotations

import functools
import os

import pytest
from oauthkit.core.config import TestingConfig
from oauthkit.core.extensions import db as _db  # Flask-SQLAlchemy instance
from oauthkit.core.oauth import get_consumer
from oauthkit.factory import create_app  # application factory under test
from oauthkit.services._shared.ports.signing_adapter import StubSigningAdapter

SERVICES = {
    "photos": {
        "*": {"adapter": "stub", "consumer_key": "photos-key"},
        "testing": {"base": "https://photos.test"},
    },
    "instant": {"testing": {"adapter": "stub-immediate"}},
    "sessioned": {"*": {"adapter": "stub", "temp_cache": "session", "token_cache": "session"}},
    "legacy": {"production": {"adapter": "stub"}},
    "future": {"*": {"adapter": "oauth2"}},
}


class OAuthTestConfig(TestingConfig):
    """Testing configuration with stub-backed services.

    Notes
    -----
    - Uses an in-memory SQLite database and in-memory token caches.
    - Registers the deterministic stub signing adapter so no provider is hit.
    """

    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    REDIS_URL = None
    OAUTH_CACHES = {"default": {"backend": "memory"}, "session": {"backend": "session"}}
    OAUTH_SERVICES = SERVICES
    OAUTH_ADAPTERS = {
        "stub": StubSigningAdapter,
        "stub-immediate": functools.partial(StubSigningAdapter, immediate=True),
    }


@pytest.fixture()
def app():
    """Create a Flask application configured for testing.

    Yields
    ------
    flask.Flask
        Application with :class:`OAuthTestConfig` applied, an active app
        context and the token cache table created.
    """
    # Ensure env-based config does not leak into tests
    os.environ.pop("DATABASE_URL", None)
    application = create_app(OAuthTestConfig)
    application.logger.setLevel("WARNING")
    with application.app_context():
        _db.create_all()
        yield application
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


@pytest.fixture()
def consumer(app):
    """The application's :class:`OAuthConsumer`."""
    return get_consumer(app)


@pytest.fixture()
def photos(consumer):
    """Stub adapter configured for the ``photos`` service."""
    return consumer.registry.adapter("photos")
