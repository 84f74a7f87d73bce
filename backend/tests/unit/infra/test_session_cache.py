"""Unit tests for the Flask session token cache backend."""

from __future__ import annotations

import pytest
from flask import session
from oauthkit.infra.flask_session.session_cache import SessionCacheBackend

from tests.helpers.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend(clock):
    return SessionCacheBackend(clock=clock)


def test_values_live_in_the_session(app, backend, clock) -> None:
    with app.test_request_context("/"):
        backend.write("svc-testing-tempn1", {"v": 1}, clock() + 60)

        assert backend.read("svc-testing-tempn1") == {"v": 1}
        assert session["oauth.svc-testing-tempn1"] == {"expiry": clock() + 60, "data": {"v": 1}}


def test_expired_value_is_dropped(app, backend, clock) -> None:
    with app.test_request_context("/"):
        backend.write("k", {"v": 1}, clock() + 10)
        clock.advance(11)

        assert backend.read("k") is None
        assert "oauth.k" not in session


def test_delete(app, backend) -> None:
    with app.test_request_context("/"):
        backend.write("k", {"v": 1}, None)

        assert backend.delete("k") is True
        assert backend.delete("k") is False


def test_sessions_are_not_shared_between_requests(app, backend) -> None:
    with app.test_request_context("/"):
        backend.write("k", {"v": 1}, None)

    with app.test_request_context("/"):
        assert backend.read("k") is None


def test_locking_is_a_no_op(app, backend) -> None:
    assert backend.supports_locking is False
    with app.test_request_context("/"):
        assert backend.block("k")
        assert backend.block("k")
        assert backend.wait("k")
        assert backend.unblock("k")
