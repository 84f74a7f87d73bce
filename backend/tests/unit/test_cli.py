"""Tests for the ``flask oauth`` command group."""

from __future__ import annotations

from sqlalchemy import inspect


def _grant(consumer, service: str = "photos") -> None:
    consumer.request_authorization(service, {"nonce": "cli"})
    assert consumer.verify_authorization(service, {"nonce": "cli", "oauth_verifier": "v"})


def test_init_db_creates_token_cache_table(app, runner) -> None:
    from oauthkit.core.extensions import db

    db.drop_all()

    result = runner.invoke(args=["oauth", "init-db"])

    assert result.exit_code == 0
    assert "oauth_token_cache" in inspect(db.engine).get_table_names()


def test_services_lists_configuration(runner) -> None:
    result = runner.invoke(args=["oauth", "services"])

    assert result.exit_code == 0
    assert "Environment: testing" in result.output
    assert "  photos" in result.output


def test_status_without_credentials_fails(runner) -> None:
    result = runner.invoke(args=["oauth", "status", "photos"])

    assert result.exit_code == 1
    assert "Unable to locate valid access credentials." in result.output


def test_status_reports_expiry(runner, consumer) -> None:
    _grant(consumer)

    result = runner.invoke(args=["oauth", "status", "photos"])

    assert result.exit_code == 0
    assert result.output.startswith("photos: authorized, expires ")


def test_refresh_command(runner, consumer, photos) -> None:
    _grant(consumer)

    result = runner.invoke(args=["oauth", "--verbose", "refresh", "photos"])

    assert result.exit_code == 0
    assert "photos: refreshed" in result.output
    assert photos.calls["refresh"] == 1


def test_refresh_command_failure(runner) -> None:
    result = runner.invoke(args=["oauth", "refresh", "photos"])

    assert result.exit_code == 1
    assert "Refresh failed" in result.output


def test_release_asks_for_confirmation(runner, consumer, photos) -> None:
    _grant(consumer)

    aborted = runner.invoke(args=["oauth", "release", "photos"], input="n\n")
    released = runner.invoke(args=["oauth", "release", "photos", "--yes"])

    assert aborted.exit_code == 1
    assert released.exit_code == 0
    assert "photos: released" in released.output
    assert photos.calls["release"] == 1
    assert not consumer.has_access("photos")
