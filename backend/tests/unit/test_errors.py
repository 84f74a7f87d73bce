"""Unit tests for error types and their HTTP translation."""

from __future__ import annotations

import pytest
from oauthkit.core.errors import OAUTH_STATUS, translate_exceptions
from oauthkit.services._shared.errors import (
    Expired,
    InvalidConfiguration,
    LockUnavailable,
    MissingCredentials,
    OAuthError,
    RefreshExhausted,
    RemoteError,
    UnknownService,
)


@pytest.mark.parametrize(
    ("status", "detail", "message"),
    [
        (401, "Token Expired", "Error 401: Token Expired"),
        (200, None, "Unknown Error"),
        (None, "Unable to reach provider", "Unknown Error: Unable to reach provider"),
        (500, None, "Error 500"),
    ],
)
def test_remote_error_message(status, detail, message) -> None:
    assert RemoteError(status, detail).message == message


def test_default_messages() -> None:
    assert MissingCredentials().message == "Unable to locate valid access credentials."
    assert Expired("custom").message == "custom"
    assert UnknownService("photos").message == "No OAuth configuration found for service: photos"


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (MissingCredentials(), 401),
        (RemoteError(401, "x"), 502),
        (RefreshExhausted(), 503),
        (LockUnavailable(), 503),
        (UnknownService("x"), 404),
        (InvalidConfiguration("x", {"base": ["Not a valid URL."]}), 500),
        (OAuthError(), 500),
    ],
)
def test_translate_exceptions(app, error, status) -> None:
    with app.test_request_context("/"):
        api_error = translate_exceptions(error, {"return": "/x"})

        assert api_error.status_code == status
        assert api_error.code == error.code
        problem = api_error.to_problem()
        assert problem["details"] == {"return": "/x"}
        assert problem["detail"] == error.message


def test_every_error_code_has_a_status() -> None:
    assert set(OAUTH_STATUS) >= {
        "missing_credentials",
        "remote_error",
        "refresh_exhausted",
        "invalid_configuration",
    }
