"""Unit tests for the OAuth 1.0a adapter against mocked provider endpoints."""

from __future__ import annotations

import pytest
import requests
import responses
from oauthkit.infra.oauth import signature
from oauthkit.infra.oauth.oauth1 import OAuth1Adapter, humanize, service_options
from oauthkit.infra.oauth.oauth2 import OAuth2Adapter
from oauthkit.infra.oauth.service import parse_auth_header
from oauthkit.services._shared.errors import (
    AdapterNotImplemented,
    Expired,
    MismatchedToken,
    MissingCredentials,
    RemoteError,
)
from oauthkit.services.consumer.dto import ServiceConfig

from tests.helpers.fakes import FakeClock

PROVIDER = "https://provider.test"
REQUEST_TOKEN_URL = f"{PROVIDER}/oauth/get_request_token"
ACCESS_TOKEN_URL = f"{PROVIDER}/oauth/get_token"


@pytest.fixture
def clock():
    return FakeClock(1000)


@pytest.fixture
def adapter(clock):
    config = ServiceConfig(
        name="photos", base=PROVIDER, consumer_key="ck", consumer_secret="cs", realm="photos"
    )
    return OAuth1Adapter(config, clock=clock)


def _sent_oauth(call) -> dict[str, str]:
    return parse_auth_header(call.request.headers["Authorization"])


def test_humanize_problem_codes() -> None:
    assert humanize("token_expired") == "Token Expired"
    assert humanize("permission_denied") == "Permission Denied"


def test_service_options_flatten_config() -> None:
    config = ServiceConfig(name="photos", base=PROVIDER, extra={"albums": "/albums"})

    options = service_options(config)

    assert options["albums"] == "/albums"
    assert options["base"] == PROVIDER
    assert "name" not in options
    assert "proxy" not in options


@responses.activate
def test_request_returns_authorize_url(adapter) -> None:
    responses.add(
        responses.POST,
        REQUEST_TOKEN_URL,
        body="oauth_token=req1&oauth_token_secret=rs1&oauth_callback_confirmed=true",
        status=200,
    )

    token, url = adapter.request(
        {"callback": "https://app.test/cb?nonce=n1", "nonce": "n1", "lang": "en"}
    )

    assert url == f"{PROVIDER}/oauth/request_auth?oauth_token=req1"
    assert token["oauth_token"] == "req1"
    assert token["oauth_token_secret"] == "rs1"
    assert "auth_expires" not in token

    sent = _sent_oauth(responses.calls[0])
    assert sent["realm"] == "photos"
    assert sent["oauth_callback"] == "https://app.test/cb?nonce=n1"
    assert sent["oauth_nonce"] == "n1"
    assert sent["xoauth_lang_pref"] == "en"
    assert sent["oauth_consumer_key"] == "ck"
    assert sent["oauth_timestamp"] == "1000"
    assert "oauth_token" not in sent


@responses.activate
def test_request_signature_uses_consumer_secret_only(adapter) -> None:
    responses.add(responses.POST, REQUEST_TOKEN_URL, body="oauth_token=r&oauth_token_secret=s")

    adapter.request({"nonce": "n1"})

    sent = _sent_oauth(responses.calls[0])
    received = sent.pop("oauth_signature")
    sent.pop("realm")
    assert received == signature.sign_request(
        "cs&", "HMAC-SHA1", http_method="POST", url=REQUEST_TOKEN_URL, params=sent
    )


@responses.activate
def test_request_prefers_provider_supplied_authorize_url(adapter) -> None:
    responses.add(
        responses.POST,
        REQUEST_TOKEN_URL,
        body=(
            "oauth_token=req1&oauth_token_secret=rs1"
            "&xoauth_request_auth_url=https%3A%2F%2Flogin.provider.test%2Fauth"
        ),
    )

    _, url = adapter.request({})

    assert url == "https://login.provider.test/auth"


@responses.activate
def test_request_failure_reports_humanized_problem(adapter) -> None:
    responses.add(
        responses.POST, REQUEST_TOKEN_URL, body="oauth_problem=consumer_key_rejected", status=401
    )

    with pytest.raises(RemoteError) as exc_info:
        adapter.request({})

    assert exc_info.value.message == "Error 401: Consumer Key Rejected"
    assert exc_info.value.status == 401


@responses.activate
def test_request_failure_without_problem_on_success_status(adapter) -> None:
    responses.add(responses.POST, REQUEST_TOKEN_URL, body="", status=200)

    with pytest.raises(RemoteError) as exc_info:
        adapter.request({})

    assert exc_info.value.message == "Unknown Error"


@responses.activate
def test_verify_exchanges_verifier_for_access_token(adapter) -> None:
    responses.add(
        responses.POST,
        ACCESS_TOKEN_URL,
        body=(
            "oauth_token=acc&oauth_token_secret=as&oauth_expires_in=3600"
            "&oauth_authorization_expires_in=86400&oauth_session_handle=h1"
        ),
    )
    pending = {"oauth_token": "req1", "oauth_token_secret": "rs1"}

    token = adapter.verify(pending, {"oauth_token": "req1", "oauth_verifier": "v"})

    assert token["oauth_token"] == "acc"
    assert token["expires"] == 4600
    assert token["auth_expires"] == 87400
    assert adapter.expires(token) == 4600
    sent = _sent_oauth(responses.calls[0])
    assert sent["oauth_verifier"] == "v"
    assert sent["oauth_token"] == "req1"
    received = sent.pop("oauth_signature")
    sent.pop("realm")
    assert received == signature.sign_request(
        "cs&rs1", "HMAC-SHA1", http_method="POST", url=ACCESS_TOKEN_URL, params=sent
    )


@responses.activate
def test_verify_clamps_huge_lifetimes(adapter) -> None:
    responses.add(
        responses.POST,
        ACCESS_TOKEN_URL,
        body="oauth_token=acc&oauth_token_secret=as&oauth_expires_in=4000000000",
    )

    token = adapter.verify({"oauth_token": "req1", "oauth_token_secret": "rs1"}, {})

    assert token["expires"] == 2147483646


@responses.activate
def test_verify_truncates_fractional_lifetimes(adapter) -> None:
    responses.add(
        responses.POST,
        ACCESS_TOKEN_URL,
        body=(
            "oauth_token=acc&oauth_token_secret=as&oauth_expires_in=3600.5"
            "&oauth_authorization_expires_in=86400.9"
        ),
    )

    token = adapter.verify({"oauth_token": "req1", "oauth_token_secret": "rs1"}, {})

    assert token["expires"] == 4600
    assert token["auth_expires"] == 87400


@responses.activate
def test_verify_reports_unparseable_lifetime_as_remote_error(adapter) -> None:
    responses.add(
        responses.POST,
        ACCESS_TOKEN_URL,
        body="oauth_token=acc&oauth_token_secret=as&oauth_expires_in=soon",
    )

    with pytest.raises(RemoteError) as excinfo:
        adapter.verify({"oauth_token": "req1", "oauth_token_secret": "rs1"}, {})

    assert excinfo.value.message == "Unknown Error: Invalid expiry"


@responses.activate
def test_verify_rejects_mismatching_request_token(adapter) -> None:
    with pytest.raises(MismatchedToken):
        adapter.verify({"oauth_token": "req1"}, {"oauth_token": "other", "oauth_verifier": "v"})

    assert len(responses.calls) == 0


@responses.activate
def test_refresh_sends_session_handle(adapter) -> None:
    responses.add(
        responses.POST,
        ACCESS_TOKEN_URL,
        body="oauth_token=acc2&oauth_token_secret=as2&oauth_expires_in=60",
    )
    token = {"oauth_token": "acc", "oauth_token_secret": "as", "oauth_session_handle": "h1"}

    renewed = adapter.refresh(token)

    assert renewed["oauth_token"] == "acc2"
    assert renewed["expires"] == 1060
    assert _sent_oauth(responses.calls[0])["oauth_session_handle"] == "h1"


@responses.activate
def test_refresh_failure_raises_remote_error(adapter) -> None:
    responses.add(
        responses.POST, ACCESS_TOKEN_URL, body="oauth_problem=token_expired", status=401
    )

    with pytest.raises(RemoteError, match="Error 401: Token Expired"):
        adapter.refresh({"oauth_token": "acc", "oauth_token_secret": "as"})


def test_has_access_requires_token_and_secret(adapter) -> None:
    with pytest.raises(MissingCredentials, match="Missing OAuth token or secret."):
        adapter.has_access({"oauth_token": "acc"})


def test_has_access_rejects_expired_authorization(adapter, clock) -> None:
    token = {"oauth_token": "acc", "oauth_token_secret": "as", "auth_expires": 1500}
    adapter.has_access(token)

    clock.advance(600)

    with pytest.raises(Expired, match=r"The authorization has expired. \(1500\)"):
        adapter.has_access(token)


def test_expires_is_none_without_expiry(adapter) -> None:
    assert adapter.expires({"oauth_token": "acc"}) is None


def test_release_is_a_no_op(adapter) -> None:
    assert adapter.release({"oauth_token": "acc"}) is None


@responses.activate
def test_access_returns_body_of_signed_request(adapter) -> None:
    responses.add(responses.GET, f"{PROVIDER}/photos", body="[1, 2]", status=200)

    body = adapter.access(
        "GET", {"oauth_token": "acc", "oauth_token_secret": "as"}, "/photos", {"size": "large"}
    )

    assert body == "[1, 2]"
    request = responses.calls[0].request
    assert "size=large" in request.url
    assert _sent_oauth(responses.calls[0])["oauth_token"] == "acc"


@responses.activate
def test_access_non_success_includes_authenticate_header(adapter) -> None:
    responses.add(
        responses.POST,
        f"{PROVIDER}/photos",
        body="denied",
        status=403,
        headers={"WWW-Authenticate": 'OAuth oauth_problem="permission_denied"'},
    )

    with pytest.raises(RemoteError) as exc_info:
        adapter.access("POST", {"oauth_token": "acc", "oauth_token_secret": "as"}, "/photos")

    assert exc_info.value.message == 'Error 403: OAuth oauth_problem="permission_denied"'
    assert exc_info.value.body == "denied"


@responses.activate
def test_unreachable_provider_is_a_remote_error(adapter) -> None:
    responses.add(
        responses.POST,
        REQUEST_TOKEN_URL,
        body=requests.ConnectionError("refused"),
    )

    with pytest.raises(RemoteError, match="Unable to reach provider"):
        adapter.request({})


@pytest.mark.parametrize(
    ("operation", "args"),
    [
        ("has_access", ({},)),
        ("request", ({},)),
        ("verify", ({}, {})),
        ("expires", ({},)),
        ("refresh", ({},)),
        ("release", ({},)),
        ("access", ("GET", {}, "/")),
    ],
)
def test_oauth2_adapter_is_not_implemented(operation, args) -> None:
    adapter = OAuth2Adapter(ServiceConfig(name="future", adapter="oauth2"))

    with pytest.raises(AdapterNotImplemented, match=operation):
        getattr(adapter, operation)(*args)
