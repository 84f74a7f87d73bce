"""
OAuth 1.0a signing adapter.

Implements the full request/verify/refresh token exchange and request
signing for remote access to OAuth 1.0a protected resources. OAuth 1.0a has
no uniform way to test a token's permissions or to revoke it, so
:meth:`OAuth1Adapter.has_access` only checks presence and expiry and
:meth:`OAuth1Adapter.release` is a no-op.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import fields
from typing import Any

from oauthkit.infra.oauth import signature
from oauthkit.infra.oauth.service import OAuthService
from oauthkit.services._shared.errors import (
    Expired,
    MismatchedToken,
    MissingCredentials,
    RemoteError,
)
from oauthkit.services._shared.ports.signing_adapter import SigningAdapter
from oauthkit.services._shared.ports.transport import HttpTransport
from oauthkit.services.consumer.dto import ServiceConfig

log = logging.getLogger(__name__)

VERSION = "1.0"


def humanize(word: str) -> str:
    """``"token_expired"`` -> ``"Token Expired"``."""
    return " ".join(part[:1].upper() + part[1:] for part in word.split("_") if part)


def service_options(config: ServiceConfig) -> dict[str, Any]:
    """Flatten a :class:`ServiceConfig` into :class:`OAuthService` options."""
    options = dict(config.extra)
    for f in fields(config):
        if f.name in ("extra", "name"):
            continue
        value = getattr(config, f.name)
        if value is not None:
            options[f.name] = value
    return options


class OAuth1Adapter(SigningAdapter):
    """
    OAuth 1.0a implementation of the :class:`SigningAdapter` port.

    :param config: Resolved service configuration.
    :param transport: HTTP transport for :class:`OAuthService`.
    :param timeout: Provider request timeout (default transport only).
    :param clock: Time source, used for timestamps and expiry checks.
    """

    def __init__(
        self,
        config: ServiceConfig,
        *,
        transport: HttpTransport | None = None,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.clock = clock
        self.service = OAuthService(service_options(config), transport=transport, timeout=timeout)

    # -------------------------- helpers ----------------------------

    def _oauth(self, **params: Any) -> dict[str, Any]:
        """Common protocol parameters with empty values dropped."""
        oauth = {
            "oauth_consumer_key": self.config.consumer_key,
            "oauth_nonce": params.pop("oauth_nonce", None) or signature.generate_nonce(),
            "oauth_signature_method": self.config.signature_method,
            "oauth_timestamp": str(int(self.clock())),
            "oauth_version": VERSION,
            **params,
        }
        return {k: v for k, v in oauth.items() if v}

    def _key(self, token_secret: str | None = None) -> str:
        return signature.signing_key(self.config.consumer_secret, token_secret)

    def _fetch_token(
        self, path: str, oauth: Mapping[str, Any], key: str, *, authorization: bool = True
    ) -> dict[str, Any]:
        response = self.service.send("POST", path, {}, oauth=oauth, sign=key, return_="token")
        data = response.data
        if not data.get("oauth_token"):
            problem = data.get("oauth_problem")
            log.info("oauth1.token_rejected", extra={"endpoint": path})
            raise RemoteError(response.code, humanize(problem) if problem else None)

        token: dict[str, Any] = dict(data)
        now = int(self.clock())
        try:
            if token.get("oauth_expires_in"):
                token["expires"] = signature.absolute_time(token["oauth_expires_in"], now)
            if authorization and token.get("oauth_authorization_expires_in"):
                token["auth_expires"] = signature.absolute_time(
                    token["oauth_authorization_expires_in"], now
                )
        except (ValueError, TypeError, OverflowError) as exc:
            log.info("oauth1.invalid_expiry", extra={"endpoint": path})
            raise RemoteError(response.code, "Invalid expiry") from exc
        return token

    # --------------------------- port ------------------------------

    def has_access(
        self, token: Mapping[str, Any], request: Mapping[str, Any] | None = None
    ) -> None:
        if not token.get("oauth_token") or not token.get("oauth_token_secret"):
            raise MissingCredentials("Missing OAuth token or secret.")
        auth_expires = token.get("auth_expires")
        if auth_expires and self.clock() > int(auth_expires):
            raise Expired(f"The authorization has expired. ({auth_expires})")

    def request(self, request: Mapping[str, Any]) -> tuple[dict[str, Any], bool | str]:
        """
        Obtain a request token.

        ``request`` may carry ``callback`` (where the provider sends the user
        back), ``nonce`` and ``lang`` (preferred language of the prompt).
        """
        oauth = self._oauth(
            oauth_callback=request.get("callback"),
            oauth_nonce=request.get("nonce"),
            xoauth_lang_pref=request.get("lang"),
        )
        token = self._fetch_token("request_token", oauth, self._key(), authorization=False)

        if token.get("xoauth_request_auth_url"):
            return token, token["xoauth_request_auth_url"]
        return token, self.service.url("authorize", {"oauth_token": token["oauth_token"]})

    def verify(self, token: Mapping[str, Any], response: Mapping[str, Any]) -> dict[str, Any]:
        """Exchange the request token and ``oauth_verifier`` for an access token."""
        if response.get("oauth_token") and response["oauth_token"] != token.get("oauth_token"):
            raise MismatchedToken()
        oauth = self._oauth(
            oauth_token=token.get("oauth_token"),
            oauth_verifier=response.get("oauth_verifier"),
        )
        return self._fetch_token("access_token", oauth, self._key(token.get("oauth_token_secret")))

    def expires(self, token: Mapping[str, Any]) -> int | None:
        expires = token.get("expires")
        return int(expires) if expires else None

    def refresh(self, token: Mapping[str, Any]) -> dict[str, Any]:
        """Renew an access token through its ``oauth_session_handle``."""
        oauth = self._oauth(
            oauth_session_handle=token.get("oauth_session_handle"),
            oauth_token=token.get("oauth_token"),
        )
        return self._fetch_token("access_token", oauth, self._key(token.get("oauth_token_secret")))

    def release(self, token: Mapping[str, Any]) -> None:
        return None

    def access(
        self,
        method: str,
        token: Mapping[str, Any],
        path: str,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> str:
        oauth = self._oauth(oauth_token=token.get("oauth_token"))
        response = self.service.send(
            method,
            path,
            data or {},
            oauth=oauth,
            sign=self._key(token.get("oauth_token_secret")),
            return_="response",
            **dict(options or {}),
        )
        if response.status != 200:
            raise RemoteError(
                response.status, response.header("WWW-Authenticate"), body=response.body
            )
        return response.body
