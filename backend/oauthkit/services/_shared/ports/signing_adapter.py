from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from oauthkit.services._shared.errors import (
    Expired,
    MismatchedToken,
    MissingCredentials,
    RemoteError,
)


class SigningAdapter(Protocol):
    """
    Port for a protocol plugin that obtains and applies delegated credentials.

    Token data is an opaque mapping owned by the adapter; callers store it
    and hand it back unchanged. Every method signals failure by raising an
    :class:`~oauthkit.services._shared.errors.OAuthError` subclass.
    """

    def has_access(
        self, token: Mapping[str, Any], request: Mapping[str, Any] | None = None
    ) -> None:
        """Ensure ``token`` is usable for the access described by ``request``."""

    def request(self, request: Mapping[str, Any]) -> tuple[dict[str, Any], bool | str]:
        """
        Start an authorization.

        :returns: ``(token, True)`` when access was granted immediately, or
            ``(token, url)`` when the user agent must visit ``url``.
        """

    def verify(self, token: Mapping[str, Any], response: Mapping[str, Any]) -> dict[str, Any]:
        """Exchange the pending ``token`` and callback ``response`` for access credentials."""

    def expires(self, token: Mapping[str, Any]) -> int | None:
        """Epoch at which ``token`` must be renewed, or ``None`` if it never expires."""

    def refresh(self, token: Mapping[str, Any]) -> dict[str, Any]:
        """Renew ``token``. The caller is responsible for serializing refreshes."""

    def release(self, token: Mapping[str, Any]) -> None:
        """Give up the access represented by ``token``."""

    def access(
        self,
        method: str,
        token: Mapping[str, Any],
        path: str,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> str:
        """Send an authenticated request and return the response body."""


class StubSigningAdapter(SigningAdapter):
    """
    Deterministic in-process adapter used in unit tests.

    Counts provider round-trips in :attr:`calls` so tests can assert how many
    times a given operation reached the "provider".
    """

    def __init__(
        self,
        config: Any = None,
        *,
        transport: Any = None,
        timeout: float | None = None,
        immediate: bool = False,
        lifetime: int | None = 3600,
        authorize_url: str = "https://provider.test/oauth/authorize",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.immediate = immediate
        self.lifetime = lifetime
        self.authorize_url = authorize_url
        self.clock = clock
        self.fail_verify: str | None = None
        self.fail_refresh: str | None = None
        self.refresh_delay = 0.0
        self.calls: Counter[str] = Counter()
        self._seq = 0
        self._lock = threading.Lock()

    def _count(self, name: str) -> int:
        with self._lock:
            self.calls[name] += 1
            self._seq += 1
            return self._seq

    def _access_token(self, seq: int) -> dict[str, Any]:
        token: dict[str, Any] = {
            "oauth_token": f"access-{seq}",
            "oauth_token_secret": f"access-secret-{seq}",
        }
        if self.lifetime is not None:
            token["expires"] = int(self.clock()) + self.lifetime
        return token

    def has_access(
        self, token: Mapping[str, Any], request: Mapping[str, Any] | None = None
    ) -> None:
        if not token.get("oauth_token") or not token.get("oauth_token_secret"):
            raise MissingCredentials("Missing OAuth token or secret.")
        auth_expires = token.get("auth_expires")
        if auth_expires and self.clock() > auth_expires:
            raise Expired(f"The authorization has expired. ({auth_expires})")
        scope = (request or {}).get("scope")
        if scope and scope not in token.get("scope", ()):
            raise MissingCredentials(f"Missing scope: {scope}")

    def request(self, request: Mapping[str, Any]) -> tuple[dict[str, Any], bool | str]:
        seq = self._count("request")
        if self.immediate:
            return self._access_token(seq), True
        token = {"oauth_token": f"req-{seq}", "oauth_token_secret": f"req-secret-{seq}"}
        return token, f"{self.authorize_url}?oauth_token=req-{seq}"

    def verify(self, token: Mapping[str, Any], response: Mapping[str, Any]) -> dict[str, Any]:
        seq = self._count("verify")
        if response.get("oauth_token") and response["oauth_token"] != token.get("oauth_token"):
            raise MismatchedToken()
        if self.fail_verify:
            raise RemoteError(401, self.fail_verify)
        return self._access_token(seq)

    def expires(self, token: Mapping[str, Any]) -> int | None:
        return token.get("expires") or None

    def refresh(self, token: Mapping[str, Any]) -> dict[str, Any]:
        seq = self._count("refresh")
        if self.refresh_delay:
            time.sleep(self.refresh_delay)
        if self.fail_refresh:
            raise RemoteError(401, self.fail_refresh)
        return self._access_token(seq)

    def release(self, token: Mapping[str, Any]) -> None:
        self._count("release")

    def access(
        self,
        method: str,
        token: Mapping[str, Any],
        path: str,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> str:
        self._count("access")
        return f"{method.upper()} {path} as {token.get('oauth_token')}"
