"""OAuth 2.0 placeholder adapter. Selectable by name, but every operation fails fast."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from oauthkit.services._shared.errors import AdapterNotImplemented
from oauthkit.services._shared.ports.signing_adapter import SigningAdapter
from oauthkit.services.consumer.dto import ServiceConfig


class OAuth2Adapter(SigningAdapter):
    def __init__(self, config: ServiceConfig, **_: Any) -> None:
        self.config = config

    def _unsupported(self, operation: str) -> AdapterNotImplemented:
        return AdapterNotImplemented(f"OAuth 2.0 adapter does not implement {operation}.")

    def has_access(
        self, token: Mapping[str, Any], request: Mapping[str, Any] | None = None
    ) -> None:
        raise self._unsupported("has_access")

    def request(self, request: Mapping[str, Any]) -> tuple[dict[str, Any], bool | str]:
        raise self._unsupported("request")

    def verify(self, token: Mapping[str, Any], response: Mapping[str, Any]) -> dict[str, Any]:
        raise self._unsupported("verify")

    def expires(self, token: Mapping[str, Any]) -> int | None:
        raise self._unsupported("expires")

    def refresh(self, token: Mapping[str, Any]) -> dict[str, Any]:
        raise self._unsupported("refresh")

    def release(self, token: Mapping[str, Any]) -> None:
        raise self._unsupported("release")

    def access(
        self,
        method: str,
        token: Mapping[str, Any],
        path: str,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> str:
        raise self._unsupported("access")
