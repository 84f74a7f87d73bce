"""``requests``-based implementation of the :class:`HttpTransport` port."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests

from oauthkit.services._shared.errors import RemoteError
from oauthkit.services._shared.ports.transport import HttpTransport, TransportResponse

log = logging.getLogger(__name__)


class RequestsTransport(HttpTransport):
    """
    Send provider requests through a shared :class:`requests.Session`.

    :param timeout: Per-request timeout in seconds.
    :param session: Optional pre-configured session (connection pooling, proxies).
    """

    def __init__(self, *, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        try:
            resp = self.session.request(
                method,
                url,
                params=dict(params) if params else None,
                data=dict(data) if data else None,
                headers=dict(headers or {}),
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            log.warning("oauth.transport_error", extra={"endpoint": url})
            raise RemoteError(None, f"Unable to reach provider ({exc.__class__.__name__})") from exc
        return TransportResponse(
            status=resp.status_code, headers=dict(resp.headers), body=resp.text
        )
