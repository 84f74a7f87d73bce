"""HTTP service layer for talking to OAuth providers."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit

from oauthkit.infra.http.requests_transport import RequestsTransport
from oauthkit.infra.oauth import signature
from oauthkit.services._shared.ports.transport import HttpTransport, TransportResponse

# well-known ports used to infer a missing scheme (and back)
PORT_SCHEMES: dict[int, str] = {20: "ftp", 21: "ftp", 22: "ssh", 80: "http", 443: "https"}
SCHEME_PORTS: dict[str, int] = {"ftp": 21, "ssh": 22, "http": 80, "https": 443}

DEFAULTS: dict[str, Any] = {
    "scheme": "http",
    "host": "localhost",
    "proxy": None,
    "port": 80,
    "path": "",
    "query": None,
    "request_token": "/oauth/get_request_token",
    "access_token": "/oauth/get_token",
    "authorize": "/oauth/request_auth",
}

_QUERY_METHODS = frozenset({"GET", "HEAD", "DELETE"})
_AUTH_PARAM = re.compile(r'([\w.-]+)="([^"]*)"')


@dataclass(frozen=True, slots=True)
class TokenResponse:
    """
    Parsed token endpoint answer.

    :ivar code: HTTP status code.
    :ivar data: Form-decoded body merged with ``WWW-Authenticate`` parameters.
    """

    code: int
    data: dict[str, str] = field(default_factory=dict)


def parse_url(url: str | Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Break ``url`` into components and normalize them.

    A missing scheme is inferred from a well-known port and a missing port
    from the scheme; ``user``/``pass`` are normalized to
    ``username``/``password``; fragments are dropped. Malformed ports are
    ignored rather than rejected.
    """
    if isinstance(url, Mapping):
        parts = dict(url)
    else:
        split = urlsplit(url or "")
        parts = {"path": split.path}
        if split.scheme:
            parts["scheme"] = split.scheme
        if split.hostname:
            parts["host"] = split.hostname
        try:
            port = split.port
        except ValueError:
            port = None
        if port:
            parts["port"] = port
        if split.username:
            parts["user"] = unquote(split.username)
        if split.password:
            parts["pass"] = unquote(split.password)
        if split.query:
            parts["query"] = split.query

    if not parts.get("scheme") and parts.get("port"):
        parts["scheme"] = PORT_SCHEMES.get(int(parts["port"]), "http")
    elif not parts.get("port") and parts.get("scheme"):
        parts["port"] = SCHEME_PORTS.get(parts["scheme"], 80)

    if any(k in parts for k in ("username", "user", "password", "pass")):
        parts["username"] = parts.get("username") or parts.get("user") or ""
        parts["password"] = parts.get("password") or parts.get("pass") or ""
        parts.pop("user", None)
        parts.pop("pass", None)

    parts.pop("fragment", None)
    return parts


def _as_query_dict(query: Any) -> dict[str, Any]:
    if not query:
        return {}
    if isinstance(query, Mapping):
        return dict(query)
    return dict(parse_qsl(str(query), keep_blank_values=True))


def parse_auth_header(value: str | None) -> dict[str, str]:
    """Extract ``key="value"`` pairs from an ``OAuth ...`` authentication header."""
    if not value or "OAuth" not in value:
        return {}
    _, _, params = value.partition("OAuth")
    return {key: unquote(val) for key, val in _AUTH_PARAM.findall(params)}


class OAuthService:
    """
    Build URLs for and send (optionally signed) requests to one provider.

    :param config: Service options. ``base`` is parsed and its components
        (scheme, host, port, path, credentials) override the individual
        options. Named paths (``request_token``, ``access_token``,
        ``authorize`` or any extra key) can be passed wherever a path is
        expected.
    :param transport: HTTP client; defaults to :class:`RequestsTransport`.
    :param timeout: Timeout for the default transport.
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        *,
        transport: HttpTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        merged = {**DEFAULTS, **{k: v for k, v in parse_url(config or {}).items() if v is not None}}
        if merged.get("base"):
            merged.update(parse_url(merged["base"]))
        self._config = merged
        self.transport = transport or RequestsTransport(timeout=timeout)

    def config(self, key: str | None = None) -> Any:
        """Return one option (``None`` if unset) or, without a key, all of them."""
        if key is None:
            return dict(self._config)
        return self._config.get(key)

    def _resolve(self, path: str | None, options: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        named = self.config(path) if path else None
        request = parse_url(named if isinstance(named, str) else (path or ""))
        req_path = request.pop("path", "") or ""
        if not req_path.startswith("/") and not request.get("host"):
            req_path = (options.get("path") or "") + req_path
        return req_path, request

    def url(
        self,
        path: str | None,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> str:
        """
        Compile an absolute URL.

        :param path: Named path or URL fragment.
        :param data: Query parameters to append.
        :param options: Overrides for scheme, host, port, credentials, query.
        """
        opts = {**self._config, **(options or {})}
        req_path, request = self._resolve(path, opts)
        opts.update(request)

        params = {**_as_query_dict(opts.get("query")), **(data or {})}
        query = f"?{urlencode(params)}" if params else ""

        scheme = opts.get("scheme") or "http"
        port = opts.get("port")
        if (scheme == "http" and port == 80) or (scheme == "https" and port == 443) or not port:
            port_part = ""
        else:
            port_part = f":{port}"

        authority = ""
        if opts.get("username"):
            authority = opts["username"]
            if opts.get("password"):
                authority += f":{opts['password']}"
            authority += "@"

        return f"{scheme}://{authority}{opts.get('host') or ''}{port_part}{req_path}{query}"

    def send(
        self,
        method: str,
        path: str | None = None,
        data: Mapping[str, Any] | None = None,
        *,
        oauth: Mapping[str, Any] | None = None,
        sign: str | None = None,
        return_: str = "body",
        headers: bool | None = None,
        realm: str | None = None,
        **options: Any,
    ) -> Any:
        """
        Send a request, signing the OAuth parameters when ``sign`` is given.

        :param method: ``GET``, ``POST``, ``PUT``, ``DELETE``, ``HEAD``, ...
        :param path: Named path, absolute URL, or path relative to ``base``.
        :param data: Request parameters.
        :param oauth: Protocol parameters to send (and sign).
        :param sign: Signing key; the request is left unsigned when ``None``.
        :param return_: ``"token"`` for a :class:`TokenResponse`, ``"response"``
            for the raw :class:`TransportResponse`, ``"body"`` for the body.
        :param headers: Send OAuth parameters in an ``Authorization`` header
            (defaults to the ``headers`` option, else True).
        :param realm: Realm for the ``Authorization`` header.
        """
        method = method.upper()
        opts = {**self._config, **options}
        oauth_params = dict(sorted((oauth or {}).items()))

        req_path, request = self._resolve(path, opts)
        opts.update(request)
        payload = {**_as_query_dict(opts.get("query")), **(data or {})}
        opts["query"] = ""

        if sign is not None:
            oauth_params["oauth_signature"] = signature.sign_request(
                sign,
                oauth_params.get("oauth_signature_method"),
                http_method=method,
                url=self.url(req_path, {}, opts),
                params={**payload, **oauth_params},
            )

        use_header = opts.get("headers", True) if headers is None else headers
        request_headers: dict[str, str] = {}
        if use_header:
            request_headers["Authorization"] = signature.authorization_header(
                realm or opts.get("realm") or "oauthkit", oauth_params
            )
            params = payload
        else:
            params = {**payload, **oauth_params}

        target = self.url(req_path, {}, {**opts, "host": opts.get("proxy") or opts.get("host")})
        if method in _QUERY_METHODS:
            response = self.transport.send(method, target, params=params, headers=request_headers)
        else:
            response = self.transport.send(method, target, data=params, headers=request_headers)

        if return_ == "token":
            return self.token_response(response)
        if return_ == "response":
            return response
        return response.body

    @staticmethod
    def token_response(response: TransportResponse) -> TokenResponse:
        """Decode a token endpoint answer (form body plus ``WWW-Authenticate``)."""
        data = dict(parse_qsl(response.body or "", keep_blank_values=True))
        for key, value in parse_auth_header(response.header("WWW-Authenticate")).items():
            data.setdefault(key, value)
        return TokenResponse(code=response.status, data=data)
