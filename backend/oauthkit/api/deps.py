"""Shared API helpers for request parsing and cross-cutting concerns."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar
from urllib.parse import urlsplit

from flask import Response, current_app, jsonify, request

from oauthkit.schemas.service_config import ReturnQuerySchema

F = TypeVar("F", bound=Callable[..., Any])

REFERER = "referer"


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]


def same_host_referer() -> str | None:
    """
    Return the ``Referer`` as a local ``path?query#fragment``.

    Referers pointing at another host are ignored so the front door never
    redirects users off-site implicitly.
    """
    if not request.referrer:
        return None
    parts = urlsplit(request.referrer)
    if parts.netloc and parts.netloc != request.host:
        return None
    target = parts.path or "/"
    if parts.query:
        target += f"?{parts.query}"
    if parts.fragment:
        target += f"#{parts.fragment}"
    return target


def parse_oauth_request() -> dict[str, Any]:
    """
    Build the request context for a lifecycle operation from the query string.

    ``return`` names where to send the user once done. It defaults to the
    (same-host) referer; pass ``return=referer`` explicitly for the same effect.
    """
    context: dict[str, Any] = request.args.to_dict()
    return_to = ReturnQuerySchema().load(request.args).get("return_to")
    if not return_to or return_to == REFERER:
        return_to = same_host_referer()
    context["return"] = return_to
    return context
