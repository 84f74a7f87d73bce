"""
OAuth 1.0a signature primitives.

See https://oauth.net/core/1.0a/#signing_process. Everything here is pure:
no I/O and no configuration, so the same inputs always produce the same
signature regardless of parameter insertion order.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import random
import time
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlsplit, urlunsplit

HMAC_SHA1 = "HMAC-SHA1"
PLAINTEXT = "PLAINTEXT"

# Largest value we hand out as an absolute epoch (fits a signed 32-bit integer).
MAX_TIMESTAMP = 2147483646


def percent_encode(value: Any) -> str:
    """Percent-encode ``value`` per RFC 3986 (unreserved: ``A-Z a-z 0-9 - . _ ~``)."""
    if value is None:
        value = ""
    if isinstance(value, bool):
        value = int(value)
    return quote(str(value), safe="~")


def normalize_parameters(params: Mapping[str, Any]) -> str:
    """
    Build the normalized parameter string.

    Keys are sorted byte-wise (not locale-aware); each value is
    percent-encoded and joined as ``key=value`` pairs with ``&``.
    """
    ordered = sorted(params.items(), key=lambda item: str(item[0]).encode("utf-8"))
    return "&".join(f"{key}={percent_encode(value)}" for key, value in ordered)


def normalize_url(url: str) -> str:
    """Lowercase ``url`` and strip its query string and fragment."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")).lower()


def base_string(method: str, url: str, params: Mapping[str, Any]) -> str:
    """Return the signature base string for a request."""
    return "&".join(
        [
            method.upper(),
            percent_encode(normalize_url(url)),
            percent_encode(normalize_parameters(params)),
        ]
    )


def signing_key(consumer_secret: str, token_secret: str | None = None) -> str:
    return f"{percent_encode(consumer_secret)}&{percent_encode(token_secret or '')}"


def sign(key: str, method: str | None, base: str) -> str:
    """
    Digest ``base`` with ``key``.

    ``HMAC-SHA1`` yields the base64 HMAC; ``PLAINTEXT`` (and anything
    unrecognised) yields the key itself.
    """
    if method == HMAC_SHA1:
        digest = hmac.new(key.encode("utf-8"), base.encode("utf-8"), hashlib.sha1).digest()
        return base64.b64encode(digest).decode("ascii")
    return key


def sign_request(
    key: str,
    method: str | None,
    *,
    http_method: str,
    url: str,
    params: Mapping[str, Any],
) -> str:
    return sign(key, method, base_string(http_method, url, params))


def authorization_header(realm: str, oauth: Mapping[str, Any]) -> str:
    """Render OAuth parameters as an ``Authorization: OAuth ...`` header value."""
    header = f'OAuth realm="{realm}"'
    for key, value in sorted(oauth.items()):
        header += f',{key}="{percent_encode(value)}"'
    return header


def absolute_time(relative: Any, now: int | None = None) -> int:
    """
    Convert a relative lifetime (seconds) into an absolute epoch.

    Fractional lifetimes are truncated. The result never exceeds
    :data:`MAX_TIMESTAMP`, which keeps it usable by consumers that store time
    as a signed 32-bit integer.

    :raises ValueError: When ``relative`` is not a number.
    """
    now = int(time.time()) if now is None else int(now)
    seconds = int(float(relative))
    if seconds < MAX_TIMESTAMP - now:
        return now + seconds
    return MAX_TIMESTAMP


def generate_nonce() -> str:
    return hashlib.sha1(f"{time.time()}{random.random()}".encode()).hexdigest()
