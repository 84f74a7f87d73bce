"""Token cache kept in the signed Flask session cookie of the current user."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from flask import session

from oauthkit.services._shared.ports.cache_backend import CacheBackend


class SessionCacheBackend(CacheBackend):
    """
    Store values as ``{"expiry", "data"}`` under ``<prefix><key>`` in :data:`flask.session`.

    A session belongs to exactly one user agent, so there is nothing to lock
    against: the lock primitives are no-ops that report success. Only usable
    inside a request context.

    :param prefix: Session key prefix.
    :param default_expiry: Lifetime used when the caller gives none.
    """

    supports_locking = False

    def __init__(
        self,
        *,
        prefix: str = "oauth.",
        default_expiry: timedelta = timedelta(days=1),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.prefix = prefix
        self.default_expiry = default_expiry
        self._clock = clock

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def read(self, key: str) -> dict[str, Any] | None:
        entry = session.get(self._k(key))
        if not entry:
            return None
        expiry = entry.get("expiry")
        if expiry is not None and expiry < self._clock():
            session.pop(self._k(key), None)
            return None
        return entry.get("data")

    def write(self, key: str, data: dict[str, Any], expires_at: float | None) -> bool:
        session[self._k(key)] = {"expiry": expires_at, "data": data}
        return True

    def delete(self, key: str) -> bool:
        return session.pop(self._k(key), None) is not None

    def block(self, key: str, *, wait: bool = False, timeout: float | None = None) -> bool:
        return True

    def unblock(self, key: str) -> bool:
        return True

    def wait(self, key: str, *, timeout: float | None = None) -> bool:
        return True
