from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any, Protocol


class CacheBackend(Protocol):
    """
    Key/value storage behind a :class:`~oauthkit.services.token_cache.service.TokenCache`.

    Values are JSON-serializable dicts. Expiry is enforced by the backend:
    reading an expired entry returns ``None`` and removes it.

    Backends that cannot lock set ``supports_locking = False`` and implement
    the lock primitives as no-ops that report success.
    """

    supports_locking: bool
    default_expiry: timedelta

    def read(self, key: str) -> dict[str, Any] | None:
        """Return the stored value, or ``None`` when absent or expired."""

    def write(self, key: str, data: dict[str, Any], expires_at: float | None) -> bool:
        """Store ``data`` until the absolute epoch ``expires_at`` (``None`` = never)."""

    def delete(self, key: str) -> bool:
        """Remove the entry. :returns: True if something was removed."""

    def block(self, key: str, *, wait: bool = False, timeout: float | None = None) -> bool:
        """
        Acquire the exclusive lock for ``key``.

        :param wait: Wait for a concurrent holder instead of failing fast.
        :param timeout: Upper bound (seconds) for the wait.
        :returns: True if the lock is now held.
        """

    def unblock(self, key: str) -> bool:
        """Release a lock previously obtained with :meth:`block`."""

    def wait(self, key: str, *, timeout: float | None = None) -> bool:
        """Wait until ``key`` is unlocked. :returns: False if the wait timed out."""


class InMemoryCacheBackend(CacheBackend):
    """
    Process-local cache backend with real locking.

    .. note::
       Uses a :class:`threading.Condition` so concurrent threads see the
       same contention behaviour a shared backend would give separate
       processes. Locks older than ``lock_ttl`` seconds are treated as
       abandoned.
    """

    supports_locking = True

    def __init__(
        self,
        *,
        default_expiry: timedelta = timedelta(days=1),
        lock_ttl: float = 60.0,
        poll_interval: float = 0.01,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_expiry = default_expiry
        self.lock_ttl = lock_ttl
        self.poll_interval = poll_interval
        self._clock = clock
        self._entries: dict[str, tuple[dict[str, Any], float | None]] = {}
        self._locks: dict[str, float] = {}
        self._cond = threading.Condition()

    # ------------------------- helpers -------------------------

    def _locked(self, key: str) -> bool:
        acquired_at = self._locks.get(key)
        if acquired_at is None:
            return False
        if self._clock() - acquired_at > self.lock_ttl:
            # abandoned by its holder
            del self._locks[key]
            return False
        return True

    def _wait_unlocked(self, key: str, timeout: float | None) -> bool:
        # caller holds self._cond
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._locked(key):
            if deadline is None:
                step = self.poll_interval
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                step = min(remaining, self.poll_interval)
            self._cond.wait(step)
        return True

    # -------------------------- API ----------------------------

    def read(self, key: str) -> dict[str, Any] | None:
        with self._cond:
            entry = self._entries.get(key)
            if entry is None:
                return None
            data, expires_at = entry
            if expires_at is not None and expires_at < self._clock():
                del self._entries[key]
                return None
            return copy.deepcopy(data)

    def write(self, key: str, data: dict[str, Any], expires_at: float | None) -> bool:
        with self._cond:
            self._entries[key] = (copy.deepcopy(data), expires_at)
            return True

    def delete(self, key: str) -> bool:
        with self._cond:
            return self._entries.pop(key, None) is not None

    def block(self, key: str, *, wait: bool = False, timeout: float | None = None) -> bool:
        with self._cond:
            if self._locked(key):
                if not wait or not self._wait_unlocked(key, timeout):
                    return False
            self._locks[key] = self._clock()
            return True

    def unblock(self, key: str) -> bool:
        with self._cond:
            self._locks.pop(key, None)
            self._cond.notify_all()
            return True

    def wait(self, key: str, *, timeout: float | None = None) -> bool:
        with self._cond:
            return self._wait_unlocked(key, timeout)

    def is_locked(self, key: str) -> bool:
        """Inspect the lock state (diagnostics and tests)."""
        with self._cond:
            return self._locked(key)
