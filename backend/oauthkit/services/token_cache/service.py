"""
Blocking token cache.

:class:`TokenCache` is a key/value facade over named :class:`CacheBackend`
instances that adds advisory per-key locking ("blocking"):

- Reads wait for a held lock by default.
- Reads with ``block=True`` try to take the lock and return ``None`` right
  away when they cannot (effectively ``block() and read()``).
- Writes release the lock by default, so ``read(block=True)`` followed by
  ``write()`` is an atomic read-modify-write.

Locks are re-entrant per holder thread. Each ``TokenCache`` instance owns its
lock table; unrelated instances never share lock state.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from oauthkit.services._shared.errors import LockUnavailable, UnknownCache
from oauthkit.services._shared.ports.cache_backend import CacheBackend

log = logging.getLogger(__name__)

Expiry = timedelta | int | float | None


class TokenCache:
    """
    Named cache configurations with blocking semantics.

    :param backends: Initial mapping of namespace name to backend.
    :param lock_timeout: Upper bound (seconds) for any lock wait. ``None``
        waits forever.
    """

    def __init__(
        self,
        backends: Mapping[str, CacheBackend] | None = None,
        *,
        lock_timeout: float | None = 30.0,
    ) -> None:
        self._backends: dict[str, CacheBackend] = dict(backends or {})
        self._locks: dict[tuple[str, str], int] = {}
        self._guard = threading.Lock()
        self.lock_timeout = lock_timeout

    # ------------------------- configuration -------------------------

    def config(self, name: str, backend: CacheBackend) -> None:
        """Register (or replace) the backend used for namespace ``name``."""
        self._backends[name] = backend

    def backend(self, name: str) -> CacheBackend:
        try:
            return self._backends[name]
        except KeyError:
            raise UnknownCache(name) from None

    def names(self) -> list[str]:
        return sorted(self._backends)

    # ------------------------- helpers -------------------------

    @staticmethod
    def _holder() -> int:
        return threading.get_ident()

    def _holds(self, name: str, key: str) -> bool:
        with self._guard:
            return self._locks.get((name, key)) == self._holder()

    @staticmethod
    def _expires_at(backend: CacheBackend, expiry: Expiry) -> float | None:
        if expiry is None:
            expiry = backend.default_expiry
        seconds = expiry.total_seconds() if isinstance(expiry, timedelta) else float(expiry)
        return time.time() + seconds

    # -------------------------- API ----------------------------

    def read(
        self, name: str, key: str, *, wait: bool | None = None, block: bool = False
    ) -> dict[str, Any] | None:
        """
        Read ``key`` from namespace ``name``.

        :param wait: Wait for a held lock. Defaults to ``not block``.
        :param block: Take the lock before reading; fail fast unless ``wait``.
        :returns: Stored value, or ``None`` when absent, expired or not lockable.
        """
        backend = self.backend(name)
        if wait is None:
            wait = not block
        if block:
            if not self.block(name, key, wait=wait):
                return None
        elif wait:
            self.wait(name, key)
        return backend.read(key)

    def write(
        self,
        name: str,
        key: str,
        data: dict[str, Any],
        expiry: Expiry = None,
        *,
        wait: bool = True,
        block: bool = False,
        unblock: bool = True,
    ) -> bool:
        """
        Write ``data`` under ``key``.

        :param expiry: Lifetime in seconds or as a ``timedelta``; backend default when ``None``.
        :param wait: Wait for a lock held by someone else.
        :param block: Take the lock before writing.
        :param unblock: Release our lock afterwards.
        :returns: True on a successful write.
        """
        backend = self.backend(name)
        if block:
            if not self.block(name, key, wait=wait):
                return False
        elif wait:
            self.wait(name, key)
        try:
            return backend.write(key, data, self._expires_at(backend, expiry))
        finally:
            if unblock:
                self.unblock(name, key)

    def delete(self, name: str, key: str, *, wait: bool = True, block: bool = True) -> bool:
        """Delete ``key``, holding the lock across the delete by default."""
        backend = self.backend(name)
        if block:
            if not self.block(name, key, wait=wait):
                return False
        elif wait:
            self.wait(name, key)
        try:
            return backend.delete(key)
        finally:
            if block:
                self.unblock(name, key)

    def block(self, name: str, key: str, wait: bool = False) -> bool:
        """
        Obtain the exclusive lock on ``key``.

        Repeated calls by the current holder are no-ops that return True.

        :raises LockUnavailable: When ``wait`` is set and the wait timed out.
        """
        backend = self.backend(name)
        if not backend.supports_locking or self._holds(name, key):
            return True
        timeout = self.lock_timeout if wait else None
        if not backend.block(key, wait=wait, timeout=timeout):
            if wait:
                log.warning(
                    "token_cache.lock_timeout",
                    extra={"cache": name, "key": key},
                )
                raise LockUnavailable(f"Timed out waiting for lock on {key}.")
            log.debug("token_cache.lock_busy", extra={"cache": name, "key": key})
            return False
        with self._guard:
            self._locks[(name, key)] = self._holder()
        log.debug("token_cache.locked", extra={"cache": name, "key": key})
        return True

    def unblock(self, name: str, key: str) -> bool:
        """Release our lock on ``key``; a no-op if we do not hold it."""
        backend = self.backend(name)
        if not backend.supports_locking or not self._holds(name, key):
            return True
        with self._guard:
            self._locks.pop((name, key), None)
        log.debug("token_cache.unlocked", extra={"cache": name, "key": key})
        return backend.unblock(key)

    def wait(self, name: str, key: str) -> bool:
        """
        Wait for a lock held by someone else to be released.

        A wait that exceeds ``lock_timeout`` is logged and abandoned so a
        crashed holder cannot stall readers forever.
        """
        backend = self.backend(name)
        if not backend.supports_locking or self._holds(name, key):
            return True
        if backend.wait(key, timeout=self.lock_timeout):
            return True
        log.warning("token_cache.wait_timeout", extra={"cache": name, "key": key})
        return False

    def holds(self, name: str, key: str) -> bool:
        """Whether the calling thread currently holds the lock on ``key``."""
        return self._holds(name, key)
