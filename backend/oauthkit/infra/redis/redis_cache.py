# comments in English; reST docstrings
from __future__ import annotations

import json
import math
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, ClassVar

import redis  # type: ignore[import-untyped]

from oauthkit.services._shared.ports.cache_backend import CacheBackend


@dataclass(slots=True)
class RedisCacheBackend(CacheBackend):
    """
    Redis-backed token cache with native, TTL-bounded locks.

    Values are stored as JSON strings with ``SET ... EX`` so Redis enforces
    expiry itself. A lock is a separate ``<prefix>lock:<key>`` entry created
    with ``SET NX PX`` and holding a random owner token; release is a
    WATCH/MULTI compare-and-delete so we never remove a lock that expired
    and was taken over by someone else.

    :param r: A Redis client (already connected).
    :param prefix: Namespace prepended to every key.
    :param default_expiry: Lifetime used when the caller gives none.
    :param lock_ttl: Seconds after which Redis drops an abandoned lock.
    :param poll_interval: Sleep between lock checks while waiting.
    """

    r: redis.Redis
    prefix: str = "oauth:"
    default_expiry: timedelta = timedelta(days=5 * 365)
    lock_ttl: float = 60.0
    poll_interval: float = 0.05
    _owners: dict[str, str] = field(default_factory=dict)
    _guard: threading.Lock = field(default_factory=threading.Lock)

    supports_locking: ClassVar[bool] = True

    # -------------------- helpers --------------------

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _kl(self, key: str) -> str:
        return f"{self.prefix}lock:{key}"

    def _try_lock(self, key: str) -> bool:
        token = uuid.uuid4().hex
        acquired = self.r.set(self._kl(key), token, nx=True, px=int(self.lock_ttl * 1000))
        if acquired:
            with self._guard:
                self._owners[key] = token
        return bool(acquired)

    # -------------------- API ------------------------

    def read(self, key: str) -> dict[str, Any] | None:
        raw = self.r.get(self._k(key))
        if raw is None:
            return None
        if isinstance(raw, bytes | bytearray):
            raw = raw.decode()
        return json.loads(raw)

    def write(self, key: str, data: dict[str, Any], expires_at: float | None) -> bool:
        payload = json.dumps(data)
        if expires_at is None:
            return bool(self.r.set(self._k(key), payload))
        ttl = math.ceil(expires_at - time.time())
        if ttl <= 0:
            # already expired: behave as if written then expired
            self.r.delete(self._k(key))
            return True
        return bool(self.r.set(self._k(key), payload, ex=ttl))

    def delete(self, key: str) -> bool:
        return bool(self.r.delete(self._k(key)))

    def block(self, key: str, *, wait: bool = False, timeout: float | None = None) -> bool:
        if self._try_lock(key):
            return True
        if not wait:
            return False
        deadline = None if timeout is None else time.monotonic() + timeout
        while deadline is None or time.monotonic() < deadline:
            time.sleep(self.poll_interval)
            if self._try_lock(key):
                return True
        return False

    def unblock(self, key: str) -> bool:
        with self._guard:
            token = self._owners.pop(key, None)
        if token is None:
            return True
        lock_key = self._kl(key)

        # Retry loop for optimistic locking in case of concurrent modifications
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(lock_key)
                    current = p.get(lock_key)
                    if isinstance(current, bytes | bytearray):
                        current = current.decode()
                    if current != token:
                        # expired and possibly re-acquired by someone else
                        p.unwatch()
                        return False
                    p.multi()
                    p.delete(lock_key)
                    p.execute()
                return True
            except redis.WatchError:
                continue

    def wait(self, key: str, *, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.r.exists(self._kl(key)):
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(self.poll_interval)
        return True
