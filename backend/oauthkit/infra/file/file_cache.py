"""Filesystem-backed token cache: one JSON document per key."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any
from urllib.parse import quote

from oauthkit.services._shared.ports.cache_backend import CacheBackend

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockInfo:
    """Metadata persisted in a lock file."""

    pid: int
    created_at: float
    owner: str = ""

    def to_json(self) -> str:
        payload = {"pid": self.pid, "created_at": self.created_at, "owner": self.owner}
        return json.dumps(payload, sort_keys=True)


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True


def _read_lock_info(path: Path) -> LockInfo | None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return LockInfo(
            pid=int(payload["pid"]),
            created_at=float(payload["created_at"]),
            owner=str(payload.get("owner", "")),
        )
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError):
        return None


class FileCacheBackend(CacheBackend):
    """
    Store each key as ``<directory>/<key>.json`` holding ``{"expiry", "data"}``.

    Writes go through a temporary file and :func:`os.replace` so readers
    never observe a half-written document. Locks are ``<key>.lock`` files
    created with ``O_CREAT | O_EXCL`` and holding the owner pid, creation
    time and a random owner token; a lock whose owner is gone or that is
    older than ``lock_ttl`` is stale and gets cleared by the next contender.
    A lock file is only ever removed after it has been renamed aside and
    re-checked, so a holder whose lock went stale and was taken over cannot
    release the new holder's lock.

    :param directory: Cache directory (created on demand).
    :param default_expiry: Lifetime used when the caller gives none.
    :param lock_ttl: Seconds after which a lock is considered abandoned.
    :param poll_interval: Sleep between lock checks while waiting.
    """

    supports_locking = True

    def __init__(
        self,
        directory: str | Path,
        *,
        default_expiry: timedelta = timedelta(days=5 * 365),
        lock_ttl: float = 60.0,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = Path(directory)
        self.default_expiry = default_expiry
        self.lock_ttl = lock_ttl
        self.poll_interval = poll_interval
        self._clock = clock
        self._owners: dict[str, str] = {}
        self._guard = threading.Lock()

    # ------------------------- helpers -------------------------

    def _path(self, key: str, suffix: str = ".json") -> Path:
        return self.directory / f"{quote(key, safe='-_.')}{suffix}"

    def _lock_path(self, key: str) -> Path:
        return self._path(key, ".lock")

    def _stale(self, info: LockInfo | None) -> bool:
        if info is None:
            # unreadable lock: mid-write by its owner, or garbage
            return False
        return not _pid_alive(info.pid) or self._clock() - info.created_at > self.lock_ttl

    def _remove_lock_if(self, key: str, predicate: Callable[[LockInfo | None], bool]) -> bool:
        """Remove the lock file of ``key`` only if ``predicate`` holds for its content."""
        path = self._lock_path(key)
        claimed = path.with_name(f"{path.name}.{uuid.uuid4().hex}")
        try:
            os.rename(path, claimed)
        except FileNotFoundError:
            return False
        if predicate(_read_lock_info(claimed)):
            claimed.unlink(missing_ok=True)
            return True
        # not the lock we meant to remove: restore it unless a new one exists
        try:
            os.link(claimed, path)
        except FileExistsError:
            pass
        finally:
            claimed.unlink(missing_ok=True)
        return False

    def _locked(self, key: str) -> bool:
        path = self._lock_path(key)
        if not path.exists():
            return False
        if self._stale(_read_lock_info(path)):
            if self._remove_lock_if(key, self._stale):
                log.warning("file_cache.stale_lock", extra={"key": key})
            return path.exists()
        return True

    def _try_lock(self, key: str) -> bool:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._lock_path(key)
        token = uuid.uuid4().hex
        info = LockInfo(pid=os.getpid(), created_at=self._clock(), owner=token)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            if self._locked(key):
                return False
            try:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                return False
        try:
            os.write(fd, info.to_json().encode("utf-8"))
        finally:
            os.close(fd)
        with self._guard:
            self._owners[key] = token
        return True

    # -------------------------- API ----------------------------

    def read(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            log.warning("file_cache.unreadable", extra={"key": key})
            return None
        expiry = payload.get("expiry")
        if expiry is not None and expiry < self._clock():
            path.unlink(missing_ok=True)
            return None
        return payload.get("data")

    def write(self, key: str, data: dict[str, Any], expires_at: float | None) -> bool:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump({"expiry": expires_at, "data": data}, fh)
            os.replace(tmp, self._path(key))
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        return True

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        return True

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
        released = self._remove_lock_if(
            key, lambda info: info is not None and info.owner == token
        )
        if not released:
            log.warning("file_cache.lock_lost", extra={"key": key})
        return released

    def wait(self, key: str, *, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._locked(key):
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(self.poll_interval)
        return True
