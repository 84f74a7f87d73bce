"""
Relational-row token cache over the :class:`TokenCacheEntry` model.

Each operation runs in its own short transaction and commits before
returning, so a lock taken here is visible to every other process sharing
the database. A lock stores a random owner token next to its deadline and
is only cleared by the holder of that token.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oauthkit.core.extensions import db
from oauthkit.models import TokenCacheEntry
from oauthkit.services._shared.ports.cache_backend import CacheBackend

log = logging.getLogger(__name__)


class ModelCacheBackend(CacheBackend):
    """
    Token cache stored in the ``oauth_token_cache`` table.

    :param session_factory: Returns the session to use; defaults to the
        Flask-scoped ``db.session``.
    :param default_expiry: Lifetime used when the caller gives none.
    :param lock_ttl: Seconds after which a lock is considered abandoned.
    :param poll_interval: Sleep between lock checks while waiting.
    """

    supports_locking = True

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        default_expiry: timedelta = timedelta(days=5 * 365),
        lock_ttl: float = 60.0,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory or (lambda: db.session)
        self.default_expiry = default_expiry
        self.lock_ttl = lock_ttl
        self.poll_interval = poll_interval
        self._clock = clock
        self._owners: dict[str, str] = {}
        self._guard = threading.Lock()

    @property
    def session(self) -> Session:
        return self._session_factory()

    # ------------------------- helpers -------------------------

    def _row(self, key: str) -> TokenCacheEntry | None:
        stmt = select(TokenCacheEntry).where(TokenCacheEntry.key == key)
        return self.session.execute(stmt).scalar_one_or_none()

    def _ensure_row(self, key: str) -> None:
        """Create an empty placeholder row so a lock can be stored on it."""
        if self._row(key) is not None:
            return
        session = self.session
        session.add(TokenCacheEntry(key=key, data=None))
        try:
            session.commit()
        except IntegrityError:
            # created concurrently
            session.rollback()

    def _locked(self, key: str) -> bool:
        stmt = select(TokenCacheEntry.lock_until).where(TokenCacheEntry.key == key)
        lock_until = self.session.execute(stmt).scalar_one_or_none()
        self.session.commit()
        return lock_until is not None and lock_until > self._clock()

    def _try_lock(self, key: str) -> bool:
        self._ensure_row(key)
        now = self._clock()
        token = uuid.uuid4().hex
        stmt = (
            update(TokenCacheEntry)
            .where(
                TokenCacheEntry.key == key,
                or_(TokenCacheEntry.lock_until.is_(None), TokenCacheEntry.lock_until <= now),
            )
            .values(lock_until=now + self.lock_ttl, lock_owner=token)
            .execution_options(synchronize_session=False)
        )
        session = self.session
        try:
            result = session.execute(stmt)
            session.commit()
        except Exception:
            session.rollback()
            raise
        if result.rowcount != 1:
            return False
        with self._guard:
            self._owners[key] = token
        return True

    # -------------------------- API ----------------------------

    def read(self, key: str) -> dict[str, Any] | None:
        session = self.session
        row = self._row(key)
        if row is None or row.data is None:
            session.commit()
            return None
        if row.expiry is not None and row.expiry < self._clock():
            row.data = None
            row.expiry = None
            session.commit()
            return None
        data = dict(row.data)
        session.commit()
        return data

    def write(self, key: str, data: dict[str, Any], expires_at: float | None) -> bool:
        session = self.session
        try:
            row = self._row(key)
            if row is None:
                session.add(TokenCacheEntry(key=key, data=dict(data), expiry=expires_at))
            else:
                row.data = dict(data)
                row.expiry = expires_at
            session.commit()
        except IntegrityError:
            session.rollback()
            row = self._row(key)
            if row is None:
                raise
            row.data = dict(data)
            row.expiry = expires_at
            session.commit()
        return True

    def delete(self, key: str) -> bool:
        session = self.session
        row = self._row(key)
        if row is None:
            session.commit()
            return False
        existed = row.data is not None
        if row.lock_until is not None and row.lock_until > self._clock():
            # keep the row so the lock survives
            row.data = None
            row.expiry = None
        else:
            session.delete(row)
        session.commit()
        return existed

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
        log.debug("model_cache.lock_wait_timeout", extra={"key": key})
        return False

    def unblock(self, key: str) -> bool:
        with self._guard:
            token = self._owners.pop(key, None)
        if token is None:
            return True
        session = self.session
        stmt = (
            update(TokenCacheEntry)
            .where(TokenCacheEntry.key == key, TokenCacheEntry.lock_owner == token)
            .values(lock_until=None, lock_owner=None)
            .execution_options(synchronize_session=False)
        )
        try:
            result = session.execute(stmt)
            session.commit()
        except Exception:
            session.rollback()
            raise
        if result.rowcount != 1:
            # expired and possibly re-acquired by someone else
            log.warning("model_cache.lock_lost", extra={"key": key})
            return False
        return True

    def wait(self, key: str, *, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._locked(key):
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(self.poll_interval)
        return True
