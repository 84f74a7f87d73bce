"""Relational storage for token cache entries."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Float, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from oauthkit.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin


class TokenCacheEntry(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    One cached value of the model-backed token cache.

    A row may exist with ``data`` set to ``None``: locking a key that was
    never written creates a placeholder row so the lock has something to
    live on.

    Fields
    ------
    key : str
        Cache key (``<service>-<environment>-<qualifier>``). Unique.
    data : dict | None
        JSON-serialized cached value.
    lock_until : float | None
        Epoch until which the key is locked; ``None`` or a past value means unlocked.
    lock_owner : str | None
        Random token of the current lock holder; only that holder may release it.
    expiry : float | None
        Epoch after which ``data`` is treated as absent.
    """

    __tablename__ = "oauth_token_cache"

    key: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    lock_until: Mapped[float | None] = mapped_column(Float, nullable=True)
    lock_owner: Mapped[str | None] = mapped_column(String(32), nullable=True)
    expiry: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("key", name="uq_oauth_token_cache_key"),
        Index("ix_oauth_token_cache_expiry", "expiry"),
    )
