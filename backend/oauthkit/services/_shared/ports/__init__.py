"""
oauthkit.services._shared.ports
===============================

Collection of *ports* (hexagonal interfaces) that define the contracts
between the token lifecycle service and its infrastructure.

Modules
-------
- :mod:`cache_backend`:
    Defines :class:`~.CacheBackend`: key/value storage with optional advisory
    locking, plus the :class:`~.InMemoryCacheBackend` implementation.

- :mod:`signing_adapter`:
    Defines :class:`~.SigningAdapter`: protocol plugin contract (request,
    verify, refresh, release, access), plus :class:`~.StubSigningAdapter`.

- :mod:`transport`:
    Defines :class:`~.HttpTransport` and :class:`~.TransportResponse`, the
    HTTP client used to talk to authorization providers.

Design Notes
------------
Concrete adapters (requests, Redis, SQLAlchemy, files, Flask session) live
under ``oauthkit.infra`` and implement these interfaces.
"""

from __future__ import annotations

from .cache_backend import CacheBackend, InMemoryCacheBackend
from .signing_adapter import SigningAdapter, StubSigningAdapter
from .transport import HttpTransport, TransportResponse

__all__ = [
    "CacheBackend",
    "InMemoryCacheBackend",
    "SigningAdapter",
    "StubSigningAdapter",
    "HttpTransport",
    "TransportResponse",
]
