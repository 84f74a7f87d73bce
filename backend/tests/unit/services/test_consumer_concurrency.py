"""Concurrent refresh behaviour of :class:`OAuthConsumer` across threads."""

from __future__ import annotations

import threading

import pytest
from oauthkit.services._shared.ports.cache_backend import InMemoryCacheBackend
from oauthkit.services._shared.ports.signing_adapter import StubSigningAdapter
from oauthkit.services.consumer.registry import ServiceRegistry
from oauthkit.services.consumer.service import OAuthConsumer
from oauthkit.services.token_cache.service import TokenCache

from tests.helpers.fakes import FakeClock

WORKERS = 6


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def consumer(clock):
    registry = ServiceRegistry(
        {"svc": {"*": {"adapter": "stub"}}},
        "testing",
        adapters={"stub": lambda config, **_: StubSigningAdapter(config, clock=clock)},
    )
    cache = TokenCache({"default": InMemoryCacheBackend(poll_interval=0.005)}, lock_timeout=5.0)
    return OAuthConsumer(registry, cache, clock=clock)


@pytest.fixture
def expired(consumer, clock):
    """Authorize ``svc`` and let its token expire. Returns the stub adapter."""
    consumer.request_authorization("svc", {"nonce": "n1"})
    assert consumer.verify_authorization("svc", {"nonce": "n1", "oauth_verifier": "v"})
    clock.advance(3601)
    adapter = consumer.registry.adapter("svc")
    adapter.refresh_delay = 0.2
    return adapter


def _race(target, *args):
    barrier = threading.Barrier(WORKERS)
    results = [None] * WORKERS

    def worker(index: int) -> None:
        barrier.wait()
        results[index] = target(*args)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(WORKERS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10)
    return results


def test_only_one_caller_refreshes_an_expired_token(consumer, expired) -> None:
    results = _race(consumer.has_access, "svc")

    assert all(result.ok for result in results)
    assert expired.calls["refresh"] == 1
    assert consumer.get("svc", "/me").value == "GET /me as access-3"


def test_contenders_observe_the_failed_refresh(consumer, expired) -> None:
    expired.fail_refresh = "revoked"

    results = _race(consumer.has_access, "svc")

    assert not any(result.ok for result in results)
    assert expired.calls["refresh"] == 1


def test_forced_refreshes_are_serialized(consumer, expired) -> None:
    expired.refresh_delay = 0.05

    results = _race(consumer.refresh, "svc")

    assert all(result.ok for result in results)
    # every forced refresh either renews or observes a renewal made after it started
    assert 1 <= expired.calls["refresh"] <= WORKERS
