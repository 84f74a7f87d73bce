"""Unit tests for the filesystem token cache backend."""

from __future__ import annotations

import json
import os

import pytest
from oauthkit.infra.file.file_cache import FileCacheBackend, LockInfo

from tests.helpers.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend(tmp_path, clock):
    return FileCacheBackend(tmp_path / "cache", lock_ttl=60, poll_interval=0.01, clock=clock)


def test_write_then_read(backend, clock) -> None:
    assert backend.write("svc-dev-token", {"authorized": True}, clock() + 60)

    assert backend.read("svc-dev-token") == {"authorized": True}
    assert backend.read("missing") is None


def test_expired_entry_reads_as_absent_and_is_removed(backend, clock) -> None:
    backend.write("k", {"v": 1}, clock() + 10)
    clock.advance(11)

    assert backend.read("k") is None
    assert not backend._path("k").exists()


def test_entry_without_expiry_never_expires(backend, clock) -> None:
    backend.write("k", {"v": 1}, None)
    clock.advance(10**9)

    assert backend.read("k") == {"v": 1}


def test_keys_are_kept_inside_the_directory(backend, tmp_path) -> None:
    backend.write("../escape/key", {"v": 1}, None)

    files = [p.name for p in (tmp_path / "cache").iterdir()]
    assert files == ["..%2Fescape%2Fkey.json"]
    assert backend.read("../escape/key") == {"v": 1}


def test_delete_reports_whether_an_entry_existed(backend) -> None:
    backend.write("k", {"v": 1}, None)

    assert backend.delete("k") is True
    assert backend.delete("k") is False


def test_lock_is_exclusive_until_released(backend, tmp_path, clock) -> None:
    other = FileCacheBackend(tmp_path / "cache", poll_interval=0.01, clock=clock)

    assert backend.block("k")
    assert not other.block("k")
    assert not other.wait("k", timeout=0.05)

    backend.unblock("k")

    assert other.wait("k", timeout=0.05)
    assert other.block("k")


def test_lock_file_records_owner(backend) -> None:
    backend.block("k")

    payload = json.loads(backend._lock_path("k").read_text(encoding="utf-8"))

    assert payload["pid"] == os.getpid()


def test_lock_of_dead_process_is_stale(backend, clock) -> None:
    backend.directory.mkdir(parents=True, exist_ok=True)
    backend._lock_path("k").write_text(LockInfo(pid=0, created_at=clock()).to_json())

    assert backend.block("k")


def test_lock_older_than_ttl_is_stale(backend, clock) -> None:
    assert backend.block("k")
    assert not backend.block("k")

    clock.advance(61)

    assert backend.block("k")


def test_block_with_wait_times_out(backend) -> None:
    backend.block("k")

    assert backend.block("k", wait=True, timeout=0.05) is False


def test_unblock_never_removes_a_lock_taken_over_by_someone_else(backend, tmp_path, clock) -> None:
    successor = FileCacheBackend(tmp_path / "cache", lock_ttl=60, clock=clock)
    third = FileCacheBackend(tmp_path / "cache", lock_ttl=60, clock=clock)

    assert backend.block("k")
    clock.advance(61)
    assert successor.block("k")

    assert backend.unblock("k") is False

    assert not third.block("k")
    assert backend._lock_path("k").exists()
    assert successor.unblock("k") is True
    assert third.block("k")


def test_unblock_without_lock_is_harmless(backend) -> None:
    assert backend.unblock("never-locked") is True


def test_stale_lock_cleanup_leaves_no_claimed_files(backend, clock) -> None:
    backend.block("k")
    clock.advance(61)

    assert backend.wait("k", timeout=0.05)

    assert list(backend.directory.iterdir()) == []
