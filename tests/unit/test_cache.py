from __future__ import annotations

import threading
import time

import pytest

from fuel_directory.common.errors import FetchCancelledError, RemoteFetchError
from fuel_directory.directory.cache import StationCache


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_cache_hit_within_ttl_skips_fetch():
    clock = FakeClock()
    cache = StationCache(clock=clock)
    calls: list[int] = []

    def fetch():
        calls.append(1)
        return ["a", "b"]

    first = cache.get_or_fetch("stations", 300, fetch)
    clock.now += 299
    second = cache.get_or_fetch("stations", 300, fetch)

    assert len(calls) == 1
    assert first.from_cache is False
    assert second.from_cache is True
    assert second.records == ("a", "b")


def test_cache_expires_after_ttl():
    clock = FakeClock()
    cache = StationCache(clock=clock)
    results = iter([["old"], ["new"]])

    cache.get_or_fetch("stations", 300, lambda: next(results))
    clock.now += 301
    refreshed = cache.get_or_fetch("stations", 300, lambda: next(results))

    assert refreshed.records == ("new",)
    assert refreshed.fetched_at == clock.now


def test_failed_refresh_serves_stale_entry():
    clock = FakeClock()
    cache = StationCache(clock=clock)
    cache.get_or_fetch("stations", 10, lambda: ["cached"])
    clock.now += 60

    def failing():
        raise RemoteFetchError("down", status=503)

    result = cache.get_or_fetch("stations", 10, failing)

    assert result.stale is True
    assert result.records == ("cached",)
    assert isinstance(result.error, RemoteFetchError)
    assert cache.get("stations").fetched_at == 1_000.0


def test_failure_without_entry_propagates():
    cache = StationCache(clock=FakeClock())

    def failing():
        raise RemoteFetchError("down")

    with pytest.raises(RemoteFetchError):
        cache.get_or_fetch("stations", 10, failing)
    assert cache.get("stations") is None


def test_cancelled_fetch_keeps_previous_entry():
    clock = FakeClock()
    cache = StationCache(clock=clock)
    cache.get_or_fetch("stations", 10, lambda: ["kept"])
    clock.now += 60

    def cancelled():
        raise FetchCancelledError("stop")

    with pytest.raises(FetchCancelledError):
        cache.get_or_fetch("stations", 10, cancelled)
    assert cache.get("stations").records == ("kept",)


def test_concurrent_callers_share_one_fetch():
    cache = StationCache()
    started = threading.Event()
    release = threading.Event()
    calls: list[int] = []

    def slow_fetch():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return ["shared"]

    results: list = []
    leader = threading.Thread(target=lambda: results.append(cache.get_or_fetch("stations", 60, slow_fetch)))
    leader.start()
    assert started.wait(timeout=5)

    followers = [
        threading.Thread(target=lambda: results.append(cache.get_or_fetch("stations", 60, slow_fetch)))
        for _ in range(3)
    ]
    for thread in followers:
        thread.start()
    time.sleep(0.05)
    release.set()
    for thread in [leader, *followers]:
        thread.join(timeout=5)

    assert len(calls) == 1
    assert len(results) == 4
    assert all(result.records == ("shared",) for result in results)


def test_invalidate_forces_refetch():
    cache = StationCache(clock=FakeClock())
    results = iter([["one"], ["two"]])
    cache.get_or_fetch("stations", 300, lambda: next(results))

    assert cache.invalidate("stations") is True
    assert cache.get_or_fetch("stations", 300, lambda: next(results)).records == ("two",)
    assert cache.invalidate("missing") is False


def test_set_get_and_clear():
    clock = FakeClock(50.0)
    cache = StationCache(clock=clock)

    entry = cache.set("stations", ["x"])

    assert cache.get("stations") == entry
    assert entry.fetched_at == 50.0
    assert cache.is_fresh(entry, 0) is True
    clock.now += 1
    assert cache.is_fresh(entry, 0) is False
    cache.clear()
    assert cache.get("stations") is None
