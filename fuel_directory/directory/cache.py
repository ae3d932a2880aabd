"""In-memory TTL cache with per-key in-flight fetch coalescing."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from fuel_directory.common.errors import FetchCancelledError
from fuel_directory.common.logging import log_event

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    records: tuple[T, ...]
    fetched_at: float


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    records: tuple[T, ...]
    fetched_at: float
    from_cache: bool
    stale: bool = False
    error: Exception | None = None


class StationCache(Generic[T]):
    """Keyed record cache.

    Entries are replaced wholesale on refresh. At most one fetch per key is in
    flight; callers arriving meanwhile wait for that fetch's outcome.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time, logger: logging.Logger | None = None) -> None:
        self.clock = clock
        self.logger = logger
        self._entries: dict[str, CacheEntry[T]] = {}
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry[T] | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, records: Sequence[T]) -> CacheEntry[T]:
        entry = CacheEntry(key=key, records=tuple(records), fetched_at=self.clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def is_fresh(self, entry: CacheEntry[T], ttl_seconds: float) -> bool:
        return self.clock() - entry.fetched_at <= ttl_seconds

    def get_or_fetch(self, key: str, ttl_seconds: float, fetch_fn: Callable[[], Sequence[T]]) -> CacheResult[T]:
        while True:
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None and self.is_fresh(entry, ttl_seconds):
                    log_event(self.logger, f"cache hit for {key}", level=logging.DEBUG, component="cache", event="CACHE_HIT")
                    return CacheResult(records=entry.records, fetched_at=entry.fetched_at, from_cache=True)
                pending = self._inflight.get(key)
                if pending is None:
                    pending = Future()
                    self._inflight[key] = pending
                    leader = True
                else:
                    leader = False

            if leader:
                return self._fetch_as_leader(key, pending, fetch_fn)

            try:
                return pending.result()
            except FetchCancelledError:
                # The leading caller cancelled its own fetch; start a fresh one.
                continue

    def _fetch_as_leader(
        self,
        key: str,
        pending: Future,
        fetch_fn: Callable[[], Sequence[T]],
    ) -> CacheResult[T]:
        log_event(self.logger, f"cache miss for {key}", component="cache", event="CACHE_MISS")
        try:
            records = fetch_fn()
        except FetchCancelledError as exc:
            with self._lock:
                self._inflight.pop(key, None)
            pending.set_exception(exc)
            raise
        except Exception as exc:
            with self._lock:
                self._inflight.pop(key, None)
                previous = self._entries.get(key)
            if previous is None:
                pending.set_exception(exc)
                raise
            log_event(
                self.logger,
                f"refresh of {key} failed; serving stale entry: {exc}",
                level=logging.WARNING,
                component="cache",
                event="CACHE_STALE_FALLBACK",
                status="degraded",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            result = CacheResult(
                records=previous.records,
                fetched_at=previous.fetched_at,
                from_cache=True,
                stale=True,
                error=exc,
            )
            pending.set_result(result)
            return result
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            pending.set_exception(exc)
            raise

        entry = CacheEntry(key=key, records=tuple(records), fetched_at=self.clock())
        with self._lock:
            self._entries[key] = entry
            self._inflight.pop(key, None)
        result = CacheResult(records=entry.records, fetched_at=entry.fetched_at, from_cache=False)
        pending.set_result(result)
        return result
