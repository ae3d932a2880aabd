"""Cancellable periodic refresh owned by whoever starts it."""

from __future__ import annotations

import logging
import threading
from types import TracebackType
from typing import Callable

from fuel_directory.common.errors import FetchCancelledError
from fuel_directory.common.logging import log_event


class RefreshTask:
    """Calls ``refresh_fn(stop_event)`` every ``interval_seconds`` until cancelled.

    The stop event doubles as the cancellation signal for the refresh in
    progress, so ``cancel()`` also aborts a page fetch that is under way.
    """

    def __init__(
        self,
        refresh_fn: Callable[[threading.Event], object],
        interval_seconds: float,
        *,
        name: str = "station-refresh",
        logger: logging.Logger | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.refresh_fn = refresh_fn
        self.interval_seconds = interval_seconds
        self.name = name
        self.logger = logger
        self.runs = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "RefreshTask":
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.refresh_fn(self._stop)
            except FetchCancelledError:
                break
            except Exception as exc:
                log_event(
                    self.logger,
                    f"scheduled refresh failed: {exc}",
                    level=logging.WARNING,
                    component="refresh",
                    event="REFRESH_FAILED",
                    status="error",
                    error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                )
            self.runs += 1

    def cancel(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        log_event(self.logger, f"{self.name} cancelled", component="refresh", event="REFRESH_CANCELLED", status="ok")

    def __enter__(self) -> "RefreshTask":
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()
