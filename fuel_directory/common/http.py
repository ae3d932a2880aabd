"""HTTP client with retries, timeouts, Retry-After handling and host-aware rate limiting."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime
from types import TracebackType
from typing import Any, Callable
from urllib.parse import urlparse

import requests
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter
from tenacity.wait import wait_base

from fuel_directory.common.constants import USER_AGENT
from fuel_directory.common.errors import FetchCancelledError, RemoteFetchError
from fuel_directory.common.logging import log_event
from fuel_directory.common.time_utils import utc_now

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
MAX_ERROR_BODY_CHARS = 2000


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 15.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 4
    multiplier: float = 1.0
    max_wait: float = 30.0
    jitter: float = 0.0


class RetryableHttpError(RemoteFetchError):
    error_code = "HTTP_RETRYABLE"


class RateLimitedError(RetryableHttpError):
    error_code = "RATE_LIMITED"

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


def parse_retry_after(value: str | None, now=None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    reference = now or utc_now()
    return max((retry_at - reference).total_seconds(), 0.0)


class wait_retry_after(wait_base):
    """Wait exactly as long as the server's Retry-After hint asks, else defer to ``fallback``.

    Hints longer than the retry budget never reach here: they are raised as
    non-retryable errors when the response is inspected.
    """

    def __init__(self, fallback: wait_base) -> None:
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None and outcome.failed else None
        hint = getattr(exc, "retry_after", None)
        if hint is not None:
            return float(hint)
        return self.fallback(retry_state)


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: float | None = None) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = capacity if capacity is not None else rate_per_sec
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self.lock = threading.Lock()

    def acquire(self, tokens: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.updated_at
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.updated_at = now
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                deficit = tokens - self.tokens
                wait_for = max(deficit / self.rate_per_sec, 0.01)
            time.sleep(wait_for)


class HostRateLimiter:
    def __init__(self, default_rate_per_sec: float) -> None:
        self.default_rate_per_sec = default_rate_per_sec
        self.buckets: dict[str, TokenBucket] = {}
        self.lock = threading.Lock()

    def acquire(self, host: str, tokens: float = 1.0) -> None:
        with self.lock:
            bucket = self.buckets.get(host)
            if bucket is None:
                bucket = TokenBucket(rate_per_sec=self.default_rate_per_sec)
                self.buckets[host] = bucket
        bucket.acquire(tokens=tokens)


class HttpClient:
    def __init__(
        self,
        *,
        auth_token: str | None = None,
        auth_scheme: str = "Token",
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        rate_per_sec: float | None = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.auth_token = auth_token
        self.auth_scheme = auth_scheme
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.sleep = sleep
        self.logger = logger
        self.session = requests.Session()
        self.limiter = HostRateLimiter(default_rate_per_sec=rate_per_sec) if rate_per_sec else None

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _host(self, url: str) -> str:
        return urlparse(url).netloc

    def _apply_rate_limit(self, url: str) -> None:
        if self.limiter is not None:
            self.limiter.acquire(self._host(url))

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.auth_token:
            out["Authorization"] = f"{self.auth_scheme} {self.auth_token}"
        if headers:
            out.update(headers)
        return out

    def _sleeper(self, cancel: threading.Event | None) -> Callable[[float], None]:
        if cancel is None:
            return self.sleep

        def _sleep(seconds: float) -> None:
            if cancel.wait(seconds):
                raise FetchCancelledError("Fetch cancelled during backoff")

        return _sleep

    def _raise_for_status_or_retry(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return
        body = (response.text or "")[:MAX_ERROR_BODY_CHARS]
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            if retry_after is not None and retry_after > self.retry.max_wait:
                raise RemoteFetchError(
                    f"Rate limited by {self._host(url)} for {retry_after:.0f}s, "
                    f"longer than the {self.retry.max_wait:.0f}s retry budget",
                    status=status,
                    body=body,
                    url=url,
                )
            raise RateLimitedError(
                f"Rate limited by {self._host(url)}",
                retry_after=retry_after,
                status=status,
                body=body,
                url=url,
            )
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status: {status}", status=status, body=body, url=url)
        raise RemoteFetchError(f"HTTP status: {status}", status=status, body=body, url=url)

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        if cancel is not None and cancel.is_set():
            raise FetchCancelledError(f"Fetch cancelled before requesting {url}")

        req_timeout = timeout or self.timeout
        self._apply_rate_limit(url)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise RetryableHttpError(f"Network error requesting {url}: {exc}", url=url) from exc
        except requests.RequestException as exc:
            raise RemoteFetchError(f"Request to {url} failed: {exc}", url=url) from exc

        self._raise_for_status_or_retry(response, url)

        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteFetchError(
                f"Invalid JSON payload from {url}",
                status=response.status_code,
                body=(response.text or "")[:MAX_ERROR_BODY_CHARS],
                url=url,
            ) from exc

        return payload

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        wait = retry_state.next_action.sleep if retry_state.next_action is not None else None
        log_event(
            self.logger,
            f"retrying after {wait}s: {exc}",
            level=logging.WARNING,
            component="http",
            event="FETCH_RETRY",
            status="retry",
            attempt=retry_state.attempt_number,
            error_code=getattr(exc, "error_code", None),
        )

    def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_retry_after(
                wait_exponential_jitter(
                    multiplier=self.retry.multiplier,
                    max=self.retry.max_wait,
                    jitter=self.retry.jitter,
                ),
            ),
            retry=retry_if_exception_type(RetryableHttpError),
            sleep=self._sleeper(cancel),
            before_sleep=self._log_retry,
            reraise=True,
        )
        def _wrapped() -> dict[str, Any]:
            return self._request_json(
                method,
                url,
                params=params,
                headers=headers,
                timeout=timeout,
                cancel=cancel,
            )

        try:
            return _wrapped()
        except RetryableHttpError as exc:
            raise RemoteFetchError(
                f"Retries exhausted for {url} after {self.retry.max_attempts} attempts: {exc}",
                status=exc.status,
                body=exc.body,
                url=url,
            ) from exc

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        return self.request_json(
            "GET",
            url,
            params=params,
            headers=headers,
            timeout=timeout,
            cancel=cancel,
        )
