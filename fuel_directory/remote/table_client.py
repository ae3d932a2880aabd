"""Baserow table client: cursor-following row listing."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from fuel_directory.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from fuel_directory.common.errors import FetchCancelledError, RemoteFetchError
from fuel_directory.common.http import HttpClient
from fuel_directory.common.logging import log_event


def _next_cursor(payload: dict, url: str) -> str | None:
    cursor = payload.get("next")
    if cursor is None or cursor == "":
        return None
    if not isinstance(cursor, str):
        raise RemoteFetchError(f"Malformed 'next' cursor from {url}: {cursor!r}", url=url)
    return cursor


def _page_results(payload: Any, url: str) -> list[dict]:
    if not isinstance(payload, dict):
        raise RemoteFetchError(f"Unexpected payload type from {url}: {type(payload).__name__}", url=url)
    results = payload.get("results")
    if not isinstance(results, list):
        raise RemoteFetchError(f"Response from {url} has no 'results' array", url=url)
    if any(not isinstance(row, dict) for row in results):
        raise RemoteFetchError(f"Non-object row in results from {url}", url=url)
    return results


class TableClient:
    """Reads rows from hosted Baserow tables.

    Pagination follows the ``next`` URL returned by each page exactly as given;
    query parameters are only supplied for the first request.
    """

    def __init__(self, api_url: str, *, http_client: HttpClient, logger: logging.Logger | None = None) -> None:
        self.api_url = api_url.rstrip("/")
        self.http_client = http_client
        self.logger = logger

    def rows_url(self, table_id: int | str) -> str:
        return f"{self.api_url}/database/rows/table/{table_id}/"

    def fields_url(self, table_id: int | str) -> str:
        return f"{self.api_url}/database/fields/table/{table_id}/"

    def _check_cancel(self, cancel: threading.Event | None, table_id: int | str) -> None:
        if cancel is not None and cancel.is_set():
            log_event(
                self.logger,
                "row fetch cancelled",
                component="table_client",
                table_id=table_id,
                event="FETCH_CANCELLED",
                status="cancelled",
            )
            raise FetchCancelledError(f"Row fetch for table {table_id} cancelled")

    def fetch_all_rows(
        self,
        table_id: int | str,
        page_size: int = DEFAULT_PAGE_SIZE,
        *,
        cancel: threading.Event | None = None,
    ) -> list[dict]:
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

        started = time.monotonic()
        rows: list[dict] = []
        visited: set[str] = set()
        url: str | None = self.rows_url(table_id)
        params: dict[str, Any] | None = {"user_field_names": "true", "size": page_size}
        page_number = 0

        while url:
            self._check_cancel(cancel, table_id)
            if url in visited:
                raise RemoteFetchError(f"Pagination cycle detected at {url}", url=url)
            visited.add(url)

            payload = self.http_client.get_json(url, params=params, cancel=cancel)
            results = _page_results(payload, url)
            rows.extend(results)
            page_number += 1

            next_url = _next_cursor(payload, url)
            log_event(
                self.logger,
                f"fetched page {page_number}",
                level=logging.DEBUG,
                component="table_client",
                table_id=table_id,
                event="PAGE_FETCHED",
                status="ok",
                rows_in=len(results),
                rows_out=len(rows),
            )
            url = next_url
            params = None

        log_event(
            self.logger,
            f"fetched {len(rows)} rows in {page_number} pages",
            component="table_client",
            table_id=table_id,
            event="TABLE_FETCHED",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_out=len(rows),
        )
        return rows

    def list_fields(self, table_id: int | str) -> list[dict]:
        url = self.fields_url(table_id)
        payload = self.http_client.get_json(url)
        if not isinstance(payload, list):
            raise RemoteFetchError(f"Expected a field list from {url}", url=url)
        return payload

    def check_connection(self, table_id: int | str) -> dict:
        try:
            fields = self.list_fields(table_id)
        except RemoteFetchError as exc:
            return {"connected": False, "status": exc.status, "error": str(exc)}
        return {"connected": True, "field_count": len(fields)}
