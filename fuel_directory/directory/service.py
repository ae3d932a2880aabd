"""Station directory service: cache-first loading with stale and sample fallbacks."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import replace
from typing import Any, Mapping, Sequence

from fuel_directory.common.config_loader import ConfigBundle
from fuel_directory.common.constants import DEFAULT_CACHE_TTL_SECONDS, DEFAULT_PAGE_SIZE, STATIONS_CACHE_KEY
from fuel_directory.common.errors import DirectoryError, FetchCancelledError, RemoteFetchError
from fuel_directory.common.http import HttpClient, RetryConfig, TimeoutConfig
from fuel_directory.common.logging import log_event
from fuel_directory.common.models import StationRecord, StationSnapshot
from fuel_directory.directory.cache import StationCache
from fuel_directory.directory.normalise import (
    FieldAccessor,
    attach_fuel_prices,
    build_field_chains,
    normalize_rows,
)
from fuel_directory.directory.regions import RegionDefinition, load_regions
from fuel_directory.remote.table_client import TableClient

STALE_DATA_WARNING = "Showing cached station data; live prices are temporarily unavailable."
SAMPLE_DATA_WARNING = "Showing sample station data; live prices are temporarily unavailable."


class DirectoryService:
    def __init__(
        self,
        *,
        table_client: TableClient | None,
        stations_table: int | str,
        prices_table: int | str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        sample_rows: Sequence[Mapping[str, Any]] = (),
        field_chains: Mapping[str, Sequence[FieldAccessor]] | None = None,
        bbox: dict | None = None,
        regions: Mapping[str, RegionDefinition] | None = None,
        default_region: str | None = None,
        cache: StationCache[StationRecord] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.table_client = table_client
        self.stations_table = stations_table
        self.prices_table = prices_table
        self.page_size = page_size
        self.ttl_seconds = ttl_seconds
        self.sample_rows = list(sample_rows)
        self.field_chains = field_chains or build_field_chains()
        self.bbox = bbox
        self.regions = dict(regions or {})
        self.default_region = default_region
        self.cache = cache if cache is not None else StationCache(logger=logger)
        self.logger = logger
        self._sample_records: list[StationRecord] | None = None
        self._sample_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        bundle: ConfigBundle,
        *,
        http_client: HttpClient | None = None,
        cache: StationCache[StationRecord] | None = None,
        logger: logging.Logger | None = None,
    ) -> "DirectoryService":
        cfg = bundle.directory
        remote = cfg["remote"]

        table_client = None
        if http_client is None and bundle.api_token:
            timeouts = remote.get("timeout_seconds", {})
            retry_cfg = remote.get("retry", {})
            http_client = HttpClient(
                auth_token=bundle.api_token,
                timeout=TimeoutConfig(**timeouts) if timeouts else None,
                retry=RetryConfig(
                    max_attempts=int(retry_cfg.get("max_attempts", 4)),
                    multiplier=float(retry_cfg.get("initial_wait_seconds", 1.0)),
                    max_wait=float(retry_cfg.get("max_wait_seconds", 30.0)),
                    jitter=float(retry_cfg.get("jitter_seconds", 0.0)),
                ),
                rate_per_sec=remote.get("rate_per_sec", 5.0),
                logger=logger,
            )
        if http_client is not None:
            table_client = TableClient(remote["api_url"], http_client=http_client, logger=logger)
        else:
            log_event(
                logger,
                "no API token configured; serving sample data only",
                level=logging.WARNING,
                component="service",
                event="REMOTE_DISABLED",
                status="degraded",
            )

        return cls(
            table_client=table_client,
            stations_table=remote["tables"]["petrol_stations"],
            prices_table=remote["tables"].get("fuel_prices"),
            page_size=remote["page_size"],
            ttl_seconds=float(cfg["cache"]["ttl_seconds"]),
            sample_rows=bundle.sample_stations,
            field_chains=build_field_chains(cfg.get("fields")),
            bbox=cfg["validation"]["bbox_wgs84"],
            regions=load_regions(bundle.regions),
            default_region=bundle.regions.get("default_region"),
            cache=cache,
            logger=logger,
        )

    def close(self) -> None:
        if self.table_client is not None:
            self.table_client.http_client.close()

    def _log_normalization(self, records: Sequence[StationRecord], rows_in: int, source: str) -> None:
        codes = Counter(warning.code for record in records for warning in record.warnings)
        summary = ", ".join(f"{code}={count}" for code, count in sorted(codes.items())) or "none"
        log_event(
            self.logger,
            f"normalised {source} rows; warnings: {summary}",
            component="normalise",
            event="NORMALIZATION_SUMMARY",
            status="ok",
            rows_in=rows_in,
            rows_out=len(records),
        )

    def _fetch_prices(self, cancel: threading.Event | None) -> list[dict]:
        if self.prices_table is None:
            return []
        try:
            return self.table_client.fetch_all_rows(self.prices_table, self.page_size, cancel=cancel)
        except RemoteFetchError as exc:
            # Prices are optional; stations without them are still listed.
            log_event(
                self.logger,
                f"fuel price fetch failed: {exc}",
                level=logging.WARNING,
                component="service",
                table_id=self.prices_table,
                event="PRICE_FETCH_FAILED",
                status="degraded",
                error_code=exc.error_code,
            )
            return []

    def fetch_stations(self, cancel: threading.Event | None = None) -> list[StationRecord]:
        """Fetch, normalise and price-join every station row from the remote tables."""
        if self.table_client is None:
            raise RemoteFetchError("Remote table access is not configured")

        rows = self.table_client.fetch_all_rows(self.stations_table, self.page_size, cancel=cancel)
        normalised = normalize_rows(
            rows,
            "remote",
            field_chains=self.field_chains,
            bbox=self.bbox,
            logger=self.logger,
        )
        records = [item.record for item in normalised]
        records = attach_fuel_prices(records, self._fetch_prices(cancel))
        self._log_normalization(records, len(rows), "remote")
        return records

    def sample_records(self) -> list[StationRecord]:
        with self._sample_lock:
            if self._sample_records is None:
                normalised = normalize_rows(
                    self.sample_rows,
                    "sample",
                    field_chains=self.field_chains,
                    bbox=self.bbox,
                    logger=self.logger,
                )
                self._sample_records = [item.record for item in normalised]
                self._log_normalization(self._sample_records, len(self.sample_rows), "sample")
            return list(self._sample_records)

    def load(self, *, force_refresh: bool = False, cancel: threading.Event | None = None) -> StationSnapshot:
        # A negative TTL forces a refetch while keeping the old entry as a fallback.
        ttl = -1.0 if force_refresh else self.ttl_seconds
        try:
            result = self.cache.get_or_fetch(STATIONS_CACHE_KEY, ttl, lambda: self.fetch_stations(cancel))
        except FetchCancelledError:
            raise
        except DirectoryError as exc:
            log_event(
                self.logger,
                f"station fetch failed with no cached data; using sample data: {exc}",
                level=logging.WARNING,
                component="service",
                event="SAMPLE_FALLBACK",
                status="degraded",
                error_code=exc.error_code,
            )
            return StationSnapshot(
                records=self.sample_records(),
                source="mock",
                fetched_at=None,
                warning=SAMPLE_DATA_WARNING,
            )

        if result.stale:
            return StationSnapshot(
                records=[replace(record, price_source="stale") for record in result.records],
                source="stale",
                fetched_at=result.fetched_at,
                warning=STALE_DATA_WARNING,
            )
        return StationSnapshot(records=list(result.records), source="live", fetched_at=result.fetched_at)

    def refresh(self, cancel: threading.Event | None = None) -> StationSnapshot:
        return self.load(force_refresh=True, cancel=cancel)

    def status(self) -> dict[str, Any]:
        """Cache state without touching the remote tables."""
        entry = self.cache.get(STATIONS_CACHE_KEY)
        return {
            "remote_configured": self.table_client is not None,
            "cached": entry is not None,
            "stations": len(entry.records) if entry is not None else 0,
            "fetched_at": entry.fetched_at if entry is not None else None,
            "fresh": entry is not None and self.cache.is_fresh(entry, self.ttl_seconds),
        }

    def check_connection(self) -> dict[str, Any]:
        if self.table_client is None:
            return {"connected": False, "configured": False, "table_id": self.stations_table}
        result = self.table_client.check_connection(self.stations_table)
        log_event(
            self.logger,
            "remote connection check",
            level=logging.INFO if result["connected"] else logging.WARNING,
            component="service",
            table_id=self.stations_table,
            event="CONNECTION_CHECK",
            status="ok" if result["connected"] else "failed",
        )
        # Error text can carry upstream bodies; only the status leaves the service.
        result.pop("error", None)
        return {**result, "configured": True, "table_id": self.stations_table}

    def find(self, station_id: int | str, snapshot: StationSnapshot | None = None) -> StationRecord | None:
        snapshot = snapshot or self.load()
        wanted = str(station_id)
        for record in snapshot.records:
            if str(record.id) == wanted:
                return record
        return None

    def region(self, region_id: str) -> RegionDefinition | None:
        return self.regions.get(region_id)
