"""FastAPI application exposing the station directory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from fuel_directory.common.errors import DirectoryError
from fuel_directory.common.logging import log_event
from fuel_directory.common.models import StationRecord, StationSnapshot
from fuel_directory.common.time_utils import epoch_to_iso
from fuel_directory.directory.filtering import filter_records, lowest_prices, nearby, paginate
from fuel_directory.directory.refresh import RefreshTask
from fuel_directory.directory.regions import assign_region, region_counts
from fuel_directory.directory.service import DirectoryService

UNAVAILABLE_MESSAGE = "Station data is temporarily unavailable. Please try again shortly."

router = APIRouter()


def _service(request: Request) -> DirectoryService:
    return request.app.state.directory_service


def _station_payload(record: StationRecord, service: DirectoryService) -> dict[str, Any]:
    payload = record.to_dict()
    region = assign_region(record, service.regions, service.default_region)
    payload["region_id"] = region.id if region is not None else None
    return payload


def _envelope(snapshot: StationSnapshot, data: Any) -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "source": snapshot.source,
        "fetched_at": epoch_to_iso(snapshot.fetched_at),
        "warning": snapshot.warning,
    }


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    status = _service(request).status()
    status["fetched_at"] = epoch_to_iso(status["fetched_at"])
    return {"success": True, "data": {"status": "ok", **status}}


@router.get("/api/diagnostics/remote")
def remote_diagnostics(request: Request) -> dict[str, Any]:
    return {"success": True, "data": _service(request).check_connection()}


@router.get("/api/stations")
def list_stations(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    region: str | None = None,
    q: str | None = None,
    brand: str | None = None,
) -> dict[str, Any]:
    service = _service(request)
    region_def = None
    if region:
        region_def = service.region(region)
        if region_def is None:
            raise HTTPException(status_code=404, detail=f"Unknown region: {region}")

    snapshot = service.load()
    matched = filter_records(snapshot.records, region=region_def, search=q, brand=brand)
    result = paginate(matched, page - 1, page_size)
    data = {
        "items": [_station_payload(record, service) for record in result.items],
        "page": page,
        "page_size": result.page_size,
        "total_items": result.total_items,
        "total_pages": result.total_pages,
    }
    return _envelope(snapshot, data)


@router.get("/api/stations/all")
def all_stations(request: Request) -> dict[str, Any]:
    service = _service(request)
    snapshot = service.load()
    return _envelope(snapshot, [_station_payload(record, service) for record in snapshot.records])


@router.get("/api/stations/nearby")
def nearby_stations(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(5.0, gt=0, le=200),
) -> dict[str, Any]:
    service = _service(request)
    snapshot = service.load()
    data = []
    for record, distance_km in nearby(snapshot.records, lat, lng, radius_km):
        payload = _station_payload(record, service)
        payload["distance_km"] = round(distance_km, 2)
        data.append(payload)
    return _envelope(snapshot, data)


@router.get("/api/stations/{station_id}")
def get_station(request: Request, station_id: str) -> dict[str, Any]:
    service = _service(request)
    snapshot = service.load()
    record = service.find(station_id, snapshot)
    if record is None:
        raise HTTPException(status_code=404, detail="Station not found")
    return _envelope(snapshot, _station_payload(record, service))


@router.get("/api/prices/lowest")
def cheapest(
    request: Request,
    fuel_type: str = Query("unleaded", min_length=1),
    limit: int = Query(5, ge=1, le=50),
) -> dict[str, Any]:
    service = _service(request)
    snapshot = service.load()
    ranked = lowest_prices(snapshot.records, fuel_type, limit)
    return _envelope(snapshot, [_station_payload(record, service) for record in ranked])


@router.get("/api/regions")
def regions(request: Request) -> dict[str, Any]:
    service = _service(request)
    snapshot = service.load()
    counts = region_counts(snapshot.records, service.regions, service.default_region)
    data = [
        {**region.to_dict(), "station_count": counts.get(region_id, 0)}
        for region_id, region in service.regions.items()
    ]
    return _envelope(snapshot, data)


def _setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})

    @app.exception_handler(DirectoryError)
    async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
        log_event(
            app.state.logger,
            f"request failed: {exc}",
            level=logging.ERROR,
            component="api",
            event="REQUEST_FAILED",
            status="error",
            error_code=exc.error_code,
        )
        return JSONResponse(status_code=503, content={"success": False, "error": UNAVAILABLE_MESSAGE})


def create_app(
    service: DirectoryService,
    *,
    refresh_interval: float | None = None,
    logger: logging.Logger | None = None,
) -> FastAPI:
    """Build the app. The lifespan owns the periodic refresh and closes the service."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        task = None
        if refresh_interval:
            task = RefreshTask(
                lambda stop: service.refresh(cancel=stop),
                refresh_interval,
                logger=logger,
            ).start()
        app.state.refresh_task = task
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
            service.close()

    app = FastAPI(title="Petrol Prices Near Me", version="1.0.0", lifespan=lifespan)
    app.state.directory_service = service
    app.state.logger = logger
    app.include_router(router)
    _setup_exception_handlers(app)
    return app
