"""Geometry helpers."""

from __future__ import annotations

import math
from typing import Any

from pyproj import Geod

_WGS84 = Geod(ellps="WGS84")


def safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def valid_lat_lon(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def within_bbox(lat: float, lon: float, bbox: dict) -> bool:
    return (
        bbox["min_lat"] <= lat <= bbox["max_lat"]
        and bbox["min_lon"] <= lon <= bbox["max_lon"]
    )


def extract_point_from_geometry(geometry: dict[str, Any] | None) -> tuple[float | None, float | None]:
    """(lat, lon) from a GeoJSON point or an ``{x, y}`` geometry."""
    if not geometry:
        return None, None
    coordinates = geometry.get("coordinates")
    if isinstance(coordinates, (list, tuple)) and len(coordinates) >= 2:
        return safe_float(coordinates[1]), safe_float(coordinates[0])
    x = geometry.get("x")
    y = geometry.get("y")
    if x is None or y is None:
        return None, None
    return safe_float(y), safe_float(x)


def geodesic_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    _fwd_az, _back_az, metres = _WGS84.inv(lon1, lat1, lon2, lat2)
    return metres / 1000.0
