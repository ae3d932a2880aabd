"""Stateless filtering, pagination and ranking over in-memory station records."""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable, Sequence

from fuel_directory.common.geometry import geodesic_distance_km
from fuel_directory.common.models import Page, StationRecord
from fuel_directory.directory.regions import RegionDefinition


def matches_text(record: StationRecord, term: str) -> bool:
    needle = term.casefold()
    return any(needle in (value or "").casefold() for value in (record.name, record.city, record.address))


def filter_records(
    records: Iterable[StationRecord],
    *,
    region: RegionDefinition | None = None,
    search: str | None = None,
    brand: str | None = None,
) -> list[StationRecord]:
    term = (search or "").strip()
    wanted_brand = (brand or "").strip().casefold()
    out: list[StationRecord] = []
    for record in records:
        if region is not None and not region.matches(record):
            continue
        if term and not matches_text(record, term):
            continue
        if wanted_brand and (record.brand or "").casefold() != wanted_brand:
            continue
        out.append(record)
    return out


def total_pages(total_items: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return math.ceil(total_items / page_size)


def paginate(records: Sequence[StationRecord], page_index: int, page_size: int) -> Page:
    if page_index < 0:
        raise ValueError(f"page_index must not be negative, got {page_index}")
    pages = total_pages(len(records), page_size)
    start = page_index * page_size
    return Page(
        items=list(records[start : start + page_size]),
        page_index=page_index,
        page_size=page_size,
        total_items=len(records),
        total_pages=pages,
    )


def nearby(
    records: Iterable[StationRecord],
    latitude: float,
    longitude: float,
    radius_km: float,
) -> list[tuple[StationRecord, float]]:
    """Stations within ``radius_km`` of a point, closest first, with distances in km."""
    found: list[tuple[StationRecord, float]] = []
    for record in records:
        if not record.has_valid_coordinates or record.coordinates is None:
            continue
        distance = geodesic_distance_km(
            latitude,
            longitude,
            record.coordinates.latitude,
            record.coordinates.longitude,
        )
        if distance <= radius_km:
            found.append((record, distance))
    found.sort(key=lambda pair: (pair[1], str(pair[0].id)))
    return found


def lowest_prices(records: Iterable[StationRecord], fuel_type: str, limit: int = 5) -> list[StationRecord]:
    priced = [(record.price_for(fuel_type), record) for record in records]
    ranked = sorted(
        ((price, record) for price, record in priced if price is not None),
        key=lambda pair: (pair[0], str(pair[1].id)),
    )
    return [record for _price, record in ranked[: max(limit, 0)]]


def summarize(records: Sequence[StationRecord]) -> dict:
    suburbs = Counter(record.city for record in records if record.city)
    brands = Counter(record.brand for record in records if record.brand)
    regions = sorted({record.region for record in records if record.region})
    unleaded = [price for price in (record.price_for("unleaded") for record in records) if price is not None]

    return {
        "total_stations": len(records),
        "with_coordinates": sum(1 for record in records if record.has_valid_coordinates),
        "suburbs": sorted(suburbs),
        "brands": sorted(brands),
        "regions": regions,
        "price_range": {
            "unleaded": {
                "min": min(unleaded) if unleaded else None,
                "max": max(unleaded) if unleaded else None,
                "average": round(sum(unleaded) / len(unleaded), 1) if unleaded else None,
            }
        },
        "stats": {
            "by_brand": dict(sorted(brands.items())),
            "by_suburb": dict(sorted(suburbs.items())),
        },
    }
