"""Normalise raw station rows from Baserow or bundled sample data into StationRecords.

Upstream rows name the same column in several ways: Baserow display names
("Station Name") when ``user_field_names`` is honoured, internal identifiers
("field_5072130") when it is not, and the snake/camel case names used by the
bundled sample dataset. Each logical field is resolved through an ordered
chain of accessors; the first accessor returning a non-empty value wins.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping, Sequence

from fuel_directory.common.constants import (
    DEFAULT_BBOX_WGS84,
    FUEL_TYPE_BY_OPTION_ID,
    KNOWN_BRANDS,
    ROW_SOURCES,
)
from fuel_directory.common.geometry import extract_point_from_geometry, safe_float, valid_lat_lon, within_bbox
from fuel_directory.common.logging import log_event
from fuel_directory.common.models import (
    Coordinates,
    CoordinateOutOfRangeWarning,
    FuelPrice,
    NormalizationWarning,
    NormalizedRow,
    StationRecord,
)

FieldAccessor = Callable[[Mapping[str, Any]], Any]

DEFAULT_FIELD_CANDIDATES: dict[str, list[str]] = {
    "id": ["id", "Id", "objectid"],
    "name": ["Station Name", "field_5072130", "station_name", "name"],
    "address": ["Address", "field_5072131", "station_address", "gnaf_formatted_address", "address"],
    "city": ["City", "field_5072132", "station_suburb", "gnaf_suburb", "suburb", "city"],
    "postal_code": ["Postal Code", "field_5072133", "station_postcode", "gnaf_postcode", "postcode", "postalCode"],
    "region": ["Region", "field_5072134", "station_state", "region"],
    "country": ["Country", "field_5072135", "country"],
    "latitude": ["Latitude", "field_5072136", "lat", "latitude", "Y"],
    "longitude": ["Longitude", "field_5072137", "lng", "longitude", "X"],
    "category": ["Category", "field_5072138", "feature_type", "category"],
    "brand": ["Brand", "brand", "station_owner"],
    "fuel_prices": ["Fuel Prices", "field_5072139", "prices", "fuelPrices"],
}

PRICE_SOURCE_BY_ROW_SOURCE = {"remote": "live", "sample": "mock"}

# Fuel-price table columns (user field names).
PRICE_STATION_LINK_FIELD = "Petrol Station"
PRICE_FUEL_TYPE_FIELD = "Fuel Type"
PRICE_VALUE_FIELD = "Price Per Liter"


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def by_key(key: str) -> FieldAccessor:
    def _access(row: Mapping[str, Any]) -> Any:
        value = row.get(key)
        return None if _is_empty(value) else value

    _access.__name__ = key
    return _access


def by_geometry(axis: str) -> FieldAccessor:
    def _access(row: Mapping[str, Any]) -> Any:
        geometry = row.get("geometry")
        if not isinstance(geometry, dict):
            return None
        lat, lon = extract_point_from_geometry(geometry)
        return lat if axis == "latitude" else lon

    _access.__name__ = "geometry"
    return _access


def build_field_chains(candidates: Mapping[str, Sequence[str]] | None = None) -> dict[str, tuple[FieldAccessor, ...]]:
    merged = dict(DEFAULT_FIELD_CANDIDATES)
    if candidates:
        merged.update({name: list(keys) for name, keys in candidates.items()})

    chains: dict[str, tuple[FieldAccessor, ...]] = {}
    for name, keys in merged.items():
        accessors = [by_key(key) for key in keys]
        if name in ("latitude", "longitude"):
            accessors.append(by_geometry(name))
        chains[name] = tuple(accessors)
    return chains


DEFAULT_FIELD_CHAINS = build_field_chains()


def resolve_field(row: Mapping[str, Any], chain: Sequence[FieldAccessor]) -> tuple[Any, int | None]:
    """Value of the first accessor with a non-empty result and its position in the chain."""
    for position, accessor in enumerate(chain):
        value = accessor(row)
        if not _is_empty(value):
            return value, position
    return None, None


def _as_text(value: Any) -> str | None:
    # Baserow select and link-row values arrive as {"id", "value"} dicts or lists of them.
    if isinstance(value, list):
        for item in value:
            text = _as_text(item)
            if text:
                return text
        return None
    if isinstance(value, dict):
        value = value.get("value")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def canonical_brand(owner: str | None) -> str | None:
    if not owner:
        return None
    upper = owner.upper()
    for needle, brand in KNOWN_BRANDS:
        if needle in upper:
            return brand
    return owner


def price_to_cents(value: Any) -> float | None:
    price = safe_float(value)
    if price is None or price <= 0:
        return None
    # Dollars per litre are single digits; cents per litre are not.
    cents = price * 100 if price < 10 else price
    return round(cents, 1)


def _fuel_type_name(value: Any) -> str | None:
    if isinstance(value, dict):
        option_id = value.get("id")
        if option_id in FUEL_TYPE_BY_OPTION_ID:
            return FUEL_TYPE_BY_OPTION_ID[option_id]
        value = value.get("value")
    if isinstance(value, int) and not isinstance(value, bool):
        return FUEL_TYPE_BY_OPTION_ID.get(value)
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def parse_fuel_prices(value: Any) -> tuple[tuple[FuelPrice, ...], list[str]]:
    """Fuel prices from a ``{type: price}`` mapping or a list of price objects.

    Returns the parsed prices and the fuel types whose price could not be read.
    Baserow link-row references (``{"id", "value"}`` without a price) are ignored.
    """
    prices: list[FuelPrice] = []
    rejected: list[str] = []

    if isinstance(value, dict):
        for fuel_type, raw_price in value.items():
            if fuel_type in ("lastUpdated", "last_updated"):
                continue
            cents = price_to_cents(raw_price)
            if cents is None:
                rejected.append(str(fuel_type))
                continue
            prices.append(FuelPrice(fuel_type=str(fuel_type).lower(), price_cents=cents))
        return tuple(prices), rejected

    if isinstance(value, list):
        for item in value:
            if not isinstance(item, dict):
                continue
            fuel_type = _fuel_type_name(item.get("fuel_type") or item.get("fuelType") or item.get("type"))
            raw_price = item.get("price_cents", item.get("price"))
            if fuel_type is None or raw_price is None:
                continue
            cents = price_to_cents(raw_price)
            if cents is None:
                rejected.append(fuel_type)
                continue
            prices.append(FuelPrice(fuel_type=fuel_type, price_cents=cents))
    return tuple(prices), rejected


def _coordinate_text(value: Any) -> str:
    return "missing" if value is None else repr(value)


def normalize(
    raw_row: Mapping[str, Any],
    source: str,
    *,
    ordinal: int = 0,
    field_chains: Mapping[str, Sequence[FieldAccessor]] | None = None,
    bbox: dict | None = None,
    logger: logging.Logger | None = None,
) -> NormalizedRow:
    if source not in ROW_SOURCES:
        raise ValueError(f"Unknown row source: {source}")

    chains = field_chains or DEFAULT_FIELD_CHAINS
    bbox = bbox or DEFAULT_BBOX_WGS84
    warnings: list[NormalizationWarning] = []
    resolved: dict[str, Any] = {}

    for field_name, chain in chains.items():
        value, position = resolve_field(raw_row, chain)
        resolved[field_name] = value
        if source == "remote" and position not in (None, 0):
            warnings.append(
                NormalizationWarning(
                    code="FIELD_FALLBACK",
                    field=field_name,
                    message=f"resolved from {chain[position].__name__}",
                )
            )

    record_id = resolved.get("id")
    if record_id is None:
        record_id = ordinal + 1
        warnings.append(NormalizationWarning("ID_SYNTHESIZED", "id", f"no id; using ordinal {record_id}"))

    name = _as_text(resolved.get("name"))
    if name is None:
        name = f"Station {ordinal + 1}"
        warnings.append(NormalizationWarning("NAME_PLACEHOLDER", "name", f"no name; using {name!r}"))

    raw_lat = resolved.get("latitude")
    raw_lon = resolved.get("longitude")
    lat = safe_float(raw_lat)
    lon = safe_float(raw_lon)
    coordinates: Coordinates | None = None
    has_valid_coordinates = False
    in_bounds = False

    if not valid_lat_lon(lat, lon):
        warnings.append(
            NormalizationWarning(
                "COORDINATES_INVALID",
                "coordinates",
                f"latitude={_coordinate_text(raw_lat)} longitude={_coordinate_text(raw_lon)}",
            )
        )
    else:
        coordinates = Coordinates(latitude=lat, longitude=lon)
        has_valid_coordinates = True
        in_bounds = within_bbox(lat, lon, bbox)
        if not in_bounds:
            warning = CoordinateOutOfRangeWarning(
                code="COORDINATE_OUT_OF_RANGE",
                field="coordinates",
                message=f"({lat}, {lon}) outside configured bounding box",
                latitude=lat,
                longitude=lon,
            )
            warnings.append(warning)
            log_event(
                logger,
                f"station {record_id} {warning.message}",
                level=logging.WARNING,
                component="normalise",
                event="COORDINATE_OUT_OF_RANGE",
                status="warning",
            )

    fuel_prices, rejected = parse_fuel_prices(resolved.get("fuel_prices"))
    for fuel_type in rejected:
        warnings.append(NormalizationWarning("PRICE_UNPARSEABLE", "fuel_prices", f"unreadable {fuel_type} price"))

    frozen_warnings = tuple(warnings)
    record = StationRecord(
        id=record_id,
        name=name,
        address=_as_text(resolved.get("address")),
        city=_as_text(resolved.get("city")),
        postal_code=_as_text(resolved.get("postal_code")),
        region=_as_text(resolved.get("region")),
        country=_as_text(resolved.get("country")),
        coordinates=coordinates,
        has_valid_coordinates=has_valid_coordinates,
        in_bounds=in_bounds,
        category=_as_text(resolved.get("category")),
        brand=canonical_brand(_as_text(resolved.get("brand"))),
        fuel_prices=fuel_prices,
        price_source=PRICE_SOURCE_BY_ROW_SOURCE[source],
        warnings=frozen_warnings,
    )
    return NormalizedRow(record=record, has_valid_coordinates=has_valid_coordinates, warnings=frozen_warnings)


def normalize_rows(
    rows: Iterable[Mapping[str, Any]],
    source: str,
    *,
    field_chains: Mapping[str, Sequence[FieldAccessor]] | None = None,
    bbox: dict | None = None,
    logger: logging.Logger | None = None,
) -> list[NormalizedRow]:
    return [
        normalize(row, source, ordinal=ordinal, field_chains=field_chains, bbox=bbox, logger=logger)
        for ordinal, row in enumerate(rows)
    ]


def _linked_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    ids: list[str] = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("id")
        if item is not None:
            ids.append(str(item))
    return ids


def build_price_index(price_rows: Iterable[Mapping[str, Any]]) -> dict[str, dict[str, float]]:
    """Map station id to ``{fuel_type: cents}`` from fuel-price table rows. Later rows win."""
    index: dict[str, dict[str, float]] = {}
    for row in price_rows:
        fuel_type = _fuel_type_name(row.get(PRICE_FUEL_TYPE_FIELD))
        cents = price_to_cents(row.get(PRICE_VALUE_FIELD))
        if fuel_type is None or cents is None:
            continue
        for station_id in _linked_ids(row.get(PRICE_STATION_LINK_FIELD)):
            index.setdefault(station_id, {})[fuel_type] = cents
    return index


def attach_fuel_prices(records: Sequence[StationRecord], price_rows: Iterable[Mapping[str, Any]]) -> list[StationRecord]:
    index = build_price_index(price_rows)
    out: list[StationRecord] = []
    for record in records:
        prices = index.get(str(record.id))
        if prices:
            record = replace(
                record,
                fuel_prices=tuple(FuelPrice(fuel_type=name, price_cents=cents) for name, cents in prices.items()),
            )
        out.append(record)
    return out
