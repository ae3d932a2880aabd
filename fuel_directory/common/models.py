"""Data models shared by the remote client, normaliser and directory layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Union

StationId = Union[int, str]


@dataclass(frozen=True)
class NormalizationWarning:
    """Non-fatal note about how a raw row was interpreted. Never raised."""

    code: str
    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CoordinateOutOfRangeWarning(NormalizationWarning):
    latitude: float = 0.0
    longitude: float = 0.0


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class FuelPrice:
    fuel_type: str
    price_cents: float


@dataclass(frozen=True)
class StationRecord:
    id: StationId
    name: str
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    region: str | None = None
    country: str | None = None
    coordinates: Coordinates | None = None
    has_valid_coordinates: bool = False
    in_bounds: bool = False
    category: str | None = None
    brand: str | None = None
    fuel_prices: tuple[FuelPrice, ...] = ()
    price_source: str = "live"
    warnings: tuple[NormalizationWarning, ...] = field(default=(), compare=False)

    def price_for(self, fuel_type: str) -> float | None:
        wanted = fuel_type.lower()
        for price in self.fuel_prices:
            if price.fuel_type.lower() == wanted:
                return price.price_cents
        return None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["warnings"] = [warning.to_dict() for warning in self.warnings]
        return payload


@dataclass(frozen=True)
class NormalizedRow:
    record: StationRecord
    has_valid_coordinates: bool
    warnings: tuple[NormalizationWarning, ...]


@dataclass(frozen=True)
class Page:
    items: list[StationRecord]
    page_index: int
    page_size: int
    total_items: int
    total_pages: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "page_index": self.page_index,
            "page_size": self.page_size,
            "total_items": self.total_items,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class StationSnapshot:
    records: list[StationRecord]
    source: str
    fetched_at: float | None
    warning: str | None = None

    @property
    def degraded(self) -> bool:
        return self.source != "live"
