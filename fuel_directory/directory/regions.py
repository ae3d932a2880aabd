"""Region definitions and station-to-region assignment."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from fuel_directory.common.geometry import within_bbox
from fuel_directory.common.models import StationRecord

_WHITESPACE_RE = re.compile(r"\s+")


def normalise_suburb(value: str | None) -> str:
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip().casefold()


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return within_bbox(lat, lon, self.to_dict())

    def to_dict(self) -> dict[str, float]:
        return {
            "min_lat": self.min_lat,
            "max_lat": self.max_lat,
            "min_lon": self.min_lon,
            "max_lon": self.max_lon,
        }


@dataclass(frozen=True)
class RegionDefinition:
    id: str
    name: str
    color: str
    suburbs: frozenset[str]
    bounding_box: BoundingBox
    match: str = "any"
    suburb_match: str = "exact"
    description: str | None = None

    def matches_suburb(self, city: str | None) -> bool:
        key = normalise_suburb(city)
        if not key:
            return False
        if key in self.suburbs:
            return True
        if self.suburb_match == "substring":
            return any(suburb in key for suburb in self.suburbs)
        return False

    def contains(self, record: StationRecord) -> bool:
        if not record.has_valid_coordinates or record.coordinates is None:
            return False
        return self.bounding_box.contains(record.coordinates.latitude, record.coordinates.longitude)

    def matches(self, record: StationRecord) -> bool:
        if self.match == "suburb":
            return self.matches_suburb(record.city)
        if self.match == "bbox":
            return self.contains(record)
        return self.matches_suburb(record.city) or self.contains(record)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "description": self.description,
            "match": self.match,
            "suburbs": sorted(self.suburbs),
            "bounding_box": self.bounding_box.to_dict(),
        }


def build_region(cfg: Mapping, *, suburb_match: str = "exact") -> RegionDefinition:
    bbox = cfg["bbox_wgs84"]
    return RegionDefinition(
        id=str(cfg["id"]),
        name=str(cfg["name"]),
        color=str(cfg["color"]),
        suburbs=frozenset(normalise_suburb(s) for s in cfg["suburbs"] if normalise_suburb(s)),
        bounding_box=BoundingBox(
            min_lat=float(bbox["min_lat"]),
            max_lat=float(bbox["max_lat"]),
            min_lon=float(bbox["min_lon"]),
            max_lon=float(bbox["max_lon"]),
        ),
        match=cfg.get("match", "any"),
        suburb_match=cfg.get("suburb_match", suburb_match),
        description=cfg.get("description"),
    )


def load_regions(regions_config: Mapping) -> dict[str, RegionDefinition]:
    suburb_match = regions_config.get("suburb_match", "exact")
    return {
        region.id: region
        for region in (build_region(cfg, suburb_match=suburb_match) for cfg in regions_config["regions"])
    }


def assign_region(
    record: StationRecord,
    regions: Mapping[str, RegionDefinition],
    default_region: str | None = None,
) -> RegionDefinition | None:
    """Suburb name match first, then bounding box, then the configured default."""
    for region in regions.values():
        if region.matches_suburb(record.city):
            return region
    for region in regions.values():
        if region.contains(record):
            return region
    if default_region is None:
        return None
    return regions.get(default_region)


def region_counts(
    records: Iterable[StationRecord],
    regions: Mapping[str, RegionDefinition],
    default_region: str | None = None,
) -> dict[str, int]:
    counts = {region_id: 0 for region_id in regions}
    for record in records:
        region = assign_region(record, regions, default_region)
        if region is not None:
            counts[region.id] += 1
    return counts
