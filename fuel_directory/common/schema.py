"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from fuel_directory.common.constants import REGION_MATCH_MODES
from fuel_directory.common.errors import ConfigError

BBOX_KEYS = {"min_lat", "max_lat", "min_lon", "max_lon"}
FIELD_KEYS = {
    "id",
    "name",
    "address",
    "city",
    "postal_code",
    "region",
    "country",
    "latitude",
    "longitude",
    "category",
    "brand",
    "fuel_prices",
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"Expected a mapping for {ctx}")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_bbox(bbox: dict, ctx: str) -> dict:
    _assert_required_keys(bbox, BBOX_KEYS, ctx)
    if bbox["min_lat"] > bbox["max_lat"] or bbox["min_lon"] > bbox["max_lon"]:
        raise ConfigError(f"Inverted bounding box in {ctx}")
    return bbox


def validate_directory_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"remote", "cache", "validation", "fields", "fallback"}
    _assert_required_keys(cfg, top_required, "directory config")
    _assert_no_unknown_keys(cfg, top_required, "directory config", allow_unknown)

    remote = cfg["remote"]
    _assert_required_keys(remote, {"api_url", "tables", "page_size"}, "remote")
    if "api_token" in remote:
        raise ConfigError("remote.api_token must be supplied through BASEROW_API_TOKEN, not config files")
    _assert_required_keys(remote["tables"], {"petrol_stations", "fuel_prices"}, "remote.tables")
    page_size = remote["page_size"]
    if not isinstance(page_size, int) or not 1 <= page_size <= 200:
        raise ConfigError("remote.page_size must be an integer between 1 and 200")

    _assert_required_keys(cfg["cache"], {"ttl_seconds"}, "cache")
    _assert_required_keys(cfg["validation"], {"bbox_wgs84"}, "validation")
    validate_bbox(cfg["validation"]["bbox_wgs84"], "validation.bbox_wgs84")

    fields = cfg["fields"]
    if not isinstance(fields, dict):
        raise ConfigError("fields must be a mapping of field name to candidate list")
    _assert_no_unknown_keys(fields, FIELD_KEYS, "fields", allow_unknown)
    for name, candidates in fields.items():
        if not isinstance(candidates, list) or not candidates:
            raise ConfigError(f"fields.{name} must be a non-empty list")

    _assert_required_keys(cfg["fallback"], {"sample_file"}, "fallback")
    return cfg


def validate_regions_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"default_region", "regions"}, "regions config")
    if not isinstance(cfg["regions"], list) or not cfg["regions"]:
        raise ConfigError("regions.regions must be a non-empty list")

    ids: list[str] = []
    for idx, region in enumerate(cfg["regions"]):
        ctx = f"regions[{idx}]"
        _assert_required_keys(region, {"id", "name", "color", "suburbs", "bbox_wgs84"}, ctx)
        validate_bbox(region["bbox_wgs84"], f"{ctx}.bbox_wgs84")
        match = region.get("match", "any")
        if match not in REGION_MATCH_MODES:
            raise ConfigError(f"{ctx}.match must be one of {', '.join(REGION_MATCH_MODES)}")
        ids.append(region["id"])

    dupes = {region_id for region_id in ids if ids.count(region_id) > 1}
    if dupes:
        raise ConfigError(f"Duplicate region ids: {', '.join(sorted(dupes))}")
    if cfg["default_region"] is not None and cfg["default_region"] not in ids:
        raise ConfigError(f"default_region {cfg['default_region']!r} is not a configured region")
    if cfg.get("suburb_match", "exact") not in ("exact", "substring"):
        raise ConfigError("suburb_match must be 'exact' or 'substring'")
    return cfg


def validate_sample_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"stations"}, "sample stations")
    if not isinstance(cfg["stations"], list):
        raise ConfigError("sample stations must be a list")
    return cfg
