"""Configuration loading, validation and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from fuel_directory.common.errors import ConfigError
from fuel_directory.common.fs import read_yaml
from fuel_directory.common.schema import (
    validate_directory_config,
    validate_regions_config,
    validate_sample_config,
)

ENV_API_TOKEN = "BASEROW_API_TOKEN"
ENV_API_URL = "BASEROW_API_URL"
ENV_STATIONS_TABLE = "BASEROW_PETROL_STATIONS_TABLE_ID"
ENV_PRICES_TABLE = "BASEROW_FUEL_PRICES_TABLE_ID"
ENV_CACHE_TTL = "FUEL_DIRECTORY_CACHE_TTL"
ENV_PAGE_SIZE = "FUEL_DIRECTORY_PAGE_SIZE"


@dataclass(frozen=True)
class ConfigBundle:
    directory: dict
    regions: dict
    sample_stations: list[dict]
    api_token: str | None = None


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay {overlay_path} must be a mapping")
    return _deep_merge(base, overlay)


def _env_int(environ: Mapping[str, str], name: str) -> int | None:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(environ: Mapping[str, str], name: str) -> float | None:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def apply_env_overrides(cfg: dict, environ: Mapping[str, str]) -> dict:
    remote = dict(cfg["remote"])
    tables = dict(remote["tables"])
    cache = dict(cfg["cache"])

    if environ.get(ENV_API_URL):
        remote["api_url"] = environ[ENV_API_URL]
    stations_table = _env_int(environ, ENV_STATIONS_TABLE)
    if stations_table is not None:
        tables["petrol_stations"] = stations_table
    prices_table = _env_int(environ, ENV_PRICES_TABLE)
    if prices_table is not None:
        tables["fuel_prices"] = prices_table
    page_size = _env_int(environ, ENV_PAGE_SIZE)
    if page_size is not None:
        remote["page_size"] = page_size
    ttl = _env_float(environ, ENV_CACHE_TTL)
    if ttl is not None:
        cache["ttl_seconds"] = ttl

    remote["tables"] = tables
    return {**cfg, "remote": remote, "cache": cache}


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigBundle:
    environ = os.environ if environ is None else environ

    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    directory = _load_yaml_with_overlay(config_dir / "directory.yml", _overlay("directory.yml"))
    directory = validate_directory_config(directory, allow_unknown=allow_unknown)
    directory = validate_directory_config(apply_env_overrides(directory, environ), allow_unknown=allow_unknown)

    regions = validate_regions_config(
        _load_yaml_with_overlay(config_dir / "regions.yml", _overlay("regions.yml"))
    )

    sample_name = directory["fallback"]["sample_file"]
    sample = validate_sample_config(
        _load_yaml_with_overlay(config_dir / sample_name, _overlay(sample_name))
    )

    token = environ.get(ENV_API_TOKEN) or None
    return ConfigBundle(
        directory=directory,
        regions=regions,
        sample_stations=list(sample["stations"]),
        api_token=token,
    )
