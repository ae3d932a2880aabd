from pathlib import Path

import pytest

from fuel_directory.common.config_loader import apply_env_overrides, load_all_configs
from fuel_directory.common.errors import ConfigError

DIRECTORY_YAML = """remote:
  api_url: https://api.example.test/api
  tables:
    petrol_stations: 11
    fuel_prices: 12
  page_size: 50
cache:
  ttl_seconds: 300
validation:
  bbox_wgs84:
    min_lat: -45
    max_lat: -10
    min_lon: 110
    max_lon: 155
fields:
  name: [Station Name, name]
fallback:
  sample_file: sample.yml
"""

REGIONS_YAML = """default_region: inner
regions:
  - id: inner
    name: Inner
    color: "#fff"
    suburbs: [Carlton]
    bbox_wgs84: {min_lat: -38, max_lat: -37, min_lon: 144, max_lon: 146}
"""

SAMPLE_YAML = """stations:
  - {id: 1, name: Sample One, lat: -37.8, lng: 144.9}
"""


def _write_base(base: Path) -> None:
    base.mkdir()
    (base / "directory.yml").write_text(DIRECTORY_YAML, encoding="utf-8")
    (base / "regions.yml").write_text(REGIONS_YAML, encoding="utf-8")
    (base / "sample.yml").write_text(SAMPLE_YAML, encoding="utf-8")


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(Path("config"), environ={})

    assert bundle.directory["remote"]["tables"]["petrol_stations"] == 623329
    assert bundle.regions["default_region"] == "melbourne_inner"
    assert len(bundle.sample_stations) >= 1
    assert bundle.api_token is None


def test_load_all_configs_applies_overlay_values(tmp_path: Path):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base)
    overlay.mkdir()
    (overlay / "directory.yml").write_text("cache:\n  ttl_seconds: 30\n", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay, environ={})

    assert bundle.directory["cache"]["ttl_seconds"] == 30
    assert bundle.directory["remote"]["page_size"] == 50


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base)
    overlay.mkdir()
    (overlay / "regions.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay, environ={})

    assert bundle.regions["regions"][0]["id"] == "inner"


def test_load_all_configs_rejects_non_mapping_overlay(tmp_path: Path):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base)
    overlay.mkdir()
    (overlay / "directory.yml").write_text("- not\n- a mapping\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base, overlay_config_dir=overlay, environ={})


def test_missing_config_file_raises_config_error(tmp_path: Path):
    with pytest.raises(ConfigError, match="Missing config file"):
        load_all_configs(tmp_path, environ={})


def test_environment_overrides_and_token(tmp_path: Path):
    base = tmp_path / "base"
    _write_base(base)
    environ = {
        "BASEROW_API_TOKEN": "tok",
        "BASEROW_API_URL": "https://self-hosted.test/api",
        "BASEROW_PETROL_STATIONS_TABLE_ID": "99",
        "FUEL_DIRECTORY_CACHE_TTL": "12.5",
        "FUEL_DIRECTORY_PAGE_SIZE": "",
    }

    bundle = load_all_configs(base, environ=environ)

    assert bundle.api_token == "tok"
    assert bundle.directory["remote"]["api_url"] == "https://self-hosted.test/api"
    assert bundle.directory["remote"]["tables"] == {"petrol_stations": 99, "fuel_prices": 12}
    assert bundle.directory["cache"]["ttl_seconds"] == 12.5
    assert bundle.directory["remote"]["page_size"] == 50


def test_bad_environment_value_raises_config_error():
    cfg = {"remote": {"api_url": "x", "tables": {}, "page_size": 50}, "cache": {"ttl_seconds": 1}}

    with pytest.raises(ConfigError, match="FUEL_DIRECTORY_PAGE_SIZE"):
        apply_env_overrides(cfg, {"FUEL_DIRECTORY_PAGE_SIZE": "lots"})


def test_environment_page_size_is_validated(tmp_path: Path):
    base = tmp_path / "base"
    _write_base(base)

    with pytest.raises(ConfigError):
        load_all_configs(base, environ={"FUEL_DIRECTORY_PAGE_SIZE": "500"})
