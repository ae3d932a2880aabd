import copy

import pytest

from fuel_directory.common.errors import ConfigError
from fuel_directory.common.schema import (
    validate_bbox,
    validate_directory_config,
    validate_regions_config,
    validate_sample_config,
)

BBOX = {"min_lat": -38.0, "max_lat": -37.0, "min_lon": 144.0, "max_lon": 146.0}

BASE_DIRECTORY = {
    "remote": {"api_url": "https://x.test/api", "tables": {"petrol_stations": 1, "fuel_prices": 2}, "page_size": 50},
    "cache": {"ttl_seconds": 300},
    "validation": {"bbox_wgs84": BBOX},
    "fields": {"name": ["Station Name", "name"]},
    "fallback": {"sample_file": "sample_stations.yml"},
}

BASE_REGIONS = {
    "default_region": "inner",
    "regions": [{"id": "inner", "name": "Inner", "color": "#fff", "suburbs": ["Carlton"], "bbox_wgs84": BBOX}],
}


def test_validate_directory_config_accepts_valid_shape():
    validated = validate_directory_config(copy.deepcopy(BASE_DIRECTORY))
    assert validated["remote"]["page_size"] == 50


def test_validate_directory_config_rejects_unknown_key_by_default():
    bad = copy.deepcopy(BASE_DIRECTORY)
    bad["unexpected"] = True
    with pytest.raises(ConfigError):
        validate_directory_config(bad)


def test_validate_directory_config_allows_unknown_when_enabled():
    okay = copy.deepcopy(BASE_DIRECTORY)
    okay["extra"] = 1
    validate_directory_config(okay, allow_unknown=True)


@pytest.mark.parametrize("page_size", [0, 201, "50"])
def test_validate_directory_config_rejects_bad_page_size(page_size):
    bad = copy.deepcopy(BASE_DIRECTORY)
    bad["remote"]["page_size"] = page_size
    with pytest.raises(ConfigError):
        validate_directory_config(bad)


def test_validate_directory_config_refuses_token_in_file():
    bad = copy.deepcopy(BASE_DIRECTORY)
    bad["remote"]["api_token"] = "secret"
    with pytest.raises(ConfigError, match="BASEROW_API_TOKEN"):
        validate_directory_config(bad)


def test_validate_directory_config_rejects_empty_field_candidates():
    bad = copy.deepcopy(BASE_DIRECTORY)
    bad["fields"]["name"] = []
    with pytest.raises(ConfigError):
        validate_directory_config(bad)


def test_validate_bbox_rejects_inverted_box():
    with pytest.raises(ConfigError):
        validate_bbox({"min_lat": 1, "max_lat": 0, "min_lon": 0, "max_lon": 1}, "bbox")


def test_validate_regions_rejects_duplicate_ids():
    cfg = copy.deepcopy(BASE_REGIONS)
    cfg["regions"].append(copy.deepcopy(cfg["regions"][0]))
    with pytest.raises(ConfigError, match="Duplicate"):
        validate_regions_config(cfg)


def test_validate_regions_rejects_unknown_default_and_match_mode():
    cfg = copy.deepcopy(BASE_REGIONS)
    cfg["default_region"] = "outer"
    with pytest.raises(ConfigError):
        validate_regions_config(cfg)

    cfg = copy.deepcopy(BASE_REGIONS)
    cfg["regions"][0]["match"] = "postcode"
    with pytest.raises(ConfigError):
        validate_regions_config(cfg)


def test_validate_sample_config_requires_station_list():
    assert validate_sample_config({"stations": []}) == {"stations": []}
    with pytest.raises(ConfigError):
        validate_sample_config({"stations": {"id": 1}})
