import json
import logging
import math
import sys
from pathlib import Path

from fuel_directory.common.fs import read_json, write_json
from fuel_directory.common.geometry import extract_point_from_geometry, geodesic_distance_km, safe_float
from fuel_directory.common.ids import generate_run_id
from fuel_directory.common.logging import JsonLineFormatter, build_logger, log_event
from fuel_directory.common.time_utils import epoch_to_iso


def test_extract_point_from_geometry_handles_missing_and_point():
    assert extract_point_from_geometry(None) == (None, None)
    assert extract_point_from_geometry({"x": 144.9, "y": -37.8}) == (-37.8, 144.9)
    assert extract_point_from_geometry({"coordinates": [144.9, -37.8]}) == (-37.8, 144.9)


def test_safe_float_rejects_non_finite_and_blank():
    assert safe_float(" -37.5 ") == -37.5
    assert safe_float("") is None
    assert safe_float(True) is None
    assert safe_float("inf") is None


def test_geodesic_distance_melbourne_to_geelong():
    distance = geodesic_distance_km(-37.8136, 144.9631, -38.1499, 144.3617)
    assert 60 < distance < 70
    assert math.isclose(geodesic_distance_km(-37.8, 145.0, -37.8, 145.0), 0.0, abs_tol=1e-9)


def test_generate_run_id_prefix_and_uniqueness():
    first = generate_run_id()
    assert first.startswith("run-")
    assert generate_run_id("sync").startswith("sync-")
    assert first != generate_run_id()


def test_epoch_to_iso():
    assert epoch_to_iso(0) == "1970-01-01T00:00:00+00:00"
    assert epoch_to_iso(None) is None


def test_write_json_round_trips_and_leaves_no_temp_files(tmp_path: Path):
    target = tmp_path / "out" / "stations.json"
    write_json(target, {"b": 1, "a": [1, 2]})

    assert read_json(target) == {"a": [1, 2], "b": 1}
    assert [p.name for p in target.parent.iterdir()] == ["stations.json"]


def test_json_log_line_has_stable_schema(tmp_path: Path):
    logger = build_logger("run-test", log_dir=tmp_path, level="DEBUG")
    log_event(logger, "page done", component="table_client", event="PAGE_FETCHED", rows_out=3)
    log_event(None, "dropped")
    for handler in logger.handlers:
        handler.flush()

    line = (tmp_path / "run-test.log.jsonl").read_text(encoding="utf-8").strip().splitlines()[-1]
    payload = json.loads(line)

    assert payload["run_id"] == "run-test"
    assert payload["event"] == "PAGE_FETCHED"
    assert payload["rows_out"] == 3
    assert payload["error_code"] is None
    assert payload["level"] == "INFO"


def test_formatter_includes_exception_text():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info())

    payload = json.loads(JsonLineFormatter().format(record))

    assert "RuntimeError: boom" in payload["exception"]
    assert payload["message"] == "failed"
