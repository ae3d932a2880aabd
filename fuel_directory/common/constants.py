"""Application constants."""

USER_AGENT = "fuel-directory/1.0 (+petrol prices near me; contact: configured-email)"
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
DEFAULT_CACHE_TTL_SECONDS = 300.0
STATIONS_CACHE_KEY = "stations"

# Australian continent plausibility box.
DEFAULT_BBOX_WGS84 = {
    "min_lat": -45.0,
    "max_lat": -10.0,
    "min_lon": 110.0,
    "max_lon": 155.0,
}

ROW_SOURCES = ("remote", "sample")
REGION_MATCH_MODES = ("suburb", "bbox", "any")

# Baserow single-select option ids of the "Fuel Type" column.
FUEL_TYPE_BY_OPTION_ID = {
    3812408: "unleaded",
    3812409: "premium95",
    3812410: "diesel",
    3812411: "lpg",
    3812412: "premium98",
}

KNOWN_BRANDS = (
    ("7-ELEVEN", "7-Eleven"),
    ("7 ELEVEN", "7-Eleven"),
    ("BP", "BP"),
    ("SHELL", "Shell"),
    ("CALTEX", "Caltex"),
    ("AMPOL", "Ampol"),
    ("MOBIL", "Mobil"),
    ("UNITED", "United"),
)

COMMANDS = ("sync", "serve")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "component",
    "table_id",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
