"""Static JSON export of the station directory."""

from __future__ import annotations

from pathlib import Path

from fuel_directory.common.fs import write_json
from fuel_directory.common.models import StationSnapshot
from fuel_directory.common.time_utils import epoch_to_iso, utc_timestamp_iso
from fuel_directory.directory.filtering import summarize
from fuel_directory.directory.regions import region_counts
from fuel_directory.directory.service import DirectoryService

STATIONS_FILENAME = "stations.json"
METADATA_FILENAME = "stations-metadata.json"


def write_station_export(
    service: DirectoryService,
    snapshot: StationSnapshot,
    data_dir: Path,
    *,
    run_id: str,
) -> dict[str, Path]:
    stations_path = data_dir / STATIONS_FILENAME
    metadata_path = data_dir / METADATA_FILENAME

    write_json(stations_path, [record.to_dict() for record in snapshot.records])

    metadata = summarize(snapshot.records)
    metadata.update(
        {
            "run_id": run_id,
            "generated_at": utc_timestamp_iso(),
            "fetched_at": epoch_to_iso(snapshot.fetched_at),
            "source": snapshot.source,
            "warning": snapshot.warning,
            "region_counts": region_counts(snapshot.records, service.regions, service.default_region),
        }
    )
    write_json(metadata_path, metadata)
    return {"stations": stations_path, "metadata": metadata_path}
