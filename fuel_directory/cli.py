"""CLI entrypoint for the petrol station directory."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from fuel_directory.common.config_loader import load_all_configs
from fuel_directory.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from fuel_directory.common.errors import DirectoryError
from fuel_directory.common.ids import generate_run_id
from fuel_directory.common.logging import build_logger, log_event
from fuel_directory.directory.export import write_station_export
from fuel_directory.directory.service import DirectoryService


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true", help="treat fallback data as a hard failure")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def run_sync(service: DirectoryService, data_dir: Path, run_id: str, *, strict: bool, logger) -> int:
    snapshot = service.load()
    paths = write_station_export(service, snapshot, data_dir, run_id=run_id)
    log_event(
        logger,
        f"wrote {len(snapshot.records)} stations to {paths['stations']}",
        run_id=run_id,
        component="cli",
        event="SYNC_END",
        status="degraded" if snapshot.degraded else "ok",
        rows_out=len(snapshot.records),
    )
    if snapshot.degraded:
        return EXIT_HARD_FAIL if strict else EXIT_PARTIAL
    return EXIT_SUCCESS


def run_serve(service: DirectoryService, bundle, args: argparse.Namespace, logger) -> int:
    import uvicorn

    from fuel_directory.api.app import create_app

    app = create_app(
        service,
        refresh_interval=bundle.directory["cache"].get("refresh_interval_seconds"),
        logger=logger,
    )
    log_event(logger, f"serving on {args.host}:{args.port}", component="cli", event="SERVE_START", status="ok")
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower().replace("warn", "warning"))
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, log_dir=data_dir / "logs", level=args.log_level)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    service = DirectoryService.from_config(bundle, logger=logger)

    log_event(logger, f"{args.command} start", run_id=run_id, component="cli", event="COMMAND_START", status="ok")
    try:
        if args.command == "sync":
            return run_sync(service, data_dir, run_id, strict=args.strict, logger=logger)
        return run_serve(service, bundle, args, logger)
    except DirectoryError as exc:
        log_event(
            logger,
            f"{args.command} failed: {exc}",
            run_id=run_id,
            component="cli",
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    finally:
        service.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return run_command(args)
    except DirectoryError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
