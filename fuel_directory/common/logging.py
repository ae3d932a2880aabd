"""JSON-line logging with a fixed field schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from fuel_directory.common.constants import JSON_LOG_FIELDS
from fuel_directory.common.fs import ensure_dir
from fuel_directory.common.time_utils import utc_timestamp_iso


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record; every schema field is present, unset ones are null."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {field: getattr(record, field, None) for field in JSON_LOG_FIELDS}
        payload["timestamp"] = utc_timestamp_iso()
        payload["level"] = record.levelname
        payload["message"] = record.getMessage()
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class RunIdFilter(logging.Filter):
    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "run_id", None) is None:
            record.run_id = self.run_id
        return True


def build_logger(run_id: str, log_dir: Path | None = None, level: str = "INFO") -> logging.Logger:
    """Logger writing JSON lines to stderr and, with ``log_dir``, to ``<run_id>.log.jsonl``."""
    logger = logging.getLogger(f"fuel_directory.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.filters.clear()
    logger.propagate = False
    logger.addFilter(RunIdFilter(run_id))

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    if log_dir is not None:
        log_path = log_dir / f"{run_id}.log.jsonl"
        ensure_dir(log_path.parent)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger


def log_event(logger: logging.Logger | None, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    if logger is None:
        return
    logger.log(level, message, extra=event_fields)
