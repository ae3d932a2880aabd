"""Run identifier helpers."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone


def generate_run_id(prefix: str = "run") -> str:
    """Time-sortable id; the random tail keeps concurrent serve and sync runs apart."""
    stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{prefix}-{stamp}-{secrets.token_hex(3)}"
