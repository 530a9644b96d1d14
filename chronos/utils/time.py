"""Time helpers with timezone-aware UTC defaults."""

from __future__ import annotations

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(UTC)


def now_ms() -> float:
    """Wall-clock milliseconds since the epoch."""
    return time.time() * 1000.0


def iso_from_ms(value_ms: float) -> str:
    """Format epoch milliseconds as ISO-8601 UTC, e.g. ``2024-05-01T12:00:00.000Z``."""
    dt = datetime.fromtimestamp(value_ms / 1000.0, tz=UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
