from __future__ import annotations

import math
import time
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DATE_NOT_AVAILABLE = "N/A"
DATE_INVALID = "Invalid Date"


def utcnow() -> datetime:
    return datetime.now(UTC)


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def format_epoch_ms_date(value: object) -> str:
    if value is None or value == "" or isinstance(value, bool):
        return DATE_NOT_AVAILABLE
    if isinstance(value, float) and math.isnan(value):
        return DATE_NOT_AVAILABLE
    if not isinstance(value, (int, float)):
        return DATE_INVALID
    try:
        return datetime.fromtimestamp(value / 1000, tz=UTC).strftime("%Y-%m-%d")
    except (OverflowError, OSError, ValueError):
        return DATE_INVALID


def format_local_timestamp(moment: datetime, timezone_name: str) -> str:
    try:
        zone = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        zone = ZoneInfo("UTC")
    return moment.astimezone(zone).strftime("%Y-%m-%d %H:%M:%S")
