from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from typing import Optional


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def now_ms() -> int:
    """Wall-clock epoch milliseconds; the default clock for timers and sessions."""
    return int(time.time() * 1000)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def day_key(moment_ms: Optional[int] = None) -> str:
    """Calendar-day key ``YYYY-MM-DD`` (UTC) used by sessions and streaks."""

    if moment_ms is None:
        moment_ms = now_ms()
    return ms_to_datetime(moment_ms).date().isoformat()


def parse_day_key(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def previous_day_key(key: str) -> Optional[str]:
    parsed = parse_day_key(key)
    if parsed is None:
        return None
    return (parsed - timedelta(days=1)).isoformat()


__all__ = [
    "UTC",
    "day_key",
    "ms_to_datetime",
    "now_ms",
    "parse_day_key",
    "previous_day_key",
    "utc_now",
]
