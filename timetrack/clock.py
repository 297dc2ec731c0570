"""
Wall-clock sources and calendar helpers.

All engine time values are integer milliseconds since the epoch. The clock
is injected so the timers can be driven deterministically in tests.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Asia/Dhaka"


class Clock(Protocol):
    def now(self) -> int:
        """Current wall-clock instant in milliseconds."""
        ...


class SystemClock:
    """Real wall clock."""

    def now(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: int = 0):
        self._now = int(start_ms)

    def now(self) -> int:
        return self._now

    def set(self, ms: int):
        self._now = int(ms)

    def advance(self, ms: int) -> int:
        self._now += int(ms)
        return self._now


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve a timezone name, falling back to the default reference zone."""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def day_key(now_ms: int, tz_name: Optional[str] = None) -> str:
    """
    Calendar day of ``now_ms`` in the reference timezone as ``YYYY-MM-DD``.

    The key does not depend on the viewer's local timezone, so the same
    instant always lands in the same day bucket.
    """
    moment = datetime.fromtimestamp(now_ms / 1000, tz=get_zone(tz_name))
    return moment.strftime('%Y-%m-%d')


def to_iso(ms: int) -> str:
    """ISO-8601 UTC string with millisecond precision, e.g. ``2025-01-02T03:04:05.678Z``."""
    moment = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{ms % 1000:03d}Z"


def from_iso(value: str) -> Optional[int]:
    """Parse an ISO-8601 string back to epoch milliseconds, or None."""
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(round(moment.timestamp() * 1000))
