"""Temporal window arithmetic shared by every scheduling component.

All windows are half-open ``[start, end)``. An ``end`` of ``None`` means the
window is unbounded forward in time. ``overlaps`` is the only overlap test in
the code base; callers translate their domain values (datetimes, minutes of
the week) into comparable bounds and ask it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from app.schemas.timetable import DAY_ORDER, normalize_day, parse_time_to_minutes

MINUTES_PER_DAY = 24 * 60


def overlaps(a_start: Any, a_end: Any | None, b_start: Any, b_end: Any | None) -> bool:
    """Return True when ``[a_start, a_end)`` intersects ``[b_start, b_end)``.

    >>> overlaps(600, None, 540, 570)
    False
    >>> overlaps(600, None, 570, 630)
    True
    """
    if b_end is not None and not a_start < b_end:
        return False
    if a_end is not None and not b_start < a_end:
        return False
    return True


def ensure_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes (SQLite drops tzinfo) are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def minutes_to_time(value: int) -> str:
    return f"{value // 60:02d}:{value % 60:02d}"


def day_index(day: str) -> int:
    name = normalize_day(day)
    if name not in DAY_ORDER:
        raise ValueError(f"Unknown day: {day}")
    return DAY_ORDER.index(name)


@dataclass(frozen=True)
class TimeWindow:
    start: Any
    end: Any | None = None

    def overlaps(self, other: "TimeWindow") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def contains(self, instant: Any) -> bool:
        return overlaps(self.start, self.end, instant, None) and not instant < self.start

    @property
    def is_open_ended(self) -> bool:
        return self.end is None


def weekly_window(day: str, start_time: str, end_time: str) -> TimeWindow:
    """Translate a (day, HH:MM, HH:MM) slot into minutes since Monday 00:00."""
    offset = day_index(day) * MINUTES_PER_DAY
    return TimeWindow(
        start=offset + parse_time_to_minutes(start_time),
        end=offset + parse_time_to_minutes(end_time),
    )


def datetime_window(start: datetime, end: datetime | None) -> TimeWindow:
    return TimeWindow(start=ensure_utc(start), end=ensure_utc(end))
