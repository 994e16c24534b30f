"""
Sales Pulse Hub — Local Dates
================================

Calendar-day helpers. Every metric is keyed by the local calendar day of
its timestamp, where "local" is the PULSE_TIMEZONE zone (IANA name) or the
server's own zone when unset.

Functions:
  get_timezone()       - Configured reporting timezone
  date_key()           - YYYY-MM-DD local day of a timestamp
  parse_date()         - Tolerant YYYY-MM-DD / ISO parsing
  day_bounds()         - First and last instant of a local day
  iter_days()          - Inclusive day iterator
  check_range()        - Reject an end day before the start day
  calculate_preset()   - today / yesterday / last_week / ... ranges
  resolve_window()     - Preset or explicit start/end to a day window
"""
from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterator, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from scripts.lib.errors import SchemaValidationError
from scripts.lib.logger import setup_logger

logger = setup_logger("pulse_dates")

DATE_PRESETS = [
    "today",
    "yesterday",
    "last_week",
    "last_month",
    "week_to_date",
    "month_to_date",
    "custom",
]


def get_timezone(name: str = None) -> Optional[tzinfo]:
    """Resolve the reporting timezone. ``None`` means the system local zone."""
    name = name if name is not None else os.getenv("PULSE_TIMEZONE", "")
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to system local time", name)
        return None


def to_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    return dt.astimezone(tz) if tz is not None else dt.astimezone()


def date_key(dt: Optional[datetime], tz: Optional[tzinfo] = None) -> Optional[str]:
    """Local calendar day of ``dt`` as YYYY-MM-DD."""
    if dt is None:
        return None
    return to_local(dt, tz).strftime("%Y-%m-%d")


def parse_date(value: Optional[str], field: str = "date") -> Optional[date]:
    """Parse YYYY-MM-DD (or a full ISO timestamp) to a date.

    Raises:
        SchemaValidationError: the value is present but unparseable.
    """
    if value is None or str(value).strip() == "":
        return None
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise SchemaValidationError(f"Invalid {field}: {value!r}", field=field)


def day_bounds(day: date, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """First and last microsecond of a local calendar day."""
    start = datetime.combine(day, time.min)
    end = datetime.combine(day, time.max)
    if tz is not None:
        return start.replace(tzinfo=tz), end.replace(tzinfo=tz)
    return start.astimezone(), end.astimezone()


def range_bounds(start: date, end: date, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    return day_bounds(start, tz)[0], day_bounds(end, tz)[1]


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every day from start to end, inclusive. Empty when end < start."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def today(tz: Optional[tzinfo] = None) -> date:
    return datetime.now(tz).date() if tz is not None else datetime.now().date()


def check_range(start: date, end: date) -> None:
    if start and end and end < start:
        raise SchemaValidationError("end_date must not be before start_date", field="end_date")


def calculate_preset(preset: str, tz: Optional[tzinfo] = None) -> Optional[Tuple[date, date]]:
    """Date range for a preset; ``None`` for "custom" or unknown presets."""
    current = today(tz)

    if preset == "today":
        return current, current
    if preset == "yesterday":
        day = current - timedelta(days=1)
        return day, day
    if preset == "last_week":
        # Last complete Monday-Sunday week
        last_sunday = current - timedelta(days=current.isoweekday())
        return last_sunday - timedelta(days=6), last_sunday
    if preset == "last_month":
        last_of_prev = current.replace(day=1) - timedelta(days=1)
        return last_of_prev.replace(day=1), last_of_prev
    if preset == "week_to_date":
        return current - timedelta(days=current.weekday()), current
    if preset == "month_to_date":
        return current.replace(day=1), current
    return None


def resolve_window(
    preset: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> Tuple[date, date]:
    """Day window from a preset, else explicit dates (default: today).

    Raises:
        SchemaValidationError: unknown preset, bad date or inverted range.
    """
    if preset:
        if preset not in DATE_PRESETS:
            raise SchemaValidationError(f"Unknown date preset: {preset}", field="preset")
        window = calculate_preset(preset, tz)
        if window is not None:
            return window
    start = parse_date(start_date, "start_date") or today(tz)
    end = parse_date(end_date, "end_date") or start
    check_range(start, end)
    return start, end
