"""
Utility functions for Sales Pulse Hub.
Tolerant parsing of HubSpot/Grain values, zero-safe math and timestamp helpers.

HubSpot returns numbers and timestamps as strings, timestamps either as
epoch milliseconds or ISO-8601. Every helper here is total: bad input yields
the default, never an exception.

Usage:
    from scripts.lib.utils import prop, parse_ts, safe_float, safe_div
"""
import math
from datetime import datetime, timezone
from typing import Any, Optional


def prop(obj: dict, key: str, default=None):
    """Safely retrieve a property from a HubSpot object."""
    if not isinstance(obj, dict):
        return default
    value = (obj.get("properties") or {}).get(key)
    return default if value is None else value


def safe_float(val: Any, default: float = 0.0) -> float:
    """Convert a value to a finite float, returning default on failure."""
    if val is None or isinstance(val, bool):
        return default
    try:
        result = float(str(val).strip().replace(",", "")) if isinstance(val, str) else float(val)
    except (ValueError, TypeError):
        return default
    if not math.isfinite(result):
        return default
    return result


def safe_int(val: Any, default: int = 0) -> int:
    """Convert a value to int, returning default on failure."""
    result = safe_float(val, default=None)
    if result is None:
        return default
    return int(result)


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if not denominator:
        return default
    return numerator / denominator


def parse_ts(value: Any) -> Optional[datetime]:
    """
    Parse a HubSpot/Grain timestamp to a timezone-aware datetime.

    Accepts epoch milliseconds (int, float or digit string), epoch seconds
    (values below 1e11) and ISO-8601 strings with or without a trailing Z.
    Naive ISO values are taken as UTC.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    numeric = None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        try:
            numeric = float(stripped)
        except ValueError:
            numeric = None

    if numeric is not None:
        if not math.isfinite(numeric):
            return None
        seconds = numeric / 1000 if abs(numeric) >= 1e11 else numeric
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_epoch_ms(dt: datetime) -> str:
    """Format a datetime as the epoch-millisecond string HubSpot filters expect."""
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return str(int(dt.timestamp() * 1000))


def normalize_email(email: Optional[str]) -> str:
    """Trim and lower-case an email address for comparisons."""
    return (email or "").strip().lower()


def first_text(*values: Any) -> Optional[str]:
    """Return the first value that is a non-empty string after trimming."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
