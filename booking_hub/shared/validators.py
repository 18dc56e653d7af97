"""Shared validation and coercion utilities"""

import math
from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ..config import DISPLAY_TIMEZONE


def display_zone() -> ZoneInfo:
    return ZoneInfo(DISPLAY_TIMEZONE)


def today_local() -> date:
    """Wall-clock date in the display timezone"""
    return datetime.now(display_zone()).date()


def finite_or_none(value: Any) -> Optional[float]:
    """
    Coerce a loosely typed numeric value.

    Returns:
        The value as float, or None when missing, unparseable, NaN or infinite
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def finite_or_zero(value: Any) -> float:
    number = finite_or_none(value)
    return number if number is not None else 0.0


def count_or_none(value: Any) -> Optional[int]:
    number = finite_or_none(value)
    if number is None:
        return None
    return int(number)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp from the upstream API.

    Accepts datetime/date objects, ISO-8601 strings (date-only and a trailing
    "Z" allowed) and epoch milliseconds. Aware values are converted to the
    display timezone and returned naive so every timestamp compares cleanly.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            raise ValueError(f"Invalid timestamp: {value!r}")
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid timestamp: {value!r}") from e
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(display_zone()).replace(tzinfo=None)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date (YYYY-MM-DD or anything parse_timestamp accepts)"""
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def normalize_id(value: Any) -> Optional[str]:
    """Upstream ids arrive as ints or strings; keep them as non-empty strings"""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None
