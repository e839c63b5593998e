from __future__ import annotations

from datetime import date, datetime
from typing import Any

import pandas as pd

END_OF_DAY_OFFSET = pd.Timedelta(days=1) - pd.Timedelta(milliseconds=1)


def _localize(timestamp: pd.Timestamp, timezone_name: str) -> pd.Timestamp | None:
    if timestamp.tzinfo is None:
        localized = timestamp.tz_localize(
            timezone_name,
            nonexistent="shift_forward",
            ambiguous="NaT",
        )
    else:
        localized = timestamp.tz_convert(timezone_name)
    if pd.isna(localized):
        return None
    return localized


def parse_timestamp(value: Any, timezone_name: str) -> pd.Timestamp | None:
    """Parse a record timestamp into the dashboard timezone.

    Naive values are read as local wall-clock time in ``timezone_name``; aware values are
    converted. Numbers are epoch milliseconds. Anything unparsable yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value != value:
            return None
        try:
            parsed = pd.Timestamp(int(value), unit="ms", tz="UTC")
        except (OverflowError, ValueError):
            return None
        return parsed.tz_convert(timezone_name)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (datetime, pd.Timestamp)):
        return None

    parsed = pd.to_datetime(value, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return None
    return _localize(pd.Timestamp(parsed), timezone_name)


def parse_calendar_date(value: Any) -> date | None:
    """Read ``YYYY-MM-DD`` as a calendar date (no timezone conversion)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def day_bounds(
    date_from: Any,
    date_to: Any,
    timezone_name: str,
) -> tuple[pd.Timestamp | None, pd.Timestamp | None]:
    """Inclusive local-midnight bounds: ``date_from`` 00:00:00.000 to ``date_to`` 23:59:59.999."""
    start_date = parse_calendar_date(date_from)
    end_date = parse_calendar_date(date_to)

    start = None
    if start_date is not None:
        start = _localize(pd.Timestamp(start_date), timezone_name)

    end = None
    if end_date is not None:
        end = _localize(pd.Timestamp(end_date) + END_OF_DAY_OFFSET, timezone_name)
    return start, end


def within_bounds(
    timestamp: pd.Timestamp | None,
    start: pd.Timestamp | None,
    end: pd.Timestamp | None,
) -> bool:
    if start is None and end is None:
        return True
    if timestamp is None:
        return False
    if start is not None and timestamp < start:
        return False
    if end is not None and timestamp > end:
        return False
    return True


def minute_key(timestamp: pd.Timestamp) -> int:
    """Epoch seconds of the minute containing ``timestamp``."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert("UTC")
    return int(timestamp.floor("min").timestamp())


def local_today(timezone_name: str, now: pd.Timestamp | None = None) -> date:
    current = now if now is not None else pd.Timestamp.now(tz="UTC")
    if current.tzinfo is None:
        current = current.tz_localize("UTC")
    return current.tz_convert(timezone_name).date()
