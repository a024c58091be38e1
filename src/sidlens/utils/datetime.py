"""Shared date and timestamp parsing helpers.

Timestamp helpers return *None* on bad input; callers decide whether that
is an error.  Calendar-date helpers raise :class:`InvalidDateRange` with a
user-facing message.
"""

from __future__ import annotations

from datetime import MAXYEAR, MINYEAR, date, datetime, timedelta, timezone
from typing import Any, Iterator, Optional, Tuple

from ..errors import (
    DATE_OUT_OF_RANGE,
    INVALID_DATE_FORMAT,
    RANGE_TOO_LARGE,
    START_AFTER_END,
    InvalidDateRange,
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without ``Z`` suffix) to UTC.

    Returns *None* on invalid or empty input rather than raising.  Naive
    values are read as UTC, the zone ``@timestamp`` is stored in.
    """
    if isinstance(value, datetime):
        try:
            return to_utc(value)
        except OverflowError:
            return None
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, TypeError, OverflowError):
        return None


def epoch_ms_to_datetime(epoch_ms: Any) -> Optional[datetime]:
    """Convert epoch-milliseconds to a UTC datetime without float rounding."""
    if epoch_ms is None or isinstance(epoch_ms, bool):
        return None
    try:
        return EPOCH + timedelta(milliseconds=int(epoch_ms))
    except (ValueError, TypeError, OverflowError):
        return None


def datetime_to_epoch_ms(dt: datetime) -> int:
    return (to_utc(dt) - EPOCH) // timedelta(milliseconds=1)


def to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Calendar dates ──────────────────────────────────────────────


def parse_business_date(value: Any) -> date:
    """Parse a strict ``YYYY-MM-DD`` calendar date.

    The first and last representable dates are rejected: their neighbouring
    days, which the shard scan also covers, do not exist.
    """
    if isinstance(value, datetime):
        raise InvalidDateRange(INVALID_DATE_FORMAT)
    if isinstance(value, date):
        parsed = value
    else:
        text = str(value or "").strip()
        if len(text) != 10:
            raise InvalidDateRange(INVALID_DATE_FORMAT)
        try:
            parsed = date.fromisoformat(text)
        except ValueError:
            raise InvalidDateRange(INVALID_DATE_FORMAT) from None
    if parsed in (date.min, date.max):
        raise InvalidDateRange(DATE_OUT_OF_RANGE)
    return parsed


def add_years(day: date, years: int) -> date:
    """Shift by calendar years; Feb 29 clamps to Feb 28.

    Saturates at :attr:`date.max` / :attr:`date.min`.
    """
    year = day.year + years
    if year > MAXYEAR:
        return date.max
    if year < MINYEAR:
        return date.min
    try:
        return day.replace(year=year)
    except ValueError:
        return day.replace(year=year, day=28)


def resolve_date_range(
    start: Any,
    end: Any,
    *,
    max_years: int = 1,
) -> Tuple[date, date]:
    """Parse and validate an inclusive ``[start, end]`` range."""
    start_date = parse_business_date(start)
    end_date = parse_business_date(end)
    if start_date > end_date:
        raise InvalidDateRange(START_AFTER_END)
    if add_years(start_date, max_years) < end_date:
        raise InvalidDateRange(
            RANGE_TOO_LARGE.format(years=max_years, plural="" if max_years == 1 else "s")
        )
    return start_date, end_date


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
