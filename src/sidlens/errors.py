"""Exception taxonomy for the session analytics engine."""

from __future__ import annotations

INVALID_DATE_FORMAT = "Invalid date format. Use YYYY-MM-DD"
START_AFTER_END = "Start date cannot be after end date"
RANGE_TOO_LARGE = "Date range too large (max {years} year{plural})"
TARGET_OUTSIDE_RANGE = "Target date must be within the specified date range"
DATE_OUT_OF_RANGE = "Date out of supported range"


class SidlensError(Exception):
    """Base class for all engine errors."""


class InvalidDateRange(SidlensError, ValueError):
    """A caller-supplied date or date range is unusable.

    The message is safe to show to the user as-is.
    """


class TimestampFormatError(SidlensError, ValueError):
    """A record timestamp could not be parsed into an instant."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Unparseable timestamp: {value!r}")
        self.value = value


class ShardUnavailable(SidlensError):
    """One daily shard is missing or its query failed."""

    def __init__(self, shard: str, reason: str = "", *, missing: bool = False) -> None:
        super().__init__(f"{shard}: {reason}" if reason else shard)
        self.shard = shard
        self.reason = reason
        self.missing = missing


class RemoteBackendFailure(SidlensError):
    """The search backend cannot be reached at all."""
