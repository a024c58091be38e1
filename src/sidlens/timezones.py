"""Business-timezone normalization of UTC document timestamps.

Documents carry UTC instants in mixed representations (ISO strings, epoch
milliseconds, other numerics).  The dashboard buckets by the calendar date
those instants fall on in one fixed business timezone, so every
classification goes through :class:`TimezoneNormalizer`.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from numbers import Number
from typing import Any, Union
from zoneinfo import ZoneInfo

from .errors import TimestampFormatError
from .utils.datetime import (
    EPOCH,
    datetime_to_epoch_ms,
    epoch_ms_to_datetime,
    parse_iso_datetime,
)


class TimezoneNormalizer:
    def __init__(self, zone: Union[str, ZoneInfo]) -> None:
        self.zone = zone if isinstance(zone, ZoneInfo) else ZoneInfo(zone)

    def __repr__(self) -> str:
        return f"TimezoneNormalizer({self.zone.key!r})"

    def to_local_epoch_millis(self, raw_timestamp: Any) -> int:
        """Return the epoch millis of *raw_timestamp* as observed in the zone.

        The instant itself is unchanged: re-expressing an instant's
        wall-clock in another zone keeps its epoch value, so normalizing an
        already-normalized value is a no-op.  Raises
        :class:`TimestampFormatError` when no instant can be parsed.
        """
        if isinstance(raw_timestamp, bool) or raw_timestamp is None:
            raise TimestampFormatError(raw_timestamp)
        if isinstance(raw_timestamp, datetime):
            instant = parse_iso_datetime(raw_timestamp)
        elif isinstance(raw_timestamp, Number):
            instant = epoch_ms_to_datetime(raw_timestamp)
        else:
            instant = parse_iso_datetime(raw_timestamp)
        if instant is None:
            raise TimestampFormatError(raw_timestamp)
        try:
            local = instant.astimezone(self.zone)
        except (OverflowError, ValueError):
            # Instant has no wall-clock date in the zone (past datetime.max/min).
            raise TimestampFormatError(raw_timestamp) from None
        return datetime_to_epoch_ms(local)

    def business_date_of(self, local_epoch_millis: int) -> date:
        instant = EPOCH + timedelta(milliseconds=int(local_epoch_millis))
        return instant.astimezone(self.zone).date()

    def belongs_to(self, local_epoch_millis: int, target: date) -> bool:
        return self.business_date_of(local_epoch_millis) == target

    def start_of_day_epoch_millis(self, day: date) -> int:
        """Epoch millis of local midnight, resolved through the zone rules."""
        midnight = datetime.combine(day, time.min, tzinfo=self.zone)
        return datetime_to_epoch_ms(midnight)
