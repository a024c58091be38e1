"""Daily shard naming.

Session indices are partitioned one per UTC calendar day and named
``<prefix><sub-index>-YYMMDD``.  A business day in a non-UTC zone straddles
two UTC days, so day-precise lookups scan the neighbouring shards as well.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List

_SUFFIX_FORMAT = "%y%m%d"


class IndexShardResolver:
    def __init__(self, prefix: str = "arkime_sessions") -> None:
        self.prefix = prefix

    def shard_id(self, day: date) -> str:
        """Wildcard pattern matching every sub-index of *day*'s shard."""
        return f"{self.prefix}*-{day.strftime(_SUFFIX_FORMAT)}"

    def shards_for(self, day: date) -> List[str]:
        """Previous, same and next day shards, in that order.

        Safe whenever the zone offset is smaller than one day.  Shards are
        speculative and may not exist.
        """
        return [
            self.shard_id(day - timedelta(days=1)),
            self.shard_id(day),
            self.shard_id(day + timedelta(days=1)),
        ]

    def shard_for_counting(self, day: date) -> List[str]:
        """Exact-day shard only, for coarse range-wide counters.

        Cheaper than :meth:`shards_for` but does not attribute records near
        midnight to their business day.
        """
        return [self.shard_id(day)]
