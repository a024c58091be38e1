"""Date-range aggregation over day-sharded session indices.

For every business day in the requested range the aggregator scans the
previous, same and next daily shards, projects and normalizes each hit, and
keeps only the hits whose normalized timestamp really falls on that day.  A
record near midnight is therefore returned by several day scans but counted
by exactly one: the scan of the day it belongs to.

Shard queries are blocking client calls; they run in worker threads under a
semaphore so one request fans out to at most ``concurrency`` in-flight
queries.  Each day scan owns its :class:`DayGroup`; range-wide unique sets
are merged after all scans finish.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .errors import RemoteBackendFailure, TimestampFormatError
from .projector import SessionRecordProjector
from .schemas import (
    AnalyticsResult,
    DailyDetails,
    DailySummary,
    ProjectedSession,
    RangeCounters,
)
from .search.executor import ShardQueryExecutor, ShardResult, ShardStatus
from .shards import IndexShardResolver
from .timezones import TimezoneNormalizer
from .utils.datetime import iter_days, parse_business_date, resolve_date_range

logger = logging.getLogger(__name__)

_RecordKey = Tuple[Optional[str], Optional[str]]


def _malformed_key(hit: Dict[str, Any], session: ProjectedSession) -> _RecordKey:
    """Stable key for a skipped record across the overlapping day scans.

    Records without a document id fall back to their content.
    """
    if session.document_id is not None:
        return (session.index_name, session.document_id)
    source = json.dumps(hit.get("_source"), sort_keys=True, default=str)
    return (session.index_name, f"_source:{source}")


@dataclass
class DayGroup:
    """Sessions attributed to one business date."""

    day: date
    sessions: List[ProjectedSession] = field(default_factory=list)
    community_ids: List[str] = field(default_factory=list)
    signature_ids: List[int] = field(default_factory=list)
    _seen: Set[_RecordKey] = field(default_factory=set, init=False, repr=False)

    def add(self, session: ProjectedSession) -> bool:
        key = (session.index_name, session.document_id)
        if session.document_id is not None and key in self._seen:
            return False
        self._seen.add(key)
        self.sessions.append(session)
        if session.community_id is not None:
            self.community_ids.append(session.community_id)
        self.signature_ids.extend(session.signature_ids)
        return True

    @property
    def hit_count(self) -> int:
        return len(self.sessions)

    def unique_community_ids(self) -> List[str]:
        return sorted(set(self.community_ids))

    def unique_signature_ids(self) -> List[int]:
        return sorted(set(self.signature_ids))

    def community_id_hit_counts(self) -> Dict[str, int]:
        counts = Counter(self.community_ids)
        return {key: counts[key] for key in sorted(counts)}

    def ordered_sessions(self) -> List[ProjectedSession]:
        """Most recent first; ties broken by index then document id."""
        return sorted(
            self.sessions,
            key=lambda s: (-int(s.timestamp), s.index_name or "", s.document_id or ""),
        )


@dataclass
class _DayScan:
    group: DayGroup
    outcomes: List[ShardStatus] = field(default_factory=list)
    malformed: Set[_RecordKey] = field(default_factory=set)


class DailyAggregator:
    def __init__(
        self,
        executor: ShardQueryExecutor,
        resolver: IndexShardResolver,
        normalizer: TimezoneNormalizer,
        projector: Optional[SessionRecordProjector] = None,
        *,
        detail_limit: int = 10000,
        sample_limit: int = 100,
        max_range_years: int = 1,
        concurrency: int = 8,
        timeout_seconds: Optional[float] = 120.0,
    ) -> None:
        self.executor = executor
        self.resolver = resolver
        self.normalizer = normalizer
        self.projector = projector or SessionRecordProjector()
        self.detail_limit = detail_limit
        self.sample_limit = sample_limit
        self.max_range_years = max_range_years
        self.concurrency = max(int(concurrency), 1)
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Any, executor: ShardQueryExecutor) -> "DailyAggregator":
        return cls(
            executor,
            IndexShardResolver(settings.shard_prefix),
            TimezoneNormalizer(settings.business_timezone),
            detail_limit=settings.detail_query_limit,
            sample_limit=settings.sample_session_limit,
            max_range_years=settings.max_range_years,
            concurrency=settings.shard_query_concurrency,
            timeout_seconds=settings.aggregation_timeout_seconds,
        )

    # ── Public operations ───────────────────────────────────────

    async def aggregate(self, start: Any, end: Any) -> AnalyticsResult:
        """Per-day timeseries plus range totals for ``[start, end]``."""
        start_date, end_date = resolve_date_range(
            start, end, max_years=self.max_range_years
        )
        started = time.monotonic()
        days = list(iter_days(start_date, end_date))
        scans = await self._bounded(self._scan_all(days))
        self._raise_if_unreachable(o for scan in scans for o in scan.outcomes)

        timeseries: List[DailySummary] = []
        global_ids: Set[str] = set()
        total_hits = 0
        malformed: Set[_RecordKey] = set()
        for scan in scans:
            malformed |= scan.malformed
            group = scan.group
            if not group.hit_count:
                continue
            timeseries.append(self._summarize(group))
            total_hits += group.hit_count
            global_ids.update(group.community_ids)

        result = AnalyticsResult(
            timeseries_data=timeseries,
            total_hits=total_hits,
            total_unique_sessions=len(global_ids),
            skipped_records=len(malformed),
        )
        logger.info(
            "Aggregated %s..%s: %d active days, %d hits, %d unique sessions in %.2fs",
            start_date,
            end_date,
            len(timeseries),
            total_hits,
            len(global_ids),
            time.monotonic() - started,
        )
        if malformed:
            logger.info("Skipped %d records with unparseable timestamps", len(malformed))
        return result

    async def sessions_for_day(self, day: Any) -> DailyDetails:
        """Every session whose normalized timestamp falls on *day*."""
        target = parse_business_date(day)
        scans = await self._bounded(self._scan_all([target]))
        self._raise_if_unreachable(scans[0].outcomes)
        sessions = scans[0].group.ordered_sessions()
        return DailyDetails(
            sessions=sessions,
            total_sessions=len(sessions),
            date=target.isoformat(),
        )

    async def count_range(self, start: Any, end: Any) -> RangeCounters:
        """Coarse range counters from exact-day shards only.

        One count-only query per day with a terms aggregation on the
        correlation id.  Records near midnight are attributed to their UTC
        shard day, and the unique count is capped per shard by the bucket
        size.
        """
        start_date, end_date = resolve_date_range(
            start, end, max_years=self.max_range_years
        )
        shards = [
            shard
            for day in iter_days(start_date, end_date)
            for shard in self.resolver.shard_for_counting(day)
        ]
        semaphore = asyncio.Semaphore(self.concurrency)
        results = await self._bounded(
            asyncio.gather(
                *(
                    self._query(semaphore, shard, limit=0, aggregate=True)
                    for shard in shards
                )
            )
        )
        self._raise_if_unreachable(r.status for r in results)

        unique_ids: Set[str] = set()
        hits = 0
        for result in results:
            hits += result.total
            unique_ids.update(key for key, _ in result.buckets)
        return RangeCounters(hits=hits, unique_correlation_ids=len(unique_ids))

    # ── Internals ───────────────────────────────────────────────

    async def _bounded(self, awaitable):
        if self.timeout_seconds is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Aggregation exceeded %.1fs; discarding partial results",
                self.timeout_seconds,
            )
            raise RemoteBackendFailure("Aggregation timed out") from None

    async def _scan_all(self, days: List[date]) -> List[_DayScan]:
        semaphore = asyncio.Semaphore(self.concurrency)
        return list(await asyncio.gather(*(self._scan_day(semaphore, d) for d in days)))

    async def _query(
        self,
        semaphore: asyncio.Semaphore,
        shard: str,
        *,
        limit: int,
        aggregate: bool = False,
    ) -> ShardResult:
        async with semaphore:
            return await asyncio.to_thread(
                self.executor.query,
                shard,
                fields=self.projector.fields if limit else None,
                limit=limit,
                sort_by_timestamp=bool(limit),
                aggregate_correlation_ids=aggregate,
            )

    async def _scan_day(self, semaphore: asyncio.Semaphore, day: date) -> _DayScan:
        results = await asyncio.gather(
            *(
                self._query(semaphore, shard, limit=self.detail_limit)
                for shard in self.resolver.shards_for(day)
            )
        )
        scan = _DayScan(group=DayGroup(day=day))
        scan.outcomes = [result.status for result in results]
        self._attribute(scan, (hit for result in results for hit in result.hits))
        return scan

    def _attribute(self, scan: _DayScan, hits: Iterable[Dict[str, Any]]) -> None:
        day = scan.group.day
        for hit in hits:
            session = self.projector.project(hit)
            try:
                local_ms = self.normalizer.to_local_epoch_millis(session.timestamp)
            except TimestampFormatError:
                logger.debug(
                    "Skipping %s/%s: bad timestamp %r",
                    session.index_name,
                    session.document_id,
                    session.timestamp,
                )
                scan.malformed.add(_malformed_key(hit, session))
                continue
            # Hits for other days are counted by their own day's scan.
            if not self.normalizer.belongs_to(local_ms, day):
                continue
            session.timestamp = local_ms
            scan.group.add(session)

    def _summarize(self, group: DayGroup) -> DailySummary:
        ordered = group.ordered_sessions()
        return DailySummary(
            date=group.day.isoformat(),
            timestamp=self.normalizer.start_of_day_epoch_millis(group.day),
            hit_count=group.hit_count,
            community_ids=group.unique_community_ids(),
            community_id_hit_counts=group.community_id_hit_counts(),
            signature_ids=group.unique_signature_ids(),
            sample_sessions=ordered[: self.sample_limit],
            has_more_sessions=group.hit_count > self.sample_limit,
        )

    @staticmethod
    def _raise_if_unreachable(outcomes: Iterable[ShardStatus]) -> None:
        statuses = list(outcomes)
        if statuses and all(s is ShardStatus.UNREACHABLE for s in statuses):
            raise RemoteBackendFailure("No shard query reached the search backend")
