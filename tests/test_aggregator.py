from __future__ import annotations

import asyncio
import time

import pytest

from sidlens.aggregator import DailyAggregator, DayGroup
from sidlens.errors import InvalidDateRange, RemoteBackendFailure
from sidlens.schemas import ProjectedSession
from sidlens.search.executor import ShardQueryExecutor
from sidlens.shards import IndexShardResolver
from sidlens.timezones import TimezoneNormalizer

from tests.in_memory_search_backend import InMemorySearchBackend

JAN_1_START_MS = 1704038400000  # 2024-01-01T00:00+08:00
JAN_2_START_MS = 1704124800000  # 2024-01-02T00:00+08:00
LATE_UTC_JAN_1_MS = 1704128400000  # 2024-01-01T17:00Z, 01:00 on Jan 2 in Singapore
MORNING_JAN_2_MS = 1704164400000  # 2024-01-02T03:00Z


def _session(sid, community, ts, **extra):
    source = {"@timestamp": ts, "network": {"community_id": community}}
    if sid is not None:
        source["extended"] = {"sid": sid}
    source.update(extra)
    return source


def _seeded_backend() -> InMemorySearchBackend:
    backend = InMemorySearchBackend()
    backend.add("arkime_sessions3-240101", "late", _session(300, "c2", "2024-01-01T17:00:00Z"))
    backend.add("arkime_sessions3-240101", "evening", _session(100, "c1", "2024-01-01T10:00:00Z"))
    backend.add("arkime_sessions3-240102", "morning", _session([200, 100], "c1", MORNING_JAN_2_MS))
    backend.add("arkime_sessions3-240103", "broken", _session(400, "c3", "not-a-date"))
    backend.add("arkime_sessions3-240103", "untagged", _session(None, "c4", "2024-01-03T01:00:00Z"))
    return backend


def _aggregator(backend, zone: str = "Asia/Singapore", **kwargs) -> DailyAggregator:
    return DailyAggregator(
        ShardQueryExecutor(backend),
        IndexShardResolver(),
        TimezoneNormalizer(zone),
        **kwargs,
    )


def test_aggregate_attributes_each_hit_to_its_business_day():
    result = asyncio.run(_aggregator(_seeded_backend()).aggregate("2024-01-01", "2024-01-03"))

    by_date = {day.date: day for day in result.timeseries_data}
    assert list(by_date) == ["2024-01-01", "2024-01-02"]

    jan1 = by_date["2024-01-01"]
    assert jan1.timestamp == JAN_1_START_MS
    assert jan1.hit_count == 1
    assert jan1.community_ids == ["c1"]
    assert jan1.signature_ids == [100]

    jan2 = by_date["2024-01-02"]
    assert jan2.timestamp == JAN_2_START_MS
    assert jan2.hit_count == 2
    assert jan2.community_ids == ["c1", "c2"]
    assert jan2.community_id_hit_counts == {"c1": 1, "c2": 1}
    assert jan2.signature_ids == [100, 200, 300]
    assert [s.document_id for s in jan2.sample_sessions] == ["morning", "late"]
    assert [s.timestamp for s in jan2.sample_sessions] == [MORNING_JAN_2_MS, LATE_UTC_JAN_1_MS]
    assert jan2.has_more_sessions is False


def test_aggregate_totals_count_each_record_once():
    result = asyncio.run(_aggregator(_seeded_backend()).aggregate("2024-01-01", "2024-01-03"))

    assert result.total_hits == 3
    assert result.total_hits == sum(day.hit_count for day in result.timeseries_data)
    assert result.total_unique_sessions == 2
    assert result.skipped_records == 1


def test_global_unique_count_is_the_union_of_daily_sets():
    result = asyncio.run(_aggregator(_seeded_backend()).aggregate("2024-01-01", "2024-01-03"))

    union = set()
    for day in result.timeseries_data:
        union.update(day.community_ids)
    assert result.total_unique_sessions == len(union)
    assert result.total_unique_sessions <= sum(
        len(day.community_ids) for day in result.timeseries_data
    )


def test_timezone_changes_day_attribution():
    result = asyncio.run(
        _aggregator(_seeded_backend(), zone="UTC").aggregate("2024-01-01", "2024-01-03")
    )

    by_date = {day.date: day for day in result.timeseries_data}
    assert by_date["2024-01-01"].hit_count == 2
    assert by_date["2024-01-02"].hit_count == 1
    assert result.total_hits == 3


def test_timeseries_is_ascending_and_skips_empty_days():
    backend = InMemorySearchBackend()
    backend.add("arkime_sessions3-240110", "x", _session(1, "c1", "2024-01-10T02:00:00Z"))
    backend.add("arkime_sessions3-240105", "y", _session(2, "c2", "2024-01-05T02:00:00Z"))

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-31"))

    assert [day.date for day in result.timeseries_data] == ["2024-01-05", "2024-01-10"]


def test_aggregate_scans_neighbouring_shards_for_every_day():
    backend = _seeded_backend()
    asyncio.run(_aggregator(backend).aggregate("2024-01-02", "2024-01-02"))

    assert sorted(call["index"] for call in backend.calls) == [
        "arkime_sessions*-240101",
        "arkime_sessions*-240102",
        "arkime_sessions*-240103",
    ]
    assert all(call["size"] == 10000 for call in backend.calls)


def test_sample_sessions_are_capped():
    result = asyncio.run(
        _aggregator(_seeded_backend(), sample_limit=1).aggregate("2024-01-02", "2024-01-02")
    )

    (jan2,) = result.timeseries_data
    assert jan2.hit_count == 2
    assert [s.document_id for s in jan2.sample_sessions] == ["morning"]
    assert jan2.has_more_sessions is True


def test_missing_shards_yield_an_empty_result():
    backend = InMemorySearchBackend()
    for suffix in ("231231", "240101", "240102"):
        backend.missing.add(f"arkime_sessions*-{suffix}")

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-01"))

    assert result.timeseries_data == []
    assert result.total_hits == 0
    assert result.total_unique_sessions == 0


def test_one_failed_shard_does_not_abort_the_range():
    backend = _seeded_backend()
    backend.failing.add("arkime_sessions*-240102")

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-03"))

    assert result.total_hits == 2
    assert [s.document_id for d in result.timeseries_data for s in d.sample_sessions] == [
        "evening",
        "late",
    ]


def test_partial_unreachability_is_tolerated():
    backend = _seeded_backend()
    backend.unreachable.add("arkime_sessions*-240104")

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-03"))

    assert result.total_hits == 3


def test_unreachable_backend_raises():
    backend = _seeded_backend()
    backend.down = True

    with pytest.raises(RemoteBackendFailure):
        asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-03"))


def test_slow_backend_times_out():
    class _SlowBackend(InMemorySearchBackend):
        def search(self, *args, **kwargs):
            time.sleep(0.3)
            return super().search(*args, **kwargs)

    aggregator = _aggregator(_SlowBackend(), timeout_seconds=0.05)

    with pytest.raises(RemoteBackendFailure, match="timed out"):
        asyncio.run(aggregator.aggregate("2024-01-01", "2024-01-01"))


@pytest.mark.parametrize(
    ("start", "end", "message"),
    [
        ("2024/01/01", "2024-01-03", "Invalid date format"),
        ("2024-01-05", "2024-01-03", "Start date cannot be after end date"),
        ("2023-01-01", "2024-01-02", "Date range too large"),
    ],
)
def test_invalid_range_is_rejected_before_any_query(start, end, message):
    backend = _seeded_backend()

    with pytest.raises(InvalidDateRange, match=message):
        asyncio.run(_aggregator(backend).aggregate(start, end))
    assert backend.calls == []


def test_full_year_range_is_accepted():
    backend = InMemorySearchBackend()
    result = asyncio.run(
        _aggregator(backend, concurrency=4).aggregate("2023-01-01", "2024-01-01")
    )
    assert result.total_hits == 0
    assert len(backend.calls) == 366 * 3


def test_sessions_for_day_returns_every_attributed_session():
    details = asyncio.run(_aggregator(_seeded_backend()).sessions_for_day("2024-01-02"))

    assert details.date == "2024-01-02"
    assert details.total_sessions == 2
    assert [s.document_id for s in details.sessions] == ["morning", "late"]
    assert details.sessions[0].signature_ids == [200, 100]
    assert details.sessions[0].index_name == "arkime_sessions3-240102"


def test_sessions_for_day_ignores_the_sample_cap():
    details = asyncio.run(
        _aggregator(_seeded_backend(), sample_limit=1).sessions_for_day("2024-01-02")
    )
    assert details.total_sessions == 2


def test_sessions_for_day_raises_when_backend_is_down():
    backend = InMemorySearchBackend()
    backend.down = True

    with pytest.raises(RemoteBackendFailure):
        asyncio.run(_aggregator(backend).sessions_for_day("2024-01-02"))


def test_count_range_uses_exact_day_shards():
    backend = _seeded_backend()

    counters = asyncio.run(_aggregator(backend).count_range("2024-01-01", "2024-01-03"))

    assert sorted(call["index"] for call in backend.calls) == [
        "arkime_sessions*-240101",
        "arkime_sessions*-240102",
        "arkime_sessions*-240103",
    ]
    assert all(call["size"] == 0 for call in backend.calls)
    # The broken-timestamp record still counts here.
    assert counters.hits == 4
    assert counters.unique_correlation_ids == 3


def test_count_range_raises_when_backend_is_down():
    backend = _seeded_backend()
    backend.down = True

    with pytest.raises(RemoteBackendFailure):
        asyncio.run(_aggregator(backend).count_range("2024-01-01", "2024-01-03"))


def test_day_group_suppresses_duplicate_records():
    from datetime import date

    group = DayGroup(day=date(2024, 1, 2))
    first = ProjectedSession(
        timestamp=JAN_2_START_MS, index_name="i", document_id="1", community_id="c1"
    )
    assert group.add(first) is True
    assert group.add(first.model_copy()) is False
    assert group.add(ProjectedSession(timestamp=JAN_2_START_MS, community_id="c1")) is True
    assert group.hit_count == 2
    assert group.community_id_hit_counts() == {"c1": 2}


def test_from_settings_wires_configured_limits():
    from types import SimpleNamespace

    settings = SimpleNamespace(
        shard_prefix="arkime_sessions",
        business_timezone="Europe/Berlin",
        detail_query_limit=50,
        sample_session_limit=5,
        max_range_years=2,
        shard_query_concurrency=3,
        aggregation_timeout_seconds=9.0,
    )
    aggregator = DailyAggregator.from_settings(
        settings, ShardQueryExecutor(InMemorySearchBackend())
    )

    assert aggregator.normalizer.zone.key == "Europe/Berlin"
    assert aggregator.detail_limit == 50
    assert aggregator.sample_limit == 5
    assert aggregator.max_range_years == 2
    assert aggregator.concurrency == 3
    assert aggregator.timeout_seconds == 9.0


def test_two_failed_shards_leave_only_the_surviving_shard():
    backend = _seeded_backend()
    backend.failing.update({"arkime_sessions*-240101", "arkime_sessions*-240103"})

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-02", "2024-01-02"))

    (jan2,) = result.timeseries_data
    assert jan2.hit_count == 1
    assert [s.document_id for s in jan2.sample_sessions] == ["morning"]


def test_records_belonging_to_the_next_day_are_excluded():
    backend = InMemorySearchBackend()
    # 16:00Z and later is already Jan 2 in Singapore.
    stamps = [
        "2024-01-01T01:00:00Z",
        "2024-01-01T08:30:00Z",
        "2024-01-01T15:59:00Z",
        "2024-01-01T16:01:00Z",
        "2024-01-01T23:00:00Z",
    ]
    for n, stamp in enumerate(stamps):
        backend.add("arkime_sessions3-240101", f"r{n}", _session(n + 1, f"c{n}", stamp))

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-01"))

    (jan1,) = result.timeseries_data
    assert jan1.hit_count == 3
    assert sorted(s.document_id for s in jan1.sample_sessions) == ["r0", "r1", "r2"]
    assert result.total_hits == 3


def test_aggregation_is_repeatable():
    aggregator = _aggregator(_seeded_backend())

    first = asyncio.run(aggregator.aggregate("2024-01-01", "2024-01-03"))
    second = asyncio.run(aggregator.aggregate("2024-01-01", "2024-01-03"))

    assert first.model_dump_json(by_alias=True) == second.model_dump_json(by_alias=True)


def test_timestamp_past_the_calendar_edge_is_skipped():
    backend = InMemorySearchBackend()
    backend.add("arkime_sessions3-240101", "ok", _session(1, "c1", "2024-01-01T02:00:00Z"))
    backend.add("arkime_sessions3-240101", "edge", _session(2, "c2", "9999-12-31T20:00:00Z"))
    backend.add("arkime_sessions3-240101", "edge-ms", _session(3, "c3", 253402300799000))

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-01"))

    assert result.total_hits == 1
    assert result.skipped_records == 2


def test_malformed_records_without_ids_are_counted_individually():
    backend = _seeded_backend()
    backend.add("arkime_sessions3-240102", None, _session(500, "c5", "garbage-1"))
    backend.add("arkime_sessions3-240102", None, _session(501, "c6", "garbage-2"))

    result = asyncio.run(_aggregator(backend).aggregate("2024-01-01", "2024-01-03"))

    # "broken" plus the two id-less records, each seen by three day scans.
    assert result.skipped_records == 3


@pytest.mark.parametrize(
    ("start", "end"),
    [("9999-12-30", "9999-12-31"), ("0001-01-01", "0001-01-01"), ("0001-01-01", "0001-01-03")],
)
def test_ranges_touching_the_calendar_edges_are_rejected(start, end):
    backend = InMemorySearchBackend()

    with pytest.raises(InvalidDateRange, match="Date out of supported range"):
        asyncio.run(_aggregator(backend).aggregate(start, end))
    assert backend.calls == []


def test_range_next_to_the_calendar_end_is_scanned():
    backend = InMemorySearchBackend()

    result = asyncio.run(_aggregator(backend).aggregate("9999-12-29", "9999-12-30"))

    assert result.total_hits == 0
    assert sorted({call["index"] for call in backend.calls}) == [
        "arkime_sessions*-991228",
        "arkime_sessions*-991229",
        "arkime_sessions*-991230",
        "arkime_sessions*-991231",
    ]
