"""Session analytics routes."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query

from ...errors import InvalidDateRange, RemoteBackendFailure
from ...schemas import DailyDetails, SessionsResponse
from . import _helpers
from ._helpers import error_response, validate_range, validate_target

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


async def _abandon(tasks) -> None:
    """Cancel unfinished *tasks* and collect every outcome."""
    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


@router.get("/sessions", response_model=SessionsResponse)
async def get_sessions(
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
):
    """Daily timeseries and range totals of signature-tagged sessions."""
    try:
        start_date, end_date = validate_range(start, end)
    except InvalidDateRange as exc:
        return error_response(str(exc), status_code=400)

    aggregator = _helpers.aggregator
    tasks = [
        asyncio.create_task(aggregator.aggregate(start_date, end_date)),
        asyncio.create_task(aggregator.count_range(start_date, end_date)),
    ]
    try:
        analytics, counters = await asyncio.gather(*tasks)
    except RemoteBackendFailure:
        logger.exception("Session analytics failed for %s..%s", start, end)
        return error_response("Error fetching data")
    finally:
        await _abandon(tasks)

    return SessionsResponse(
        total_unique_sessions=analytics.total_unique_sessions,
        snort_hits=counters.hits,
        timeseries_data=analytics.timeseries_data,
        total_hits_in_range=analytics.total_hits,
        approx_unique_sessions=counters.unique_correlation_ids,
        skipped_records=analytics.skipped_records,
    )


@router.get("/sessions/daily-details", response_model=DailyDetails)
async def get_daily_details(
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
    date: str = Query(..., description="YYYY-MM-DD"),
):
    """All signature-tagged sessions of one business day."""
    try:
        target = validate_target(start, end, date)
    except InvalidDateRange as exc:
        return error_response(str(exc), status_code=400)

    try:
        return await _helpers.aggregator.sessions_for_day(target)
    except RemoteBackendFailure:
        logger.exception("Daily details failed for %s", date)
        return error_response("Error fetching session details")
