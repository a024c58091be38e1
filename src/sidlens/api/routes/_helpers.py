"""Shared singletons and request validation for the route modules."""

from __future__ import annotations

from datetime import date
from typing import Tuple

from fastapi.responses import JSONResponse

from ...aggregator import DailyAggregator
from ...config import get_settings, validate_settings
from ...errors import TARGET_OUTSIDE_RANGE, InvalidDateRange
from ...search.executor import ShardQueryExecutor
from ...search.factory import create_search_backend
from ...utils.datetime import parse_business_date, resolve_date_range

# ── Singletons ──────────────────────────────────────────────────

settings = validate_settings(get_settings())
search_backend = create_search_backend(settings)
aggregator = DailyAggregator.from_settings(
    settings,
    ShardQueryExecutor(search_backend, term_bucket_size=settings.term_bucket_size),
)


def error_response(message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def validate_range(start: str, end: str) -> Tuple[date, date]:
    return resolve_date_range(start, end, max_years=settings.max_range_years)


def validate_target(start: str, end: str, target: str) -> date:
    """Parse *target* and require it to sit inside ``[start, end]``.

    Only the format and ordering of the bounds are checked here; the
    detail view is a single-day query.
    """
    start_date = parse_business_date(start)
    end_date = parse_business_date(end)
    target_date = parse_business_date(target)
    if target_date < start_date or target_date > end_date:
        raise InvalidDateRange(TARGET_OUTSIDE_RANGE)
    return target_date
