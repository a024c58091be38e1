from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def _env_bool(name: str, default: str = "0") -> bool:
    value = os.getenv(name, default)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    elastic_hosts: str = os.getenv("ELASTICSEARCH_HOST", "http://127.0.0.1:9200")
    elastic_user: str = os.getenv("ELASTICSEARCH_USER", "")
    elastic_password: str = os.getenv("ELASTICSEARCH_PASSWORD", "")
    elastic_verify_certs: bool = _env_bool("ELASTICSEARCH_VERIFY_CERTS", "1")
    elastic_timeout_seconds: float = float(os.getenv("ELASTICSEARCH_TIMEOUT", "60"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # ── Session index layout ─────────────────────────────────
    # Daily shards are named "<prefix>*-YYMMDD" in the business timezone.
    shard_prefix: str = os.getenv("SESSION_INDEX_PREFIX", "arkime_sessions")
    business_timezone: str = os.getenv("BUSINESS_TIMEZONE", "Asia/Singapore")

    # ── Query sizing ─────────────────────────────────────────
    detail_query_limit: int = int(os.getenv("DETAIL_QUERY_LIMIT", "10000"))
    # Terms buckets beyond this cap are silently dropped by the backend.
    term_bucket_size: int = int(os.getenv("TERM_BUCKET_SIZE", "10000"))
    sample_session_limit: int = int(os.getenv("SAMPLE_SESSION_LIMIT", "100"))
    max_range_years: int = int(os.getenv("MAX_RANGE_YEARS", "1"))

    # ── Fan-out ──────────────────────────────────────────────
    shard_query_concurrency: int = int(os.getenv("SHARD_QUERY_CONCURRENCY", "8"))
    aggregation_timeout_seconds: float = float(
        os.getenv("AGGREGATION_TIMEOUT_SECONDS", "120")
    )

    @property
    def elastic_hosts_list(self) -> List[str]:
        return [host.strip() for host in self.elastic_hosts.split(",") if host.strip()]


def get_settings() -> Settings:
    return Settings()


def validate_settings(settings: Settings) -> Settings:
    """Reject configurations the aggregation engine cannot run with."""
    if not settings.elastic_hosts_list:
        raise ValueError("ELASTICSEARCH_HOST must name at least one host")
    try:
        ZoneInfo(settings.business_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(
            f"BUSINESS_TIMEZONE {settings.business_timezone!r} is not a known timezone"
        ) from exc
    if not settings.shard_prefix.strip():
        raise ValueError("SESSION_INDEX_PREFIX must not be empty")
    positive_ints = {
        "DETAIL_QUERY_LIMIT": settings.detail_query_limit,
        "TERM_BUCKET_SIZE": settings.term_bucket_size,
        "SAMPLE_SESSION_LIMIT": settings.sample_session_limit,
        "MAX_RANGE_YEARS": settings.max_range_years,
        "SHARD_QUERY_CONCURRENCY": settings.shard_query_concurrency,
    }
    for env_name, value in positive_ints.items():
        if value < 1:
            raise ValueError(f"{env_name} must be >= 1 (got {value})")
    if settings.aggregation_timeout_seconds <= 0:
        raise ValueError("AGGREGATION_TIMEOUT_SECONDS must be > 0")
    return settings
