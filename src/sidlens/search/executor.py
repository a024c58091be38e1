"""Single-shard query execution with failure absorption.

Callers fan out over many speculative daily shards; one missing day must
never abort a whole range, so every failure mode collapses into an empty
:class:`ShardResult` whose :attr:`~ShardResult.status` records what
happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import RemoteBackendFailure, ShardUnavailable
from .base import SearchBackend

logger = logging.getLogger(__name__)

SIGNATURE_FIELD = "extended.sid"
TIMESTAMP_FIELD = "@timestamp"
CORRELATION_KEYWORD_FIELD = "network.community_id.keyword"
CORRELATION_AGG = "community_ids"


class ShardStatus(str, Enum):
    OK = "ok"
    MISSING = "missing"
    FAILED = "failed"
    UNREACHABLE = "unreachable"


@dataclass
class ShardResult:
    shard: str
    status: ShardStatus = ShardStatus.OK
    hits: List[Dict[str, Any]] = field(default_factory=list)
    buckets: List[Tuple[str, int]] = field(default_factory=list)
    total: int = 0
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ShardStatus.OK


def _total_hits(hits_section: Dict[str, Any]) -> int:
    total = hits_section.get("total")
    if isinstance(total, dict):
        total = total.get("value")
    try:
        return int(total or 0)
    except (TypeError, ValueError):
        return 0


def _term_buckets(aggregations: Dict[str, Any], name: str) -> List[Tuple[str, int]]:
    buckets = (aggregations.get(name) or {}).get("buckets") or []
    out: List[Tuple[str, int]] = []
    for bucket in buckets:
        if not isinstance(bucket, dict) or bucket.get("key") is None:
            continue
        out.append((str(bucket["key"]), int(bucket.get("doc_count") or 0)))
    return out


class ShardQueryExecutor:
    def __init__(
        self,
        backend: SearchBackend,
        *,
        term_bucket_size: int = 10000,
    ) -> None:
        self.backend = backend
        self.term_bucket_size = term_bucket_size

    @staticmethod
    def signature_filter() -> Dict[str, Any]:
        """Only records with at least one triggered signature."""
        return {"bool": {"must": [{"exists": {"field": SIGNATURE_FIELD}}]}}

    def query(
        self,
        shard: str,
        *,
        fields: Optional[Sequence[str]] = None,
        limit: int = 0,
        sort_by_timestamp: bool = False,
        aggregate_correlation_ids: bool = False,
    ) -> ShardResult:
        """Run one existence-filtered query against *shard*.

        ``limit=0`` asks for totals/aggregations only.  With
        ``aggregate_correlation_ids`` the unique-count terms aggregation is
        capped at ``term_bucket_size`` buckets; values past the cap are
        dropped by the backend.
        """
        aggregations: Optional[Dict[str, Any]] = None
        if aggregate_correlation_ids:
            aggregations = {
                CORRELATION_AGG: {
                    "terms": {
                        "field": CORRELATION_KEYWORD_FIELD,
                        "size": self.term_bucket_size,
                    }
                }
            }
        sort = [{TIMESTAMP_FIELD: {"order": "desc"}}] if sort_by_timestamp else None

        try:
            response = self.backend.search(
                shard,
                self.signature_filter(),
                size=max(int(limit), 0),
                source_includes=list(fields) if fields and limit > 0 else None,
                sort=sort if limit > 0 else None,
                aggregations=aggregations,
                track_total_hits=limit == 0,
            )
        except ShardUnavailable as exc:
            if exc.missing:
                logger.info("No data found for index %s", shard)
                return ShardResult(shard=shard, status=ShardStatus.MISSING)
            logger.warning("Query against %s failed: %s", shard, exc.reason)
            return ShardResult(shard=shard, status=ShardStatus.FAILED, error=str(exc))
        except RemoteBackendFailure as exc:
            logger.warning("Search backend unreachable for %s: %s", shard, exc)
            return ShardResult(
                shard=shard, status=ShardStatus.UNREACHABLE, error=str(exc)
            )

        hits_section = response.get("hits") or {}
        hits = list(hits_section.get("hits") or [])
        buckets = (
            _term_buckets(response.get("aggregations") or {}, CORRELATION_AGG)
            if aggregate_correlation_ids
            else []
        )
        total = _total_hits(hits_section) if limit == 0 else len(hits)
        logger.debug("%s: %d hits, %d buckets", shard, len(hits), len(buckets))
        return ShardResult(shard=shard, hits=hits, buckets=buckets, total=total)
