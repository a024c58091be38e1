from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectedSession(_ApiModel):
    # Raw UTC value until normalized, then business-zone epoch millis.
    timestamp: Any = None
    index_name: Optional[str] = None
    document_id: Optional[str] = None
    community_id: Optional[str] = None
    signature_ids: List[int] = Field(default_factory=list, alias="sid")
    session: Any = None
    source_ip: Optional[str] = None
    dest_ip: Optional[str] = None
    source_port: Optional[int] = None
    dest_port: Optional[int] = None
    alert_message: Optional[str] = Field(default=None, alias="snortMessage")


class DailySummary(_ApiModel):
    date: str
    timestamp: int
    hit_count: int = 0
    community_ids: List[str] = Field(default_factory=list)
    community_id_hit_counts: Dict[str, int] = Field(default_factory=dict)
    signature_ids: List[int] = Field(default_factory=list, alias="sids")
    sample_sessions: List[ProjectedSession] = Field(default_factory=list)
    has_more_sessions: bool = False


class AnalyticsResult(_ApiModel):
    timeseries_data: List[DailySummary] = Field(default_factory=list)
    total_hits: int = Field(default=0, alias="totalHitsInRange")
    total_unique_sessions: int = 0
    skipped_records: int = 0


class RangeCounters(_ApiModel):
    hits: int = 0
    unique_correlation_ids: int = 0


class SessionsResponse(_ApiModel):
    total_unique_sessions: int = 0
    snort_hits: int = 0
    timeseries_data: List[DailySummary] = Field(default_factory=list)
    total_hits_in_range: int = 0
    approx_unique_sessions: int = 0
    skipped_records: int = 0


class DailyDetails(_ApiModel):
    sessions: List[ProjectedSession] = Field(default_factory=list)
    total_sessions: int = 0
    date: str
