"""Projection of raw session hits into :class:`ProjectedSession`."""

from __future__ import annotations

from numbers import Real
from typing import Any, Dict, List, Optional

from .schemas import ProjectedSession
from .search.executor import SIGNATURE_FIELD, TIMESTAMP_FIELD

DETAILED_FIELDS = [
    TIMESTAMP_FIELD,
    "network.community_id",
    SIGNATURE_FIELD,
    "session",
    "source.ip",
    "destination.ip",
    "source.port",
    "destination.port",
    "extended.snort_message",
]


def _get_nested(source: Dict[str, Any], field_path: str) -> Any:
    current: Any = source
    for part in field_path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def extract_signature_ids(value: Any) -> List[int]:
    """Normalize a scalar-or-list signature field to a list of ints."""
    if isinstance(value, list):
        return [int(item) for item in value if _is_number(item)]
    if _is_number(value):
        return [int(value)]
    return []


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _as_port(value: Any) -> Optional[int]:
    if _is_number(value):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class SessionRecordProjector:
    fields = DETAILED_FIELDS

    def project(self, hit: Dict[str, Any]) -> ProjectedSession:
        source = hit.get("_source") or {}
        if not isinstance(source, dict):
            source = {}
        return ProjectedSession(
            timestamp=source.get(TIMESTAMP_FIELD),
            index_name=_as_text(hit.get("_index")),
            document_id=_as_text(hit.get("_id")),
            community_id=_as_text(_get_nested(source, "network.community_id")),
            signature_ids=extract_signature_ids(_get_nested(source, SIGNATURE_FIELD)),
            session=source.get("session"),
            source_ip=_as_text(_get_nested(source, "source.ip")),
            dest_ip=_as_text(_get_nested(source, "destination.ip")),
            source_port=_as_port(_get_nested(source, "source.port")),
            dest_port=_as_port(_get_nested(source, "destination.port")),
            alert_message=_as_text(_get_nested(source, "extended.snort_message")),
        )
