from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass
class BulkResult:
    indexed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class SearchBackend(ABC):
    """Narrow search-execution interface over the session store.

    ``search`` raises :class:`~sidlens.errors.ShardUnavailable` when the
    target does not exist or the request is rejected, and
    :class:`~sidlens.errors.RemoteBackendFailure` when the backend cannot be
    reached.
    """

    @abstractmethod
    def search(
        self,
        index: str,
        query: Dict[str, Any],
        size: int,
        source_includes: Optional[List[str]] = None,
        sort: Optional[List[Dict[str, Any]]] = None,
        aggregations: Optional[Dict[str, Any]] = None,
        track_total_hits: bool = False,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def bulk_index(
        self,
        index: str,
        documents: Iterable[Tuple[str, Dict[str, Any]]],
    ) -> BulkResult:
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return None
