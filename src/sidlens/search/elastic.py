"""Elasticsearch implementation of :class:`SearchBackend`."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from elasticsearch import ApiError
from elasticsearch import ConnectionError as ESConnectionError
from elasticsearch import ConnectionTimeout, Elasticsearch, NotFoundError, TransportError
from elasticsearch.helpers import bulk as es_bulk

from ..errors import RemoteBackendFailure, ShardUnavailable
from .base import BulkResult, SearchBackend

logger = logging.getLogger(__name__)


def _create_client(
    hosts: List[str],
    username: Optional[str],
    password: Optional[str],
    verify_certs: bool,
    timeout: float,
) -> Elasticsearch:
    kwargs: Dict[str, Any] = {
        "hosts": hosts,
        "verify_certs": verify_certs,
        "request_timeout": timeout,
    }
    if username:
        kwargs["basic_auth"] = (username, password or "")
    return Elasticsearch(**kwargs)


class ElasticSearchBackend(SearchBackend):
    def __init__(
        self,
        hosts: List[str],
        username: Optional[str] = None,
        password: Optional[str] = None,
        verify_certs: bool = True,
        timeout: float = 60.0,
    ) -> None:
        if not hosts:
            raise ValueError("At least one Elasticsearch host is required")
        self.client = _create_client(hosts, username, password, verify_certs, timeout)

    def close(self) -> None:
        self.client.close()

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except (ESConnectionError, ConnectionTimeout, TransportError):
            return False

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
        request: Dict[str, Any] = {
            "index": index,
            "query": query,
            "size": size,
            # Wildcard shard patterns that match nothing yield zero hits
            # instead of an error.
            "ignore_unavailable": True,
            "allow_no_indices": True,
        }
        if source_includes:
            request["source_includes"] = source_includes
        if sort:
            request["sort"] = sort
        if aggregations:
            request["aggregations"] = aggregations
        if track_total_hits:
            request["track_total_hits"] = True

        try:
            response = self.client.search(**request)
        except NotFoundError as exc:
            raise ShardUnavailable(index, "index not found", missing=True) from exc
        except (ESConnectionError, ConnectionTimeout) as exc:
            raise RemoteBackendFailure(
                f"Search backend unreachable while querying {index}: {exc}"
            ) from exc
        except (ApiError, TransportError) as exc:
            raise ShardUnavailable(index, str(exc)) from exc
        return {
            "hits": response.get("hits", {}),
            "aggregations": response.get("aggregations", {}),
        }

    def bulk_index(
        self,
        index: str,
        documents: Iterable[Tuple[str, Dict[str, Any]]],
    ) -> BulkResult:
        def _actions() -> Iterator[Dict[str, Any]]:
            for doc_id, source in documents:
                yield {"_index": index, "_id": doc_id, "_source": source}

        try:
            indexed, errors = es_bulk(
                self.client,
                _actions(),
                raise_on_error=False,
                raise_on_exception=False,
            )
        except (ESConnectionError, ConnectionTimeout) as exc:
            raise RemoteBackendFailure(f"Bulk write to {index} failed: {exc}") from exc

        reasons: List[str] = []
        for item in errors if isinstance(errors, list) else []:
            op = next(iter(item.values()), {}) if isinstance(item, dict) else {}
            error = op.get("error") if isinstance(op, dict) else None
            if isinstance(error, dict):
                reasons.append(
                    f"{op.get('_id')}: {error.get('type')}: {error.get('reason')}"
                )
            else:
                reasons.append(str(error or item))
        if reasons:
            logger.warning(
                "Bulk write to %s: %d indexed, %d failed",
                index,
                indexed,
                len(reasons),
            )
        return BulkResult(indexed=int(indexed), errors=reasons)
