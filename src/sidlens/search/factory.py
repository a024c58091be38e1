from __future__ import annotations

from typing import TYPE_CHECKING

from .base import SearchBackend
from .elastic import ElasticSearchBackend

if TYPE_CHECKING:
    from ..config import Settings


def create_search_backend(settings: "Settings") -> SearchBackend:
    return ElasticSearchBackend(
        hosts=settings.elastic_hosts_list,
        username=settings.elastic_user,
        password=settings.elastic_password,
        verify_certs=settings.elastic_verify_certs,
        timeout=settings.elastic_timeout_seconds,
    )
