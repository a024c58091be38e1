from .base import BulkResult, SearchBackend
from .executor import ShardQueryExecutor, ShardResult, ShardStatus

__all__ = [
    "BulkResult",
    "SearchBackend",
    "ShardQueryExecutor",
    "ShardResult",
    "ShardStatus",
]
