from .base import Indexer, IndexerEnv
from .record import RecordIndexer, record_indexer_factory
from .registry import (
    IndexerResolutionError,
    create_indexer,
    register_indexer,
    registered_indexers,
    unregister_indexer,
)

register_indexer("record", record_indexer_factory)

__all__ = [
    "Indexer",
    "IndexerEnv",
    "IndexerResolutionError",
    "RecordIndexer",
    "create_indexer",
    "register_indexer",
    "registered_indexers",
    "unregister_indexer",
]
