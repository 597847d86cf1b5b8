"""embedcache storage layer."""

from embedcache.storage.base import (
    CACHE_INDEX_MAPPINGS,
    DocumentStore,
    cache_index_settings,
    hash_lookup_query,
)
from embedcache.storage.elasticsearch_store import ElasticsearchDocumentStore
from embedcache.storage.lifecycle import (
    IndexLifecycleManager,
    RetentionPolicy,
    RotationResult,
    RotationState,
)
from embedcache.storage.memory_store import InMemoryDocumentStore

__all__ = [
    "CACHE_INDEX_MAPPINGS",
    "DocumentStore",
    "ElasticsearchDocumentStore",
    "InMemoryDocumentStore",
    "IndexLifecycleManager",
    "RetentionPolicy",
    "RotationResult",
    "RotationState",
    "cache_index_settings",
    "hash_lookup_query",
]
