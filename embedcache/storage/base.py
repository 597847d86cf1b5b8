"""Document store interface consumed by the cache and the lifecycle manager."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from embedcache.models import AliasMember, BulkResult, CachedEmbeddingDocument


# Index mapping for cache partitions. The vector is stored for retrieval
# only; lookups go through the hash keyword.
CACHE_INDEX_MAPPINGS: dict[str, Any] = {
    "properties": {
        "hash": {"type": "keyword"},
        "has_embedding": {"type": "boolean"},
        "text": {
            "type": "text",
            "fields": {"keyword": {"type": "keyword", "ignore_above": 8191}},
        },
        "embedding": {"type": "dense_vector", "index": False},
    }
}


def cache_index_settings(number_of_shards: int = 1, number_of_replicas: int = 1) -> dict[str, Any]:
    """Settings for a new cache partition."""
    return {
        "number_of_shards": number_of_shards,
        "number_of_replicas": number_of_replicas,
    }


def hash_lookup_query(key: str) -> dict[str, Any]:
    """Filter on the cache key for documents that carry an embedding."""
    return {
        "bool": {
            "filter": [
                {"term": {"hash": key}},
                {"term": {"has_embedding": True}},
            ]
        }
    }


@runtime_checkable
class DocumentStore(Protocol):
    """Partitioned document store reached through aliases.

    Boolean results are acknowledgements: False means the store accepted the
    request but did not acknowledge it. Transport failures raise
    :class:`~embedcache.exceptions.CacheStoreError`.
    """

    async def exists(self, name: str) -> bool: ...

    async def create_partition(self, name: str, mappings: dict[str, Any], settings: dict[str, Any]) -> bool: ...

    async def bind_alias(self, index: str, alias: str, is_write_index: bool) -> bool: ...

    async def list_alias_members(self, alias: str) -> list[AliasMember]: ...

    async def update_write_target(self, alias: str, members: list[AliasMember]) -> bool: ...

    async def remove_from_alias(self, indices: list[str], alias: str) -> bool: ...

    async def search(self, alias: str, query: dict[str, Any], limit: int) -> list[CachedEmbeddingDocument]: ...

    async def index_document(self, alias: str, document: CachedEmbeddingDocument) -> str: ...

    async def bulk_index(self, alias: str, documents: list[CachedEmbeddingDocument]) -> BulkResult: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
