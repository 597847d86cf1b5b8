"""Elasticsearch document store: AsyncElasticsearch behind the cache interface."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from elasticsearch import AsyncElasticsearch

from embedcache.exceptions import CacheStoreError
from embedcache.models import AliasMember, BulkResult, CachedEmbeddingDocument

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from embedcache.config import ElasticsearchConfig

logger = logging.getLogger(__name__)

# Long-running index administration and bulk writes
ADMIN_TIMEOUT = "5m"


def _body(response: Any) -> Any:
    """Unwrap an elastic-transport response to its JSON body."""
    return getattr(response, "body", response)


def _acknowledged(response: Any) -> bool:
    body = _body(response)
    return bool(body.get("acknowledged", False)) if isinstance(body, dict) else False


class ElasticsearchDocumentStore:
    """Document store backed by Elasticsearch 8.

    All client errors are wrapped in :class:`CacheStoreError` with the client
    exception chained.
    """

    def __init__(self, client: AsyncElasticsearch) -> None:
        """Initialize store.

        Args:
            client: Configured AsyncElasticsearch client (owned by the store)
        """
        self.client = client

    @classmethod
    def from_config(cls, config: ElasticsearchConfig) -> ElasticsearchDocumentStore:
        """Build a store with a client for the configured hosts.

        Args:
            config: Elasticsearch connection configuration

        Returns:
            ElasticsearchDocumentStore instance

        Raises:
            CacheStoreError: If no usable host is configured or the client
                cannot be created
        """
        urls = config.urls()
        if not urls:
            raise CacheStoreError("No Elasticsearch hosts configured")

        basic_auth = None
        if config.username and config.password:
            basic_auth = (config.username, config.password)

        try:
            client = AsyncElasticsearch(
                urls,
                basic_auth=basic_auth,
                request_timeout=config.request_timeout,
            )
        except Exception as e:
            raise CacheStoreError(f"Failed to create Elasticsearch client: {e}") from e

        logger.info(f"Elasticsearch store configured for {', '.join(urls)} (alias: {config.alias})")
        return cls(client)

    @asynccontextmanager
    async def _wrap(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except CacheStoreError:
            raise
        except Exception as e:
            logger.error(f"Elasticsearch {operation} failed: {e.__class__.__name__}: {e}")
            raise CacheStoreError(f"Elasticsearch {operation} failed: {e}") from e

    async def exists(self, name: str) -> bool:
        async with self._wrap("exists"):
            return bool(await self.client.indices.exists(index=name))

    async def create_partition(self, name: str, mappings: dict[str, Any], settings: dict[str, Any]) -> bool:
        async with self._wrap("create index"):
            response = await self.client.indices.create(
                index=name,
                mappings=mappings,
                settings=settings,
                master_timeout=ADMIN_TIMEOUT,
            )
            return _acknowledged(response)

    async def bind_alias(self, index: str, alias: str, is_write_index: bool) -> bool:
        async with self._wrap("put alias"):
            response = await self.client.indices.put_alias(
                index=index,
                name=alias,
                is_write_index=is_write_index,
            )
            return _acknowledged(response)

    async def list_alias_members(self, alias: str) -> list[AliasMember]:
        async with self._wrap("get alias"):
            body = _body(await self.client.indices.get_alias(name=alias))

        members = []
        for index, entry in body.items():
            alias_entry = (entry.get("aliases") or {}).get(alias) or {}
            members.append(
                AliasMember(index=index, is_write_index=bool(alias_entry.get("is_write_index", False)))
            )
        return sorted(members, key=lambda m: m.index)

    async def update_write_target(self, alias: str, members: list[AliasMember]) -> bool:
        actions = [
            {"add": {"index": m.index, "alias": alias, "is_write_index": m.is_write_index}}
            for m in members
        ]
        async with self._wrap("update aliases"):
            response = await self.client.indices.update_aliases(actions=actions)
            return _acknowledged(response)

    async def remove_from_alias(self, indices: list[str], alias: str) -> bool:
        async with self._wrap("delete alias"):
            response = await self.client.indices.delete_alias(index=indices, name=alias)
            return _acknowledged(response)

    async def search(self, alias: str, query: dict[str, Any], limit: int) -> list[CachedEmbeddingDocument]:
        async with self._wrap("search"):
            body = _body(await self.client.search(index=alias, query=query, size=limit))
            return [
                CachedEmbeddingDocument(id=hit.get("_id"), **(hit.get("_source") or {}))
                for hit in body.get("hits", {}).get("hits", [])
            ]

    async def index_document(self, alias: str, document: CachedEmbeddingDocument) -> str:
        async with self._wrap("index"):
            response = await self.client.index(
                index=alias,
                id=document.id,
                document=document.to_source(),
            )
            return str(_body(response).get("_id", document.id))

    async def bulk_index(self, alias: str, documents: list[CachedEmbeddingDocument]) -> BulkResult:
        operations: list[dict[str, Any]] = []
        for document in documents:
            action: dict[str, Any] = {"_index": alias}
            if document.id:
                action["_id"] = document.id
            operations.append({"index": action})
            operations.append(document.to_source())

        async with self._wrap("bulk"):
            body = _body(await self.client.bulk(operations=operations, timeout=ADMIN_TIMEOUT))

        result = BulkResult(
            took=int(body.get("took", 0)),
            errors=bool(body.get("errors", False)),
            items=list(body.get("items", [])),
        )
        if result.errors:
            logger.warning(f"Bulk write to {alias} reported {len(result.failed_items)} failed items")
        return result

    async def ping(self) -> bool:
        async with self._wrap("ping"):
            return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.close()
