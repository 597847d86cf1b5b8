"""In-memory document store for lite mode and tests.

Models the parts of Elasticsearch the cache relies on: indices, aliases
with a single write index, term filters and bulk writes.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from typing import Any

from embedcache.exceptions import CacheStoreError
from embedcache.models import AliasMember, BulkResult, CachedEmbeddingDocument

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """Document store kept in process memory (data lost on restart)."""

    def __init__(self) -> None:
        self.indices: dict[str, dict[str, dict[str, Any]]] = {}
        self.index_definitions: dict[str, dict[str, Any]] = {}
        self.aliases: dict[str, dict[str, bool]] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    async def exists(self, name: str) -> bool:
        return name in self.indices or name in self.aliases

    async def create_partition(self, name: str, mappings: dict[str, Any], settings: dict[str, Any]) -> bool:
        async with self._lock:
            if name in self.indices or name in self.aliases:
                raise CacheStoreError(f"Index already exists: {name}")
            self.indices[name] = {}
            self.index_definitions[name] = {
                "mappings": copy.deepcopy(mappings),
                "settings": copy.deepcopy(settings),
            }
            logger.debug(f"Created in-memory index {name}")
            return True

    async def bind_alias(self, index: str, alias: str, is_write_index: bool) -> bool:
        async with self._lock:
            if index not in self.indices:
                raise CacheStoreError(f"No such index: {index}")
            members = self.aliases.setdefault(alias, {})
            if is_write_index:
                for name in members:
                    members[name] = False
            members[index] = is_write_index
            return True

    async def list_alias_members(self, alias: str) -> list[AliasMember]:
        members = self.aliases.get(alias)
        if members is None:
            raise CacheStoreError(f"No such alias: {alias}")
        return [
            AliasMember(index=name, is_write_index=is_write)
            for name, is_write in sorted(members.items())
        ]

    async def update_write_target(self, alias: str, members: list[AliasMember]) -> bool:
        async with self._lock:
            if sum(1 for m in members if m.is_write_index) > 1:
                raise CacheStoreError(f"Alias {alias} cannot have more than one write index")
            for member in members:
                if member.index not in self.indices:
                    raise CacheStoreError(f"No such index: {member.index}")
            updated = dict(self.aliases.get(alias, {}))
            for member in members:
                updated[member.index] = member.is_write_index
            self.aliases[alias] = updated
            return True

    async def remove_from_alias(self, indices: list[str], alias: str) -> bool:
        async with self._lock:
            members = self.aliases.get(alias)
            if members is None:
                raise CacheStoreError(f"No such alias: {alias}")
            missing = [name for name in indices if name not in members]
            if missing:
                raise CacheStoreError(f"Indices not in alias {alias}: {missing}")
            for name in indices:
                del members[name]
            if not members:
                del self.aliases[alias]
            return True

    async def search(self, alias: str, query: dict[str, Any], limit: int) -> list[CachedEmbeddingDocument]:
        results: list[CachedEmbeddingDocument] = []
        for index in self._resolve_read(alias):
            for doc_id, source in self.indices[index].items():
                if _matches(query, source):
                    results.append(CachedEmbeddingDocument(id=doc_id, **source))
                    if len(results) >= limit:
                        return results
        return results

    async def index_document(self, alias: str, document: CachedEmbeddingDocument) -> str:
        async with self._lock:
            index = self._resolve_write(alias)
            doc_id = document.id or uuid.uuid4().hex
            self.indices[index][doc_id] = document.to_source()
            return doc_id

    async def bulk_index(self, alias: str, documents: list[CachedEmbeddingDocument]) -> BulkResult:
        async with self._lock:
            index = self._resolve_write(alias)
            items: list[dict[str, Any]] = []
            for document in documents:
                doc_id = document.id or uuid.uuid4().hex
                created = doc_id not in self.indices[index]
                self.indices[index][doc_id] = document.to_source()
                items.append(
                    {
                        "index": {
                            "_index": index,
                            "_id": doc_id,
                            "status": 201 if created else 200,
                            "result": "created" if created else "updated",
                        }
                    }
                )
            return BulkResult(took=0, errors=False, items=items)

    async def ping(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        self._closed = True

    def _resolve_read(self, name: str) -> list[str]:
        if name in self.aliases:
            return sorted(self.aliases[name])
        if name in self.indices:
            return [name]
        raise CacheStoreError(f"No such index or alias: {name}")

    def _resolve_write(self, name: str) -> str:
        if name in self.indices:
            return name
        members = self.aliases.get(name)
        if not members:
            raise CacheStoreError(f"No such index or alias: {name}")
        writers = [index for index, is_write in members.items() if is_write]
        if len(writers) == 1:
            return writers[0]
        if len(members) == 1:
            return next(iter(members))
        raise CacheStoreError(f"Alias {name} has no write index")


def _matches(query: dict[str, Any], source: dict[str, Any]) -> bool:
    """Evaluate the subset of the query DSL used by the cache."""
    if "match_all" in query:
        return True
    if "term" in query:
        field, value = next(iter(query["term"].items()))
        if isinstance(value, dict):
            value = value.get("value")
        return source.get(field) == value
    if "bool" in query:
        clauses = query["bool"]
        must = list(clauses.get("filter", [])) + list(clauses.get("must", []))
        return all(_matches(clause, source) for clause in must)
    raise CacheStoreError(f"Unsupported query: {query}")
