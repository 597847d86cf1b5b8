"""Tests for the in-memory document store."""

from __future__ import annotations

import pytest

from embedcache.exceptions import CacheStoreError
from embedcache.models import AliasMember, CachedEmbeddingDocument
from embedcache.storage import CACHE_INDEX_MAPPINGS, DocumentStore, cache_index_settings, hash_lookup_query
from embedcache.storage.memory_store import InMemoryDocumentStore


async def make_partition(store: InMemoryDocumentStore, name: str) -> None:
    await store.create_partition(name, CACHE_INDEX_MAPPINGS, cache_index_settings())


def doc(text: str, hash: str, embedding: list[float] | None = None, id: str | None = None) -> CachedEmbeddingDocument:
    return CachedEmbeddingDocument(id=id, text=text, hash=hash, embedding=embedding)


class TestInMemoryDocumentStore:
    """Test suite for InMemoryDocumentStore."""

    def test_implements_protocol(self, store: InMemoryDocumentStore) -> None:
        assert isinstance(store, DocumentStore)

    @pytest.mark.asyncio
    async def test_create_partition(self, store: InMemoryDocumentStore) -> None:
        assert await store.create_partition("cache-202405", CACHE_INDEX_MAPPINGS, cache_index_settings(2, 0))

        assert await store.exists("cache-202405")
        assert store.index_definitions["cache-202405"]["settings"]["number_of_shards"] == 2

    @pytest.mark.asyncio
    async def test_create_existing_partition_fails(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "cache-202405")

        with pytest.raises(CacheStoreError, match="already exists"):
            await make_partition(store, "cache-202405")

    @pytest.mark.asyncio
    async def test_write_index_binding_is_exclusive(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "cache-202404")
        await make_partition(store, "cache-202405")
        await store.bind_alias("cache-202404", "cache", True)
        await store.bind_alias("cache-202405", "cache", True)

        members = await store.list_alias_members("cache")

        assert members == [
            AliasMember(index="cache-202404", is_write_index=False),
            AliasMember(index="cache-202405", is_write_index=True),
        ]

    @pytest.mark.asyncio
    async def test_update_write_target_rejects_two_writers(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "a")
        await make_partition(store, "b")

        with pytest.raises(CacheStoreError, match="more than one write index"):
            await store.update_write_target(
                "cache",
                [AliasMember(index="a", is_write_index=True), AliasMember(index="b", is_write_index=True)],
            )

    @pytest.mark.asyncio
    async def test_remove_from_alias_keeps_data(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "a")
        await make_partition(store, "b")
        await store.bind_alias("a", "cache", False)
        await store.bind_alias("b", "cache", True)

        assert await store.remove_from_alias(["a"], "cache")

        assert [m.index for m in await store.list_alias_members("cache")] == ["b"]
        assert await store.exists("a")

    @pytest.mark.asyncio
    async def test_remove_unknown_member_fails(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "a")
        await store.bind_alias("a", "cache", True)

        with pytest.raises(CacheStoreError):
            await store.remove_from_alias(["missing"], "cache")

    @pytest.mark.asyncio
    async def test_index_goes_to_write_index_and_search_reads_all(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "old")
        await make_partition(store, "new")
        await store.bind_alias("old", "cache", False)
        await store.bind_alias("new", "cache", True)
        await store.index_document("old", doc("old text", "h1", [1.0]))

        doc_id = await store.index_document("cache", doc("new text", "h2", [2.0]))

        assert doc_id in store.indices["new"]
        old_hits = await store.search("cache", hash_lookup_query("h1"), 10)
        assert [d.text for d in old_hits] == ["old text"]

    @pytest.mark.asyncio
    async def test_search_filters_documents_without_embedding(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "idx")
        await store.index_document("idx", doc("empty", "h", []))
        await store.index_document("idx", doc("full", "h", [0.1]))

        hits = await store.search("idx", hash_lookup_query("h"), 10)

        assert [d.text for d in hits] == ["full"]
        assert hits[0].has_embedding

    @pytest.mark.asyncio
    async def test_search_respects_limit(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "idx")
        for i in range(3):
            await store.index_document("idx", doc(f"t{i}", "same", [float(i)]))

        assert len(await store.search("idx", {"match_all": {}}, 2)) == 2

    @pytest.mark.asyncio
    async def test_write_without_write_index_fails(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "a")
        await make_partition(store, "b")
        await store.bind_alias("a", "cache", False)
        await store.bind_alias("b", "cache", False)

        with pytest.raises(CacheStoreError, match="no write index"):
            await store.index_document("cache", doc("x", "h", [1.0]))

    @pytest.mark.asyncio
    async def test_bulk_index_reports_items(self, store: InMemoryDocumentStore) -> None:
        await make_partition(store, "idx")
        await store.bind_alias("idx", "cache", True)

        result = await store.bulk_index("cache", [doc("a", "ha", [1.0], id="1"), doc("b", "hb", [2.0])])

        assert not result.errors
        assert len(result.items) == 2
        assert result.items[0]["index"]["_id"] == "1"
        assert result.items[0]["index"]["status"] == 201
        assert result.failed_items == []

    @pytest.mark.asyncio
    async def test_missing_alias_lookup_fails(self, store: InMemoryDocumentStore) -> None:
        with pytest.raises(CacheStoreError):
            await store.search("nothing", {"match_all": {}}, 1)

    @pytest.mark.asyncio
    async def test_ping_and_close(self, store: InMemoryDocumentStore) -> None:
        assert await store.ping()
        await store.close()
        assert not await store.ping()
