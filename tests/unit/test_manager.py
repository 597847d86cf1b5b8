"""Tests for the cache-aside manager."""

from __future__ import annotations

import pytest

from embedcache.config import EmbedCacheConfig
from embedcache.exceptions import CacheStoreError, EmbeddingGeneratorError
from embedcache.generator import RestEmbeddingGenerator
from embedcache.hashing import derive_key
from embedcache.health import HealthStatus
from embedcache.manager import EmbeddingCacheManager
from embedcache.models import CachedEmbeddingDocument
from embedcache.storage.lifecycle import RotationState
from embedcache.storage.memory_store import InMemoryDocumentStore

ALIAS = "test-cache"


def stored_documents(store: InMemoryDocumentStore) -> list[dict]:
    return [doc for index in store.aliases[ALIAS] for doc in store.indices[index].values()]


class UnreachableStore(InMemoryDocumentStore):
    """Store whose cluster cannot be reached."""

    def __init__(self) -> None:
        super().__init__()
        self.close_calls = 0

    async def exists(self, name: str) -> bool:
        raise CacheStoreError("Elasticsearch exists failed: connection refused")

    async def close(self) -> None:
        self.close_calls += 1
        await super().close()


class TestGetEmbedding:
    """Test suite for the lookup, generate and write-back path."""

    @pytest.mark.asyncio
    async def test_miss_generates_and_stores(self, manager: EmbeddingCacheManager, generator, store) -> None:
        embedding = await manager.get_embedding("  Hello World ")

        assert embedding == [11.0, 0.5, 1.0]
        assert generator.calls == ["hello world"]
        docs = stored_documents(store)
        assert len(docs) == 1
        assert docs[0]["text"] == "hello world"
        assert docs[0]["hash"] == derive_key("hello world")
        assert docs[0]["has_embedding"] is True

    @pytest.mark.asyncio
    async def test_second_request_hits(self, manager: EmbeddingCacheManager, generator) -> None:
        first = await manager.get_embedding("Hello World")
        second = await manager.get_embedding("HELLO WORLD  ")

        assert first == second
        assert len(generator.calls) == 1

        summary = manager.get_metrics_summary()
        assert summary.total_requests == 2
        assert summary.successful_generations == 1
        assert summary.failed_generations == 0
        assert summary.cache_hit_rate == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_hash_collision_with_different_text_is_a_miss(
        self, manager: EmbeddingCacheManager, store: InMemoryDocumentStore
    ) -> None:
        await store.index_document(
            ALIAS,
            CachedEmbeddingDocument(text="something else", hash=derive_key("hello"), embedding=[9.0]),
        )

        assert await manager.get_embedding_from_cache("hello") is None

    @pytest.mark.asyncio
    async def test_document_without_embedding_is_a_miss(
        self, manager: EmbeddingCacheManager, store: InMemoryDocumentStore
    ) -> None:
        await store.index_document(
            ALIAS,
            CachedEmbeddingDocument(text="hello", hash=derive_key("hello"), embedding=[]),
        )

        assert await manager.get_embedding_from_cache("hello") is None

    @pytest.mark.asyncio
    async def test_generation_failure_propagates(
        self, config: EmbedCacheConfig, store, lifecycle, failing_generator
    ) -> None:
        manager = EmbeddingCacheManager(config, store, failing_generator, lifecycle=lifecycle)
        await manager.ensure_initialized()

        with pytest.raises(EmbeddingGeneratorError, match="boom"):
            await manager.get_embedding("hello")

        summary = manager.get_metrics_summary()
        assert summary.total_requests == 1
        assert summary.failed_generations == 1
        assert summary.successful_generations == 0
        assert stored_documents(store) == []

    @pytest.mark.asyncio
    async def test_missing_alias_raises_store_error(self, config: EmbedCacheConfig, generator) -> None:
        manager = EmbeddingCacheManager(config, InMemoryDocumentStore(), generator)

        with pytest.raises(CacheStoreError):
            await manager.get_embedding("hello")

        assert generator.calls == []
        assert manager.get_metrics_summary().failed_generations == 1


class TestStoreEmbeddings:
    """Test suite for single and bulk writes."""

    @pytest.mark.asyncio
    async def test_store_embedding_normalizes(self, manager: EmbeddingCacheManager, store) -> None:
        doc_id = await manager.store_embedding("  Some TEXT", [1.0, 2.0], doc_id="fixed")

        assert doc_id == "fixed"
        assert await manager.get_embedding_from_cache("some text") == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_bulk_recomputes_hashes(self, manager: EmbeddingCacheManager, store) -> None:
        documents = [
            CachedEmbeddingDocument(text="  Mixed Case ", hash="bogus", embedding=[1.0]),
            CachedEmbeddingDocument(id="b", text="second", embedding=[2.0]),
        ]

        result = await manager.store_embeddings(documents)

        assert not result.errors
        assert len(result.items) == 2
        hashes = sorted(doc["hash"] for doc in stored_documents(store))
        assert hashes == sorted([derive_key("mixed case"), derive_key("second")])
        assert await manager.get_embedding_from_cache("MIXED CASE") == [1.0]

    @pytest.mark.asyncio
    async def test_bulk_empty_input(self, manager: EmbeddingCacheManager, store) -> None:
        result = await manager.store_embeddings([])

        assert result.items == []
        assert stored_documents(store) == []

    @pytest.mark.asyncio
    async def test_store_document(self, manager: EmbeddingCacheManager) -> None:
        await manager.store_document(CachedEmbeddingDocument(text="Doc", hash="ignored", embedding=[3.0]))

        assert await manager.get_embedding_from_cache("doc") == [3.0]


class TestManagerLifecycle:
    """Test suite for construction, rotation, health and shutdown."""

    @pytest.mark.asyncio
    async def test_rotate_delegates(self, manager: EmbeddingCacheManager) -> None:
        result = await manager.rotate()

        assert result.state == RotationState.ALREADY_CURRENT

    @pytest.mark.asyncio
    async def test_health_check_without_breaker(self, manager: EmbeddingCacheManager) -> None:
        health = await manager.perform_health_check()

        assert health.components["elasticsearch"].status == HealthStatus.UP
        assert health.components["embedding-api"].status == HealthStatus.UP
        assert health.components["circuit-breaker"].status == HealthStatus.UNKNOWN
        assert health.status == HealthStatus.UNKNOWN
        assert manager.get_metrics_summary().health_check_requests == 1

    @pytest.mark.asyncio
    async def test_create_initializes_alias(self, config: EmbedCacheConfig, store, generator) -> None:
        manager = await EmbeddingCacheManager.create(config, store=store, generator=generator)

        assert ALIAS in store.aliases
        assert manager.circuit_breaker is None

    @pytest.mark.asyncio
    async def test_create_builds_rest_generator(self, config: EmbedCacheConfig, store) -> None:
        manager = await EmbeddingCacheManager.create(config, store=store, initialize=False)

        assert isinstance(manager.generator, RestEmbeddingGenerator)
        assert manager.circuit_breaker is not None
        assert ALIAS not in store.aliases
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_create_closes_resources_when_initialization_fails(
        self, config: EmbedCacheConfig, generator
    ) -> None:
        store = UnreachableStore()

        with pytest.raises(CacheStoreError, match="connection refused"):
            await EmbeddingCacheManager.create(config, store=store, generator=generator)

        assert store.close_calls == 1
        assert generator.closed

    @pytest.mark.asyncio
    async def test_create_closes_rest_generator_when_initialization_fails(
        self, config: EmbedCacheConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = UnreachableStore()
        created: list[RestEmbeddingGenerator] = []
        original = RestEmbeddingGenerator.from_settings

        def from_settings(*args, **kwargs):
            generator = original(*args, **kwargs)
            created.append(generator)
            return generator

        monkeypatch.setattr(RestEmbeddingGenerator, "from_settings", from_settings)

        with pytest.raises(CacheStoreError):
            await EmbeddingCacheManager.create(config, store=store)

        assert store.close_calls == 1
        assert len(created) == 1
        assert created[0].client.is_closed

    @pytest.mark.asyncio
    async def test_aclose(self, manager: EmbeddingCacheManager, generator, store) -> None:
        async with manager:
            pass

        assert generator.closed
        assert not await store.ping()
