"""Pytest configuration and fixtures for embedcache tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
import pytest_asyncio

from embedcache.config import (
    CircuitBreakerSettings,
    ElasticsearchConfig,
    EmbedCacheConfig,
    GeneratorConfig,
    RetrySettings,
)
from embedcache.exceptions import EmbeddingGeneratorError
from embedcache.manager import EmbeddingCacheManager
from embedcache.storage.lifecycle import IndexLifecycleManager
from embedcache.storage.memory_store import InMemoryDocumentStore

API_URL = "https://api.example.com/v1/embeddings"
ALIAS = "test-cache"
# 2024-05-15 12:00 in Asia/Seoul
NOW = datetime(2024, 5, 15, 3, 0, tzinfo=UTC)


class FakeGenerator:
    """Generator returning a deterministic vector per text."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.calls: list[str] = []
        self.fail_with = fail_with
        self.closed = False

    async def generate(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        return [float(len(text)), 0.5, 1.0]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def config() -> EmbedCacheConfig:
    """Lite-mode configuration that never touches the environment's services."""
    return EmbedCacheConfig(
        mode="lite",
        elasticsearch=ElasticsearchConfig(hosts=["es-test"], alias=ALIAS),
        generator=GeneratorConfig(
            api_url=API_URL,
            model_name="text-embedding-3-small",
            api_key="sk-test",
        ),
        circuit_breaker=CircuitBreakerSettings(minimum_number_of_calls=4, wait_duration_seconds=60.0),
        retry=RetrySettings(max_attempts=3, wait_duration_seconds=0.0),
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def failing_generator() -> FakeGenerator:
    return FakeGenerator(fail_with=EmbeddingGeneratorError("boom"))


@pytest.fixture
def lifecycle(store: InMemoryDocumentStore) -> IndexLifecycleManager:
    return IndexLifecycleManager(store, ALIAS, clock=lambda: NOW)


@pytest_asyncio.fixture
async def manager(
    config: EmbedCacheConfig,
    store: InMemoryDocumentStore,
    generator: FakeGenerator,
    lifecycle: IndexLifecycleManager,
) -> EmbeddingCacheManager:
    """Manager over the in-memory store with an initialized alias."""
    cache_manager = EmbeddingCacheManager(config, store, generator, lifecycle=lifecycle)
    await cache_manager.ensure_initialized()
    return cache_manager
