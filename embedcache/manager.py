"""Cache-aside orchestration of lookup, generation and write-back."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from embedcache.generator import RestEmbeddingGenerator
from embedcache.hashing import KeyDeriver
from embedcache.health import HealthCheckService
from embedcache.models import BulkResult, CachedEmbeddingDocument
from embedcache.monitoring import MetricsService
from embedcache.storage.base import cache_index_settings, hash_lookup_query
from embedcache.storage.lifecycle import IndexLifecycleManager, RetentionPolicy

if TYPE_CHECKING:
    from concurrent.futures import ThreadPoolExecutor

    from embedcache.config import EmbedCacheConfig
    from embedcache.fanout import AsyncEmbeddingService
    from embedcache.generator import EmbeddingGenerator
    from embedcache.health import HealthCheck
    from embedcache.monitoring import MetricsSummary
    from embedcache.resilience import CircuitBreaker
    from embedcache.storage.base import DocumentStore
    from embedcache.storage.lifecycle import RotationResult

logger = logging.getLogger(__name__)


class EmbeddingCacheManager:
    """Returns embeddings from the cache, generating and storing them on a miss.

    Text is normalized (truncated, trimmed, lower-cased) before it is hashed,
    generated or stored, so the store only ever holds normalized text. Cache
    misses are ``None``; every failure is re-raised as a typed
    :class:`~embedcache.exceptions.EmbedCacheError` with its cause chained.

    Two concurrent misses on the same key both generate and both write.
    """

    def __init__(
        self,
        config: EmbedCacheConfig,
        store: DocumentStore,
        generator: EmbeddingGenerator,
        metrics: MetricsService | None = None,
        lifecycle: IndexLifecycleManager | None = None,
    ) -> None:
        """Initialize cache manager.

        Args:
            config: Application configuration
            store: Document store holding cached embeddings
            generator: Embedding generator called on a miss
            metrics: Metrics service (created from config when omitted)
            lifecycle: Partition lifecycle manager (created from config when omitted)
        """
        self.config = config
        self.store = store
        self.generator = generator
        self.alias = config.elasticsearch.alias
        self.key_deriver = KeyDeriver(config.generator.max_length)
        self.metrics = metrics or MetricsService(enabled=config.metrics_enabled)
        self.lifecycle = lifecycle or IndexLifecycleManager(
            store,
            self.alias,
            retention=RetentionPolicy(
                keep=config.index.retention_months,
                exempt_suffix=config.index.exempt_suffix,
            ),
            timezone=config.index.timezone,
            settings=cache_index_settings(
                config.index.number_of_shards,
                config.index.number_of_replicas,
            ),
        )
        self.health_service = HealthCheckService(
            config,
            lookup=self.get_embedding_from_cache,
            generate=self.generate_embedding,
            circuit_breaker=self.circuit_breaker,
        )

        logger.info(
            f"EmbeddingCacheManager initialized (alias: {self.alias}, "
            f"metrics: {self.metrics.enabled})"
        )

    @classmethod
    async def create(
        cls,
        config: EmbedCacheConfig,
        store: DocumentStore | None = None,
        generator: EmbeddingGenerator | None = None,
        initialize: bool = True,
    ) -> EmbeddingCacheManager:
        """Build a manager from configuration.

        The store comes from the configured mode unless one is given, and the
        alias is initialized unless ``initialize`` is False. The store and
        generator are closed again when initialization fails.

        Args:
            config: Application configuration
            store: Document store to use instead of the mode's store
            generator: Generator to use instead of the REST generator
            initialize: Create the first partition if the alias is missing

        Returns:
            EmbeddingCacheManager instance
        """
        from embedcache.modes import get_mode

        metrics = MetricsService(enabled=config.metrics_enabled)
        if store is None:
            mode = get_mode(config.mode, config)
            store = await mode.initialize_store()
        manager: EmbeddingCacheManager | None = None
        try:
            if generator is None:
                generator = RestEmbeddingGenerator.from_settings(
                    config.generator,
                    config.circuit_breaker,
                    config.retry,
                    metrics=metrics,
                )

            manager = cls(config, store, generator, metrics=metrics)
            if initialize:
                await manager.ensure_initialized()
        except BaseException:
            if manager is not None:
                await manager.aclose()
            else:
                await store.close()
            raise
        return manager

    @property
    def circuit_breaker(self) -> CircuitBreaker | None:
        return getattr(self.generator, "circuit_breaker", None)

    def normalize(self, text: str) -> str:
        return self.key_deriver.normalize(text)

    async def get_embedding(self, text: str) -> list[float]:
        """Get an embedding, generating and caching it on a miss.

        Args:
            text: Input text (normalized before use)

        Returns:
            Embedding vector

        Raises:
            HashingError: If the cache key cannot be derived
            CacheStoreError: If the lookup or write-back fails
            EmbeddingGeneratorError: If generation fails
        """
        self.metrics.record_embedding_request()
        with self.metrics.time_total_request():
            try:
                embedding = await self.get_embedding_from_cache(text)
                if embedding is not None:
                    self.metrics.record_cache_hit()
                    return embedding

                self.metrics.record_cache_miss()
                embedding = await self.generate_embedding(text)
                await self.store_embedding(text, embedding)
                self.metrics.record_embedding_success()
                return embedding
            except Exception:
                self.metrics.record_embedding_failure()
                raise

    async def get_embedding_from_cache(self, text: str) -> list[float] | None:
        """Look up a cached embedding.

        Returns:
            Cached vector, or None on a miss
        """
        normalized = self.normalize(text)
        key = self.key_deriver.derive_key(normalized)

        with self.metrics.time_cache_retrieval():
            candidates = await self.store.search(self.alias, hash_lookup_query(key), 1)

        for candidate in candidates:
            if candidate.text.lower() == normalized.lower() and candidate.embedding:
                logger.debug(f"Cache hit for key {key[:12]}")
                return candidate.embedding

        logger.debug(f"Cache miss for key {key[:12]}")
        return None

    async def generate_embedding(self, text: str) -> list[float]:
        """Generate an embedding for the normalized text without caching it."""
        with self.metrics.time_generation():
            return await self.generator.generate(self.normalize(text))

    async def store_embedding(self, text: str, embedding: list[float], doc_id: str | None = None) -> str:
        """Write an embedding for ``text`` to the alias's write index.

        Returns:
            Document id assigned by the store
        """
        normalized = self.normalize(text)
        document = CachedEmbeddingDocument(
            id=doc_id,
            text=normalized,
            hash=self.key_deriver.derive_key(normalized),
            embedding=embedding,
        )
        return await self.store.index_document(self.alias, document)

    async def store_document(self, document: CachedEmbeddingDocument) -> str:
        """Write a caller-built document, re-deriving its text and hash."""
        return await self.store.index_document(self.alias, self._prepare(document))

    async def store_embeddings(self, documents: list[CachedEmbeddingDocument]) -> BulkResult:
        """Bulk-write documents to the write index.

        Each document's text is normalized and its hash recomputed; caller
        supplied hashes are ignored.

        Returns:
            Aggregate bulk result with per-item status
        """
        if not documents:
            return BulkResult()

        prepared = [self._prepare(document) for document in documents]
        result = await self.store.bulk_index(self.alias, prepared)
        logger.info(
            f"Stored {len(prepared)} embeddings in {self.alias}"
            + (f" ({len(result.failed_items)} failed)" if result.errors else "")
        )
        return result

    async def ensure_initialized(self) -> str | None:
        return await self.lifecycle.ensure_initialized()

    async def rotate(self) -> RotationResult:
        return await self.lifecycle.rotate()

    async def perform_health_check(self) -> HealthCheck:
        logger.debug("Performing health check for embedding cache manager")
        self.metrics.record_health_check_request()
        with self.metrics.time_health_check():
            return await self.health_service.perform_health_check()

    def get_metrics_summary(self) -> MetricsSummary:
        logger.debug("Retrieving metrics summary")
        return self.metrics.get_metrics_summary()

    def create_async_service(
        self,
        max_concurrency: int | None = None,
        callback_executor: ThreadPoolExecutor | None = None,
    ) -> AsyncEmbeddingService:
        """Create a concurrent fan-out service over this manager.

        Args:
            max_concurrency: Concurrent calls (default from config, else max(4, cpu count))
            callback_executor: Executor for synchronous health callbacks; never
                shut down by the service

        Returns:
            AsyncEmbeddingService instance
        """
        from embedcache.fanout import AsyncEmbeddingService

        return AsyncEmbeddingService(
            self,
            max_concurrency=max_concurrency or self.config.max_concurrency,
            callback_executor=callback_executor,
        )

    async def aclose(self) -> None:
        """Close the generator's HTTP client and the document store."""
        aclose = getattr(self.generator, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.store.close()
        logger.info("EmbeddingCacheManager closed")

    async def __aenter__(self) -> EmbeddingCacheManager:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _prepare(self, document: CachedEmbeddingDocument) -> CachedEmbeddingDocument:
        normalized = self.normalize(document.text)
        return CachedEmbeddingDocument(
            id=document.id,
            text=normalized,
            hash=self.key_deriver.derive_key(normalized),
            embedding=document.embedding,
        )
