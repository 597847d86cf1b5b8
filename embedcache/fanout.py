"""Concurrent fan-out over the cache manager.

Every call becomes an ``asyncio.Task`` owned by the service and bounded by a
semaphore. Batches preserve input order and fail on the first failure;
sibling calls keep running and their writes stand.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from embedcache.health import HealthCheck
    from embedcache.manager import EmbeddingCacheManager
    from embedcache.models import BulkResult, CachedEmbeddingDocument
    from embedcache.monitoring import MetricsSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")

CALLBACK_POOL_SIZE = 2


def default_concurrency() -> int:
    return max(4, os.cpu_count() or 1)


class HealthCheckCallback(ABC):
    """Receives results of scheduled health checks.

    Methods may be plain functions (run on the callback thread pool) or
    coroutines (awaited on the event loop).
    """

    @abstractmethod
    def on_health_check(self, health_check: HealthCheck) -> Any:
        """Handle a completed health check."""

    def on_health_check_error(self, error: BaseException) -> Any:
        logger.warning(f"⚠️ Scheduled health check failed: {error}")


class AsyncEmbeddingService:
    """Runs cache manager operations concurrently."""

    def __init__(
        self,
        manager: EmbeddingCacheManager,
        max_concurrency: int | None = None,
        callback_executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """Initialize async service.

        Args:
            manager: Cache manager doing the work
            max_concurrency: Concurrent calls (default max(4, cpu count))
            callback_executor: Executor for synchronous callbacks. A caller
                supplied executor is never shut down by this service.
        """
        self.manager = manager
        self.max_concurrency = max_concurrency or default_concurrency()
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._schedules: set[asyncio.Task[None]] = set()
        self._executor = callback_executor
        self._owns_executor = callback_executor is None
        self._running = True

        logger.info(
            f"AsyncEmbeddingService initialized (max_concurrency: {self.max_concurrency}, "
            f"external executor: {not self._owns_executor})"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # =========================================================================
    # Async variants
    # =========================================================================

    def get_embedding_async(self, text: str) -> asyncio.Task[list[float]]:
        logger.debug(f"Starting async embedding request for text length: {len(text) if text else 0}")
        return self._submit("get_embedding", self.manager.get_embedding, text)

    def get_embedding_from_cache_async(self, text: str) -> asyncio.Task[list[float] | None]:
        return self._submit("get_embedding_from_cache", self.manager.get_embedding_from_cache, text)

    def generate_embedding_async(self, text: str) -> asyncio.Task[list[float]]:
        return self._submit("generate_embedding", self.manager.generate_embedding, text)

    def store_embedding_async(self, text: str, embedding: list[float]) -> asyncio.Task[str]:
        return self._submit("store_embedding", self.manager.store_embedding, text, embedding)

    def store_embeddings_async(self, documents: list[CachedEmbeddingDocument]) -> asyncio.Task[BulkResult]:
        return self._submit("store_embeddings", self.manager.store_embeddings, documents)

    def perform_health_check_async(self) -> asyncio.Task[HealthCheck]:
        return self._submit("perform_health_check", self.manager.perform_health_check)

    def get_metrics_async(self) -> asyncio.Task[MetricsSummary]:
        async def summary() -> MetricsSummary:
            return self.manager.get_metrics_summary()

        return self._submit("get_metrics", summary)

    async def get_embeddings_batch(self, texts: list[str]) -> list[list[float]]:
        """Get embeddings for many texts concurrently.

        Args:
            texts: Input texts

        Returns:
            Embeddings in input order

        Raises:
            Exception: The first failure among the calls; the other calls
                are not cancelled
        """
        if not texts:
            return []

        logger.debug(f"Starting async batch embedding processing for {len(texts)} texts")
        tasks = [self.get_embedding_async(text) for text in texts]
        return list(await asyncio.gather(*tasks))

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_periodic_health_check(
        self,
        interval_seconds: float,
        callback: HealthCheckCallback,
    ) -> asyncio.Task[None]:
        """Run health checks at a fixed rate, first run after one interval.

        Results go to ``callback.on_health_check`` and failures to
        ``callback.on_health_check_error``; neither stops the schedule.

        Returns:
            The scheduler task (cancelled by shutdown)
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if not self._running:
            raise RuntimeError("AsyncEmbeddingService is shut down")

        logger.info(f"Scheduling periodic health checks every {interval_seconds} seconds")
        task = asyncio.create_task(self._run_schedule(interval_seconds, callback), name="embedcache-health-schedule")
        self._schedules.add(task)
        task.add_done_callback(self._schedules.discard)
        return task

    async def _run_schedule(self, interval: float, callback: HealthCheckCallback) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            next_run += interval

            try:
                health = await self.perform_health_check_async()
            except Exception as e:
                logger.error(f"❌ Error in scheduled health check: {e}")
                await self._deliver(callback.on_health_check_error, e)
                continue

            await self._deliver(callback.on_health_check, health)

    async def _deliver(self, handler: Callable[[Any], Any], payload: Any) -> None:
        try:
            if inspect.iscoroutinefunction(handler):
                await handler(payload)
            else:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(self._callback_executor(), handler, payload)
        except Exception as e:
            logger.exception(f"❌ Health check callback {getattr(handler, '__name__', handler)} failed: {e}")

    def _callback_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=CALLBACK_POOL_SIZE,
                thread_name_prefix="embedcache-callback",
            )
        return self._executor

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def shutdown(self, timeout: float = 30.0, scheduler_timeout: float = 5.0) -> None:
        """Stop scheduling, drain in-flight calls and release owned resources.

        Args:
            timeout: Seconds to wait for in-flight calls before cancelling them
            scheduler_timeout: Seconds to wait for scheduler tasks to stop
        """
        if not self._running:
            return
        logger.info("Shutting down AsyncEmbeddingService")
        self._running = False

        schedules = set(self._schedules)
        for task in schedules:
            task.cancel()
        if schedules:
            _, pending = await asyncio.wait(schedules, timeout=scheduler_timeout)
            if pending:
                logger.warning(f"⚠️ Scheduler did not stop within {scheduler_timeout} seconds")

        in_flight = set(self._tasks)
        if in_flight:
            _, pending = await asyncio.wait(in_flight, timeout=timeout)
            if pending:
                logger.warning(
                    f"⚠️ {len(pending)} calls did not finish within {timeout} seconds, cancelling"
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)

        logger.info("AsyncEmbeddingService shutdown completed")

    async def __aenter__(self) -> AsyncEmbeddingService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def _submit(self, name: str, func: Callable[..., Awaitable[T]], *args: Any) -> asyncio.Task[T]:
        if not self._running:
            raise RuntimeError("AsyncEmbeddingService is shut down")
        task = asyncio.create_task(self._bounded(name, func, *args), name=f"embedcache-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _bounded(self, name: str, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        async with self._semaphore:
            try:
                return await func(*args)
            except Exception as e:
                logger.error(f"❌ Async {name} failed: {e}")
                raise
