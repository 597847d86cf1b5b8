"""Tests for the application runner and graceful shutdown."""

from __future__ import annotations

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock

import pytest

from embedcache.config import EmbedCacheConfig
from embedcache.exceptions import CacheStoreError, IndexLifecycleError
from embedcache.health import HealthCheck, HealthStatus
from embedcache.main import EmbedCacheApplication, LoggingHealthCallback
from embedcache.modes.lite import LiteMode
from embedcache.storage.lifecycle import RotationState
from embedcache.storage.memory_store import InMemoryDocumentStore


class UnreachableStore(InMemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.close_calls = 0

    async def exists(self, name: str) -> bool:
        raise CacheStoreError("connection refused")

    async def close(self) -> None:
        self.close_calls += 1
        await super().close()


@pytest.fixture
def application(config: EmbedCacheConfig) -> EmbedCacheApplication:
    return EmbedCacheApplication(config=config)


@pytest.fixture
def restore_signals():
    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in previous.items():
        signal.signal(sig, handler)


class TestEmbedCacheApplication:
    """Test suite for EmbedCacheApplication lifecycle."""

    def test_initialization(self, application: EmbedCacheApplication) -> None:
        """Test application initialization."""
        assert isinstance(application.shutdown_event, asyncio.Event)
        assert application.mode == "lite"
        assert isinstance(application.mode_instance, LiteMode)
        assert application.manager is None

    def test_mode_override(self, config: EmbedCacheConfig) -> None:
        application = EmbedCacheApplication(config=config, mode="standard")

        assert application.mode == "standard"
        assert application.mode_instance.requires_external_services

    def test_shutdown_handler_sets_event(self, application: EmbedCacheApplication) -> None:
        """Test that shutdown handler sets the shutdown event."""
        assert not application.shutdown_event.is_set()

        application._handle_shutdown(signal.SIGTERM, None)

        assert application.shutdown_event.is_set()

    def test_shutdown_handler_handles_sigint(self, application: EmbedCacheApplication) -> None:
        """Test that SIGINT is handled correctly."""
        application._handle_shutdown(signal.SIGINT, None)

        assert application.shutdown_event.is_set()

    @pytest.mark.asyncio
    async def test_initialize_and_stop(self, application: EmbedCacheApplication) -> None:
        """Test components are created, rotated and released."""
        await application.initialize()
        manager = application.manager
        service = application.service

        assert manager is not None
        assert service is not None and service.is_running
        assert await manager.store.exists("test-cache")

        await asyncio.sleep(0.01)
        assert manager.lifecycle.last_result is not None
        assert manager.lifecycle.last_result.state == RotationState.ALREADY_CURRENT

        await application.stop()

        assert not service.is_running
        assert application.manager is None
        assert application.service is None
        assert not await manager.store.ping()

    @pytest.mark.asyncio
    async def test_failed_initialize_closes_store(
        self, application: EmbedCacheApplication, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A store that cannot be initialized is closed before the error propagates."""
        store = UnreachableStore()
        monkeypatch.setattr(application.mode_instance, "initialize_store", AsyncMock(return_value=store))

        with pytest.raises(CacheStoreError, match="connection refused"):
            await application.initialize()

        assert store.close_calls == 1
        assert application.manager is None
        assert application.service is None

    @pytest.mark.asyncio
    async def test_stop_without_initialize(self, application: EmbedCacheApplication) -> None:
        """Stopping an application that never started is a no-op."""
        await application.stop()

        assert application.manager is None

    @pytest.mark.asyncio
    async def test_start_waits_for_shutdown_event(
        self, application: EmbedCacheApplication, restore_signals: None
    ) -> None:
        """Test start returns after the shutdown event and cleans up."""
        start_task = asyncio.create_task(application.start())
        await asyncio.sleep(0.05)
        assert not start_task.done()

        application.shutdown_event.set()
        await asyncio.wait_for(start_task, timeout=5)

        assert application.manager is None
        assert signal.getsignal(signal.SIGTERM) == application._handle_shutdown

    @pytest.mark.asyncio
    async def test_rotation_loop_survives_failures(self, application: EmbedCacheApplication) -> None:
        """A failed rotation is logged and retried on the next interval."""
        application.config.rotation_interval_seconds = 0.01
        manager = MagicMock()
        manager.rotate = AsyncMock(side_effect=IndexLifecycleError("not acknowledged", step="bind_alias"))

        task = asyncio.create_task(application._rotation_loop(manager))
        for _ in range(100):
            if manager.rotate.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert manager.rotate.await_count >= 2

    @pytest.mark.asyncio
    async def test_rotation_loop_survives_store_errors(self, application: EmbedCacheApplication) -> None:
        """Store errors outside a lifecycle step do not end the schedule."""
        application.config.rotation_interval_seconds = 0.01
        manager = MagicMock()
        manager.rotate = AsyncMock(side_effect=CacheStoreError("cluster unavailable"))

        task = asyncio.create_task(application._rotation_loop(manager))
        for _ in range(100):
            if manager.rotate.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert manager.rotate.await_count >= 2


class TestLoggingHealthCallback:
    """Test suite for the default health callback."""

    def test_keeps_last_result(self) -> None:
        callback = LoggingHealthCallback()
        health = HealthCheck(
            status=HealthStatus.DOWN,
            message="Overall status: DOWN (2/3 components healthy)",
            components={},
        )

        callback.on_health_check(health)

        assert callback.last is health
