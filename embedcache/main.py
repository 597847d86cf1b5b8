"""embedcache application runner."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, Any

from embedcache.config import EmbedCacheConfig, get_config
from embedcache.exceptions import EmbedCacheError, IndexLifecycleError
from embedcache.fanout import HealthCheckCallback
from embedcache.health import HealthStatus
from embedcache.manager import EmbeddingCacheManager

if TYPE_CHECKING:
    from embedcache.fanout import AsyncEmbeddingService
    from embedcache.health import HealthCheck

logger = logging.getLogger(__name__)


class LoggingHealthCallback(HealthCheckCallback):
    """Logs scheduled health check results."""

    def __init__(self) -> None:
        self.last: HealthCheck | None = None

    def on_health_check(self, health_check: HealthCheck) -> None:
        self.last = health_check
        if health_check.status == HealthStatus.UP:
            logger.info(f"✅ {health_check.message}")
        else:
            logger.warning(f"⚠️ {health_check.message}")


class EmbedCacheApplication:
    """embedcache application with lifecycle management.

    Starts the cache manager for the configured mode, keeps the alias rotated
    and runs periodic health checks until a shutdown signal arrives.

    Attributes:
        config: Application configuration
        mode: Operational mode (lite or standard)
        mode_instance: Mode instance providing the document store
        shutdown_event: Event for graceful shutdown
        manager: Cache manager (set by initialize)
        service: Concurrent fan-out service (set by initialize)
    """

    def __init__(self, config: EmbedCacheConfig | None = None, mode: str | None = None) -> None:
        """Initialize application.

        Args:
            config: Application configuration (loaded from the environment when omitted)
            mode: Operational mode overriding the configured one
        """
        self.config = config or get_config()
        if mode:
            self.config.mode = mode
        self.mode = self.config.mode
        self.shutdown_event = asyncio.Event()
        self.manager: EmbeddingCacheManager | None = None
        self.service: AsyncEmbeddingService | None = None
        self.health_callback = LoggingHealthCallback()
        self._rotation_task: asyncio.Task[None] | None = None

        from embedcache.modes import get_mode

        self.mode_instance = get_mode(self.mode, self.config)
        logger.info(f"Initialized {self.mode} mode: {self.mode_instance.mode_config.description}")

    async def initialize(self) -> None:
        """Create the store, manager and fan-out service and start schedules."""
        logger.info(f"Initializing {self.mode} mode components...")

        store = await self.mode_instance.initialize_store()
        self.manager = await EmbeddingCacheManager.create(self.config, store=store)
        self.service = self.manager.create_async_service()
        self.service.schedule_periodic_health_check(
            self.config.health_check_interval_seconds,
            self.health_callback,
        )
        self._rotation_task = asyncio.create_task(self._rotation_loop(self.manager), name="embedcache-rotation")

    async def start(self) -> None:
        """Start embedcache services and wait for shutdown."""
        logger.info("Starting embedcache application")
        await self.initialize()

        logger.info("Setting up signal handlers for graceful shutdown")
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info("✅ embedcache application started successfully")
        logger.info(f"   Mode: {self.mode}")
        logger.info(f"   Store: {self.mode_instance.mode_config.store_backend}")
        logger.info(f"   Alias: {self.config.elasticsearch.alias}")

        try:
            await self.shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("Application cancelled")
        finally:
            await self.stop()

    async def _rotation_loop(self, manager: EmbeddingCacheManager) -> None:
        while True:
            try:
                await manager.rotate()
            except IndexLifecycleError as e:
                logger.error(f"❌ Scheduled rotation failed at {e.step}: {e}")
            except EmbedCacheError as e:
                logger.error(f"❌ Scheduled rotation failed: {e}")
            await asyncio.sleep(self.config.rotation_interval_seconds)

    def _handle_shutdown(self, signum: int, _frame: Any = None) -> None:
        """Handle shutdown signal.

        Args:
            signum: Signal number (SIGINT or SIGTERM)
            _frame: Current stack frame (unused)
        """
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.info(f"Received {signal_name} signal, initiating graceful shutdown")
        self.shutdown_event.set()

    async def stop(self) -> None:
        """Stop schedules, drain in-flight calls and close connections."""
        logger.info("Initiating graceful shutdown with drain period")

        if self._rotation_task is not None:
            self._rotation_task.cancel()
            await asyncio.gather(self._rotation_task, return_exceptions=True)
            self._rotation_task = None

        if self.service is not None:
            await self.service.shutdown()
            self.service = None

        if self.manager is not None:
            await self.manager.aclose()
            self.manager = None

        logger.info("✅ embedcache application shutdown complete")


def run(config: EmbedCacheConfig | None = None, mode: str | None = None) -> None:
    """Run the application until SIGINT or SIGTERM."""
    asyncio.run(EmbedCacheApplication(config=config, mode=mode).start())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
