"""Health aggregation over the document store, generation API and circuit breaker."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from embedcache.resilience import CircuitState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from embedcache.config import EmbedCacheConfig
    from embedcache.resilience import CircuitBreaker

logger = logging.getLogger(__name__)

STORE_COMPONENT = "elasticsearch"
GENERATOR_COMPONENT = "embedding-api"
BREAKER_COMPONENT = "circuit-breaker"

STORE_PROBE_TEXT = "__health_check__"
GENERATOR_PROBE_TEXT = "health check"


class HealthStatus(Enum):
    UP = "UP"
    DOWN = "DOWN"
    DEGRADED = "DEGRADED"
    UNKNOWN = "UNKNOWN"


@dataclass
class ComponentHealth:
    """Result of a single probe."""

    status: HealthStatus
    message: str
    response_time_ms: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "response_time_ms": self.response_time_ms,
            "details": self.details,
        }


@dataclass
class HealthCheck:
    """Aggregated health of all components."""

    status: HealthStatus
    message: str
    components: dict[str, ComponentHealth]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.UP

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "components": {name: c.to_dict() for name, c in self.components.items()},
        }


_BREAKER_STATUS = {
    CircuitState.CLOSED: HealthStatus.UP,
    CircuitState.HALF_OPEN: HealthStatus.DEGRADED,
    CircuitState.OPEN: HealthStatus.DOWN,
}


def overall_status(components: dict[str, ComponentHealth]) -> HealthStatus:
    """DOWN beats DEGRADED beats UP; anything else is UNKNOWN."""
    statuses = [c.status for c in components.values()]
    if HealthStatus.DOWN in statuses:
        return HealthStatus.DOWN
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    if all(s == HealthStatus.UP for s in statuses):
        return HealthStatus.UP
    return HealthStatus.UNKNOWN


class HealthCheckService:
    """Runs the three probes and rolls them up into one status.

    Probes never raise: a failing probe becomes a DOWN component.
    """

    def __init__(
        self,
        config: EmbedCacheConfig,
        lookup: Callable[[str], Awaitable[Any]],
        generate: Callable[[str], Awaitable[Any]],
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        """Initialize health check service.

        Args:
            config: Configuration reported in component details
            lookup: Cache lookup used as the store probe
            generate: Generation call used as the API probe
            circuit_breaker: Breaker guarding generation (None = disabled)
        """
        self.config = config
        self.lookup = lookup
        self.generate = generate
        self.circuit_breaker = circuit_breaker

    async def perform_health_check(self) -> HealthCheck:
        logger.debug("Starting health check")

        components = {
            STORE_COMPONENT: await self.check_store(),
            GENERATOR_COMPONENT: await self.check_generator(),
            BREAKER_COMPONENT: self.check_circuit_breaker(),
        }

        status = overall_status(components)
        up_count = sum(1 for c in components.values() if c.status == HealthStatus.UP)
        message = f"Overall status: {status.value} ({up_count}/{len(components)} components healthy)"

        logger.info(f"Health check completed with status: {status.value}")
        return HealthCheck(status=status, message=message, components=components)

    async def check_store(self) -> ComponentHealth:
        es = self.config.elasticsearch
        start = time.monotonic()
        try:
            await self.lookup(STORE_PROBE_TEXT)
        except Exception as e:
            logger.warning(f"⚠️ Document store health check failed: {e}")
            return ComponentHealth(
                status=HealthStatus.DOWN,
                message=f"Elasticsearch connection failed: {e}",
                response_time_ms=_elapsed_ms(start),
                details={"error": str(e), "hosts": es.hosts},
            )

        return ComponentHealth(
            status=HealthStatus.UP,
            message="Elasticsearch connection healthy",
            response_time_ms=_elapsed_ms(start),
            details={"hosts": es.hosts, "port": es.port, "alias": es.alias},
        )

    async def check_generator(self) -> ComponentHealth:
        generator = self.config.generator
        start = time.monotonic()
        try:
            await asyncio.wait_for(self.generate(GENERATOR_PROBE_TEXT), timeout=generator.health_check_timeout)
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            logger.warning(f"⚠️ Embedding API health check failed: {reason}")
            return ComponentHealth(
                status=HealthStatus.DOWN,
                message=f"Embedding API not accessible: {reason}",
                response_time_ms=_elapsed_ms(start),
                details={"error": reason, "url": generator.api_url},
            )

        return ComponentHealth(
            status=HealthStatus.UP,
            message="Embedding API accessible",
            response_time_ms=_elapsed_ms(start),
            details={
                "url": generator.api_url,
                "model": generator.model_name,
                "timeout_ms": int(generator.read_timeout * 1000),
            },
        )

    def check_circuit_breaker(self) -> ComponentHealth:
        breaker = self.circuit_breaker
        if breaker is None:
            return ComponentHealth(
                status=HealthStatus.UNKNOWN,
                message="Circuit breaker disabled",
                details={"enabled": False},
            )

        state = breaker.state
        failure_rate = breaker.failure_rate
        return ComponentHealth(
            status=_BREAKER_STATUS.get(state, HealthStatus.UNKNOWN),
            message=f"Circuit breaker state: {state.name} ({failure_rate:.1f}% failure rate)",
            details={
                "state": state.name,
                "failure_rate": failure_rate,
                "number_of_calls": breaker.buffered_calls,
                "number_of_failed_calls": breaker.failed_buffered_calls,
            },
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
