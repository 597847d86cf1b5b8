"""Prometheus metrics collection for embedcache.

Provides instrumentation for cache lookups, embedding generation and health
checks. Each :class:`MetricsService` registers its collectors on its own
``CollectorRegistry`` so several managers can live in one process.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

if TYPE_CHECKING:
    from contextlib import AbstractContextManager

logger = logging.getLogger(__name__)

# =============================================================================
# Metric names
# =============================================================================

CACHE_HITS = "embedcache_cache_hits"
CACHE_MISSES = "embedcache_cache_misses"
EMBEDDING_REQUESTS = "embedcache_embedding_requests"
EMBEDDING_SUCCESS = "embedcache_embedding_success"
EMBEDDING_FAILURES = "embedcache_embedding_failures"
HEALTH_CHECK_REQUESTS = "embedcache_health_check_requests"
API_CALLS = "embedcache_embedding_api_calls"

CACHE_RETRIEVAL_SECONDS = "embedcache_cache_retrieval_seconds"
GENERATION_SECONDS = "embedcache_embedding_generation_seconds"
TOTAL_REQUEST_SECONDS = "embedcache_total_request_seconds"
HEALTH_CHECK_SECONDS = "embedcache_health_check_seconds"

_LATENCY_BUCKETS = [0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0]


class PerformanceGrade(Enum):
    """Coarse grade derived from a metrics summary."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MetricsSummary:
    """Snapshot of collected metrics. Times are in milliseconds."""

    enabled: bool
    cache_hit_rate: float  # percentage
    total_requests: float
    successful_generations: float
    failed_generations: float
    average_cache_retrieval_time: float
    average_generation_time: float
    average_total_request_time: float
    health_check_requests: float
    average_health_check_time: float

    @classmethod
    def disabled(cls) -> MetricsSummary:
        return cls(
            enabled=False,
            cache_hit_rate=0.0,
            total_requests=0.0,
            successful_generations=0.0,
            failed_generations=0.0,
            average_cache_retrieval_time=0.0,
            average_generation_time=0.0,
            average_total_request_time=0.0,
            health_check_requests=0.0,
            average_health_check_time=0.0,
        )

    @property
    def success_rate(self) -> float:
        """Successful generations as a percentage of requests."""
        if not self.enabled or self.total_requests == 0:
            return 0.0
        return self.successful_generations / self.total_requests * 100.0

    @property
    def failure_rate(self) -> float:
        """Failed requests as a percentage of requests."""
        if not self.enabled or self.total_requests == 0:
            return 0.0
        return self.failed_generations / self.total_requests * 100.0

    def is_healthy(self) -> bool:
        """Healthy when success > 95 %, average latency < 5 s and, once
        requests exist, hit rate > 20 %. Disabled metrics count as healthy.
        """
        if not self.enabled:
            return True
        return (
            self.success_rate > 95.0
            and self.average_total_request_time < 5000.0
            and (self.total_requests == 0 or self.cache_hit_rate > 20.0)
        )

    def performance_grade(self) -> PerformanceGrade:
        if not self.enabled:
            return PerformanceGrade.UNKNOWN

        success_rate = self.success_rate
        if success_rate >= 99.0 and self.average_total_request_time < 1000.0 and self.cache_hit_rate > 80.0:
            return PerformanceGrade.EXCELLENT
        if success_rate >= 95.0 and self.average_total_request_time < 3000.0 and self.cache_hit_rate > 50.0:
            return PerformanceGrade.GOOD
        if success_rate >= 90.0 and self.average_total_request_time < 5000.0:
            return PerformanceGrade.FAIR
        return PerformanceGrade.POOR

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["success_rate"] = self.success_rate
        data["failure_rate"] = self.failure_rate
        data["healthy"] = self.is_healthy()
        data["performance_grade"] = self.performance_grade().value
        return data


class MetricsService:
    """Counters and timers for one cache manager.

    With ``enabled=False`` no collectors are created and every recording
    method is a no-op.
    """

    def __init__(self, enabled: bool = True, registry: CollectorRegistry | None = None) -> None:
        self.enabled = enabled
        self.registry = registry if registry is not None else CollectorRegistry()

        if not enabled:
            logger.info("Metrics collection disabled")
            return

        self.cache_hits = Counter(CACHE_HITS, "Cache hits", registry=self.registry)
        self.cache_misses = Counter(CACHE_MISSES, "Cache misses", registry=self.registry)
        self.embedding_requests = Counter(EMBEDDING_REQUESTS, "Embedding requests", registry=self.registry)
        self.embedding_success = Counter(
            EMBEDDING_SUCCESS, "Embeddings generated and stored", registry=self.registry
        )
        self.embedding_failures = Counter(EMBEDDING_FAILURES, "Failed embedding requests", registry=self.registry)
        self.health_check_requests = Counter(
            HEALTH_CHECK_REQUESTS, "Health check requests", registry=self.registry
        )
        self.api_calls = Counter(
            API_CALLS,
            "Calls to the embedding generation API",
            ["outcome"],  # success, failure
            registry=self.registry,
        )

        self.cache_retrieval_time = Histogram(
            CACHE_RETRIEVAL_SECONDS, "Cache lookup duration", buckets=_LATENCY_BUCKETS, registry=self.registry
        )
        self.generation_time = Histogram(
            GENERATION_SECONDS, "Embedding generation duration", buckets=_LATENCY_BUCKETS, registry=self.registry
        )
        self.total_request_time = Histogram(
            TOTAL_REQUEST_SECONDS, "End-to-end request duration", buckets=_LATENCY_BUCKETS, registry=self.registry
        )
        self.health_check_time = Histogram(
            HEALTH_CHECK_SECONDS, "Health check duration", buckets=_LATENCY_BUCKETS, registry=self.registry
        )

        logger.info("Metrics collection enabled")

    # =========================================================================
    # Counters
    # =========================================================================

    def record_cache_hit(self) -> None:
        if self.enabled:
            self.cache_hits.inc()

    def record_cache_miss(self) -> None:
        if self.enabled:
            self.cache_misses.inc()

    def record_embedding_request(self) -> None:
        if self.enabled:
            self.embedding_requests.inc()

    def record_embedding_success(self) -> None:
        if self.enabled:
            self.embedding_success.inc()

    def record_embedding_failure(self) -> None:
        if self.enabled:
            self.embedding_failures.inc()

    def record_health_check_request(self) -> None:
        if self.enabled:
            self.health_check_requests.inc()

    def record_api_call(self, outcome: str) -> None:
        """Count a generation API call by outcome (success or failure)."""
        if self.enabled:
            self.api_calls.labels(outcome=outcome).inc()

    # =========================================================================
    # Timers
    # =========================================================================

    def time_cache_retrieval(self) -> AbstractContextManager[Any]:
        return self.cache_retrieval_time.time() if self.enabled else nullcontext()

    def time_generation(self) -> AbstractContextManager[Any]:
        return self.generation_time.time() if self.enabled else nullcontext()

    def time_total_request(self) -> AbstractContextManager[Any]:
        return self.total_request_time.time() if self.enabled else nullcontext()

    def time_health_check(self) -> AbstractContextManager[Any]:
        return self.health_check_time.time() if self.enabled else nullcontext()

    # =========================================================================
    # Summary
    # =========================================================================

    def get_metrics_summary(self) -> MetricsSummary:
        """Build a summary from the current collector values."""
        if not self.enabled:
            return MetricsSummary.disabled()

        return MetricsSummary(
            enabled=True,
            cache_hit_rate=self._cache_hit_rate(),
            total_requests=self._count(EMBEDDING_REQUESTS),
            successful_generations=self._count(EMBEDDING_SUCCESS),
            failed_generations=self._count(EMBEDDING_FAILURES),
            average_cache_retrieval_time=self._average_ms(CACHE_RETRIEVAL_SECONDS),
            average_generation_time=self._average_ms(GENERATION_SECONDS),
            average_total_request_time=self._average_ms(TOTAL_REQUEST_SECONDS),
            health_check_requests=self._count(HEALTH_CHECK_REQUESTS),
            average_health_check_time=self._average_ms(HEALTH_CHECK_SECONDS),
        )

    def api_call_count(self, outcome: str) -> float:
        if not self.enabled:
            return 0.0
        return self.registry.get_sample_value(f"{API_CALLS}_total", {"outcome": outcome}) or 0.0

    def export(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def _count(self, name: str) -> float:
        return self.registry.get_sample_value(f"{name}_total") or 0.0

    def _cache_hit_rate(self) -> float:
        hits = self._count(CACHE_HITS)
        total = hits + self._count(CACHE_MISSES)
        return hits / total * 100.0 if total > 0 else 0.0

    def _average_ms(self, name: str) -> float:
        count = self.registry.get_sample_value(f"{name}_count") or 0.0
        if count == 0:
            return 0.0
        total = self.registry.get_sample_value(f"{name}_sum") or 0.0
        return total / count * 1000.0
