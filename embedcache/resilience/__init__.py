"""Resilience module for circuit breakers and retry logic."""

from embedcache.exceptions import CircuitBreakerError
from embedcache.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerStats,
    CircuitState,
)
from embedcache.resilience.invoker import ResilientInvoker
from embedcache.resilience.retry import RetryConfig

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitBreakerStats",
    "CircuitState",
    "ResilientInvoker",
    "RetryConfig",
]
