"""Tests for retry and the retry-over-circuit-breaker composition."""

from __future__ import annotations

import pytest

from embedcache.exceptions import CircuitBreakerError
from embedcache.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    ResilientInvoker,
    RetryConfig,
)


class FlakyCall:
    """Fails a fixed number of times before succeeding."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self, value: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"failure {self.calls}")
        return value.upper()


class TestRetryConfig:
    """Test suite for RetryConfig."""

    def test_defaults(self) -> None:
        config = RetryConfig()

        assert config.max_attempts == 3
        assert config.wait_duration == 1.0

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"wait_duration": -1}])
    def test_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)


class TestResilientInvoker:
    """Test suite for ResilientInvoker."""

    @pytest.mark.asyncio
    async def test_retry_recovers_from_transient_failures(self) -> None:
        call = FlakyCall(failures=2)
        invoker = ResilientInvoker(retry=RetryConfig(max_attempts=3, wait_duration=0))

        assert await invoker.invoke(call, "abc") == "ABC"
        assert call.calls == 3

    @pytest.mark.asyncio
    async def test_without_retry_single_attempt(self) -> None:
        call = FlakyCall(failures=2)
        invoker = ResilientInvoker()

        with pytest.raises(ConnectionError):
            await invoker.invoke(call, "abc")
        assert call.calls == 1

    @pytest.mark.asyncio
    async def test_last_exception_reraised_when_exhausted(self) -> None:
        call = FlakyCall(failures=5)
        invoker = ResilientInvoker(retry=RetryConfig(max_attempts=3, wait_duration=0))

        with pytest.raises(ConnectionError, match="failure 3"):
            await invoker.invoke(call, "abc")
        assert call.calls == 3

    @pytest.mark.asyncio
    async def test_retries_against_open_circuit_never_reach_call(self) -> None:
        breaker = CircuitBreaker(
            "api",
            CircuitBreakerConfig(sliding_window_size=2, minimum_number_of_calls=2, wait_duration=60.0),
        )
        call = FlakyCall(failures=100)
        invoker = ResilientInvoker(breaker, RetryConfig(max_attempts=3, wait_duration=0))

        # Two failing attempts open the circuit, the third is rejected
        with pytest.raises(CircuitBreakerError):
            await invoker.invoke(call, "abc")

        assert call.calls == 2
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitBreakerError):
            await invoker.invoke(call, "abc")
        assert call.calls == 2

    @pytest.mark.asyncio
    async def test_breaker_only(self) -> None:
        breaker = CircuitBreaker("api")
        invoker = ResilientInvoker(breaker)

        assert await invoker.invoke(FlakyCall(failures=0), "x") == "X"
        assert breaker.stats.successful_calls == 1
