"""Composition of retry and circuit breaker around a raw async call."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from embedcache.resilience.circuit_breaker import CircuitBreaker
    from embedcache.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResilientInvoker:
    """Runs a call as retry(circuit_breaker(call)).

    Each retry attempt re-enters the circuit breaker, so once the circuit is
    OPEN the remaining attempts are rejected without reaching the raw call.
    Either wrapper may be disabled by passing ``None``; a disabled wrapper is
    skipped entirely.
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.circuit_breaker = circuit_breaker
        self.retry = retry

        logger.info(
            f"Resilient invoker initialized (circuit breaker: {circuit_breaker is not None}, "
            f"retry: {retry is not None})"
        )

    async def invoke(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Invoke ``func`` through the configured wrappers.

        Args:
            func: Coroutine function performing the raw call
            *args: Function arguments
            **kwargs: Function keyword arguments

        Returns:
            Function result

        Raises:
            CircuitBreakerError: If the last attempt was rejected by an open circuit
            Exception: The last exception raised by ``func``
        """
        if self.retry is None:
            return await self._guarded(func, *args, **kwargs)

        async for attempt in self.retry.build_retrying():
            with attempt:
                result = await self._guarded(func, *args, **kwargs)
        return result

    async def _guarded(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        if self.circuit_breaker is None:
            return await func(*args, **kwargs)
        return await self.circuit_breaker.call(func, *args, **kwargs)
