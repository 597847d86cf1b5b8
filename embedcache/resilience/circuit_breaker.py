"""Circuit breaker for the embedding generation call.

This module provides:
- A failure-rate circuit breaker over a count-based sliding window
- A single trial call in HALF_OPEN before the circuit closes again
- Statistics for health checks and metrics
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from embedcache.exceptions import CircuitBreakerError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Circuit is open, blocking calls
    HALF_OPEN = "half_open"  # Testing if service has recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_rate_threshold: float = 50.0  # Percent of failed calls that opens the circuit
    sliding_window_size: int = 10  # Outcomes kept in the window
    minimum_number_of_calls: int = 10  # Outcomes required before the rate is evaluated
    wait_duration: float = 60.0  # Seconds in OPEN before a trial call
    permitted_calls_in_half_open: int = 1  # Trial calls allowed in HALF_OPEN

    def __post_init__(self) -> None:
        if not 0 < self.failure_rate_threshold <= 100:
            raise ValueError("failure_rate_threshold must be in (0, 100]")
        if self.sliding_window_size < 1:
            raise ValueError("sliding_window_size must be at least 1")
        if self.minimum_number_of_calls < 1:
            raise ValueError("minimum_number_of_calls must be at least 1")
        if self.minimum_number_of_calls > self.sliding_window_size:
            raise ValueError("minimum_number_of_calls must not exceed sliding_window_size")
        if self.permitted_calls_in_half_open < 1:
            raise ValueError("permitted_calls_in_half_open must be at least 1")


@dataclass
class CircuitBreakerStats:
    """Statistics for circuit breaker."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    last_failure_time: datetime | None = None
    last_state_change: datetime = field(default_factory=lambda: datetime.now(UTC))


class CircuitBreaker:
    """Circuit breaker for protecting the generation API.

    Outcomes of completed calls are kept in a fixed-size sliding window.
    Once the window holds at least ``minimum_number_of_calls`` outcomes and
    the failure rate reaches ``failure_rate_threshold``, the circuit opens and
    every call is rejected with :class:`CircuitBreakerError`. After
    ``wait_duration`` the next call is let through as a trial: success closes
    the circuit, failure opens it again.

    States:
        - CLOSED: Normal operation, calls pass through
        - OPEN: Service is failing, calls are blocked
        - HALF_OPEN: Trial call in progress
    """

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            service_name: Name of the protected service
            config: Circuit breaker configuration
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats()
        self._window: deque[bool] = deque(maxlen=self.config.sliding_window_size)
        self._opened_at: float | None = None
        self._half_open_in_flight = 0
        self._generation = 0
        self._lock = asyncio.Lock()

        logger.info(
            f"Circuit breaker created for '{service_name}' "
            f"(failure_rate_threshold={self.config.failure_rate_threshold}%, "
            f"window={self.config.sliding_window_size}, "
            f"minimum_calls={self.config.minimum_number_of_calls})"
        )

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Get circuit statistics."""
        return self._stats

    @property
    def buffered_calls(self) -> int:
        """Number of outcomes currently held in the sliding window."""
        return len(self._window)

    @property
    def failed_buffered_calls(self) -> int:
        """Number of failures currently held in the sliding window."""
        return sum(1 for ok in self._window if not ok)

    @property
    def failure_rate(self) -> float:
        """Failure rate in percent over the window, -1.0 until evaluable."""
        if len(self._window) < self.config.minimum_number_of_calls:
            return -1.0
        return self.failed_buffered_calls / len(self._window) * 100.0

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute function with circuit breaker protection.

        Args:
            func: Coroutine function to call
            *args: Function arguments
            **kwargs: Function keyword arguments

        Returns:
            Function result

        Raises:
            CircuitBreakerError: If circuit is open
            Exception: If function raises any exception
        """
        generation = await self._acquire_permission()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._on_failure(generation)
            logger.debug(f"Call to '{self.service_name}' failed: {e.__class__.__name__}: {e}")
            raise
        except BaseException:
            # Cancelled trial calls must not leave HALF_OPEN stuck.
            await self._release_trial(generation)
            raise

        await self._on_success(generation)
        return result

    async def _acquire_permission(self) -> int:
        """Check if the call is permitted in the current state.

        Returns:
            State generation the call was admitted under

        Raises:
            CircuitBreakerError: If circuit is OPEN or the trial slot is taken
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._wait_elapsed():
                    self._transition(CircuitState.HALF_OPEN)
                else:
                    self._reject()

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_in_flight >= self.config.permitted_calls_in_half_open:
                    self._reject()
                self._half_open_in_flight += 1

            return self._generation

    def _reject(self) -> None:
        self._stats.rejected_calls += 1
        logger.warning(f"Circuit '{self.service_name}' is {self._state.name} - rejecting call")
        raise CircuitBreakerError(
            f"Circuit '{self.service_name}' is {self._state.name} - rejecting call",
            self._state,
        )

    def _wait_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at >= self.config.wait_duration

    async def _on_success(self, generation: int) -> None:
        async with self._lock:
            self._stats.successful_calls += 1
            self._stats.total_calls += 1

            # Calls admitted before the last state change only count in stats
            if generation != self._generation:
                return

            if self._state == CircuitState.HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)
                self._transition(CircuitState.CLOSED)
                return

            self._window.append(True)
            self._evaluate()

    async def _on_failure(self, generation: int) -> None:
        async with self._lock:
            self._stats.failed_calls += 1
            self._stats.total_calls += 1
            self._stats.last_failure_time = datetime.now(UTC)

            if generation != self._generation:
                return

            if self._state == CircuitState.HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)
                self._transition(CircuitState.OPEN)
                return

            self._window.append(False)
            self._evaluate()

    async def _release_trial(self, generation: int) -> None:
        async with self._lock:
            if generation == self._generation and self._state == CircuitState.HALF_OPEN:
                self._half_open_in_flight = max(0, self._half_open_in_flight - 1)

    def _evaluate(self) -> None:
        """Open the circuit when the window failure rate crosses the threshold."""
        if self._state != CircuitState.CLOSED:
            return
        rate = self.failure_rate
        if rate >= 0 and rate >= self.config.failure_rate_threshold:
            logger.error(
                f"🔴 Circuit '{self.service_name}' OPEN "
                f"({rate:.1f}% failures over {len(self._window)} calls)"
            )
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self._generation += 1
        self._stats.last_state_change = datetime.now(UTC)

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_in_flight = 0
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None
            self._window.clear()

        if new_state == CircuitState.CLOSED:
            logger.info(f"✅ Circuit '{self.service_name}' CLOSED (service recovered)")
        logger.info(
            f"Circuit breaker state transition: {old_state.name} -> {new_state.name} "
            f"('{self.service_name}')"
        )

    def get_stats_summary(self) -> dict[str, Any]:
        """Get summary of circuit statistics.

        Returns:
            Dictionary with statistics
        """
        return {
            "service_name": self.service_name,
            "state": self._state.value,
            "total_calls": self._stats.total_calls,
            "successful_calls": self._stats.successful_calls,
            "failed_calls": self._stats.failed_calls,
            "rejected_calls": self._stats.rejected_calls,
            "buffered_calls": self.buffered_calls,
            "failed_buffered_calls": self.failed_buffered_calls,
            "failure_rate": self.failure_rate,
            "last_failure_time": (
                self._stats.last_failure_time.isoformat() if self._stats.last_failure_time else None
            ),
            "last_state_change": self._stats.last_state_change.isoformat(),
        }
