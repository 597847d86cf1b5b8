"""Retry policy for the embedding generation call."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retrying the generation call."""

    max_attempts: int = 3  # Total attempts including the first one
    wait_duration: float = 1.0  # Fixed seconds between attempts

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.wait_duration < 0:
            raise ValueError("wait_duration must not be negative")

    def build_retrying(self) -> AsyncRetrying:
        """Build an AsyncRetrying instance with a fixed wait.

        Every exception is retried, circuit breaker rejections included, and
        the last exception is re-raised once attempts are exhausted.

        Returns:
            AsyncRetrying configured from this policy
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.wait_duration),
            retry=retry_if_exception_type(Exception),
            before_sleep=_log_retry,
            reraise=True,
        )


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.info(
        f"Retry attempt {retry_state.attempt_number} for embedding API call "
        f"({error.__class__.__name__ if error else 'unknown'}: {error})"
    )
