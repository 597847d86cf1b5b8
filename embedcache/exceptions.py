"""Exception hierarchy for embedcache.

Every failure raised out of the library is one of these types, with the
original cause chained for diagnostics. Cache misses are never exceptions;
they are represented as ``None``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from embedcache.resilience.circuit_breaker import CircuitState


class EmbedCacheError(Exception):
    """Base class for all embedcache errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dictionary for structured logging.

        Returns:
            Dictionary with error type, message and details
        """
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(EmbedCacheError):
    """Raised when configuration is missing or inconsistent."""


class HashingError(EmbedCacheError):
    """Raised when a cache key cannot be derived."""


class CacheStoreError(EmbedCacheError):
    """Raised when the document store cannot be read or written."""


class IndexLifecycleError(CacheStoreError):
    """Raised when a partition or alias operation is not acknowledged.

    Attributes:
        step: Lifecycle step that failed (create_partition, bind_alias,
            write_cutover, retention)
        index: Partition involved in the failed step
        alias: Alias being managed
    """

    def __init__(self, message: str, step: str, index: str | None = None, alias: str | None = None) -> None:
        super().__init__(message, details={"step": step, "index": index, "alias": alias})
        self.step = step
        self.index = index
        self.alias = alias


class EmbeddingGeneratorError(EmbedCacheError):
    """Raised when an embedding cannot be generated."""


class EndpointValidationError(EmbeddingGeneratorError):
    """Raised when the generation endpoint URL is rejected before any call."""


class GeneratorProtocolError(EmbeddingGeneratorError):
    """Raised when the generation API answers with an unusable response."""


class CircuitBreakerError(EmbeddingGeneratorError):
    """Raised when the circuit breaker is open and blocks a call."""

    def __init__(self, message: str, state: CircuitState) -> None:
        super().__init__(message, details={"state": state.value})
        self.state = state
