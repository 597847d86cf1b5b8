"""Embedding generation over a REST API.

The raw HTTP call is wrapped as retry(circuit_breaker(call)) by a
:class:`ResilientInvoker`. The endpoint URL is validated before any network
activity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from embedcache.exceptions import EmbeddingGeneratorError, GeneratorProtocolError
from embedcache.models import EmbeddingResponse
from embedcache.resilience import CircuitBreaker, CircuitBreakerConfig, ResilientInvoker, RetryConfig
from embedcache.security import validate_api_url

if TYPE_CHECKING:
    from embedcache.config import CircuitBreakerSettings, GeneratorConfig, RetrySettings
    from embedcache.monitoring import MetricsService

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json;charset=UTF-8"
# Wait for a free connection from the pool
POOL_TIMEOUT = 5.0


@runtime_checkable
class EmbeddingGenerator(Protocol):
    """Turns text into an embedding vector."""

    async def generate(self, text: str) -> list[float]: ...


class RestEmbeddingGenerator:
    """OpenAI-compatible embedding API client.

    Sends ``{"input": text, "model": model_name}`` and reads
    ``data[0].embedding`` from the response.
    """

    def __init__(
        self,
        config: GeneratorConfig,
        invoker: ResilientInvoker | None = None,
        metrics: MetricsService | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize generator.

        Args:
            config: Generation API configuration
            invoker: Resilience wrapper for the raw call (none = call directly)
            metrics: Metrics service counting API call outcomes
            client: HTTP client to use instead of an owned pooled client
        """
        self.config = config
        self.invoker = invoker or ResilientInvoker()
        self.metrics = metrics
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=config.max_connections,
                max_keepalive_connections=config.max_keepalive_connections,
            ),
            timeout=httpx.Timeout(
                config.read_timeout,
                connect=config.connect_timeout,
                pool=POOL_TIMEOUT,
            ),
        )

        logger.info(
            f"RestEmbeddingGenerator initialized (model: {config.model_name}, "
            f"circuit breaker: {self.circuit_breaker is not None}, "
            f"retry: {self.invoker.retry is not None}, metrics: {metrics is not None and metrics.enabled})"
        )

    @classmethod
    def from_settings(
        cls,
        config: GeneratorConfig,
        circuit_breaker: CircuitBreakerSettings,
        retry: RetrySettings,
        metrics: MetricsService | None = None,
    ) -> RestEmbeddingGenerator:
        """Build a generator with resilience wrappers from configuration.

        Args:
            config: Generation API configuration
            circuit_breaker: Circuit breaker settings (skipped when disabled)
            retry: Retry settings (skipped when disabled)
            metrics: Metrics service

        Returns:
            RestEmbeddingGenerator instance
        """
        breaker = None
        if circuit_breaker.enabled:
            breaker = CircuitBreaker(
                "embedding-api",
                CircuitBreakerConfig(
                    failure_rate_threshold=circuit_breaker.failure_rate_threshold,
                    sliding_window_size=circuit_breaker.minimum_number_of_calls,
                    minimum_number_of_calls=circuit_breaker.minimum_number_of_calls,
                    wait_duration=circuit_breaker.wait_duration_seconds,
                ),
            )

        retry_config = None
        if retry.enabled:
            retry_config = RetryConfig(
                max_attempts=retry.max_attempts,
                wait_duration=retry.wait_duration_seconds,
            )

        return cls(config, invoker=ResilientInvoker(breaker, retry_config), metrics=metrics)

    @property
    def circuit_breaker(self) -> CircuitBreaker | None:
        return self.invoker.circuit_breaker

    def auth_headers(self) -> dict[str, str]:
        """Headers carrying the API key, if one is configured."""
        if not self.config.api_key:
            return {}
        header = self.config.api_key_header or "Authorization"
        if header.lower() == "authorization":
            return {header: f"Bearer {self.config.api_key}"}
        return {header: self.config.api_key}

    async def generate(self, text: str) -> list[float]:
        """Generate an embedding for ``text``.

        Args:
            text: Input text (callers pass normalized text)

        Returns:
            Embedding vector

        Raises:
            EndpointValidationError: If the configured URL is rejected
            CircuitBreakerError: If the circuit is open
            GeneratorProtocolError: If the API answers with an unusable response
            EmbeddingGeneratorError: If the call fails for any other reason
        """
        logger.debug(f"Generating embedding for text with length: {len(text) if text else 0}")
        validate_api_url(self.config.api_url)

        try:
            embedding = await self.invoker.invoke(self._call_api, text)
        except Exception as e:
            self._record("failure")
            logger.error(f"❌ Embedding generation failed after retries and circuit breaker: {e}")
            if isinstance(e, EmbeddingGeneratorError):
                raise
            raise EmbeddingGeneratorError(f"Embedding generation failed: {e}") from e

        self._record("success")
        return embedding

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _call_api(self, text: str) -> list[float]:
        payload: dict[str, Any] = {"input": text, "model": self.config.model_name}
        headers = {"Content-Type": CONTENT_TYPE, **self.auth_headers()}

        try:
            response = await self.client.post(self.config.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise EmbeddingGeneratorError(f"Embedding API request failed: {e}") from e

        if response.status_code != 200:
            raise GeneratorProtocolError(
                f"API returned error status: {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            parsed = EmbeddingResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise GeneratorProtocolError("Invalid response structure from embedding API") from e

        if not parsed.data or parsed.data[0].embedding is None:
            raise GeneratorProtocolError("Invalid response structure from embedding API")

        return parsed.data[0].embedding

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_api_call(outcome)
