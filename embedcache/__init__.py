"""embedcache - resilient cache-aside layer for text embeddings.

Embeddings are looked up by a SHA-256 key of the normalized text in a
time-partitioned document store reached through an alias, and generated
through a retried, circuit-broken REST call on a miss.
"""

from embedcache.config import EmbedCacheConfig, get_config
from embedcache.exceptions import (
    CacheStoreError,
    CircuitBreakerError,
    ConfigurationError,
    EmbedCacheError,
    EmbeddingGeneratorError,
    EndpointValidationError,
    GeneratorProtocolError,
    HashingError,
    IndexLifecycleError,
)
from embedcache.fanout import AsyncEmbeddingService, HealthCheckCallback
from embedcache.generator import EmbeddingGenerator, RestEmbeddingGenerator
from embedcache.hashing import KeyDeriver
from embedcache.health import ComponentHealth, HealthCheck, HealthCheckService, HealthStatus
from embedcache.manager import EmbeddingCacheManager
from embedcache.models import CachedEmbeddingDocument

__version__ = "0.1.0"

__all__ = [
    "AsyncEmbeddingService",
    "CacheStoreError",
    "CachedEmbeddingDocument",
    "CircuitBreakerError",
    "ComponentHealth",
    "ConfigurationError",
    "EmbedCacheConfig",
    "EmbedCacheError",
    "EmbeddingCacheManager",
    "EmbeddingGenerator",
    "EmbeddingGeneratorError",
    "EndpointValidationError",
    "GeneratorProtocolError",
    "HashingError",
    "HealthCheck",
    "HealthCheckCallback",
    "HealthCheckService",
    "HealthStatus",
    "IndexLifecycleError",
    "KeyDeriver",
    "RestEmbeddingGenerator",
    "get_config",
    "__version__",
]
