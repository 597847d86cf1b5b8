"""embedcache configuration management with environment variable overrides.

This module provides centralized configuration management with support for:
- Environment variable overrides
- YAML config file loading
- Pydantic validation

Priority order for configuration values:
1. YAML config file passed to get_config (highest priority)
2. Environment variables (EMBEDCACHE_*, nested with "__")
3. Pydantic defaults (lowest priority)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from embedcache.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _hosts_from_env() -> list[str]:
    raw = os.getenv("EMBEDCACHE_ES_HOSTS", "localhost")
    return [host.strip() for host in raw.split(",") if host.strip()]


class ElasticsearchConfig(BaseModel):
    """Document store connection.

    Attributes:
        hosts: Elasticsearch hostnames (blank entries are dropped)
        port: Port shared by all hosts
        scheme: http or https
        alias: Stable alias readers and writers use
        request_timeout: Per-request timeout in seconds
        username: Optional basic-auth user
        password: Optional basic-auth password
    """

    hosts: list[str] = Field(default_factory=_hosts_from_env)
    port: int = Field(default_factory=lambda: int(os.getenv("EMBEDCACHE_ES_PORT", "9200")))
    scheme: str = "http"
    alias: str = Field(default_factory=lambda: os.getenv("EMBEDCACHE_ES_ALIAS", "embedding-cache"))
    request_timeout: float = 3.0
    username: str | None = None
    password: str | None = None

    @field_validator("hosts")
    @classmethod
    def drop_blank_hosts(cls, v: list[str]) -> list[str]:
        return [host for host in v if host and host.strip()]

    def urls(self) -> list[str]:
        """Build node URLs for the client."""
        return [f"{self.scheme}://{host}:{self.port}" for host in self.hosts]


class IndexConfig(BaseModel):
    """Partition naming, retention and index settings.

    Attributes:
        retention_months: Non-exempt partitions kept in the alias
        timezone: Zone used to compute the partition month
        exempt_suffix: Partitions ending with this suffix are never pruned
        number_of_shards: Shards per new partition
        number_of_replicas: Replicas per new partition
    """

    retention_months: int = Field(default=3, ge=1)
    timezone: str = "Asia/Seoul"
    exempt_suffix: str = "base"
    number_of_shards: int = Field(default=1, ge=1)
    number_of_replicas: int = Field(default=1, ge=0)


class GeneratorConfig(BaseModel):
    """Embedding generation API.

    Attributes:
        api_url: HTTPS endpoint of the embedding API
        model_name: Model identifier sent with each request
        api_key: Optional API key
        api_key_header: Header carrying the key ("Authorization" adds "Bearer ")
        max_length: Characters of input kept after normalization
        connect_timeout: Connection timeout in seconds
        read_timeout: Read timeout in seconds
        max_connections: Connection pool size
        max_keepalive_connections: Idle connections kept in the pool
        health_check_timeout: Bound on the generator health probe
    """

    api_url: str = Field(
        default_factory=lambda: os.getenv("EMBEDCACHE_API_URL", "https://api.openai.com/v1/embeddings")
    )
    model_name: str = Field(
        default_factory=lambda: os.getenv("EMBEDCACHE_MODEL_NAME", "text-embedding-3-small")
    )
    api_key: str | None = Field(default_factory=lambda: os.getenv("EMBEDCACHE_API_KEY"))
    api_key_header: str = "Authorization"
    max_length: int = Field(default=3_000, ge=1)
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    health_check_timeout: float = 5.0


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker around the generation call.

    Attributes:
        enabled: Skip the breaker entirely when False
        failure_threshold: Legacy consecutive-failure setting, kept for config compatibility
        failure_rate_threshold: Failure percentage that opens the circuit
        minimum_number_of_calls: Window size and minimum calls before evaluation
        wait_duration_seconds: Time spent OPEN before a trial call
    """

    enabled: bool = True
    failure_threshold: int = 5
    failure_rate_threshold: float = Field(default=50.0, gt=0, le=100)
    minimum_number_of_calls: int = Field(default=10, ge=1)
    wait_duration_seconds: float = Field(default=60.0, ge=0)


class RetrySettings(BaseModel):
    """Retry around the generation call.

    Attributes:
        enabled: Skip retry entirely when False
        max_attempts: Total attempts including the first
        wait_duration_seconds: Fixed wait between attempts
    """

    enabled: bool = True
    max_attempts: int = Field(default=3, ge=1)
    wait_duration_seconds: float = Field(default=1.0, ge=0)


class EmbedCacheConfig(BaseSettings):
    """Main embedcache configuration.

    This class loads configuration from multiple sources:
    1. YAML config file (if a path is given to get_config)
    2. Environment variables (EMBEDCACHE_*)
    3. Pydantic defaults

    Attributes:
        mode: Operational mode (lite, standard)
        elasticsearch: Document store configuration
        index: Partition lifecycle configuration
        generator: Generation API configuration
        circuit_breaker: Circuit breaker configuration
        retry: Retry configuration
        metrics_enabled: Collect Prometheus metrics
        max_concurrency: Concurrent calls in batch fan-out (None = max(4, cpu count))
        health_check_interval_seconds: Period of the application health check
        rotation_interval_seconds: Period of the application rotation check
        environment: Deployment environment name
    """

    mode: str = Field(default_factory=lambda: os.getenv("EMBEDCACHE_MODE", "lite"))

    elasticsearch: ElasticsearchConfig = Field(default_factory=ElasticsearchConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    # Monitoring
    metrics_enabled: bool = True

    # Concurrency
    max_concurrency: int | None = None

    # Application runner schedules
    health_check_interval_seconds: float = Field(default=300.0, gt=0)
    rotation_interval_seconds: float = Field(default=3600.0, gt=0)

    # Environment
    environment: str = Field(default_factory=lambda: os.getenv("EMBEDCACHE_ENVIRONMENT", "development"))

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_prefix="embedcache_",
        extra="ignore",
    )


def load_config_from_file(config_path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        ConfigurationError: If the file exists but cannot be parsed
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Config {config_path} must contain a mapping")

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_config(config_path: str | None = None) -> EmbedCacheConfig:
    """Get configuration instance.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        EmbedCacheConfig instance
    """
    if config_path:
        file_config = load_config_from_file(config_path)
        return EmbedCacheConfig(**file_config)

    return EmbedCacheConfig()
