"""Base mode interface for embedcache operational modes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from embedcache.config import EmbedCacheConfig
    from embedcache.storage.base import DocumentStore


class ModeConfig(BaseModel):
    """Static description of an operational mode.

    Attributes:
        name: Registry name
        description: One-line summary shown by `embedcache modes`
        store_backend: Document store backend (memory, elasticsearch)
        persistent: Whether cached embeddings survive a restart
    """

    name: str
    description: str
    store_backend: str
    persistent: bool


class BaseMode(ABC):
    """Base class for operational modes.

    Each mode decides which document store backs the cache. The generation
    API client is the same in every mode.

    Attributes:
        config: Application configuration
        mode_config: Typed mode configuration
    """

    def __init__(self, config: EmbedCacheConfig) -> None:
        self.config = config
        self.mode_config = self.get_mode_config()

    @abstractmethod
    def get_mode_config(self) -> ModeConfig:
        """Describe this mode."""

    @abstractmethod
    async def initialize_store(self) -> DocumentStore:
        """Create the document store for this mode.

        Returns:
            DocumentStore instance

        Raises:
            CacheStoreError: If the store cannot be created
        """

    @property
    @abstractmethod
    def requires_external_services(self) -> bool:
        """True if the mode needs an Elasticsearch cluster."""

    def __repr__(self) -> str:
        """String representation of mode."""
        return f"Mode(name={self.mode_config.name}, services_required={self.requires_external_services})"
