"""Lite mode: in-memory document store, no external services."""

from __future__ import annotations

import logging

from embedcache.modes.base import BaseMode, ModeConfig
from embedcache.storage.memory_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)


class LiteMode(BaseMode):
    """Lite mode with an in-process document store.

    Lite mode characteristics:
    - No Elasticsearch (cache kept in memory)
    - Cached embeddings lost on restart
    - Ideal for development and testing

    Examples:
        >>> mode = LiteMode(config=EmbedCacheConfig())
        >>> mode.mode_config.name
        'lite'
        >>> mode.requires_external_services
        False
    """

    def get_mode_config(self) -> ModeConfig:
        return ModeConfig(
            name="lite",
            description="Lite mode: In-memory document store, no external services",
            store_backend="memory",
            persistent=False,
        )

    async def initialize_store(self) -> InMemoryDocumentStore:
        logger.info("Lite mode: Using in-memory document store (no Elasticsearch)")
        return InMemoryDocumentStore()

    @property
    def requires_external_services(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "LiteMode(services_required=False, store=in-memory)"
