"""Standard mode: Elasticsearch-backed document store."""

from __future__ import annotations

import logging

from embedcache.exceptions import CacheStoreError
from embedcache.modes.base import BaseMode, ModeConfig
from embedcache.storage.elasticsearch_store import ElasticsearchDocumentStore

logger = logging.getLogger(__name__)


class StandardMode(BaseMode):
    """Standard mode with a persistent Elasticsearch cache.

    Standard mode characteristics:
    - Monthly partitions behind an alias
    - Persistent cache shared between processes
    - Requires an Elasticsearch 8 cluster

    An unreachable cluster is logged as a warning; the store is still
    returned so health checks can report it as DOWN.

    Examples:
        >>> mode = StandardMode(config=EmbedCacheConfig())
        >>> mode.mode_config.name
        'standard'
        >>> mode.requires_external_services
        True
    """

    def get_mode_config(self) -> ModeConfig:
        return ModeConfig(
            name="standard",
            description="Standard mode: Elasticsearch document store with monthly partitions",
            store_backend="elasticsearch",
            persistent=True,
        )

    async def initialize_store(self) -> ElasticsearchDocumentStore:
        """Create the Elasticsearch store and check connectivity.

        Returns:
            ElasticsearchDocumentStore instance

        Raises:
            CacheStoreError: If no hosts are configured
        """
        es = self.config.elasticsearch
        logger.info(f"Standard mode: Connecting to Elasticsearch at {', '.join(es.urls())}")
        store = ElasticsearchDocumentStore.from_config(es)

        try:
            reachable = await store.ping()
        except CacheStoreError as e:
            logger.warning(f"⚠️ Standard mode: Elasticsearch ping failed ({e})")
            return store

        if reachable:
            logger.info("Standard mode: Elasticsearch store initialized successfully")
        else:
            logger.warning("⚠️ Standard mode: Elasticsearch did not answer ping, continuing")
        return store

    @property
    def requires_external_services(self) -> bool:
        return True

    def __repr__(self) -> str:
        return "StandardMode(services_required=True, store=elasticsearch)"
