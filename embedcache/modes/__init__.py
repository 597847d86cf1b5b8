"""embedcache operational modes system.

Provides different operational modes for embedcache:
- Lite mode: In-memory document store, no external services
- Standard mode: Elasticsearch document store with monthly partitions
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from embedcache.modes.base import BaseMode, ModeConfig
from embedcache.modes.lite import LiteMode
from embedcache.modes.standard import StandardMode

if TYPE_CHECKING:
    from embedcache.config import EmbedCacheConfig

# Mode registry
_MODE_REGISTRY: dict[str, type[BaseMode]] = {
    "lite": LiteMode,
    "standard": StandardMode,
}


def get_mode(mode_name: str, config: EmbedCacheConfig) -> BaseMode:
    """Instantiate the mode registered under ``mode_name`` (case-insensitive).

    Raises:
        ValueError: For a name that is not registered
    """
    mode_class = _MODE_REGISTRY.get(mode_name.lower())
    if mode_class is None:
        valid_modes = ", ".join(_MODE_REGISTRY)
        raise ValueError(f"Unknown mode: {mode_name}. Valid modes: {valid_modes}")
    return mode_class(config=config)


def list_modes() -> list[str]:
    """Registered mode names, in registration order."""
    return list(_MODE_REGISTRY)


__all__ = [
    "BaseMode",
    "LiteMode",
    "ModeConfig",
    "StandardMode",
    "get_mode",
    "list_modes",
]
