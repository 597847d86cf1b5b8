"""Tests for mode registry and get_mode function."""

from __future__ import annotations

import pytest

from embedcache.config import EmbedCacheConfig
from embedcache.modes import LiteMode, StandardMode, get_mode, list_modes


def test_list_modes():
    """Test listing all available modes."""
    modes = list_modes()

    assert isinstance(modes, list)
    assert "lite" in modes
    assert "standard" in modes


def test_get_lite_mode():
    """Test getting lite mode instance."""
    mode = get_mode("lite", config=EmbedCacheConfig())

    assert isinstance(mode, LiteMode)
    assert mode.mode_config.name == "lite"


def test_get_standard_mode():
    """Test getting standard mode instance."""
    mode = get_mode("standard", config=EmbedCacheConfig())

    assert isinstance(mode, StandardMode)
    assert mode.mode_config.name == "standard"


def test_get_mode_case_insensitive():
    """Test that get_mode is case-insensitive."""
    config = EmbedCacheConfig()

    assert isinstance(get_mode("lite", config), LiteMode)
    assert isinstance(get_mode("LITE", config), LiteMode)
    assert isinstance(get_mode("LiTe", config), LiteMode)


def test_get_invalid_mode():
    """Test getting invalid mode raises ValueError."""
    with pytest.raises(ValueError, match="Unknown mode"):
        get_mode("invalid", config=EmbedCacheConfig())


def test_get_mode_with_config():
    """Test getting mode with custom config."""
    config = EmbedCacheConfig()
    config.elasticsearch.hosts = ["custom-host"]
    mode = get_mode("standard", config=config)

    assert isinstance(mode, StandardMode)
    assert mode.config is config
