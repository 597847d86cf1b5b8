"""Text normalization and cache key derivation."""

from __future__ import annotations

import hashlib
import logging

from embedcache.exceptions import HashingError

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 3_000


def normalize(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Normalize text before it is hashed or sent for generation.

    Truncates to the first ``max_length`` characters, strips surrounding
    whitespace and lower-cases. Idempotent for any fixed ``max_length``.

    Args:
        text: Raw input text
        max_length: Maximum number of characters kept

    Returns:
        Normalized text
    """
    return text[:max_length].strip().lower()


def derive_key(normalized_text: str) -> str:
    """Compute the SHA-256 cache key of normalized text.

    Args:
        normalized_text: Output of :func:`normalize`

    Returns:
        64-character hexadecimal digest

    Raises:
        HashingError: If the text cannot be encoded or hashed
    """
    try:
        return hashlib.sha256(normalized_text.encode("utf-8")).hexdigest()
    except Exception as e:
        raise HashingError(f"Failed to derive cache key: {e}") from e


class KeyDeriver:
    """Normalizes text and derives cache keys with a fixed max length."""

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH) -> None:
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        self.max_length = max_length

    def normalize(self, text: str) -> str:
        return normalize(text, self.max_length)

    def derive_key(self, normalized_text: str) -> str:
        return derive_key(normalized_text)

    def key_for(self, text: str) -> str:
        """Normalize ``text`` and return its cache key."""
        return derive_key(self.normalize(text))
