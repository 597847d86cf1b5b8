"""Endpoint validation for outbound generation calls.

Blocks obviously unsafe generation endpoints before any network activity:
non-HTTPS URLs and URLs that name loopback or private-network literals.
This is a literal pattern match, not a resolution of the target address.
"""

from __future__ import annotations

import logging
import re

from embedcache.exceptions import EndpointValidationError

logger = logging.getLogger(__name__)

_BLOCKED_LITERALS = ("localhost", "127.0.0.1", "10.", "192.168.")
_PRIVATE_172 = re.compile(r".*172\.(1[6-9]|2[0-9]|3[0-1])\..*")


def validate_api_url(url: str | None) -> str:
    """Validate the generation API URL.

    Args:
        url: Configured endpoint URL

    Returns:
        The URL unchanged when it passes validation

    Raises:
        EndpointValidationError: If the URL is empty, not HTTPS, or points at
            a loopback/private network literal
    """
    if url is None or not url.strip():
        logger.error("API URL validation failed: URL is null or empty")
        raise EndpointValidationError("API URL cannot be null or empty")

    lower_url = url.lower()
    if not lower_url.startswith("https://"):
        logger.error(f"API URL validation failed: Non-HTTPS URL attempted: {url}")
        raise EndpointValidationError("Only HTTPS URLs are allowed for security")

    if any(literal in lower_url for literal in _BLOCKED_LITERALS) or _PRIVATE_172.match(lower_url):
        logger.error(f"API URL validation failed: Private network URL attempted: {url}")
        raise EndpointValidationError("Private network URLs are not allowed")

    logger.debug(f"API URL validation passed: {url}")
    return url
