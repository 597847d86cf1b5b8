"""Tests for generation endpoint URL validation."""

from __future__ import annotations

import pytest

from embedcache.exceptions import EmbeddingGeneratorError, EndpointValidationError
from embedcache.security import validate_api_url


class TestValidateApiUrl:
    """Test suite for validate_api_url."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://api.openai.com/v1/embeddings",
            "https://embeddings.example.com:8443/v1",
            "HTTPS://API.EXAMPLE.COM/v1/embeddings",
        ],
    )
    def test_accepts_public_https(self, url: str) -> None:
        assert validate_api_url(url) == url

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_rejects_empty(self, url: str | None) -> None:
        with pytest.raises(EndpointValidationError, match="cannot be null or empty"):
            validate_api_url(url)

    @pytest.mark.parametrize("url", ["http://api.example.com/v1", "ftp://api.example.com"])
    def test_rejects_non_https(self, url: str) -> None:
        with pytest.raises(EndpointValidationError, match="Only HTTPS URLs"):
            validate_api_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            "https://localhost/v1",
            "https://127.0.0.1:8080/v1",
            "https://10.0.0.5/v1",
            "https://192.168.1.20/v1",
            "https://172.16.0.1/v1",
            "https://172.31.255.255/v1",
        ],
    )
    def test_rejects_private_literals(self, url: str) -> None:
        with pytest.raises(EndpointValidationError, match="Private network URLs"):
            validate_api_url(url)

    def test_allows_public_172_range(self) -> None:
        assert validate_api_url("https://172.32.0.1/v1") == "https://172.32.0.1/v1"

    def test_validation_error_is_generator_error(self) -> None:
        with pytest.raises(EmbeddingGeneratorError):
            validate_api_url("http://api.example.com")
