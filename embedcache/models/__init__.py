"""embedcache data models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CachedEmbeddingDocument(BaseModel):
    """Cached embedding document as stored in the cache index.

    ``has_embedding`` is derived from ``embedding`` and cannot disagree with
    it: a document without a non-empty vector is never marked as cached.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    text: str
    hash: str | None = None
    embedding: list[float] | None = None
    has_embedding: bool = False

    @model_validator(mode="after")
    def derive_has_embedding(self) -> "CachedEmbeddingDocument":
        """Keep has_embedding consistent with the embedding vector."""
        self.has_embedding = bool(self.embedding)
        return self

    def to_source(self) -> dict[str, Any]:
        """Document body written to the store (the id travels separately)."""
        return self.model_dump(exclude={"id"})


class AliasMember(BaseModel):
    """One partition bound to an alias."""

    model_config = ConfigDict(frozen=True)

    index: str
    is_write_index: bool = False


class BulkResult(BaseModel):
    """Aggregate outcome of a bulk write.

    Per-item status is passed through from the store untouched; ``errors`` is
    True when at least one item failed.
    """

    took: int = 0
    errors: bool = False
    items: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def failed_items(self) -> list[dict[str, Any]]:
        """Items whose operation reported an error."""
        failed = []
        for item in self.items:
            operation = next(iter(item.values()), {})
            if isinstance(operation, dict) and operation.get("error"):
                failed.append(item)
        return failed


# ============================================================================
# Generation API response
# ============================================================================


class EmbeddingUsage(BaseModel):
    """Token usage reported by the generation API."""

    model_config = ConfigDict(extra="ignore")

    prompt_tokens: int | None = None
    total_tokens: int | None = None


class EmbeddingData(BaseModel):
    """One embedding entry of a generation response."""

    model_config = ConfigDict(extra="ignore")

    object: str | None = None
    index: int | None = None
    embedding: list[float] | None = None


class EmbeddingResponse(BaseModel):
    """OpenAI-style embedding response."""

    model_config = ConfigDict(extra="ignore")

    object: str | None = None
    data: list[EmbeddingData] | None = None
    model: str | None = None
    usage: EmbeddingUsage | None = None


__all__ = [
    "AliasMember",
    "BulkResult",
    "CachedEmbeddingDocument",
    "EmbeddingData",
    "EmbeddingResponse",
    "EmbeddingUsage",
]
