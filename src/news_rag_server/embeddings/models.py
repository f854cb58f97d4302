"""
Embedding Data Models

This module defines the canonical data models of the retrieval layer:

- `Document`: one embedded news article stored in the vector index
- `EmbeddingResult`: a vector tagged with where it came from
- `IndexStats`: diagnostics snapshot of the vector index

Documents are persisted as camelCase JSON so records written by earlier
deployments of the news chat backend remain readable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


EmbeddingKind = Literal["remote", "cache", "fallback"]


class Document(BaseModel):
    """
    A single embedded news article.

    This model is the authoritative schema for:
    - In-memory vector index entries
    - Durable `article:<id>` records
    - Search result mapping
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Stable identifier (feed guid or link); the upsert key.",
    )

    title: str = Field(default="Untitled")

    content: str = Field(
        default="",
        description="Plain-text article body, truncated at ingestion time.",
    )

    url: str = Field(default="")

    source: str = Field(default="", description="Human-readable feed name.")

    published_date: Optional[str] = Field(
        default=None,
        description="Publication timestamp as reported by the feed.",
    )

    embedding: List[float] = Field(..., min_length=1)

    processed_at: Optional[str] = Field(
        default=None,
        description="ISO 8601 timestamp of when the article was embedded.",
    )

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


@dataclass(frozen=True)
class EmbeddingResult:
    """
    An embedding vector tagged with its provenance.

    `remote` and `cache` vectors come from the embedding service; `fallback`
    vectors are local approximations derived from the text itself.
    """

    vector: List[float]
    kind: EmbeddingKind

    @property
    def is_fallback(self) -> bool:
        return self.kind == "fallback"


class IndexStats(BaseModel):
    """
    Statistics for the vector index.
    """

    articles_in_memory: int = Field(..., ge=0)
    articles_in_store: Optional[int] = Field(default=None, ge=0)
    sources: List[str] = Field(default_factory=list)
    last_updated: Optional[str] = None
    memory_usage_mb: float = Field(default=0.0, ge=0.0, alias="memoryUsageMB")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
