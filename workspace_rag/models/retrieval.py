"""Retrieval request and result models.

:class:`SimilarityRow` is the raw shape returned by the persistence store's
similarity operator; :class:`RetrievedUnit` is what the retrieval engine
hands back after thresholding, merging and ranking.  The strategy that
produced a result set is recorded on :class:`RetrievalResult` so callers
and logs can tell a vector hit from a keyword fallback.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from workspace_rag.models.content import SourceType, utc_now


class RetrievalStrategy(str, Enum):
    """Named retrieval strategies, in fallback order."""

    MULTI_SOURCE = "multi_source_vector"
    PAGE_ONLY = "page_only_vector"
    KEYWORD = "keyword"
    NONE = "none"


class SearchOptions(BaseModel):
    """Per-call retrieval options."""

    model_config = ConfigDict(frozen=True)

    threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum similarity.")
    max_results: int = Field(default=10, gt=0, description="Maximum results returned.")
    source_types: list[SourceType] = Field(
        default_factory=lambda: [SourceType.PAGE, SourceType.FILE],
        description="Source types to search across.",
    )
    required_tags: list[str] = Field(
        default_factory=list,
        description="Only keep results whose metadata tags include every one of these.",
    )


class SimilarityRow(BaseModel):
    """One row produced by the store's vector-similarity operator."""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    source_type: SourceType
    title: str = ""
    content: str = ""
    similarity: float = Field(ge=-1.0, le=1.0)
    parent_id: str | None = None
    chunk_index: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=utc_now)


class RetrievedUnit(BaseModel):
    """A ranked reference to a ContentUnit with its similarity."""

    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(description="Page id, parent file id, or help section id.")
    source_type: SourceType
    title: str = ""
    content: str = Field(default="", description="Text of the matched unit.")
    summary: str | None = Field(default=None, description="Page summary when known.")
    similarity: float = Field(ge=0.0, le=1.0)
    chunk_index: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=utc_now)


class RetrievalResult(BaseModel):
    """Ranked results plus which strategy produced them."""

    model_config = ConfigDict(frozen=True)

    query: str
    results: list[RetrievedUnit] = Field(default_factory=list)
    strategy: RetrievalStrategy = RetrievalStrategy.NONE
    attempted: list[RetrievalStrategy] = Field(
        default_factory=list, description="Strategies tried, in order."
    )
    threshold: float = 0.0
