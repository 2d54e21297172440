"""Embedding and summary models.

An :class:`Embedding` is only valid for its owner while ``content_hash``
matches the hash of the owner's current content; the indexer compares the
two to decide whether the embedding model needs to be called at all.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from workspace_rag.models.content import GLOBAL_SCOPE, SourceType, utc_now


class Embedding(BaseModel):
    """Vector representation of a page, file chunk, or help section."""

    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(description="Id of the owning ContentUnit; unique key for upserts.")
    source_type: SourceType = Field(description="Source type of the owner.")
    scope: str = Field(
        default=GLOBAL_SCOPE, description="Workspace id of the owner, or 'global'."
    )
    title: str = Field(default="", description="Owner title, denormalised for search results.")
    content: str = Field(default="", description="Text the vector was computed from.")
    content_hash: str = Field(description="Digest of the owner's content at generation time.")
    vector: list[float] = Field(description="Fixed-dimension embedding vector.")
    parent_id: str | None = Field(default=None, description="Parent file id for file chunks.")
    chunk_index: int | None = Field(default=None, ge=0, description="Chunk position for file chunks.")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Diagnostics such as text length and generation timestamp.",
    )
    updated_at: datetime = Field(default_factory=utc_now)


class SummaryText(BaseModel):
    """Short AI-generated synopsis of a page."""

    model_config = ConfigDict(frozen=True)

    page_id: str
    text: str
    generated_at: datetime = Field(default_factory=utc_now)
    from_cache: bool = Field(
        default=False, description="True when the stored summary was still current."
    )


class FileEmbeddingResult(BaseModel):
    """Outcome of embedding every chunk of one uploaded file."""

    model_config = ConfigDict(frozen=True)

    file_id: str
    chunks: int = Field(default=0, ge=0, description="Number of chunk embeddings stored.")
    success: bool = True
    error: str | None = None
    chunking_method: str | None = None
