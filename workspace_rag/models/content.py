"""Content models: embeddable units, pages, chunks and parsed documents.

Every embeddable item in a workspace is a :class:`ContentUnit` -- a page, a
chunk of an uploaded file, or a section of the static help document.  Pages
additionally carry their persisted row shape (:class:`PageRecord`) because
the summary lifecycle hangs off the page row.

All models use frozen config so that values handed between services are
never mutated in place; use ``model_copy(update=...)`` to derive changes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Scope value used for content that is not owned by a workspace (help text).
GLOBAL_SCOPE = "global"


def utc_now() -> datetime:
    """Timezone-aware current time; all persisted timestamps use UTC."""
    return datetime.now(timezone.utc)


class SourceType(str, Enum):
    """Where a piece of embeddable content comes from."""

    PAGE = "page"
    FILE = "file"
    HELP = "help"


class ContentUnit(BaseModel):
    """Any embeddable item: a page, a file chunk, or a help section."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Owner id of the unit (page id, 'file:index', or help slug).")
    title: str = Field(default="", description="Human-readable title.")
    source_type: SourceType = Field(description="page, file or help.")
    owner_scope: str = Field(
        default=GLOBAL_SCOPE,
        description="Workspace id the unit belongs to, or 'global' for help content.",
    )
    raw_text: str = Field(default="", description="Text the embedding is computed from.")
    parent_id: str | None = Field(
        default=None, description="Parent file id for file chunks; None otherwise."
    )
    chunk_index: int | None = Field(
        default=None, ge=0, description="0-based chunk position for file chunks."
    )


class PageRecord(BaseModel):
    """A workspace page as held by the persistence store.

    Page CRUD belongs to the surrounding application; the pipeline reads
    pages for indexing and owns only the ``summary*`` columns.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Page id.")
    workspace_id: str = Field(description="Owning workspace id.")
    title: str = Field(default="", description="Page title.")
    content: Any = Field(
        default=None,
        description="Structured editor content (blocks) or plain text.",
    )
    tags: list[str] = Field(default_factory=list, description="Tag names attached to the page.")
    summary: str | None = Field(default=None, description="AI-generated synopsis, if any.")
    summary_hash: str | None = Field(
        default=None,
        description="Content hash of the page at the time the summary was generated.",
    )
    summary_updated_at: datetime | None = Field(
        default=None, description="When the current summary was generated."
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Chunk(BaseModel):
    """An ordered, token-bounded segment of a ContentUnit's text."""

    model_config = ConfigDict(frozen=True)

    parent_id: str = Field(default="", description="Id of the unit this chunk was cut from.")
    index: int = Field(ge=0, description="0-based position; stable ordering within the parent.")
    text: str = Field(description="Chunk text.")
    token_count: int = Field(default=0, ge=0, description="Tokens as measured by the chunker.")
    char_count: int = Field(default=0, ge=0, description="Length of the chunk text in characters.")


class ChunkingMethod(str, Enum):
    """Strategy that actually produced a set of chunks."""

    ADVANCED = "advanced"
    BASIC = "basic"


class ChunkingOptions(BaseModel):
    """Caller-tunable chunking parameters."""

    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=1000, gt=0, description="Token budget per chunk.")
    overlap_tokens: int = Field(
        default=200, ge=0, description="Trailing tokens repeated at the start of the next chunk."
    )
    use_advanced: bool = Field(
        default=True, description="Use the recursive separator splitter before the word window."
    )
    preserve_code_blocks: bool = Field(
        default=True, description="Prefer fenced-code boundaries as split points."
    )
    preserve_markdown: bool = Field(
        default=True, description="Prefer markdown headers and rules as split points."
    )


class ChunkingResult(BaseModel):
    """Chunks plus the diagnostics reported by ``chunk_with_metadata``."""

    model_config = ConfigDict(frozen=True)

    chunks: list[Chunk] = Field(default_factory=list)
    method: ChunkingMethod = Field(description="Strategy that produced the chunks.")
    total_chunks: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    avg_tokens_per_chunk: float = Field(default=0.0, ge=0.0)
    avg_chars_per_chunk: float = Field(default=0.0, ge=0.0)
    processing_time: float = Field(
        default=0.0, ge=0.0, description="Wall-clock seconds spent chunking."
    )


class TextMetadata(BaseModel):
    """Structural facts about a document, derived without any model call."""

    model_config = ConfigDict(frozen=True)

    extracted_title: str | None = Field(default=None, description="First header or short first line.")
    summary: str = Field(default="", description="Leading 500 characters of the text.")
    word_count: int = Field(default=0, ge=0)
    character_count: int = Field(default=0, ge=0)
    has_headers: bool = False
    is_markdown: bool = False
    has_code_blocks: bool = False
    has_lists: bool = False
    has_tables: bool = False


class ParsedDocument(BaseModel):
    """Plain text extracted from an uploaded binary document."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Extracted text, trimmed.")
    file_type: str = Field(description="'pdf' or 'docx'.")
    page_count: int | None = Field(
        default=None, ge=0, description="Number of pages (PDF only)."
    )
    word_count: int = Field(default=0, ge=0)
    character_count: int = Field(default=0, ge=0)
