"""Utility modules for the workspace knowledge pipeline.

- **errors** -- exception hierarchy rooted at WorkspaceRAGError; each failure
  class maps to one handling rule (reject, degrade, or surface).
- **concurrency** -- the paced batch runner used by bulk indexing jobs.
- **logging** -- structlog setup with a dual renderer: coloured console
  output in development, structured JSON in production.
- **text** -- page text extraction, keyword extraction and the keyword
  relevance score.
"""

# -- Domain exception hierarchy --------------------------------------------
from workspace_rag.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    ExternalServiceError,
    LLMError,
    NotFoundError,
    ParseFailure,
    PersistenceError,
    UnsupportedFormat,
    ValidationError,
    WorkspaceRAGError,
)

# -- Async concurrency helpers ---------------------------------------------
from workspace_rag.utils.concurrency import BatchReport, run_in_batches

# -- Structured logging setup ----------------------------------------------
from workspace_rag.utils.logging import configure_logging, get_logger, pipeline_context

# -- Text helpers ------------------------------------------------------------
from workspace_rag.utils.text import (
    extract_keywords,
    extract_page_text,
    keyword_relevance,
    word_count,
)

__all__ = [
    "BatchReport",
    "ConfigurationError",
    "EmbeddingError",
    "ExternalServiceError",
    "LLMError",
    "NotFoundError",
    "ParseFailure",
    "PersistenceError",
    "UnsupportedFormat",
    "ValidationError",
    "WorkspaceRAGError",
    "configure_logging",
    "extract_keywords",
    "extract_page_text",
    "get_logger",
    "keyword_relevance",
    "pipeline_context",
    "run_in_batches",
    "word_count",
]
