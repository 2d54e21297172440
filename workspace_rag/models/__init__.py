"""Pydantic v2 data models for the workspace knowledge pipeline.

All models are frozen (immutable) and shared across services, providers and
the CLI.

Re-exports
----------
content
    SourceType, ContentUnit, PageRecord, Chunk, ChunkingOptions,
    ChunkingResult, ChunkingMethod, TextMetadata, ParsedDocument
embedding
    Embedding, SummaryText, FileEmbeddingResult
retrieval
    SearchOptions, SimilarityRow, RetrievedUnit, RetrievalResult,
    RetrievalStrategy
conversation
    Conversation, ConversationMode, Message, MessageRole, Citation,
    ChatAnswer, ConversationListing, ConversationPage
link
    LinkSuggestion
task
    TaskState, TaskStatus, TaskHandle
"""

from workspace_rag.models.content import (
    GLOBAL_SCOPE,
    Chunk,
    ChunkingMethod,
    ChunkingOptions,
    ChunkingResult,
    ContentUnit,
    PageRecord,
    ParsedDocument,
    SourceType,
    TextMetadata,
)
from workspace_rag.models.conversation import (
    ChatAnswer,
    Citation,
    Conversation,
    ConversationListing,
    ConversationMode,
    ConversationPage,
    Message,
    MessageRole,
)
from workspace_rag.models.embedding import Embedding, FileEmbeddingResult, SummaryText
from workspace_rag.models.link import LinkSuggestion
from workspace_rag.models.retrieval import (
    RetrievalResult,
    RetrievalStrategy,
    RetrievedUnit,
    SearchOptions,
    SimilarityRow,
)
from workspace_rag.models.task import TaskHandle, TaskState, TaskStatus

__all__ = [
    "GLOBAL_SCOPE",
    "ChatAnswer",
    "Chunk",
    "ChunkingMethod",
    "ChunkingOptions",
    "ChunkingResult",
    "Citation",
    "ContentUnit",
    "Conversation",
    "ConversationListing",
    "ConversationMode",
    "ConversationPage",
    "Embedding",
    "FileEmbeddingResult",
    "LinkSuggestion",
    "Message",
    "MessageRole",
    "PageRecord",
    "ParsedDocument",
    "RetrievalResult",
    "RetrievalStrategy",
    "RetrievedUnit",
    "SearchOptions",
    "SimilarityRow",
    "SourceType",
    "SummaryText",
    "TaskHandle",
    "TaskState",
    "TaskStatus",
    "TextMetadata",
]
