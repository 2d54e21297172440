"""Conversation, message and citation models for the RAG chat.

A conversation moves through exactly three states: created (explicitly or
on the first question), active (any number of exchanges), and deleted
(terminal, cascading to its messages).  Messages are append-only.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from workspace_rag.models.content import SourceType, utc_now

DEFAULT_CONVERSATION_TITLE = "New Chat"


class ConversationMode(str, Enum):
    """What content a conversation answers from."""

    WORKSPACE = "workspace"
    HELP = "help"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Citation(BaseModel):
    """Pointer from an assistant answer back to a ContentUnit."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    source_title: str = ""
    source_type: SourceType = SourceType.PAGE
    relevance: float = Field(ge=0.0, le=1.0)
    excerpt: str = ""


class Conversation(BaseModel):
    """A chat thread scoped to a workspace and a user."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workspace_id: str
    user_id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    mode: ConversationMode = ConversationMode.WORKSPACE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Message(BaseModel):
    """One turn in a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    conversation_id: str
    role: MessageRole
    content: str
    citations: list[Citation] = Field(
        default_factory=list, description="Ordered citations; assistant messages only."
    )
    created_at: datetime = Field(default_factory=utc_now)


class ConversationListing(BaseModel):
    """A conversation with its message count, for workspace listings."""

    model_config = ConfigDict(frozen=True)

    conversation: Conversation
    message_count: int = Field(default=0, ge=0)


class ConversationPage(BaseModel):
    """Paginated list of conversations."""

    model_config = ConfigDict(frozen=True)

    items: list[ConversationListing] = Field(default_factory=list)
    limit: int
    offset: int
    total: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total


class ChatAnswer(BaseModel):
    """Result of one ``ask`` exchange."""

    model_config = ConfigDict(frozen=True)

    answer: str
    citations: list[Citation] = Field(default_factory=list)
    conversation_id: str
    message_id: str
    retrieval_strategy: str = Field(
        default="none", description="Retrieval strategy that supplied the documents."
    )
    degraded: bool = Field(
        default=False, description="True when the answer is the fallback apology."
    )
