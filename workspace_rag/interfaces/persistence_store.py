"""Abstract base class for the persistence store.

The store holds pages (read by the pipeline, summary columns written by
it), conversations and messages.  Embeddings live in the vector store
(:class:`~workspace_rag.interfaces.vector_store_provider.IVectorStoreProvider`).

Every method raises :class:`~workspace_rag.utils.errors.PersistenceError`
when the underlying storage fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from workspace_rag.models.content import PageRecord
from workspace_rag.models.conversation import Conversation, ConversationListing, Message


# Concrete implementation: SQLitePersistenceStore (workspace_rag/providers/persistence/)
class IPersistenceStore(ABC):
    """Contract for page and conversation persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    @abstractmethod
    async def upsert_page(self, page: PageRecord) -> None:
        """Insert or replace a page row (keyed by ``page.id``)."""

    @abstractmethod
    async def get_page(self, page_id: str) -> PageRecord | None:
        """Return the page, or ``None`` when it does not exist."""

    @abstractmethod
    async def list_workspace_pages(
        self,
        workspace_id: str,
        with_summary_only: bool = False,
        limit: int | None = None,
    ) -> list[PageRecord]:
        """Return a workspace's pages, most recently updated first."""

    @abstractmethod
    async def delete_page(self, page_id: str) -> bool:
        """Permanently delete a page row.  Returns ``True`` if a row was removed."""

    @abstractmethod
    async def update_page_summary(
        self,
        page_id: str,
        summary: str | None,
        summary_hash: str | None,
        generated_at: datetime | None,
    ) -> None:
        """Set (or clear, with ``None`` values) the summary columns of a page."""

    @abstractmethod
    async def keyword_search(self, workspace_id: str, query: str, limit: int) -> list[PageRecord]:
        """Case-insensitive substring search on page title and content."""

    # ------------------------------------------------------------------
    # Conversations and messages
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Persist a new conversation."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Return a conversation or ``None``."""

    @abstractmethod
    async def update_conversation_title(self, conversation_id: str, title: str) -> bool:
        """Rename a conversation.  Returns ``False`` if it does not exist."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and, by cascade, its messages."""

    @abstractmethod
    async def list_conversations(
        self, workspace_id: str, user_id: str, limit: int, offset: int
    ) -> list[ConversationListing]:
        """Return conversations with message counts, most recently updated first."""

    @abstractmethod
    async def count_conversations(self, workspace_id: str, user_id: str) -> int:
        """Return the total number of conversations for pagination."""

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Append a message and bump its conversation's ``updated_at``."""

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Return a conversation's messages in creation order."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
