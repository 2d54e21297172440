"""Abstract base class for vector-store providers.

The vector store holds one embedding per owner (a page, a page summary, a
file chunk or a help section) together with the text it was computed from,
and owns the similarity operator: ranking embeddings against a query vector
happens inside the store, never in the services.

Every method raises :class:`~workspace_rag.utils.errors.PersistenceError`
when the underlying storage fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from workspace_rag.models.content import SourceType
from workspace_rag.models.embedding import Embedding
from workspace_rag.models.retrieval import SimilarityRow


# Concrete implementation: ChromaDBVectorStore (workspace_rag/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for embedding storage and cosine-similarity retrieval."""

    @abstractmethod
    async def get_embedding(self, owner_id: str) -> Embedding | None:
        """Return the embedding stored for *owner_id*, if any."""

    @abstractmethod
    async def upsert_embedding(self, embedding: Embedding) -> None:
        """Insert or overwrite the embedding keyed by ``embedding.owner_id``."""

    @abstractmethod
    async def delete_embedding(self, owner_id: str) -> bool:
        """Delete one embedding; a missing entry is not an error."""

    @abstractmethod
    async def delete_embeddings_by_parent(self, parent_id: str) -> int:
        """Delete every chunk embedding of a file.  Returns the count removed."""

    @abstractmethod
    async def list_embeddings_by_parent(self, parent_id: str) -> list[Embedding]:
        """Return a file's chunk embeddings ordered by chunk index."""

    @abstractmethod
    async def list_embedding_owner_ids(
        self, scope: str, source_type: SourceType | None = None
    ) -> set[str]:
        """Return owner ids with an embedding in *scope* (optionally one source type)."""

    @abstractmethod
    async def similarity_search(
        self,
        query_vector: list[float],
        scope: str,
        source_type: SourceType,
        threshold: float,
        limit: int,
    ) -> list[SimilarityRow]:
        """Rank one source type's embeddings in *scope* by cosine similarity.

        Rows below *threshold* are dropped; at most *limit* rows are
        returned, highest similarity first.
        """

    @abstractmethod
    async def multi_source_search(
        self,
        query_vector: list[float],
        scope: str,
        source_types: list[SourceType],
        threshold: float,
        limit: int,
    ) -> list[SimilarityRow]:
        """Like :meth:`similarity_search` but spanning several source types.

        Help sections are global, so they are matched regardless of
        *scope* when ``SourceType.HELP`` is requested.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` when the backing collection is reachable."""
