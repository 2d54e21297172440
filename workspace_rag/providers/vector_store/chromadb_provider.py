"""ChromaDB vector store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorStoreProvider`.
One collection holds every embedding, keyed by owner id, in cosine space.
Scope, source type and file-chunk position live in the entry metadata so
that ``where`` filters can restrict a query to one workspace.
"""

from __future__ import annotations

import json
import math
import os
from datetime import datetime
from typing import Any

# ChromaDB reads this at import time.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import numpy as np
import structlog
from chromadb.config import Settings as ChromaSettings

from workspace_rag.interfaces.vector_store_provider import IVectorStoreProvider
from workspace_rag.models.content import GLOBAL_SCOPE, SourceType
from workspace_rag.models.embedding import Embedding
from workspace_rag.models.retrieval import SimilarityRow
from workspace_rag.utils.errors import PersistenceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_PERSIST_DIR = "data/chromadb"
_DEFAULT_COLLECTION = "workspace_rag_embeddings"

# Free-form Embedding.metadata is stored JSON-encoded under this key because
# Chroma metadata values must be scalars.
_EXTRA_METADATA_KEY = "metadata_json"


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Placeholder that stops ChromaDB from loading its default model.

    Vectors always come from the injected embedding provider.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "workspace_rag passes pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBVectorStore(IVectorStoreProvider):
    """Vector store backed by a local, persistent ChromaDB collection."""

    def __init__(
        self,
        persist_directory: str = _DEFAULT_PERSIST_DIR,
        collection_name: str = _DEFAULT_COLLECTION,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=ChromaSettings(anonymized_telemetry=False),
        )
        # A collection persisted with a different embedding function rejects
        # the no-op one; reopen it with whatever was stored.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # Single-owner operations
    # ------------------------------------------------------------------

    async def get_embedding(self, owner_id: str) -> Embedding | None:
        try:
            result = self._collection.get(
                ids=[owner_id], include=["embeddings", "documents", "metadatas"]
            )
        except Exception as exc:
            raise self._wrap("get_embedding", exc) from exc
        embeddings = _entries(result)
        return embeddings[0] if embeddings else None

    async def upsert_embedding(self, embedding: Embedding) -> None:
        try:
            self._collection.upsert(
                ids=[embedding.owner_id],
                embeddings=[embedding.vector],
                documents=[embedding.content],
                metadatas=[_to_metadata(embedding)],
            )
        except Exception as exc:
            raise self._wrap("upsert_embedding", exc) from exc

    async def delete_embedding(self, owner_id: str) -> bool:
        try:
            existing = self._collection.get(ids=[owner_id], include=[])
            if not existing["ids"]:
                return False
            self._collection.delete(ids=[owner_id])
        except Exception as exc:
            raise self._wrap("delete_embedding", exc) from exc
        return True

    # ------------------------------------------------------------------
    # File chunks
    # ------------------------------------------------------------------

    async def delete_embeddings_by_parent(self, parent_id: str) -> int:
        try:
            existing = self._collection.get(where={"parent_id": parent_id}, include=[])
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                self._collection.delete(where={"parent_id": parent_id})
        except Exception as exc:
            raise self._wrap("delete_embeddings_by_parent", exc) from exc

        logger.info("chromadb_delete_by_parent", parent_id=parent_id, deleted_count=count)
        return count

    async def list_embeddings_by_parent(self, parent_id: str) -> list[Embedding]:
        try:
            result = self._collection.get(
                where={"parent_id": parent_id},
                include=["embeddings", "documents", "metadatas"],
            )
        except Exception as exc:
            raise self._wrap("list_embeddings_by_parent", exc) from exc
        return sorted(_entries(result), key=lambda e: e.chunk_index or 0)

    async def list_embedding_owner_ids(
        self, scope: str, source_type: SourceType | None = None
    ) -> set[str]:
        where: dict[str, Any] = {"scope": scope}
        if source_type is not None:
            where = {"$and": [{"scope": {"$eq": scope}}, {"source_type": {"$eq": source_type.value}}]}
        try:
            result = self._collection.get(where=where, include=[])
        except Exception as exc:
            raise self._wrap("list_embedding_owner_ids", exc) from exc
        return set(result["ids"] or [])

    # ------------------------------------------------------------------
    # Similarity
    # ------------------------------------------------------------------

    async def similarity_search(
        self,
        query_vector: list[float],
        scope: str,
        source_type: SourceType,
        threshold: float,
        limit: int,
    ) -> list[SimilarityRow]:
        return await self.multi_source_search(query_vector, scope, [source_type], threshold, limit)

    async def multi_source_search(
        self,
        query_vector: list[float],
        scope: str,
        source_types: list[SourceType],
        threshold: float,
        limit: int,
    ) -> list[SimilarityRow]:
        if not source_types or limit <= 0:
            return []
        # Cosine distance is undefined for a zero vector.
        if not np.any(np.asarray(query_vector, dtype=float)):
            return []

        clauses = [
            {
                "$and": [
                    {"source_type": {"$eq": source_type.value}},
                    {"scope": {"$eq": GLOBAL_SCOPE if source_type is SourceType.HELP else scope}},
                ]
            }
            for source_type in dict.fromkeys(source_types)
        ]
        where = clauses[0] if len(clauses) == 1 else {"$or": clauses}

        try:
            # Every candidate is fetched so that equal-similarity ties are
            # ordered by recency before the limit is applied.
            candidates = self._collection.count()
            if candidates == 0:
                return []
            result = self._collection.query(
                query_embeddings=[query_vector],
                n_results=candidates,
                where=where,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise self._wrap("multi_source_search", exc) from exc

        ids = result["ids"][0] if result["ids"] else []
        documents = result["documents"][0] if result["documents"] else [""] * len(ids)
        metadatas = result["metadatas"][0] if result["metadatas"] else [{}] * len(ids)
        distances = result["distances"][0] if result["distances"] else [1.0] * len(ids)

        rows: list[SimilarityRow] = []
        for owner_id, document, meta, distance in zip(ids, documents, metadatas, distances, strict=True):
            if distance is None or math.isnan(distance):
                continue
            similarity = max(-1.0, min(1.0, 1.0 - float(distance)))
            if similarity < threshold:
                continue
            rows.append(
                SimilarityRow(
                    owner_id=owner_id,
                    source_type=SourceType(meta["source_type"]),
                    title=meta.get("title", ""),
                    content=document or "",
                    similarity=similarity,
                    parent_id=meta.get("parent_id"),
                    chunk_index=meta.get("chunk_index"),
                    metadata=json.loads(meta.get(_EXTRA_METADATA_KEY) or "{}"),
                    updated_at=datetime.fromisoformat(meta["updated_at"]),
                )
            )

        rows.sort(key=lambda r: (r.similarity, r.updated_at), reverse=True)
        logger.debug(
            "similarity_search_complete",
            scope=scope,
            source_types=[s.value for s in source_types],
            candidates=len(ids),
            matched=len(rows),
        )
        return rows[:limit]

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    def _wrap(self, operation: str, exc: Exception) -> PersistenceError:
        return PersistenceError(
            message=f"ChromaDB {operation} failed: {exc}",
            provider_name=self.get_provider_name(),
        )


# ----------------------------------------------------------------------
# Entry <-> model conversion
# ----------------------------------------------------------------------


def _to_metadata(embedding: Embedding) -> dict[str, str | int | float | bool]:
    """Flatten an Embedding into Chroma metadata.

    Chroma rejects ``None`` values, so the file-chunk keys are only written
    when set.
    """
    meta: dict[str, str | int | float | bool] = {
        "owner_id": embedding.owner_id,
        "source_type": embedding.source_type.value,
        "scope": embedding.scope,
        "title": embedding.title,
        "content_hash": embedding.content_hash,
        "updated_at": embedding.updated_at.isoformat(),
        _EXTRA_METADATA_KEY: json.dumps(embedding.metadata, default=str),
    }
    if embedding.parent_id is not None:
        meta["parent_id"] = embedding.parent_id
    if embedding.chunk_index is not None:
        meta["chunk_index"] = embedding.chunk_index
    return meta


def _entries(result: Any) -> list[Embedding]:
    """Convert a ``collection.get`` result into Embedding models."""
    ids = result["ids"] or []
    documents = result.get("documents")
    metadatas = result.get("metadatas")
    vectors = result.get("embeddings")
    if documents is None:
        documents = [""] * len(ids)
    if metadatas is None:
        metadatas = [{}] * len(ids)
    if vectors is None:
        vectors = [[] for _ in ids]

    entries: list[Embedding] = []
    for owner_id, document, meta, vector in zip(ids, documents, metadatas, vectors, strict=True):
        entries.append(
            Embedding(
                owner_id=owner_id,
                source_type=SourceType(meta["source_type"]),
                scope=meta.get("scope", GLOBAL_SCOPE),
                title=meta.get("title", ""),
                content=document or "",
                content_hash=meta["content_hash"],
                vector=np.asarray(vector, dtype=float).tolist(),
                parent_id=meta.get("parent_id"),
                chunk_index=meta.get("chunk_index"),
                metadata=json.loads(meta.get(_EXTRA_METADATA_KEY) or "{}"),
                updated_at=datetime.fromisoformat(meta["updated_at"]),
            )
        )
    return entries
