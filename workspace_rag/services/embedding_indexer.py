"""Embedding generation with content-hash change detection.

Every embeddable owner (page, file chunk, help section) has at most one
:class:`~workspace_rag.models.embedding.Embedding` row keyed by its owner id.
Before calling the embedding model the indexer compares the digest of the
owner's current content with the ``content_hash`` stored on that row; when
they match the model is not called at all, so re-indexing unchanged content
is free and repeated ``index`` calls are idempotent.

Indexing is a best-effort side effect of content changes: embedding-model
and store failures are logged and swallowed by the public ``index*``
methods so that saving a page never fails because of a downstream indexing
problem.  ``upsert_unit`` is the strict variant for callers that need to
know about failures (the file-embedding service and bulk jobs).
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from typing import Any

import structlog

from workspace_rag.interfaces.embedding_provider import IEmbeddingProvider
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.interfaces.vector_store_provider import IVectorStoreProvider
from workspace_rag.models.content import GLOBAL_SCOPE, PageRecord, SourceType, utc_now
from workspace_rag.models.embedding import Embedding
from workspace_rag.models.retrieval import SimilarityRow
from workspace_rag.utils.concurrency import BatchReport, run_in_batches
from workspace_rag.utils.errors import (
    ExternalServiceError,
    NotFoundError,
    PersistenceError,
)
from workspace_rag.utils.text import extract_page_text

logger = structlog.get_logger(logger_name=__name__)


def content_hash(title: str, content: Any, tags: list[str] | None = None) -> str:
    """Deterministic digest of a unit's title, content and tag names.

    Used only to detect changes, so MD5 is sufficient.  ``content`` is
    serialised with sorted keys so equal structures always hash equally.
    """
    serialized = json.dumps(content if content is not None else {}, sort_keys=True, default=str)
    digest_input = title + serialized + ",".join(tags or [])
    return hashlib.md5(digest_input.encode("utf-8")).hexdigest()  # noqa: S324


def text_hash(text: str) -> str:
    """Digest for units whose whole content is a single string."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()  # noqa: S324


class EmbeddingIndexer:
    """Turns pages, file chunks and help sections into stored embeddings.

    Parameters
    ----------
    embedding_provider:
        Embedding model adapter.
    store:
        Persistence store the pages are read from.
    vector_store:
        Holds the embeddings and ranks them against a query vector.
    batch_size:
        Owners indexed concurrently per batch in :meth:`batch_index`.
    batch_delay:
        Seconds to wait between batches.
    default_threshold:
        Similarity floor for :meth:`semantic_search` and
        :meth:`find_similar_pages` when the caller gives none.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        store: IPersistenceStore,
        vector_store: IVectorStoreProvider,
        batch_size: int = 5,
        batch_delay: float = 1.0,
        default_threshold: float = 0.7,
    ) -> None:
        self._embedder = embedding_provider
        self._store = store
        self._vectors = vector_store
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._default_threshold = default_threshold

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def index(
        self,
        owner_id: str,
        text: str,
        *,
        title: str = "",
        source_type: SourceType = SourceType.PAGE,
        scope: str = GLOBAL_SCOPE,
        digest: str | None = None,
        parent_id: str | None = None,
        chunk_index: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Embed *text* for *owner_id* unless the stored embedding is current.

        Returns ``True`` when a new embedding was written, ``False`` when the
        stored one was already current or indexing failed (failures are
        logged, never raised).
        """
        try:
            return await self.upsert_unit(
                owner_id,
                text,
                title=title,
                source_type=source_type,
                scope=scope,
                digest=digest,
                parent_id=parent_id,
                chunk_index=chunk_index,
                metadata=metadata,
            )
        except (ExternalServiceError, PersistenceError) as exc:
            logger.error("embedding_index_failed", owner_id=owner_id, error=str(exc))
            return False

    async def upsert_unit(
        self,
        owner_id: str,
        text: str,
        *,
        title: str = "",
        source_type: SourceType = SourceType.PAGE,
        scope: str = GLOBAL_SCOPE,
        digest: str | None = None,
        parent_id: str | None = None,
        chunk_index: int | None = None,
        metadata: dict[str, Any] | None = None,
        check_existing: bool = True,
    ) -> bool:
        """Strict variant of :meth:`index`: store and model errors propagate."""
        digest = digest or text_hash(text)
        if check_existing:
            existing = await self._vectors.get_embedding(owner_id)
            if existing is not None and existing.content_hash == digest:
                logger.debug("embedding_skipped_unchanged", owner_id=owner_id)
                return False

        vector = await self._embedder.embed_single(text)
        now = utc_now()
        await self._vectors.upsert_embedding(
            Embedding(
                owner_id=owner_id,
                source_type=source_type,
                scope=scope,
                title=title,
                content=text,
                content_hash=digest,
                vector=vector,
                parent_id=parent_id,
                chunk_index=chunk_index,
                metadata={
                    "text_length": len(text),
                    "last_generated": now.isoformat(),
                    **(metadata or {}),
                },
                updated_at=now,
            )
        )
        logger.info(
            "embedding_stored",
            owner_id=owner_id,
            source_type=source_type.value,
            text_length=len(text),
        )
        return True

    async def index_page(self, page_id: str) -> bool:
        """Embed a page's title, body and tags.  Never raises."""
        try:
            return await self._index_page_strict(page_id)
        except (ExternalServiceError, PersistenceError, NotFoundError) as exc:
            logger.error("page_embedding_failed", page_id=page_id, error=str(exc))
            return False

    async def _index_page_strict(self, page_id: str) -> bool:
        page = await self._store.get_page(page_id)
        if page is None:
            raise NotFoundError(message=f"Page not found: {page_id}")
        return await self.upsert_unit(
            page.id,
            extract_page_text(page.title, page.content, page.tags),
            title=page.title,
            source_type=SourceType.PAGE,
            scope=page.workspace_id,
            digest=page_content_hash(page),
            metadata={"tags": list(page.tags)},
        )

    async def batch_index(
        self,
        page_ids: list[str],
        on_item_done: Callable[[str, BaseException | None], None] | None = None,
    ) -> BatchReport:
        """Index pages in paced batches; one page's failure never blocks the rest."""
        return await run_in_batches(
            page_ids,
            self._index_page_strict,
            batch_size=self._batch_size,
            delay_seconds=self._batch_delay,
            on_item_done=on_item_done,
            label="batch_embedding",
        )

    async def generate_workspace_embeddings(self, workspace_id: str) -> BatchReport:
        """Index every page of a workspace."""
        pages = await self._store.list_workspace_pages(workspace_id)
        if not pages:
            logger.info("workspace_has_no_pages", workspace_id=workspace_id)
            return BatchReport()
        logger.info("workspace_embedding_started", workspace_id=workspace_id, pages=len(pages))
        return await self.batch_index([p.id for p in pages])

    async def delete(self, owner_id: str) -> bool:
        """Remove an owner's embedding.  Missing rows and store errors are not raised."""
        try:
            removed = await self._vectors.delete_embedding(owner_id)
        except PersistenceError as exc:
            logger.error("embedding_delete_failed", owner_id=owner_id, error=str(exc))
            return False
        logger.info("embedding_deleted", owner_id=owner_id, removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Page search helpers
    # ------------------------------------------------------------------

    async def semantic_search(
        self,
        query: str,
        workspace_id: str,
        max_results: int = 10,
        threshold: float | None = None,
    ) -> list[SimilarityRow]:
        """Page-only vector search.  Failures yield an empty list."""
        floor = self._default_threshold if threshold is None else threshold
        try:
            vector = await self._embedder.embed_single(query)
            return await self._vectors.similarity_search(
                vector, workspace_id, SourceType.PAGE, floor, max_results
            )
        except (ExternalServiceError, PersistenceError) as exc:
            logger.error("semantic_search_failed", workspace_id=workspace_id, error=str(exc))
            return []

    async def find_similar_pages(
        self,
        page_id: str,
        max_results: int = 5,
        threshold: float | None = None,
    ) -> list[SimilarityRow]:
        """Pages whose embeddings are closest to *page_id*'s, excluding itself."""
        floor = self._default_threshold if threshold is None else threshold
        try:
            embedding = await self._vectors.get_embedding(page_id)
            if embedding is None:
                logger.info("similar_pages_no_embedding", page_id=page_id)
                return []
            rows = await self._vectors.similarity_search(
                embedding.vector, embedding.scope, SourceType.PAGE, floor, max_results + 1
            )
        except PersistenceError as exc:
            logger.error("similar_pages_failed", page_id=page_id, error=str(exc))
            return []
        return [r for r in rows if r.owner_id != page_id][:max_results]


def page_content_hash(page: PageRecord) -> str:
    """Content hash of a page as stored; shared by embeddings and summaries."""
    return content_hash(page.title, page.content, page.tags)
