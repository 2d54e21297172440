"""Hooks that keep derived page data in step with page edits.

Page CRUD belongs to the surrounding application.  It calls
:meth:`PageLifecycleService.on_page_saved` after every create or update and
:meth:`PageLifecycleService.on_page_deleted` on permanent deletion.  Saving
schedules a summary and embedding refresh on the task queue; the caller
never waits for either and never sees their failures.
"""

from __future__ import annotations

import structlog

from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.models.content import PageRecord
from workspace_rag.models.task import TaskHandle
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.services.summary_service import SummaryService
from workspace_rag.services.task_queue import ProgressCallback, TaskQueue
from workspace_rag.utils.errors import NotFoundError, PersistenceError

logger = structlog.get_logger(logger_name=__name__)


class PageLifecycleService:
    """Routes page saves and deletions to the indexing services."""

    def __init__(
        self,
        store: IPersistenceStore,
        indexer: EmbeddingIndexer,
        summaries: SummaryService,
        queue: TaskQueue,
    ) -> None:
        self._store = store
        self._indexer = indexer
        self._summaries = summaries
        self._queue = queue

    async def on_page_saved(self, page: PageRecord) -> TaskHandle:
        """Persist *page* and schedule its summary and embedding refresh.

        Summary columns already stored for the page are kept; the refresh
        replaces them only if the content hash no longer matches.
        """
        existing = await self._store.get_page(page.id)
        if existing is not None and page.summary is None:
            page = page.model_copy(
                update={
                    "summary": existing.summary,
                    "summary_hash": existing.summary_hash,
                    "summary_updated_at": existing.summary_updated_at,
                    "created_at": existing.created_at,
                }
            )
        await self._store.upsert_page(page)

        page_id = page.id

        async def _refresh(progress: ProgressCallback) -> None:
            try:
                await self._summaries.generate_summary(page_id)
            except NotFoundError as exc:
                # Deleted before the job ran.
                progress(page_id, exc)
                return
            # generate_summary only re-indexes after writing a new summary.
            await self._indexer.index_page(page_id)
            progress(page_id, None)

        return self._queue.enqueue(f"page_refresh:{page_id}", _refresh, total=1)

    async def on_page_deleted(self, page_id: str) -> bool:
        """Remove a page's embedding and summary, then the page row itself.

        Returns ``True`` if a page row was removed.
        """
        await self._indexer.delete(page_id)
        try:
            await self._summaries.delete_summary(page_id)
        except PersistenceError as exc:
            logger.warning("summary_cleanup_failed", page_id=page_id, error=str(exc))
        removed = await self._store.delete_page(page_id)
        logger.info("page_deleted", page_id=page_id, removed=removed)
        return removed

    async def schedule_workspace_summaries(
        self, workspace_id: str, force: bool = False
    ) -> TaskHandle:
        """Regenerate every stale summary in a workspace in the background."""
        if force:
            pages = await self._store.list_workspace_pages(workspace_id)
            page_ids = [p.id for p in pages]
        else:
            page_ids = await self._summaries.pages_needing_summary_update(workspace_id)

        async def _job(progress: ProgressCallback) -> None:
            await self._summaries.summarize_pages(page_ids, force=force, on_item_done=progress)

        return self._queue.enqueue(f"workspace_summaries:{workspace_id}", _job, total=len(page_ids))

    async def schedule_workspace_embeddings(self, workspace_id: str) -> TaskHandle:
        """Re-index every page of a workspace in the background."""
        pages = await self._store.list_workspace_pages(workspace_id)
        page_ids = [p.id for p in pages]

        async def _job(progress: ProgressCallback) -> None:
            await self._indexer.batch_index(page_ids, on_item_done=progress)

        return self._queue.enqueue(f"workspace_embeddings:{workspace_id}", _job, total=len(page_ids))
