"""AI page summaries with content-hash freshness.

A page's summary is stored on the page row together with the content hash
of the page at generation time (``summary_hash``).  A summary is current
while that hash equals the hash of the page's present title, content and
tags; :meth:`SummaryService.generate_summary` returns a current summary
without calling the text-generation model.

Summaries are a best-effort side effect: model failures and failed writes
are logged and never propagate to the caller.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from workspace_rag.interfaces.llm_provider import ILLMProvider
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.models.content import PageRecord, utc_now
from workspace_rag.models.embedding import SummaryText
from workspace_rag.services.embedding_indexer import EmbeddingIndexer, page_content_hash
from workspace_rag.utils.concurrency import BatchReport, run_in_batches
from workspace_rag.utils.errors import (
    ExternalServiceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from workspace_rag.utils.text import extract_content_text

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = "You are a professional content summarizer."

_LENGTH_INSTRUCTIONS = {
    "short": "1-2 sentences",
    "medium": "3-4 sentences",
    "long": "1-2 paragraphs",
}

_CONTENT_CHARS = 2000


class SummaryService:
    """Generates, caches and clears page summaries.

    Parameters
    ----------
    llm_provider:
        Text-generation model adapter.
    store:
        Persistence store holding the page rows.
    indexer:
        Used to refresh the page embedding after a new summary is stored.
    batch_size, batch_delay:
        Pacing for workspace-wide regeneration.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        store: IPersistenceStore,
        indexer: EmbeddingIndexer | None = None,
        batch_size: int = 3,
        batch_delay: float = 2.0,
    ) -> None:
        self._llm = llm_provider
        self._store = store
        self._indexer = indexer
        self._batch_size = batch_size
        self._batch_delay = batch_delay

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_summary(
        self,
        page_id: str,
        force: bool = False,
        length: str = "medium",
    ) -> SummaryText | None:
        """Return a current summary for *page_id*, generating one if needed.

        Parameters
        ----------
        page_id:
            The page to summarise.
        force:
            Regenerate even when the stored summary is current.
        length:
            ``"short"``, ``"medium"`` or ``"long"``.

        Returns
        -------
        SummaryText | None
            The summary, with ``from_cache=True`` when the stored one was
            reused; ``None`` when generation failed.

        Raises
        ------
        NotFoundError
            If the page does not exist.
        ValidationError
            If *length* is not a known length.
        """
        if length not in _LENGTH_INSTRUCTIONS:
            raise ValidationError(message=f"Unknown summary length: {length}")
        page = await self._store.get_page(page_id)
        if page is None:
            raise NotFoundError(message=f"Page not found: {page_id}")

        current_hash = page_content_hash(page)
        if not force and page.summary and page.summary_hash == current_hash:
            logger.debug("summary_current", page_id=page_id)
            return SummaryText(
                page_id=page_id,
                text=page.summary,
                generated_at=page.summary_updated_at or page.updated_at,
                from_cache=True,
            )

        try:
            text = await self._llm.complete(
                _SYSTEM_PROMPT,
                build_summary_prompt(page, length),
                temperature=0.3,
                max_tokens=200 if length == "long" else 100,
            )
        except ExternalServiceError as exc:
            logger.error("summary_generation_failed", page_id=page_id, error=str(exc))
            return None

        summary = SummaryText(page_id=page_id, text=text.strip(), generated_at=utc_now())
        try:
            await self._store.update_page_summary(
                page_id, summary.text, current_hash, summary.generated_at
            )
        except PersistenceError as exc:
            logger.error("summary_store_failed", page_id=page_id, error=str(exc))
            return summary

        logger.info("summary_generated", page_id=page_id, chars=len(summary.text), forced=force)
        if self._indexer is not None:
            await self._indexer.index_page(page_id)
        return summary

    async def summarize_pages(
        self,
        page_ids: list[str],
        force: bool = False,
        on_item_done: Callable[[str, BaseException | None], None] | None = None,
    ) -> BatchReport:
        """Summarise *page_ids* in paced batches."""

        async def _summarize(page_id: str) -> SummaryText:
            summary = await self.generate_summary(page_id, force=force)
            if summary is None:
                raise ExternalServiceError(message=f"No summary generated for {page_id}")
            return summary

        return await run_in_batches(
            page_ids,
            _summarize,
            batch_size=self._batch_size,
            delay_seconds=self._batch_delay,
            on_item_done=on_item_done,
            label="batch_summary",
        )

    async def generate_workspace_summaries(
        self, workspace_id: str, force: bool = False
    ) -> BatchReport:
        """Summarise every page in a workspace (current summaries are reused)."""
        pages = await self._store.list_workspace_pages(workspace_id)
        if not pages:
            return BatchReport()
        logger.info("workspace_summaries_started", workspace_id=workspace_id, pages=len(pages))
        return await self.summarize_pages([p.id for p in pages], force=force)

    async def delete_summary(self, page_id: str) -> None:
        """Clear the summary columns of a page."""
        await self._store.update_page_summary(page_id, None, None, None)
        logger.info("summary_deleted", page_id=page_id)

    async def pages_needing_summary_update(self, workspace_id: str) -> list[str]:
        """Ids of pages with no summary or a summary older than their content."""
        try:
            pages = await self._store.list_workspace_pages(workspace_id)
        except PersistenceError as exc:
            logger.error("summary_status_failed", workspace_id=workspace_id, error=str(exc))
            return []
        return [p.id for p in pages if not is_summary_current(p)]

    async def summary_progress(self, workspace_id: str) -> float:
        """Percentage of a workspace's pages whose summary is current."""
        pages = await self._store.list_workspace_pages(workspace_id)
        if not pages:
            return 100.0
        current = sum(1 for p in pages if is_summary_current(p))
        return round(100.0 * current / len(pages), 1)


def is_summary_current(page: PageRecord) -> bool:
    return bool(page.summary) and page.summary_hash == page_content_hash(page)


def build_summary_prompt(page: PageRecord, length: str = "medium") -> str:
    body = extract_content_text(page.content)[:_CONTENT_CHARS]
    return (
        f"Summarize the following page content in {_LENGTH_INSTRUCTIONS[length]}:\n\n"
        f"Title: {page.title}\n"
        f"Content: {body}...\n\n"
        "Provide a clear, concise summary that captures the main points and purpose of the page."
    )
