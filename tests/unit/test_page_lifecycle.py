"""Unit tests for workspace_rag.services.page_lifecycle."""

from __future__ import annotations

import pytest

from tests.conftest import ScriptedLLMProvider, make_page
from workspace_rag.models.task import TaskState
from workspace_rag.providers.persistence.sqlite_store import SQLitePersistenceStore
from workspace_rag.providers.vector_store.chromadb_provider import ChromaDBVectorStore
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.services.page_lifecycle import PageLifecycleService
from workspace_rag.services.summary_service import SummaryService
from workspace_rag.services.task_queue import TaskQueue


@pytest.fixture
def queue() -> TaskQueue:
    return TaskQueue()


@pytest.fixture
def lifecycle(
    llm: ScriptedLLMProvider,
    store: SQLitePersistenceStore,
    indexer: EmbeddingIndexer,
    queue: TaskQueue,
) -> PageLifecycleService:
    summaries = SummaryService(llm, store, indexer, batch_size=2, batch_delay=0.0)
    return PageLifecycleService(store, indexer, summaries, queue)


class TestOnPageSaved:
    @pytest.mark.asyncio()
    async def test_refresh_runs_in_background(
        self,
        lifecycle: PageLifecycleService,
        store: SQLitePersistenceStore,
        vectors: ChromaDBVectorStore,
        queue: TaskQueue,
    ) -> None:
        handle = await lifecycle.on_page_saved(make_page())

        assert await store.get_page("page-1") is not None
        await queue.wait(handle.task_id)

        page = await store.get_page("page-1")
        assert page.summary == "Scripted answer."
        assert await vectors.get_embedding("page-1") is not None
        assert queue.status(handle.task_id).completed == 1

    @pytest.mark.asyncio()
    async def test_resave_keeps_summary_when_unchanged(
        self,
        lifecycle: PageLifecycleService,
        store: SQLitePersistenceStore,
        queue: TaskQueue,
        llm: ScriptedLLMProvider,
    ) -> None:
        await queue.wait((await lifecycle.on_page_saved(make_page())).task_id)
        await queue.wait((await lifecycle.on_page_saved(make_page())).task_id)

        assert len(llm.requests) == 1
        assert (await store.get_page("page-1")).summary == "Scripted answer."

    @pytest.mark.asyncio()
    async def test_model_outage_does_not_fail_the_save(
        self,
        lifecycle: PageLifecycleService,
        store: SQLitePersistenceStore,
        vectors: ChromaDBVectorStore,
        queue: TaskQueue,
        llm: ScriptedLLMProvider,
    ) -> None:
        llm.fail = True
        handle = await lifecycle.on_page_saved(make_page())
        await queue.wait(handle.task_id)

        assert queue.status(handle.task_id).state is TaskState.COMPLETED
        assert (await store.get_page("page-1")).summary is None
        # The embedding is still refreshed without a summary.
        assert await vectors.get_embedding("page-1") is not None


class TestOnPageDeleted:
    @pytest.mark.asyncio()
    async def test_removes_embedding_summary_and_row(
        self,
        lifecycle: PageLifecycleService,
        store: SQLitePersistenceStore,
        vectors: ChromaDBVectorStore,
        queue: TaskQueue,
    ) -> None:
        await queue.wait((await lifecycle.on_page_saved(make_page())).task_id)

        assert await lifecycle.on_page_deleted("page-1") is True

        assert await store.get_page("page-1") is None
        assert await vectors.get_embedding("page-1") is None

    @pytest.mark.asyncio()
    async def test_unknown_page(self, lifecycle: PageLifecycleService) -> None:
        assert await lifecycle.on_page_deleted("missing") is False


class TestWorkspaceJobs:
    @pytest.mark.asyncio()
    async def test_summaries_only_for_stale_pages(
        self,
        lifecycle: PageLifecycleService,
        store: SQLitePersistenceStore,
        queue: TaskQueue,
    ) -> None:
        await queue.wait((await lifecycle.on_page_saved(make_page(page_id="done"))).task_id)
        await store.upsert_page(make_page(page_id="stale-1", title="Stale One"))
        await store.upsert_page(make_page(page_id="stale-2", title="Stale Two"))

        handle = await lifecycle.schedule_workspace_summaries("ws-1")

        assert handle.scheduled == 2
        await queue.wait(handle.task_id)
        status = queue.status(handle.task_id)
        assert status.completed == 2
        assert status.percentage_complete == 100.0

    @pytest.mark.asyncio()
    async def test_forced_summaries_cover_every_page(
        self,
        lifecycle: PageLifecycleService,
        store: SQLitePersistenceStore,
        queue: TaskQueue,
        llm: ScriptedLLMProvider,
    ) -> None:
        await store.upsert_page(make_page(page_id="a"))
        await store.upsert_page(make_page(page_id="b", title="B"))

        handle = await lifecycle.schedule_workspace_summaries("ws-1", force=True)
        await queue.wait(handle.task_id)

        assert handle.scheduled == 2
        assert len(llm.requests) == 2

    @pytest.mark.asyncio()
    async def test_embeddings_job_reports_progress(
        self,
        lifecycle: PageLifecycleService,
        store: SQLitePersistenceStore,
        vectors: ChromaDBVectorStore,
        queue: TaskQueue,
    ) -> None:
        for i in range(3):
            await store.upsert_page(make_page(page_id=f"p{i}", title=f"Page {i}"))

        handle = await lifecycle.schedule_workspace_embeddings("ws-1")
        await queue.wait(handle.task_id)

        status = queue.status(handle.task_id)
        assert (status.total, status.completed, status.failed) == (3, 3, 0)
        for i in range(3):
            assert await vectors.get_embedding(f"p{i}") is not None
