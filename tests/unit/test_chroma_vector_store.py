"""Unit tests for the ChromaDB vector store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from workspace_rag.models.content import GLOBAL_SCOPE, SourceType
from workspace_rag.models.embedding import Embedding
from workspace_rag.providers.vector_store.chromadb_provider import ChromaDBVectorStore
from workspace_rag.utils.errors import PersistenceError


def _embedding(owner_id: str, vector: list[float], **extra) -> Embedding:
    values = {
        "source_type": SourceType.PAGE,
        "scope": "ws-1",
        "title": owner_id,
        "content": f"text of {owner_id}",
        "content_hash": "h",
    }
    values.update(extra)
    return Embedding(owner_id=owner_id, vector=vector, **values)


class TestOwnerOperations:
    @pytest.mark.asyncio()
    async def test_upsert_replaces_by_owner(self, vectors: ChromaDBVectorStore) -> None:
        await vectors.upsert_embedding(_embedding("p", [1.0, 0.0], content_hash="old"))
        await vectors.upsert_embedding(
            _embedding("p", [0.0, 1.0], content_hash="new", metadata={"text_length": 12})
        )

        loaded = await vectors.get_embedding("p")

        assert loaded is not None
        assert loaded.content_hash == "new"
        assert loaded.vector == [0.0, 1.0]
        assert loaded.content == "text of p"
        assert loaded.metadata == {"text_length": 12}
        assert loaded.parent_id is None
        assert loaded.chunk_index is None

    @pytest.mark.asyncio()
    async def test_get_missing(self, vectors: ChromaDBVectorStore) -> None:
        assert await vectors.get_embedding("missing") is None

    @pytest.mark.asyncio()
    async def test_delete_reports_whether_removed(self, vectors: ChromaDBVectorStore) -> None:
        await vectors.upsert_embedding(_embedding("p", [1.0, 0.0]))

        assert await vectors.delete_embedding("p") is True
        assert await vectors.delete_embedding("p") is False
        assert await vectors.get_embedding("p") is None

    @pytest.mark.asyncio()
    async def test_entries_survive_a_new_client(self, tmp_path: Path) -> None:
        first = ChromaDBVectorStore(persist_directory=str(tmp_path / "persisted"))
        await first.upsert_embedding(_embedding("p", [1.0, 0.0]))

        reopened = ChromaDBVectorStore(persist_directory=str(tmp_path / "persisted"))

        assert (await reopened.get_embedding("p")).owner_id == "p"
        assert reopened.is_available() is True
        assert reopened.get_provider_name() == "chromadb"


class TestSimilarity:
    @pytest.mark.asyncio()
    async def test_threshold_and_order(self, vectors: ChromaDBVectorStore) -> None:
        await vectors.upsert_embedding(_embedding("exact", [1.0, 0.0]))
        await vectors.upsert_embedding(_embedding("close", [0.8, 0.6]))
        await vectors.upsert_embedding(_embedding("orthogonal", [0.0, 1.0]))
        await vectors.upsert_embedding(_embedding("elsewhere", [1.0, 0.0], scope="ws-2"))

        rows = await vectors.similarity_search([1.0, 0.0], "ws-1", SourceType.PAGE, 0.5, 10)

        assert [r.owner_id for r in rows] == ["exact", "close"]
        assert rows[0].similarity == pytest.approx(1.0, abs=1e-4)
        assert rows[1].similarity == pytest.approx(0.8, abs=1e-4)
        assert rows[0].content == "text of exact"

    @pytest.mark.asyncio()
    async def test_limit_applies_after_ranking(self, vectors: ChromaDBVectorStore) -> None:
        await vectors.upsert_embedding(_embedding("far", [0.6, 0.8]))
        await vectors.upsert_embedding(_embedding("near", [1.0, 0.0]))

        rows = await vectors.similarity_search([1.0, 0.0], "ws-1", SourceType.PAGE, 0.0, 1)

        assert [r.owner_id for r in rows] == ["near"]

    @pytest.mark.asyncio()
    async def test_ties_prefer_newest(self, vectors: ChromaDBVectorStore) -> None:
        old = datetime.now(timezone.utc) - timedelta(days=1)
        await vectors.upsert_embedding(_embedding("older", [1.0, 0.0], updated_at=old))
        await vectors.upsert_embedding(_embedding("newer", [1.0, 0.0]))

        rows = await vectors.similarity_search([1.0, 0.0], "ws-1", SourceType.PAGE, 0.0, 10)

        assert [r.owner_id for r in rows] == ["newer", "older"]

    @pytest.mark.asyncio()
    async def test_multi_source_reads_help_from_global_scope(
        self, vectors: ChromaDBVectorStore
    ) -> None:
        await vectors.upsert_embedding(_embedding("page", [1.0, 0.0]))
        await vectors.upsert_embedding(
            _embedding("help:intro", [1.0, 0.0], source_type=SourceType.HELP, scope=GLOBAL_SCOPE)
        )
        await vectors.upsert_embedding(
            _embedding("f:0", [1.0, 0.0], source_type=SourceType.FILE, parent_id="f", chunk_index=0)
        )

        rows = await vectors.multi_source_search(
            [1.0, 0.0], "ws-1", [SourceType.PAGE, SourceType.HELP], 0.0, 10
        )

        assert {r.owner_id for r in rows} == {"page", "help:intro"}
        assert {r.source_type for r in rows} == {SourceType.PAGE, SourceType.HELP}

    @pytest.mark.asyncio()
    async def test_empty_collection_and_zero_query(self, vectors: ChromaDBVectorStore) -> None:
        assert await vectors.similarity_search([1.0, 0.0], "ws-1", SourceType.PAGE, 0.0, 10) == []

        await vectors.upsert_embedding(_embedding("p", [1.0, 0.0]))

        assert await vectors.similarity_search([0.0, 0.0], "ws-1", SourceType.PAGE, 0.0, 10) == []
        assert await vectors.multi_source_search([1.0, 0.0], "ws-1", [], 0.0, 10) == []

    @pytest.mark.asyncio()
    async def test_dimension_mismatch_raises(self, vectors: ChromaDBVectorStore) -> None:
        await vectors.upsert_embedding(_embedding("three", [1.0, 0.0, 0.0]))

        with pytest.raises(PersistenceError):
            await vectors.similarity_search([1.0, 0.0], "ws-1", SourceType.PAGE, 0.0, 10)


class TestFileChunks:
    @pytest.mark.asyncio()
    async def test_parent_operations(self, vectors: ChromaDBVectorStore) -> None:
        for i in (1, 0):
            await vectors.upsert_embedding(
                _embedding(
                    f"f:{i}", [1.0, 0.0], source_type=SourceType.FILE, parent_id="f", chunk_index=i
                )
            )
        await vectors.upsert_embedding(_embedding("page", [1.0, 0.0]))

        listed = await vectors.list_embeddings_by_parent("f")
        assert [e.chunk_index for e in listed] == [0, 1]
        assert await vectors.list_embedding_owner_ids("ws-1", SourceType.FILE) == {"f:0", "f:1"}
        assert await vectors.list_embedding_owner_ids("ws-1") == {"f:0", "f:1", "page"}
        assert await vectors.delete_embeddings_by_parent("f") == 2
        assert await vectors.list_embeddings_by_parent("f") == []
        assert await vectors.delete_embeddings_by_parent("f") == 0
