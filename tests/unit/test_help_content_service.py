"""Unit tests for workspace_rag.services.help_content_service."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.conftest import BagOfWordsEmbeddingProvider
from workspace_rag.models.content import GLOBAL_SCOPE, SourceType
from workspace_rag.providers.vector_store.chromadb_provider import ChromaDBVectorStore
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.services.help_content_service import (
    HelpContentService,
    help_section_id,
    parse_help_content,
)
from workspace_rag.services.retrieval_engine import RetrievalEngine

HELP_DOC = Path(__file__).resolve().parents[2] / "docs" / "help.md"


@pytest.fixture
def help_service(
    indexer: EmbeddingIndexer, retrieval: RetrievalEngine, vectors: ChromaDBVectorStore
) -> HelpContentService:
    # The bag-of-words fake scores lower than a real model, hence the low floor.
    return HelpContentService(indexer, retrieval, vectors, help_path=HELP_DOC, threshold=0.1)


class TestParseHelpContent:
    def test_preamble_becomes_introduction(self) -> None:
        sections = parse_help_content("Welcome text.\n\n## Setup\nInstall it.\n")
        assert [(s.section, s.content) for s in sections] == [
            ("Introduction", "Welcome text."),
            ("Setup", "Install it."),
        ]

    def test_empty_sections_dropped(self) -> None:
        sections = parse_help_content("## Empty\n\n## Filled\nSomething")
        assert [s.section for s in sections] == ["Filled"]

    def test_level_three_headers_stay_in_section(self) -> None:
        sections = parse_help_content("## Parent\nIntro\n### Child\nDetail")
        assert len(sections) == 1
        assert "### Child" in sections[0].content

    def test_shipped_help_document(self) -> None:
        sections = parse_help_content(HELP_DOC.read_text(encoding="utf-8"))
        names = [s.section for s in sections]
        assert names[0] == "Introduction"
        assert "Uploading Files" in names
        assert len(set(s.slug for s in sections)) == len(sections)

    def test_section_ids(self) -> None:
        assert help_section_id("Asking the Assistant") == "help:asking-the-assistant"
        assert help_section_id("!!!") == "help:section"

    def test_repeated_titles_get_distinct_ids(self) -> None:
        sections = parse_help_content("## FAQ\nFirst\n## FAQ\nSecond\n## FAQ 2\nThird")
        assert [s.slug for s in sections] == ["help:faq", "help:faq-2", "help:faq-2-2"]


class TestInitializeHelpContent:
    @pytest.mark.asyncio()
    async def test_indexes_every_section_globally(
        self, help_service: HelpContentService, vectors: ChromaDBVectorStore
    ) -> None:
        expected = parse_help_content(HELP_DOC.read_text(encoding="utf-8"))

        indexed = await help_service.initialize_help_content()

        assert indexed == len(expected)
        owner_ids = await vectors.list_embedding_owner_ids(GLOBAL_SCOPE, SourceType.HELP)
        assert owner_ids == {s.slug for s in expected}
        convo = await vectors.get_embedding("help:managing-conversations")
        assert convo.metadata["has_code_examples"] is True

    @pytest.mark.asyncio()
    async def test_reinitializing_unchanged_content_is_free(
        self, help_service: HelpContentService, embedder: BagOfWordsEmbeddingProvider
    ) -> None:
        await help_service.initialize_help_content()
        calls = len(embedder.calls)
        await help_service.initialize_help_content()
        assert len(embedder.calls) == calls

    @pytest.mark.asyncio()
    async def test_removed_sections_are_dropped(
        self, help_service: HelpContentService, vectors: ChromaDBVectorStore
    ) -> None:
        await help_service.initialize_help_content("## Alpha\nFirst\n## Beta\nSecond")
        await help_service.initialize_help_content("## Alpha\nFirst")

        owner_ids = await vectors.list_embedding_owner_ids(GLOBAL_SCOPE, SourceType.HELP)
        assert owner_ids == {"help:alpha"}

    @pytest.mark.asyncio()
    async def test_repeated_titles_are_all_indexed(
        self, help_service: HelpContentService, vectors: ChromaDBVectorStore
    ) -> None:
        indexed = await help_service.initialize_help_content(
            "## Troubleshooting\nRestart the app.\n## Troubleshooting\nClear the cache."
        )

        assert indexed == 2
        first = await vectors.get_embedding("help:troubleshooting")
        second = await vectors.get_embedding("help:troubleshooting-2")
        assert "Restart the app." in first.content
        assert "Clear the cache." in second.content

    @pytest.mark.asyncio()
    async def test_missing_file(
        self, indexer: EmbeddingIndexer, retrieval: RetrievalEngine, vectors: ChromaDBVectorStore,
        tmp_path: Path,
    ) -> None:
        service = HelpContentService(indexer, retrieval, vectors, help_path=tmp_path / "none.md")
        assert await service.initialize_help_content() == 0

    @pytest.mark.asyncio()
    async def test_model_failure_skips_sections(
        self, help_service: HelpContentService, embedder: BagOfWordsEmbeddingProvider
    ) -> None:
        embedder.fail = True
        assert await help_service.initialize_help_content("## Alpha\nFirst") == 0


class TestSearchHelpContent:
    @pytest.mark.asyncio()
    async def test_finds_matching_section(self, help_service: HelpContentService) -> None:
        await help_service.initialize_help_content()

        results = await help_service.search_help_content("How do I upload a PDF file?")

        assert results
        assert results[0].owner_id == "help:uploading-files"
        assert all(r.source_type is SourceType.HELP for r in results)
        assert len(results) <= 3

    @pytest.mark.asyncio()
    async def test_workspace_pages_never_leak_into_help(
        self,
        help_service: HelpContentService,
        indexer: EmbeddingIndexer,
    ) -> None:
        await indexer.index(
            "page-x", "upload pdf file", source_type=SourceType.PAGE, scope="ws-1"
        )
        results = await help_service.search_help_content("upload pdf file")
        assert "page-x" not in {r.owner_id for r in results}
