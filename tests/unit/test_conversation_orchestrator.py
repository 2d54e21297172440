"""Unit tests for workspace_rag.services.conversation_orchestrator."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.conftest import ScriptedLLMProvider, make_page
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.interfaces.web_search_provider import IWebSearchProvider, WebSearchResult
from workspace_rag.models.content import SourceType
from workspace_rag.models.conversation import (
    Conversation,
    ConversationMode,
    Message,
    MessageRole,
)
from workspace_rag.models.retrieval import RetrievedUnit
from workspace_rag.providers.persistence.sqlite_store import SQLitePersistenceStore
from workspace_rag.services.conversation_orchestrator import (
    APOLOGY,
    HELP_SYSTEM_PROMPT,
    WORKSPACE_SYSTEM_PROMPT,
    ConversationOrchestrator,
    build_citations,
    build_prompt,
    derive_title,
)
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.services.retrieval_engine import RetrievalEngine
from workspace_rag.utils.errors import NotFoundError, PersistenceError, ValidationError


@pytest.fixture
def orchestrator(
    llm: ScriptedLLMProvider, store: SQLitePersistenceStore, retrieval: RetrievalEngine
) -> ConversationOrchestrator:
    return ConversationOrchestrator(llm, store, retrieval)


def _unit(owner_id: str, similarity: float = 0.8, **extra) -> RetrievedUnit:
    return RetrievedUnit(
        owner_id=owner_id,
        source_type=extra.pop("source_type", SourceType.PAGE),
        title=extra.pop("title", f"Title {owner_id}"),
        content=extra.pop("content", f"Content of {owner_id}"),
        similarity=similarity,
        **extra,
    )


# ---------------------------------------------------------------------------
# ask
# ---------------------------------------------------------------------------


class TestAsk:
    @pytest.mark.asyncio()
    async def test_blank_question_rejected_before_any_write(
        self, orchestrator: ConversationOrchestrator, store: SQLitePersistenceStore
    ) -> None:
        with pytest.raises(ValidationError):
            await orchestrator.ask("   ", "ws-1", "u1")
        assert await store.count_conversations("ws-1", "u1") == 0

    @pytest.mark.asyncio()
    async def test_first_question_creates_and_titles_conversation(
        self, orchestrator: ConversationOrchestrator, store: SQLitePersistenceStore
    ) -> None:
        answer = await orchestrator.ask("How do we plan a launch?", "ws-1", "u1")

        assert answer.answer == "Scripted answer."
        assert answer.degraded is False
        conversation = await store.get_conversation(answer.conversation_id)
        assert conversation.title == "How do we plan a launch?"
        messages = await store.list_messages(answer.conversation_id)
        assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert messages[1].id == answer.message_id

    @pytest.mark.asyncio()
    async def test_follow_up_keeps_title_and_sends_history(
        self,
        orchestrator: ConversationOrchestrator,
        store: SQLitePersistenceStore,
        llm: ScriptedLLMProvider,
    ) -> None:
        first = await orchestrator.ask("What is our hiring plan?", "ws-1", "u1")
        await orchestrator.ask(
            "And for engineering?", "ws-1", "u1", conversation_id=first.conversation_id
        )

        conversation = await store.get_conversation(first.conversation_id)
        assert conversation.title == "What is our hiring plan?"
        prompt = llm.requests[1][1].content
        assert "USER: What is our hiring plan?" in prompt
        assert "ASSISTANT: Scripted answer." in prompt
        assert "CURRENT QUESTION: And for engineering?" in prompt
        assert len(await store.list_messages(first.conversation_id)) == 4

    @pytest.mark.asyncio()
    async def test_unknown_conversation(self, orchestrator: ConversationOrchestrator) -> None:
        with pytest.raises(NotFoundError):
            await orchestrator.ask("Hello?", "ws-1", "u1", conversation_id="missing")

    @pytest.mark.asyncio()
    async def test_generation_failure_returns_apology(
        self,
        orchestrator: ConversationOrchestrator,
        store: SQLitePersistenceStore,
        indexer: EmbeddingIndexer,
        llm: ScriptedLLMProvider,
    ) -> None:
        await store.upsert_page(make_page())
        await indexer.index_page("page-1")
        llm.fail = True

        answer = await orchestrator.ask("project management", "ws-1", "u1")

        assert answer.answer == APOLOGY
        assert answer.degraded is True
        assert answer.citations == []
        messages = await store.list_messages(answer.conversation_id)
        assert messages[-1].content == APOLOGY

    @pytest.mark.asyncio()
    async def test_relevant_pages_are_cited(
        self,
        orchestrator: ConversationOrchestrator,
        store: SQLitePersistenceStore,
        indexer: EmbeddingIndexer,
        llm: ScriptedLLMProvider,
    ) -> None:
        await store.upsert_page(make_page())
        await indexer.index_page("page-1")

        answer = await orchestrator.ask("project management deadlines", "ws-1", "u1")

        assert [c.source_id for c in answer.citations] == ["page-1"]
        assert 0.0 <= answer.citations[0].relevance <= 1.0
        assert answer.retrieval_strategy == "multi_source_vector"
        assert '[Document 1: "Project Management Guide"]' in llm.requests[0][1].content

    @pytest.mark.asyncio()
    async def test_summary_pages_supplement_retrieval(
        self, orchestrator: ConversationOrchestrator, store: SQLitePersistenceStore
    ) -> None:
        await store.upsert_page(
            make_page(
                page_id="budget",
                title="Quarterly Budget",
                body="Numbers.",
                summary="Budget targets for each quarter.",
            )
        )

        answer = await orchestrator.ask("quarterly budget targets", "ws-1", "u1")

        assert answer.retrieval_strategy == "summary_keyword"
        assert answer.citations[0].source_id == "budget"
        assert answer.citations[0].excerpt == "Budget targets for each quarter."

    @pytest.mark.asyncio()
    async def test_unrelated_question_has_no_citations(
        self, orchestrator: ConversationOrchestrator, store: SQLitePersistenceStore,
        indexer: EmbeddingIndexer,
    ) -> None:
        await store.upsert_page(make_page())
        await indexer.index_page("page-1")

        answer = await orchestrator.ask("What is the weather on Mars?", "ws-1", "u1")

        assert answer.answer
        assert answer.citations == []

    @pytest.mark.asyncio()
    async def test_message_store_failure_propagates(
        self, llm: ScriptedLLMProvider, retrieval: RetrievalEngine
    ) -> None:
        broken = MagicMock(spec=IPersistenceStore)
        broken.get_conversation.return_value = Conversation(
            id="c1", workspace_id="ws-1", user_id="u1"
        )
        broken.add_message.side_effect = PersistenceError(message="disk full")

        with pytest.raises(PersistenceError):
            await ConversationOrchestrator(llm, broken, retrieval).ask(
                "Anything?", "ws-1", "u1", conversation_id="c1"
            )


class TestModesAndWebSearch:
    @pytest.mark.asyncio()
    async def test_help_mode_uses_help_prompt_and_skips_web(
        self,
        llm: ScriptedLLMProvider,
        store: SQLitePersistenceStore,
        retrieval: RetrievalEngine,
        mock_web_search: IWebSearchProvider,
    ) -> None:
        orchestrator = ConversationOrchestrator(llm, store, retrieval, web_search=mock_web_search)

        await orchestrator.ask(
            "How do I upload?", "ws-1", "u1", mode=ConversationMode.HELP, web_search_enabled=True
        )

        assert llm.requests[0][0].content == HELP_SYSTEM_PROMPT
        mock_web_search.search.assert_not_called()

    @pytest.mark.asyncio()
    async def test_workspace_mode_includes_web_results(
        self,
        llm: ScriptedLLMProvider,
        store: SQLitePersistenceStore,
        retrieval: RetrievalEngine,
        mock_web_search: IWebSearchProvider,
    ) -> None:
        orchestrator = ConversationOrchestrator(llm, store, retrieval, web_search=mock_web_search)

        await orchestrator.ask("What is the weather on Mars?", "ws-1", "u1", web_search_enabled=True)

        assert llm.requests[0][0].content == WORKSPACE_SYSTEM_PROMPT
        assert "[Web 1: Mars weather report] https://example.com/mars" in llm.requests[0][1].content

    @pytest.mark.asyncio()
    async def test_web_search_failure_degrades(
        self,
        llm: ScriptedLLMProvider,
        store: SQLitePersistenceStore,
        retrieval: RetrievalEngine,
        mock_web_search: IWebSearchProvider,
    ) -> None:
        mock_web_search.search = AsyncMock(side_effect=RuntimeError("rate limited"))
        orchestrator = ConversationOrchestrator(llm, store, retrieval, web_search=mock_web_search)

        answer = await orchestrator.ask("Anything new?", "ws-1", "u1", web_search_enabled=True)

        assert answer.answer == "Scripted answer."
        assert "WEB RESULTS" not in llm.requests[0][1].content

    @pytest.mark.asyncio()
    async def test_mode_defaults_to_conversation_mode(
        self, orchestrator: ConversationOrchestrator, llm: ScriptedLLMProvider
    ) -> None:
        conversation = await orchestrator.create_conversation(
            "ws-1", "u1", ConversationMode.HELP
        )
        await orchestrator.ask("How?", "ws-1", "u1", conversation_id=conversation.id)
        assert llm.requests[0][0].content == HELP_SYSTEM_PROMPT


# ---------------------------------------------------------------------------
# Conversation management
# ---------------------------------------------------------------------------


class TestConversationManagement:
    @pytest.mark.asyncio()
    async def test_list_conversations_paginates(
        self, orchestrator: ConversationOrchestrator
    ) -> None:
        for _ in range(3):
            await orchestrator.create_conversation("ws-1", "u1")

        page = await orchestrator.list_conversations("ws-1", "u1", limit=2)

        assert len(page.items) == 2
        assert page.total == 3
        assert page.has_more is True

    @pytest.mark.asyncio()
    async def test_list_conversations_validates(
        self, orchestrator: ConversationOrchestrator
    ) -> None:
        with pytest.raises(ValidationError):
            await orchestrator.list_conversations("ws-1", "u1", limit=0)
        with pytest.raises(ValidationError):
            await orchestrator.list_conversations("ws-1", "u1", offset=-1)

    @pytest.mark.asyncio()
    async def test_update_title(self, orchestrator: ConversationOrchestrator) -> None:
        conversation = await orchestrator.create_conversation("ws-1", "u1", title="  Draft  ")
        assert conversation.title == "Draft"

        await orchestrator.update_title(conversation.id, " Final ")

        history_owner = await orchestrator.list_conversations("ws-1", "u1")
        assert history_owner.items[0].conversation.title == "Final"
        with pytest.raises(ValidationError):
            await orchestrator.update_title(conversation.id, "  ")
        with pytest.raises(NotFoundError):
            await orchestrator.update_title("missing", "Title")

    @pytest.mark.asyncio()
    async def test_delete_and_history(self, orchestrator: ConversationOrchestrator) -> None:
        answer = await orchestrator.ask("Question one", "ws-1", "u1")
        assert len(await orchestrator.get_history(answer.conversation_id)) == 2

        await orchestrator.delete_conversation(answer.conversation_id)

        with pytest.raises(NotFoundError):
            await orchestrator.get_history(answer.conversation_id)
        with pytest.raises(NotFoundError):
            await orchestrator.delete_conversation(answer.conversation_id)


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------


class TestPromptHelpers:
    def test_derive_title(self) -> None:
        assert derive_title("  Short question  ") == "Short question"
        long_title = derive_title("x" * 80)
        assert long_title == "x" * 50 + "..."

    def test_prompt_labels_sources(self) -> None:
        docs = [
            _unit("p1", summary="Page summary"),
            _unit("f1", source_type=SourceType.FILE, title="Report.pdf"),
            _unit("help:intro", source_type=SourceType.HELP, title="Introduction"),
        ]
        prompt = build_prompt("Q?", docs, [], [])

        assert '[Document 1: "Title p1"]\nPage summary\n---' in prompt
        assert '[File 2: "Report.pdf"]' in prompt
        assert '[Help 3: "Introduction"]' in prompt
        assert "WEB RESULTS" not in prompt

    def test_prompt_history_is_bounded(self) -> None:
        history = [
            Message(conversation_id="c", role=MessageRole.USER, content=f"message {i}")
            for i in range(6)
        ]
        prompt = build_prompt("Q?", [], history, [])
        assert "message 1" not in prompt
        assert "USER: message 2" in prompt
        assert "USER: message 5" in prompt

    def test_help_prompt_wording(self) -> None:
        prompt = build_prompt("Q?", [], [], [], ConversationMode.HELP)
        assert "help documentation" in prompt

    def test_web_results_section(self) -> None:
        prompt = build_prompt(
            "Q?", [], [], [WebSearchResult(title="Site", url="https://s.example", snippet="Snip")]
        )
        assert "WEB RESULTS:\n[Web 1: Site] https://s.example\nSnip" in prompt

    def test_citations_capped_and_excerpted(self) -> None:
        docs = [_unit(f"p{i}", content="word " * 100) for i in range(5)]
        citations = build_citations(docs)

        assert [c.source_id for c in citations] == ["p0", "p1", "p2"]
        assert citations[0].excerpt.endswith("...")
        assert len(citations[0].excerpt) == 153

    def test_long_summary_excerpt_is_truncated(self) -> None:
        doc = _unit("p0", summary="A very long synopsis. " * 20, content="short body")
        (citation,) = build_citations([doc])

        assert citation.excerpt.startswith("A very long synopsis.")
        assert citation.excerpt.endswith("...")
        assert len(citation.excerpt) == 153
