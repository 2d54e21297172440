"""Retrieval-augmented question answering over workspace or help content.

:meth:`ConversationOrchestrator.ask` runs one exchange:

1. Create the conversation if no id was given.
2. Store the user message.
3. Retrieve relevant content (workspace pages and files, or help sections).
4. Optionally fetch web results (workspace mode only).
5. Build the prompt from the mode's system role, recent history and the
   retrieved documents.
6. Call the text-generation model once.
7. Store the assistant message with up to three citations.
8. Title the conversation from its first question.

Failure handling is asymmetric on purpose: retrieval and web search degrade
to no context, generation degrades to a fixed apology, but a message that
cannot be stored raises :class:`~workspace_rag.utils.errors.PersistenceError`
because the conversation would otherwise silently lose a turn.
"""

from __future__ import annotations

import structlog

from workspace_rag.interfaces.llm_provider import ChatMessage, ILLMProvider
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.interfaces.web_search_provider import IWebSearchProvider, WebSearchResult
from workspace_rag.models.content import GLOBAL_SCOPE, SourceType
from workspace_rag.models.conversation import (
    ChatAnswer,
    Citation,
    Conversation,
    ConversationMode,
    ConversationPage,
    Message,
    MessageRole,
)
from workspace_rag.models.retrieval import (
    RetrievalStrategy,
    RetrievedUnit,
    SearchOptions,
)
from workspace_rag.services.retrieval_engine import RetrievalEngine
from workspace_rag.utils.errors import (
    ExternalServiceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from workspace_rag.utils.logging import pipeline_context
from workspace_rag.utils.text import extract_content_text, keyword_relevance, truncate

logger = structlog.get_logger(logger_name=__name__)

APOLOGY = (
    "I apologize, but I encountered an error while generating a response. "
    "Please try again."
)

WORKSPACE_SYSTEM_PROMPT = (
    "You are a knowledgeable workspace assistant. Always base your answers on the "
    "provided documents and conversation context. Be helpful and accurate."
)

HELP_SYSTEM_PROMPT = (
    "You are a friendly product guide. Explain how to use the application's features "
    "using the provided help documentation. Give clear, step-by-step instructions and "
    "say so when the documentation does not cover a question."
)

MAX_CITATIONS = 3
TITLE_CHARS = 50
EXCERPT_CHARS = 150
DOCUMENT_CONTEXT_CHARS = 200
PROMPT_HISTORY_MESSAGES = 4
WEB_RESULTS = 3

# Summary-bearing pages join the context when this share of the question's
# words appears in their title and summary.
SUMMARY_RELEVANCE_CUTOFF = 0.3

_SOURCE_LABELS = {
    SourceType.PAGE: "Document",
    SourceType.FILE: "File",
    SourceType.HELP: "Help",
}


class ConversationOrchestrator:
    """Owns conversation state and answers questions with citations.

    Parameters
    ----------
    llm_provider:
        Text-generation model adapter.
    store:
        Persistence for conversations, messages and pages.
    retrieval:
        Multi-source retrieval engine.
    web_search:
        Optional web-search provider.  ``None`` means no web context.
    workspace_threshold, help_threshold:
        Similarity floors for workspace and help retrieval.
    max_results:
        Retrieved documents handed to the prompt.
    history_messages:
        Prior messages loaded for continuity.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        store: IPersistenceStore,
        retrieval: RetrievalEngine,
        web_search: IWebSearchProvider | None = None,
        workspace_threshold: float = 0.3,
        help_threshold: float = 0.5,
        max_results: int = 5,
        history_messages: int = 6,
    ) -> None:
        self._llm = llm_provider
        self._store = store
        self._retrieval = retrieval
        self._web_search = web_search
        self._workspace_threshold = workspace_threshold
        self._help_threshold = help_threshold
        self._max_results = max_results
        self._history_messages = history_messages

    # ------------------------------------------------------------------
    # Asking
    # ------------------------------------------------------------------

    async def ask(
        self,
        question: str,
        workspace_id: str,
        user_id: str,
        conversation_id: str | None = None,
        mode: ConversationMode | None = None,
        web_search_enabled: bool = False,
    ) -> ChatAnswer:
        """Answer *question* and record the exchange.

        Parameters
        ----------
        question:
            The user's question.  Must not be blank.
        workspace_id, user_id:
            Scope of the conversation.
        conversation_id:
            Existing conversation to continue; a new one is created if ``None``.
        mode:
            ``workspace`` or ``help``.  Defaults to the conversation's mode.
        web_search_enabled:
            Add web results to the prompt (workspace mode only).

        Raises
        ------
        ValidationError
            If the question is blank.
        NotFoundError
            If *conversation_id* does not exist.
        PersistenceError
            If a message cannot be stored.
        """
        question = question.strip()
        if not question:
            raise ValidationError(message="Question must not be empty")

        if conversation_id is None:
            conversation = await self.create_conversation(
                workspace_id, user_id, mode or ConversationMode.WORKSPACE
            )
        else:
            conversation = await self._require_conversation(conversation_id)
        mode = mode or conversation.mode

        with pipeline_context(
            workspace_id=workspace_id, conversation_id=conversation.id, mode=mode.value
        ):
            await self._store.add_message(
                Message(conversation_id=conversation.id, role=MessageRole.USER, content=question)
            )
            history = (await self._store.list_messages(conversation.id))[-self._history_messages :]

            documents, strategy = await self._retrieve(question, workspace_id, mode)
            web_results: list[WebSearchResult] = []
            if web_search_enabled and mode is ConversationMode.WORKSPACE:
                web_results = await self._search_web(question)

            prompt = build_prompt(question, documents, history[:-1], web_results, mode)
            degraded = False
            try:
                answer = await self._llm.generate(
                    [ChatMessage("system", _system_prompt(mode)), ChatMessage("user", prompt)],
                    temperature=0.7,
                    max_tokens=800,
                )
            except ExternalServiceError as exc:
                logger.error("answer_generation_failed", error=str(exc))
                answer = APOLOGY
                degraded = True

            citations = [] if degraded else build_citations(documents)
            assistant = await self._store.add_message(
                Message(
                    conversation_id=conversation.id,
                    role=MessageRole.ASSISTANT,
                    content=answer,
                    citations=citations,
                )
            )

            if len(history) <= 1:
                await self._auto_title(conversation.id, question)

            logger.info(
                "question_answered",
                documents=len(documents),
                citations=len(citations),
                strategy=strategy,
                web_results=len(web_results),
                degraded=degraded,
            )
            return ChatAnswer(
                answer=answer,
                citations=citations,
                conversation_id=conversation.id,
                message_id=assistant.id,
                retrieval_strategy=strategy,
                degraded=degraded,
            )

    # ------------------------------------------------------------------
    # Conversation management
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        workspace_id: str,
        user_id: str,
        mode: ConversationMode = ConversationMode.WORKSPACE,
        title: str | None = None,
    ) -> Conversation:
        conversation = Conversation(workspace_id=workspace_id, user_id=user_id, mode=mode)
        if title and title.strip():
            conversation = conversation.model_copy(update={"title": title.strip()})
        created = await self._store.create_conversation(conversation)
        logger.info("conversation_created", conversation_id=created.id, mode=mode.value)
        return created

    async def get_history(self, conversation_id: str) -> list[Message]:
        """All messages of a conversation, oldest first."""
        await self._require_conversation(conversation_id)
        return await self._store.list_messages(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and its messages."""
        if not await self._store.delete_conversation(conversation_id):
            raise NotFoundError(message=f"Conversation not found: {conversation_id}")
        logger.info("conversation_deleted", conversation_id=conversation_id)

    async def list_conversations(
        self, workspace_id: str, user_id: str, limit: int = 20, offset: int = 0
    ) -> ConversationPage:
        if limit <= 0 or offset < 0:
            raise ValidationError(message="limit must be positive and offset non-negative")
        items = await self._store.list_conversations(workspace_id, user_id, limit, offset)
        total = await self._store.count_conversations(workspace_id, user_id)
        return ConversationPage(items=items, limit=limit, offset=offset, total=total)

    async def update_title(self, conversation_id: str, title: str) -> None:
        title = title.strip()
        if not title:
            raise ValidationError(message="Title must not be empty")
        if not await self._store.update_conversation_title(conversation_id, title):
            raise NotFoundError(message=f"Conversation not found: {conversation_id}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require_conversation(self, conversation_id: str) -> Conversation:
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(message=f"Conversation not found: {conversation_id}")
        return conversation

    async def _retrieve(
        self, question: str, workspace_id: str, mode: ConversationMode
    ) -> tuple[list[RetrievedUnit], str]:
        """Relevant documents and the strategy that found them.  Never raises."""
        try:
            if mode is ConversationMode.HELP:
                result = await self._retrieval.search(
                    question,
                    GLOBAL_SCOPE,
                    SearchOptions(
                        threshold=self._help_threshold,
                        max_results=self._max_results,
                        source_types=[SourceType.HELP],
                    ),
                )
                return result.results, result.strategy.value

            result = await self._retrieval.search(
                question,
                workspace_id,
                SearchOptions(
                    threshold=self._workspace_threshold,
                    max_results=self._max_results,
                    source_types=[SourceType.PAGE, SourceType.FILE],
                ),
            )
            documents = await self._add_summary_pages(question, workspace_id, result.results)
            strategy = result.strategy
            if strategy is RetrievalStrategy.NONE and documents:
                return documents, "summary_keyword"
            return documents, strategy.value
        except Exception as exc:  # noqa: BLE001
            logger.warning("document_retrieval_failed", error=str(exc))
            return [], RetrievalStrategy.NONE.value

    async def _add_summary_pages(
        self, question: str, workspace_id: str, documents: list[RetrievedUnit]
    ) -> list[RetrievedUnit]:
        """Merge in summarised pages whose title and summary match the question."""
        try:
            pages = await self._store.list_workspace_pages(
                workspace_id, with_summary_only=True, limit=self._max_results * 2
            )
        except PersistenceError as exc:
            logger.warning("summary_pages_unavailable", error=str(exc))
            return documents

        seen = {(d.source_type, d.owner_id) for d in documents}
        merged = list(documents)
        for page in pages:
            if (SourceType.PAGE, page.id) in seen:
                continue
            relevance = keyword_relevance(question, f"{page.title} {page.summary}")
            if relevance > SUMMARY_RELEVANCE_CUTOFF:
                merged.append(
                    RetrievedUnit(
                        owner_id=page.id,
                        source_type=SourceType.PAGE,
                        title=page.title,
                        content=extract_content_text(page.content),
                        summary=page.summary,
                        similarity=relevance,
                        updated_at=page.updated_at,
                    )
                )
        merged.sort(key=lambda d: (d.similarity, d.updated_at), reverse=True)
        return merged[: self._max_results]

    async def _search_web(self, question: str) -> list[WebSearchResult]:
        if self._web_search is None or not self._web_search.is_available():
            return []
        try:
            return (await self._web_search.search(question, num_results=WEB_RESULTS))[:WEB_RESULTS]
        except Exception as exc:  # noqa: BLE001
            logger.warning("web_search_failed", error=str(exc))
            return []

    async def _auto_title(self, conversation_id: str, question: str) -> None:
        try:
            await self._store.update_conversation_title(conversation_id, derive_title(question))
        except PersistenceError as exc:
            logger.warning("conversation_title_update_failed", error=str(exc))


# ---------------------------------------------------------------------------
# Prompt and citation helpers
# ---------------------------------------------------------------------------


def _system_prompt(mode: ConversationMode) -> str:
    return HELP_SYSTEM_PROMPT if mode is ConversationMode.HELP else WORKSPACE_SYSTEM_PROMPT


def derive_title(question: str) -> str:
    return truncate(question.strip(), TITLE_CHARS)


def _document_text(doc: RetrievedUnit) -> str:
    return doc.summary or doc.content[:DOCUMENT_CONTEXT_CHARS]


def build_prompt(
    question: str,
    documents: list[RetrievedUnit],
    history: list[Message],
    web_results: list[WebSearchResult],
    mode: ConversationMode = ConversationMode.WORKSPACE,
) -> str:
    """User prompt for one exchange.

    *history* holds the messages before the current question; only the
    last few are included.
    """
    history_text = "\n".join(
        f"{m.role.value.upper()}: {m.content}" for m in history[-PROMPT_HISTORY_MESSAGES:]
    )
    document_text = "\n".join(
        f'[{_SOURCE_LABELS[doc.source_type]} {i}: "{doc.title}"]\n{_document_text(doc)}\n---'
        for i, doc in enumerate(documents, start=1)
    )

    if mode is ConversationMode.HELP:
        intro = "You are a helpful assistant that explains how to use the application."
        source = "help documentation"
    else:
        intro = (
            "You are a helpful AI assistant that answers questions based on a "
            "workspace's knowledge base."
        )
        source = "documents"

    sections = [
        intro,
        f"CONVERSATION HISTORY:\n{history_text}",
        f"RELEVANT DOCUMENTS:\n{document_text}",
    ]
    if web_results:
        web_text = "\n".join(
            f"[Web {i}: {r.title}] {r.url}\n{r.snippet or ''}".rstrip()
            for i, r in enumerate(web_results, start=1)
        )
        sections.append(f"WEB RESULTS:\n{web_text}")
    sections.append(f"CURRENT QUESTION: {question}")
    sections.append(
        "INSTRUCTIONS:\n"
        f"1. Answer the question using the provided {source} as your primary source\n"
        "2. If they don't contain enough information, acknowledge this limitation\n"
        "3. Be concise but thorough\n"
        "4. Reference specific documents when relevant\n"
        "5. If building on conversation history, acknowledge previous context"
    )
    return "\n\n".join(sections)


def build_citations(documents: list[RetrievedUnit]) -> list[Citation]:
    return [
        Citation(
            source_id=doc.owner_id,
            source_title=doc.title,
            source_type=doc.source_type,
            relevance=min(1.0, max(0.0, doc.similarity)),
            excerpt=truncate(doc.summary or doc.content, EXCERPT_CHARS),
        )
        for doc in documents[:MAX_CITATIONS]
    ]
