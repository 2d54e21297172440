"""Composition root for the workspace knowledge pipeline.

Builds every provider and service from :class:`Settings` and wires them by
constructor injection.  Callers (the CLI, an application embedding the
pipeline, integration tests) get a flat dict of named components, the same
shape whatever the entry point.

Any provider can be passed in pre-built; only the missing ones are
constructed from settings.  Tests use this to substitute deterministic
fakes for the model services.
"""

from __future__ import annotations

from typing import Any

import structlog

from workspace_rag.config.loader import load_config
from workspace_rag.config.settings import Settings, ThresholdUseCase
from workspace_rag.interfaces.embedding_provider import IEmbeddingProvider
from workspace_rag.interfaces.llm_provider import ILLMProvider
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.interfaces.vector_store_provider import IVectorStoreProvider
from workspace_rag.interfaces.web_search_provider import IWebSearchProvider
from workspace_rag.models.content import ChunkingOptions
from workspace_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from workspace_rag.providers.llm.openai_provider import OpenAILLMProvider
from workspace_rag.providers.persistence.sqlite_store import SQLitePersistenceStore
from workspace_rag.providers.search.duckduckgo_provider import DuckDuckGoSearchProvider
from workspace_rag.providers.vector_store.chromadb_provider import ChromaDBVectorStore
from workspace_rag.services.conversation_orchestrator import ConversationOrchestrator
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.services.file_embedding_service import FileEmbeddingService
from workspace_rag.services.help_content_service import HelpContentService
from workspace_rag.services.ingestion.chunker import TextChunker
from workspace_rag.services.ingestion.document_ingestor import DocumentIngestor
from workspace_rag.services.link_suggestion_scorer import (
    LinkSuggestionScorer,
    LinkSuggestionService,
)
from workspace_rag.services.page_lifecycle import PageLifecycleService
from workspace_rag.services.retrieval_engine import RetrievalEngine
from workspace_rag.services.summary_service import SummaryService
from workspace_rag.services.task_queue import TaskQueue
from workspace_rag.utils.errors import ConfigurationError
from workspace_rag.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    provider = OpenAIEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        raise ConfigurationError(
            message="OPENAI_API_KEY is required for embeddings", provider_name="openai"
        )
    return provider


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    provider = OpenAILLMProvider(settings=app_settings)
    if not provider.is_available():
        raise ConfigurationError(
            message="OPENAI_API_KEY is required for text generation", provider_name="openai"
        )
    return provider


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_services(
    app_settings: Settings | None = None,
    *,
    embedding_provider: IEmbeddingProvider | None = None,
    llm_provider: ILLMProvider | None = None,
    store: IPersistenceStore | None = None,
    vector_store: IVectorStoreProvider | None = None,
    web_search: IWebSearchProvider | None = None,
) -> dict[str, Any]:
    """Construct every provider and service.

    The store is returned uninitialised; call
    ``await services["store"].initialize()`` before first use.

    Raises
    ------
    ConfigurationError
        If a model provider must be built from settings and no API key is
        configured.
    """
    app_settings = app_settings or Settings()
    config = load_config(settings=app_settings)

    # -- Providers --
    embedder = embedding_provider or _build_embedding_provider(app_settings)
    llm = llm_provider or _build_llm_provider(app_settings)
    persistence = store or SQLitePersistenceStore(db_path=app_settings.store_db_path)
    vectors = vector_store or ChromaDBVectorStore(
        persist_directory=app_settings.chroma_persist_dir,
        collection_name=app_settings.chroma_collection,
    )
    if web_search is None and app_settings.web_search_enabled:
        web_search = DuckDuckGoSearchProvider()

    # -- Indexing --
    indexer = EmbeddingIndexer(
        embedding_provider=embedder,
        store=persistence,
        vector_store=vectors,
        batch_size=app_settings.embedding_batch_size,
        batch_delay=app_settings.embedding_batch_delay,
        default_threshold=app_settings.threshold_for(ThresholdUseCase.PAGE_SEARCH),
    )
    summaries = SummaryService(
        llm_provider=llm,
        store=persistence,
        indexer=indexer,
        batch_size=app_settings.summary_batch_size,
        batch_delay=app_settings.summary_batch_delay,
    )
    queue = TaskQueue(max_history=config.get("tasks", {}).get("max_history", 100))
    lifecycle = PageLifecycleService(
        store=persistence, indexer=indexer, summaries=summaries, queue=queue
    )

    # -- Ingestion --
    chunker = TextChunker(
        options=ChunkingOptions(
            max_tokens=app_settings.chunk_max_tokens,
            overlap_tokens=app_settings.chunk_overlap_tokens,
            use_advanced=app_settings.use_advanced_chunking,
            preserve_code_blocks=app_settings.preserve_code_blocks,
            preserve_markdown=app_settings.preserve_markdown,
        ),
        encoding_name=app_settings.tokenizer_encoding,
    )
    ingestor = DocumentIngestor()

    # -- Retrieval and answering --
    retrieval = RetrievalEngine(embedding_provider=embedder, store=persistence, vector_store=vectors)
    files = FileEmbeddingService(
        ingestor=ingestor,
        chunker=chunker,
        indexer=indexer,
        retrieval=retrieval,
        vector_store=vectors,
        threshold=app_settings.threshold_for(ThresholdUseCase.FILE_SEARCH),
    )
    help_content = HelpContentService(
        indexer=indexer,
        retrieval=retrieval,
        vector_store=vectors,
        help_path=app_settings.help_content_path,
        threshold=app_settings.threshold_for(ThresholdUseCase.HELP),
    )
    orchestrator = ConversationOrchestrator(
        llm_provider=llm,
        store=persistence,
        retrieval=retrieval,
        web_search=web_search,
        workspace_threshold=app_settings.threshold_for(ThresholdUseCase.WORKSPACE_RAG),
        help_threshold=app_settings.threshold_for(ThresholdUseCase.HELP),
        max_results=app_settings.chat_max_results,
        history_messages=app_settings.chat_history_messages,
    )
    links = LinkSuggestionService(
        store=persistence,
        scorer=LinkSuggestionScorer(),
        indexer=indexer,
        semantic_threshold=app_settings.threshold_for(ThresholdUseCase.LINK_SEMANTIC),
    )

    _logger.info(
        "services_built",
        embedding_provider=embedder.get_provider_name(),
        llm_provider=llm.get_provider_name(),
        store=persistence.get_provider_name(),
        vector_store=vectors.get_provider_name(),
        web_search=web_search.get_provider_name() if web_search else None,
    )

    return {
        "settings": app_settings,
        "config": config,
        "embedding_provider": embedder,
        "llm_provider": llm,
        "store": persistence,
        "vector_store": vectors,
        "web_search": web_search,
        "indexer": indexer,
        "summaries": summaries,
        "task_queue": queue,
        "page_lifecycle": lifecycle,
        "chunker": chunker,
        "ingestor": ingestor,
        "retrieval": retrieval,
        "file_embeddings": files,
        "help_content": help_content,
        "orchestrator": orchestrator,
        "link_suggestions": links,
    }
