"""Shared pytest fixtures for the workspace_rag test suite."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from workspace_rag.config.settings import Settings
from workspace_rag.interfaces.embedding_provider import IEmbeddingProvider
from workspace_rag.interfaces.llm_provider import ChatMessage, ILLMProvider
from workspace_rag.interfaces.web_search_provider import IWebSearchProvider, WebSearchResult
from workspace_rag.models.content import PageRecord
from workspace_rag.providers.persistence.sqlite_store import SQLitePersistenceStore
from workspace_rag.providers.vector_store.chromadb_provider import ChromaDBVectorStore
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.services.retrieval_engine import RetrievalEngine
from workspace_rag.utils.errors import EmbeddingError, LLMError

# ---------------------------------------------------------------------------
# Deterministic model fakes
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 1024
_FAKE_STOP_WORDS = {"the", "and", "for", "with", "what", "how", "are", "was", "this", "that"}


def bag_of_words_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Hash each significant word into a bucket and L2-normalise the counts.

    Texts that share words get a positive cosine similarity; texts with no
    words in common score (almost always) zero.  Deterministic.
    """
    values = [0.0] * dim
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        if len(word) < 3 or word in _FAKE_STOP_WORDS:
            continue
        bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % dim
        values[bucket] += 1.0
    magnitude = sum(v * v for v in values) ** 0.5
    if magnitude == 0:
        return values
    return [v / magnitude for v in values]


class BagOfWordsEmbeddingProvider(IEmbeddingProvider):
    """In-memory embedding fake that counts its calls."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.fail = False

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if self.fail:
            raise EmbeddingError(message="embedding service down", provider_name="fake")
        self.calls.extend(texts)
        return [bag_of_words_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "fake-embedding"

    def is_available(self) -> bool:
        return True


class ScriptedLLMProvider(ILLMProvider):
    """Text-generation fake returning queued replies, then a default one."""

    def __init__(self, replies: list[str] | None = None, default: str = "Scripted answer.") -> None:
        self.replies = list(replies or [])
        self.default = default
        self.requests: list[list[ChatMessage]] = []
        self.fail = False

    async def generate(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> str:
        self.requests.append(messages)
        if self.fail:
            raise LLMError(message="generation service down", provider_name="fake")
        return self.replies.pop(0) if self.replies else self.default

    def get_provider_name(self) -> str:
        return "fake-llm"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_page(
    page_id: str = "page-1",
    title: str = "Project Management Guide",
    body: str = "Project management covers planning, tracking tasks and deadlines.",
    workspace_id: str = "ws-1",
    tags: list[str] | None = None,
    **extra: Any,
) -> PageRecord:
    """Page whose content is structured editor blocks holding *body*."""
    return PageRecord(
        id=page_id,
        workspace_id=workspace_id,
        title=title,
        content={"blocks": [{"type": "paragraph", "content": [{"text": body}]}]},
        tags=tags or [],
        **extra,
    )


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "openai_api_key": "",
        "store_db_path": str(tmp_path / "workspace.db"),
        "chroma_persist_dir": str(tmp_path / "chroma"),
        "help_content_path": str(tmp_path / "help.md"),
        "embedding_batch_delay": 0.0,
        "summary_batch_delay": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedder() -> BagOfWordsEmbeddingProvider:
    return BagOfWordsEmbeddingProvider()


@pytest.fixture
def llm() -> ScriptedLLMProvider:
    return ScriptedLLMProvider()


@pytest.fixture
def mock_web_search() -> IWebSearchProvider:
    """Mock IWebSearchProvider returning two canned results."""
    mock = MagicMock(spec=IWebSearchProvider)
    mock.get_provider_name.return_value = "mock-search"
    mock.is_available.return_value = True
    mock.search = AsyncMock(
        return_value=[
            WebSearchResult(
                title="Mars weather report",
                url="https://example.com/mars",
                snippet="Cold and dusty.",
            ),
            WebSearchResult(title="Second result", url="https://example.com/2"),
        ]
    )
    return mock


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLitePersistenceStore:
    """SQLite store on a temp file, tables created."""
    s = SQLitePersistenceStore(db_path=tmp_path / "store.db")
    await s.initialize()
    return s


@pytest.fixture
def vectors(tmp_path: Path) -> ChromaDBVectorStore:
    """ChromaDB collection persisted under the test's temp directory."""
    return ChromaDBVectorStore(persist_directory=str(tmp_path / "chroma"))


@pytest.fixture
def indexer(
    embedder: BagOfWordsEmbeddingProvider,
    store: SQLitePersistenceStore,
    vectors: ChromaDBVectorStore,
) -> EmbeddingIndexer:
    return EmbeddingIndexer(embedder, store, vectors, batch_size=2, batch_delay=0.0)


@pytest.fixture
def retrieval(
    embedder: BagOfWordsEmbeddingProvider,
    store: SQLitePersistenceStore,
    vectors: ChromaDBVectorStore,
) -> RetrievalEngine:
    return RetrievalEngine(embedder, store, vectors)
