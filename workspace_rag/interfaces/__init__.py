"""Public interface definitions for every external collaborator.

Services never talk to the OpenAI SDK, SQLite, ChromaDB or DuckDuckGo directly; they
receive an implementation of one of these abstract base classes through
their constructor.  Swapping a backend means changing one line in
``workspace_rag/main.py``, and unit tests inject deterministic fakes.

CONCRETE PROVIDER MAP:
    Interface              ->  Concrete implementation (in workspace_rag/providers/)
    ---------------------------------------------------------------------
    IEmbeddingProvider     ->  OpenAIEmbeddingProvider
    ILLMProvider           ->  OpenAILLMProvider
    IWebSearchProvider     ->  DuckDuckGoSearchProvider
    IPersistenceStore      ->  SQLitePersistenceStore
    IVectorStoreProvider   ->  ChromaDBVectorStore
"""

from workspace_rag.interfaces.embedding_provider import IEmbeddingProvider
from workspace_rag.interfaces.llm_provider import ChatMessage, ILLMProvider
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.interfaces.vector_store_provider import IVectorStoreProvider
from workspace_rag.interfaces.web_search_provider import IWebSearchProvider, WebSearchResult

__all__ = [
    "ChatMessage",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IPersistenceStore",
    "IVectorStoreProvider",
    "IWebSearchProvider",
    "WebSearchResult",
]
