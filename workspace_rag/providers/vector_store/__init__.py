"""Vector store implementations."""

from workspace_rag.providers.vector_store.chromadb_provider import ChromaDBVectorStore

__all__ = ["ChromaDBVectorStore"]
