"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
The vectors are stored next to their content in the persistence store and
ranked by cosine similarity at query time.
"""

from workspace_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
