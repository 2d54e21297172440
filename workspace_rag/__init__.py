"""Workspace knowledge pipeline: chunking, embeddings, retrieval and RAG chat.

Build the services with :func:`workspace_rag.main.build_services`; run the
command-line tools with ``python -m workspace_rag.cli``.
"""

__version__ = "0.1.0"
