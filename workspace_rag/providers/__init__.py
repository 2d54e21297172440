"""Concrete adapters for the abstract interfaces in ``workspace_rag.interfaces``.

Each sub-package wraps one third-party service:
    embedding/    -- OpenAI-compatible embeddings API
    llm/          -- OpenAI-compatible chat completions API
    search/       -- DuckDuckGo web search
    persistence/  -- SQLite via aiosqlite (pages, conversations, messages)
    vector_store/ -- ChromaDB (embeddings and similarity search)
"""
