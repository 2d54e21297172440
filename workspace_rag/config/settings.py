"""Application settings loaded from environment variables via pydantic-settings.

Settings are read from two sources, in priority order:

1. **Environment variables** -- e.g. ``OPENAI_API_KEY=sk-abc123``
2. **.env file** -- key=value lines in the project root

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults apply
when neither source defines a value.

Similarity thresholds are configured per use case rather than as a single
global value: help text is curated and sparse, so it tolerates a lower
floor than workspace page search, and "strict" duplicate checks need a much
higher one.
"""

from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict


class ThresholdUseCase(str, Enum):
    """Named call sites that apply a similarity threshold."""

    WORKSPACE_RAG = "workspace_rag"
    CHAT_PAGES = "chat_pages"
    HELP = "help"
    PAGE_SEARCH = "page_search"
    FILE_SEARCH = "file_search"
    LINK_SEMANTIC = "link_semantic"
    STRICT = "strict"


class Settings(BaseSettings):
    """Workspace knowledge pipeline settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Model services ===
    # Empty string = "not configured"; main.py refuses to build OpenAI
    # adapters without a key.
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_text_model: str = ""  # Defaults to gpt-4o-mini when empty
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small when empty
    openai_timeout_seconds: float = 30.0

    # === Persistence ===
    store_db_path: str = "data/workspace_rag.db"
    help_content_path: str = "docs/help.md"
    chroma_persist_dir: str = "data/chromadb"
    chroma_collection: str = "workspace_rag_embeddings"

    # === Chunking ===
    chunk_max_tokens: int = 1000
    chunk_overlap_tokens: int = 200
    use_advanced_chunking: bool = True
    preserve_code_blocks: bool = True
    preserve_markdown: bool = True
    tokenizer_encoding: str = "cl100k_base"

    # === Indexing pacing ===
    embedding_batch_size: int = 5
    embedding_batch_delay: float = 1.0
    summary_batch_size: int = 3
    summary_batch_delay: float = 2.0

    # === Retrieval thresholds (per use case) ===
    threshold_workspace_rag: float = 0.3
    threshold_chat_pages: float = 0.6
    threshold_help: float = 0.5
    threshold_page_search: float = 0.7
    threshold_file_search: float = 0.6
    threshold_link_semantic: float = 0.65
    threshold_strict: float = 0.9

    # === Conversations ===
    chat_max_results: int = 5
    chat_history_messages: int = 6
    web_search_enabled: bool = False

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def threshold_for(self, use_case: ThresholdUseCase | str) -> float:
        """Return the similarity threshold configured for *use_case*."""
        key = ThresholdUseCase(use_case).value
        return float(getattr(self, f"threshold_{key}"))

    def get_available_model_services(self) -> list[str]:
        """Return the names of model services that have credentials configured."""
        services: list[str] = []
        if self.openai_api_key:
            services.append("openai")
        return services
