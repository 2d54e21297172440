"""Custom exception hierarchy for the workspace knowledge pipeline.

All application exceptions inherit from :class:`WorkspaceRAGError`, which
carries an optional ``provider_name`` so error handlers can identify which
external collaborator (e.g. "openai", "sqlite", "pymupdf") caused the failure.

The hierarchy follows the failure taxonomy of the pipeline:

    WorkspaceRAGError  (base -- catch-all for any pipeline error)
    +-- ValidationError          (malformed caller input, rejected up front)
    +-- NotFoundError            (unknown conversation / page / file id)
    +-- ExternalServiceError     (model service call failed)
    |   +-- EmbeddingError       (embedding model)
    |   +-- LLMError             (text-generation model)
    +-- PersistenceError         (store read/write failed)
    +-- UnsupportedFormat        (document type the ingestor cannot read)
    +-- ParseFailure             (extractor raised on a corrupt document)
    +-- ConfigurationError       (startup / missing config)

``ExternalServiceError`` is always caught where the call is made and routed
into a fallback.  ``PersistenceError`` is only surfaced when losing the write
would corrupt conversation state.
"""


class WorkspaceRAGError(Exception):
    """Base exception for all pipeline errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for log
    scanning, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller-facing errors
# ---------------------------------------------------------------------------

class ValidationError(WorkspaceRAGError):
    """Raised when caller input is malformed (empty question, bad options)."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(WorkspaceRAGError):
    """Raised when a conversation, page, or file id does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External model services
# ---------------------------------------------------------------------------

class ExternalServiceError(WorkspaceRAGError):
    """Raised when an external model service call fails.

    Services catch this at the call site and degrade to a fallback
    strategy or a safe default answer.
    """

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(ExternalServiceError):
    """Raised when the embedding model call fails or returns bad vectors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(ExternalServiceError):
    """Raised when a text-generation call fails or returns an empty response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class PersistenceError(WorkspaceRAGError):
    """Raised when the persistence store fails to read or write."""

    def __init__(
        self,
        message: str = "Persistence store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Document ingestion
# ---------------------------------------------------------------------------

class UnsupportedFormat(WorkspaceRAGError):
    """Raised when a document type other than PDF or DOCX is submitted."""

    def __init__(
        self,
        message: str = "Unsupported document format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ParseFailure(WorkspaceRAGError):
    """Raised when the underlying extractor cannot read a document."""

    def __init__(
        self,
        message: str = "Document could not be parsed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(WorkspaceRAGError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
