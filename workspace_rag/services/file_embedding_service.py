"""Uploaded-file embeddings: parse, chunk, embed.

One uploaded PDF or DOCX becomes one embedding per chunk.  Chunk owner ids
are ``"{file_id}:{index}"`` with ``parent_id=file_id`` so that all of a
file's chunks can be listed or removed together and retrieval can merge
them back into a single hit per file.
"""

from __future__ import annotations

import structlog

from workspace_rag.interfaces.vector_store_provider import IVectorStoreProvider
from workspace_rag.models.content import Chunk, ChunkingOptions, SourceType
from workspace_rag.models.embedding import Embedding, FileEmbeddingResult
from workspace_rag.models.retrieval import RetrievedUnit, SearchOptions
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.services.ingestion.chunker import TextChunker
from workspace_rag.services.ingestion.document_ingestor import DocumentIngestor
from workspace_rag.services.retrieval_engine import RetrievalEngine
from workspace_rag.utils.errors import (
    ExternalServiceError,
    ParseFailure,
    PersistenceError,
    UnsupportedFormat,
    ValidationError,
)
from workspace_rag.utils.text import word_count

logger = structlog.get_logger(logger_name=__name__)


def chunk_owner_id(file_id: str, index: int) -> str:
    return f"{file_id}:{index}"


class FileEmbeddingService:
    """Turns uploaded documents into searchable chunk embeddings.

    Parameters
    ----------
    ingestor:
        Extracts plain text from the uploaded bytes.
    chunker:
        Splits the text into token-bounded chunks.
    indexer:
        Embeds and stores each chunk.
    retrieval:
        Used by :meth:`search_file_embeddings`.
    vector_store:
        Lists and deletes a file's chunk embeddings.
    threshold:
        Similarity floor for file searches.
    """

    def __init__(
        self,
        ingestor: DocumentIngestor,
        chunker: TextChunker,
        indexer: EmbeddingIndexer,
        retrieval: RetrievalEngine,
        vector_store: IVectorStoreProvider,
        threshold: float = 0.6,
    ) -> None:
        self._ingestor = ingestor
        self._chunker = chunker
        self._indexer = indexer
        self._retrieval = retrieval
        self._vectors = vector_store
        self._threshold = threshold

    async def process_file(
        self,
        file_id: str,
        file_bytes: bytes,
        file_type: str,
        workspace_id: str,
        title: str = "",
        options: ChunkingOptions | None = None,
    ) -> FileEmbeddingResult:
        """Parse, chunk and embed one uploaded file.

        Existing chunks of the same file are replaced.  Failures are
        reported on the result rather than raised.
        """
        try:
            document = await self._ingestor.parse(file_bytes, file_type)
            result = self._chunker.chunk_with_metadata(document.text, options, parent_id=file_id)
        except (UnsupportedFormat, ParseFailure, ValidationError) as exc:
            logger.error("file_parse_failed", file_id=file_id, file_type=file_type, error=str(exc))
            return FileEmbeddingResult(file_id=file_id, chunks=0, success=False, error=str(exc))

        if not result.chunks:
            logger.info("file_has_no_text", file_id=file_id)
            return FileEmbeddingResult(
                file_id=file_id, chunks=0, success=True, chunking_method=result.method.value
            )

        await self.delete_file_embeddings(file_id)
        stored = 0
        try:
            for chunk in result.chunks:
                await self._store_chunk(file_id, workspace_id, title, chunk, result.method.value)
                stored += 1
        except (ExternalServiceError, PersistenceError) as exc:
            logger.error("file_embedding_failed", file_id=file_id, stored=stored, error=str(exc))
            return FileEmbeddingResult(
                file_id=file_id,
                chunks=stored,
                success=False,
                error=str(exc),
                chunking_method=result.method.value,
            )

        logger.info(
            "file_embedded",
            file_id=file_id,
            chunks=stored,
            method=result.method.value,
            pages=document.page_count,
            words=document.word_count,
        )
        return FileEmbeddingResult(
            file_id=file_id, chunks=stored, success=True, chunking_method=result.method.value
        )

    async def _store_chunk(
        self, file_id: str, workspace_id: str, title: str, chunk: Chunk, method: str
    ) -> None:
        await self._indexer.upsert_unit(
            chunk_owner_id(file_id, chunk.index),
            chunk.text,
            title=title,
            source_type=SourceType.FILE,
            scope=workspace_id,
            parent_id=file_id,
            chunk_index=chunk.index,
            metadata={
                "chunk_length": chunk.char_count,
                "chunk_words": word_count(chunk.text),
                "token_count": chunk.token_count,
                "chunking_method": method,
            },
            check_existing=False,
        )

    async def delete_file_embeddings(self, file_id: str) -> int:
        """Remove every chunk embedding of *file_id*.  Store errors are logged."""
        try:
            removed = await self._vectors.delete_embeddings_by_parent(file_id)
        except PersistenceError as exc:
            logger.error("file_embedding_delete_failed", file_id=file_id, error=str(exc))
            return 0
        if removed:
            logger.info("file_embeddings_deleted", file_id=file_id, removed=removed)
        return removed

    async def get_file_embeddings(self, file_id: str) -> list[Embedding]:
        """A file's chunk embeddings in chunk order."""
        return await self._vectors.list_embeddings_by_parent(file_id)

    async def search_file_embeddings(
        self, query: str, workspace_id: str, max_results: int = 10
    ) -> list[RetrievedUnit]:
        result = await self._retrieval.search(
            query,
            workspace_id,
            SearchOptions(
                threshold=self._threshold,
                max_results=max_results,
                source_types=[SourceType.FILE],
            ),
        )
        return result.results
