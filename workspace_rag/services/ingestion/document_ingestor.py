"""Plain-text extraction from uploaded PDF and DOCX files.

PDF text is read page by page with PyMuPDF (``fitz``); DOCX paragraphs are
read with python-docx.  Both extractors are synchronous, so :meth:`parse`
runs them in a worker thread.  The ingestor performs no chunking itself;
its ``text`` feeds :class:`~workspace_rag.services.ingestion.chunker.TextChunker`.
"""

from __future__ import annotations

import asyncio
import io

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from docx import Document

from workspace_rag.models.content import ParsedDocument
from workspace_rag.utils.errors import ParseFailure, UnsupportedFormat
from workspace_rag.utils.text import word_count

logger = structlog.get_logger(logger_name=__name__)

SUPPORTED_FILE_TYPES = frozenset({"pdf", "docx"})


class DocumentIngestor:
    """Extracts text plus page/word/character counts from binary documents."""

    async def parse(self, file_bytes: bytes, file_type: str) -> ParsedDocument:
        """Extract plain text from *file_bytes*.

        Parameters
        ----------
        file_bytes:
            Raw uploaded file content.
        file_type:
            ``"pdf"`` or ``"docx"`` (case-insensitive, leading dot allowed).

        Raises
        ------
        UnsupportedFormat
            For any other file type.
        ParseFailure
            When the underlying extractor fails (corrupt or encrypted file).
        """
        normalized = normalize_file_type(file_type)
        return await asyncio.to_thread(self.parse_sync, file_bytes, normalized)

    def parse_sync(self, file_bytes: bytes, file_type: str) -> ParsedDocument:
        """Blocking variant of :meth:`parse`."""
        normalized = normalize_file_type(file_type)
        if normalized == "pdf":
            text, page_count = self._extract_pdf(file_bytes)
        else:
            text, page_count = self._extract_docx(file_bytes), None

        text = text.strip()
        parsed = ParsedDocument(
            text=text,
            file_type=normalized,
            page_count=page_count,
            word_count=word_count(text),
            character_count=len(text),
        )
        logger.info(
            "document_parsed",
            file_type=normalized,
            page_count=page_count,
            word_count=parsed.word_count,
        )
        return parsed

    # ------------------------------------------------------------------
    # Format-specific extractors
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(file_bytes: bytes) -> tuple[str, int]:
        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as exc:
            logger.error("pdf_open_failed", error=str(exc))
            raise ParseFailure(message=f"Failed to parse PDF file: {exc}") from exc

        try:
            pages = [doc[page_num].get_text("text") for page_num in range(len(doc))]
            page_count = len(doc)
        except Exception as exc:
            logger.error("pdf_text_extraction_failed", error=str(exc))
            raise ParseFailure(message=f"Failed to parse PDF file: {exc}") from exc
        finally:
            doc.close()

        if not any(p.strip() for p in pages):
            logger.warning("pdf_no_text_extracted", page_count=page_count)
        return "\n".join(pages), page_count

    @staticmethod
    def _extract_docx(file_bytes: bytes) -> str:
        try:
            doc = Document(io.BytesIO(file_bytes))
        except Exception as exc:
            logger.error("docx_open_failed", error=str(exc))
            raise ParseFailure(message=f"Failed to parse DOCX file: {exc}") from exc
        return "\n\n".join(para.text for para in doc.paragraphs if para.text.strip())


def normalize_file_type(file_type: str) -> str:
    """Lower-case *file_type*, strip a leading dot, and check it is supported."""
    normalized = (file_type or "").strip().lower().lstrip(".")
    if normalized not in SUPPORTED_FILE_TYPES:
        raise UnsupportedFormat(message=f"Unsupported file type: {file_type}")
    return normalized
