"""Document ingestion: **parse -> chunk**.

1. **Parse** (document_ingestor) -- PyMuPDF and python-docx turn uploaded
   PDF and DOCX bytes into plain text.
2. **Chunk** (chunker) -- the text is split into overlapping,
   token-bounded chunks measured with tiktoken.

Embedding the chunks is the job of
:class:`~workspace_rag.services.file_embedding_service.FileEmbeddingService`.
"""

from workspace_rag.services.ingestion.chunker import TextChunker
from workspace_rag.services.ingestion.document_ingestor import DocumentIngestor

__all__ = ["DocumentIngestor", "TextChunker"]
