"""Static product-help content, indexed for help-mode retrieval.

The help document is a markdown file split on level-two headers; text
before the first header becomes an ``Introduction`` section.  Each section
is embedded as one global :class:`~workspace_rag.models.content.ContentUnit`
of source type ``help`` so help-mode conversations can search it without a
workspace scope.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import structlog

from workspace_rag.interfaces.vector_store_provider import IVectorStoreProvider
from workspace_rag.models.content import GLOBAL_SCOPE, SourceType
from workspace_rag.models.retrieval import RetrievedUnit, SearchOptions
from workspace_rag.services.embedding_indexer import EmbeddingIndexer, text_hash
from workspace_rag.services.retrieval_engine import RetrievalEngine
from workspace_rag.utils.errors import ExternalServiceError, PersistenceError
from workspace_rag.utils.text import word_count

logger = structlog.get_logger(logger_name=__name__)

_SECTION_RE = re.compile(r"^## (.+)$", re.MULTILINE)
_LIST_RE = re.compile(r"^[\-\*\d+\.]", re.MULTILINE)
_SLUG_RE = re.compile(r"[^a-z0-9]+")

INTRODUCTION = "Introduction"
HELP_THRESHOLD = 0.5


@dataclass(frozen=True)
class HelpSection:
    section: str
    content: str
    slug: str

    @property
    def text(self) -> str:
        return f"{self.section}\n\n{self.content}"


def help_section_id(section: str) -> str:
    """Stable owner id for a help section, e.g. ``help:getting-started``."""
    return "help:" + (_SLUG_RE.sub("-", section.lower()).strip("-") or "section")


def parse_help_content(markdown: str) -> list[HelpSection]:
    """Split *markdown* into sections on ``## `` headers.

    Empty sections are dropped.  Text before the first header is kept as
    the ``Introduction`` section.  A section whose id repeats an earlier
    one gets a positional suffix (``help:faq-2``) so both are indexed.
    """
    sections: list[HelpSection] = []
    used: set[str] = set()
    current = INTRODUCTION
    lines: list[str] = []

    def flush() -> None:
        body = "\n".join(lines).strip()
        if not body:
            return
        base = slug = help_section_id(current)
        position = 1
        while slug in used:
            position += 1
            slug = f"{base}-{position}"
        used.add(slug)
        sections.append(HelpSection(section=current, content=body, slug=slug))

    for line in markdown.splitlines():
        match = _SECTION_RE.match(line)
        if match:
            flush()
            current = match.group(1).strip()
            lines = []
        else:
            lines.append(line)
    flush()
    return sections


class HelpContentService:
    """Indexes the help document and searches it."""

    def __init__(
        self,
        indexer: EmbeddingIndexer,
        retrieval: RetrievalEngine,
        vector_store: IVectorStoreProvider,
        help_path: str | Path = "docs/help.md",
        threshold: float = HELP_THRESHOLD,
    ) -> None:
        self._indexer = indexer
        self._retrieval = retrieval
        self._vectors = vector_store
        self._help_path = Path(help_path)
        self._threshold = threshold

    async def initialize_help_content(self, markdown: str | None = None) -> int:
        """Embed every help section; returns the number of sections indexed.

        Reads the configured help file when *markdown* is not given.
        Sections that disappeared from the document are removed.  Never
        raises: a missing file or a failing model leaves the previous index
        in place.
        """
        if markdown is None:
            try:
                markdown = self._help_path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.error("help_content_unreadable", path=str(self._help_path), error=str(exc))
                return 0

        sections = parse_help_content(markdown)
        indexed = 0
        for section in sections:
            text = section.text
            try:
                await self._indexer.upsert_unit(
                    section.slug,
                    text,
                    title=section.section,
                    source_type=SourceType.HELP,
                    scope=GLOBAL_SCOPE,
                    digest=text_hash(text),
                    metadata={
                        "section": section.section,
                        "word_count": word_count(section.content),
                        "character_count": len(section.content),
                        "has_code_examples": "```" in section.content,
                        "has_lists": bool(_LIST_RE.search(section.content)),
                    },
                )
            except (ExternalServiceError, PersistenceError) as exc:
                logger.error("help_section_index_failed", section=section.section, error=str(exc))
                continue
            indexed += 1

        await self._remove_stale_sections({s.slug for s in sections})
        logger.info("help_content_initialized", sections=len(sections), indexed=indexed)
        return indexed

    async def search_help_content(self, query: str, max_results: int = 3) -> list[RetrievedUnit]:
        """Help sections most similar to *query*."""
        result = await self._retrieval.search(
            query,
            GLOBAL_SCOPE,
            SearchOptions(
                threshold=self._threshold,
                max_results=max_results,
                source_types=[SourceType.HELP],
            ),
        )
        return result.results

    async def _remove_stale_sections(self, current: set[str]) -> None:
        try:
            stored = await self._vectors.list_embedding_owner_ids(GLOBAL_SCOPE, SourceType.HELP)
        except PersistenceError as exc:
            logger.warning("help_stale_check_failed", error=str(exc))
            return
        for owner_id in stored - current:
            await self._indexer.delete(owner_id)
