"""Multi-source semantic retrieval with an explicit strategy fallback chain.

A search runs an ordered list of named strategies and stops at the first
one that answers:

1. ``multi_source_vector`` -- one similarity query spanning every requested
   source type (pages, file chunks, help sections).
2. ``page_only_vector`` -- the same query restricted to pages.
3. ``keyword`` -- case-insensitive substring match on page title and body.

A strategy is skipped over only when it raises or its raw response is
empty.  Candidates that come back but score below the threshold do not
trigger a fallback; the threshold is applied to whichever strategy
answered.  When every strategy fails the result is empty, never an error.
The strategy that produced the results, and every strategy attempted, are
recorded on the :class:`~workspace_rag.models.retrieval.RetrievalResult`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from workspace_rag.interfaces.embedding_provider import IEmbeddingProvider
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.interfaces.vector_store_provider import IVectorStoreProvider
from workspace_rag.models.content import GLOBAL_SCOPE, PageRecord, SourceType
from workspace_rag.models.retrieval import (
    RetrievalResult,
    RetrievalStrategy,
    RetrievedUnit,
    SearchOptions,
    SimilarityRow,
)
from workspace_rag.utils.errors import PersistenceError
from workspace_rag.utils.text import extract_page_text

logger = structlog.get_logger(logger_name=__name__)

# Ask the vector store for more rows than needed so thresholding, merging and tag
# filtering still leave max_results behind.
_CANDIDATE_MULTIPLIER = 2

# Keyword matches have no cosine score; they are ranked by where the query hit.
KEYWORD_TITLE_SCORE = 0.9
KEYWORD_CONTENT_SCORE = 0.6
KEYWORD_OTHER_SCORE = 0.3

# Passed to the vector store so that thresholding happens here, after the
# fallback decision.
_NO_FLOOR = -1.0

_Strategy = Callable[[str, str, SearchOptions], Awaitable[list[RetrievedUnit]]]


class RetrievalEngine:
    """Ranks stored content against a query across source types.

    Parameters
    ----------
    embedding_provider:
        Used once per search to embed the query text.
    store:
        Persistence store used for keyword search and page lookups.
    vector_store:
        Exposes the similarity operator.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        store: IPersistenceStore,
        vector_store: IVectorStoreProvider,
    ) -> None:
        self._embedder = embedding_provider
        self._store = store
        self._vectors = vector_store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        scope: str,
        options: SearchOptions | None = None,
    ) -> RetrievalResult:
        """Return up to ``options.max_results`` units with similarity >= threshold.

        Parameters
        ----------
        query:
            Natural-language query text.
        scope:
            Workspace id, or ``"global"`` for help-only searches.
        options:
            Threshold, result cap, source types and required tags.
        """
        opts = options or SearchOptions()
        if not query.strip():
            return RetrievalResult(query=query, threshold=opts.threshold)

        vector_cache: list[list[float]] = []

        async def query_vector() -> list[float]:
            if not vector_cache:
                vector_cache.append(await self._embedder.embed_single(query))
            return vector_cache[0]

        attempted: list[RetrievalStrategy] = []
        for name, strategy in self._strategies(opts, query_vector):
            attempted.append(name)
            try:
                candidates = await strategy(query, scope, opts)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "retrieval_strategy_failed",
                    strategy=name.value,
                    scope=scope,
                    error=str(exc),
                )
                continue
            if not candidates:
                logger.debug("retrieval_strategy_empty", strategy=name.value, scope=scope)
                continue

            results = self._finalize(candidates, opts)
            results = await self._attach_summaries(results)
            logger.info(
                "retrieval_complete",
                strategy=name.value,
                scope=scope,
                candidates=len(candidates),
                returned=len(results),
            )
            return RetrievalResult(
                query=query,
                results=results,
                strategy=name,
                attempted=attempted,
                threshold=opts.threshold,
            )

        logger.info("retrieval_no_results", scope=scope, attempted=[a.value for a in attempted])
        return RetrievalResult(query=query, attempted=attempted, threshold=opts.threshold)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _strategies(
        self,
        opts: SearchOptions,
        query_vector: Callable[[], Awaitable[list[float]]],
    ) -> list[tuple[RetrievalStrategy, _Strategy]]:
        async def multi_source(query: str, scope: str, o: SearchOptions) -> list[RetrievedUnit]:
            vector = await query_vector()
            rows = await self._vectors.multi_source_search(
                vector, scope, o.source_types, _NO_FLOOR, o.max_results * _CANDIDATE_MULTIPLIER
            )
            return [_row_to_unit(r) for r in rows]

        async def page_only(query: str, scope: str, o: SearchOptions) -> list[RetrievedUnit]:
            vector = await query_vector()
            rows = await self._vectors.similarity_search(
                vector, scope, SourceType.PAGE, _NO_FLOOR, o.max_results * _CANDIDATE_MULTIPLIER
            )
            return [_row_to_unit(r) for r in rows]

        strategies: list[tuple[RetrievalStrategy, _Strategy]] = [
            (RetrievalStrategy.MULTI_SOURCE, multi_source)
        ]
        # The page-level fallbacks only make sense for workspace content.
        if SourceType.PAGE in opts.source_types:
            strategies.append((RetrievalStrategy.PAGE_ONLY, page_only))
            strategies.append((RetrievalStrategy.KEYWORD, self._keyword))
        return strategies

    async def _keyword(self, query: str, scope: str, opts: SearchOptions) -> list[RetrievedUnit]:
        if scope == GLOBAL_SCOPE:
            return []
        pages = await self._store.keyword_search(
            scope, query, opts.max_results * _CANDIDATE_MULTIPLIER
        )
        return [_page_to_keyword_unit(page, query) for page in pages]

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    @staticmethod
    def _finalize(candidates: list[RetrievedUnit], opts: SearchOptions) -> list[RetrievedUnit]:
        """Threshold, merge per owner, tag-filter and rank *candidates*."""
        best: dict[tuple[SourceType, str], RetrievedUnit] = {}
        for unit in candidates:
            if unit.similarity < opts.threshold:
                continue
            key = (unit.source_type, unit.owner_id)
            current = best.get(key)
            if current is None or unit.similarity > current.similarity:
                best[key] = unit

        required = {t.lower() for t in opts.required_tags}
        merged = [u for u in best.values() if _has_tags(u, required)]
        merged.sort(key=lambda u: (u.similarity, u.updated_at), reverse=True)
        return merged[: opts.max_results]

    async def _attach_summaries(self, results: list[RetrievedUnit]) -> list[RetrievedUnit]:
        """Fill ``summary`` for page results from the page rows (best-effort)."""
        enriched: list[RetrievedUnit] = []
        for unit in results:
            if unit.source_type is SourceType.PAGE and unit.summary is None:
                try:
                    page = await self._store.get_page(unit.owner_id)
                except PersistenceError as exc:
                    logger.debug("summary_lookup_failed", page_id=unit.owner_id, error=str(exc))
                    page = None
                if page is not None and page.summary:
                    unit = unit.model_copy(update={"summary": page.summary})
            enriched.append(unit)
        return enriched


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _row_to_unit(row: SimilarityRow) -> RetrievedUnit:
    # File chunks are merged per parent file, so the file id is the owner.
    owner = row.parent_id if row.source_type is SourceType.FILE and row.parent_id else row.owner_id
    return RetrievedUnit(
        owner_id=owner,
        source_type=row.source_type,
        title=row.title,
        content=row.content,
        similarity=min(1.0, max(0.0, row.similarity)),
        chunk_index=row.chunk_index,
        metadata=row.metadata,
        updated_at=row.updated_at,
    )


def _page_to_keyword_unit(page: PageRecord, query: str) -> RetrievedUnit:
    needle = query.strip().lower()
    text = extract_page_text(page.title, page.content, page.tags)
    if needle and needle in page.title.lower():
        score = KEYWORD_TITLE_SCORE
    elif needle and needle in text.lower():
        score = KEYWORD_CONTENT_SCORE
    else:
        score = KEYWORD_OTHER_SCORE
    return RetrievedUnit(
        owner_id=page.id,
        source_type=SourceType.PAGE,
        title=page.title,
        content=text,
        summary=page.summary,
        similarity=score,
        metadata={"tags": list(page.tags)},
        updated_at=page.updated_at,
    )


def _has_tags(unit: RetrievedUnit, required: set[str]) -> bool:
    if not required:
        return True
    tags = unit.metadata.get("tags") or []
    return required.issubset({str(t).lower() for t in tags})
