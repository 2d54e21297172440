"""Heuristic inline-link suggestions.

Given the text being edited and the workspace's other pages, propose
pages worth linking to and the span of text the link should cover.

Scoring is expressed as ordered lists of small, independent rules.  Each
rule returns a bounded partial score and is testable on its own:

- **enhanced** rules score pages that already have an AI summary; the sum
  of the rule scores is the page's relevance, and confidence is that
  relevance boosted by ``1.2`` and clamped to ``1.0``.  Pages at or below
  ``0.6`` confidence are dropped.
- **basic** rules are plain string matching over every page.  They are
  used when the enhanced pass produces nothing (typically because no page
  has a summary yet) or raises.

:class:`LinkSuggestionService` gathers the candidates from the store,
widens short context with the tail of the current page, and excludes the
current page and pages it already links to.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.models.content import PageRecord
from workspace_rag.models.link import LinkSuggestion
from workspace_rag.services.embedding_indexer import EmbeddingIndexer
from workspace_rag.utils.text import (
    extract_content_text,
    extract_keywords,
    extract_linked_page_ids,
    tokenize_words,
)

logger = structlog.get_logger(logger_name=__name__)

ENHANCED_MAX_SUGGESTIONS = 8
BASIC_MAX_SUGGESTIONS = 10
CONFIDENCE_CUTOFF = 0.6
CONFIDENCE_BOOST = 1.2

GENERIC_TRIGGERS = ("link", "relevant", "page")
BUSINESS_TERMS = ("sales", "marketing", "product", "channel", "customer", "revenue", "strategy")

# Context shorter than this is widened with the tail of the current page.
_SHORT_CONTEXT_CHARS = 100
_CONTEXT_TAIL_CHARS = 500
_SEMANTIC_CANDIDATES = 30


@dataclass
class ScoringContext:
    """Pre-computed views of the context text shared by all rules."""

    text: str
    lower: str = field(init=False)
    words: set[str] = field(init=False)
    phrases: set[str] = field(init=False)

    def __post_init__(self) -> None:
        self.lower = self.text.lower()
        tokens = tokenize_words(self.text)
        self.words = set(tokens)
        self.phrases = _phrases(tokens)


# ---------------------------------------------------------------------------
# Enhanced rules: (context, page) -> bounded partial score
# ---------------------------------------------------------------------------


def exact_title_rule(ctx: ScoringContext, page: PageRecord) -> float:
    title = page.title.strip().lower()
    return 0.5 if len(title) > 2 and title in ctx.lower else 0.0


def title_words_rule(ctx: ScoringContext, page: PageRecord) -> float:
    words = [w for w in tokenize_words(page.title) if len(w) > 3]
    if not words:
        return 0.0
    return 0.3 * sum(1 for w in words if w in ctx.words) / len(words)


def summary_keywords_rule(ctx: ScoringContext, page: PageRecord) -> float:
    keywords = extract_keywords(page.summary or "", limit=30)
    if not keywords:
        return 0.0
    return 0.2 * sum(1 for k in keywords if k in ctx.words) / len(keywords)


def shared_phrases_rule(ctx: ScoringContext, page: PageRecord) -> float:
    page_phrases = _phrases(tokenize_words(f"{page.title} {page.summary or ''}"))
    return min(0.15, 0.05 * len(ctx.phrases & page_phrases))


ScoringRule = Callable[[ScoringContext, PageRecord], float]

ENHANCED_RULES: list[tuple[str, ScoringRule]] = [
    ("exact_title", exact_title_rule),
    ("title_words", title_words_rule),
    ("summary_keywords", summary_keywords_rule),
    ("shared_phrases", shared_phrases_rule),
]


# ---------------------------------------------------------------------------
# Basic rules: (context, page) -> list of (matched_text, start, end, confidence)
# ---------------------------------------------------------------------------

_Match = tuple[str, int, int, float]


def basic_exact_title(ctx: ScoringContext, page: PageRecord) -> list[_Match]:
    title = page.title.strip()
    if len(title) <= 2:
        return []
    start = ctx.lower.find(title.lower())
    if start == -1:
        return []
    confidence = 0.9 if len(title) > 5 else 0.7
    return [(ctx.text[start : start + len(title)], start, start + len(title), confidence)]


def basic_title_words(ctx: ScoringContext, page: PageRecord) -> list[_Match]:
    matches: list[_Match] = []
    for word in sorted({w for w in tokenize_words(page.title) if len(w) > 3}):
        span = _find_word(ctx.text, word)
        if span:
            matches.append((ctx.text[span[0] : span[1]], span[0], span[1], 0.6))
    return matches


def basic_generic_trigger(ctx: ScoringContext, page: PageRecord) -> list[_Match]:
    # Substring match, so "links" and "pages" also trigger.
    if page.title.strip() and any(t in ctx.lower for t in GENERIC_TRIGGERS):
        return [(page.title.strip(), 0, 0, 0.5)]
    return []


def basic_business_terms(ctx: ScoringContext, page: PageRecord) -> list[_Match]:
    """Any domain term in the context plus any domain term in the title.

    The two terms need not be the same word: "sales" in the text pairs
    with a "Marketing Plan" page.
    """
    title = page.title.strip()
    if not title:
        return []
    terms = set(BUSINESS_TERMS)
    if not (terms & ctx.words and terms & set(tokenize_words(title))):
        return []
    start, end = _locate(ctx, title)
    return [(title, start, end, 0.7)]


BASIC_RULES: list[tuple[str, Callable[[ScoringContext, PageRecord], list[_Match]]]] = [
    ("exact_title", basic_exact_title),
    ("title_words", basic_title_words),
    ("generic_trigger", basic_generic_trigger),
    ("business_terms", basic_business_terms),
]


class LinkSuggestionScorer:
    """Scores candidate pages against the text being edited."""

    def __init__(
        self,
        enhanced_rules: list[tuple[str, ScoringRule]] | None = None,
        basic_rules: list[tuple[str, Callable[[ScoringContext, PageRecord], list[_Match]]]]
        | None = None,
    ) -> None:
        self._enhanced_rules = enhanced_rules if enhanced_rules is not None else ENHANCED_RULES
        self._basic_rules = basic_rules if basic_rules is not None else BASIC_RULES

    def suggest(
        self,
        context_text: str,
        candidate_pages: list[PageRecord],
        max_suggestions: int = ENHANCED_MAX_SUGGESTIONS,
        current_page_id: str | None = None,
        enhanced_ids: set[str] | None = None,
    ) -> list[LinkSuggestion]:
        """Return suggestions sorted by confidence, enhanced path first.

        *enhanced_ids* optionally narrows the pages the enhanced path
        scores; the basic fallback always sees every candidate.
        """
        if not context_text.strip():
            return []
        pages = [p for p in candidate_pages if p.id != current_page_id]
        ctx = ScoringContext(context_text)
        enhanced_pool = (
            pages if enhanced_ids is None else [p for p in pages if p.id in enhanced_ids]
        )

        try:
            enhanced = self.score_enhanced(ctx, enhanced_pool, max_suggestions)
        except Exception as exc:  # noqa: BLE001
            logger.warning("enhanced_link_scoring_failed", error=str(exc))
            enhanced = []
        if enhanced:
            return enhanced

        basic = self.score_basic(ctx, pages)
        logger.debug("link_suggestions_basic", candidates=len(pages), suggestions=len(basic))
        return basic

    def score_enhanced(
        self,
        ctx: ScoringContext,
        pages: list[PageRecord],
        max_suggestions: int = ENHANCED_MAX_SUGGESTIONS,
    ) -> list[LinkSuggestion]:
        """Summary-aware scoring over pages that have a summary."""
        scored: list[LinkSuggestion] = []
        for page in pages:
            if not page.summary:
                continue
            relevance = sum(rule(ctx, page) for _, rule in self._enhanced_rules)
            confidence = min(1.0, relevance * CONFIDENCE_BOOST)
            if confidence <= CONFIDENCE_CUTOFF:
                continue
            matched = find_best_link_text(ctx.text, page.title)
            start, end = _locate(ctx, matched)
            scored.append(
                LinkSuggestion(
                    target_page_id=page.id,
                    target_title=page.title,
                    matched_text=matched,
                    start_index=start,
                    end_index=end,
                    confidence=confidence,
                    relevance_score=relevance,
                    summary=page.summary,
                    strategy="enhanced",
                )
            )
        scored.sort(key=lambda s: s.relevance_score or 0.0, reverse=True)
        return _dedupe(scored)[:max_suggestions]

    def score_basic(self, ctx: ScoringContext, pages: list[PageRecord]) -> list[LinkSuggestion]:
        """String-matching fallback over every page."""
        suggestions: list[LinkSuggestion] = []
        for page in pages:
            for _, rule in self._basic_rules:
                for matched, start, end, confidence in rule(ctx, page):
                    suggestions.append(
                        LinkSuggestion(
                            target_page_id=page.id,
                            target_title=page.title,
                            matched_text=matched,
                            start_index=start,
                            end_index=end,
                            confidence=confidence,
                            summary=page.summary,
                            strategy="basic",
                        )
                    )
        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return _dedupe(suggestions)[:BASIC_MAX_SUGGESTIONS]


class LinkSuggestionService:
    """Loads candidates for a page being edited and runs the scorer.

    When an indexer is supplied, pages semantically close to the context
    (``link_semantic`` threshold) are preferred as enhanced candidates;
    when that search finds nothing every summarised page is considered.
    """

    def __init__(
        self,
        store: IPersistenceStore,
        scorer: LinkSuggestionScorer | None = None,
        indexer: EmbeddingIndexer | None = None,
        semantic_threshold: float = 0.65,
    ) -> None:
        self._store = store
        self._scorer = scorer or LinkSuggestionScorer()
        self._indexer = indexer
        self._semantic_threshold = semantic_threshold

    async def suggest_links(
        self,
        text: str,
        workspace_id: str,
        page_id: str | None = None,
        max_suggestions: int = ENHANCED_MAX_SUGGESTIONS,
    ) -> list[LinkSuggestion]:
        """Suggest links for *text* typed into *page_id*.  Never raises."""
        try:
            pages = await self._store.list_workspace_pages(workspace_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("link_candidates_failed", workspace_id=workspace_id, error=str(exc))
            return []

        current = next((p for p in pages if p.id == page_id), None)
        context = text
        excluded: set[str] = {page_id} if page_id else set()
        if current is not None:
            if len(text) < _SHORT_CONTEXT_CHARS:
                tail = extract_content_text(current.content)[-_CONTEXT_TAIL_CHARS:]
                context = f"{tail} {text}".strip()
            excluded |= extract_linked_page_ids(current.content)

        candidates = [p for p in pages if p.id not in excluded]
        enhanced_ids = await self._semantic_candidates(context, workspace_id, candidates)
        suggestions = self._scorer.suggest(
            context, candidates, max_suggestions, page_id, enhanced_ids
        )
        logger.info(
            "link_suggestions_ready",
            workspace_id=workspace_id,
            page_id=page_id,
            candidates=len(candidates),
            suggestions=len(suggestions),
        )
        return suggestions

    async def _semantic_candidates(
        self, context: str, workspace_id: str, candidates: list[PageRecord]
    ) -> set[str] | None:
        """Ids of summarised pages semantically close to *context*, or None for all."""
        if self._indexer is None or not context.strip():
            return None
        rows = await self._indexer.semantic_search(
            context, workspace_id, _SEMANTIC_CANDIDATES, self._semantic_threshold
        )
        close = {r.owner_id for r in rows}
        summarised_close = {p.id for p in candidates if p.id in close and p.summary}
        return summarised_close or None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def find_best_link_text(text: str, title: str) -> str:
    """Pick the span of *text* a link to *title* should cover.

    The exact title when it occurs, otherwise the longest run of
    consecutive title words found in the text, otherwise the title itself.
    """
    lower = text.lower()
    start = lower.find(title.lower()) if title else -1
    if start != -1:
        return text[start : start + len(title)]

    words = title.split()
    for size in range(len(words) - 1, 0, -1):
        for i in range(len(words) - size + 1):
            phrase = " ".join(words[i : i + size])
            if len(phrase) <= 3:
                continue
            pos = lower.find(phrase.lower())
            if pos != -1:
                return text[pos : pos + len(phrase)]
    return title


def _phrases(tokens: list[str]) -> set[str]:
    """2- and 3-word phrases, skipping those made only of short words."""
    phrases: set[str] = set()
    for size in (2, 3):
        for i in range(len(tokens) - size + 1):
            window = tokens[i : i + size]
            if any(len(w) > 3 for w in window):
                phrases.add(" ".join(window))
    return phrases


def _find_word(text: str, word: str) -> tuple[int, int] | None:
    match = re.search(rf"\b{re.escape(word)}\b", text, re.IGNORECASE)
    return (match.start(), match.end()) if match else None


def _locate(ctx: ScoringContext, matched: str) -> tuple[int, int]:
    start = ctx.lower.find(matched.lower()) if matched else -1
    if start == -1:
        return 0, 0
    return start, start + len(matched)


def _dedupe(suggestions: list[LinkSuggestion]) -> list[LinkSuggestion]:
    """Keep the first (highest-ranked) suggestion per (page, matched text)."""
    seen: set[tuple[str, str]] = set()
    unique: list[LinkSuggestion] = []
    for s in suggestions:
        key = (s.target_page_id, s.matched_text.lower())
        if key in seen:
            continue
        seen.add(key)
        unique.append(s)
    return unique
