"""Unit tests for workspace_rag.services.link_suggestion_scorer."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tests.conftest import make_page
from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.models.content import PageRecord
from workspace_rag.providers.persistence.sqlite_store import SQLitePersistenceStore
from workspace_rag.services.link_suggestion_scorer import (
    LinkSuggestionScorer,
    LinkSuggestionService,
    ScoringContext,
    exact_title_rule,
    find_best_link_text,
    shared_phrases_rule,
    summary_keywords_rule,
    title_words_rule,
)
from workspace_rag.utils.errors import PersistenceError


def _page(page_id: str, title: str, summary: str | None = None, body: str = "") -> PageRecord:
    return make_page(page_id=page_id, title=title, body=body or title, summary=summary)


MARKETING = _page(
    "mkt",
    "Marketing Strategy",
    summary="Plan for marketing campaigns across social channels and customer outreach.",
)


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------


class TestEnhancedRules:
    def test_exact_title(self) -> None:
        ctx = ScoringContext("Align with the Marketing Strategy first.")
        assert exact_title_rule(ctx, MARKETING) == 0.5
        assert exact_title_rule(ScoringContext("marketing only"), MARKETING) == 0.0

    def test_title_words_fraction(self) -> None:
        ctx = ScoringContext("our strategy needs work")
        assert title_words_rule(ctx, MARKETING) == pytest.approx(0.15)

    def test_summary_keywords_bounded(self) -> None:
        ctx = ScoringContext(MARKETING.summary or "")
        assert 0.0 < summary_keywords_rule(ctx, MARKETING) <= 0.2

    def test_shared_phrases_capped(self) -> None:
        ctx = ScoringContext(f"{MARKETING.title} {MARKETING.summary}")
        assert shared_phrases_rule(ctx, MARKETING) == pytest.approx(0.15)

    def test_rules_without_summary(self) -> None:
        page = _page("p", "Roadmap")
        ctx = ScoringContext("anything at all")
        assert summary_keywords_rule(ctx, page) == 0.0


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


class TestScorer:
    def test_enhanced_suggestion(self) -> None:
        text = "We should align this with the marketing strategy before launch."
        suggestions = LinkSuggestionScorer().suggest(text, [MARKETING])

        assert len(suggestions) == 1
        s = suggestions[0]
        assert s.strategy == "enhanced"
        assert s.matched_text == "marketing strategy"
        assert text[s.start_index : s.end_index] == "marketing strategy"
        assert s.confidence == pytest.approx(min(1.0, s.relevance_score * 1.2))
        assert s.confidence > 0.6

    def test_weak_enhanced_match_falls_back_to_basic(self) -> None:
        # One title word only: relevance 0.15, far below the cutoff.
        suggestions = LinkSuggestionScorer().suggest("our strategy needs work", [MARKETING])

        assert suggestions
        assert all(s.strategy == "basic" for s in suggestions)

    def test_basic_without_summaries(self) -> None:
        page = _page("sf", "Sales Forecast")
        suggestions = LinkSuggestionScorer().suggest("Update the sales forecast today", [page])

        assert suggestions[0].matched_text == "sales forecast"
        assert suggestions[0].confidence == 0.9
        keys = [(s.target_page_id, s.matched_text.lower()) for s in suggestions]
        assert len(keys) == len(set(keys))
        confidences = [s.confidence for s in suggestions]
        assert confidences == sorted(confidences, reverse=True)
        assert all(0.0 <= c <= 1.0 for c in confidences)

    def test_generic_trigger_has_no_span(self) -> None:
        page = _page("rm", "Roadmap")
        suggestions = LinkSuggestionScorer().suggest("Add a link here", [page])

        assert len(suggestions) == 1
        assert suggestions[0].matched_text == "Roadmap"
        assert (suggestions[0].start_index, suggestions[0].end_index) == (0, 0)
        assert suggestions[0].confidence == 0.5

    def test_generic_trigger_matches_inside_words(self) -> None:
        page = _page("qp", "Quarterly Plan")
        suggestions = LinkSuggestionScorer().suggest("add links to other pages here", [page])

        assert [(s.target_page_id, s.confidence) for s in suggestions] == [("qp", 0.5)]
        assert (suggestions[0].start_index, suggestions[0].end_index) == (0, 0)

    def test_business_terms_pair_across_words(self) -> None:
        page = _page("mp", "Marketing Plan")
        suggestions = LinkSuggestionScorer().suggest("our sales numbers grew", [page])

        assert len(suggestions) == 1
        s = suggestions[0]
        assert (s.target_page_id, s.matched_text, s.confidence) == ("mp", "Marketing Plan", 0.7)
        assert (s.start_index, s.end_index) == (0, 0)

    def test_business_terms_need_a_term_in_the_title(self) -> None:
        page = _page("ob", "Onboarding Checklist")
        assert LinkSuggestionScorer().suggest("our sales numbers grew", [page]) == []

    def test_current_page_is_excluded(self) -> None:
        suggestions = LinkSuggestionScorer().suggest(
            "the marketing strategy", [MARKETING], current_page_id="mkt"
        )
        assert suggestions == []

    def test_empty_context(self) -> None:
        assert LinkSuggestionScorer().suggest("   ", [MARKETING]) == []

    def test_max_suggestions(self) -> None:
        pages = [
            _page(f"p{i}", f"Marketing Strategy {i}", summary="marketing strategy notes")
            for i in range(12)
        ]
        text = " ".join(p.title for p in pages)
        assert len(LinkSuggestionScorer().suggest(text, pages, max_suggestions=8)) == 8

    def test_failing_enhanced_rule_falls_back(self) -> None:
        def broken(ctx: ScoringContext, page: PageRecord) -> float:
            raise RuntimeError("boom")

        scorer = LinkSuggestionScorer(enhanced_rules=[("broken", broken)])
        suggestions = scorer.suggest("the marketing strategy", [MARKETING])

        assert suggestions
        assert suggestions[0].strategy == "basic"


class TestFindBestLinkText:
    def test_exact_title_keeps_original_case(self) -> None:
        assert find_best_link_text("See the Q3 Budget Review.", "q3 budget review") == (
            "Q3 Budget Review"
        )

    def test_longest_word_run(self) -> None:
        assert find_best_link_text("check the budget review soon", "Annual Budget Review") == (
            "budget review"
        )

    def test_falls_back_to_title(self) -> None:
        assert find_best_link_text("nothing shared", "Roadmap") == "Roadmap"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TestLinkSuggestionService:
    @pytest.mark.asyncio()
    async def test_short_context_widened_with_page_tail(
        self, store: SQLitePersistenceStore
    ) -> None:
        await store.upsert_page(
            _page("cur", "Weekly Sync", body="We reviewed the revenue plan in detail")
        )
        await store.upsert_page(_page("rev", "Revenue Plan"))

        suggestions = await LinkSuggestionService(store).suggest_links("ok", "ws-1", page_id="cur")

        assert [s.target_page_id for s in suggestions][:1] == ["rev"]
        assert "cur" not in {s.target_page_id for s in suggestions}

    @pytest.mark.asyncio()
    async def test_already_linked_pages_are_excluded(self, store: SQLitePersistenceStore) -> None:
        current = make_page(page_id="cur", title="Weekly Sync").model_copy(
            update={
                "content": {
                    "blocks": [
                        {
                            "content": [
                                {"type": "link", "href": "/page/rev", "content": [{"text": "x"}]}
                            ]
                        }
                    ]
                }
            }
        )
        await store.upsert_page(current)
        await store.upsert_page(_page("rev", "Revenue Plan"))

        suggestions = await LinkSuggestionService(store).suggest_links(
            "the revenue plan", "ws-1", page_id="cur"
        )

        assert "rev" not in {s.target_page_id for s in suggestions}

    @pytest.mark.asyncio()
    async def test_store_failure_yields_nothing(self) -> None:
        broken = MagicMock(spec=IPersistenceStore)
        broken.list_workspace_pages.side_effect = PersistenceError(message="locked")

        assert await LinkSuggestionService(broken).suggest_links("text", "ws-1") == []
