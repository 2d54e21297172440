"""DuckDuckGo web-search provider implementing IWebSearchProvider.

Uses the duckduckgo_search library for free, keyless web searches.  The
synchronous ``DDGS`` client runs in a worker thread.  Rate limits and other
failures are logged as warnings and yield an empty result list.
"""

from __future__ import annotations

import asyncio

import structlog
from duckduckgo_search import DDGS

from workspace_rag.interfaces.web_search_provider import IWebSearchProvider, WebSearchResult

logger = structlog.get_logger(logger_name=__name__)


class DuckDuckGoSearchProvider(IWebSearchProvider):
    """DuckDuckGo web-search provider (no API key required)."""

    def __init__(self) -> None:
        logger.info("duckduckgo_provider_initialized")

    async def search(self, query: str, num_results: int = 5) -> list[WebSearchResult]:
        """Execute a DuckDuckGo web search and return results."""
        if not query.strip():
            return []
        try:
            raw_results = await asyncio.to_thread(self._sync_search, query, num_results)
        except Exception as exc:  # noqa: BLE001
            logger.warning("duckduckgo_search_failed", query=query, error=str(exc))
            return []

        results = [
            WebSearchResult(
                title=item.get("title", ""),
                url=item.get("href", item.get("url", "")),
                snippet=item.get("body"),
            )
            for item in raw_results or []
        ]
        logger.debug("duckduckgo_search_complete", query=query, result_count=len(results))
        return results

    @staticmethod
    def _sync_search(query: str, max_results: int) -> list[dict]:
        """Run the synchronous DDGS search (called via to_thread)."""
        with DDGS() as ddgs:
            return list(ddgs.text(query, max_results=max_results))

    def get_provider_name(self) -> str:
        return "duckduckgo"

    def is_available(self) -> bool:
        """DuckDuckGo is always available (no API key required)."""
        return True
