"""Abstract base class for web-search service providers.

Web search is an optional extra context source for workspace-mode answers.
A missing or failing provider must leave the conversation flow intact, so
implementations return an empty list instead of raising.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WebSearchResult:
    """A single web-search result.

    Attributes
    ----------
    title:
        The page title as returned by the search engine.
    url:
        The canonical URL of the result page.
    snippet:
        An optional text excerpt from the result.
    """

    title: str
    url: str
    snippet: str | None = None


# Concrete implementation: DuckDuckGoSearchProvider (workspace_rag/providers/search/)
class IWebSearchProvider(ABC):
    """Contract for web-search services."""

    @abstractmethod
    async def search(self, query: str, num_results: int = 5) -> list[WebSearchResult]:
        """Execute a web search and return the top results.

        Parameters
        ----------
        query:
            The search query string.
        num_results:
            Maximum number of results to return.

        Returns
        -------
        list[WebSearchResult]
            Zero or more results ordered by relevance.  Failures yield ``[]``.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this search provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is usable."""
