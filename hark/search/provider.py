"""Search providers.

The dispatcher only depends on :class:`SearchProvider`. Two variants ship:

- CannedSearchProvider: three templated results built from the query,
  with no network access. The default.
- SearxSearchProvider: queries a SearXNG instance's JSON API over httpx.
"""

import logging
import re
from abc import ABC, abstractmethod

import httpx

from hark.config import SEARCH_MAX_RESULTS, SEARCH_PROVIDER, SEARCH_TIMEOUT, SEARX_URL
from hark.search.types import SearchResult

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class SearchProvider(ABC):
    """Capability to turn a query into ranked results.

    Unlike the TTS providers, search() raises on failure so the dispatcher
    can report the outage to the user.
    """

    async def start(self) -> None:
        """Acquire resources. Default: nothing to do."""

    async def stop(self) -> None:
        """Release resources. Default: nothing to do."""

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def search(self, query: str) -> list[SearchResult]:
        """Return results for *query*, best first."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name for health/status display."""


class CannedSearchProvider(SearchProvider):
    """Placeholder provider: three deterministic entries referencing the query."""

    @property
    def provider_name(self) -> str:
        return "canned"

    async def search(self, query: str) -> list[SearchResult]:
        underscored = _WHITESPACE.sub("_", query)
        slug = _WHITESPACE.sub("-", query).lower()
        return [
            SearchResult(
                title=f"{query} - Wikipedia",
                link=f"https://en.wikipedia.org/wiki/{underscored}",
                snippet=f"Information about {query} from Wikipedia...",
            ),
            SearchResult(
                title=f"{query} - Official Website",
                link=f"https://www.example.com/{slug}",
                snippet=f"Official information and resources about {query}...",
            ),
            SearchResult(
                title=f"Learn about {query}",
                link=f"https://www.example.org/learn/{slug}",
                snippet=f"Comprehensive guide and tutorials for {query}...",
            ),
        ]


class SearxSearchProvider(SearchProvider):
    """Queries a SearXNG instance (``format=json`` must be enabled on it)."""

    def __init__(
        self, base_url: str = SEARX_URL, max_results: int = SEARCH_MAX_RESULTS
    ) -> None:
        self._base_url = base_url
        self._max_results = max_results
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=SEARCH_TIMEOUT)
        logger.info("SearXNG search provider at %s", self._base_url)

    async def stop(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_available(self) -> bool:
        return self._client is not None

    @property
    def provider_name(self) -> str:
        return "searx"

    async def search(self, query: str) -> list[SearchResult]:
        if self._client is None:
            raise RuntimeError("search provider not started")

        response = await self._client.get("/search", params={"q": query, "format": "json"})
        response.raise_for_status()
        payload = response.json()

        results: list[SearchResult] = []
        for item in payload.get("results", [])[: self._max_results]:
            link = item.get("url")
            if not link:
                continue
            results.append(
                SearchResult(
                    title=item.get("title") or link,
                    link=link,
                    snippet=item.get("content") or "",
                )
            )
        return results


def create_search_provider(name: str = SEARCH_PROVIDER) -> SearchProvider:
    """Create the provider named by HARK_SEARCH_PROVIDER (default: canned)."""
    if name.lower() == "searx":
        logger.info("Creating SearXNG search provider")
        return SearxSearchProvider()

    logger.info("Creating canned search provider")
    return CannedSearchProvider()
