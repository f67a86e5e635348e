"""Executes a search and opens the external results page for the query."""

import asyncio
import logging
import webbrowser
from typing import Callable
from urllib.parse import quote

from hark.config import OPEN_BROWSER, SEARCH_URL_TEMPLATE
from hark.errors import DispatchError
from hark.search.provider import SearchProvider, create_search_provider
from hark.search.types import DispatchResult

logger = logging.getLogger(__name__)

RESPONSE_TEMPLATE = "I found information about {query}. Opening search results for you."
RESPONSE_TEMPLATE_NO_BROWSER = "I found information about {query}."

# Characters JavaScript's encodeURIComponent leaves alone.
_URI_COMPONENT_SAFE = "-_.!~*'()"

Navigator = Callable[[str], bool]


def encode_query(query: str) -> str:
    return quote(query, safe=_URI_COMPONENT_SAFE)


class SearchDispatcher:
    """Turns a query into a spoken response, ranked results and a redirect.

    The provider is swappable; the agent only ever sees DispatchResult or
    DispatchError.
    """

    def __init__(
        self,
        provider: SearchProvider | None = None,
        *,
        url_template: str = SEARCH_URL_TEMPLATE,
        open_browser: bool = OPEN_BROWSER,
        navigator: Navigator | None = None,
    ) -> None:
        self._provider = provider if provider is not None else create_search_provider()
        self._url_template = url_template
        self._open_browser = open_browser
        self._navigator = navigator if navigator is not None else webbrowser.open_new_tab

    async def start(self) -> None:
        await self._provider.start()

    async def stop(self) -> None:
        await self._provider.stop()

    @property
    def provider_name(self) -> str:
        return self._provider.provider_name

    @property
    def is_available(self) -> bool:
        return self._provider.is_available

    def search_url(self, query: str) -> str:
        return self._url_template.format(query=encode_query(query))

    def response_text(self, query: str) -> str:
        template = RESPONSE_TEMPLATE if self._open_browser else RESPONSE_TEMPLATE_NO_BROWSER
        return template.format(query=query)

    async def dispatch(self, query: str) -> DispatchResult:
        """Search for *query* and open its results page.

        Raises DispatchError when the provider fails; no page is opened in
        that case.
        """
        try:
            results = await self._provider.search(query)
        except Exception as exc:
            logger.warning("Search provider %s failed", self.provider_name, exc_info=True)
            raise DispatchError(query) from exc

        url = self.search_url(query)
        if self._open_browser:
            await self._navigate(url)

        logger.info("Dispatched '%s' (%d results)", query, len(results))
        return DispatchResult(
            query=query,
            response_text=self.response_text(query),
            results=tuple(results),
            redirect_url=url,
        )

    async def _navigate(self, url: str) -> None:
        try:
            opened = await asyncio.to_thread(self._navigator, url)
        except Exception:
            logger.warning("Could not open %s", url, exc_info=True)
            return
        if not opened:
            logger.info("No browser available to open %s", url)
