"""Search subsystem: providers and the dispatcher the agent calls."""

from hark.search.dispatcher import SearchDispatcher
from hark.search.provider import CannedSearchProvider, SearchProvider, SearxSearchProvider
from hark.search.types import DispatchResult, SearchResult

__all__ = [
    "CannedSearchProvider",
    "DispatchResult",
    "SearchDispatcher",
    "SearchProvider",
    "SearchResult",
    "SearxSearchProvider",
]
