"""Pydantic models for search results."""

from pydantic import BaseModel, ConfigDict


class SearchResult(BaseModel):
    """One ranked search hit."""

    model_config = ConfigDict(frozen=True)

    title: str
    link: str
    snippet: str


class DispatchResult(BaseModel):
    """What a dispatched search hands back to the agent."""

    model_config = ConfigDict(frozen=True)

    query: str
    response_text: str
    results: tuple[SearchResult, ...] = ()
    redirect_url: str | None = None
