"""Agent session state and the snapshot published to displays."""

from enum import Enum

from pydantic import BaseModel

from hark.search.types import SearchResult


class AgentState(str, Enum):
    """Coarse state of the agent controller."""

    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"


class Session(BaseModel):
    """Everything the agent knows about the current conversation.

    Only the AgentController writes to a Session.
    """

    supported: bool = True
    listening_enabled: bool = False
    processing: bool = False
    speaking: bool = False
    last_transcript: str = ""
    interim_transcript: str = ""
    last_error: str | None = None
    response_text: str = ""
    results: tuple[SearchResult, ...] = ()

    @property
    def state(self) -> AgentState:
        if self.processing:
            return AgentState.PROCESSING
        if self.listening_enabled:
            return AgentState.LISTENING
        return AgentState.IDLE

    def snapshot(self) -> "AgentSnapshot":
        return AgentSnapshot(
            state=self.state,
            transcript=self.last_transcript,
            interim_transcript=self.interim_transcript,
            response_text=self.response_text,
            error_message=self.last_error,
            listening=self.listening_enabled,
            speaking=self.speaking,
            supported=self.supported,
            results=list(self.results),
        )


class AgentSnapshot(BaseModel):
    """Read-only view of a Session for rendering."""

    state: AgentState
    transcript: str
    interim_transcript: str
    response_text: str
    error_message: str | None
    listening: bool
    speaking: bool
    supported: bool
    results: list[SearchResult]
