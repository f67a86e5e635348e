"""Pydantic models for the events posted into the agent controller."""

import time
from enum import Enum
from typing import Union
from uuid import uuid4

from pydantic import BaseModel, Field


class RecognitionEventType(str, Enum):
    """Events produced by the speech input channel."""

    INTERIM = "interim"
    FINAL = "final"
    ERROR = "error"
    ENDED = "ended"


class RecognitionErrorCode(str, Enum):
    """Error codes reported by the speech input channel."""

    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE = "audio-capture"
    NETWORK = "network"
    NOT_ALLOWED = "not-allowed"
    ABORTED = "aborted"


class RecognitionEvent(BaseModel):
    """One event from the speech input channel.

    Fields populated by type:
      - interim / final: text
      - error: error
      - ended: nothing
    """

    type: RecognitionEventType
    timestamp: float = Field(default_factory=time.time)
    text: str | None = None
    error: RecognitionErrorCode | None = None


class SynthesisEventType(str, Enum):
    """Events produced by the speech output channel."""

    STARTED = "started"
    ENDED = "ended"


class SynthesisEvent(BaseModel):
    """Start or end of one utterance."""

    type: SynthesisEventType
    utterance_id: str
    timestamp: float = Field(default_factory=time.time)
    text: str = ""
    canceled: bool = False


def new_utterance_id() -> str:
    return str(uuid4())


AgentEvent = Union[RecognitionEvent, SynthesisEvent]
