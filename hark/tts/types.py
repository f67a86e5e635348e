"""Types for the speech output channel."""

from enum import Enum

from pydantic import BaseModel, Field


class TTSState(str, Enum):
    """Operational state of the speech output channel."""

    ACTIVE = "active"
    DEGRADED = "degraded"
    DISABLED = "disabled"


class SpeechOptions(BaseModel):
    """Prosody for one utterance. 1.0 is neutral for every field."""

    rate: float = Field(default=1.0, ge=0.1, le=10.0)
    pitch: float = Field(default=1.0, ge=0.5, le=2.0)
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
