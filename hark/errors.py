"""Exception types raised inside Hark.

None of these escape the agent controller: it records them on the session
as a user-visible message and keeps running.
"""


class HarkError(Exception):
    """Base class for Hark errors."""


class RecognitionStartError(HarkError):
    """The speech recognizer could not be started."""


class DispatchError(HarkError):
    """The search provider failed to produce results for a query."""

    def __init__(self, query: str, reason: str = "search provider unreachable") -> None:
        super().__init__(f"Search failed for '{query}': {reason}")
        self.query = query
        self.reason = reason


class AudioCaptureError(HarkError):
    """The microphone input stream failed."""


class TranscriptionError(HarkError):
    """The transcription service could not transcribe an utterance."""
