"""Speech-to-text subsystem: Hark's speech input channel."""

from hark.stt.microphone import MicrophoneCapture
from hark.stt.recognizer import SpeechRecognizer
from hark.stt.stt_client import STTClient

__all__ = [
    "MicrophoneCapture",
    "STTClient",
    "SpeechRecognizer",
]
