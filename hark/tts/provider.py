"""Abstract base class for TTS providers.

The speech synthesizer uses this interface to turn text into audio without
knowing which provider is active. Providers handle their own health
checking and graceful degradation.
"""

from abc import ABC, abstractmethod


class TTSProvider(ABC):
    """Abstract base class for TTS providers.

    synthesize() returns raw PCM int16 mono bytes at AUDIO_SAMPLE_RATE, or
    None on failure. It never raises.
    """

    @abstractmethod
    async def start(self) -> None:
        """Initialize the provider (HTTP clients, health checks, etc.)."""

    @abstractmethod
    async def stop(self) -> None:
        """Shut down the provider and release resources."""

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Whether the provider is currently healthy and can synthesize."""

    @abstractmethod
    async def synthesize(self, text: str) -> bytes | None:
        """Synthesize text to PCM bytes. Returns None on any failure."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name for health/status display."""
