"""Whisper-compatible transcription client with health checking.

Sends one captured utterance to the transcription API and returns its text.
Missing API key or a failed health check leaves the client unavailable,
following the same lifecycle pattern as the ElevenLabs TTS provider.
"""

import io
import logging
import time
import wave

import httpx

from hark.config import (
    AUDIO_SAMPLE_RATE,
    STT_API_KEY,
    STT_BASE_URL,
    STT_HEALTH_CHECK_INTERVAL,
    STT_LANGUAGE,
    STT_MODEL,
    STT_TIMEOUT,
)
from hark.errors import TranscriptionError

logger = logging.getLogger(__name__)


class STTClient:
    """Whisper API HTTP client with health checking and graceful degradation."""

    def __init__(self, language: str = STT_LANGUAGE) -> None:
        self._available: bool = False
        self._last_health_check: float = 0.0
        self._client: httpx.AsyncClient | None = None
        self.language = language

    async def start(self) -> None:
        """Initialize the HTTP client and run initial health check."""
        if not STT_API_KEY:
            self._available = False
            logger.info("No STT API key, transcription disabled")
            return

        self._client = httpx.AsyncClient(
            base_url=STT_BASE_URL,
            timeout=STT_TIMEOUT,
            headers={"Authorization": f"Bearer {STT_API_KEY}"},
        )
        await self._check_health()

    async def stop(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._available = False

    @property
    def is_available(self) -> bool:
        """Whether the transcription API is currently available."""
        return self._available

    async def transcribe(self, audio_bytes: bytes) -> str | None:
        """Send PCM audio to the API and return the transcript text.

        Returns None when the service heard nothing intelligible.
        Raises TranscriptionError when the service is unavailable or the
        request fails.
        """
        await self._maybe_recheck_health()

        if not self._available or not self._client:
            raise TranscriptionError("transcription service unavailable")

        try:
            response = await self._client.post(
                "/v1/audio/transcriptions",
                data={"model": STT_MODEL, "language": self._iso_language()},
                files={"file": ("audio.wav", self._wrap_wav(audio_bytes), "audio/wav")},
            )
            response.raise_for_status()
            result = response.json()
        except (httpx.ConnectError, httpx.TimeoutException, OSError) as exc:
            self._available = False
            raise TranscriptionError(str(exc)) from exc
        except (httpx.HTTPStatusError, ValueError) as exc:
            raise TranscriptionError(str(exc)) from exc

        transcript = result.get("text", "").strip()
        if not transcript:
            return None
        logger.debug("STT transcript: %s", transcript)
        return transcript

    def _iso_language(self) -> str:
        """Whisper takes ISO-639-1 codes, so 'en-US' becomes 'en'."""
        return self.language.split("-")[0].lower()

    async def _check_health(self) -> None:
        """Validate API key via GET /v1/models."""
        self._last_health_check = time.monotonic()
        if not self._client:
            self._available = False
            return
        try:
            resp = await self._client.get("/v1/models")
            if resp.status_code == 200:
                self._available = True
                logger.info(
                    "STT available at %s (model: %s)", STT_BASE_URL, STT_MODEL
                )
            else:
                self._available = False
                logger.warning(
                    "STT API returned status %d, transcription unavailable",
                    resp.status_code,
                )
        except (httpx.ConnectError, httpx.TimeoutException, OSError) as exc:
            self._available = False
            logger.warning(
                "STT API not available at %s, transcription disabled: %s",
                STT_BASE_URL,
                exc,
            )

    async def _maybe_recheck_health(self) -> None:
        """Re-check availability if enough time has passed."""
        if not self._available and self._client is not None:
            elapsed = time.monotonic() - self._last_health_check
            if elapsed >= STT_HEALTH_CHECK_INTERVAL:
                await self._check_health()

    @staticmethod
    def _wrap_wav(pcm_bytes: bytes, sample_rate: int = AUDIO_SAMPLE_RATE) -> io.BytesIO:
        """Wrap raw PCM int16 bytes in a WAV header."""
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)  # 16-bit
            wf.setframerate(sample_rate)
            wf.writeframes(pcm_bytes)
        buf.seek(0)
        return buf
