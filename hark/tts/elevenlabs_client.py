"""Speech synthesis through the ElevenLabs text-to-speech API.

Responses such as the listening prompt and "I found information about ..."
are turned into raw 16-bit PCM at the player's sample rate. The client goes
quiet (``synthesize`` returns None) rather than failing when no key is set
or the service cannot be reached, and probes again every
TTS_HEALTH_CHECK_INTERVAL seconds.
"""

import logging
import time

import httpx

from hark.config import (
    AUDIO_SAMPLE_RATE,
    ELEVENLABS_API_KEY,
    ELEVENLABS_BASE_URL,
    TTS_HEALTH_CHECK_INTERVAL,
    TTS_MODEL,
    TTS_TIMEOUT,
    TTS_VOICE_ID,
)
from hark.tts.provider import TTSProvider

logger = logging.getLogger(__name__)

_USER_ENDPOINT = "/v1/user"


class ElevenLabsClient(TTSProvider):

    def __init__(
        self,
        voice_id: str | None = None,
        model: str | None = None,
        sample_rate: int = AUDIO_SAMPLE_RATE,
    ) -> None:
        self.voice_id = voice_id or TTS_VOICE_ID
        self.model = model or TTS_MODEL
        self.sample_rate = sample_rate
        self._available: bool = False
        self._last_health_check: float = 0.0
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if not ELEVENLABS_API_KEY:
            logger.info("HARK_ELEVENLABS_API_KEY not set, responses will not be spoken")
            self._available = False
            return

        self._client = httpx.AsyncClient(
            base_url=ELEVENLABS_BASE_URL,
            timeout=TTS_TIMEOUT,
            headers={"xi-api-key": ELEVENLABS_API_KEY},
        )
        await self._check_health()

    async def stop(self) -> None:
        client, self._client = self._client, None
        self._available = False
        if client is not None:
            await client.aclose()

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def provider_name(self) -> str:
        return "elevenlabs"

    @property
    def _speech_path(self) -> str:
        return f"/v1/text-to-speech/{self.voice_id}"

    async def synthesize(self, text: str) -> bytes | None:
        """Return PCM for *text*, or None when speech output is unavailable."""
        if not self._available:
            await self._maybe_recheck_health()
        if not self._available or self._client is None:
            return None

        try:
            response = await self._client.post(
                self._speech_path,
                json={"text": text, "model_id": self.model},
                params={"output_format": f"pcm_{self.sample_rate}"},
            )
            response.raise_for_status()
        except (httpx.HTTPError, OSError):
            logger.warning("Could not synthesize %d chars of speech", len(text), exc_info=True)
            return None
        return response.content

    async def _check_health(self) -> None:
        self._last_health_check = time.monotonic()
        self._available = await self._probe()
        if self._available:
            logger.info("Speaking responses with voice %s (%s)", self.voice_id, self.model)

    async def _probe(self) -> bool:
        if self._client is None:
            return False
        try:
            resp = await self._client.get(_USER_ENDPOINT)
        except (httpx.ConnectError, httpx.TimeoutException, OSError) as exc:
            logger.warning("ElevenLabs unreachable at %s: %s", ELEVENLABS_BASE_URL, exc)
            return False
        if resp.status_code != 200:
            logger.warning("ElevenLabs rejected the API key (HTTP %d)", resp.status_code)
            return False
        return True

    async def _maybe_recheck_health(self) -> None:
        if self._client is None:
            return
        if time.monotonic() - self._last_health_check >= TTS_HEALTH_CHECK_INTERVAL:
            await self._check_health()
