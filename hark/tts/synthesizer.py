"""Speech synthesizer: the agent's speech output channel.

At most one utterance is active. ``speak()`` cancels the current utterance
before starting the next one, so newer requests preempt older ones instead
of queueing behind them.

Each utterance posts SynthesisEvents to the event sink:

- STARTED when its audio begins
- ENDED   when the audio completes or is cancelled (``canceled=True``)

An utterance cancelled before its audio began (e.g. still being
synthesized) posts neither.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from hark.events.types import SynthesisEvent, SynthesisEventType, new_utterance_id
from hark.tts.audio_player import AudioPlayer
from hark.tts.elevenlabs_client import ElevenLabsClient
from hark.tts.provider import TTSProvider
from hark.tts.types import SpeechOptions, TTSState

logger = logging.getLogger(__name__)

SynthesisSink = Callable[[SynthesisEvent], Awaitable[None]]


class SpeechSynthesizer:
    """Turns text into audible speech through a TTS provider and an AudioPlayer."""

    def __init__(
        self,
        provider: TTSProvider | None = None,
        player: AudioPlayer | None = None,
    ) -> None:
        self._provider = provider if provider is not None else ElevenLabsClient()
        self._player = player if player is not None else AudioPlayer()
        self._sink: SynthesisSink | None = None
        self._current: asyncio.Task | None = None
        self._current_id: str | None = None

    def set_event_sink(self, sink: SynthesisSink | None) -> None:
        """Route every SynthesisEvent to *sink*."""
        self._sink = sink

    async def start(self) -> None:
        await self._provider.start()
        await self._player.start()
        logger.info("Speech synthesizer started (state=%s)", self.state.value)

    async def stop(self) -> None:
        await self.cancel()
        await self._player.stop()
        await self._provider.stop()
        logger.info("Speech synthesizer stopped")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> TTSState:
        tts_ok = self._provider.is_available
        audio_ok = self._player.is_available
        if tts_ok and audio_ok:
            return TTSState.ACTIVE
        if tts_ok or audio_ok:
            return TTSState.DEGRADED
        return TTSState.DISABLED

    @property
    def provider_name(self) -> str:
        return self._provider.provider_name

    @property
    def tts_available(self) -> bool:
        return self._provider.is_available

    @property
    def audio_available(self) -> bool:
        return self._player.is_available

    @property
    def current_utterance(self) -> str | None:
        """Id of the active utterance, or None when nothing is being spoken."""
        if self._current is None or self._current.done():
            return None
        return self._current_id

    # ------------------------------------------------------------------
    # Speaking
    # ------------------------------------------------------------------

    async def speak(self, text: str, options: SpeechOptions | None = None) -> str:
        """Cancel the active utterance and start speaking *text*.

        Returns the new utterance id immediately; audio plays in the
        background.
        """
        await self.cancel()

        utterance_id = new_utterance_id()
        self._current_id = utterance_id
        self._current = asyncio.create_task(
            self._run_utterance(utterance_id, text, options or SpeechOptions())
        )
        return utterance_id

    async def cancel(self) -> None:
        """Cancel the active utterance. Safe to call when nothing is playing."""
        task = self._current
        self._current = None
        self._current_id = None
        if task is None or task.done():
            return

        await self._player.interrupt()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait(self) -> None:
        """Wait for the active utterance, if any, to finish."""
        task = self._current
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def _run_utterance(
        self, utterance_id: str, text: str, options: SpeechOptions
    ) -> None:
        pcm = await self._provider.synthesize(text)
        if not pcm:
            logger.warning("Utterance dropped, synthesis returned no audio: %s", text[:80])
            return
        if not self._player.is_available:
            logger.info("Utterance dropped, no audio output: %s", text[:80])
            return

        await self._post(
            SynthesisEvent(
                type=SynthesisEventType.STARTED, utterance_id=utterance_id, text=text
            )
        )
        completed = False
        try:
            completed = await self._player.play(pcm, options)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Audio playback failed", exc_info=True)
        finally:
            await self._post(
                SynthesisEvent(
                    type=SynthesisEventType.ENDED,
                    utterance_id=utterance_id,
                    text=text,
                    canceled=not completed,
                )
            )

    async def _post(self, event: SynthesisEvent) -> None:
        if self._sink is None:
            return
        await self._sink(event)
