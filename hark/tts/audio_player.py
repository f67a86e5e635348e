"""Single-utterance audio player with prosody shaping and interrupt support."""

import asyncio
import logging

import numpy as np
import sounddevice as sd

from hark.config import AUDIO_SAMPLE_RATE
from hark.tts.types import SpeechOptions

logger = logging.getLogger(__name__)


class AudioPlayer:
    """Plays one PCM buffer at a time on the default output device.

    ``play()`` blocks (in a worker thread) until the audio finishes or
    ``interrupt()`` is called, and reports which of the two happened.
    """

    def __init__(self, sample_rate: int = AUDIO_SAMPLE_RATE) -> None:
        self._sample_rate = sample_rate
        self._audio_available: bool = False
        self._playing: bool = False
        self._interrupted: bool = False

    async def start(self) -> None:
        """Probe for an output device."""
        try:
            sd.query_devices(kind="output")
            self._audio_available = True
            logger.info("Audio output device detected, playback enabled")
        except Exception:
            self._audio_available = False
            logger.warning("No audio output device, playback disabled")

    async def stop(self) -> None:
        """Halt any in-progress playback."""
        await self.interrupt()
        self._audio_available = False

    @property
    def is_available(self) -> bool:
        """Whether an audio output device was detected at startup."""
        return self._audio_available

    @property
    def is_playing(self) -> bool:
        return self._playing

    async def play(self, pcm_bytes: bytes, options: SpeechOptions | None = None) -> bool:
        """Play *pcm_bytes* shaped by *options*.

        Returns True when playback ran to completion, False when it was
        interrupted or no output device is available.
        """
        if not self._audio_available:
            return False

        audio = self.shape(pcm_bytes, options or SpeechOptions())
        self._interrupted = False
        self._playing = True
        try:
            await asyncio.to_thread(self._play_sync, audio)
        finally:
            self._playing = False
        return not self._interrupted

    async def interrupt(self) -> None:
        """Stop current playback; a pending ``play()`` returns False."""
        if not self._playing:
            return
        self._interrupted = True
        try:
            sd.stop()
        except Exception:
            logger.debug("sd.stop() failed during interrupt", exc_info=True)

    @staticmethod
    def shape(pcm_bytes: bytes, options: SpeechOptions) -> np.ndarray:
        """Convert int16 PCM to float32 and apply volume, rate and pitch.

        Rate and pitch are both applied as a playback speed change by
        resampling, so a pitch of 1.2 also shortens the utterance.
        """
        audio = np.frombuffer(pcm_bytes, dtype=np.int16).astype(np.float32) / 32768.0
        audio = audio * options.volume

        speed = options.rate * options.pitch
        if speed != 1.0 and audio.size > 1:
            target_len = max(1, int(round(audio.size / speed)))
            src_positions = np.linspace(0, audio.size - 1, num=target_len)
            audio = np.interp(src_positions, np.arange(audio.size), audio).astype(
                np.float32
            )
        return audio

    def _play_sync(self, audio: np.ndarray) -> None:
        """Play float32 audio via sounddevice. Runs in a worker thread."""
        sd.play(audio, samplerate=self._sample_rate)
        sd.wait()
