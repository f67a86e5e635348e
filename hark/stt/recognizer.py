"""Continuous speech recognizer: the agent's speech input channel.

Loops microphone capture and transcription, posting a RecognitionEvent for
each outcome to a single event sink:

- FINAL   one transcribed utterance
- ERROR   microphone failure (audio-capture) or transcription failure
          (network); the loop stops and does not retry
- ENDED   the loop stopped on its own, e.g. nobody spoke within the
          listen timeout, or after an ERROR

The recognizer never restarts itself after ENDED. Whoever owns it decides.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from hark.config import STT_LANGUAGE
from hark.errors import AudioCaptureError, RecognitionStartError, TranscriptionError
from hark.events.types import RecognitionErrorCode, RecognitionEvent, RecognitionEventType
from hark.stt.microphone import MicrophoneCapture
from hark.stt.stt_client import STTClient

logger = logging.getLogger(__name__)

RecognitionSink = Callable[[RecognitionEvent], Awaitable[None]]


class SpeechRecognizer:
    """Continuous speech recognizer built on MicrophoneCapture and STTClient."""

    def __init__(
        self,
        *,
        continuous: bool = True,
        interim_results: bool = True,
        lang: str = STT_LANGUAGE,
    ) -> None:
        self.continuous = continuous
        self.interim_results = interim_results
        self.lang = lang

        self._microphone = MicrophoneCapture()
        self._stt_client = STTClient(language=lang)
        self._sink: RecognitionSink | None = None
        self._capture_task: asyncio.Task | None = None
        self._running: bool = False

    def set_event_sink(self, sink: RecognitionSink | None) -> None:
        """Route every RecognitionEvent to *sink*."""
        self._sink = sink

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Probe the microphone and the transcription service."""
        await self._microphone.start()
        await self._stt_client.start()
        logger.info(
            "Speech recognizer opened (supported=%s, lang=%s)",
            self.is_supported,
            self.lang,
        )

    async def close(self) -> None:
        """Stop capturing and release sub-components in reverse order."""
        await self.stop()
        await self._stt_client.stop()
        await self._microphone.stop()

    async def start(self) -> None:
        """Begin continuous capture.

        Raises RecognitionStartError when the host lacks the capability or
        a capture loop is already running.
        """
        if not self.is_supported:
            raise RecognitionStartError("speech recognition not supported")
        if self._running:
            raise RecognitionStartError("recognition has already started")

        self._running = True
        self._capture_task = asyncio.create_task(self._capture_loop())
        logger.debug("Speech recognition started")

    async def stop(self) -> None:
        """Halt capture. No ENDED event is posted for an explicit stop."""
        self._running = False
        task = self._capture_task
        self._capture_task = None
        if task is None or task.done():
            return

        self._microphone.cancel()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Speech recognition stopped")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_supported(self) -> bool:
        """Whether both a microphone and a transcription service are available."""
        return self._microphone.is_available and self._stt_client.is_available

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def mic_available(self) -> bool:
        return self._microphone.is_available

    @property
    def stt_available(self) -> bool:
        return self._stt_client.is_available

    # ------------------------------------------------------------------
    # Capture loop
    # ------------------------------------------------------------------

    async def _capture_loop(self) -> None:
        error: RecognitionErrorCode | None = None
        try:
            while self._running:
                try:
                    audio = await self._microphone.capture_until_silence()
                except AudioCaptureError:
                    error = RecognitionErrorCode.AUDIO_CAPTURE
                    break

                if audio is None:
                    logger.info("No speech before listen timeout, recognizer ending")
                    break

                try:
                    transcript = await self._stt_client.transcribe(audio)
                except TranscriptionError:
                    logger.warning("Transcription failed", exc_info=True)
                    error = RecognitionErrorCode.NETWORK
                    break

                if transcript is None:
                    continue

                await self._post(
                    RecognitionEvent(type=RecognitionEventType.FINAL, text=transcript)
                )
                if not self.continuous:
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Speech recognizer loop crashed", exc_info=True)
            error = RecognitionErrorCode.ABORTED

        if not self._running:
            # stop() got here first
            return
        self._running = False
        if error is not None:
            await self._post(RecognitionEvent(type=RecognitionEventType.ERROR, error=error))
        await self._post(RecognitionEvent(type=RecognitionEventType.ENDED))

    async def _post(self, event: RecognitionEvent) -> None:
        if self._sink is None:
            logger.debug("No sink for recognition event %s", event.type.value)
            return
        await self._sink(event)
