"""Microphone audio capture with energy-based voice activity detection."""

import asyncio
import logging
import threading

import numpy as np
import sounddevice as sd

from hark.config import (
    AUDIO_SAMPLE_RATE,
    STT_LISTEN_TIMEOUT,
    STT_MAX_RECORD_DURATION,
    STT_SILENCE_DURATION,
    STT_SILENCE_THRESHOLD,
)
from hark.errors import AudioCaptureError

logger = logging.getLogger(__name__)

_CHUNK_DURATION = 0.1  # 100ms chunks


class MicrophoneCapture:
    """Captures utterances from the default input device using sounddevice.

    Probe for a device at start, degrade gracefully if there is none.
    One call to :meth:`capture_until_silence` records one utterance.
    """

    def __init__(self) -> None:
        self._available: bool = False
        self._listening: bool = False
        self._cancel: threading.Event | None = None

    async def start(self) -> None:
        """Probe for input device. No-op if unavailable."""
        try:
            sd.query_devices(kind="input")
            self._available = True
            logger.info("Microphone input device detected, capture enabled")
        except Exception:
            self._available = False
            logger.warning("No microphone input device, capture disabled")

    async def stop(self) -> None:
        """Release resources."""
        self.cancel()
        self._listening = False
        self._available = False

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def is_listening(self) -> bool:
        return self._listening

    def cancel(self) -> None:
        """Ask the in-flight capture to return as soon as its current chunk ends."""
        if self._cancel is not None:
            self._cancel.set()

    async def capture_until_silence(
        self,
        *,
        max_duration: float | None = None,
        silence_threshold: float | None = None,
        silence_duration: float | None = None,
        sample_rate: int | None = None,
        listen_timeout: float | None = None,
    ) -> bytes | None:
        """Record one utterance and return it as PCM 16-bit mono bytes.

        Returns None when the microphone is unavailable, when no speech
        starts within *listen_timeout*, or when the capture is cancelled.
        Raises AudioCaptureError when the input stream fails before any
        audio was recorded.
        """
        if not self._available:
            return None

        max_dur = max_duration or STT_MAX_RECORD_DURATION
        sil_thresh = silence_threshold or STT_SILENCE_THRESHOLD
        sil_dur = silence_duration or STT_SILENCE_DURATION
        sr = sample_rate or AUDIO_SAMPLE_RATE
        timeout = listen_timeout or STT_LISTEN_TIMEOUT

        # One flag per capture; a superseded worker keeps its own.
        cancel = threading.Event()
        self._cancel = cancel
        self._listening = True
        try:
            return await asyncio.to_thread(
                self._capture_sync, cancel, max_dur, sil_thresh, sil_dur, sr, timeout
            )
        finally:
            if self._cancel is cancel:
                self._cancel = None
                self._listening = False

    def _capture_sync(
        self,
        cancel: threading.Event,
        max_duration: float,
        silence_threshold: float,
        silence_duration: float,
        sample_rate: int,
        listen_timeout: float,
    ) -> bytes | None:
        """Synchronous capture, run in a worker thread.

        1. Wait for speech onset (RMS > threshold) up to listen_timeout
        2. Record until RMS stays below threshold for silence_duration
           or max_duration is reached
        """
        frames: list[np.ndarray] = []
        chunk_samples = int(sample_rate * _CHUNK_DURATION)
        speech_started = False
        silence_elapsed = 0.0
        total_elapsed = 0.0
        wait_elapsed = 0.0

        try:
            with sd.InputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="int16",
                blocksize=chunk_samples,
            ) as stream:
                while wait_elapsed < listen_timeout:
                    if cancel.is_set():
                        return None
                    data, _overflowed = stream.read(chunk_samples)
                    wait_elapsed += _CHUNK_DURATION
                    if self._compute_rms(data) > silence_threshold:
                        speech_started = True
                        frames.append(data.copy())
                        total_elapsed += _CHUNK_DURATION
                        break

                if not speech_started:
                    return None

                while total_elapsed < max_duration:
                    if cancel.is_set():
                        return None
                    data, _overflowed = stream.read(chunk_samples)
                    frames.append(data.copy())
                    total_elapsed += _CHUNK_DURATION

                    if self._compute_rms(data) < silence_threshold:
                        silence_elapsed += _CHUNK_DURATION
                        if silence_elapsed >= silence_duration:
                            break
                    else:
                        silence_elapsed = 0.0

        except Exception as exc:
            logger.warning("Microphone stream error", exc_info=True)
            if not frames:
                raise AudioCaptureError(str(exc)) from exc

        if not frames:
            return None

        return np.concatenate(frames).tobytes()

    @staticmethod
    def _compute_rms(data: np.ndarray) -> float:
        """Compute RMS amplitude of int16 audio data, normalized to 0.0-1.0."""
        float_data = data.astype(np.float32) / 32768.0
        return float(np.sqrt(np.mean(float_data ** 2)))
