"""Agent controller: the voice interaction state machine.

The controller owns the Session and is its only writer. The speech
recognizer and synthesizer post their events into ``post()``; a single
consume loop handles them one at a time, in delivery order:

    Idle --toggle_on--> Listening --Final--> Processing --dispatched--> Listening
    Listening --Ended (listening enabled)--> Listening   (recognizer restarted)
    Listening --toggle_off--> Idle
    any --Error--> Idle

Speaking is a separate flag driven by synthesis events, because the agent
keeps listening while it talks. Nothing stops the recognizer from hearing
the agent's own voice when the host has no echo cancellation; that is a
known limitation.
"""

import asyncio
import logging
import time

from hark.agent.interpreter import CommandInterpreter
from hark.agent.session import AgentSnapshot, AgentState, Session
from hark.config import RESTART_MIN_INTERVAL
from hark.errors import DispatchError, RecognitionStartError
from hark.events.event_bus import EventBus
from hark.events.types import (
    AgentEvent,
    RecognitionErrorCode,
    RecognitionEvent,
    RecognitionEventType,
    SynthesisEvent,
    SynthesisEventType,
)
from hark.search.dispatcher import SearchDispatcher
from hark.stt.recognizer import SpeechRecognizer
from hark.tts.synthesizer import SpeechSynthesizer
from hark.tts.types import SpeechOptions

logger = logging.getLogger(__name__)

LISTENING_PROMPT = "I'm listening. What would you like me to search for?"
UNSUPPORTED_MESSAGE = "Speech recognition not supported on this host"


class AgentController:
    """Coordinates recognition, interpretation, search dispatch and speech."""

    def __init__(
        self,
        recognizer: SpeechRecognizer | None = None,
        synthesizer: SpeechSynthesizer | None = None,
        interpreter: CommandInterpreter | None = None,
        dispatcher: SearchDispatcher | None = None,
        *,
        display_bus: EventBus[AgentSnapshot] | None = None,
        speech_options: SpeechOptions | None = None,
        restart_min_interval: float = RESTART_MIN_INTERVAL,
    ) -> None:
        self._recognizer = recognizer if recognizer is not None else SpeechRecognizer()
        self._synthesizer = synthesizer if synthesizer is not None else SpeechSynthesizer()
        self._interpreter = interpreter if interpreter is not None else CommandInterpreter()
        self._dispatcher = dispatcher if dispatcher is not None else SearchDispatcher()
        self._display_bus = display_bus if display_bus is not None else EventBus()
        self._speech_options = speech_options or SpeechOptions()
        self._restart_min_interval = restart_min_interval

        self.session = Session()

        self._inbox: asyncio.Queue[AgentEvent] | None = None
        self._consume_task: asyncio.Task | None = None
        self._running: bool = False
        self._last_recognizer_start: float | None = None

        self._recognizer.set_event_sink(self.post)
        self._synthesizer.set_event_sink(self.post)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open sub-components and begin handling events."""
        await self._recognizer.open()
        await self._synthesizer.start()
        await self._dispatcher.start()

        self._inbox = asyncio.Queue()
        self._running = True
        self._consume_task = asyncio.create_task(self._consume_loop())

        if not self._recognizer.is_supported:
            self.session.supported = False
            self.session.last_error = UNSUPPORTED_MESSAGE
            logger.warning("Speech recognition unavailable, listening disabled")

        await self._publish()
        logger.info("Agent controller started (state=%s)", self.state.value)

    async def stop(self) -> None:
        """Stop listening and speaking, then shut sub-components down."""
        self._running = False
        self.session.listening_enabled = False

        if self._consume_task is not None:
            self._consume_task.cancel()
            try:
                await self._consume_task
            except asyncio.CancelledError:
                pass
            self._consume_task = None
        self._inbox = None

        await self._dispatcher.stop()
        await self._synthesizer.stop()
        await self._recognizer.close()
        logger.info("Agent controller stopped")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> AgentState:
        return self.session.state

    @property
    def snapshot(self) -> AgentSnapshot:
        return self.session.snapshot()

    @property
    def recognizer(self) -> SpeechRecognizer:
        return self._recognizer

    @property
    def synthesizer(self) -> SpeechSynthesizer:
        return self._synthesizer

    @property
    def dispatcher(self) -> SearchDispatcher:
        return self._dispatcher

    @property
    def display_bus(self) -> EventBus[AgentSnapshot]:
        return self._display_bus

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def post(self, event: AgentEvent) -> None:
        """Queue an event for the consume loop. Dropped when not running."""
        if self._inbox is None:
            logger.debug("Agent not running, dropping %s event", event.type.value)
            return
        self._inbox.put_nowait(event)

    async def submit_transcript(self, text: str) -> None:
        """Feed typed text through the same path as a spoken final transcript."""
        await self.post(RecognitionEvent(type=RecognitionEventType.FINAL, text=text))

    async def drain(self) -> None:
        """Wait until every event posted so far has been handled."""
        if self._inbox is not None:
            await self._inbox.join()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def toggle(self) -> bool:
        """Flip listening on or off. Returns the new listening flag."""
        if self.session.listening_enabled:
            await self.toggle_off()
        else:
            await self.toggle_on()
        return self.session.listening_enabled

    async def toggle_on(self) -> None:
        """Start listening and speak the prompt. No-op when already listening."""
        if not self.session.supported:
            logger.info("Ignoring toggle on: %s", UNSUPPORTED_MESSAGE)
            return
        if self.session.listening_enabled:
            return

        self.session.last_error = None
        try:
            await self._start_recognizer()
        except RecognitionStartError as exc:
            self.session.last_error = f"Could not start speech recognition: {exc}"
            logger.warning("Recognizer failed to start: %s", exc)
            await self._publish()
            return

        self.session.listening_enabled = True
        await self._publish()
        logger.info("Listening started")
        await self._synthesizer.speak(LISTENING_PROMPT, self._speech_options)

    async def toggle_off(self) -> None:
        """Stop listening. Safe to call when already off."""
        was_listening = self.session.listening_enabled
        self.session.listening_enabled = False
        self.session.interim_transcript = ""
        await self._recognizer.stop()
        if was_listening:
            logger.info("Listening stopped")
            await self._publish()

    # ------------------------------------------------------------------
    # Consume loop
    # ------------------------------------------------------------------

    async def _consume_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._inbox.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                await self._handle_event(event)
            except Exception:
                logger.warning("Agent error processing %s event", event.type.value, exc_info=True)
            finally:
                self._inbox.task_done()

    async def _handle_event(self, event: AgentEvent) -> None:
        if isinstance(event, SynthesisEvent):
            await self._handle_synthesis(event)
        elif event.type == RecognitionEventType.INTERIM:
            self.session.interim_transcript = event.text or ""
            await self._publish()
        elif event.type == RecognitionEventType.FINAL:
            await self._handle_final(event.text or "")
        elif event.type == RecognitionEventType.ERROR:
            await self._handle_error(event.error or RecognitionErrorCode.ABORTED)
        elif event.type == RecognitionEventType.ENDED:
            await self._handle_ended()

    async def _handle_synthesis(self, event: SynthesisEvent) -> None:
        self.session.speaking = event.type == SynthesisEventType.STARTED
        await self._publish()

    async def _handle_final(self, transcript: str) -> None:
        self.session.last_transcript = transcript
        self.session.interim_transcript = ""
        logger.info("Final transcript: %s", transcript)

        query = self._interpreter.interpret(transcript)
        if query is None:
            await self._publish()
            return

        self.session.processing = True
        await self._publish()
        try:
            result = await self._dispatcher.dispatch(query)
        except DispatchError as exc:
            logger.warning("Dispatch failed: %s", exc)
            self.session.last_error = str(exc)
            self.session.response_text = f"Sorry, I couldn't search for {query} right now."
            await self._synthesizer.speak(self.session.response_text, self._speech_options)
        else:
            self.session.results = result.results
            self.session.response_text = result.response_text
            if self.session.supported:
                self.session.last_error = None
            await self._synthesizer.speak(result.response_text, self._speech_options)
        finally:
            self.session.processing = False
            await self._publish()

    async def _handle_error(self, code: RecognitionErrorCode) -> None:
        logger.warning("Recognition error: %s", code.value)
        self.session.listening_enabled = False
        self.session.interim_transcript = ""
        self.session.last_error = f"Recognition error: {code.value}"
        await self._recognizer.stop()
        await self._publish()

    async def _handle_ended(self) -> None:
        if not self.session.listening_enabled:
            return

        wait = self._restart_delay()
        if wait > 0:
            logger.info("Recognizer ended quickly, restarting in %.2fs", wait)
            await asyncio.sleep(wait)
            if not self.session.listening_enabled:
                return

        if self._recognizer.is_running:
            return
        try:
            await self._start_recognizer()
            logger.debug("Recognizer restarted after natural end")
        except RecognitionStartError as exc:
            logger.warning("Recognizer restart failed: %s", exc)
            self.session.last_error = f"Could not restart speech recognition: {exc}"
            await self._publish()

    def _restart_delay(self) -> float:
        if self._last_recognizer_start is None or self._restart_min_interval <= 0:
            return 0.0
        elapsed = time.monotonic() - self._last_recognizer_start
        return max(0.0, self._restart_min_interval - elapsed)

    async def _start_recognizer(self) -> None:
        await self._recognizer.start()
        self._last_recognizer_start = time.monotonic()

    async def _publish(self) -> None:
        await self._display_bus.emit(self.session.snapshot())
