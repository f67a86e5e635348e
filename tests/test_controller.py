"""Tests for hark.agent.controller: the voice interaction state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from hark.agent.controller import LISTENING_PROMPT, UNSUPPORTED_MESSAGE, AgentController
from hark.agent.session import AgentState
from hark.errors import RecognitionStartError
from hark.events.types import (
    RecognitionErrorCode,
    RecognitionEvent,
    RecognitionEventType,
    SynthesisEvent,
    SynthesisEventType,
)
from hark.search.dispatcher import SearchDispatcher
from hark.search.provider import CannedSearchProvider, SearchProvider
from hark.tts.synthesizer import SpeechSynthesizer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _final(text: str) -> RecognitionEvent:
    return RecognitionEvent(type=RecognitionEventType.FINAL, text=text)


def _ended() -> RecognitionEvent:
    return RecognitionEvent(type=RecognitionEventType.ENDED)


def _error(code: RecognitionErrorCode) -> RecognitionEvent:
    return RecognitionEvent(type=RecognitionEventType.ERROR, error=code)


def _spoken(mock_synthesizer: MagicMock) -> list[str]:
    return [c.args[0] for c in mock_synthesizer.speak.await_args_list]


class _FailingProvider(SearchProvider):
    @property
    def provider_name(self) -> str:
        return "failing"

    async def search(self, query):
        raise ConnectionError("unreachable")


class _BlockingProvider(CannedSearchProvider):
    """Canned results, held back until release() is called."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self._release = asyncio.Event()

    def release(self) -> None:
        self._release.set()

    async def search(self, query):
        self.entered.set()
        await self._release.wait()
        return await super().search(query)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:

    async def test_start_opens_components(self, agent, mock_recognizer, mock_synthesizer):
        mock_recognizer.open.assert_awaited_once()
        mock_synthesizer.start.assert_awaited_once()
        assert agent.state == AgentState.IDLE
        assert agent.session.supported is True
        assert agent.session.last_error is None

    async def test_channels_post_into_controller(self, agent, mock_recognizer, mock_synthesizer):
        mock_recognizer.set_event_sink.assert_called_once_with(agent.post)
        mock_synthesizer.set_event_sink.assert_called_once_with(agent.post)

    async def test_stop_closes_components(self, mock_recognizer, mock_synthesizer, dispatcher):
        controller = AgentController(
            recognizer=mock_recognizer, synthesizer=mock_synthesizer, dispatcher=dispatcher
        )
        await controller.start()
        await controller.stop()
        mock_recognizer.close.assert_awaited_once()
        mock_synthesizer.stop.assert_awaited_once()

    async def test_post_before_start_is_dropped(self, mock_recognizer, mock_synthesizer, dispatcher):
        controller = AgentController(
            recognizer=mock_recognizer, synthesizer=mock_synthesizer, dispatcher=dispatcher
        )
        await controller.post(_final("search for cats"))
        assert controller.session.last_transcript == ""


class TestUnsupportedPlatform:

    @pytest.fixture
    async def unsupported_agent(self, mock_recognizer, mock_synthesizer, dispatcher):
        mock_recognizer.is_supported = False
        controller = AgentController(
            recognizer=mock_recognizer,
            synthesizer=mock_synthesizer,
            dispatcher=dispatcher,
            restart_min_interval=0.0,
        )
        await controller.start()
        yield controller
        await controller.stop()

    async def test_error_surfaced(self, unsupported_agent):
        assert unsupported_agent.session.supported is False
        assert unsupported_agent.session.last_error == UNSUPPORTED_MESSAGE

    async def test_toggle_on_is_noop(self, unsupported_agent, mock_recognizer, mock_synthesizer):
        await unsupported_agent.toggle_on()
        mock_recognizer.start.assert_not_awaited()
        mock_synthesizer.speak.assert_not_awaited()
        assert unsupported_agent.session.listening_enabled is False
        assert unsupported_agent.session.last_error == UNSUPPORTED_MESSAGE

    async def test_typed_query_keeps_error(self, unsupported_agent, navigator):
        await unsupported_agent.submit_transcript("cats")
        await unsupported_agent.drain()
        navigator.assert_called_once()
        assert unsupported_agent.session.last_error == UNSUPPORTED_MESSAGE


# ---------------------------------------------------------------------------
# Toggling
# ---------------------------------------------------------------------------


class TestToggle:

    async def test_toggle_on_listens_and_prompts(self, agent, mock_recognizer, mock_synthesizer):
        await agent.toggle_on()
        assert agent.state == AgentState.LISTENING
        assert agent.session.listening_enabled is True
        mock_recognizer.start.assert_awaited_once()
        assert _spoken(mock_synthesizer) == [LISTENING_PROMPT]

    async def test_toggle_on_twice_is_noop(self, agent, mock_recognizer, mock_synthesizer):
        await agent.toggle_on()
        await agent.toggle_on()
        assert agent.state == AgentState.LISTENING
        mock_recognizer.start.assert_awaited_once()
        mock_synthesizer.speak.assert_awaited_once()

    async def test_toggle_off_returns_to_idle(self, agent, mock_recognizer):
        await agent.toggle_on()
        await agent.toggle_off()
        assert agent.state == AgentState.IDLE
        assert agent.session.listening_enabled is False
        mock_recognizer.stop.assert_awaited()

    async def test_toggle_off_when_off_is_safe(self, agent):
        await agent.toggle_off()
        await agent.toggle_off()
        assert agent.state == AgentState.IDLE

    async def test_toggle_flips(self, agent):
        assert await agent.toggle() is True
        assert await agent.toggle() is False

    async def test_toggle_on_clears_previous_error(self, agent):
        agent.session.last_error = "Recognition error: network"
        await agent.toggle_on()
        assert agent.session.last_error is None

    async def test_start_failure_recorded(self, agent, mock_recognizer, mock_synthesizer):
        mock_recognizer.start.side_effect = RecognitionStartError("device busy")
        await agent.toggle_on()
        assert agent.session.listening_enabled is False
        assert "device busy" in agent.session.last_error
        mock_synthesizer.speak.assert_not_awaited()


# ---------------------------------------------------------------------------
# Restart on natural end
# ---------------------------------------------------------------------------


class TestRestart:

    async def test_ended_while_listening_restarts_once(self, agent, mock_recognizer):
        await agent.toggle_on()
        mock_recognizer.is_running = False
        await agent.post(_ended())
        await agent.drain()
        assert mock_recognizer.start.await_count == 2
        assert agent.state == AgentState.LISTENING

    async def test_restart_happens_before_next_event(self, agent, mock_recognizer, mock_synthesizer):
        calls: list[str] = []

        async def _start():
            calls.append("start")
            mock_recognizer.is_running = True

        async def _speak(text, options=None):
            calls.append(text)
            return "id"

        mock_recognizer.start.side_effect = _start
        mock_synthesizer.speak.side_effect = _speak

        await agent.toggle_on()
        mock_recognizer.is_running = False
        await agent.post(_ended())
        await agent.post(_final("search for cats"))
        await agent.drain()

        assert calls[:3] == ["start", LISTENING_PROMPT, "start"]
        assert "cats" in calls[3]

    async def test_ended_after_toggle_off_does_not_restart(self, agent, mock_recognizer):
        await agent.toggle_on()
        await agent.toggle_off()
        await agent.post(_ended())
        await agent.drain()
        mock_recognizer.start.assert_awaited_once()

    async def test_restart_failure_keeps_listening(self, agent, mock_recognizer):
        await agent.toggle_on()
        mock_recognizer.is_running = False
        mock_recognizer.start.side_effect = RecognitionStartError("device busy")
        await agent.post(_ended())
        await agent.drain()
        assert agent.session.listening_enabled is True
        assert "device busy" in agent.session.last_error

    async def test_quick_end_waits_before_restart(
        self, mock_recognizer, mock_synthesizer, dispatcher
    ):
        controller = AgentController(
            recognizer=mock_recognizer,
            synthesizer=mock_synthesizer,
            dispatcher=dispatcher,
            restart_min_interval=0.3,
        )
        await controller.start()
        try:
            await controller.toggle_on()
            mock_recognizer.is_running = False
            await controller.post(_ended())
            await asyncio.sleep(0.05)
            # Still backing off
            assert mock_recognizer.start.await_count == 1
            await controller.toggle_off()
            await controller.drain()
            assert mock_recognizer.start.await_count == 1
        finally:
            await controller.stop()


# ---------------------------------------------------------------------------
# Recognition errors
# ---------------------------------------------------------------------------


class TestRecognitionError:

    async def test_error_forces_idle(self, agent, mock_recognizer):
        await agent.toggle_on()
        await agent.post(_error(RecognitionErrorCode.NETWORK))
        await agent.drain()
        assert agent.state == AgentState.IDLE
        assert agent.session.listening_enabled is False
        assert agent.session.last_error == "Recognition error: network"
        mock_recognizer.stop.assert_awaited()

    async def test_no_retry_after_error(self, agent, mock_recognizer):
        await agent.toggle_on()
        mock_recognizer.is_running = False
        await agent.post(_error(RecognitionErrorCode.AUDIO_CAPTURE))
        await agent.post(_ended())
        await agent.drain()
        mock_recognizer.start.assert_awaited_once()

    async def test_user_can_retry(self, agent, mock_recognizer):
        await agent.toggle_on()
        await agent.post(_error(RecognitionErrorCode.NO_SPEECH))
        await agent.drain()
        await agent.toggle_on()
        assert agent.session.listening_enabled is True
        assert agent.session.last_error is None
        assert mock_recognizer.start.await_count == 2


# ---------------------------------------------------------------------------
# Transcripts and dispatch
# ---------------------------------------------------------------------------


class TestTranscripts:

    async def test_final_dispatches_search(self, agent, mock_synthesizer, navigator):
        await agent.toggle_on()
        await agent.post(_final("search for cats"))
        await agent.drain()

        navigator.assert_called_once_with("https://www.google.com/search?q=cats")
        assert agent.session.last_transcript == "search for cats"
        assert len(agent.session.results) == 3
        assert agent.session.response_text in _spoken(mock_synthesizer)
        assert agent.state == AgentState.LISTENING

    async def test_empty_query_is_silent_noop(self, agent, mock_synthesizer, navigator):
        await agent.toggle_on()
        await agent.post(_final("  search  "))
        await agent.drain()

        navigator.assert_not_called()
        assert agent.session.last_transcript == "  search  "
        assert agent.session.last_error is None
        assert _spoken(mock_synthesizer) == [LISTENING_PROMPT]

    async def test_interim_is_tracked_not_acted_on(self, agent, navigator):
        await agent.toggle_on()
        await agent.post(RecognitionEvent(type=RecognitionEventType.INTERIM, text="search for"))
        await agent.drain()
        assert agent.session.interim_transcript == "search for"
        navigator.assert_not_called()

    async def test_finals_handled_in_delivery_order(self, agent, mock_synthesizer):
        await agent.toggle_on()
        await agent.post(_final("google dogs"))
        await agent.post(_final("find birds"))
        await agent.drain()

        spoken = _spoken(mock_synthesizer)
        assert "dogs" in spoken[1]
        assert "birds" in spoken[2]
        assert agent.session.last_transcript == "find birds"

    async def test_final_after_toggle_off_ends_idle(self, agent):
        await agent.toggle_on()
        await agent.toggle_off()
        await agent.post(_final("cats"))
        await agent.drain()
        assert agent.state == AgentState.IDLE
        assert len(agent.session.results) == 3

    async def test_successful_dispatch_clears_error(self, agent):
        await agent.toggle_on()
        agent.session.last_error = "Search failed for 'x': search provider unreachable"
        await agent.post(_final("cats"))
        await agent.drain()
        assert agent.session.last_error is None


class TestProcessingState:

    @pytest.fixture
    def provider(self) -> _BlockingProvider:
        return _BlockingProvider()

    @pytest.fixture
    async def slow_agent(self, mock_recognizer, mock_synthesizer, navigator, provider, display_bus):
        controller = AgentController(
            recognizer=mock_recognizer,
            synthesizer=mock_synthesizer,
            dispatcher=SearchDispatcher(provider, navigator=navigator),
            display_bus=display_bus,
            restart_min_interval=0.0,
        )
        await controller.start()
        yield controller
        provider.release()
        await controller.stop()

    async def test_processing_while_dispatch_pending(self, slow_agent, provider):
        await slow_agent.toggle_on()
        await slow_agent.post(_final("search for cats"))
        await asyncio.wait_for(provider.entered.wait(), timeout=2.0)

        assert slow_agent.state == AgentState.PROCESSING
        assert slow_agent.snapshot.state == AgentState.PROCESSING

        provider.release()
        await slow_agent.drain()
        assert slow_agent.state == AgentState.LISTENING
        assert slow_agent.session.processing is False

    async def test_snapshots_show_processing_then_listening(
        self, slow_agent, provider, display_bus
    ):
        await slow_agent.toggle_on()
        queue = await display_bus.subscribe()
        while not queue.empty():
            queue.get_nowait()

        await slow_agent.post(_final("find birds"))
        await asyncio.wait_for(provider.entered.wait(), timeout=2.0)
        provider.release()
        await slow_agent.drain()

        states = []
        while not queue.empty():
            states.append(queue.get_nowait().state)
        assert states[0] == AgentState.PROCESSING
        assert states[-1] == AgentState.LISTENING

    async def test_toggle_off_during_processing_ends_idle(self, slow_agent, provider):
        await slow_agent.toggle_on()
        await slow_agent.post(_final("google dogs"))
        await asyncio.wait_for(provider.entered.wait(), timeout=2.0)

        await slow_agent.toggle_off()
        assert slow_agent.state == AgentState.PROCESSING

        provider.release()
        await slow_agent.drain()
        assert slow_agent.state == AgentState.IDLE


class TestDispatchFailure:

    @pytest.fixture
    async def failing_agent(self, mock_recognizer, mock_synthesizer, navigator):
        controller = AgentController(
            recognizer=mock_recognizer,
            synthesizer=mock_synthesizer,
            dispatcher=SearchDispatcher(_FailingProvider(), navigator=navigator),
            restart_min_interval=0.0,
        )
        await controller.start()
        yield controller
        await controller.stop()

    async def test_failure_is_surfaced_not_raised(self, failing_agent, mock_synthesizer, navigator):
        await failing_agent.toggle_on()
        await failing_agent.post(_final("search for cats"))
        await failing_agent.drain()

        assert "cats" in failing_agent.session.last_error
        assert failing_agent.state == AgentState.LISTENING
        assert "couldn't search for cats" in _spoken(mock_synthesizer)[-1]
        navigator.assert_not_called()

    async def test_controller_keeps_running(self, failing_agent):
        await failing_agent.toggle_on()
        await failing_agent.post(_final("cats"))
        await failing_agent.post(RecognitionEvent(type=RecognitionEventType.INTERIM, text="still here"))
        await failing_agent.drain()
        assert failing_agent.session.interim_transcript == "still here"


# ---------------------------------------------------------------------------
# Speaking flag and display snapshots
# ---------------------------------------------------------------------------


class TestSpeakingFlag:

    async def test_started_and_ended(self, agent):
        await agent.post(SynthesisEvent(type=SynthesisEventType.STARTED, utterance_id="u1"))
        await agent.drain()
        assert agent.session.speaking is True

        await agent.post(SynthesisEvent(type=SynthesisEventType.ENDED, utterance_id="u1"))
        await agent.drain()
        assert agent.session.speaking is False


class TestSnapshots:

    async def test_toggle_publishes_snapshot(self, agent, display_bus):
        queue = await display_bus.subscribe()
        # Drop the snapshot published at start
        queue.get_nowait()

        await agent.toggle_on()
        snapshot = queue.get_nowait()
        assert snapshot.listening is True
        assert snapshot.state == AgentState.LISTENING

    async def test_results_published(self, agent, display_bus):
        await agent.post(_final("look up rust"))
        await agent.drain()
        latest = display_bus.latest
        assert latest.transcript == "look up rust"
        assert [r.title for r in latest.results][0] == "rust - Wikipedia"
        assert latest.error_message is None


# ---------------------------------------------------------------------------
# End to end with a real synthesizer
# ---------------------------------------------------------------------------


class TestEndToEnd:

    @pytest.fixture
    def provider(self):
        mock = AsyncMock()
        mock.is_available = True
        mock.provider_name = "mock"
        mock.synthesize = AsyncMock(return_value=b"\x00\x00" * 16)
        return mock

    @pytest.fixture
    def player(self):
        mock = AsyncMock()
        mock.is_available = True
        mock.play = AsyncMock(return_value=True)
        return mock

    async def test_listen_search_speak(self, mock_recognizer, dispatcher, provider, player):
        synthesizer = SpeechSynthesizer(provider=provider, player=player)
        controller = AgentController(
            recognizer=mock_recognizer,
            synthesizer=synthesizer,
            dispatcher=dispatcher,
            restart_min_interval=0.0,
        )
        await controller.start()
        try:
            await controller.toggle_on()
            await synthesizer.wait()
            await controller.drain()
            assert provider.synthesize.await_args_list[0].args[0] == LISTENING_PROMPT

            await controller.post(_final("search for rust programming"))
            await controller.drain()
            await synthesizer.wait()
            await controller.drain()

            session = controller.session
            assert "rust programming" in session.response_text
            assert len(session.results) == 3
            for result in session.results:
                assert "rust programming" in result.title or "rust programming" in result.snippet
            assert provider.synthesize.await_args_list[-1].args[0] == session.response_text
            assert session.last_error is None
            assert session.speaking is False
            assert player.play.await_count == 2
        finally:
            await controller.stop()
