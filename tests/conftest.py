"""Shared fixtures for Hark tests."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from hark.agent.controller import AgentController
from hark.events.event_bus import EventBus
from hark.search.dispatcher import SearchDispatcher
from hark.search.provider import CannedSearchProvider


@pytest.fixture
def display_bus() -> EventBus:
    """Return a fresh EventBus for AgentSnapshots with a small queue."""
    return EventBus(maxsize=16)


@pytest.fixture
def mock_recognizer() -> MagicMock:
    """A supported SpeechRecognizer stand-in that records start/stop calls."""
    mock = MagicMock()
    mock.open = AsyncMock()
    mock.close = AsyncMock()
    mock.is_supported = True
    mock.is_running = False
    mock.mic_available = True
    mock.stt_available = True

    async def _start():
        mock.is_running = True

    async def _stop():
        mock.is_running = False

    mock.start = AsyncMock(side_effect=_start)
    mock.stop = AsyncMock(side_effect=_stop)
    return mock


@pytest.fixture
def mock_synthesizer() -> MagicMock:
    """A SpeechSynthesizer stand-in; speak() records what was said."""
    mock = MagicMock()
    mock.start = AsyncMock()
    mock.stop = AsyncMock()
    mock.speak = AsyncMock(return_value="utterance-id")
    mock.provider_name = "mock"
    mock.state = MagicMock()
    mock.state.value = "disabled"
    return mock


@pytest.fixture
def navigator() -> MagicMock:
    """Stands in for webbrowser.open_new_tab."""
    return MagicMock(return_value=True)


@pytest.fixture
def dispatcher(navigator: MagicMock) -> SearchDispatcher:
    """A SearchDispatcher over the canned provider with a mocked browser."""
    return SearchDispatcher(CannedSearchProvider(), navigator=navigator)


@pytest.fixture
async def agent(
    mock_recognizer: MagicMock,
    mock_synthesizer: MagicMock,
    dispatcher: SearchDispatcher,
    display_bus: EventBus,
):
    """A started AgentController wired to mocked audio channels."""
    controller = AgentController(
        recognizer=mock_recognizer,
        synthesizer=mock_synthesizer,
        dispatcher=dispatcher,
        display_bus=display_bus,
        restart_min_interval=0.0,
    )
    await controller.start()
    yield controller
    await controller.stop()


@pytest.fixture
def app(agent: AgentController, display_bus: EventBus):
    """Return a FastAPI test app around the started agent (no lifespan)."""
    from fastapi import FastAPI

    from hark.server.routes import router

    test_app = FastAPI()
    test_app.state.agent = agent
    test_app.state.display_bus = display_bus
    test_app.include_router(router)
    return test_app


@pytest.fixture
async def async_client(app):
    """Return an httpx AsyncClient configured with the test FastAPI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as client:
        yield client
