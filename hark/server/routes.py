"""HTTP routes for the Hark server.

Endpoints
---------
GET  /health          Server health, version, and the availability of the
                      recognizer, synthesizer and search provider.

GET  /session         The current AgentSnapshot as JSON.

POST /listen/toggle   Flip listening on or off (the "Start/Stop Listening"
POST /listen/start    button of a front end), or set it explicitly.
POST /listen/stop

POST /search          Typed query: ``{"query": "..."}``. Runs through the
                      same interpret/dispatch path as a spoken transcript.

GET  /snapshots       Streams AgentSnapshots as Server-Sent Events.
"""

import asyncio
import logging

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

from hark import __version__
from hark.agent.controller import AgentController
from hark.events.event_bus import EventBus

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request) -> AgentController:
    """Retrieve the shared AgentController from application state."""
    return request.app.state.agent


def _get_display_bus(request: Request) -> EventBus:
    """Retrieve the shared snapshot bus from application state."""
    return request.app.state.display_bus


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


@router.get("/health")
async def health(request: Request) -> dict:
    """Return server health information for the CLI ``status`` command."""
    agent = _get_agent(request)
    recognizer = agent.recognizer
    synthesizer = agent.synthesizer

    return {
        "status": "ok",
        "version": __version__,
        "agent_state": agent.state.value,
        "recognition_supported": agent.session.supported,
        "mic_available": recognizer.mic_available,
        "stt_available": recognizer.stt_available,
        "tts_state": synthesizer.state.value,
        "tts_provider": synthesizer.provider_name,
        "search_provider": agent.dispatcher.provider_name,
        "subscribers": _get_display_bus(request).subscriber_count,
    }


# ---------------------------------------------------------------------------
# GET /session
# ---------------------------------------------------------------------------


@router.get("/session")
async def session(request: Request) -> dict:
    return _get_agent(request).snapshot.model_dump(mode="json")


# ---------------------------------------------------------------------------
# POST /listen/*
# ---------------------------------------------------------------------------


@router.post("/listen/toggle")
async def toggle_listening(request: Request) -> dict:
    agent = _get_agent(request)
    listening = await agent.toggle()
    return {"status": "ok", "listening": listening, "error": agent.session.last_error}


@router.post("/listen/start")
async def start_listening(request: Request) -> dict:
    agent = _get_agent(request)
    await agent.toggle_on()
    return {
        "status": "ok" if agent.session.listening_enabled else "error",
        "listening": agent.session.listening_enabled,
        "error": agent.session.last_error,
    }


@router.post("/listen/stop")
async def stop_listening(request: Request) -> dict:
    agent = _get_agent(request)
    await agent.toggle_off()
    return {"status": "ok", "listening": agent.session.listening_enabled}


# ---------------------------------------------------------------------------
# POST /search
# ---------------------------------------------------------------------------


@router.post("/search")
async def search(request: Request) -> dict:
    """Queue a typed query as if it had been spoken.

    Accepts JSON: ``{"query": "..."}``. Results arrive on /snapshots.
    """
    agent = _get_agent(request)

    try:
        body = await request.json()
    except Exception:
        return {"status": "error", "reason": "invalid json"}

    query = body.get("query", "") if isinstance(body, dict) else ""
    if not isinstance(query, str) or not query.strip():
        return {"status": "error", "reason": "query is required"}

    await agent.submit_transcript(query)
    logger.info("Typed query queued: %s", query)
    return {"status": "queued", "query": query}


# ---------------------------------------------------------------------------
# GET /snapshots  (Server-Sent Events)
# ---------------------------------------------------------------------------


@router.get("/snapshots")
async def snapshot_stream(request: Request) -> EventSourceResponse:
    """Stream AgentSnapshots as Server-Sent Events.

    Each SSE message has ``event`` set to the agent state and ``data`` set
    to the snapshot as JSON. The first message is the current snapshot.
    """
    display_bus = _get_display_bus(request)

    async def _generate():
        queue = await display_bus.subscribe()
        try:
            while True:
                if await request.is_disconnected():
                    logger.debug("Snapshot SSE client disconnected")
                    break
                try:
                    snapshot = await asyncio.wait_for(queue.get(), timeout=15.0)
                except asyncio.TimeoutError:
                    yield {"comment": "ping"}
                    continue
                yield {
                    "event": snapshot.state.value,
                    "data": snapshot.model_dump_json(),
                }
        except asyncio.CancelledError:
            logger.debug("Snapshot SSE stream cancelled")
        finally:
            await display_bus.unsubscribe(queue)

    return EventSourceResponse(_generate())
