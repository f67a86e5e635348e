"""FastAPI application factory for Hark.

Creates the FastAPI app with lifespan management for the AgentController.
``create_app()`` is the single entry point used by the CLI and ``uvicorn``
alike.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from hark.agent.controller import AgentController
from hark.agent.session import AgentSnapshot
from hark.events.event_bus import EventBus
from hark.server.routes import router

logger = logging.getLogger(__name__)


def create_app(
    agent: AgentController | None = None,
    display_bus: EventBus[AgentSnapshot] | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    The returned app has:
    * ``app.state.agent``: the :class:`AgentController`
    * ``app.state.display_bus``: the bus the agent publishes AgentSnapshots on
    * the routes from :mod:`hark.server.routes`
    * a lifespan that starts the agent on startup and stops it on shutdown
    """
    if agent is None:
        agent = AgentController(display_bus=display_bus)
    elif display_bus is not None and display_bus is not agent.display_bus:
        raise ValueError("display_bus must be the bus the agent publishes to")
    display_bus = agent.display_bus

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Hark server starting up")
        await agent.start()
        try:
            yield
        finally:
            logger.info("Hark server shutting down")
            await agent.stop()

    app = FastAPI(title="Hark", version="0.1.0", lifespan=lifespan)
    app.state.agent = agent
    app.state.display_bus = display_bus
    app.include_router(router)

    logger.info("FastAPI app created")
    return app
