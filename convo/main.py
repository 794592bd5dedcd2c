# convo/main.py

from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from convo.api import websocket as websocket_module
from convo.api.routes import health, metrics, root, rooms
from convo.core.clock import Clock, Scheduler
from convo.core.config import Settings
from convo.core.logging import get_logger, setup_logging
from convo.core.state import AppState
from convo.services.summarization_gateway import SummarizationGateway, build_gateway

# Configure logging first
setup_logging()
logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[SummarizationGateway] = None,
    clock: Optional[Clock] = None,
    scheduler: Optional[Scheduler] = None,
) -> FastAPI:
    """
    Build the FastAPI app. Room state is created on startup, after the
    configuration has been validated; a ConfigurationError there stops the
    server before it accepts connections.
    """
    settings = settings or Settings()

    app = FastAPI(title="Convo - Ephemeral Chat Rooms")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(rooms.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    @app.on_event("startup")
    async def startup_event():
        settings.validate()
        state = AppState(
            settings,
            gateway or build_gateway(settings),
            clock=clock,
            scheduler=scheduler,
        )
        app.state.convo = state

        if state.redis_sink is not None:
            await state.redis_sink.connect()
            # Start subscriber in background
            app.state.redis_listener = asyncio.create_task(state.redis_sink.listen())

        state.reaper.start()

        logger.info("🚀 Application starting")
        logger.info("Room inactivity timeout: %s minutes", settings.ROOM_INACTIVITY_TIMEOUT_SECONDS / 60)
        logger.info("Max messages per room: %s", settings.MAX_MESSAGES_PER_ROOM)
        logger.info("Max characters per message: %s", settings.MAX_CHARACTERS_PER_MESSAGE)

    @app.on_event("shutdown")
    async def on_shutdown():
        state: AppState = getattr(app.state, "convo", None)
        if state is None:
            return
        await state.reaper.stop()
        await state.coordinator.shutdown()
        listener = getattr(app.state, "redis_listener", None)
        if listener is not None:
            listener.cancel()
        if state.redis_sink is not None:
            await state.redis_sink.close()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    startup_settings = Settings()
    startup_settings.validate()
    uvicorn.run("convo.main:app", host="0.0.0.0", port=startup_settings.PORT)
