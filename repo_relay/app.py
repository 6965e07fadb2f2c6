"""
Repository relay HTTP application.

Entry point for the FastAPI application.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from . import __version__
from .api import router as api_router
from .config import Settings, get_settings
from .relay import RelayService

log = structlog.get_logger()


def create_app(settings: Settings | None = None, service: RelayService | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A pre-built ``service`` is used as-is and its lifecycle is left to the
    caller; otherwise one is built from ``settings`` and opened on startup.
    """
    settings = settings or (service.settings if service else get_settings())
    relay = service or RelayService(settings)
    owns_relay = service is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_relay:
            await relay.open()
        log.info("relay.app_started", server_url=settings.server_url)
        try:
            yield
        finally:
            log.info("relay.app_stopping")
            if owns_relay:
                await relay.close()

    app = FastAPI(
        title="Repository Relay",
        description="Relays GitHub repository events to subscribed Telegram chats.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.relay = relay

    app.include_router(api_router)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness checks."""
        return {"status": "ok", "service": "repo-relay"}

    @app.get("/metrics", tags=["System"], response_class=PlainTextResponse)
    async def metrics():
        return PlainTextResponse(
            relay.metrics.to_prometheus(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app
