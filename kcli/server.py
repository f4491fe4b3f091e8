# kcli/server.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kcli import __version__
from kcli.api import consumer_groups as cg_router
from kcli.api import tail as tail_router
from kcli.api import topics as topics_router
from kcli.core.config import Settings, get_settings
from kcli.core.errors import install_exception_handlers
from kcli.services.broker import ClusterClient


def create_app(client: ClusterClient, settings: Optional[Settings] = None) -> FastAPI:
    """Build the read-only API around an already configured broker client."""
    settings = settings or get_settings()

    # Lifespan handler replaces @app.on_event("startup"/"shutdown")
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            close = getattr(client, "close", None)
            if callable(close):
                close()

    app = FastAPI(
        title="kcli API",
        version=__version__,
        lifespan=lifespan,
        openapi_url="/api/v1/openapi.json",
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
    )
    app.state.client = client
    app.state.settings = settings

    # --- CORS: allow a local UI during development (configurable via settings.cors_allow_origins) ---
    allow_origins = settings.cors_allow_origins or [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    install_exception_handlers(app)

    # REST routes
    app.include_router(topics_router.router, prefix="/api/v1")
    app.include_router(cg_router.router, prefix="/api/v1")

    # WebSocket route (note: not under /api/v1)
    app.include_router(tail_router.router)
    return app
