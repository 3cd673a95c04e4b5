"""
FastAPI application factory for the LiveCache inspection API.

This module creates the FastAPI app with:
- CORS configuration for a browser devtools frontend
- Read-only API routes over one engine
- A health endpoint

Run locally:
    uvicorn sdk.livecache.api.app:app --port 8090
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..engine import CacheEngine
from ..router.routes import default_routes
from .config import Settings
from .routes import router


def create_app(engine: CacheEngine | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        engine: Engine to expose (a fresh one with default routes if None)
        settings: API settings (loaded from environment if None)
    """
    settings = settings or Settings()

    app = FastAPI(
        title="LiveCache",
        description="Read-only inspection of a LiveCache engine.",
        version="1.0.0",
    )
    app.state.engine = engine or CacheEngine(routes=default_routes())
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],  # Read-only
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "livecache", "mode": "read-only"}

    return app


# Default app instance
app = create_app()
