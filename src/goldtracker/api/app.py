"""FastAPI application factory for the tracker's JSON API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from goldtracker.api.errors import register_exception_handlers
from goldtracker.api.routes import prices, signals


def create_app(lifespan: Any = None, cors_origins: list[str] | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.
        cors_origins: Allowed CORS origins (defaults to any).

    Returns:
        Configured FastAPI application with error handlers and routes. The
        caller is expected to populate app.state with settings, database,
        breaker, scheduler, price_service, signal_store and response_cache.
    """
    app = FastAPI(
        title="Gold Tracker API",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(prices.router, prefix="/api")
    app.include_router(signals.router, prefix="/api")

    return app
