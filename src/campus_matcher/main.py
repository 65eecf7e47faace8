"""
Matching Service Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, wires the reactive triggers, and
provides a test-friendly application factory.

Design Goals
------------
- Deterministic startup
- Explicit dependency initialization order
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from .config import settings
from .core.errors import (
    MatchingError,
    matching_error_handler,
    unhandled_exception_handler,
    validation_error_handler,
)
from .db import repository_scope
from .api import (
    health_routes,
    item_routes,
    match_routes,
)
from .api.dependencies import get_embedder
from .triggers.bus import trigger_bus, start_trigger_workers
from .triggers.handlers import MatchTriggers


logger = logging.getLogger("matcher.app")


# ---------------------------------------------------------------------
# Lifespan: trigger workers
# ---------------------------------------------------------------------

@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Register trigger handlers and run the trigger workers for the app's lifetime.
    """
    logger.info("Starting campus-matcher (embedding_dim=%d)", settings.embedding_dim)

    trigger_bus.clear()
    MatchTriggers(repository_scope, get_embedder()).register(trigger_bus)
    workers = start_trigger_workers(trigger_bus, settings.trigger_workers)

    try:
        yield
    finally:
        logger.info("Shutting down campus-matcher")
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Isolated app instances for integration tests
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="campus-matcher",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(MatchingError, matching_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(match_routes.router)
    app.include_router(item_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
