"""
Application Entry Point

This module defines the FastAPI application that hosts the RAG subsystem:
global exception handling, the health route and lifecycle hooks. Outer
routers (chat, analysis, document extraction) mount on top of it and obtain
services from `api.dependencies`.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Domain errors translated in one place
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import settings
from .core.errors import register_exception_handlers
from .db import async_engine

from .api import health_routes


logger = logging.getLogger("rag.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

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
        title="case-rag",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    register_exception_handlers(app)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)

    # --------------------------------------------------------------
    # Lifecycle Hooks
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_validation() -> None:
        logger.info("Starting case-rag")

        if settings.embedding_service_url is None:
            # Not fatal: embedding calls will report Unavailable
            logger.warning("EMBEDDING_SERVICE_URL is not configured")

        logger.info(
            "Chunking %d chars (overlap %d, max %d chunks), top_k max %d",
            settings.rag_chunk_chars,
            settings.rag_chunk_overlap_chars,
            settings.rag_max_chunks,
            settings.rag_max_top_k,
        )

    @app.on_event("shutdown")
    async def _shutdown_cleanup() -> None:
        logger.info("Shutting down case-rag")
        await async_engine.dispose()

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
