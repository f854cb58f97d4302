"""
News RAG Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures logging and global exception handling, and provides a
test-friendly application factory.

Design Goals
------------
- Deterministic startup
- Explicit service construction and index reload at startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app(container=...)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from .config import settings
from .container import ServiceContainer, build_container
from .core.errors import (
    PipelineError,
    StorageError,
    ValidationError,
    pipeline_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)

from .api import (
    chat_routes,
    health_routes,
    ingest_routes,
    stats_routes,
)


logger = logging.getLogger("newsrag.app")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    container : Optional[ServiceContainer]
        Pre-built services. When omitted, services are built from settings
        during startup and the key-value store is closed on shutdown.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting news-rag-server")

        owned = app.state.container is None
        if owned:
            app.state.container = build_container()

        services: ServiceContainer = app.state.container

        try:
            await services.kv.init()
        except StorageError:
            logger.exception("Key-value store unavailable at startup")

        # Explicit reload; search still reloads lazily if the index is empty.
        loaded = await services.index.reload()
        logger.info("Vector index ready with %d documents", loaded)

        yield

        logger.info("Shutting down news-rag-server")
        if owned:
            await services.kv.close()

    app = FastAPI(
        title="news-rag-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(PipelineError, pipeline_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(chat_routes.router)
    app.include_router(ingest_routes.router)
    app.include_router(stats_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
