"""
Tubely API - FastAPI Application Entry Point.

``create_app(settings)`` builds the FastAPI application with CORS middleware,
the v1 routers, liveness and readiness endpoints, and the MongoDB connection
managed through the lifespan handler. The local assets directory is mounted at
``/assets`` only when the settings passed in store thumbnails on the
filesystem, so an app built for other settings gets its own mount decision.

``app`` is the instance built from the environment's settings and is what
``uvicorn tubely.main:app`` serves.
"""

import logging

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import uvicorn

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from tubely import __version__
from tubely.api.v1 import api_router
from tubely.config import THUMBNAIL_STORAGE_FILESYSTEM, Settings, get_settings
from tubely.core.database import close_db, get_db_client, init_db
from tubely.utils.logger import setup_logging


logger = logging.getLogger(__name__)


def create_app(settings: Settings) -> FastAPI:
    """Build the application for ``settings``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Startup: configure logging, prepare directories, connect to MongoDB.
        Shutdown: close the MongoDB client.

        A failed database connection is logged and startup continues so the
        health endpoints can still answer; uploads then fail with 5xx.
        """
        setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

        settings.resolved_staging_dir.mkdir(parents=True, exist_ok=True)
        if settings.thumbnail_storage == THUMBNAIL_STORAGE_FILESYSTEM:
            Path(settings.assets_root).mkdir(parents=True, exist_ok=True)

        try:
            await init_db(settings)
        except RuntimeError:
            logger.exception("Failed to initialize database connection")

        logger.info("Tubely API started on %s:%d", settings.host, settings.port)
        yield

        await close_db()
        logger.info("Tubely API shutdown complete")

    app = FastAPI(
        title="Tubely API",
        version=__version__,
        description="Video and thumbnail ingestion for Tubely",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", tags=["root"])
    async def root() -> dict:
        """API name, version and docs location."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "description": "Video and thumbnail ingestion for Tubely",
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """Liveness probe. Does not check backing services."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": "tubely-backend",
        }

    @app.get("/ready", tags=["health"])
    async def readiness_check() -> dict:
        """
        Readiness probe: 200 once MongoDB answers a ping, 503 otherwise.

        The object store is not checked; publishing failures surface per request.
        """
        try:
            connected = await get_db_client().ping()
        except RuntimeError:
            connected = False
        if not connected:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={"error": "not_ready", "message": "Database is not reachable"},
            )
        return {
            "status": "ready",
            "timestamp": datetime.now(UTC).isoformat(),
            "database": "connected",
        }

    app.include_router(api_router, prefix="/api/v1")

    if settings.thumbnail_storage == THUMBNAIL_STORAGE_FILESYSTEM:
        app.mount(
            "/assets",
            StaticFiles(directory=settings.assets_root, check_dir=False),
            name="assets",
        )

    return app


app = create_app(get_settings())


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "tubely.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )
