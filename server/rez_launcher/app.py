"""FastAPI application for the Rez Launcher backend.

The desktop shell calls these routes over loopback; every operation answers
with its data or with ``{"detail": "<message>"}`` on failure.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .app_state import AppContext
from .config import config
from .errors import (
    ConfigError,
    EmptySnapshotError,
    GenerationError,
    LauncherError,
    LoadError,
    NotFoundError,
    StorageError,
)
from .logging_setup import configure_logging

logger = logging.getLogger(__name__)

# Most specific first: EmptySnapshotError must win over LoadError
_ERROR_STATUS: list[tuple[type[LauncherError], int]] = [
    (NotFoundError, 404),
    (EmptySnapshotError, 409),
    (GenerationError, 502),
    (LoadError, 500),
    (StorageError, 503),
    (ConfigError, 400),
]


def status_for(exc: LauncherError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def create_app(context: AppContext | None = None) -> FastAPI:
    """Build the app. A prebuilt ``context`` skips store connection at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        if context is not None:
            app.state.context = context
            yield
            return

        configure_logging(config.log_dir)
        logger.info("Rez Launcher backend starting on %s:%d (%s store)", config.host, config.port, config.store)
        app.state.context = await AppContext.create(config)

        yield

        await app.state.context.close()
        logger.info("Rez Launcher backend stopped")

    app = FastAPI(
        title="Rez Launcher",
        description="Package collections, stages and rez environment snapshots",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(LauncherError)
    async def launcher_error_handler(request: Request, exc: LauncherError) -> JSONResponse:
        status_code = status_for(exc)
        logger.warning("%s %s failed (%d): %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    from .routers.collections import router as collections_router
    from .routers.config_router import router as config_router
    from .routers.health import router as health_router
    from .routers.stages import router as stages_router

    app.include_router(health_router)
    app.include_router(collections_router)
    app.include_router(stages_router)
    app.include_router(config_router)
    return app


app = create_app()
