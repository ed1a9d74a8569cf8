"""
FastAPI application for focusloop.

Provides REST API for:
- Missions (next skill to practice, answer grading)
- Focus sessions (loop-by-loop state machine, review plans)
- Domain event draining
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from focusloop import __version__
from focusloop.api.dependencies import get_service, reset_service
from focusloop.config import get_settings
from focusloop.core.errors import (
    CollaboratorUnavailable,
    FocusloopError,
    NotFound,
    StateConflict,
    ValidationError,
)
from focusloop.core.logging import configure_logging

settings = get_settings()

ERROR_STATUS = (
    (ValidationError, 422),
    (NotFound, 404),
    (StateConflict, 409),
    (CollaboratorUnavailable, 503),
)


def status_for(error: FocusloopError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    configure_logging(settings.log_level, settings.log_file)
    logger.info("Starting focusloop service...")
    get_service().start_background()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    logger.info("Shutting down focusloop service...")
    reset_service()


app = FastAPI(
    title="focusloop",
    description="""
    Adaptive mastery tracking and focus-session orchestration.

    ## Features

    - **Missions**: Decay-weighted choice of the next skill, answer grading
    - **Focus Sessions**: 3-4 practice loops with difficulty adaptation
    - **Review Plans**: Next-session subtopics, modality and spaced repetition
    """,
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(FocusloopError)
async def focusloop_error_handler(request: Request, exc: FocusloopError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "internal", "message": str(exc)})


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "focusloop",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "components": {
            "generator": "configured" if settings.has_generator_configured() else "templates",
        },
        "config": settings.get_session_config(),
    }


# ========================================
# Import and mount routers
# ========================================

from focusloop.api.routers import focus_sessions_router, missions_router  # noqa: E402

app.include_router(missions_router.router, prefix="/missions", tags=["Missions"])
app.include_router(focus_sessions_router.router, prefix="/focus-sessions", tags=["Focus Sessions"])
