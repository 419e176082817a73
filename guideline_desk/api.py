"""
FastAPI application for Guideline Desk.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, List

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .contributions.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    ContributionError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    PublishFailure,
    ReviewerUnavailable,
    UnauthenticatedError,
    ValidationError,
)
from .contributions.routes import router as contributions_router
from .db.base import init_database
from .log import configure_logging

logger = structlog.get_logger()

settings = get_settings()

# Most specific first; the first isinstance match wins.
ERROR_STATUS_CODES = [
    (ValidationError, 400),
    (UnauthenticatedError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (DuplicateError, 409),
    (InvalidStateError, 409),
    (ConcurrentModificationError, 409),
    (PublishFailure, 502),
    (ReviewerUnavailable, 503),
]


def status_code_for(exc: ContributionError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def app_version() -> str:
    return importlib.metadata.version("guideline-desk")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    configure_logging(settings.log_level, settings.log_format)
    logger.info("Starting Guideline Desk")

    try:
        await init_database()
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Review and moderation of community-contributed guidelines",
    version=app_version(),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ContributionError)
async def contribution_error_handler(
    request: Request, exc: ContributionError
) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies get the same error shape as domain validation."""
    details: List[Dict[str, Any]] = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc), "message": error.get("msg", "")})
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": ValidationError.code,
                "message": "Invalid request",
                "details": details,
            }
        },
    )


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Basic health check endpoint."""
    return {"status": "ok", "environment": settings.environment}


@app.get("/version", tags=["system"])
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"app": settings.app_name, "version": app_version()}


app.include_router(contributions_router)
