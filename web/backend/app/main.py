"""FastAPI application for the syncrules governance API.

Provides the persistence endpoints the client-side engine runs against:
- Accounts and projects, plus the derived inheritance read model
- Folders, their sync state transitions, and sharing
- Rules
- Project and folder permission grants
- The append-only audit log (feed, per-resource history, export)
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from syncrules import __version__
from syncrules.config import configure_logging, load_settings
from syncrules.governance.errors import (
    BackendError,
    ConfirmationRequiredError,
    ConflictError,
    GovernanceError,
    InvalidModeError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
)
from web.backend.app.routers import audit, folders, permissions, projects

configure_logging(load_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="syncrules API",
    description=(
        "REST API for folder governance. "
        "Stores accounts, projects, folders, rules and permissions, applies folder sync "
        "transitions, and keeps the append-only audit log."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(projects.router)
app.include_router(folders.router)
app.include_router(permissions.router)
app.include_router(audit.router)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

# Checked in order; subclasses before their bases.
_STATUS_BY_ERROR: list[tuple[type[GovernanceError], int]] = [
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ConflictError, 409),
    (InvalidModeError, 422),
    (ConfirmationRequiredError, 428),
    (NetworkError, 503),
    (BackendError, 502),
]


def status_for(exc: GovernanceError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return 500


@app.exception_handler(GovernanceError)
async def governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    code = status_for(exc)
    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, NotFoundError):
        body["resource_type"] = exc.resource_type
        body["resource_id"] = exc.resource_id
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, code, exc)
    return JSONResponse(status_code=code, content=body)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.info("%s %s rejected (400): %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": "ValueError"})


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "syncrules API",
        "version": __version__,
        "description": "Folder governance REST API",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
