"""
Error Taxonomy and Global Error Handling

This module defines the exception hierarchy shared by every layer of the
news RAG server, together with the FastAPI handlers that map those
exceptions onto HTTP responses.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Let each boundary (storage, remote provider, pipeline) raise its own type
  so callers decide explicitly whether to degrade or propagate
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("newsrag.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class NewsRagError(Exception):
    """Base class for all application errors."""


class ValidationError(NewsRagError):
    """Raised when a request or input has an invalid shape (HTTP 400)."""

    def __init__(self, message: str, required: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.required = required


class InvalidInputError(ValidationError):
    """Raised when text handed to the embedding layer is empty."""


class RemoteServiceError(NewsRagError):
    """Raised when a remote provider (embeddings, generation) fails."""


class DimensionMismatchError(NewsRagError):
    """Raised when two vectors of different dimensionality are compared."""


class StorageError(NewsRagError):
    """Raised when the durable key-value store is unavailable or fails."""


class PipelineError(NewsRagError):
    """Raised when a chat turn fails after the user message was recorded."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def validation_exception_handler(
    request: Request,
    exc: ValidationError,
) -> JSONResponse:
    """
    Map application-level validation failures onto HTTP 400.
    """
    payload: Dict[str, Any] = {"error": exc.message}
    if exc.required:
        payload["required"] = exc.required

    return JSONResponse(status_code=400, content=payload)


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Map malformed request bodies (non-JSON, wrong types) onto HTTP 400.

    FastAPI reports these as 422 by default; the public contract of this
    API is 400 for any bad request shape.
    """
    logger.info(
        "Rejected malformed request: %s %s (%d errors)",
        request.method,
        request.url.path,
        len(exc.errors()),
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body"},
    )


async def pipeline_exception_handler(
    request: Request,
    exc: PipelineError,
) -> JSONResponse:
    """
    Handle a failed chat turn.

    The cause has already been recorded in the session history by the chat
    service; here we log the full chain and return a generic message.
    """
    logger.error(
        "Chat processing error during %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Failed to process message",
            "message": "Please try again later",
        },
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
