"""
Matching Errors and Global Error Handling

This module defines the error taxonomy of the matching engine together with
the application-wide exception handlers that translate it into HTTP responses.

Design Goals
------------
- Every known failure carries its own status code and a stable `errorType`
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("matcher.errors")


# ---------------------------------------------------------------------
# Error Taxonomy
# ---------------------------------------------------------------------

class MatchingError(RuntimeError):
    """
    Base class for failures surfaced by the matching engine.

    Subclasses set `status_code` (HTTP-equivalent) and `error_type`
    (the machine-readable name returned to callers).
    """

    status_code: int = 500
    error_type: str = "MatchingError"
    hint: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": False,
            "error": str(self),
            "errorType": self.error_type,
        }
        if self.hint:
            payload["hint"] = self.hint
        return payload


class RequestNotFound(MatchingError):
    """Raised when the request to be matched does not exist."""

    status_code = 404
    error_type = "RequestNotFoundError"

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Request with ID '{request_id}' not found")
        self.request_id = request_id


class MissingDescription(MatchingError):
    """Raised when an item has no usable genericDescription to embed."""

    status_code = 400
    error_type = "MissingDescriptionError"

    def __init__(self, collection: str, item_id: str) -> None:
        super().__init__(
            f"Document {collection}/{item_id} is missing "
            f"attributes.genericDescription or it is empty"
        )
        self.collection = collection
        self.item_id = item_id


class EmbeddingDimensionMismatch(MatchingError):
    """Raised when the generator returns a vector of the wrong length."""

    status_code = 500
    error_type = "EmbeddingDimensionMismatchError"

    def __init__(self, expected: int, actual: int, item_id: str) -> None:
        super().__init__(
            f"Embedding dimension mismatch for {item_id}: "
            f"expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.item_id = item_id


class IndexUnavailable(MatchingError):
    """Raised when the similarity search backend cannot serve a query."""

    status_code = 503
    error_type = "IndexUnavailableError"
    hint = (
        "Install the pgvector extension (CREATE EXTENSION vector) and create "
        "the found_items table, then try again"
    )

    def __init__(self, reason: str = "vector similarity index is unavailable") -> None:
        super().__init__(f"Similarity search unavailable: {reason}")


class MatchTimeout(MatchingError):
    """Raised when a matching run exceeds its wall-clock budget."""

    status_code = 504
    error_type = "MatchTimeoutError"

    def __init__(self, request_id: str, seconds: float) -> None:
        super().__init__(
            f"Matching for request '{request_id}' exceeded {seconds:g}s"
        )


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def matching_error_handler(
    request: Request,
    exc: MatchingError,
) -> JSONResponse:
    """
    Translate a known matching failure into its mapped status code.

    Server-side failures (5xx) are logged at ERROR so they are flagged for
    operator attention; caller mistakes are logged at WARNING.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            exc.error_type,
            request.method,
            request.url.path,
            exc,
        )
    else:
        logger.warning(
            "%s on %s %s: %s",
            exc.error_type,
            request.method,
            request.url.path,
            exc,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
    )


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Report malformed request bodies as 400 with the first validation message.
    """
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"

    logger.warning("Validation failed on %s %s: %s", request.method, request.url.path, message)

    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": message, "errorType": "ValidationError"},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or framework-level
    handlers.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "ok": False,
        "error": "Internal server error",
        "errorType": "InternalError",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
