"""Standardized error handling for the scheduling API.

This module provides:
1. The domain error taxonomy (validation, auth, locked, not found,
   conflict, persistence)
2. Exception handlers for FastAPI
3. The standard error response model

Usage:
    from meetgrid.errors import NotFoundError, ValidationError

    # In services and controllers:
    if event is None:
        raise NotFoundError(detail="Event not found", event_id=event_id)
    if missing:
        raise ValidationError.for_fields(missing)

    # Register handlers in main.py:
    from meetgrid.errors import register_exception_handlers
    register_exception_handlers(app)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class APIError(Exception):
    """Base class for API errors."""

    status_code: int = 500
    error: str = "internal_error"
    detail: str = "An unexpected error occurred"

    def __init__(
        self,
        detail: str | None = None,
        error_code: str | None = None,
        **context: Any,
    ) -> None:
        self.detail = detail or self.__class__.detail
        self.error_code = error_code
        self.context = context if context else None
        super().__init__(self.detail)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        )


class ValidationError(APIError):
    """Malformed or missing input (400).

    ``context["fields"]`` always names every offending field, not just the
    first one found.
    """

    status_code = 400
    error = "validation_error"
    detail = "Invalid request"

    @classmethod
    def for_fields(cls, fields: list[str], detail: str | None = None) -> "ValidationError":
        if detail is None:
            detail = f"Missing required fields: {', '.join(fields)}"
        return cls(detail=detail, fields=list(fields))

    @property
    def fields(self) -> list[str]:
        return list((self.context or {}).get("fields", []))


class AuthError(APIError):
    """Missing, invalid or expired session, or a password mismatch (401)."""

    status_code = 401
    error = "unauthorized"
    detail = "Not authenticated"


class LockedError(APIError):
    """A new identity tried to join an event whose response limit is reached (403)."""

    status_code = 403
    error = "event_locked"
    detail = "This event is not accepting new responses"


class NotFoundError(APIError):
    """Resource not found error (404)."""

    status_code = 404
    error = "not_found"
    detail = "Resource not found"


class ConflictError(APIError):
    """Write based on a stale version, or a duplicate id (409)."""

    status_code = 409
    error = "conflict"
    detail = "Resource was modified concurrently"


class PersistenceError(APIError):
    """Underlying store failure (500)."""

    status_code = 500
    error = "persistence_error"
    detail = "Failed to persist changes"


class ServiceUnavailableError(APIError):
    """Service unavailable error (503)."""

    status_code = 503
    error = "service_unavailable"
    detail = "Service temporarily unavailable"


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors."""
    logger.warning(
        "API error: %s (status=%d, path=%s)",
        exc.detail,
        exc.status_code,
        request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report FastAPI body/query validation failures as a 400 listing every field."""
    fields: list[str] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        name = ".".join(loc) or "body"
        if name not in fields:
            fields.append(name)
    error = ValidationError(detail=f"Invalid fields: {', '.join(fields)}", fields=fields)
    return await api_error_handler(request, error)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception("Unhandled exception: %s (path=%s)", exc, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="internal_error",
            detail="An unexpected error occurred",
        ).model_dump(exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, general_exception_handler)
