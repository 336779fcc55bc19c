"""
Global exception handlers for the FastAPI application.

Centralises error formatting so every error response follows a consistent
JSON structure::

    {
        "error": true,
        "message": "<human-readable description>"
    }

This module also defines the domain exceptions raised when a data-access
result is unwrapped at the HTTP boundary (see ``agrofund.core.results``),
keeping the service layer framework-agnostic.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────────────
# Domain exceptions
# ────────────────────────────────────────────────────────────────────────────


class AppException(Exception):
    """Base exception for all application-level errors."""

    def __init__(self, status_code: int, message: str, details: Any = None):
        self.status_code = status_code
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundException(AppException):
    """Resource not found (404)."""

    def __init__(self, resource: str, identifier: Any = None):
        if identifier is None:
            message = resource
        else:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(status_code=404, message=message)


class ConflictException(AppException):
    """Resource already exists / unique-constraint violation (409)."""

    def __init__(self, message: str):
        super().__init__(status_code=409, message=message)


class BusinessRuleViolation(AppException):
    """Business rule was violated (422)."""

    def __init__(self, message: str):
        super().__init__(status_code=422, message=message)


class AuthenticationRequired(AppException):
    """Missing, expired or invalid credentials (401)."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(status_code=401, message=message)


class PermissionDenied(AppException):
    """Authenticated caller may not perform this action (403)."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(status_code=403, message=message)


class UnexpectedError(AppException):
    """Store or infrastructure failure surfaced as a generic 500."""

    def __init__(self, message: str = "An unexpected error occurred. Please try again."):
        super().__init__(status_code=500, message=message)


# ────────────────────────────────────────────────────────────────────────────
# FastAPI exception handler registration
# ────────────────────────────────────────────────────────────────────────────


def validation_details(errors: list) -> list:
    """Flatten pydantic error dicts into ``[{field, message}]`` pairs."""
    details = []
    for err in errors:
        loc = " -> ".join(str(part) for part in err["loc"])
        message = err["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        details.append({"field": loc, "message": message})
    return details


def add_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI application instance."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle domain-specific exceptions raised by the service layer."""
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": True, "message": exc.message},
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTP exceptions (e.g. 404 from path-not-found)."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": True, "message": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """
        Handle Pydantic / FastAPI request-validation errors.

        Returns a 422 with one entry per failing field so forms can render
        inline messages.
        """
        return JSONResponse(
            status_code=422,
            content={
                "error": True,
                "message": "Validation failed",
                "details": validation_details(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected exceptions; logs the stack trace."""
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": True,
                "message": "Internal Server Error. Please contact support.",
            },
        )
