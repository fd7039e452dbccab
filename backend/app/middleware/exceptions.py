"""Error taxonomy and the handlers that turn it into JSON.

Every error body has the same envelope as a success, with `success` false:

    {"success": false, "message": "...", "error": {"code": "...", "details": ...}}

    ResourceNotFoundError / user FK violation  404 RESOURCE_NOT_FOUND
    PermissionDeniedError                      403 PERMISSION_DENIED
    ValidationFailedError / bad request data   400 VALIDATION_ERROR
    other integrity violations                 422 INTEGRITY_ERROR
    database unreachable                       503 DATABASE_UNAVAILABLE
    anything else                              500 INTERNAL_SERVER_ERROR
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for foreign_key_violation
FOREIGN_KEY_VIOLATION = "23503"


class TaskHubException(Exception):
    """Base exception for TaskHub application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class ResourceNotFoundError(TaskHubException):
    """A task or user reference does not resolve."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class PermissionDeniedError(TaskHubException):
    """Principal lacks the role or ownership for the requested operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class ValidationFailedError(TaskHubException):
    """Malformed or out-of-range input caught before core logic runs."""

    def __init__(self, message: str, details: Union[dict, list, None] = None):
        self.details = details
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="VALIDATION_ERROR",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
    headers: dict | None = None,
) -> JSONResponse:
    error: dict = {"code": error_code}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": error},
        headers=headers,
    )


def _where(request: Request) -> str:
    return f"{request.method} {request.url.path}"


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    """True when the driver reports a broken reference.

    asyncpg errors carry the SQLSTATE; SQLite only says so in the message.
    """
    if getattr(exc.orig, "sqlstate", None) == FOREIGN_KEY_VIOLATION:
        return True
    return "foreign key" in str(exc.orig).lower()


# ── Handlers ─────────────────────────────────────────────────

async def taskhub_exception_handler(request: Request, exc: TaskHubException) -> JSONResponse:
    logger.warning("%s on %s: %s", exc.error_code, _where(request), exc.message)
    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=getattr(exc, "details", None),
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """401 from the bearer scheme, 403 from `require_role`, 404/405 from routing."""
    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Bad body, query or path input: 400 with one entry per offending field."""
    errors = [
        {
            # ("body", "assignedTo") → "assignedTo"; query/path keep their prefix
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning("Rejected input on %s: %s", _where(request), [e["field"] for e in errors])
    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Constraint violations that slipped past the service checks.

    Every foreign key in the schema points at `users.id`, so a violation
    means the referenced user vanished between the existence check and the
    commit: reported like any other unresolved user reference.
    """
    if is_foreign_key_violation(exc):
        logger.warning("Dangling user reference on %s: %s", _where(request), exc.orig)
        return create_error_response(
            status_code=status.HTTP_404_NOT_FOUND,
            message="Referenced user not found",
            error_code="RESOURCE_NOT_FOUND",
        )

    logger.error("Integrity error on %s: %s", _where(request), exc.orig)
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Database constraint violation",
        error_code="INTEGRITY_ERROR",
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable on %s: %s", _where(request), exc.orig)
    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s", _where(request), exc_info=exc)
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(TaskHubException, taskhub_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
