"""Error Handlers — map exceptions escaping a route to the store's error envelope.

Invariants:
    - StoreError renders its own to_response() with its own http_status
    - RequestValidationError (bad query/body shape) → 400 VALIDATION_ERROR with field details
    - Anything else → 500 INTERNAL_ERROR; the message never carries exception text
    - Every response body has the same {"error": {...}} shape

Design Decisions:
    - Handlers are module-level coroutines registered in one place, outermost last
    - Client-side store errors log at WARNING, server-side ones at ERROR
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from relstore.core.errors import ErrorCategory, ErrorSeverity, StoreError, field_issue

logger = logging.getLogger(__name__)


def _envelope(code: str, message: str, category: ErrorCategory, severity: ErrorSeverity,
              details: list[dict] | None = None) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
            "details": details or [],
        },
    }


async def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "entity_kind": exc.context.entity_kind,
            "entity_id": exc.context.entity_id,
            "command": exc.context.command,
        },
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def handle_request_validation(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        field_issue(".".join(str(part) for part in err["loc"]), err["msg"])
        for err in exc.errors()
    ]
    logger.warning(
        f"Rejected request shape on {request.url.path}: "
        f"{', '.join(d['field'] for d in details)}",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, details,
        ),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}",
        exc_info=exc,
        extra={"error_code": "INTERNAL_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the three handler layers on the app."""
    app.add_exception_handler(StoreError, handle_store_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
