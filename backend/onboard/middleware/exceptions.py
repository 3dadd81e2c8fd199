"""Application exceptions and the handlers that render them.

Every error leaves the API in the same envelope:

    {"error": {"code": "ERROR_CODE", "message": "...", "details": {...}}}

``details`` is present only when there is something to add (the failed
step, missing dependencies, field errors). Step failures never arrive
here as raw exceptions: the executor turns them into StepFailed
outcomes and the router maps those to StepExecutionFailedError.
"""

import logging
from typing import Any, Optional, Union

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class OnboardException(Exception):
    """Base exception for onboarding service errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.details = details
        super().__init__(message)


class BusinessLogicError(OnboardException):
    """Request is well-formed but not allowed in the current onboarding state."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "BUSINESS_LOGIC_ERROR"


class ResourceNotFoundError(OnboardException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}")


class WorkspaceNotFoundError(ResourceNotFoundError):
    error_code = "WORKSPACE_NOT_FOUND"

    def __init__(self, workspace_id: str):
        super().__init__("Workspace", workspace_id)


class StepNotFoundError(ResourceNotFoundError):
    error_code = "STEP_NOT_FOUND"

    def __init__(self, step_id: str):
        super().__init__("Step", step_id)


class StepExecutionFailedError(OnboardException):
    """A step ran and reported failure; nothing was persisted."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "STEP_FAILED"

    def __init__(self, step_id: str, message: str):
        self.step_id = step_id
        super().__init__(message, details={"step_id": step_id})


class UpstreamServiceError(OnboardException):
    """An external service called on behalf of a step returned an error."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UPSTREAM_ERROR"


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


def _request_extra(request: Request, **fields: Any) -> dict[str, Any]:
    return {"path": request.url.path, "method": request.method, **fields}


# ── Handlers ─────────────────────────────────────────────────

async def onboard_exception_handler(request: Request, exc: OnboardException) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "Onboarding error %s: %s",
        exc.error_code,
        exc.message,
        extra=_request_extra(request, error_code=exc.error_code),
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s: %s", exc.status_code, exc.detail, extra=_request_extra(request))
    return create_error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Validation error on %s",
        request.url.path,
        extra=_request_extra(request, error_count=len(errors)),
    )
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Database connection problems."""
    logger.error("Database unavailable: %s", exc, extra=_request_extra(request))
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s: %s",
        request.url.path,
        exc,
        extra=_request_extra(request),
        exc_info=True,
    )
    # Internals stay in the log
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OnboardException, onboard_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
