"""
Exception handlers for the Fleet GPS Telemetry service.

This module provides FastAPI exception handlers that convert exceptions
to the service's JSON error bodies:

- 400: {"message": "Validation failed", "errors": {field: reason}}
- 404: {"message": "Vehicle not found"} (or another not-found message)
- 500: {"message": "Unexpected error"}

Server-side failures are logged with full context and stack trace while
the client only ever sees the generic message.
"""

import logging
import uuid
from typing import Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode
from errors.exceptions import AppException, collect_field_errors

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "Unexpected error"
VALIDATION_FAILED_MESSAGE = "Validation failed"


class ErrorResponse(BaseModel):
    """
    Structured error response model.

    All error responses from the API follow this format; `errors` is only
    present for validation failures.
    """
    message: str
    errors: Optional[dict[str, str]] = None


def get_request_id(request: Request) -> str:
    """
    Get the request ID from the request state or generate a new one.

    Args:
        request: The FastAPI request object

    Returns:
        The request ID string
    """
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return str(uuid.uuid4())


def _error_json(status_code: int, body: ErrorResponse, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers={"X-Request-ID": request_id},
    )


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle known application exceptions and convert to the response body.

    Client errors are logged at warning level and returned as raised.
    Server errors (store failures) are logged at error level and their
    message is replaced by the generic one.

    Args:
        request: The FastAPI request object
        exc: The AppException that was raised

    Returns:
        JSONResponse with the structured error body
    """
    request_id = get_request_id(request)
    log_data = {
        "error_code": exc.error_code.value,
        "error_message": exc.message,
        "status_code": exc.status_code,
        "errors": exc.errors,
        "details": exc.details,
        "request_id": request_id,
        "path": request.url.path,
        "method": request.method,
    }

    if exc.is_server_error:
        logger.error("Application error occurred", extra={"extra_data": log_data})
        body = ErrorResponse(message=UNEXPECTED_ERROR_MESSAGE)
    else:
        logger.warning("Request rejected", extra={"extra_data": log_data})
        body = ErrorResponse(**exc.to_dict())

    return _error_json(exc.status_code, body, request_id)


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Convert FastAPI request validation failures into the 400 body.

    Every invalid body, query or path field is reported by name.
    """
    request_id = get_request_id(request)
    field_errors = collect_field_errors(exc.errors())

    logger.warning(
        "Request validation failed",
        extra={"extra_data": {
            "error_code": ErrorCode.VALIDATION_ERROR.value,
            "errors": field_errors,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }}
    )

    body = ErrorResponse(message=VALIDATION_FAILED_MESSAGE, errors=field_errors)
    return _error_json(400, body, request_id)


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions without exposing internal details.

    Logs the full stack trace and returns the generic 500 body.
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={"extra_data": {
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        }},
        exc_info=exc,
    )

    body = ErrorResponse(message=UNEXPECTED_ERROR_MESSAGE)
    return _error_json(500, body, request_id)


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
