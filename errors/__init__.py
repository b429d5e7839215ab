"""
Error handling module for the Fleet GPS Telemetry service.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException class and factories for application-specific exceptions
- Error response model for consistent API responses
- Exception handlers for FastAPI integration
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    collect_field_errors,
    resource_not_found,
    store_unavailable,
    validation_error,
    vehicle_not_found,
)
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_request_validation_error,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "collect_field_errors",
    "resource_not_found",
    "store_unavailable",
    "validation_error",
    "vehicle_not_found",
    "ErrorResponse",
    "handle_app_exception",
    "handle_request_validation_error",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
