"""
Exception classes for the Fleet GPS Telemetry service.

This module provides the AppException class and factory functions for the
error categories the service reports: validation failures, missing vehicles
or telemetry, and unexpected failures of the telemetry store.
"""

from typing import Any, Iterable, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    Carries:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - errors: Field-level reasons for validation failures ({field: reason})
    - details: Internal context for logging; never sent to clients

    Example:
        raise AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Validation failed",
            errors={"latitude": "Latitude must be between -90 and 90"}
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[dict[str, str]] = None,
        details: Optional[dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.errors = errors
        self.details = details
        super().__init__(message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to the client-facing response body.

        Returns:
            Dictionary containing message and, for validation failures, errors
        """
        result: dict[str, Any] = {"message": self.message}
        if self.errors is not None:
            result["errors"] = self.errors
        return result

    def __repr__(self) -> str:
        return (
            f"AppException(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"errors={self.errors!r}, details={self.details!r})"
        )


def validation_error(
    errors: dict[str, str],
    message: str = "Validation failed"
) -> AppException:
    """Create a validation error exception naming every violated field."""
    return AppException(
        error_code=ErrorCode.VALIDATION_ERROR,
        message=message,
        errors=errors
    )


def resource_not_found(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a resource not found exception."""
    return AppException(
        error_code=ErrorCode.RESOURCE_NOT_FOUND,
        message=message,
        details=details
    )


def vehicle_not_found(vehicle_id: int) -> AppException:
    """Create the not-found exception for an unknown vehicle reference."""
    return resource_not_found(
        message="Vehicle not found",
        details={"vehicle_id": vehicle_id}
    )


def store_unavailable(
    operation: str,
    error: Optional[BaseException] = None
) -> AppException:
    """Create the exception raised when a telemetry store operation fails."""
    details: dict[str, Any] = {"operation": operation}
    if error is not None:
        details["error"] = str(error)
        details["exception_type"] = type(error).__name__
    return AppException(
        error_code=ErrorCode.STORE_UNAVAILABLE,
        message="Unexpected error",
        details=details
    )


def collect_field_errors(errors: Iterable[dict[str, Any]]) -> dict[str, str]:
    """
    Reduce pydantic error entries to a {field: reason} map.

    The field name is the last element of the error location, so body,
    query and path errors all report the bare field name. When a field
    fails more than one check, the first reason wins.

    Args:
        errors: Entries as returned by ValidationError.errors()

    Returns:
        Mapping of field name to a human-readable reason
    """
    field_errors: dict[str, str] = {}
    for error in errors:
        loc = error.get("loc") or ()
        field = str(loc[-1]) if loc else "request"
        ctx = error.get("ctx") or {}
        if error.get("type") == "value_error" and "error" in ctx:
            reason = str(ctx["error"])
        else:
            reason = error.get("msg", "Invalid value")
        field_errors.setdefault(field, reason)
    return field_errors
