"""
Error code catalog for the Fleet GPS Telemetry service.

Every error the service reports falls into one of three categories:
validation failures on client input, lookups that found nothing, and
unexpected failures (including the telemetry store being unavailable).
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the application.

    - Validation errors (400): one or more request fields are invalid
    - Not-found errors (404): the vehicle or its telemetry does not exist
    - Unexpected errors (500): store failures and anything unanticipated
    """

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request payload or parameters failed validation (HTTP 400)"""

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    """Requested vehicle or telemetry does not exist (HTTP 404)"""

    RATE_LIMITED = "RATE_LIMITED"
    """Too many requests (HTTP 429)"""

    # Server errors (5xx)
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    """Telemetry store operation failed (HTTP 500)"""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.STORE_UNAVAILABLE: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
