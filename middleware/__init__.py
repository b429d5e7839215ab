"""
Middleware components for the Fleet GPS Telemetry service.

FastAPI middleware for cross-cutting concerns: request correlation and
per-client rate limiting.
"""

from middleware.request_id import RequestIDMiddleware, request_id_var, REQUEST_ID_HEADER
from middleware.rate_limiter import (
    create_limiter,
    get_client_ip,
    get_rate_limit_string,
    rate_limit_exceeded_handler,
    setup_rate_limiting,
)

__all__ = [
    "RequestIDMiddleware",
    "request_id_var",
    "REQUEST_ID_HEADER",
    "create_limiter",
    "get_client_ip",
    "get_rate_limit_string",
    "rate_limit_exceeded_handler",
    "setup_rate_limiting",
]
