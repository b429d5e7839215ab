"""
Rate limiting for the GPS API.

GPS devices post frequently, so a misbehaving device can flood the
ingestion endpoint. This module applies a per-client-IP limit to every
route using slowapi and answers with the service's JSON error body when
the limit is exceeded.
"""

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from errors.codes import ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.

    Checks the common forwarding headers set by load balancers and
    reverse proxies before falling back to the direct client address.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, the first is the original client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def get_rate_limit_string(requests_per_minute: int) -> str:
    """
    Generate a rate limit string for slowapi (e.g., "100/minute").
    """
    return f"{requests_per_minute}/minute"


def create_limiter(requests_per_minute: int) -> Limiter:
    """
    Create a limiter applying `requests_per_minute` per client IP to every route.
    """
    return Limiter(
        key_func=get_client_ip,
        default_limits=[get_rate_limit_string(requests_per_minute)],
    )


def setup_rate_limiting(
    app: FastAPI,
    requests_per_minute: int = 100,
    enabled: bool = True
) -> None:
    """
    Configure rate limiting for a FastAPI application.

    Installs a fresh limiter on the app state, adds the slowapi middleware
    and registers the 429 handler.

    Args:
        app: The FastAPI application instance
        requests_per_minute: Maximum requests per minute per client IP
        enabled: Whether rate limiting is enabled (default: True)
    """
    limiter = create_limiter(requests_per_minute)
    limiter.enabled = enabled
    app.state.limiter = limiter

    if not enabled:
        logger.info("Rate limiting is disabled")
        return

    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    logger.info(f"Rate limiting configured: {requests_per_minute}/min per client IP")


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Answer a rate-limited request with a 429 JSON body.

    Kept synchronous so slowapi's middleware can call it directly.
    """
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        f"Rate limit exceeded for IP {get_client_ip(request)}",
        extra={"extra_data": {
            "error_code": ErrorCode.RATE_LIMITED.value,
            "limit": str(getattr(exc, "detail", "")),
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }}
    )

    return JSONResponse(
        status_code=429,
        content={"message": "Too many requests"},
        headers={
            "Retry-After": str(DEFAULT_RETRY_AFTER_SECONDS),
            "X-Request-ID": request_id,
        },
    )
