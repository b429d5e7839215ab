"""
Observability module for structured logging, metrics and audit events.

This module provides:
- JSONFormatter for structured JSON log output
- ObservabilityService for centralized logging, metrics and audit logging
"""

from observability.service import (
    JSONFormatter,
    ObservabilityService,
    get_observability_service,
    initialize_observability,
    set_request_id,
)

__all__ = [
    "JSONFormatter",
    "ObservabilityService",
    "get_observability_service",
    "initialize_observability",
    "set_request_id",
]
