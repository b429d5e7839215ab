"""
Ingestion module for GPS location reports.

This module provides:
- GPSLogRequest: validated location report model
- TelemetryIngestionService: stores reports with the speed-violation flag
"""

from ingestion.service import (
    GPSLogRequest,
    SPEED_VIOLATION_THRESHOLD_KMH,
    TelemetryIngestionService,
    is_speed_violation,
    parse_gps_log_request,
    to_naive_utc,
)

__all__ = [
    "GPSLogRequest",
    "SPEED_VIOLATION_THRESHOLD_KMH",
    "TelemetryIngestionService",
    "is_speed_violation",
    "parse_gps_log_request",
    "to_naive_utc",
]
