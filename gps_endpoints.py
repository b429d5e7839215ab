"""
GPS telemetry API endpoints.

Routes:
- POST /api/gps: submit a GPS log for a vehicle
- GET  /api/vehicles/{vehicle_id}/last-location: most recent GPS log
- GET  /api/vehicles/{vehicle_id}/history: paginated GPS logs in a time range

The services are built by the application factory and read from
app.state, so tests can wire any store implementation.
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query, Request

from history.service import HistoryQueryService
from ingestion.service import GPSLogRequest, TelemetryIngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["gps"])


def _json_example(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "description": description,
        "content": {"application/json": {"example": example}},
    }


UNEXPECTED_ERROR_RESPONSE = _json_example("Internal server error", {"message": "Unexpected error"})
VEHICLE_NOT_FOUND_RESPONSE = _json_example("Vehicle not found", {"message": "Vehicle not found"})
VALIDATION_FAILED_RESPONSE = _json_example(
    "Validation failed",
    {"message": "Validation failed", "errors": {"latitude": "Latitude must be between -90 and 90"}},
)

EXAMPLE_VEHICLE = {"id": 1, "plateNumber": "B1234XYZ", "name": "Truk 1", "type": "Truck"}


def get_ingestion_service(request: Request) -> TelemetryIngestionService:
    return request.app.state.ingestion_service


def get_history_service(request: Request) -> HistoryQueryService:
    return request.app.state.history_service


@router.post(
    "/gps",
    summary="Submit new GPS log",
    description=(
        "Submit a new GPS log for a specific vehicle. The request includes the "
        "vehicle id, latitude, longitude, speed and timestamp. Speeds above "
        "100 km/h are flagged as speed violations."
    ),
    responses={
        200: _json_example("GPS log saved successfully", {
            "message": "GPS log saved successfully",
            "data": {
                "vehicleReference": 1,
                "latitude": -6.2,
                "longitude": 106.8,
                "speed": 80,
                "timestamp": "2025-07-16T10:00:00",
            },
        }),
        400: VALIDATION_FAILED_RESPONSE,
        404: VEHICLE_NOT_FOUND_RESPONSE,
        500: UNEXPECTED_ERROR_RESPONSE,
    },
)
async def submit_gps_log(report: GPSLogRequest, request: Request):
    """Store one GPS log and echo the stored values."""
    record = await get_ingestion_service(request).submit_report(report)
    stored = record.to_dict()
    return {
        "message": "GPS log saved successfully",
        "data": {
            key: stored[key]
            for key in ("vehicleReference", "latitude", "longitude", "speed", "timestamp")
        },
    }


@router.get(
    "/vehicles/{vehicle_id}/last-location",
    summary="Get last known GPS location",
    description=(
        "Get the most recent GPS location of a vehicle by its id. When several "
        "logs share the latest timestamp the most recently stored one is returned."
    ),
    responses={
        200: _json_example("Last known location retrieved", {
            "message": "Last known location retrieved",
            "data": {
                "id": 15,
                "vehicle": EXAMPLE_VEHICLE,
                "vehicleReference": 1,
                "latitude": -6.2,
                "longitude": 106.8,
                "speed": 80,
                "timestamp": "2025-07-16T10:00:00",
                "speedViolation": False,
            },
        }),
        404: _json_example("Vehicle not found or no GPS log found", {"message": "No GPS log found"}),
        500: UNEXPECTED_ERROR_RESPONSE,
    },
)
async def get_last_location(vehicle_id: int, request: Request):
    location = await get_history_service(request).locate(vehicle_id)
    return {
        "message": "Last known location retrieved",
        "data": location.to_dict(),
    }


@router.get(
    "/vehicles/{vehicle_id}/history",
    summary="Get GPS history",
    description=(
        "Retrieve the GPS logs of a vehicle recorded between `from` and `to` "
        "(inclusive, ISO-8601), oldest first. `page` is one-indexed "
        "(default 1) and `size` defaults to 10."
    ),
    responses={
        200: _json_example("GPS history retrieved", {
            "message": "GPS history retrieved",
            "data": [{
                "id": 15,
                "vehicle": EXAMPLE_VEHICLE,
                "vehicleReference": 1,
                "latitude": -6.2,
                "longitude": 106.8,
                "speed": 200,
                "timestamp": "2025-07-16T10:00:00",
                "speedViolation": True,
            }],
            "currentPage": 1,
            "totalItems": 13,
            "totalPages": 2,
        }),
        400: VALIDATION_FAILED_RESPONSE,
        404: VEHICLE_NOT_FOUND_RESPONSE,
        500: UNEXPECTED_ERROR_RESPONSE,
    },
)
async def get_history(
    vehicle_id: int,
    request: Request,
    start: datetime = Query(alias="from", examples=["2025-07-01T00:00:00"]),
    end: datetime = Query(alias="to", examples=["2025-07-16T23:59:59"]),
    page: int = Query(default=1, ge=1),
    size: int = Query(default=10, ge=1),
):
    result = await get_history_service(request).get_history(
        vehicle_id, start, end, page=page, page_size=size
    )
    return {"message": "GPS history retrieved", **result.to_dict()}
