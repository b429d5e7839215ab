"""
GPS telemetry ingestion.

Validates an incoming location report, resolves the reporting vehicle,
flags speed violations and persists the record through the telemetry
store.

Processing order:
1. Validate every field; a failure names every offending field and
   nothing is written.
2. Resolve the vehicle; an unknown vehicle is a not-found error.
3. speed_violation = speed > 100 km/h, fixed at insertion.
4. Persist and return the stored record with its assigned id.

No retries happen here; store failures propagate to the caller.
"""

import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors.exceptions import collect_field_errors, validation_error
from observability.service import ObservabilityService, get_observability_service
from storage.base import NewTelemetryRecord, TelemetryRecord, TelemetryStore
from vehicles.service import VehicleService

logger = logging.getLogger(__name__)

# Speeds strictly above this are violations; exactly 100 km/h is not.
SPEED_VIOLATION_THRESHOLD_KMH = 100.0

TIMESTAMP_OUT_OF_RANGE_MESSAGE = "Timestamp is out of range"


def is_speed_violation(speed: float) -> bool:
    return speed > SPEED_VIOLATION_THRESHOLD_KMH


def to_naive_utc(value: datetime) -> datetime:
    """
    Normalize a timestamp to naive UTC.

    Aware timestamps are converted to UTC; naive ones are taken as UTC already.

    Raises:
        OverflowError: If the UTC equivalent falls outside year 1 to 9999
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class GPSLogRequest(BaseModel):
    """
    A location report submitted by a vehicle.

    Field names on the wire are camelCase (`vehicleReference`); the
    snake_case names are accepted too.

    Attributes:
        vehicle_reference: Numeric id of the reporting vehicle
        latitude: GPS latitude (-90 to 90 degrees)
        longitude: GPS longitude (-180 to 180 degrees)
        speed: Speed in km/h, non-negative
        timestamp: When the observation was taken (ISO-8601)
    """

    model_config = ConfigDict(populate_by_name=True)

    # Strict so JSON booleans and numeric strings are not taken as vehicle ids
    vehicle_reference: int = Field(alias="vehicleReference", strict=True, examples=[1])
    latitude: float = Field(examples=[-6.2])
    longitude: float = Field(examples=[106.8])
    speed: float = Field(examples=[80])
    timestamp: datetime = Field(examples=["2025-07-16T10:00:00"])

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        if not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        if not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v

    @field_validator("speed")
    @classmethod
    def validate_speed(cls, v: float) -> float:
        """
        Validate speed is a finite, non-negative number.

        Raises:
            ValueError: If speed is negative, NaN or infinite
        """
        if not math.isfinite(v):
            raise ValueError("Speed must be a finite number")
        if v < 0:
            raise ValueError("Speed cannot be negative")
        return v

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        try:
            return to_naive_utc(v)
        except OverflowError:
            raise ValueError(TIMESTAMP_OUT_OF_RANGE_MESSAGE) from None


def parse_gps_log_request(payload: dict[str, Any]) -> GPSLogRequest:
    """
    Validate a raw report payload.

    Raises:
        AppException: VALIDATION_ERROR listing every invalid field
    """
    try:
        return GPSLogRequest.model_validate(payload)
    except ValidationError as e:
        raise validation_error(collect_field_errors(e.errors())) from e


class TelemetryIngestionService:
    """
    Service for accepting GPS location reports.

    Attributes:
        vehicles: Resolves the reporting vehicle
        store: Telemetry store the records are written to
        observability: Optional observability service for metrics
    """

    def __init__(
        self,
        vehicles: VehicleService,
        store: TelemetryStore,
        observability: Optional[ObservabilityService] = None
    ):
        self.vehicles = vehicles
        self.store = store
        self.observability = observability or get_observability_service()

    async def submit(
        self,
        vehicle_reference: Any,
        latitude: Any,
        longitude: Any,
        speed: Any,
        timestamp: Union[str, datetime, None],
    ) -> TelemetryRecord:
        """
        Validate and store one location report.

        Raises:
            AppException: VALIDATION_ERROR for invalid input,
                RESOURCE_NOT_FOUND for an unknown vehicle
        """
        report = parse_gps_log_request({
            "vehicleReference": vehicle_reference,
            "latitude": latitude,
            "longitude": longitude,
            "speed": speed,
            "timestamp": timestamp,
        })
        return await self.submit_report(report)

    async def submit_report(self, report: GPSLogRequest) -> TelemetryRecord:
        """
        Store a report that has already passed validation.

        Raises:
            AppException: RESOURCE_NOT_FOUND for an unknown vehicle
        """
        start_time = time.perf_counter()

        vehicle = await self.vehicles.require(report.vehicle_reference)

        record = await self.store.insert(NewTelemetryRecord(
            vehicle_reference=vehicle.id,
            latitude=report.latitude,
            longitude=report.longitude,
            speed=report.speed,
            timestamp=report.timestamp,
            speed_violation=is_speed_violation(report.speed),
        ))

        duration_ms = (time.perf_counter() - start_time) * 1000
        if self.observability:
            self.observability.record_metric(
                "gps_log_ingest_duration_ms",
                duration_ms,
                tags={"speed_violation": str(record.speed_violation).lower()}
            )

        logger.info(
            f"GPS log {record.id} stored for vehicle {vehicle.id}",
            extra={"extra_data": {
                "gps_log_id": record.id,
                "vehicle_id": vehicle.id,
                "latitude": record.latitude,
                "longitude": record.longitude,
                "speed": record.speed,
                "speed_violation": record.speed_violation,
                "duration_ms": duration_ms,
            }}
        )
        if record.speed_violation:
            logger.warning(
                f"Speed violation: vehicle {vehicle.id} at {record.speed} km/h",
                extra={"extra_data": {"gps_log_id": record.id, "vehicle_id": vehicle.id}}
            )

        return record
