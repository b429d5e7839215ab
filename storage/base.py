"""
Storage ports for vehicles and GPS telemetry.

The services depend only on the two abstract interfaces defined here:

- VehicleDirectory: read-only lookup of a vehicle by numeric id
- TelemetryStore: insert, latest-by-vehicle, time-range paginated query
  and bulk delete-by-age of GPS records

Any concrete store (Elasticsearch, in-memory for tests and development)
must satisfy these interfaces. All methods are async so implementations
backed by network stores do not block the event loop.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class Vehicle:
    """
    Identity record of a vehicle.

    Vehicles are created and removed by an external fleet-management
    process; this service only reads them.
    """
    id: int
    plate_number: str
    name: str
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "plateNumber": self.plate_number,
            "name": self.name,
            "type": self.type,
        }


@dataclass(frozen=True)
class NewTelemetryRecord:
    """A validated GPS observation that has not been stored yet."""
    vehicle_reference: int
    latitude: float
    longitude: float
    speed: float
    timestamp: datetime
    speed_violation: bool


@dataclass(frozen=True)
class TelemetryRecord:
    """
    One stored GPS observation.

    `speed_violation` is fixed when the record is created and is never
    recomputed on read.
    """
    id: int
    vehicle_reference: int
    latitude: float
    longitude: float
    speed: float
    timestamp: datetime
    speed_violation: bool

    @classmethod
    def from_new(cls, record_id: int, entry: NewTelemetryRecord) -> "TelemetryRecord":
        return cls(
            id=record_id,
            vehicle_reference=entry.vehicle_reference,
            latitude=entry.latitude,
            longitude=entry.longitude,
            speed=entry.speed,
            timestamp=entry.timestamp,
            speed_violation=entry.speed_violation,
        )

    def to_dict(self, vehicle: Optional[Vehicle] = None) -> dict[str, Any]:
        """
        Convert to the JSON shape returned by the API.

        Args:
            vehicle: The owning vehicle, embedded under "vehicle" when given
        """
        result: dict[str, Any] = {"id": self.id}
        if vehicle is not None:
            result["vehicle"] = vehicle.to_dict()
        result.update({
            "vehicleReference": self.vehicle_reference,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed": self.speed,
            "timestamp": self.timestamp.isoformat(),
            "speedViolation": self.speed_violation,
        })
        return result


@dataclass(frozen=True)
class RecordSlice:
    """
    One page of a range query.

    Attributes:
        records: The records on the requested page, ascending by timestamp
        total: Number of records matching the whole range, not just this page
    """
    records: list[TelemetryRecord] = field(default_factory=list)
    total: int = 0


class VehicleDirectory(ABC):
    """Read-only lookup of vehicles by numeric id."""

    @abstractmethod
    async def lookup(self, vehicle_id: int) -> Optional[Vehicle]:
        """
        Find a vehicle by id.

        Returns:
            The vehicle, or None when no vehicle has this id. A missing
            vehicle is an expected outcome, not an error.

        Raises:
            AppException: STORE_UNAVAILABLE if the backing store fails.
        """


class TelemetryStore(ABC):
    """
    Persistence of GPS telemetry records.

    Atomicity of a single insert and of the bulk delete is the store's
    responsibility; callers do no locking of their own.
    """

    @abstractmethod
    async def insert(self, entry: NewTelemetryRecord) -> TelemetryRecord:
        """
        Persist a new record and assign its id.

        Ids are unique and strictly increasing in insertion order.
        """

    @abstractmethod
    async def find_latest_by_vehicle(self, vehicle_id: int) -> Optional[TelemetryRecord]:
        """
        Return the vehicle's record with the greatest timestamp.

        Records sharing the greatest timestamp are resolved to the one with
        the greatest id (the most recently inserted).
        """

    @abstractmethod
    async def find_by_vehicle_and_range(
        self,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        offset: int,
        limit: int,
    ) -> RecordSlice:
        """
        Return one page of the vehicle's records with start <= timestamp <= end.

        Records are ordered ascending by timestamp, then by id, so that
        consecutive pages never overlap or skip records.

        Args:
            vehicle_id: Owning vehicle
            start: Inclusive lower bound
            end: Inclusive upper bound
            offset: Number of matching records to skip
            limit: Maximum number of records to return
        """

    @abstractmethod
    async def delete_older_than(self, threshold: datetime) -> int:
        """
        Delete every record with timestamp strictly before `threshold`.

        Runs as a single bulk operation.

        Returns:
            The number of records deleted
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check connectivity of the store.

        Returns:
            True if the store is reachable. Must not raise.
        """
