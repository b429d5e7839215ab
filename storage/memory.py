"""
In-memory vehicle directory and telemetry store.

Used for development and tests. Every store operation runs under a single
asyncio lock, so a bulk delete is never observed half-done by a
concurrent query.
"""

import asyncio
import itertools
import json
import logging
from datetime import datetime
from typing import Iterable, Optional

from storage.base import (
    NewTelemetryRecord,
    RecordSlice,
    TelemetryRecord,
    TelemetryStore,
    Vehicle,
    VehicleDirectory,
)

logger = logging.getLogger(__name__)


def _history_order(record: TelemetryRecord) -> tuple[datetime, int]:
    return (record.timestamp, record.id)


def load_vehicles_file(path: str) -> list[Vehicle]:
    """
    Read vehicles from a JSON file.

    The file holds a list of objects in the API shape:
    [{"id": 1, "plateNumber": "B1234XYZ", "name": "Truk 1", "type": "Truck"}]

    Raises:
        ValueError: If an entry lacks an id or a plate number
    """
    with open(path, encoding="utf-8") as f:
        entries = json.load(f)

    vehicles = []
    for index, entry in enumerate(entries):
        try:
            vehicles.append(Vehicle(
                id=int(entry["id"]),
                plate_number=str(entry["plateNumber"]),
                name=str(entry.get("name", "")),
                type=str(entry.get("type", "")),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid vehicle entry #{index} in {path}: {e}") from e

    logger.info(f"Loaded {len(vehicles)} vehicles from {path}")
    return vehicles


class InMemoryVehicleDirectory(VehicleDirectory):
    """Vehicle directory backed by a dict, seeded at construction."""

    def __init__(self, vehicles: Iterable[Vehicle] = ()):
        self._vehicles: dict[int, Vehicle] = {}
        for vehicle in vehicles:
            self.add(vehicle)

    def add(self, vehicle: Vehicle) -> None:
        """
        Register a vehicle.

        Raises:
            ValueError: If the id or the plate number is already registered
        """
        if vehicle.id in self._vehicles:
            raise ValueError(f"Vehicle id {vehicle.id} is already registered")
        if any(v.plate_number == vehicle.plate_number for v in self._vehicles.values()):
            raise ValueError(f"Plate number {vehicle.plate_number!r} is already registered")
        self._vehicles[vehicle.id] = vehicle

    async def lookup(self, vehicle_id: int) -> Optional[Vehicle]:
        return self._vehicles.get(vehicle_id)


class InMemoryTelemetryStore(TelemetryStore):
    """Telemetry store keeping records in a dict keyed by id."""

    def __init__(self):
        self._records: dict[int, TelemetryRecord] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def insert(self, entry: NewTelemetryRecord) -> TelemetryRecord:
        async with self._lock:
            record = TelemetryRecord.from_new(next(self._ids), entry)
            self._records[record.id] = record
            return record

    async def find_latest_by_vehicle(self, vehicle_id: int) -> Optional[TelemetryRecord]:
        async with self._lock:
            owned = [r for r in self._records.values() if r.vehicle_reference == vehicle_id]
        return max(owned, key=_history_order, default=None)

    async def find_by_vehicle_and_range(
        self,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        offset: int,
        limit: int,
    ) -> RecordSlice:
        async with self._lock:
            matching = sorted(
                (
                    r for r in self._records.values()
                    if r.vehicle_reference == vehicle_id and start <= r.timestamp <= end
                ),
                key=_history_order,
            )
        return RecordSlice(records=matching[offset:offset + limit], total=len(matching))

    async def delete_older_than(self, threshold: datetime) -> int:
        async with self._lock:
            expired = [rid for rid, r in self._records.items() if r.timestamp < threshold]
            for rid in expired:
                del self._records[rid]
        logger.debug(
            f"Deleted {len(expired)} in-memory GPS logs before {threshold.isoformat()}",
            extra={"extra_data": {"deleted": len(expired)}}
        )
        return len(expired)

    async def health_check(self) -> bool:
        return True
