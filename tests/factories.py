"""
Test data builders shared by unit and integration tests.
"""
from datetime import datetime

from storage.base import NewTelemetryRecord, Vehicle

TRUCK = Vehicle(id=1, plate_number="B1234XYZ", name="Truk 1", type="Truck")
VAN = Vehicle(id=2, plate_number="B5678ABC", name="Van 2", type="Van")


def make_entry(
    vehicle_reference: int = 1,
    timestamp: datetime = datetime(2025, 7, 16, 10, 0, 0),
    speed: float = 80.0,
    latitude: float = -6.2,
    longitude: float = 106.8,
) -> NewTelemetryRecord:
    """Build an unsaved record; the flag follows the speed as ingestion sets it."""
    return NewTelemetryRecord(
        vehicle_reference=vehicle_reference,
        latitude=latitude,
        longitude=longitude,
        speed=speed,
        timestamp=timestamp,
        speed_violation=speed > 100,
    )
