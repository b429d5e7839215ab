"""
Storage module for vehicles and GPS telemetry.

Defines the VehicleDirectory and TelemetryStore ports and their
in-memory and Elasticsearch implementations.
"""

from storage.base import (
    NewTelemetryRecord,
    RecordSlice,
    TelemetryRecord,
    TelemetryStore,
    Vehicle,
    VehicleDirectory,
)
from storage.memory import InMemoryTelemetryStore, InMemoryVehicleDirectory, load_vehicles_file

__all__ = [
    "NewTelemetryRecord",
    "RecordSlice",
    "TelemetryRecord",
    "TelemetryStore",
    "Vehicle",
    "VehicleDirectory",
    "InMemoryTelemetryStore",
    "InMemoryVehicleDirectory",
    "load_vehicles_file",
]
