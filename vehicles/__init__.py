"""Vehicle lookup service."""

from vehicles.service import VehicleService

__all__ = ["VehicleService"]
