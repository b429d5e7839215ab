"""
Vehicle lookups for the ingestion and history services.

Both services must resolve a vehicle reference before touching the
telemetry store; `require` turns a missing vehicle into the 404
"Vehicle not found" error.
"""

import logging
from typing import Optional

from errors.exceptions import vehicle_not_found
from storage.base import Vehicle, VehicleDirectory

logger = logging.getLogger(__name__)


class VehicleService:
    """Resolves vehicle references through a VehicleDirectory."""

    def __init__(self, directory: VehicleDirectory):
        self.directory = directory

    async def lookup(self, vehicle_id: int) -> Optional[Vehicle]:
        return await self.directory.lookup(vehicle_id)

    async def require(self, vehicle_id: int) -> Vehicle:
        """
        Resolve a vehicle or fail with not-found.

        Raises:
            AppException: RESOURCE_NOT_FOUND when no vehicle has this id
        """
        vehicle = await self.directory.lookup(vehicle_id)
        if vehicle is None:
            logger.warning(
                f"Vehicle {vehicle_id} not found",
                extra={"extra_data": {"vehicle_id": vehicle_id}}
            )
            raise vehicle_not_found(vehicle_id)
        return vehicle
