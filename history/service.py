"""
Read side of the GPS telemetry: last known location and paginated history.

Paging is one-indexed: page 1 is the first slice of `page_size` records.
Both queries resolve the vehicle before reading the store, so an unknown
vehicle is always a not-found error rather than an empty result. History
checks its paging and range arguments before the vehicle lookup.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from errors.exceptions import resource_not_found, validation_error
from ingestion.service import TIMESTAMP_OUT_OF_RANGE_MESSAGE, to_naive_utc
from storage.base import TelemetryRecord, TelemetryStore, Vehicle
from vehicles.service import VehicleService

logger = logging.getLogger(__name__)

NO_GPS_LOG_MESSAGE = "No GPS log found"


@dataclass
class HistoryPage:
    """
    One page of a vehicle's GPS history.

    Attributes:
        records: Records on this page, ascending by timestamp
        page: The requested page number (one-indexed)
        page_size: The requested page size
        total_items: Records in the whole range
        total_pages: ceil(total_items / page_size)
        vehicle: The owning vehicle, embedded in each serialized record
    """
    records: list[TelemetryRecord] = field(default_factory=list)
    page: int = 1
    page_size: int = 10
    total_items: int = 0
    total_pages: int = 0
    vehicle: Optional[Vehicle] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [r.to_dict(vehicle=self.vehicle) for r in self.records],
            "currentPage": self.page,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
        }


@dataclass(frozen=True)
class LastLocation:
    vehicle: Vehicle
    record: TelemetryRecord

    def to_dict(self) -> dict[str, Any]:
        return self.record.to_dict(vehicle=self.vehicle)


class HistoryQueryService:
    """
    Answers last-location and history queries.

    Attributes:
        vehicles: Resolves vehicle references
        store: Telemetry store to read from
        max_page_size: Optional upper bound for page_size
        max_result_window: Optional bound on page * page_size, the deepest
            record a history page may reach
    """

    def __init__(
        self,
        vehicles: VehicleService,
        store: TelemetryStore,
        max_page_size: Optional[int] = None,
        max_result_window: Optional[int] = None
    ):
        self.vehicles = vehicles
        self.store = store
        self.max_page_size = max_page_size
        self.max_result_window = max_result_window

    async def get_last_location(self, vehicle_id: int) -> TelemetryRecord:
        """
        Return the vehicle's most recent record.

        Raises:
            AppException: RESOURCE_NOT_FOUND for an unknown vehicle or a
                vehicle without any record
        """
        return (await self.locate(vehicle_id)).record

    async def locate(self, vehicle_id: int) -> LastLocation:
        """Like get_last_location, also returning the resolved vehicle."""
        vehicle = await self.vehicles.require(vehicle_id)
        record = await self.store.find_latest_by_vehicle(vehicle.id)
        if record is None:
            logger.info(
                f"No GPS log for vehicle {vehicle.id}",
                extra={"extra_data": {"vehicle_id": vehicle.id}}
            )
            raise resource_not_found(NO_GPS_LOG_MESSAGE, details={"vehicle_id": vehicle.id})
        return LastLocation(vehicle=vehicle, record=record)

    async def get_history(
        self,
        vehicle_id: int,
        start: datetime,
        end: datetime,
        page: int = 1,
        page_size: int = 10,
    ) -> HistoryPage:
        """
        Return one page of the vehicle's records in [start, end].

        A range with start after end is empty; the store is not queried.

        Raises:
            AppException: VALIDATION_ERROR for a page or page size below 1,
                a page size above the configured maximum, a page reaching
                past the result window, or a bound with no UTC equivalent;
                RESOURCE_NOT_FOUND for an unknown vehicle
        """
        errors = self._paging_errors(page, page_size)
        start = _range_bound(start, "from", errors)
        end = _range_bound(end, "to", errors)
        if errors:
            raise validation_error(errors)

        vehicle = await self.vehicles.require(vehicle_id)

        if start > end:
            return HistoryPage(page=page, page_size=page_size, vehicle=vehicle)

        result = await self.store.find_by_vehicle_and_range(
            vehicle.id,
            start,
            end,
            offset=(page - 1) * page_size,
            limit=page_size,
        )

        logger.debug(
            f"History page {page} for vehicle {vehicle.id}: "
            f"{len(result.records)} of {result.total} records",
            extra={"extra_data": {
                "vehicle_id": vehicle.id,
                "page": page,
                "page_size": page_size,
                "total_items": result.total,
            }}
        )

        return HistoryPage(
            records=list(result.records),
            page=page,
            page_size=page_size,
            total_items=result.total,
            total_pages=math.ceil(result.total / page_size),
            vehicle=vehicle,
        )

    def _paging_errors(self, page: int, page_size: int) -> dict[str, str]:
        errors: dict[str, str] = {}
        if page < 1:
            errors["page"] = "Page must be at least 1"
        if page_size < 1:
            errors["size"] = "Page size must be at least 1"
        elif self.max_page_size is not None and page_size > self.max_page_size:
            errors["size"] = f"Page size must be at most {self.max_page_size}"
        if (
            not errors
            and self.max_result_window is not None
            and page * page_size > self.max_result_window
        ):
            errors["page"] = (
                f"Page {page} of size {page_size} reaches past the first "
                f"{self.max_result_window} records"
            )
        return errors


def _range_bound(value: datetime, field_name: str, errors: dict[str, str]) -> datetime:
    try:
        return to_naive_utc(value)
    except OverflowError:
        errors[field_name] = TIMESTAMP_OUT_OF_RANGE_MESSAGE
        return value
