"""
Retention sweeper for GPS telemetry.

Deletes every record whose timestamp is strictly older than
now - retention_days in a single bulk store operation. Running it twice in
a row deletes nothing the second time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from observability.service import ObservabilityService, get_observability_service
from storage.base import TelemetryStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as naive UTC, the form timestamps are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one sweep: records deleted and the cutoff used."""
    deleted: int
    threshold: datetime


class RetentionSweeper:
    """
    Deletes GPS records older than the retention window.

    Attributes:
        store: Telemetry store to delete from
        retention_days: Age in days beyond which records are deleted
        clock: Returns the current naive UTC time
        observability: Optional observability service for audit events
    """

    def __init__(
        self,
        store: TelemetryStore,
        retention_days: int = 30,
        clock: Optional[Clock] = None,
        observability: Optional[ObservabilityService] = None
    ):
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        self.store = store
        self.retention_days = retention_days
        self.clock = clock or utc_now
        self.observability = observability or get_observability_service()

    def threshold(self) -> datetime:
        return self.clock() - timedelta(days=self.retention_days)

    async def sweep(self) -> SweepResult:
        """
        Run one retention pass.

        Returns:
            SweepResult with the number of deleted records and the threshold

        Raises:
            Exception: Whatever the store raised; the failure is logged
                first and nothing is retried
        """
        threshold = self.threshold()

        try:
            deleted = await self.store.delete_older_than(threshold)
        except Exception as e:
            logger.error(
                f"Failed to delete old GPS logs: {e}",
                exc_info=True,
                extra={"extra_data": {
                    "retention_days": self.retention_days,
                    "threshold": threshold.isoformat(),
                }}
            )
            raise

        logger.info(
            f"Deleted {deleted} GPS logs older than {self.retention_days} days "
            f"(before {threshold.isoformat()})",
            extra={"extra_data": {
                "deleted": deleted,
                "retention_days": self.retention_days,
                "threshold": threshold.isoformat(),
            }}
        )

        if self.observability:
            self.observability.log_audit_event(
                event_type="gps_log_retention",
                resource_type="gps_log",
                resource_id=None,
                action="delete",
                details={
                    "deleted": deleted,
                    "retention_days": self.retention_days,
                    "threshold": threshold.isoformat(),
                }
            )

        return SweepResult(deleted=deleted, threshold=threshold)
