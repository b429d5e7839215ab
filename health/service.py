"""
Health check service for the GPS telemetry API.

Readiness pings the telemetry store with a timeout and reports the time the
check took; liveness and the basic health check never touch the store.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Any

from storage.base import TelemetryStore

logger = logging.getLogger(__name__)

TELEMETRY_STORE = "telemetry_store"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "telemetry_store")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status of the service.

    Attributes:
        status: "healthy" or "unhealthy"
        timestamp: ISO-8601 UTC time of the check
        dependencies: Individual dependency statuses
    """
    status: str
    timestamp: str
    dependencies: list[DependencyHealth] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Service for checking the health of the telemetry store.

    Attributes:
        store: The telemetry store to ping
        check_timeout: Timeout in seconds for the store check (default: 5.0)
    """

    def __init__(self, store: TelemetryStore, check_timeout: float = 5.0):
        self.store = store
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        """
        Check that the telemetry store answers within the timeout.

        Returns:
            HealthStatus: "healthy" when the store responded, else "unhealthy"
        """
        store_health = await self._check_store()
        return HealthStatus(
            status="healthy" if store_health.healthy else "unhealthy",
            timestamp=_utc_timestamp(),
            dependencies=[store_health]
        )

    async def check_liveness(self) -> dict[str, Any]:
        """Liveness check: the process is running."""
        return {"status": "alive", "timestamp": _utc_timestamp()}

    async def check_health(self) -> dict[str, Any]:
        return {"status": "ok", "timestamp": _utc_timestamp()}

    async def _check_store(self) -> DependencyHealth:
        start_time = time.perf_counter()

        try:
            result = await asyncio.wait_for(
                self.store.health_check(),
                timeout=self.check_timeout
            )
        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Telemetry store health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(
                name=TELEMETRY_STORE,
                healthy=False,
                response_time_ms=elapsed_ms,
                error=error_msg
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Telemetry store health check failed: {e}"
            logger.error(error_msg)
            return DependencyHealth(
                name=TELEMETRY_STORE,
                healthy=False,
                response_time_ms=elapsed_ms,
                error=error_msg
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if not result:
            logger.warning(f"Telemetry store health check returned False after {elapsed_ms:.2f}ms")
            return DependencyHealth(
                name=TELEMETRY_STORE,
                healthy=False,
                response_time_ms=elapsed_ms,
                error="Telemetry store health check returned False"
            )

        logger.debug(f"Telemetry store health check passed in {elapsed_ms:.2f}ms")
        return DependencyHealth(
            name=TELEMETRY_STORE,
            healthy=True,
            response_time_ms=elapsed_ms
        )
