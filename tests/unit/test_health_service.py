"""
Unit tests for the health check service.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from health.service import HealthCheckService


class TestCheckReadiness:

    @pytest.mark.asyncio
    async def test_healthy_store(self, telemetry_store):
        status = await HealthCheckService(telemetry_store).check_readiness()

        assert status.status == "healthy"
        assert status.is_healthy
        dependency = status.dependencies[0]
        assert dependency.name == "telemetry_store"
        assert dependency.healthy
        assert dependency.response_time_ms >= 0

    @pytest.mark.asyncio
    async def test_store_reporting_false_is_unhealthy(self):
        store = AsyncMock()
        store.health_check.return_value = False

        status = await HealthCheckService(store).check_readiness()

        assert status.status == "unhealthy"
        assert "returned False" in status.dependencies[0].error

    @pytest.mark.asyncio
    async def test_store_exception_is_unhealthy(self):
        store = AsyncMock()
        store.health_check.side_effect = ConnectionError("refused")

        status = await HealthCheckService(store).check_readiness()

        assert not status.is_healthy
        assert "refused" in status.dependencies[0].error

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self):
        store = AsyncMock()

        async def hang():
            await asyncio.sleep(10)
            return True

        store.health_check.side_effect = hang

        status = await HealthCheckService(store, check_timeout=0.05).check_readiness()

        assert not status.is_healthy
        assert "timed out" in status.dependencies[0].error

    @pytest.mark.asyncio
    async def test_to_dict(self, telemetry_store):
        body = (await HealthCheckService(telemetry_store).check_readiness()).to_dict()

        assert body["status"] == "healthy"
        assert body["timestamp"].endswith("Z")
        assert body["dependencies"][0]["name"] == "telemetry_store"


class TestLiveness:

    @pytest.mark.asyncio
    async def test_liveness_never_touches_store(self):
        store = AsyncMock()

        result = await HealthCheckService(store).check_liveness()

        assert result["status"] == "alive"
        store.health_check.assert_not_called()
