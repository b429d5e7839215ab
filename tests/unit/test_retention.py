"""
Unit tests for the retention sweeper and its cron scheduler.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from errors.exceptions import store_unavailable
from retention.scheduler import RetentionScheduler
from retention.sweeper import RetentionSweeper, SweepResult
from tests.factories import VAN, make_entry

NOW = datetime(2025, 7, 20, 15, 0, 0)


def fixed_clock() -> datetime:
    return NOW


class TestRetentionSweeper:

    @pytest.mark.asyncio
    async def test_threshold_is_now_minus_retention(self, telemetry_store, mock_observability):
        sweeper = RetentionSweeper(telemetry_store, 30, clock=fixed_clock, observability=mock_observability)

        result = await sweeper.sweep()

        assert result == SweepResult(deleted=0, threshold=NOW - timedelta(days=30))

    @pytest.mark.asyncio
    async def test_deletes_only_records_strictly_older(self, telemetry_store, mock_observability):
        threshold = NOW - timedelta(days=30)
        await telemetry_store.insert(make_entry(timestamp=threshold - timedelta(days=1)))
        await telemetry_store.insert(make_entry(vehicle_reference=VAN.id, timestamp=threshold - timedelta(seconds=1)))
        on_boundary = await telemetry_store.insert(make_entry(timestamp=threshold))
        recent = await telemetry_store.insert(make_entry(timestamp=NOW))
        sweeper = RetentionSweeper(telemetry_store, 30, clock=fixed_clock, observability=mock_observability)

        result = await sweeper.sweep()

        assert result.deleted == 2
        remaining = await telemetry_store.find_by_vehicle_and_range(1, datetime.min, datetime.max, 0, 10)
        assert remaining.records == [on_boundary, recent]

    @pytest.mark.asyncio
    async def test_second_sweep_deletes_nothing(self, telemetry_store, mock_observability):
        await telemetry_store.insert(make_entry(timestamp=NOW - timedelta(days=90)))
        sweeper = RetentionSweeper(telemetry_store, 30, clock=fixed_clock, observability=mock_observability)

        assert (await sweeper.sweep()).deleted == 1
        assert (await sweeper.sweep()).deleted == 0

    @pytest.mark.asyncio
    async def test_sweep_is_audited(self, telemetry_store, mock_observability):
        await telemetry_store.insert(make_entry(timestamp=NOW - timedelta(days=31)))
        sweeper = RetentionSweeper(telemetry_store, 30, clock=fixed_clock, observability=mock_observability)

        await sweeper.sweep()

        kwargs = mock_observability.log_audit_event.call_args.kwargs
        assert kwargs["event_type"] == "gps_log_retention"
        assert kwargs["action"] == "delete"
        assert kwargs["details"]["deleted"] == 1
        assert kwargs["details"]["retention_days"] == 30

    @pytest.mark.asyncio
    async def test_store_failure_is_raised_without_retry(self, mock_observability):
        store = AsyncMock()
        store.delete_older_than.side_effect = store_unavailable("delete_by_query(gps_logs)")
        sweeper = RetentionSweeper(store, 30, clock=fixed_clock, observability=mock_observability)

        with pytest.raises(Exception):
            await sweeper.sweep()

        store.delete_older_than.assert_awaited_once()
        mock_observability.log_audit_event.assert_not_called()

    def test_retention_days_must_be_positive(self, telemetry_store):
        with pytest.raises(ValueError):
            RetentionSweeper(telemetry_store, 0)


class TestRetentionScheduler:

    def _sweeper(self, **kwargs) -> MagicMock:
        sweeper = MagicMock(spec=RetentionSweeper)
        sweeper.retention_days = 30
        sweeper.sweep = AsyncMock(**kwargs)
        return sweeper

    def test_invalid_cron_rejected(self):
        with pytest.raises(ValueError, match="cron"):
            RetentionScheduler(self._sweeper(), "not a cron")

    @pytest.mark.parametrize("moment,expected", [
        (datetime(2025, 7, 20, 9, 0), datetime(2025, 7, 20, 15, 0)),
        (datetime(2025, 7, 20, 15, 0), datetime(2025, 7, 21, 15, 0)),
        (datetime(2025, 7, 20, 23, 59), datetime(2025, 7, 21, 15, 0)),
    ])
    def test_next_run_after(self, moment, expected):
        scheduler = RetentionScheduler(self._sweeper(), "0 15 * * *")

        assert scheduler.next_run_after(moment) == expected

    @pytest.mark.asyncio
    async def test_run_once_returns_sweep_result(self):
        result = SweepResult(deleted=3, threshold=NOW)
        scheduler = RetentionScheduler(self._sweeper(return_value=result), "0 15 * * *")

        assert await scheduler.run_once() == result

    @pytest.mark.asyncio
    async def test_run_once_swallows_sweep_failure(self):
        scheduler = RetentionScheduler(
            self._sweeper(side_effect=RuntimeError("store down")), "0 15 * * *"
        )

        assert await scheduler.run_once() is None

    @pytest.mark.asyncio
    async def test_run_forever_sleeps_until_each_fire_time(self):
        sleeps = []
        sweeper = self._sweeper(side_effect=[RuntimeError("store down"), SweepResult(0, NOW)])

        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)
            if len(sleeps) > 2:
                raise asyncio.CancelledError

        scheduler = RetentionScheduler(
            sweeper, "0 15 * * *", sleep=fake_sleep, clock=lambda: datetime(2025, 7, 20, 14, 0)
        )

        with pytest.raises(asyncio.CancelledError):
            await scheduler.run_forever()

        assert sleeps == [3600.0, 3600.0, 3600.0]
        assert sweeper.sweep.await_count == 2

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        started = asyncio.Event()

        async def blocking_sleep(delay: float) -> None:
            started.set()
            await asyncio.Event().wait()

        scheduler = RetentionScheduler(self._sweeper(), "0 15 * * *", sleep=blocking_sleep)

        scheduler.start()
        await asyncio.wait_for(started.wait(), timeout=1)
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running
