"""
Cron-driven scheduling of the retention sweeper.

The scheduler runs as an asyncio task started and stopped by the
application lifespan. Cron expressions are evaluated in UTC. A failed sweep
is logged and the loop simply waits for the next fire time.
"""

import asyncio
import contextlib
import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Optional

from croniter import croniter

from observability.service import set_request_id
from retention.sweeper import Clock, RetentionSweeper, SweepResult, utc_now

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RetentionScheduler:
    """
    Fires RetentionSweeper.sweep on a cron schedule.

    Attributes:
        sweeper: The sweeper to run
        cron_expression: Five-field cron expression (e.g. "0 15 * * *")
    """

    def __init__(
        self,
        sweeper: RetentionSweeper,
        cron_expression: str,
        sleep: Sleep = asyncio.sleep,
        clock: Optional[Clock] = None
    ):
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression!r}")
        self.sweeper = sweeper
        self.cron_expression = cron_expression
        self._sleep = sleep
        self._clock = clock or utc_now
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_run_after(self, moment: datetime) -> datetime:
        return croniter(self.cron_expression, moment).get_next(datetime)

    async def run_once(self) -> Optional[SweepResult]:
        """
        Run one sweep, logging instead of raising on failure.

        Returns:
            The sweep result, or None if the sweep failed
        """
        set_request_id(f"retention-{uuid.uuid4()}")
        try:
            return await self.sweeper.sweep()
        except Exception as e:
            logger.error(
                f"Scheduled retention sweep failed, retrying at next fire time: {e}",
                extra={"extra_data": {"cron": self.cron_expression}}
            )
            return None

    async def run_forever(self) -> None:
        while True:
            now = self._clock()
            next_run = self.next_run_after(now)
            delay = max((next_run - now).total_seconds(), 0.0)
            logger.debug(
                f"Next retention sweep at {next_run.isoformat()}",
                extra={"extra_data": {"next_run": next_run.isoformat(), "delay_s": delay}}
            )
            await self._sleep(delay)
            await self.run_once()

    def start(self) -> None:
        """Start the scheduling task on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self.run_forever(), name="retention-scheduler")
        logger.info(
            f"Retention scheduler started ({self.cron_expression}, "
            f"{self.sweeper.retention_days} days)"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Retention scheduler stopped")
