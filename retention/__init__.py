"""
Retention module: periodic deletion of old GPS telemetry.

This module provides:
- RetentionSweeper: one bulk delete of records past the retention window
- RetentionScheduler: cron-driven asyncio task that runs the sweeper
"""

from retention.scheduler import RetentionScheduler
from retention.sweeper import RetentionSweeper, SweepResult, utc_now

__all__ = [
    "RetentionScheduler",
    "RetentionSweeper",
    "SweepResult",
    "utc_now",
]
