"""Background scheduler driving periodic sync and day rollover."""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler as APScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .services.sync import SyncCoordinator, SyncTrigger

logger = logging.getLogger("willpowr.scheduler")

SYNC_JOB_ID = "habit_sync"
ROLLOVER_JOB_ID = "day_rollover"


class SyncScheduler:
    """Recurring sync jobs for one coordinator.

    Jobs never overlap themselves (``max_instances=1``) and missed runs
    collapse into one; the coordinator queues anything that still lands on
    a running cycle.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        *,
        interval_seconds: int,
        timezone: tzinfo,
    ):
        """Initialize the scheduler.

        Args:
            coordinator: Sync coordinator the jobs call into
            interval_seconds: Seconds between timer-triggered cycles
            timezone: Calendar zone; the rollover job fires at its midnight
        """
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.timezone = timezone
        self.scheduler: Optional[APScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None

    def start(self) -> None:
        """Start the background scheduler."""
        if self.scheduler is not None:
            logger.warning("Scheduler already running")
            return

        self.scheduler = APScheduler(timezone=self.timezone)

        self.scheduler.add_job(
            func=self._run_timer_sync,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=self.timezone),
            id=SYNC_JOB_ID,
            name="Habit Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled habit sync every %ss", self.interval_seconds)

        self.scheduler.add_job(
            func=self._run_rollover_sync,
            trigger=CronTrigger(hour=0, minute=0, second=5, timezone=self.timezone),
            id=ROLLOVER_JOB_ID,
            name="Day Rollover Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled day rollover sync at local midnight")

        self.scheduler.start()
        logger.info("Background scheduler started")

    def stop(self) -> None:
        """Stop the background scheduler gracefully."""
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
            self.scheduler = None
            logger.info("Background scheduler stopped")

    def refresh_now(self) -> None:
        """Queue an immediate user-initiated cycle on the scheduler's worker."""
        if self.scheduler is None:
            logger.warning("Cannot refresh: scheduler not started")
            return
        self.scheduler.add_job(
            func=self.coordinator.refresh_now,
            id="habit_sync_refresh",
            name="Habit Sync (refresh)",
            replace_existing=True,
        )

    def _run_timer_sync(self) -> None:
        self.coordinator.request_sync(SyncTrigger.TIMER)

    def _run_rollover_sync(self) -> None:
        self.coordinator.request_sync(SyncTrigger.DAY_ROLLOVER, force=True)


def create_scheduler(
    coordinator: SyncCoordinator,
    *,
    interval_seconds: int,
    timezone: tzinfo,
    auto_start: bool = False,
) -> SyncScheduler:
    """Create and optionally start a sync scheduler."""

    scheduler = SyncScheduler(coordinator, interval_seconds=interval_seconds, timezone=timezone)
    if auto_start:
        scheduler.start()
    return scheduler


__all__ = ["ROLLOVER_JOB_ID", "SYNC_JOB_ID", "SyncScheduler", "create_scheduler"]
