"""Background reconciliation of automatically tracked habits.

A cycle fetches each automatic habit's daily aggregate from the source in
parallel, writes every value with its own atomic update, and only then
recomputes streaks and publishes the cycle's status.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Union

from ..errors import HabitNotFoundError, SourceUnavailableError
from ..models.habit import EntrySource, Habit
from .day_calendar import DayCalendar
from .habits import HabitService, ReconcileOutcome
from .health import AutomaticSource, metric_for
from .tracking import TrackingModeResolver

logger = logging.getLogger("willpowr.sync")


class SyncTrigger(str, Enum):
    TIMER = "timer"
    USER = "user"
    DAY_ROLLOVER = "day_rollover"


@dataclass(frozen=True)
class HabitSyncFailure:
    habit_id: str
    habit_name: str
    day: date
    error: str


@dataclass
class SyncReport:
    """What one cycle did."""

    trigger: SyncTrigger
    started_at: datetime
    days: tuple[date, ...] = ()
    finished_at: Optional[datetime] = None
    outcomes: dict[tuple[str, date], ReconcileOutcome] = field(default_factory=dict)
    failures: list[HabitSyncFailure] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    habit_count: int = 0

    def _count(self, *kinds: ReconcileOutcome) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome in kinds)

    @property
    def updated(self) -> int:
        return self._count(ReconcileOutcome.CREATED, ReconcileOutcome.UPDATED)

    @property
    def unchanged(self) -> int:
        return self._count(ReconcileOutcome.UNCHANGED)

    @property
    def skipped(self) -> int:
        return self._count(ReconcileOutcome.SKIPPED_FALLBACK)

    @property
    def failed_habit_ids(self) -> set[str]:
        return {failure.habit_id for failure in self.failures}


@dataclass(frozen=True)
class SyncIdle:
    pass


@dataclass(frozen=True)
class SyncInProgress:
    trigger: SyncTrigger
    started_at: datetime


@dataclass(frozen=True)
class SyncCompleted:
    at: datetime
    report: SyncReport

    @property
    def failures(self) -> list[HabitSyncFailure]:
        return self.report.failures

    @property
    def partial(self) -> bool:
        return bool(self.report.failures)


@dataclass(frozen=True)
class SyncFailed:
    at: datetime
    error: str
    report: Optional[SyncReport] = None


SyncStatus = Union[SyncIdle, SyncInProgress, SyncCompleted, SyncFailed]
StatusListener = Callable[[SyncStatus], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncCoordinator:
    """Owns sync cycles for one process.

    At most one cycle runs at a time. A request that arrives while a cycle is
    in flight is queued (requests coalesce into one) and run by the thread
    that owns the current cycle once it finishes.
    """

    def __init__(
        self,
        habits: HabitService,
        source: AutomaticSource,
        tracking: TrackingModeResolver,
        calendar: DayCalendar,
        *,
        max_workers: int = 4,
        fetch_timeout: float = 20.0,
        min_gap_seconds: float = 30.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.habits = habits
        self.source = source
        self.tracking = tracking
        self.calendar = calendar
        self.fetch_timeout = fetch_timeout
        self.min_gap = timedelta(seconds=min_gap_seconds)
        self._clock = clock or _utcnow
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="willpowr-sync"
        )
        self._lock = threading.Lock()
        self._status: SyncStatus = SyncIdle()
        self._running = False
        self._pending: Optional[SyncTrigger] = None
        self._closed = False
        self._last_sync_time: Optional[datetime] = None
        self._last_failures: list[HabitSyncFailure] = []
        self._last_day: Optional[date] = None
        self._listeners: list[StatusListener] = []

    # -- state ---------------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            return self._status

    def take_status(self) -> SyncStatus:
        """Return the status; a failure is reported once, then reads as idle."""

        with self._lock:
            status = self._status
            if isinstance(status, SyncFailed):
                self._status = SyncIdle()
        return status

    @property
    def last_sync_time(self) -> Optional[datetime]:
        with self._lock:
            return self._last_sync_time

    @property
    def last_failures(self) -> list[HabitSyncFailure]:
        with self._lock:
            return list(self._last_failures)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def add_listener(self, listener: StatusListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def describe(self) -> str:
        status = self.status
        if isinstance(status, SyncInProgress):
            return "Syncing..."
        if isinstance(status, SyncFailed):
            return f"Sync failed: {status.error}"
        last = self.last_sync_time
        if last is None:
            return "Never synced"
        text = f"Last synced {last.astimezone(self.calendar.tz):%H:%M}"
        if isinstance(status, SyncCompleted) and status.partial:
            text += f" ({len(status.failures)} failed)"
        return text

    # -- requests ------------------------------------------------------------

    def request_sync(
        self, trigger: SyncTrigger = SyncTrigger.USER, *, force: bool = False
    ) -> Optional[SyncReport]:
        """Run a cycle now, or queue it behind the one in flight.

        Returns the report of the last cycle this call ran, or None when the
        request was queued, throttled or the coordinator is closed. Timer
        requests inside the minimum gap are dropped unless ``force`` is set.
        """
        with self._lock:
            if self._closed:
                logger.debug("Sync requested after shutdown", extra={"trigger": trigger.value})
                return None
            if self._running:
                if self._pending is None or trigger != SyncTrigger.TIMER:
                    self._pending = trigger
                logger.info("Sync queued behind running cycle", extra={"trigger": trigger.value})
                return None
            if (
                not force
                and trigger == SyncTrigger.TIMER
                and self._last_sync_time is not None
                and self._clock() - self._last_sync_time < self.min_gap
            ):
                logger.debug("Sync throttled", extra={"trigger": trigger.value})
                return None
            self._running = True

        report: Optional[SyncReport] = None
        try:
            while True:
                report = self._run_cycle(trigger)
                with self._lock:
                    if self._pending is None or self._closed:
                        self._pending = None
                        break
                    trigger = self._pending
                    self._pending = None
        finally:
            with self._lock:
                self._running = False
        return report

    def refresh_now(self) -> Optional[SyncReport]:
        return self.request_sync(SyncTrigger.USER, force=True)

    def close(self) -> None:
        """Stop accepting requests and wait for in-flight fetches."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._pending = None
        self._executor.shutdown(wait=True, cancel_futures=True)
        logger.info("Sync coordinator closed")

    # -- cycle ---------------------------------------------------------------

    def _set_status(self, status: SyncStatus) -> None:
        with self._lock:
            self._status = status
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.exception("Sync status listener failed")

    def _cycle_days(self, trigger: SyncTrigger) -> tuple[date, ...]:
        today = self.calendar.today()
        with self._lock:
            last_day = self._last_day
            self._last_day = today
        if last_day is None:
            # First cycle in this process: the store remembers the last reconciled day.
            last_day = self.habits.repo.latest_entry_day(EntrySource.AUTOMATIC)
        rolled_over = last_day is not None and last_day < today
        if rolled_over or trigger == SyncTrigger.DAY_ROLLOVER:
            logger.info("Day rollover; finalizing yesterday", extra={"day": today.isoformat()})
            return (today - timedelta(days=1), today)
        return (today,)

    def _run_cycle(self, trigger: SyncTrigger) -> SyncReport:
        report = SyncReport(trigger=trigger, started_at=self._clock())
        self._set_status(SyncInProgress(trigger, report.started_at))
        logger.info("Sync started", extra={"trigger": trigger.value})
        try:
            self._reconcile(report)
        except Exception as exc:
            report.finished_at = self._clock()
            logger.exception("Sync cycle aborted")
            self._set_status(SyncFailed(report.finished_at, str(exc), report))
            return report

        report.finished_at = self._clock()
        all_failed = bool(report.failures) and not report.outcomes
        with self._lock:
            self._last_failures = list(report.failures)
            if not all_failed:
                self._last_sync_time = report.finished_at
        if all_failed:
            self._set_status(SyncFailed(report.finished_at, report.failures[0].error, report))
            logger.warning("Sync failed for every habit", extra={"habits": report.habit_count})
        else:
            self._set_status(SyncCompleted(report.finished_at, report))
            logger.info(
                "Sync completed",
                extra={
                    "trigger": trigger.value,
                    "updated": report.updated,
                    "unchanged": report.unchanged,
                    "skipped": report.skipped,
                    "failed": len(report.failures),
                },
            )
        return report

    def _reconcile(self, report: SyncReport) -> None:
        report.days = self._cycle_days(report.trigger)
        habits = self.habits.repo.list_automatic()
        report.habit_count = len(habits)
        if not habits:
            return
        available, reason = self.tracking.source_available()
        if not available:
            report.skipped_reason = reason
            return

        futures: dict[Future, tuple[Habit, date]] = {
            self._executor.submit(self._fetch, habit, day): (habit, day)
            for habit in habits
            for day in report.days
        }
        done, not_done = wait(futures, timeout=self.fetch_timeout)
        for future in not_done:
            future.cancel()
            habit, day = futures[future]
            self._record_failure(report, habit, day, f"timed out after {self.fetch_timeout:g}s")

        for future, (habit, day) in futures.items():
            if future not in done:
                continue
            exc = future.exception()
            if exc is not None:
                self._record_failure(report, habit, day, str(exc) or type(exc).__name__)
                continue
            try:
                outcome = self.habits.apply_sample(habit.id, day, future.result(), recompute=False)
            except HabitNotFoundError:
                logger.info("Habit deleted during sync", extra={"habit_id": habit.id})
                continue
            report.outcomes[(habit.id, day)] = outcome

        # Streaks flip only after every habit's entries are in.
        for habit in habits:
            try:
                self.habits.recompute_streak(habit.id)
            except HabitNotFoundError:
                continue
        if self.habits.compaction_due:
            self.habits.compact_store()

    def _fetch(self, habit: Habit, day: date) -> float:
        value = float(self.source.daily_aggregate(metric_for(habit), day))
        if not math.isfinite(value):
            raise SourceUnavailableError(f"source returned {value!r}")
        return value

    def _record_failure(self, report: SyncReport, habit: Habit, day: date, error: str) -> None:
        logger.warning(
            "Sync fetch failed",
            extra={"habit_id": habit.id, "day": day.isoformat(), "error": error},
        )
        report.failures.append(HabitSyncFailure(habit.id, habit.name, day, error))


__all__ = [
    "HabitSyncFailure",
    "StatusListener",
    "SyncCompleted",
    "SyncCoordinator",
    "SyncFailed",
    "SyncIdle",
    "SyncInProgress",
    "SyncReport",
    "SyncStatus",
    "SyncTrigger",
]
