"""Read-only habit snapshots for the primary UI and the widget process.

Each snapshot comes from one SELECT, so the streak numbers and the activity
series always describe the same set of rows even while the writer commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Optional, Union

from sqlalchemy import and_
from sqlmodel import select

from ..infra.database import SessionFactory
from ..models.habit import GoalSnapshot, Habit, HabitEntry, HabitKind, TrackingMode
from .day_calendar import DayCalendar
from .goals import (
    DayOutcome,
    DisplayStatus,
    day_outcome,
    describe_progress,
    display_status,
    progress_fraction,
)
from .streaks import compute_streaks, display_streak, latest_per_day

logger = logging.getLogger("willpowr.snapshots")

DEFAULT_WINDOW_DAYS = 90
MAX_WINDOW_DAYS = 366


class ActivityLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    COMPLETE = "complete"


@dataclass(frozen=True)
class DayActivity:
    day: date
    outcome: DayOutcome
    fraction: float
    level: ActivityLevel
    progress: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome is DayOutcome.SUCCESS


@dataclass(frozen=True)
class HabitSnapshot:
    habit_id: str
    name: str
    icon_name: str
    kind: HabitKind
    goal: GoalSnapshot
    tracking_mode: TrackingMode
    today: date
    current_streak: int
    longest_streak: int
    today_outcome: DayOutcome
    today_status: DisplayStatus
    today_progress: float
    today_fraction: float
    today_label: str
    activity: tuple[DayActivity, ...]
    sync_status: Optional[object] = None

    @property
    def completed_today(self) -> bool:
        return self.today_outcome is DayOutcome.SUCCESS

    @property
    def window(self) -> tuple[date, date]:
        return self.activity[0].day, self.activity[-1].day


@dataclass(frozen=True)
class HabitNotFound:
    habit_id: str


SnapshotResult = Union[HabitSnapshot, HabitNotFound]


@dataclass(frozen=True)
class HabitSummary:
    habit_id: str
    name: str
    icon_name: str
    kind: HabitKind
    current_streak: int
    completed_today: bool


def activity_level(outcome: DayOutcome, fraction: float, *, graded: bool = True) -> ActivityLevel:
    """Intensity for one day. Quit habits are not graded: a day is clean or it is not."""

    if outcome is DayOutcome.SUCCESS:
        return ActivityLevel.COMPLETE
    if not graded or fraction <= 0:
        return ActivityLevel.NONE
    if fraction < 0.25:
        return ActivityLevel.LOW
    if fraction < 0.5:
        return ActivityLevel.MEDIUM
    return ActivityLevel.HIGH


class SnapshotProvider:
    """Builds snapshots over any engine, including the read-only widget engine."""

    def __init__(
        self,
        session_factory: SessionFactory,
        calendar: DayCalendar,
        *,
        default_days: int = DEFAULT_WINDOW_DAYS,
        max_days: int = MAX_WINDOW_DAYS,
        status_supplier: Optional[Callable[[], object]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.calendar = calendar
        self.max_days = max(1, max_days)
        self.default_days = self._clamp(default_days)
        self.status_supplier = status_supplier

    def _clamp(self, days: Optional[int]) -> int:
        if days is None:
            return self.default_days
        return min(max(int(days), 1), self.max_days)

    def snapshot(self, habit_id: str, days: Optional[int] = None) -> SnapshotResult:
        window_days = self._clamp(days)
        start, today = self.calendar.window(window_days)
        statement = (
            select(Habit, HabitEntry)
            .join(
                HabitEntry,
                and_(
                    HabitEntry.habit_id == Habit.id,
                    HabitEntry.day >= start,
                    HabitEntry.day <= today,
                ),
                isouter=True,
            )
            .where(Habit.id == habit_id)
        )
        with self.session_factory() as session:
            rows = list(session.exec(statement).all())
            if not rows:
                logger.info("Snapshot requested for missing habit", extra={"habit_id": habit_id})
                return HabitNotFound(habit_id)
            habit = rows[0][0]
            entries = [entry for _, entry in rows if entry is not None]
            session.expunge_all()

        return self._build(habit, entries, start, today)

    def _build(self, habit: Habit, entries: list[HabitEntry], start: date, today: date) -> HabitSnapshot:
        summary = compute_streaks(entries, today=today, counted_from=habit.streak_reset_on)
        current = summary.current
        # A run reaching the window edge may continue before it; the cached
        # counter covers the part outside the window.
        if summary.run_start is not None and summary.run_start <= start:
            current = max(current, display_streak(habit.streak, habit.last_completed_date, today=today))
        longest = max(habit.longest_streak, summary.longest, current)

        by_day, _ = latest_per_day(entries)
        activity = []
        day = start
        while day <= today:
            entry = by_day.get(day)
            outcome = day_outcome(entry, is_today=(day == today))
            fraction = progress_fraction(entry)
            activity.append(
                DayActivity(
                    day=day,
                    outcome=outcome,
                    fraction=fraction,
                    level=activity_level(
                        outcome, fraction, graded=entry is not None and entry.kind == HabitKind.BUILD
                    ),
                    progress=entry.progress if entry is not None else 0.0,
                )
            )
            day += timedelta(days=1)

        todays = by_day.get(today)
        return HabitSnapshot(
            habit_id=habit.id,
            name=habit.name,
            icon_name=habit.icon_name,
            kind=habit.kind,
            goal=habit.goal,
            tracking_mode=habit.tracking_mode,
            today=today,
            current_streak=current,
            longest_streak=longest,
            today_outcome=activity[-1].outcome,
            today_status=display_status(todays),
            today_progress=todays.progress if todays is not None else 0.0,
            today_fraction=activity[-1].fraction,
            today_label=describe_progress(todays, todays.goal if todays is not None else habit.goal),
            activity=tuple(activity),
            sync_status=self.status_supplier() if self.status_supplier is not None else None,
        )

    def list_habits(self) -> list[HabitSummary]:
        """Every habit with its displayed streak and today's state, in one query."""

        today = self.calendar.today()
        statement = (
            select(Habit, HabitEntry)
            .join(
                HabitEntry,
                and_(HabitEntry.habit_id == Habit.id, HabitEntry.day == today),
                isouter=True,
            )
            .order_by(Habit.created_at.desc())  # type: ignore[attr-defined]
        )
        with self.session_factory() as session:
            rows = list(session.exec(statement).all())
            session.expunge_all()
        return [
            HabitSummary(
                habit_id=habit.id,
                name=habit.name,
                icon_name=habit.icon_name,
                kind=habit.kind,
                current_streak=display_streak(habit.streak, habit.last_completed_date, today=today),
                completed_today=day_outcome(entry, is_today=True) is DayOutcome.SUCCESS,
            )
            for habit, entry in rows
        ]


__all__ = [
    "ActivityLevel",
    "DEFAULT_WINDOW_DAYS",
    "DayActivity",
    "HabitNotFound",
    "HabitSnapshot",
    "HabitSummary",
    "MAX_WINDOW_DAYS",
    "SnapshotProvider",
    "SnapshotResult",
    "activity_level",
]
