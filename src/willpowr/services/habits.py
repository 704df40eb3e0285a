"""Habit management, user intents and source reconciliation.

Every write to a habit's entries goes through ``HabitRepository.atomic`` so
the entry and the streak counters derived from it land in
one transaction under the habit's lock.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Optional

from sqlmodel import Session

from ..domain.repositories.habit import HabitRepository
from ..errors import ConfigurationError, HabitNotFoundError, InvalidActionError, UnsupportedMetricError
from ..models.habit import (
    EntrySource,
    GoalSnapshot,
    GoalUnit,
    Habit,
    HabitEntry,
    HabitKind,
    QuitVariant,
    TrackingMode,
    utcnow,
)
from ..models.presets import PresetHabit
from .day_calendar import DayCalendar
from .goals import (
    BuildBinary,
    BuildQuantity,
    DayOutcome,
    QuitAbstinence,
    QuitLimit,
    day_outcome,
    is_day_successful,
    policy_for,
    validate_goal,
)
from .health import supports_automatic
from .streaks import StreakSummary, compute_streaks, display_streak
from .tracking import TrackingModeResolver

logger = logging.getLogger("willpowr.habits")

NAME_MAX_LENGTH = 50

# (session, habit, today's entry or None) -> entry to save, or None for no change
Mutation = Callable[[Session, Habit, Optional[HabitEntry]], Optional[HabitEntry]]


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED_FALLBACK = "skipped_fallback"


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ConfigurationError("Habit name is required.")
    if len(cleaned) > NAME_MAX_LENGTH:
        raise ConfigurationError(f"Habit name must be at most {NAME_MAX_LENGTH} characters.")
    return cleaned


class HabitService:
    def __init__(
        self,
        repo: HabitRepository,
        calendar: DayCalendar,
        tracking: TrackingModeResolver,
    ) -> None:
        self.repo = repo
        self.calendar = calendar
        self.tracking = tracking
        # Set when a streak computation saw duplicate day rows.
        self.compaction_due = False

    # -- management -----------------------------------------------------------

    def get_habit(self, habit_id: str) -> Habit:
        habit = self.repo.get_by_id(habit_id)
        if habit is None:
            raise HabitNotFoundError(habit_id)
        return habit

    def list_habits(self) -> list[Habit]:
        return self.repo.list_all()

    def _check_config(self, habit: Habit, *, exclude_id: Optional[str] = None) -> None:
        habit.name = _clean_name(habit.name)
        clash = self.repo.get_by_name(habit.name)
        if clash is not None and clash.id != exclude_id:
            raise ConfigurationError(f"A habit named '{habit.name}' already exists.")
        validate_goal(habit.goal)
        if habit.tracking_mode == TrackingMode.AUTOMATIC and not supports_automatic(habit):
            raise UnsupportedMetricError(
                f"'{habit.name}' cannot be tracked automatically; use manual tracking."
            )

    def create_habit(
        self,
        name: str,
        *,
        kind: HabitKind = HabitKind.BUILD,
        goal_target: float = 1.0,
        goal_unit: GoalUnit = GoalUnit.NONE,
        quit_variant: QuitVariant = QuitVariant.ABSTINENCE,
        tracking_mode: TrackingMode = TrackingMode.MANUAL,
        icon_name: str = "circle",
        goal_description: Optional[str] = None,
        is_custom: bool = True,
    ) -> Habit:
        habit = Habit(
            name=name,
            kind=kind,
            goal_target=goal_target,
            goal_unit=goal_unit,
            quit_variant=quit_variant,
            tracking_mode=tracking_mode,
            icon_name=icon_name,
            goal_description=goal_description,
            is_custom=is_custom,
        )
        self._check_config(habit)
        created = self.repo.create(habit)
        logger.info("Habit created", extra={"habit_id": created.id, "kind": created.kind.value})
        return created

    def create_from_preset(
        self, preset: PresetHabit, *, tracking_mode: TrackingMode = TrackingMode.MANUAL
    ) -> Habit:
        return self.create_habit(
            preset.name,
            kind=preset.kind,
            goal_target=preset.goal_target,
            goal_unit=preset.goal_unit,
            quit_variant=preset.quit_variant,
            tracking_mode=tracking_mode,
            icon_name=preset.icon_name,
            goal_description=preset.goal_description,
            is_custom=False,
        )

    def update_habit(self, habit_id: str, **changes) -> Habit:
        """Change a habit's configuration.

        Existing entries keep the goal they were written under; only entries
        written from now on see the new goal.
        """
        habit = self.get_habit(habit_id)
        for field, value in changes.items():
            if field not in _EDITABLE_FIELDS:
                raise InvalidActionError(f"Field '{field}' cannot be edited.")
            setattr(habit, field, value)
        self._check_config(habit, exclude_id=habit_id)
        updated = self.repo.update(habit)
        logger.info("Habit updated", extra={"habit_id": habit_id, "fields": sorted(changes)})
        return updated

    def delete_habit(self, habit_id: str) -> None:
        if not self.repo.delete(habit_id):
            raise HabitNotFoundError(habit_id)
        logger.info("Habit deleted", extra={"habit_id": habit_id})

    # -- user intents ----------------------------------------------------------

    def complete(self, habit_id: str, *, force: bool = False) -> Habit:
        """Mark today done (build) or checked in clean (quit)."""

        def mutate(session, habit, entry):
            policy = policy_for(habit.goal)
            entry = entry or HabitEntry.for_habit(habit, today)
            if isinstance(policy, (QuitAbstinence, QuitLimit)) and entry.relapsed:
                raise InvalidActionError(f"'{habit.name}' was already marked as failed today.")
            if isinstance(policy, BuildQuantity):
                if entry.progress >= policy.target and entry.is_completed:
                    return None
                entry.progress = max(entry.progress, policy.target)
            elif entry.is_completed:
                return None
            entry.is_completed = True
            return entry

        today = self.calendar.today()
        return self._write(habit_id, today, mutate, force=force, action="complete")

    def fail(self, habit_id: str, *, force: bool = False) -> Habit:
        """Record a relapse for a quit habit today."""

        def mutate(session, habit, entry):
            if habit.kind != HabitKind.QUIT:
                raise InvalidActionError("Only quit habits can be marked as failed.")
            entry = entry or HabitEntry.for_habit(habit, today)
            if entry.relapsed:
                return None
            entry.relapsed = True
            entry.is_completed = False
            return entry

        today = self.calendar.today()
        return self._write(habit_id, today, mutate, force=force, action="fail")

    def add_progress(self, habit_id: str, amount: float, *, force: bool = False) -> Habit:
        """Add to today's amount. Quantities are not capped at the target."""

        if amount < 0:
            raise InvalidActionError("Progress amount cannot be negative.")

        def mutate(session, habit, entry):
            policy = policy_for(habit.goal)
            if isinstance(policy, QuitAbstinence):
                raise InvalidActionError(
                    f"'{habit.name}' has no amount to log; check in or mark as failed instead."
                )
            entry = entry or HabitEntry.for_habit(habit, today)
            if isinstance(policy, BuildBinary):
                if amount <= 0 or entry.is_completed:
                    return None
                entry.is_completed = True
                return entry
            entry.progress += amount
            if isinstance(policy, BuildQuantity):
                entry.is_completed = entry.progress >= policy.target
            return entry

        today = self.calendar.today()
        return self._write(habit_id, today, mutate, force=force, action="add_progress")

    def set_progress(self, habit_id: str, amount: float, *, day: Optional[date] = None) -> Habit:
        """Overwrite a day's amount (debug tooling)."""

        if amount < 0:
            raise InvalidActionError("Progress amount cannot be negative.")

        def mutate(session, habit, entry):
            entry = entry or HabitEntry.for_habit(habit, target_day)
            entry.progress = amount
            policy = policy_for(entry.goal)
            if isinstance(policy, BuildBinary):
                entry.is_completed = amount > 0
            elif isinstance(policy, BuildQuantity):
                entry.is_completed = amount >= policy.target
            return entry

        target_day = self._past_or_today(day)
        return self._write(habit_id, target_day, mutate, force=True, action="set_progress")

    def reset_streak(self, habit_id: str) -> Habit:
        """Zero the current streak; entries are kept.

        A day already scored as a success stays behind the reset, so counting
        restarts tomorrow. Otherwise a success later today starts the new run.
        """

        today = self.calendar.today()
        with self.repo.atomic(habit_id) as session:
            habit = self._load(session, habit_id)
            todays = self.repo.load_entry(session, habit_id, today)
            scored = day_outcome(todays, is_today=True) is DayOutcome.SUCCESS
            habit.streak = 0
            habit.last_completed_date = None
            habit.streak_reset_on = today + timedelta(days=1) if scored else today
            session.add(habit)
            session.commit()
            session.expunge(habit)
        logger.info("Streak reset", extra={"habit_id": habit_id})
        return habit

    def annotate(self, habit_id: str, note: Optional[str], *, day: Optional[date] = None) -> HabitEntry:
        target_day = self._past_or_today(day)
        with self.repo.atomic(habit_id) as session:
            habit = self._load(session, habit_id)
            entry = self.repo.load_entry(session, habit_id, target_day)
            if entry is None:
                entry = HabitEntry.for_habit(habit, target_day)
            entry.note = (note or "").strip() or None
            entry.updated_at = utcnow()
            session.add(entry)
            session.commit()
            session.expunge(entry)
        return entry

    def correct_entry(
        self,
        habit_id: str,
        day: date,
        *,
        progress: Optional[float] = None,
        completed: Optional[bool] = None,
        relapsed: Optional[bool] = None,
    ) -> HabitEntry:
        """Edit a past (or today's) entry and recompute the streak.

        An existing entry keeps the goal it was written under.
        """
        if progress is not None and progress < 0:
            raise InvalidActionError("Progress amount cannot be negative.")
        target_day = self._past_or_today(day)
        today = self.calendar.today()
        with self.repo.atomic(habit_id) as session:
            habit = self._load(session, habit_id)
            entry = self.repo.load_entry(session, habit_id, target_day)
            if entry is None:
                entry = HabitEntry.for_habit(habit, target_day)
            if progress is not None:
                entry.progress = progress
            if completed is not None:
                entry.is_completed = completed
            if relapsed is not None:
                entry.relapsed = relapsed
                if relapsed:
                    entry.is_completed = False
            entry.source = self.tracking.manual_entry_source(habit, force=True)
            entry.updated_at = utcnow()
            session.add(entry)
            self._refresh_counters(session, habit, today)
            session.commit()
            session.expunge(entry)
        return entry

    def clear_history(self, habit_id: Optional[str] = None) -> int:
        """Delete entries and zero the counters of one habit, or of every habit."""

        habit_ids = [habit_id] if habit_id is not None else [h.id for h in self.repo.list_all()]
        removed = 0
        for hid in habit_ids:
            with self.repo.atomic(hid) as session:
                habit = self._load(session, hid)
                removed += self.repo.purge_entries(session, hid)
                habit.streak = 0
                habit.longest_streak = 0
                habit.last_completed_date = None
                habit.streak_reset_on = None
                session.add(habit)
                session.commit()
        logger.info("History cleared", extra={"habits": len(habit_ids), "entries": removed})
        return removed

    # -- reconciliation ---------------------------------------------------------

    def apply_sample(
        self, habit_id: str, day: date, value: float, *, recompute: bool = True
    ) -> ReconcileOutcome:
        """Write an automatic-source aggregate into the habit's entry for ``day``.

        Entries written as manual fallback are left alone; applying the same
        value twice changes nothing.
        """
        if value < 0:
            logger.warning("Negative sample clamped to zero", extra={"habit_id": habit_id, "value": value})
            value = 0.0
        today = self.calendar.today()
        with self.repo.atomic(habit_id) as session:
            habit = self._load(session, habit_id)
            entry = self.repo.load_entry(session, habit_id, day)
            if entry is not None and entry.source == EntrySource.FALLBACK:
                return ReconcileOutcome.SKIPPED_FALLBACK
            goal = habit.goal
            if (
                entry is not None
                and entry.source == EntrySource.AUTOMATIC
                and entry.progress == value
                and entry.goal == goal
            ):
                return ReconcileOutcome.UNCHANGED

            outcome = ReconcileOutcome.UPDATED
            if entry is None:
                entry = HabitEntry.for_habit(habit, day)
                outcome = ReconcileOutcome.CREATED
            entry.capture_goal(goal)
            entry.progress = value
            entry.relapsed = False
            entry.source = EntrySource.AUTOMATIC
            entry.is_completed = _quantity_met(goal, value)
            entry.updated_at = utcnow()
            session.add(entry)
            if recompute:
                self._refresh_counters(session, habit, today)
            session.commit()
        return outcome

    def recompute_streak(self, habit_id: str) -> StreakSummary:
        today = self.calendar.today()
        with self.repo.atomic(habit_id) as session:
            habit = self._load(session, habit_id)
            summary = self._refresh_counters(session, habit, today)
            session.commit()
        return summary

    def recompute_streaks(self, habit_ids: Optional[list[str]] = None) -> dict[str, StreakSummary]:
        ids = habit_ids if habit_ids is not None else [h.id for h in self.repo.list_all()]
        return {hid: self.recompute_streak(hid) for hid in ids}

    def repair_streak(self, habit_id: str) -> StreakSummary:
        """Rebuild both counters from the full entry history."""

        today = self.calendar.today()
        with self.repo.atomic(habit_id) as session:
            habit = self._load(session, habit_id)
            entries = self.repo.load_entries(session, habit_id, until=today)
            all_time = compute_streaks(entries, today=today)
            current = compute_streaks(entries, today=today, counted_from=habit.streak_reset_on)
            habit.streak = current.current
            habit.longest_streak = max(all_time.longest, current.current)
            habit.last_completed_date = _last_handled(entries, current.last_success, habit.streak_reset_on)
            session.add(habit)
            session.commit()
        logger.info(
            "Streak repaired",
            extra={"habit_id": habit_id, "streak": current.current, "longest": all_time.longest},
        )
        return StreakSummary(
            current.current,
            max(all_time.longest, current.current),
            current.last_success,
            current.run_start,
            current.duplicate_days,
        )

    def verify_streak(self, habit_id: str) -> bool:
        """True when the cached counters agree with the entry history."""

        today = self.calendar.today()
        habit = self.get_habit(habit_id)
        entries = self.repo.get_entries_for_habit(habit_id, date.min, today)
        all_time = compute_streaks(entries, today=today)
        current = compute_streaks(entries, today=today, counted_from=habit.streak_reset_on)
        return habit.streak == current.current and habit.longest_streak == max(
            all_time.longest, current.current
        )

    # -- stats --------------------------------------------------------------------

    def compact_store(self) -> int:
        """Remove orphaned and duplicate entries, then recompute affected habits."""

        removed = self.repo.compact_entries()
        self.compaction_due = False
        for habit_id in removed:
            try:
                self.recompute_streak(habit_id)
            except HabitNotFoundError:
                continue
        total = sum(removed.values())
        if total:
            logger.warning("Store compacted", extra={"removed": total, "habits": len(removed)})
        return total

    def completed_today_count(self) -> int:
        today = self.calendar.today()
        return sum(1 for entry in self.repo.get_entries_for_day(today) if is_day_successful(entry))

    def best_current_streak(self) -> int:
        today = self.calendar.today()
        return max(
            (display_streak(h.streak, h.last_completed_date, today=today) for h in self.repo.list_all()),
            default=0,
        )

    # -- internals ----------------------------------------------------------------

    def _load(self, session: Session, habit_id: str) -> Habit:
        habit = self.repo.load_habit(session, habit_id)
        if habit is None:
            raise HabitNotFoundError(habit_id)
        return habit

    def _past_or_today(self, day: Optional[date]) -> date:
        today = self.calendar.today()
        if day is None:
            return today
        if day > today:
            raise InvalidActionError("Entries cannot be written for future days.")
        return day

    def _refresh_counters(self, session: Session, habit: Habit, today: date) -> StreakSummary:
        session.flush()
        entries = self.repo.load_entries(
            session, habit.id, start=habit.streak_reset_on, until=today
        )
        summary = compute_streaks(entries, today=today, counted_from=habit.streak_reset_on)
        if summary.duplicate_days:
            self.compaction_due = True
        habit.streak = summary.current
        habit.longest_streak = max(habit.longest_streak, summary.longest)
        habit.last_completed_date = _last_handled(entries, summary.last_success, habit.streak_reset_on)
        session.add(habit)
        return summary

    def _write(
        self,
        habit_id: str,
        day: date,
        mutate: Mutation,
        *,
        force: bool,
        action: str,
    ) -> Habit:
        today = self.calendar.today()
        with self.repo.atomic(habit_id) as session:
            habit = self._load(session, habit_id)
            source = self.tracking.manual_entry_source(habit, force=force)
            existing = self.repo.load_entry(session, habit_id, day)
            entry = mutate(session, habit, existing)
            if entry is None:
                logger.debug("No change", extra={"habit_id": habit_id, "action": action})
                session.expunge(habit)
                return habit
            if existing is None or entry.source != EntrySource.FALLBACK:
                entry.source = source
            if day == today:
                entry.capture_goal(habit.goal)
            entry.updated_at = utcnow()
            session.add(entry)
            self._refresh_counters(session, habit, today)
            session.commit()
            session.expunge(habit)
        logger.info(
            "Habit progress recorded",
            extra={"habit_id": habit_id, "action": action, "streak": habit.streak},
        )
        return habit


def _last_handled(
    entries: list[HabitEntry], last_success: Optional[date], counted_from: Optional[date]
) -> Optional[date]:
    """Latest day with a success or an explicit relapse; both mark the habit handled."""

    relapses = [e.day for e in entries if e.relapsed and (counted_from is None or e.day >= counted_from)]
    days = [d for d in (last_success, max(relapses, default=None)) if d is not None]
    return max(days, default=None)


def _quantity_met(goal: GoalSnapshot, value: float) -> bool:
    policy = policy_for(goal)
    if isinstance(policy, BuildQuantity):
        return value >= policy.target
    if isinstance(policy, QuitLimit):
        return value <= policy.limit
    return value > 0


_EDITABLE_FIELDS = frozenset(
    {
        "name",
        "icon_name",
        "kind",
        "quit_variant",
        "goal_target",
        "goal_unit",
        "goal_description",
        "tracking_mode",
    }
)


__all__ = ["HabitService", "NAME_MAX_LENGTH", "ReconcileOutcome"]
