"""Streak derivation from a habit's day entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Iterable, Optional, TypeVar

from .goals import DayOutcome, day_outcome

logger = logging.getLogger("willpowr.streaks")

E = TypeVar("E")
ONE_DAY = timedelta(days=1)

Classifier = Callable[..., DayOutcome]


@dataclass(frozen=True)
class StreakSummary:
    """Derived streak state for one habit as of ``today``."""

    current: int
    longest: int
    last_success: Optional[date] = None
    run_start: Optional[date] = None
    duplicate_days: tuple[date, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.duplicate_days


def latest_per_day(entries: Iterable[E]) -> tuple[dict[date, E], list[date]]:
    """Index entries by day, keeping the most recently created one per day.

    The store allows one entry per (habit, day); if callers hand us more, the
    later-created record wins deterministically and the day is reported.
    """
    ordered = sorted(
        entries,
        key=lambda e: (e.day, e.created_at, getattr(e, "id", "")),  # type: ignore[attr-defined]
    )
    by_day: dict[date, E] = {}
    duplicates: list[date] = []
    for entry in ordered:
        day = entry.day  # type: ignore[attr-defined]
        if day in by_day and (not duplicates or duplicates[-1] != day):
            duplicates.append(day)
        by_day[day] = entry
    return by_day, duplicates


def compute_streaks(
    entries: Iterable[E],
    *,
    today: date,
    counted_from: Optional[date] = None,
    classify: Classifier = day_outcome,
) -> StreakSummary:
    """Return current and longest streaks for a habit.

    Days before ``counted_from`` are skipped (a user-requested reset keeps
    history and restarts counting at that day). Entries dated after
    ``today`` are ignored.
    """
    by_day, duplicates = latest_per_day(entries)
    if duplicates:
        logger.warning(
            "Duplicate entries for the same day; using the most recently created",
            extra={"days": [d.isoformat() for d in duplicates]},
        )
    if counted_from is not None:
        by_day = {d: e for d, e in by_day.items() if d >= counted_from}

    # Longest: sweep through sorted days, counting consecutive successful runs.
    longest = 0
    run = 0
    last_day: Optional[date] = None
    last_success: Optional[date] = None
    for d in sorted(by_day):
        if d > today:
            break
        if classify(by_day[d], is_today=(d == today)) is DayOutcome.SUCCESS:
            run = run + 1 if last_day is not None and d == last_day + ONE_DAY else 1
            last_day = d
            last_success = d
            longest = max(longest, run)
        else:
            run = 0
            last_day = None

    # Current: walk backwards from today until a gap or failure.
    current = 0
    cursor = today
    today_outcome = classify(by_day.get(today), is_today=True)
    if today_outcome is DayOutcome.FAILURE:
        return StreakSummary(0, longest, last_success, None, tuple(duplicates))
    if today_outcome is DayOutcome.PENDING:
        cursor -= ONE_DAY
    while cursor in by_day and classify(by_day[cursor], is_today=(cursor == today)) is DayOutcome.SUCCESS:
        current += 1
        cursor -= ONE_DAY

    run_start = cursor + ONE_DAY if current else None
    return StreakSummary(current, max(longest, current), last_success, run_start, tuple(duplicates))


def display_streak(streak: int, last_completed: Optional[date], *, today: date) -> int:
    """Cached streak as shown to the user.

    Nothing rewrites the cache when days pass without a write, so a run whose
    last handled day is before yesterday is shown as expired.
    """
    if last_completed is None or (today - last_completed).days > 1:
        return 0
    return streak


__all__ = ["StreakSummary", "compute_streaks", "display_streak", "latest_per_day"]
