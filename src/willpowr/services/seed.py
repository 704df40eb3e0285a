"""Sample history for debugging and demos."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

from ..models.habit import GoalUnit, Habit, HabitKind, QuitVariant
from ..models.presets import ALL_PRESETS, PresetHabit
from .habits import HabitService

logger = logging.getLogger("willpowr.seed")

DEFAULT_SEED_PRESETS = ("Walk Daily", "Meditate", "Journal", "Limit Social Media", "Quit Smoking")


@dataclass
class SeedSummary:
    """Counts returned after seeding."""

    habits_created: int
    entries_written: int


def ensure_preset_habits(service: HabitService, names: Sequence[str] = DEFAULT_SEED_PRESETS) -> list[Habit]:
    """Create the named presets that do not exist yet; return all of them."""

    presets: dict[str, PresetHabit] = {preset.name: preset for preset in ALL_PRESETS}
    habits = []
    for name in names:
        existing = service.repo.get_by_name(name)
        habits.append(existing if existing is not None else service.create_from_preset(presets[name]))
    return habits


def generate_sample_history(
    service: HabitService,
    days: int = 30,
    *,
    habits: Optional[Sequence[Habit]] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Backfill ``days`` past days for each habit with 30%-150% of its target.

    Today is left untouched. Returns the number of entries written.
    """
    rng = rng or random.Random()
    targets = list(habits) if habits is not None else service.list_habits()
    today = service.calendar.today()
    written = 0
    for habit in targets:
        for offset in range(days, 0, -1):
            day = today - timedelta(days=offset)
            if habit.kind == HabitKind.QUIT and habit.quit_variant == QuitVariant.ABSTINENCE:
                clean = rng.random() < 0.8
                service.correct_entry(habit.id, day, completed=clean, relapsed=not clean)
            elif habit.goal_unit == GoalUnit.NONE or habit.goal_target <= 0:
                service.correct_entry(habit.id, day, completed=rng.random() < 0.7)
            else:
                amount = round(habit.goal_target * rng.uniform(0.3, 1.5), 1)
                service.correct_entry(habit.id, day, progress=amount)
            written += 1
    logger.info("Sample history generated", extra={"habits": len(targets), "entries": written})
    return written


def seed_demo(service: HabitService, days: int = 30, *, rng: Optional[random.Random] = None) -> SeedSummary:
    before = len(service.list_habits())
    habits = ensure_preset_habits(service)
    created = len(service.list_habits()) - before
    entries = generate_sample_history(service, days, habits=habits, rng=rng)
    return SeedSummary(habits_created=created, entries_written=entries)


__all__ = ["SeedSummary", "ensure_preset_habits", "generate_sample_history", "seed_demo"]
