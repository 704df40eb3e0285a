"""Preset habits offered when creating a new habit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .habit import GoalUnit, HabitKind, QuitVariant


@dataclass(frozen=True)
class PresetHabit:
    name: str
    icon_name: str
    kind: HabitKind
    goal_target: float = 1.0
    goal_unit: GoalUnit = GoalUnit.NONE
    quit_variant: QuitVariant = QuitVariant.ABSTINENCE
    goal_description: Optional[str] = None


BUILD_PRESETS: tuple[PresetHabit, ...] = (
    PresetHabit("Walk Daily", "figure.walk", HabitKind.BUILD, 8000, GoalUnit.STEPS,
                goal_description="Walk 8,000 steps daily"),
    PresetHabit("Meditate", "brain.head.profile", HabitKind.BUILD, 10, GoalUnit.MINUTES,
                goal_description="Meditate for 10 minutes daily"),
    PresetHabit("Drink Water", "drop.fill", HabitKind.BUILD, 2, GoalUnit.LITERS,
                goal_description="Drink 2 liters of water daily"),
    PresetHabit("Read", "book.fill", HabitKind.BUILD, 20, GoalUnit.MINUTES,
                goal_description="Read for 20 minutes daily"),
    PresetHabit("Exercise", "dumbbell.fill", HabitKind.BUILD, 30, GoalUnit.MINUTES,
                goal_description="Exercise for 30 minutes daily"),
    PresetHabit("Journal", "pencil.and.outline", HabitKind.BUILD,
                goal_description="Write in journal daily"),
    PresetHabit("Sleep Early", "bed.double.fill", HabitKind.BUILD,
                goal_description="Sleep before 11 PM daily"),
)

QUIT_PRESETS: tuple[PresetHabit, ...] = (
    PresetHabit("Limit Social Media", "iphone.slash", HabitKind.QUIT, 1, GoalUnit.HOURS,
                QuitVariant.LIMIT, "Limit social media to 1 hour daily"),
    PresetHabit("Reduce Sugar", "cube.fill", HabitKind.QUIT, 25, GoalUnit.GRAMS,
                QuitVariant.LIMIT, "Consume less than 25g sugar daily"),
    # A zero ceiling is abstinence, not a limit.
    PresetHabit("Quit Smoking", "smoke.fill", HabitKind.QUIT, 0, GoalUnit.NONE,
                QuitVariant.ABSTINENCE, "Smoke 0 cigarettes daily"),
    PresetHabit("Limit Junk Food", "takeoutbag.and.cup.and.straw.fill", HabitKind.QUIT, 1,
                GoalUnit.COUNT, QuitVariant.LIMIT, "Limit junk food to 1 serving daily"),
    PresetHabit("Reduce Procrastination", "clock.fill", HabitKind.QUIT,
                goal_description="Avoid procrastination daily"),
    PresetHabit("Stop Negative Thinking", "brain.filled.head.profile", HabitKind.QUIT,
                goal_description="Practice positive thinking daily"),
    PresetHabit("Limit Screen Time", "tv.fill", HabitKind.QUIT, 6, GoalUnit.HOURS,
                QuitVariant.LIMIT, "Limit screen time to 6 hours daily"),
)

ALL_PRESETS: tuple[PresetHabit, ...] = BUILD_PRESETS + QUIT_PRESETS


def find_preset(name: str) -> Optional[PresetHabit]:
    wanted = name.strip().lower()
    return next((p for p in ALL_PRESETS if p.name.lower() == wanted), None)


__all__ = ["ALL_PRESETS", "BUILD_PRESETS", "PresetHabit", "QUIT_PRESETS", "find_preset"]
