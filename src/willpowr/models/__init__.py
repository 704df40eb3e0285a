"""SQLModel table exports."""

from .habit import (
    EntrySource,
    GoalSnapshot,
    GoalUnit,
    Habit,
    HabitEntry,
    HabitKind,
    QuitVariant,
    TrackingMode,
)

__all__ = [
    "EntrySource",
    "GoalSnapshot",
    "GoalUnit",
    "Habit",
    "HabitEntry",
    "HabitKind",
    "QuitVariant",
    "TrackingMode",
]
