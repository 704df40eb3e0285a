"""Habit tracking data structures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import ClassVar, Optional
from uuid import uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo on round-trip so we never store it."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid4().hex


class HabitKind(str, Enum):
    BUILD = "build"
    QUIT = "quit"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class QuitVariant(str, Enum):
    """How a quit habit is scored. Ignored for build habits."""

    ABSTINENCE = "abstinence"
    LIMIT = "limit"


class GoalUnit(str, Enum):
    STEPS = "steps"
    MINUTES = "minutes"
    HOURS = "hours"
    LITERS = "liters"
    GLASSES = "glasses"
    GRAMS = "grams"
    COUNT = "count"
    NONE = "none"  # binary complete/incomplete

    @property
    def display_name(self) -> str:
        return _SHORT_UNIT_NAMES[self]

    @property
    def long_display_name(self) -> str:
        return _LONG_UNIT_NAMES[self]


_SHORT_UNIT_NAMES = {
    GoalUnit.STEPS: "steps",
    GoalUnit.MINUTES: "min",
    GoalUnit.HOURS: "hrs",
    GoalUnit.LITERS: "L",
    GoalUnit.GLASSES: "glasses",
    GoalUnit.GRAMS: "g",
    GoalUnit.COUNT: "times",
    GoalUnit.NONE: "",
}

_LONG_UNIT_NAMES = {
    **_SHORT_UNIT_NAMES,
    GoalUnit.MINUTES: "minutes",
    GoalUnit.HOURS: "hours",
    GoalUnit.LITERS: "liters",
    GoalUnit.GRAMS: "grams",
}


class TrackingMode(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class EntrySource(str, Enum):
    """Who wrote an entry. Reconciliation never overwrites FALLBACK entries."""

    MANUAL = "manual"
    AUTOMATIC = "automatic"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class GoalSnapshot:
    """Goal configuration captured onto an entry when it is written.

    An entry stays interpretable after the habit's goal changes; evaluation
    never joins back to the habit.
    """

    kind: HabitKind
    quit_variant: QuitVariant
    goal_unit: GoalUnit
    goal_target: float

    @classmethod
    def from_habit(cls, habit: "Habit") -> "GoalSnapshot":
        return cls(
            kind=habit.kind,
            quit_variant=habit.quit_variant,
            goal_unit=habit.goal_unit,
            goal_target=habit.goal_target,
        )


class Habit(SQLModel, table=True):
    """A user-defined behaviour to build or quit, tracked per calendar day."""

    __tablename__: ClassVar[str] = "habit"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    name: str = Field(nullable=False, max_length=50, index=True)
    icon_name: str = Field(default="circle", max_length=64)
    kind: HabitKind = Field(default=HabitKind.BUILD, nullable=False)
    quit_variant: QuitVariant = Field(default=QuitVariant.ABSTINENCE, nullable=False)
    goal_target: float = Field(default=1.0, nullable=False)
    goal_unit: GoalUnit = Field(default=GoalUnit.NONE, nullable=False)
    goal_description: Optional[str] = Field(default=None, max_length=255)
    tracking_mode: TrackingMode = Field(default=TrackingMode.MANUAL, nullable=False)
    is_custom: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)

    # Cached counters, rewritten on every write to the habit's entries.
    streak: int = Field(default=0, nullable=False)
    longest_streak: int = Field(default=0, nullable=False)
    last_completed_date: Optional[date] = Field(default=None)
    streak_reset_on: Optional[date] = Field(default=None)

    @property
    def goal(self) -> GoalSnapshot:
        return GoalSnapshot.from_habit(self)

    @property
    def description(self) -> str:
        return self.goal_description or f"Track your {self.name.lower()} habit"


class HabitEntry(SQLModel, table=True):
    """Progress record for one habit on one calendar day."""

    __tablename__: ClassVar[str] = "habit_entry"
    __table_args__ = (UniqueConstraint("habit_id", "day", name="uq_habit_entry_day"),)

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    habit_id: str = Field(foreign_key="habit.id", nullable=False, index=True, max_length=32)
    day: date = Field(nullable=False, index=True)
    progress: float = Field(default=0.0, nullable=False)

    # Captured goal snapshot (see GoalSnapshot)
    kind: HabitKind = Field(default=HabitKind.BUILD, nullable=False)
    quit_variant: QuitVariant = Field(default=QuitVariant.ABSTINENCE, nullable=False)
    goal_target: float = Field(default=1.0, nullable=False)
    goal_unit: GoalUnit = Field(default=GoalUnit.NONE, nullable=False)

    is_completed: bool = Field(default=False, nullable=False)
    relapsed: bool = Field(default=False, nullable=False)
    source: EntrySource = Field(default=EntrySource.MANUAL, nullable=False)
    note: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    @property
    def goal(self) -> GoalSnapshot:
        return GoalSnapshot(
            kind=self.kind,
            quit_variant=self.quit_variant,
            goal_unit=self.goal_unit,
            goal_target=self.goal_target,
        )

    def capture_goal(self, snapshot: GoalSnapshot) -> None:
        self.kind = snapshot.kind
        self.quit_variant = snapshot.quit_variant
        self.goal_unit = snapshot.goal_unit
        self.goal_target = snapshot.goal_target

    @classmethod
    def for_habit(cls, habit: Habit, day: date, **values) -> "HabitEntry":
        entry = cls(habit_id=habit.id, day=day, **values)
        entry.capture_goal(habit.goal)
        return entry
