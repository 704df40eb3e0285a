"""Goal evaluation: is a day's record a success for its habit variant?

Every habit is classified once into a tagged ``GoalPolicy`` variant. All
build/quit/abstinence/limit branching lives in this module; the streak engine,
the snapshot provider and the presentation layer only consume the results.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Union

from ..errors import ConfigurationError
from ..models.habit import GoalSnapshot, GoalUnit, HabitKind, QuitVariant


class DayOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"  # today, nothing decisive recorded yet


class DisplayStatus(str, Enum):
    MET = "met"
    OVER_LIMIT = "over_limit"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class BuildBinary:
    """Build habit without a quantity goal: done or not done."""


@dataclass(frozen=True)
class BuildQuantity:
    target: float


@dataclass(frozen=True)
class QuitAbstinence:
    """Quit habit scored by an explicit "stayed clean" check-in."""


@dataclass(frozen=True)
class QuitLimit:
    limit: float


GoalPolicy = Union[BuildBinary, BuildQuantity, QuitAbstinence, QuitLimit]


class EntryLike(Protocol):
    progress: float
    is_completed: bool
    relapsed: bool

    @property
    def goal(self) -> GoalSnapshot: ...


def policy_for(goal: GoalSnapshot) -> GoalPolicy:
    if goal.kind == HabitKind.BUILD:
        if goal.goal_unit == GoalUnit.NONE or goal.goal_target <= 0:
            return BuildBinary()
        return BuildQuantity(goal.goal_target)
    if goal.kind == HabitKind.QUIT:
        if goal.quit_variant == QuitVariant.LIMIT:
            return QuitLimit(goal.goal_target)
        return QuitAbstinence()
    raise ConfigurationError(f"Unknown habit kind: {goal.kind!r}")


def validate_goal(goal: GoalSnapshot) -> None:
    """Reject configurations the evaluator cannot score. Called when habits are saved."""

    if goal.goal_target < 0:
        raise ConfigurationError("Goal target cannot be negative.")
    policy = policy_for(goal)
    if isinstance(policy, QuitLimit):
        if goal.goal_unit == GoalUnit.NONE:
            raise ConfigurationError("A limit habit needs a unit to count against.")
        if policy.limit <= 0:
            raise ConfigurationError(
                "A limit habit needs a positive limit; use an abstinence habit for zero tolerance."
            )


def _met(policy: GoalPolicy, entry: EntryLike) -> bool:
    if isinstance(policy, BuildBinary):
        return entry.is_completed
    if isinstance(policy, BuildQuantity):
        return entry.progress >= policy.target
    if isinstance(policy, QuitAbstinence):
        return entry.is_completed and not entry.relapsed
    if isinstance(policy, QuitLimit):
        # Misconfigured limits always fail; validate_goal keeps them out of the store.
        if policy.limit <= 0:
            return False
        return not entry.relapsed and entry.progress <= policy.limit
    raise TypeError(f"Unhandled goal policy: {policy!r}")


def is_day_successful(entry: Optional[EntryLike]) -> bool:
    """Success for the day this entry records. No entry is never a success."""

    if entry is None:
        return False
    return _met(policy_for(entry.goal), entry)


def day_outcome(entry: Optional[EntryLike], *, is_today: bool) -> DayOutcome:
    """Three-state classification used by the streak engine.

    Past days are final: anything short of success is a failure. Today stays
    pending while the goal can still be reached; an explicit relapse or an
    exceeded limit is final immediately.
    """
    if entry is None:
        return DayOutcome.PENDING if is_today else DayOutcome.FAILURE
    policy = policy_for(entry.goal)
    if _met(policy, entry):
        return DayOutcome.SUCCESS
    if not is_today:
        return DayOutcome.FAILURE
    if isinstance(policy, (BuildBinary, BuildQuantity)):
        return DayOutcome.PENDING
    if isinstance(policy, QuitAbstinence):
        return DayOutcome.FAILURE if entry.relapsed else DayOutcome.PENDING
    return DayOutcome.FAILURE


def progress_fraction(entry: Optional[EntryLike]) -> float:
    """Progress toward the goal (build) or share of the allowance used (limit), in [0, 1]."""

    if entry is None:
        return 0.0
    policy = policy_for(entry.goal)
    if isinstance(policy, BuildQuantity):
        ratio = entry.progress / policy.target
    elif isinstance(policy, QuitLimit):
        if policy.limit <= 0:
            return 1.0
        ratio = entry.progress / policy.limit
    elif isinstance(policy, QuitAbstinence):
        ratio = 1.0 if _met(policy, entry) else 0.0
    else:
        ratio = 1.0 if entry.is_completed else 0.0
    return min(max(ratio, 0.0), 1.0)


def display_status(entry: Optional[EntryLike]) -> DisplayStatus:
    if entry is None:
        return DisplayStatus.INCOMPLETE
    policy = policy_for(entry.goal)
    if _met(policy, entry):
        return DisplayStatus.MET
    if isinstance(policy, QuitLimit):
        return DisplayStatus.OVER_LIMIT
    return DisplayStatus.INCOMPLETE


def format_amount(value: float) -> str:
    return str(int(value)) if value == int(value) else f"{value:.1f}"


def describe_progress(entry: Optional[EntryLike], goal: GoalSnapshot) -> str:
    """Short human-readable progress line ("1.5 / 2 hrs", "Stayed Clean")."""

    policy = policy_for(goal)
    if isinstance(policy, QuitAbstinence):
        if entry is not None and _met(policy, entry):
            return "Stayed Clean"
        return "Relapsed" if entry is not None and entry.relapsed else "No check-in"
    if isinstance(policy, BuildBinary):
        return "Complete" if entry is not None and entry.is_completed else "Not Complete"
    progress = entry.progress if entry is not None else 0.0
    return f"{format_amount(progress)} / {format_amount(goal.goal_target)} {goal.goal_unit.display_name}".strip()


__all__ = [
    "BuildBinary",
    "BuildQuantity",
    "DayOutcome",
    "DisplayStatus",
    "GoalPolicy",
    "QuitAbstinence",
    "QuitLimit",
    "day_outcome",
    "describe_progress",
    "display_status",
    "format_amount",
    "is_day_successful",
    "policy_for",
    "progress_fraction",
    "validate_goal",
]
