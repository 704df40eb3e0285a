"""Contract for the external automatic-tracking source (device health data)."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Protocol, runtime_checkable

from ..errors import SourceUnavailableError, UnsupportedMetricError
from ..models.habit import GoalUnit, Habit


class AuthorizationStatus(str, Enum):
    AUTHORIZED = "authorized"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class HealthMetric(str, Enum):
    STEPS = "steps"
    EXERCISE_MINUTES = "exercise_minutes"
    MINDFUL_MINUTES = "mindful_minutes"


@runtime_checkable
class AutomaticSource(Protocol):
    """What the engine needs from a health-data provider.

    ``daily_aggregate`` returns the amount accumulated on ``day`` (local
    midnight to midnight) and raises ``SourceUnavailableError`` (or any other
    exception) on access errors.
    """

    def authorization_status(self) -> AuthorizationStatus: ...

    def daily_aggregate(self, metric: HealthMetric, day: date) -> float: ...


class NoAutomaticSource:
    """Source used on hosts without health data; every habit falls back to manual."""

    def authorization_status(self) -> AuthorizationStatus:
        return AuthorizationStatus.UNDETERMINED

    def daily_aggregate(self, metric: HealthMetric, day: date) -> float:
        raise SourceUnavailableError("No automatic data source on this host")


_EXERCISE_WORDS = ("exercise", "workout")
_MINDFUL_WORDS = ("meditat",)


def metric_for(habit: Habit) -> HealthMetric:
    """Pick the health metric that measures a habit's goal unit."""

    if habit.goal_unit == GoalUnit.STEPS:
        return HealthMetric.STEPS
    if habit.goal_unit == GoalUnit.MINUTES:
        name = habit.name.lower()
        if any(word in name for word in _MINDFUL_WORDS) and not any(w in name for w in _EXERCISE_WORDS):
            return HealthMetric.MINDFUL_MINUTES
        return HealthMetric.EXERCISE_MINUTES
    raise UnsupportedMetricError(
        f"'{habit.goal_unit.long_display_name or habit.goal_unit.value}' goals cannot be tracked automatically"
    )


def supports_automatic(habit: Habit) -> bool:
    try:
        metric_for(habit)
    except UnsupportedMetricError:
        return False
    return True


__all__ = [
    "AuthorizationStatus",
    "AutomaticSource",
    "HealthMetric",
    "NoAutomaticSource",
    "metric_for",
    "supports_automatic",
]
