"""Exception types raised by the habit engine."""

from __future__ import annotations


class WillpowrError(Exception):
    """Base class for domain errors."""


class ConfigurationError(WillpowrError, ValueError):
    """A habit's configuration cannot be evaluated (caught at validation time)."""


class UnsupportedMetricError(ConfigurationError):
    """No automatic metric exists for the habit's goal unit."""


class HabitNotFoundError(WillpowrError, LookupError):
    """A write intent referenced a habit id that does not exist."""

    def __init__(self, habit_id: str) -> None:
        super().__init__(f"Habit not found: {habit_id}")
        self.habit_id = habit_id


class InvalidActionError(WillpowrError, ValueError):
    """The intent does not apply to this habit."""


class ManualInputDisabledError(InvalidActionError):
    """Manual write on an automatic habit whose source is available."""


class SourceUnavailableError(WillpowrError):
    """The automatic data source is not authorized or failed to answer."""


__all__ = [
    "ConfigurationError",
    "HabitNotFoundError",
    "InvalidActionError",
    "ManualInputDisabledError",
    "SourceUnavailableError",
    "UnsupportedMetricError",
    "WillpowrError",
]
