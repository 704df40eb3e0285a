"""Decide whether a habit's progress comes from manual input or the automatic source."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import ManualInputDisabledError
from ..models.habit import EntrySource, Habit, TrackingMode
from .health import AuthorizationStatus, AutomaticSource

logger = logging.getLogger("willpowr.tracking")


class ProgressSource(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    FALLBACK = "fallback"  # automatic habit, source unavailable: manual input allowed


@dataclass(frozen=True)
class TrackingDecision:
    source: ProgressSource
    manual_input_allowed: bool
    reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source is ProgressSource.FALLBACK


class TrackingModeResolver:
    """Resolves the authoritative progress source for a habit.

    Source availability is surfaced as a logged status change, once per
    transition, rather than as an error on every read.
    """

    def __init__(self, source: AutomaticSource) -> None:
        self.source = source
        self._lock = threading.Lock()
        self._last_available: Optional[bool] = None
        self._last_reason: Optional[str] = None

    def source_available(self) -> tuple[bool, Optional[str]]:
        try:
            status = AuthorizationStatus(self.source.authorization_status())
        except Exception as exc:  # the source is an external collaborator
            available, reason = False, f"authorization check failed: {exc}"
        else:
            available = status is AuthorizationStatus.AUTHORIZED
            reason = None if available else f"source {status.value}"
        self._note_transition(available, reason)
        return available, reason

    def _note_transition(self, available: bool, reason: Optional[str]) -> None:
        with self._lock:
            changed = available != self._last_available
            self._last_available = available
            self._last_reason = reason
        if not changed:
            return
        if available:
            logger.info("Automatic tracking source available")
        else:
            logger.warning(
                "Automatic tracking source unavailable; automatic habits fall back to manual input",
                extra={"reason": reason},
            )

    @property
    def last_known_available(self) -> Optional[bool]:
        with self._lock:
            return self._last_available

    def resolve(self, habit: Habit) -> TrackingDecision:
        if habit.tracking_mode != TrackingMode.AUTOMATIC:
            return TrackingDecision(ProgressSource.MANUAL, manual_input_allowed=True)
        available, reason = self.source_available()
        if available:
            return TrackingDecision(ProgressSource.AUTOMATIC, manual_input_allowed=False)
        return TrackingDecision(ProgressSource.FALLBACK, manual_input_allowed=True, reason=reason)

    def manual_entry_source(self, habit: Habit, *, force: bool = False) -> EntrySource:
        """Attribution for a manual write, or raise if manual input is disabled."""

        decision = self.resolve(habit)
        if decision.source is ProgressSource.MANUAL:
            return EntrySource.MANUAL
        if decision.source is ProgressSource.AUTOMATIC and not force:
            raise ManualInputDisabledError(
                f"'{habit.name}' is tracked automatically; pass force=True to override today's value"
            )
        return EntrySource.FALLBACK


__all__ = ["ProgressSource", "TrackingDecision", "TrackingModeResolver"]
