"""Canonical day keys in one fixed calendar zone."""

from __future__ import annotations

import logging
import math
import threading
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Callable, Optional

logger = logging.getLogger("willpowr.calendar")

DayKey = date


class DayCalendar:
    """Maps timestamps to calendar days in a single zone.

    The zone is fixed at construction. Writer and reader processes build their
    calendars from the same configuration, so they always agree on day keys.
    A debug override ("time travel") shifts what the calendar considers now.
    """

    def __init__(self, tz: tzinfo, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(tz))
        self._override: Optional[date] = None
        self._lock = threading.Lock()

    # -- now ---------------------------------------------------------------

    def now(self) -> datetime:
        current = self._clock()
        if current.tzinfo is None:
            current = current.replace(tzinfo=self.tz)
        current = current.astimezone(self.tz)
        with self._lock:
            override = self._override
        if override is not None:
            current = datetime.combine(override, current.timetz())
        return current

    def today(self) -> DayKey:
        return self.now().date()

    def yesterday(self) -> DayKey:
        return self.today() - timedelta(days=1)

    # -- debug clock -------------------------------------------------------

    def travel_to(self, day: date) -> None:
        with self._lock:
            self._override = self.day_key(day)
        logger.info("Calendar override set", extra={"day": self._override.isoformat()})

    def advance(self, days: int = 1) -> DayKey:
        target = self.today() + timedelta(days=days)
        self.travel_to(target)
        return target

    def reset_clock(self) -> None:
        with self._lock:
            self._override = None

    @property
    def is_overridden(self) -> bool:
        with self._lock:
            return self._override is not None

    # -- normalization -----------------------------------------------------

    def day_key(self, value: Any) -> DayKey:
        """Return the calendar day containing ``value``.

        Accepts aware or naive datetimes (naive ones are read in this zone),
        dates, and POSIX timestamps. Anything else clamps to today.
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.date()
            return value.astimezone(self.tz).date()
        if isinstance(value, date):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            try:
                return datetime.fromtimestamp(value, self.tz).date()
            except (OverflowError, OSError, ValueError):
                pass
        if value is not None:
            logger.debug("Unusable timestamp clamped to today", extra={"value": repr(value)})
        return self.today()

    def start_of_day(self, value: Any) -> datetime:
        return datetime.combine(self.day_key(value), time.min, tzinfo=self.tz)

    def days_between(self, start: Any, end: Any) -> int:
        """Calendar-day boundaries crossed from ``start`` to ``end`` (negative if reversed)."""

        return (self.day_key(end) - self.day_key(start)).days

    def is_today(self, value: Any) -> bool:
        return self.day_key(value) == self.today()

    def window(self, days: int, *, end: Optional[date] = None) -> tuple[DayKey, DayKey]:
        """Inclusive ``(first, last)`` range of ``days`` days ending at ``end`` (default today)."""

        last = self.day_key(end) if end is not None else self.today()
        return last - timedelta(days=max(days, 1) - 1), last


__all__ = ["DayCalendar", "DayKey"]
