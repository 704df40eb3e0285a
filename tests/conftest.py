"""Pytest configuration and shared fixtures for WillPowr tests.

Every test gets its own data directory (and therefore its own SQLite file),
a calendar pinned to a fixed UTC clock, and a scriptable automatic source.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from willpowr.config import BaseConfig
from willpowr.infra.database import bootstrap_database
from willpowr.infra.repositories import SQLModelHabitRepository
from willpowr.logging_config import ROOT_LOGGER
from willpowr.models.habit import GoalUnit, HabitKind, QuitVariant, TrackingMode
from willpowr.services.day_calendar import DayCalendar
from willpowr.services.habits import HabitService
from willpowr.services.health import AuthorizationStatus, HealthMetric
from willpowr.services.sync import SyncCoordinator
from willpowr.services.tracking import TrackingModeResolver

START = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    """Callable clock the tests can move forward."""

    def __init__(self, current: datetime):
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeSource:
    """Scriptable stand-in for the device health source.

    ``values`` maps (metric, day) to the aggregate; ``errors`` maps a metric to
    the exception its fetches raise. When ``gate`` is set, fetches block until
    it is released.
    """

    def __init__(self, status: AuthorizationStatus = AuthorizationStatus.AUTHORIZED):
        self.status = status
        self.values: dict[tuple[HealthMetric, date], float] = {}
        self.errors: dict[HealthMetric, Exception] = {}
        self.calls: list[tuple[HealthMetric, date]] = []
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()
        self._lock = threading.Lock()

    def authorization_status(self) -> AuthorizationStatus:
        return self.status

    def daily_aggregate(self, metric: HealthMetric, day: date) -> float:
        with self._lock:
            self.calls.append((metric, day))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if metric in self.errors:
            raise self.errors[metric]
        return self.values.get((metric, day), 0.0)


# =============================================================================
# Environment and database
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_package_logging():
    """Close handlers a test attached to the package logger."""
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def config(tmp_path, monkeypatch) -> BaseConfig:
    """Configuration pointing at a per-test data directory."""

    monkeypatch.setenv("WILLPOWR_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("WILLPOWR_TIMEZONE", "UTC")
    monkeypatch.delenv("WILLPOWR_DATABASE_URL", raising=False)
    return BaseConfig()


@pytest.fixture
def db(config):
    """Writer engine and session factory over a fresh schema."""

    engine, session_factory = bootstrap_database(config)
    yield engine, session_factory
    engine.dispose()


@pytest.fixture
def session_factory(db):
    return db[1]


@pytest.fixture
def repo(session_factory) -> SQLModelHabitRepository:
    return SQLModelHabitRepository(session_factory)


# =============================================================================
# Domain services
# =============================================================================


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(START)


@pytest.fixture
def calendar(clock) -> DayCalendar:
    return DayCalendar(ZoneInfo("UTC"), clock=clock)


@pytest.fixture
def today(calendar) -> date:
    return calendar.today()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def tracking(source) -> TrackingModeResolver:
    return TrackingModeResolver(source)


@pytest.fixture
def service(repo, calendar, tracking) -> HabitService:
    return HabitService(repo, calendar, tracking)


@pytest.fixture
def coordinator(service, source, tracking, calendar):
    coord = SyncCoordinator(
        service,
        source,
        tracking,
        calendar,
        max_workers=4,
        fetch_timeout=5,
        min_gap_seconds=30,
    )
    yield coord
    coord.close()


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def habit_factory(service):
    """Factory for creating habits through the service (validation included)."""

    counter = {"n": 0}

    def _create_habit(
        name: Optional[str] = None,
        *,
        kind: HabitKind = HabitKind.BUILD,
        goal_target: float = 1.0,
        goal_unit: GoalUnit = GoalUnit.NONE,
        quit_variant: QuitVariant = QuitVariant.ABSTINENCE,
        tracking_mode: TrackingMode = TrackingMode.MANUAL,
    ):
        counter["n"] += 1
        return service.create_habit(
            name if name is not None else f"Habit {counter['n']}",
            kind=kind,
            goal_target=goal_target,
            goal_unit=goal_unit,
            quit_variant=quit_variant,
            tracking_mode=tracking_mode,
        )

    return _create_habit
