"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from .config import BaseConfig
from .infra.database import (
    SessionFactory,
    create_db_engine,
    create_reader_engine,
    create_session_factory,
    init_database,
)
from .infra.repositories import SQLModelHabitRepository
from .logging_config import get_logger
from .scheduler import SyncScheduler, create_scheduler
from .services.day_calendar import DayCalendar
from .services.habits import HabitService
from .services.health import AutomaticSource, NoAutomaticSource
from .services.snapshots import SnapshotProvider
from .services.sync import SyncCoordinator
from .services.tracking import TrackingModeResolver

logger = get_logger("context")


@dataclass
class AppContext:
    """Everything the primary process wires together, with one owner for teardown."""

    # Configuration
    config: BaseConfig

    # Store
    engine: Engine
    session_factory: SessionFactory
    habit_repo: SQLModelHabitRepository

    # Services
    calendar: DayCalendar
    tracking: TrackingModeResolver
    habits: HabitService
    snapshots: SnapshotProvider
    coordinator: SyncCoordinator
    scheduler: SyncScheduler

    dev_mode: bool = False

    def shutdown(self) -> None:
        """Stop timers, finish the in-flight cycle, release connections."""

        self.scheduler.stop()
        self.coordinator.close()
        self.engine.dispose()
        logger.info("Application context shut down")


def create_app_context(
    config: Optional[BaseConfig] = None,
    *,
    source: Optional[AutomaticSource] = None,
    calendar: Optional[DayCalendar] = None,
    start_scheduler: bool = False,
) -> AppContext:
    """Create and initialize the writer-side application context."""

    if config is None:
        config = BaseConfig()

    # Create database engine and schema
    engine = create_db_engine(config)
    init_database(engine)
    session_factory = create_session_factory(engine)

    calendar = calendar or DayCalendar(config.timezone())
    source = source or NoAutomaticSource()

    habit_repo = SQLModelHabitRepository(session_factory)
    tracking = TrackingModeResolver(source)
    habits = HabitService(habit_repo, calendar, tracking)
    coordinator = SyncCoordinator(
        habits,
        source,
        tracking,
        calendar,
        max_workers=config.SYNC_MAX_WORKERS,
        fetch_timeout=config.SYNC_FETCH_TIMEOUT_SECONDS,
        min_gap_seconds=config.SYNC_MIN_GAP_SECONDS,
    )
    snapshots = SnapshotProvider(
        session_factory,
        calendar,
        default_days=config.SNAPSHOT_DEFAULT_DAYS,
        max_days=config.SNAPSHOT_MAX_DAYS,
        status_supplier=lambda: coordinator.status,
    )
    scheduler = create_scheduler(
        coordinator,
        interval_seconds=config.SYNC_INTERVAL_SECONDS,
        timezone=calendar.tz,
        auto_start=start_scheduler,
    )

    return AppContext(
        config=config,
        engine=engine,
        session_factory=session_factory,
        habit_repo=habit_repo,
        calendar=calendar,
        tracking=tracking,
        habits=habits,
        snapshots=snapshots,
        coordinator=coordinator,
        scheduler=scheduler,
        dev_mode=config.DEV_MODE,
    )


def create_widget_provider(
    config: Optional[BaseConfig] = None, *, calendar: Optional[DayCalendar] = None
) -> SnapshotProvider:
    """Snapshot provider for the widget process: read-only engine, no writer services."""

    if config is None:
        config = BaseConfig()
    engine = create_reader_engine(config)
    return SnapshotProvider(
        create_session_factory(engine),
        calendar or DayCalendar(config.timezone()),
        default_days=config.SNAPSHOT_DEFAULT_DAYS,
        max_days=config.SNAPSHOT_MAX_DAYS,
    )


__all__ = ["AppContext", "create_app_context", "create_widget_provider"]
