"""Database infrastructure shared by the app (writer) and widget (reader) processes."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, Mapping, Tuple

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from ..config import BaseConfig

SessionFactory = Callable[[], ContextManager[Session]]


def _install_pragmas(engine: Engine, pragmas: Mapping[str, str]) -> None:
    """Apply SQLite PRAGMAs on every new DBAPI connection."""

    if engine.dialect.name != "sqlite" or not pragmas:
        return

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        try:
            for key, value in pragmas.items():
                cursor.execute(f"PRAGMA {key}={value}")
        finally:
            cursor.close()


def create_db_engine(config: BaseConfig) -> Engine:
    """Create the writer engine (WAL journal so readers never block on writes)."""

    engine = create_engine(config.DATABASE_URL, **config.sqlalchemy_engine_options())
    _install_pragmas(engine, config.SQLITE_PRAGMAS)
    return engine


def create_reader_engine(config: BaseConfig) -> Engine:
    """Create a read-only engine over the same store for an out-of-process consumer."""

    engine = create_engine(config.reader_database_url(), **config.reader_engine_options())
    _install_pragmas(engine, config.READER_PRAGMAS)
    return engine


def init_database(engine: Engine) -> None:
    """Initialize database schema."""
    # Import all models to ensure they're registered
    from .. import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Provide a transactional scope around operations."""
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_session_factory(engine: Engine) -> SessionFactory:
    """Create a session factory function."""

    def factory() -> ContextManager[Session]:
        return session_scope(engine)

    return factory


def bootstrap_database(config: BaseConfig | None = None) -> Tuple[Engine, SessionFactory]:
    """Convenience bootstrap for engine + session_factory with schema init.

    Used by app startup and tests to ensure consistent engine options and
    session configuration. Returns (engine, session_factory).
    """

    cfg = config or BaseConfig()
    engine = create_db_engine(cfg)
    init_database(engine)
    return engine, create_session_factory(engine)


__all__ = [
    "SessionFactory",
    "bootstrap_database",
    "create_db_engine",
    "create_reader_engine",
    "create_session_factory",
    "init_database",
    "session_scope",
]
