"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from datetime import tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from tzlocal import get_localzone_name

from .errors import ConfigurationError

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class BaseConfig:
    """Base configuration shared by the app process and the widget reader."""

    APP_NAME = "WillPowr"
    DB_FILENAME = "willpowr.db"
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on", "busy_timeout": "5000"}
    READER_PRAGMAS = {"busy_timeout": "2000"}

    def __init__(self) -> None:
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("WILLPOWR_DEV_MODE", default=True)
        self.DATABASE_URL = os.getenv("WILLPOWR_DATABASE_URL", self._build_sqlite_url())
        self.TIMEZONE = os.getenv("WILLPOWR_TIMEZONE") or None

        self.SYNC_INTERVAL_SECONDS = _env_int("WILLPOWR_SYNC_INTERVAL_SECONDS", 120)
        self.SYNC_MIN_GAP_SECONDS = _env_int("WILLPOWR_SYNC_MIN_GAP_SECONDS", 30)
        self.SYNC_MAX_WORKERS = _env_int("WILLPOWR_SYNC_MAX_WORKERS", 4)
        self.SYNC_FETCH_TIMEOUT_SECONDS = _env_int("WILLPOWR_SYNC_FETCH_TIMEOUT_SECONDS", 20)

        self.SNAPSHOT_DEFAULT_DAYS = _env_int("WILLPOWR_SNAPSHOT_DEFAULT_DAYS", 90)
        self.SNAPSHOT_MAX_DAYS = _env_int("WILLPOWR_SNAPSHOT_MAX_DAYS", 366)
        if self.SNAPSHOT_DEFAULT_DAYS > self.SNAPSHOT_MAX_DAYS:
            raise ValueError("WILLPOWR_SNAPSHOT_DEFAULT_DAYS cannot exceed WILLPOWR_SNAPSHOT_MAX_DAYS.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the shared SQLite file and logs live."""

        data_root = os.getenv("WILLPOWR_DATA_DIR", "instance")
        base_path = Path(data_root).expanduser()
        try:
            path = base_path.resolve()
            path.mkdir(parents=True, exist_ok=True)
            return path
        except PermissionError:
            # Protected install locations fall back to user-local storage.
            fallback_path = Path.home() / ".local" / "share" / self.APP_NAME.lower()
            fallback_path.mkdir(parents=True, exist_ok=True)
            return fallback_path.resolve()

    def _build_sqlite_url(self) -> str:
        db_path = self.DATA_DIR / self.DB_FILENAME
        return f"sqlite:///{db_path}"

    def database_path(self) -> Path | None:
        """Return the filesystem path of the SQLite store, if the URL points at one."""

        prefix = "sqlite:///"
        if not self.DATABASE_URL.startswith(prefix):
            return None
        raw = self.DATABASE_URL[len(prefix):].split("?", 1)[0]
        if not raw or raw == ":memory:":
            return None
        return Path(raw)

    def reader_database_url(self) -> str:
        """URL for a read-only connection to the same store (widget process)."""

        path = self.database_path()
        if path is None:
            return self.DATABASE_URL
        return f"sqlite:///file:{path.as_posix()}?mode=ro&uri=true"

    def timezone(self) -> tzinfo:
        """The single calendar zone used to build day keys in every process.

        Falls back to the host's IANA zone so that day boundaries follow its
        daylight-saving rules rather than today's fixed offset.
        """

        try:
            name = self.TIMEZONE or get_localzone_name()
        except LookupError as exc:
            raise ConfigurationError(f"Cannot determine the local time zone; set WILLPOWR_TIMEZONE ({exc}).") from exc
        if not name:
            raise ConfigurationError("Cannot determine the local time zone; set WILLPOWR_TIMEZONE.")
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown time zone {name!r}.") from exc

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for the writer engine."""

        # Sync fan-out and the scheduler thread share one engine.
        connect_args: dict[str, Any] = {"check_same_thread": False}
        return {"connect_args": connect_args}

    def reader_engine_options(self) -> dict[str, Any]:
        # The "uri=true" query flag in reader_database_url() enables SQLite URI filenames.
        return {"connect_args": {"check_same_thread": False}}

