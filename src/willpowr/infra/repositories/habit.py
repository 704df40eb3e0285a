"""SQLModel implementation of the habit repository."""

from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from ...infra.database import SessionFactory
from ...models.habit import EntrySource, Habit, HabitEntry, TrackingMode, utcnow


class SQLModelHabitRepository:
    """SQLModel-based habit repository implementation.

    Writes to one habit are serialized with a per-habit lock; writes to
    different habits proceed independently.
    """

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory
        self._locks: defaultdict[str, threading.RLock] = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()

    # -- write coordination --------------------------------------------------

    @contextmanager
    def habit_lock(self, habit_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks[habit_id]
        with lock:
            yield

    @contextmanager
    def atomic(self, habit_id: str) -> Iterator[Session]:
        """Locked session for one habit; everything staged in it commits together."""
        with self.habit_lock(habit_id):
            with self.session_factory() as session:
                yield session

    # -- session-level helpers (used inside atomic()) -------------------------

    @staticmethod
    def load_habit(session: Session, habit_id: str) -> Optional[Habit]:
        return session.get(Habit, habit_id)

    @staticmethod
    def load_entry(session: Session, habit_id: str, day: date) -> Optional[HabitEntry]:
        statement = (
            select(HabitEntry)
            .where(HabitEntry.habit_id == habit_id)
            .where(HabitEntry.day == day)
            .order_by(HabitEntry.created_at.desc())  # type: ignore[attr-defined]
        )
        return session.exec(statement).first()

    @staticmethod
    def load_entries(
        session: Session,
        habit_id: str,
        *,
        start: Optional[date] = None,
        until: Optional[date] = None,
    ) -> list[HabitEntry]:
        """Entries for a habit, oldest first, within the inclusive ``start``..``until`` range."""
        statement = select(HabitEntry).where(HabitEntry.habit_id == habit_id)
        if start is not None:
            statement = statement.where(HabitEntry.day >= start)
        if until is not None:
            statement = statement.where(HabitEntry.day <= until)
        statement = statement.order_by(HabitEntry.day, HabitEntry.created_at)  # type: ignore[arg-type]
        return list(session.exec(statement).all())

    # -- habits ---------------------------------------------------------------

    def get_by_id(self, habit_id: str) -> Optional[Habit]:
        """Retrieve a habit by ID."""
        with self.session_factory() as session:
            obj = session.get(Habit, habit_id)
            if obj:
                session.expunge(obj)
            return obj

    def get_by_name(self, name: str) -> Optional[Habit]:
        """Retrieve a habit by name, ignoring case."""
        with self.session_factory() as session:
            statement = select(Habit).where(func.lower(Habit.name) == name.strip().lower())
            obj = session.exec(statement).first()
            if obj:
                session.expunge(obj)
            return obj

    def list_all(self) -> list[Habit]:
        """List all habits, newest first."""
        with self.session_factory() as session:
            statement = select(Habit).order_by(Habit.created_at.desc())  # type: ignore[attr-defined]
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def list_automatic(self) -> list[Habit]:
        with self.session_factory() as session:
            statement = (
                select(Habit)
                .where(Habit.tracking_mode == TrackingMode.AUTOMATIC)
                .order_by(Habit.created_at)  # type: ignore[arg-type]
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def create(self, habit: Habit) -> Habit:
        """Create a new habit."""
        with self.session_factory() as session:
            session.add(habit)
            session.commit()
            session.refresh(habit)
            session.expunge(habit)
            return habit

    def update(self, habit: Habit) -> Habit:
        """Update an existing habit."""
        with self.atomic(habit.id) as session:
            merged = session.merge(habit)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def delete(self, habit_id: str) -> bool:
        """Delete a habit; its entries go in the same transaction."""
        with self.atomic(habit_id) as session:
            habit = session.get(Habit, habit_id)
            if habit is not None:
                for entry in self.load_entries(session, habit_id):
                    session.delete(entry)
                session.flush()
                session.delete(habit)
                session.commit()
        with self._locks_guard:
            self._locks.pop(habit_id, None)
        return habit is not None

    # -- entries --------------------------------------------------------------

    def get_entry(self, habit_id: str, day: date) -> Optional[HabitEntry]:
        """Get a specific habit entry."""
        with self.session_factory() as session:
            obj = self.load_entry(session, habit_id, day)
            if obj:
                session.expunge(obj)
            return obj

    def get_entries_for_habit(self, habit_id: str, start_date: date, end_date: date) -> list[HabitEntry]:
        """Get entries for a habit within a date range."""
        with self.session_factory() as session:
            statement = (
                select(HabitEntry)
                .where(HabitEntry.habit_id == habit_id)
                .where(HabitEntry.day >= start_date)
                .where(HabitEntry.day <= end_date)
                .order_by(HabitEntry.day)  # type: ignore[arg-type]
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def get_entries_for_day(self, day: date) -> list[HabitEntry]:
        """Entries of every habit for one day."""
        with self.session_factory() as session:
            rows = list(session.exec(select(HabitEntry).where(HabitEntry.day == day)).all())
            session.expunge_all()
            return rows

    def latest_entry_day(self, source: Optional[EntrySource] = None) -> Optional[date]:
        """Most recent day with an entry, optionally only entries from ``source``."""
        with self.session_factory() as session:
            statement = select(func.max(HabitEntry.day))
            if source is not None:
                statement = statement.where(HabitEntry.source == source)
            return session.exec(statement).one()

    def upsert_entry(self, entry: HabitEntry) -> HabitEntry:
        """Insert or update the entry for (habit_id, day) in one transaction."""
        with self.atomic(entry.habit_id) as session:
            existing = self.load_entry(session, entry.habit_id, entry.day)
            if existing:
                existing.progress = entry.progress
                existing.is_completed = entry.is_completed
                existing.relapsed = entry.relapsed
                existing.source = entry.source
                existing.note = entry.note if entry.note is not None else existing.note
                existing.capture_goal(entry.goal)
                existing.updated_at = utcnow()
                target = existing
            else:
                target = entry
            session.add(target)
            session.commit()
            session.refresh(target)
            session.expunge(target)
            return target

    @classmethod
    def purge_entries(cls, session: Session, habit_id: str) -> int:
        """Stage deletion of every entry of a habit; returns how many."""
        entries = cls.load_entries(session, habit_id)
        for entry in entries:
            session.delete(entry)
        return len(entries)

    def compact_entries(self) -> dict[str, int]:
        """Delete entries whose habit is gone and extra rows for the same day.

        The most recently created row of a (habit, day) pair is kept.
        Returns the number of removed rows per habit id.
        """
        removed: defaultdict[str, int] = defaultdict(int)
        with self.session_factory() as session:
            habit_ids = set(session.exec(select(Habit.id)).all())
            statement = select(HabitEntry).order_by(
                HabitEntry.habit_id,  # type: ignore[arg-type]
                HabitEntry.day,  # type: ignore[arg-type]
                HabitEntry.created_at.desc(),  # type: ignore[attr-defined]
            )
            seen: set[tuple[str, date]] = set()
            for entry in session.exec(statement).all():
                key = (entry.habit_id, entry.day)
                if entry.habit_id not in habit_ids or key in seen:
                    session.delete(entry)
                    removed[entry.habit_id] += 1
                    continue
                seen.add(key)
            session.commit()
        return dict(removed)


__all__ = ["SQLModelHabitRepository"]
