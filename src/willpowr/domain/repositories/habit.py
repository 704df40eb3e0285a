"""Habit repository protocol."""

from __future__ import annotations

from datetime import date
from typing import ContextManager, Optional, Protocol

from sqlmodel import Session

from ...models.habit import EntrySource, Habit, HabitEntry


class HabitRepository(Protocol):
    """Repository for habits and their per-day entries."""

    def habit_lock(self, habit_id: str) -> ContextManager[None]:
        """Serialize writers touching the same habit."""
        ...

    def atomic(self, habit_id: str) -> ContextManager[Session]:
        """Locked session whose changes commit together on exit."""
        ...

    # Session-level loaders, used inside ``atomic``
    def load_habit(self, session: Session, habit_id: str) -> Optional[Habit]:
        ...

    def load_entry(self, session: Session, habit_id: str, day: date) -> Optional[HabitEntry]:
        ...

    def load_entries(
        self,
        session: Session,
        habit_id: str,
        *,
        start: Optional[date] = None,
        until: Optional[date] = None,
    ) -> list[HabitEntry]:
        """Entries oldest first within the inclusive ``start``..``until`` range."""
        ...

    def get_by_id(self, habit_id: str) -> Optional[Habit]:
        """Retrieve a habit by ID."""
        ...

    def get_by_name(self, name: str) -> Optional[Habit]:
        """Retrieve a habit by name, ignoring case."""
        ...

    def list_all(self) -> list[Habit]:
        """List all habits, newest first."""
        ...

    def list_automatic(self) -> list[Habit]:
        """List habits whose progress comes from the automatic source."""
        ...

    def create(self, habit: Habit) -> Habit:
        """Create a new habit."""
        ...

    def update(self, habit: Habit) -> Habit:
        """Update an existing habit."""
        ...

    def delete(self, habit_id: str) -> bool:
        """Delete a habit and its entries."""
        ...

    # Habit entry operations
    def get_entry(self, habit_id: str, day: date) -> Optional[HabitEntry]:
        """Get the entry for one day."""
        ...

    def get_entries_for_habit(self, habit_id: str, start_date: date, end_date: date) -> list[HabitEntry]:
        """Get entries for a habit within an inclusive date range, oldest first."""
        ...

    def get_entries_for_day(self, day: date) -> list[HabitEntry]:
        """Entries of every habit for one day."""
        ...

    def latest_entry_day(self, source: Optional[EntrySource] = None) -> Optional[date]:
        """Most recent day with an entry, optionally only entries from one source."""
        ...

    def upsert_entry(self, entry: HabitEntry) -> HabitEntry:
        """Insert the entry or update the existing one for the same (habit, day)."""
        ...

    def purge_entries(self, session: Session, habit_id: str) -> int:
        """Stage deletion of every entry of a habit inside an ``atomic`` session."""
        ...

    def compact_entries(self) -> dict[str, int]:
        """Remove orphaned and duplicate entry rows; counts per habit id."""
        ...
