"""Tests for sample history seeding and application wiring."""

from __future__ import annotations

import random
from datetime import timedelta

from willpowr.context import create_app_context
from willpowr.models.habit import EntrySource
from willpowr.services.seed import DEFAULT_SEED_PRESETS, ensure_preset_habits, generate_sample_history, seed_demo
from willpowr.services.sync import SyncIdle


class TestSeed:
    def test_presets_created_once(self, service):
        first = ensure_preset_habits(service)
        second = ensure_preset_habits(service)
        assert [h.name for h in first] == list(DEFAULT_SEED_PRESETS)
        assert [h.id for h in first] == [h.id for h in second]

    def test_history_leaves_today_untouched(self, service, repo, today):
        habits = ensure_preset_habits(service, ["Walk Daily"])
        written = generate_sample_history(service, 7, habits=habits, rng=random.Random(1))
        assert written == 7

        walk = habits[0]
        entries = repo.get_entries_for_habit(walk.id, today - timedelta(days=30), today)
        assert len(entries) == 7
        assert all(e.day < today for e in entries)
        assert all(e.source is EntrySource.MANUAL for e in entries)
        assert all(2400 <= e.progress <= 12000 for e in entries)

    def test_seeded_streaks_match_history(self, service):
        summary = seed_demo(service, 10, rng=random.Random(3))
        assert summary.habits_created == 5
        assert summary.entries_written == 50
        for habit in service.list_habits():
            assert service.verify_streak(habit.id)


class TestAppContext:
    def test_wiring_and_shutdown(self, config):
        app = create_app_context(config)
        try:
            assert app.dev_mode is True
            assert not app.scheduler.running
            assert isinstance(app.coordinator.status, SyncIdle)
            habit = app.habits.create_habit("Stretch")
            app.habits.complete(habit.id)
            assert app.snapshots.snapshot(habit.id).completed_today
        finally:
            app.shutdown()
        assert app.coordinator.request_sync() is None

    def test_scheduler_started_on_request(self, config):
        app = create_app_context(config, start_scheduler=True)
        try:
            assert app.scheduler.running
        finally:
            app.shutdown()
        assert not app.scheduler.running
