"""Tests for the background sync coordinator."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from willpowr.errors import SourceUnavailableError
from willpowr.models.habit import EntrySource, GoalUnit, TrackingMode
from willpowr.services.habits import ReconcileOutcome
from willpowr.services.health import AuthorizationStatus, HealthMetric
from willpowr.services.sync import (
    SyncCompleted,
    SyncCoordinator,
    SyncFailed,
    SyncIdle,
    SyncInProgress,
    SyncTrigger,
)


@pytest.fixture
def auto_habits(habit_factory):
    """Three automatic habits, one per health metric."""

    walk = habit_factory("Walk", goal_target=8000, goal_unit=GoalUnit.STEPS, tracking_mode=TrackingMode.AUTOMATIC)
    exercise = habit_factory(
        "Exercise", goal_target=30, goal_unit=GoalUnit.MINUTES, tracking_mode=TrackingMode.AUTOMATIC
    )
    meditate = habit_factory(
        "Meditate", goal_target=10, goal_unit=GoalUnit.MINUTES, tracking_mode=TrackingMode.AUTOMATIC
    )
    return walk, exercise, meditate


class TestCycle:
    """One cycle reconciles every automatic habit."""

    def test_partial_failure_still_completes(self, coordinator, source, repo, auto_habits, today):
        walk, exercise, meditate = auto_habits
        source.values[(HealthMetric.STEPS, today)] = 9000
        source.values[(HealthMetric.EXERCISE_MINUTES, today)] = 12
        source.errors[HealthMetric.MINDFUL_MINUTES] = SourceUnavailableError("mindful data locked")

        report = coordinator.request_sync()

        assert repo.get_entry(walk.id, today).progress == 9000
        assert repo.get_entry(exercise.id, today).progress == 12
        assert repo.get_entry(meditate.id, today) is None
        status = coordinator.status
        assert isinstance(status, SyncCompleted)
        assert status.partial
        assert [f.habit_id for f in coordinator.last_failures] == [meditate.id]
        assert "mindful data locked" in coordinator.last_failures[0].error
        assert report.updated == 2
        assert coordinator.last_sync_time is not None

    def test_streaks_recomputed_after_cycle(self, coordinator, source, service, auto_habits, today):
        walk = auto_habits[0]
        source.values[(HealthMetric.STEPS, today)] = 8000
        coordinator.request_sync()
        assert service.get_habit(walk.id).streak == 1

    def test_repeat_cycle_is_idempotent(self, coordinator, source, repo, auto_habits, today):
        walk = auto_habits[0]
        source.values[(HealthMetric.STEPS, today)] = 5000
        coordinator.refresh_now()
        report = coordinator.refresh_now()
        assert report.updated == 0
        assert report.unchanged == 3
        assert len(repo.get_entries_for_habit(walk.id, today, today)) == 1

    def test_manual_entry_overwritten_by_source(self, coordinator, source, service, repo, habit_factory, today):
        walk = habit_factory("Walk", goal_target=8000, goal_unit=GoalUnit.STEPS)
        service.add_progress(walk.id, 1000)
        service.update_habit(walk.id, tracking_mode=TrackingMode.AUTOMATIC)
        source.values[(HealthMetric.STEPS, today)] = 6000

        report = coordinator.request_sync()

        entry = repo.get_entry(walk.id, today)
        assert entry.progress == 6000
        assert entry.source is EntrySource.AUTOMATIC
        assert report.outcomes[(walk.id, today)] is ReconcileOutcome.UPDATED

    def test_all_failed(self, coordinator, source, auto_habits):
        for metric in HealthMetric:
            source.errors[metric] = SourceUnavailableError("offline")

        coordinator.request_sync()

        status = coordinator.take_status()
        assert isinstance(status, SyncFailed)
        assert status.error == "offline"
        assert isinstance(coordinator.take_status(), SyncIdle)
        assert coordinator.last_sync_time is None
        assert len(coordinator.last_failures) == 3

    def test_non_finite_value_is_a_failure(self, coordinator, source, repo, auto_habits, today):
        walk = auto_habits[0]
        source.values[(HealthMetric.STEPS, today)] = float("nan")
        coordinator.request_sync()
        assert repo.get_entry(walk.id, today) is None
        assert [f.habit_id for f in coordinator.last_failures] == [walk.id]

    def test_unavailable_source_skips_fetches(self, coordinator, source, auto_habits):
        source.status = AuthorizationStatus.DENIED
        report = coordinator.request_sync()
        assert source.calls == []
        assert report.skipped_reason
        assert isinstance(coordinator.status, SyncCompleted)

    def test_no_automatic_habits(self, coordinator, habit_factory, source):
        habit_factory("Journal")
        report = coordinator.request_sync()
        assert report.habit_count == 0
        assert source.calls == []


class TestFallbackHandOff:
    """A day logged manually while the source was down stays manual."""

    def test_source_returns_next_day(self, coordinator, source, service, repo, calendar, auto_habits, today):
        walk = auto_habits[0]
        source.status = AuthorizationStatus.DENIED
        service.complete(walk.id)
        coordinator.request_sync()

        fallback = repo.get_entry(walk.id, today)
        assert fallback.source is EntrySource.FALLBACK
        assert fallback.is_completed

        source.status = AuthorizationStatus.AUTHORIZED
        tomorrow = calendar.advance(1)
        source.values[(HealthMetric.STEPS, today)] = 100
        source.values[(HealthMetric.STEPS, tomorrow)] = 8200

        report = coordinator.request_sync()

        assert report.days == (today, tomorrow)
        assert report.outcomes[(walk.id, today)] is ReconcileOutcome.SKIPPED_FALLBACK
        untouched = repo.get_entry(walk.id, today)
        assert untouched.progress == fallback.progress
        assert untouched.source is EntrySource.FALLBACK
        fresh = repo.get_entry(walk.id, tomorrow)
        assert fresh.source is EntrySource.AUTOMATIC
        assert service.get_habit(walk.id).streak == 2


class TestReset:
    def test_reset_survives_later_cycles(self, coordinator, source, service, auto_habits, today):
        walk = auto_habits[0]
        source.values[(HealthMetric.STEPS, today)] = 9000
        coordinator.request_sync()
        assert service.get_habit(walk.id).streak == 1

        service.reset_streak(walk.id)
        source.values[(HealthMetric.STEPS, today)] = 9500
        report = coordinator.request_sync()

        assert report.outcomes[(walk.id, today)] is ReconcileOutcome.UPDATED
        assert service.get_habit(walk.id).streak == 0
        assert service.verify_streak(walk.id)


class TestRequests:
    def test_timer_requests_are_throttled(self, coordinator, auto_habits):
        assert coordinator.request_sync(SyncTrigger.TIMER) is not None
        assert coordinator.request_sync(SyncTrigger.TIMER) is None
        assert coordinator.request_sync(SyncTrigger.TIMER, force=True) is not None
        assert coordinator.request_sync(SyncTrigger.USER) is not None

    def test_rollover_trigger_finalizes_yesterday(self, coordinator, auto_habits, today):
        report = coordinator.request_sync(SyncTrigger.DAY_ROLLOVER)
        assert report.days == (today - timedelta(days=1), today)

    def test_first_cycle_after_restart_finalizes_yesterday(
        self, service, source, tracking, calendar, repo, auto_habits, today
    ):
        walk = auto_habits[0]
        yesterday = today - timedelta(days=1)
        # An earlier process last reconciled yesterday, mid-day.
        service.apply_sample(walk.id, yesterday, 4000)
        source.values[(HealthMetric.STEPS, yesterday)] = 8100

        restarted = SyncCoordinator(service, source, tracking, calendar, fetch_timeout=5)
        try:
            report = restarted.request_sync()
            assert report.days == (yesterday, today)
            assert report.outcomes[(walk.id, yesterday)] is ReconcileOutcome.UPDATED
            assert repo.get_entry(walk.id, yesterday).progress == 8100
            assert restarted.request_sync().days == (today,)
        finally:
            restarted.close()

    def test_first_cycle_on_fresh_store_covers_today(self, coordinator, auto_habits, today):
        assert coordinator.request_sync().days == (today,)

    def test_request_during_cycle_is_queued(self, coordinator, source, habit_factory):
        habit_factory("Walk", goal_target=8000, goal_unit=GoalUnit.STEPS, tracking_mode=TrackingMode.AUTOMATIC)
        source.gate = threading.Event()
        results = []
        worker = threading.Thread(target=lambda: results.append(coordinator.request_sync()))
        worker.start()
        assert source.started.wait(timeout=5)
        assert coordinator.is_running
        assert isinstance(coordinator.status, SyncInProgress)

        assert coordinator.request_sync(SyncTrigger.USER) is None
        assert coordinator.has_pending

        source.gate.set()
        worker.join(timeout=10)
        assert not worker.is_alive()
        assert len(source.calls) == 2
        assert not coordinator.has_pending
        assert not coordinator.is_running
        assert results[0] is not None

    def test_listeners_see_transitions(self, coordinator, auto_habits):
        seen = []
        coordinator.add_listener(seen.append)
        coordinator.request_sync()
        coordinator.remove_listener(seen.append)
        coordinator.request_sync()
        assert [type(s) for s in seen] == [SyncInProgress, SyncCompleted]

    def test_failing_listener_does_not_break_cycle(self, coordinator, auto_habits):
        def broken(status):
            raise RuntimeError("ui gone")

        coordinator.add_listener(broken)
        coordinator.request_sync()
        assert isinstance(coordinator.status, SyncCompleted)

    def test_closed_coordinator_ignores_requests(self, coordinator, auto_habits):
        coordinator.close()
        assert coordinator.request_sync() is None
        coordinator.close()

    def test_describe(self, coordinator, source, auto_habits):
        assert coordinator.describe() == "Never synced"
        source.errors[HealthMetric.STEPS] = SourceUnavailableError("boom")
        coordinator.request_sync()
        assert coordinator.describe().startswith("Last synced")
        assert coordinator.describe().endswith("(1 failed)")
