"""Tests for tracking-mode resolution and metric selection."""

from __future__ import annotations

import logging
from datetime import date

import pytest

from willpowr.errors import ManualInputDisabledError, SourceUnavailableError, UnsupportedMetricError
from willpowr.models.habit import EntrySource, GoalUnit, Habit, TrackingMode
from willpowr.services.health import (
    AuthorizationStatus,
    AutomaticSource,
    HealthMetric,
    NoAutomaticSource,
    metric_for,
    supports_automatic,
)
from willpowr.services.tracking import ProgressSource, TrackingModeResolver


def make_habit(name="Walk", unit=GoalUnit.STEPS, mode=TrackingMode.AUTOMATIC) -> Habit:
    return Habit(name=name, goal_target=10, goal_unit=unit, tracking_mode=mode)


class ExplodingSource:
    def authorization_status(self):
        raise RuntimeError("health store offline")

    def daily_aggregate(self, metric, day):
        raise RuntimeError("health store offline")


class TestResolve:
    def test_manual_habit_never_consults_source(self, source):
        source.status = AuthorizationStatus.AUTHORIZED
        decision = TrackingModeResolver(source).resolve(make_habit(mode=TrackingMode.MANUAL))
        assert decision.source is ProgressSource.MANUAL
        assert decision.manual_input_allowed

    def test_automatic_with_authorized_source(self, tracking):
        decision = tracking.resolve(make_habit())
        assert decision.source is ProgressSource.AUTOMATIC
        assert not decision.manual_input_allowed

    @pytest.mark.parametrize("status", [AuthorizationStatus.DENIED, AuthorizationStatus.UNDETERMINED])
    def test_unavailable_source_falls_back(self, source, tracking, status):
        source.status = status
        decision = tracking.resolve(make_habit())
        assert decision.is_fallback
        assert decision.manual_input_allowed
        assert status.value in decision.reason

    def test_failing_status_check_falls_back(self):
        decision = TrackingModeResolver(ExplodingSource()).resolve(make_habit())
        assert decision.is_fallback
        assert "health store offline" in decision.reason

    def test_availability_change_logged_once(self, source, tracking, caplog):
        source.status = AuthorizationStatus.DENIED
        with caplog.at_level(logging.INFO, logger="willpowr.tracking"):
            for _ in range(3):
                tracking.source_available()
            source.status = AuthorizationStatus.AUTHORIZED
            tracking.source_available()
        unavailable = [r for r in caplog.records if "unavailable" in r.getMessage()]
        available = [r for r in caplog.records if r.getMessage() == "Automatic tracking source available"]
        assert len(unavailable) == 1
        assert len(available) == 1
        assert tracking.last_known_available is True


class TestManualEntrySource:
    def test_manual_habit(self, tracking):
        assert tracking.manual_entry_source(make_habit(mode=TrackingMode.MANUAL)) is EntrySource.MANUAL

    def test_automatic_habit_requires_force(self, tracking):
        with pytest.raises(ManualInputDisabledError):
            tracking.manual_entry_source(make_habit())
        assert tracking.manual_entry_source(make_habit(), force=True) is EntrySource.FALLBACK

    def test_unavailable_source_is_fallback(self, source, tracking):
        source.status = AuthorizationStatus.DENIED
        assert tracking.manual_entry_source(make_habit()) is EntrySource.FALLBACK


class TestMetrics:
    def test_steps(self):
        assert metric_for(make_habit()) is HealthMetric.STEPS

    def test_meditation_minutes_are_mindful(self):
        assert metric_for(make_habit("Meditate", GoalUnit.MINUTES)) is HealthMetric.MINDFUL_MINUTES

    def test_other_minutes_are_exercise(self):
        assert metric_for(make_habit("Read", GoalUnit.MINUTES)) is HealthMetric.EXERCISE_MINUTES
        assert metric_for(make_habit("Meditation workout", GoalUnit.MINUTES)) is HealthMetric.EXERCISE_MINUTES

    def test_unsupported_units(self):
        habit = make_habit("Drink Water", GoalUnit.LITERS)
        assert not supports_automatic(habit)
        with pytest.raises(UnsupportedMetricError):
            metric_for(habit)


class TestNoAutomaticSource:
    def test_never_authorized(self):
        source = NoAutomaticSource()
        assert isinstance(source, AutomaticSource)
        assert source.authorization_status() is AuthorizationStatus.UNDETERMINED
        with pytest.raises(SourceUnavailableError):
            source.daily_aggregate(HealthMetric.STEPS, date(2024, 3, 15))
