"""Tests for goal evaluation across the four habit variants."""

from __future__ import annotations

from datetime import date

import pytest

from willpowr.errors import ConfigurationError
from willpowr.models.habit import GoalSnapshot, GoalUnit, HabitEntry, HabitKind, QuitVariant
from willpowr.services.goals import (
    BuildBinary,
    BuildQuantity,
    DayOutcome,
    DisplayStatus,
    QuitAbstinence,
    QuitLimit,
    day_outcome,
    describe_progress,
    display_status,
    is_day_successful,
    policy_for,
    progress_fraction,
    validate_goal,
)

DAY = date(2024, 3, 15)

BINARY = GoalSnapshot(HabitKind.BUILD, QuitVariant.ABSTINENCE, GoalUnit.NONE, 1.0)
STEPS = GoalSnapshot(HabitKind.BUILD, QuitVariant.ABSTINENCE, GoalUnit.STEPS, 8000)
ABSTAIN = GoalSnapshot(HabitKind.QUIT, QuitVariant.ABSTINENCE, GoalUnit.NONE, 0)
LIMIT = GoalSnapshot(HabitKind.QUIT, QuitVariant.LIMIT, GoalUnit.HOURS, 2.0)


def make_entry(goal: GoalSnapshot, *, progress=0.0, completed=False, relapsed=False) -> HabitEntry:
    entry = HabitEntry(habit_id="h", day=DAY, progress=progress, is_completed=completed, relapsed=relapsed)
    entry.capture_goal(goal)
    return entry


class TestPolicyFor:
    def test_classification(self):
        assert isinstance(policy_for(BINARY), BuildBinary)
        assert policy_for(STEPS) == BuildQuantity(8000)
        assert isinstance(policy_for(ABSTAIN), QuitAbstinence)
        assert policy_for(LIMIT) == QuitLimit(2.0)

    def test_zero_build_target_degrades_to_binary(self):
        goal = GoalSnapshot(HabitKind.BUILD, QuitVariant.ABSTINENCE, GoalUnit.MINUTES, 0)
        assert isinstance(policy_for(goal), BuildBinary)


class TestIsDaySuccessful:
    """Success per variant; no entry is never a success."""

    def test_binary(self):
        assert is_day_successful(make_entry(BINARY, completed=True))
        assert not is_day_successful(make_entry(BINARY))

    def test_quantity_uses_progress_not_flag(self):
        assert is_day_successful(make_entry(STEPS, progress=8000))
        assert not is_day_successful(make_entry(STEPS, progress=7999, completed=True))

    @pytest.mark.parametrize("progress", [0.0, 1.0, 1.99, 2.0])
    def test_limit_within_ceiling(self, progress):
        assert is_day_successful(make_entry(LIMIT, progress=progress))

    @pytest.mark.parametrize("progress", [2.01, 2.5, 100.0])
    def test_limit_over_ceiling(self, progress):
        assert not is_day_successful(make_entry(LIMIT, progress=progress))

    def test_limit_relapse_fails(self):
        assert not is_day_successful(make_entry(LIMIT, progress=0.5, relapsed=True))

    def test_misconfigured_limit_always_fails(self):
        broken = GoalSnapshot(HabitKind.QUIT, QuitVariant.LIMIT, GoalUnit.HOURS, 0)
        assert not is_day_successful(make_entry(broken, progress=0))
        assert progress_fraction(make_entry(broken)) == 1.0

    def test_abstinence_needs_explicit_check_in(self):
        assert is_day_successful(make_entry(ABSTAIN, completed=True))
        assert not is_day_successful(make_entry(ABSTAIN))
        assert not is_day_successful(make_entry(ABSTAIN, completed=True, relapsed=True))

    def test_missing_entry_is_never_success(self):
        assert not is_day_successful(None)


class TestDayOutcome:
    """Today stays pending until something decisive happens."""

    def test_no_entry(self):
        assert day_outcome(None, is_today=True) is DayOutcome.PENDING
        assert day_outcome(None, is_today=False) is DayOutcome.FAILURE

    def test_partial_build_progress(self):
        entry = make_entry(STEPS, progress=4000)
        assert day_outcome(entry, is_today=True) is DayOutcome.PENDING
        assert day_outcome(entry, is_today=False) is DayOutcome.FAILURE

    def test_abstinence_no_check_in_vs_relapse(self):
        assert day_outcome(make_entry(ABSTAIN), is_today=True) is DayOutcome.PENDING
        assert day_outcome(make_entry(ABSTAIN, relapsed=True), is_today=True) is DayOutcome.FAILURE

    def test_exceeded_limit_is_final_today(self):
        assert day_outcome(make_entry(LIMIT, progress=3), is_today=True) is DayOutcome.FAILURE

    def test_success(self):
        assert day_outcome(make_entry(BINARY, completed=True), is_today=False) is DayOutcome.SUCCESS


class TestFractionAndDisplay:
    def test_fraction_is_clamped(self):
        assert progress_fraction(make_entry(STEPS, progress=12000)) == 1.0
        assert progress_fraction(make_entry(STEPS, progress=2000)) == pytest.approx(0.25)
        assert progress_fraction(None) == 0.0

    def test_limit_fraction_is_share_of_allowance(self):
        assert progress_fraction(make_entry(LIMIT, progress=1.0)) == pytest.approx(0.5)

    def test_display_status(self):
        assert display_status(make_entry(LIMIT, progress=1)) is DisplayStatus.MET
        assert display_status(make_entry(LIMIT, progress=3)) is DisplayStatus.OVER_LIMIT
        assert display_status(make_entry(STEPS, progress=3)) is DisplayStatus.INCOMPLETE
        assert display_status(None) is DisplayStatus.INCOMPLETE

    def test_describe_progress(self):
        assert describe_progress(make_entry(LIMIT, progress=1.5), LIMIT) == "1.5 / 2 hrs"
        assert describe_progress(None, STEPS) == "0 / 8000 steps"
        assert describe_progress(make_entry(ABSTAIN, completed=True), ABSTAIN) == "Stayed Clean"
        assert describe_progress(make_entry(ABSTAIN, relapsed=True), ABSTAIN) == "Relapsed"
        assert describe_progress(None, ABSTAIN) == "No check-in"
        assert describe_progress(make_entry(BINARY, completed=True), BINARY) == "Complete"


class TestValidateGoal:
    def test_limit_needs_positive_target(self):
        with pytest.raises(ConfigurationError):
            validate_goal(GoalSnapshot(HabitKind.QUIT, QuitVariant.LIMIT, GoalUnit.HOURS, 0))

    def test_limit_needs_unit(self):
        with pytest.raises(ConfigurationError):
            validate_goal(GoalSnapshot(HabitKind.QUIT, QuitVariant.LIMIT, GoalUnit.NONE, 2))

    def test_negative_target_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_goal(GoalSnapshot(HabitKind.BUILD, QuitVariant.ABSTINENCE, GoalUnit.STEPS, -1))

    @pytest.mark.parametrize("goal", [BINARY, STEPS, ABSTAIN, LIMIT])
    def test_valid_goals_pass(self, goal):
        validate_goal(goal)
