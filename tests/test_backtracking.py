"""Tests for depth-first backtracking search."""

from __future__ import annotations

from timetabler.data.models import EmptyDomainPolicy
from timetabler.strategies import BacktrackingSolver, FailureKind
from timetabler.strategies.backtracking import BUDGET_EXHAUSTED_REASON


class TestBacktrackingSolver:
    """Tests for complete search with a backtrack budget."""

    def test_schedules_everything(self, small_problem, assert_valid_schedule):
        result = BacktrackingSolver(small_problem).solve()
        assert result.success
        assert len(result.solution) == len(small_problem.sessions)
        assert_valid_schedule(small_problem, result.solution)

    def test_undoes_a_placement_to_fit_everything(self, contested_problem, assert_valid_schedule):
        result = BacktrackingSolver(contested_problem).solve()
        assert result.success
        assert result.metrics["backtracks"] == 1
        starts = {e.session.course_id: e.start for e in result.solution}
        assert starts == {"C1": 600, "C2": 540}
        assert_valid_schedule(contested_problem, result.solution)

    def test_exhausted_search_space(self, overloaded_problem):
        result = BacktrackingSolver(overloaded_problem).solve()
        assert not result.success
        assert result.failure_kind == FailureKind.INFEASIBLE
        assert result.reason.startswith("Search space exhausted")
        assert len(result.unscheduled) == 3

    def test_backtrack_budget(self, overloaded_problem):
        settings = overloaded_problem.settings.model_copy(update={"max_backtracks": 1})
        result = BacktrackingSolver(overloaded_problem, settings).solve()
        assert not result.success
        assert result.failure_kind == FailureKind.BUDGET_EXHAUSTED
        assert result.reason == BUDGET_EXHAUSTED_REASON
        assert result.metrics["backtracks"] == 2

    def test_empty_domain_fails_by_default(self, missing_lab_problem):
        result = BacktrackingSolver(missing_lab_problem).solve()
        assert not result.success
        assert result.failure_kind == FailureKind.INFEASIBLE
        assert [s.id for s in result.unscheduled] == ["CS101-Practical-1"]

    def test_skip_policy_override(self, missing_lab_problem):
        settings = missing_lab_problem.settings.model_copy(
            update={"empty_domain_policy": EmptyDomainPolicy.SKIP}
        )
        result = BacktrackingSolver(missing_lab_problem, settings).solve()
        assert result.success
        assert [e.session.course_id for e in result.solution] == ["MA101"]
        assert [s.id for s in result.unscheduled] == ["CS101-Practical-1"]
