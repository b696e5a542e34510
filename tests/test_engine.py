"""
Tests for the optimization engine.

Test categories:
1. End-to-end scenarios on tiny institutions
2. Validation and error handling at the boundary
3. Parameter tuning
4. Post-processing: repair, metrics, output
"""

from __future__ import annotations

import json
from dataclasses import dataclass

import pytest

from timetabler.data.models import (
    OptimizationGoal,
    RoomType,
    SessionType,
    SolverSettings,
    Teacher,
    WeeklyAvailability,
    Weekday,
)
from timetabler.engine import OptimizationEngine
from timetabler.schedule import detect_conflicts
from timetabler.strategies import Algorithm, CancellationToken, FailureKind


def engine_settings(algorithm: Algorithm | str, **overrides) -> SolverSettings:
    values = dict(
        algorithm=algorithm.value if isinstance(algorithm, Algorithm) else algorithm,
        random_seed=3,
        population_size=10,
        max_generations=20,
        elite_size=2,
        max_iterations=500,
        tune_parameters=False,
    )
    values.update(overrides)
    return SolverSettings(**values)


@dataclass
class _SizedProblem:
    size: int
    department_count: int = 0


# =============================================================================
# Scenarios
# =============================================================================

class TestScenarios:
    """End-to-end solves on the smallest interesting inputs."""

    @pytest.mark.parametrize("algorithm", list(Algorithm))
    def test_single_session(self, algorithm, make_teacher, make_room, make_course):
        teacher = make_teacher(days=[Weekday.MONDAY])
        room = make_room(availability=WeeklyAvailability.on_days([Weekday.MONDAY]))
        result = OptimizationEngine(engine_settings(algorithm)).optimize([teacher], [room], [make_course()])

        assert result.success, result.reason
        assert len(result.solution) == 1
        entry = result.solution[0]
        assert entry.day == Weekday.MONDAY
        assert 540 <= entry.start <= 960
        assert (entry.teacher_id, entry.classroom_id) == ("T1", "R1")

    @pytest.mark.parametrize(
        "algorithm",
        [Algorithm.GREEDY, Algorithm.BACKTRACKING, Algorithm.CSP, Algorithm.SIMULATED_ANNEALING],
    )
    def test_shared_teacher_and_room_never_overlap(self, algorithm, make_teacher, make_room, make_course):
        courses = [make_course("C1"), make_course("C2")]
        result = OptimizationEngine(engine_settings(algorithm)).optimize(
            [make_teacher()], [make_room()], courses
        )

        assert result.success
        first, second = result.solution
        assert not first.overlaps(second)
        assert result.conflicts == []

    def test_missing_lab_with_complete_search(self, make_teacher, make_room, make_course):
        courses = [make_course("CS101", theory=0, practical=1, requires_lab=True)]
        result = OptimizationEngine(engine_settings(Algorithm.BACKTRACKING)).optimize(
            [make_teacher()], [make_room(capacity=60)], courses
        )
        assert not result.success
        assert result.failure_kind == FailureKind.INFEASIBLE
        assert [s.id for s in result.unscheduled] == ["CS101-Practical-1"]

    def test_missing_lab_with_csp(self, make_teacher, make_room, make_course):
        courses = [
            make_course("CS101", theory=0, practical=1, requires_lab=True),
            make_course("MA101", program="BSc Maths"),
        ]
        result = OptimizationEngine(engine_settings(Algorithm.CSP)).optimize(
            [make_teacher()], [make_room(capacity=60)], courses
        )
        assert result.success
        assert [s.id for s in result.unscheduled] == ["CS101-Practical-1"]
        assert any(r.type == "unscheduled_sessions" for r in result.recommendations)

    def test_missing_lab_with_greedy(self, make_teacher, make_room, make_course):
        courses = [
            make_course("CS101", theory=0, practical=1, requires_lab=True),
            make_course("MA101", program="BSc Maths"),
        ]
        result = OptimizationEngine(engine_settings(Algorithm.GREEDY)).optimize(
            [make_teacher()], [make_room(capacity=60)], courses
        )
        assert result.success
        assert result.metrics["failed_sessions"] == 1
        assert [e.session.course_id for e in result.solution] == ["MA101"]

    def test_practicals_share_a_lab(self, two_slot_settings, make_teacher, make_room, make_course):
        teachers = [make_teacher("T1", days=[Weekday.MONDAY]), make_teacher("T2", days=[Weekday.MONDAY])]
        courses = [
            make_course("P1", ("T1",), theory=0, practical=1, practical_duration=120,
                        requires_lab=True, program="BSc A"),
            make_course("P2", ("T2",), theory=0, practical=1, practical_duration=120,
                        requires_lab=True, program="BSc B"),
        ]
        settings = two_slot_settings.model_copy(update={"algorithm": "csp"})
        result = OptimizationEngine(settings).optimize(
            teachers, [make_room("LAB", type=RoomType.COMPUTER_LAB)], courses
        )

        assert result.success
        assert len(result.solution) == 2
        assert {(e.classroom_id, e.start) for e in result.solution} == {("LAB", 540)}
        assert all(e.session.session_type == SessionType.PRACTICAL for e in result.solution)
        assert result.conflicts == []

    def test_electives_may_overlap(self, make_teacher, make_room, make_course):
        settings = engine_settings(
            Algorithm.CSP,
            working_days=["Monday"],
            start_time="09:00",
            end_time="10:00",
            break_slots=[],
        )
        courses = [
            make_course("EL1", ("T1",), is_elective=True),
            make_course("EL2", ("T2",), is_elective=True),
        ]
        result = OptimizationEngine(settings).optimize(
            [make_teacher("T1"), make_teacher("T2")],
            [make_room("R1"), make_room("R2")],
            courses,
        )

        assert result.success
        assert [e.start for e in result.solution] == [540, 540]
        assert detect_conflicts(result.solution) == []

    def test_infeasible(self, make_teacher, make_room, make_course):
        settings = engine_settings(
            Algorithm.BACKTRACKING,
            working_days=["Monday"],
            start_time="09:00",
            end_time="11:00",
            break_slots=[],
        )
        result = OptimizationEngine(settings).optimize(
            [make_teacher(days=[Weekday.MONDAY])], [make_room()], [make_course(theory=3)]
        )
        assert not result.success
        assert result.failure_kind == FailureKind.INFEASIBLE
        assert result.quality is None


# =============================================================================
# Validation and Errors
# =============================================================================

class TestBoundary:
    """Tests for input normalization, validation and failure reporting."""

    def test_teacher_without_availability(self, make_room, make_course):
        teacher = Teacher(id="T1", name="Ada", subjects=["Mathematics"])
        result = OptimizationEngine(engine_settings("greedy")).optimize([teacher], [make_room()], [make_course()])

        assert not result.success
        assert result.failure_kind == FailureKind.VALIDATION
        assert any("no availability" in e for e in result.validation_errors)
        assert result.reason.startswith("Input validation failed")

    def test_all_issues_reported(self, make_course):
        result = OptimizationEngine().optimize([], [], [make_course()])
        assert result.failure_kind == FailureKind.VALIDATION
        assert "No teachers provided" in result.validation_errors
        assert "No classrooms provided" in result.validation_errors

    def test_subject_mismatch_is_only_a_warning(self, make_teacher, make_room, make_course):
        result = OptimizationEngine(engine_settings("greedy")).optimize(
            [make_teacher(subjects=["Physics"])], [make_room()], [make_course()]
        )
        assert result.success
        assert len(result.warnings) == 1
        assert "subject mismatch" in result.warnings[0]

    def test_unknown_algorithm_runs_hybrid(self, make_teacher, make_room, make_course):
        result = OptimizationEngine(engine_settings("tabu")).optimize(
            [make_teacher()], [make_room()], [make_course()]
        )
        assert result.success
        assert result.algorithm == "Hybrid CSP + Genetic"

    def test_camel_case_records(self):
        teachers = [{
            "id": "T1",
            "name": "Ada Lovelace",
            "subjects": ["Mathematics"],
            "maxHoursPerWeek": 10,
            "availability": {"monday": {"startTime": "09:00", "endTime": "12:00"}},
        }]
        classrooms = [{"_id": "R1", "name": "Hall 1", "capacity": 40, "type": "Lecture Hall"}]
        courses = [{
            "id": "C1",
            "name": "Mathematics",
            "program": "BSc",
            "enrolledStudents": 30,
            "sessions": {"theory": {"duration": 60, "sessionsPerWeek": 2}},
            "assignedTeachers": [{"teacherId": "T1", "sessionTypes": ["theory"]}],
        }]
        engine = OptimizationEngine({"algorithm": "greedy", "randomSeed": 1, "tuneParameters": False})
        result = engine.optimize(teachers, classrooms, courses)

        assert result.success
        assert [(e.day, e.start) for e in result.solution] == [(Weekday.MONDAY, 540), (Weekday.MONDAY, 600)]
        assert {e.classroom_id for e in result.solution} == {"R1"}

    def test_malformed_record(self, make_teacher, make_course):
        result = OptimizationEngine().optimize(
            [make_teacher()], [{"name": "No id", "capacity": "lots"}], [make_course()]
        )
        assert not result.success
        assert result.failure_kind == FailureKind.ERROR
        assert result.reason
        assert "total_duration_ms" in result.metrics

    def test_cancelled(self, small_institution, small_settings):
        token = CancellationToken()
        token.cancel()
        settings = small_settings.model_copy(update={"algorithm": "csp"})
        result = OptimizationEngine(settings).optimize(*small_institution, cancel_token=token)
        assert not result.success
        assert result.failure_kind == FailureKind.CANCELLED

    def test_progress_reported(self, small_institution, small_settings):
        reports = []
        settings = small_settings.model_copy(update={"algorithm": "greedy"})
        OptimizationEngine(settings).optimize(
            *small_institution, progress=lambda percent, message, **extras: reports.append(percent)
        )
        assert reports
        assert reports[-1] == 100


# =============================================================================
# Parameter Tuning
# =============================================================================

class TestOptimizeParameters:
    """Tests for size-based GA tuning."""

    def test_small_problem(self, small_problem):
        engine = OptimizationEngine(SolverSettings(random_seed=1))
        tuned = engine.optimize_parameters(small_problem, Algorithm.GENETIC)
        assert (tuned.population_size, tuned.max_generations) == (40, 150)
        assert tuned.mutation_rate == engine.settings.mutation_rate

    def test_medium_problem(self):
        engine = OptimizationEngine()
        tuned = engine.optimize_parameters(_SizedProblem(size=5_000), Algorithm.HYBRID)
        assert (tuned.population_size, tuned.max_generations) == (50, 200)

    def test_large_problem(self):
        engine = OptimizationEngine(SolverSettings(population_size=30, max_generations=100))
        tuned = engine.optimize_parameters(_SizedProblem(size=20_000), Algorithm.GENETIC)
        assert (tuned.population_size, tuned.max_generations) == (50, 150)

    def test_many_departments_raise_mutation(self):
        engine = OptimizationEngine()
        tuned = engine.optimize_parameters(_SizedProblem(size=5_000, department_count=6), Algorithm.GENETIC)
        assert tuned.mutation_rate == pytest.approx(0.18)

    def test_other_strategies_untouched(self, small_problem):
        engine = OptimizationEngine()
        assert engine.optimize_parameters(small_problem, Algorithm.CSP) is engine.settings

    def test_tuning_disabled(self, small_problem):
        engine = OptimizationEngine(SolverSettings(tune_parameters=False))
        assert engine.optimize_parameters(small_problem, Algorithm.GENETIC) is engine.settings

    def test_select_algorithm(self):
        engine = OptimizationEngine()
        assert engine.select_algorithm("Backtracking") == Algorithm.BACKTRACKING
        assert engine.select_algorithm("tabu") == Algorithm.HYBRID


# =============================================================================
# Post-processing
# =============================================================================

class TestPostProcessing:
    """Tests for what the engine adds on top of a strategy result."""

    def test_metrics_and_quality(self, small_institution, small_settings):
        settings = small_settings.model_copy(update={"algorithm": "csp"})
        result = OptimizationEngine(settings).optimize(*small_institution)

        assert result.success
        assert result.algorithm == "Constraint Satisfaction"
        assert result.metrics["repair_moves"] == 0
        assert result.metrics["conflict_counts"] == {}
        assert result.metrics["total_duration_ms"] >= result.metrics["duration_ms"]
        assert result.quality.constraint_compliance == 100.0
        assert result.quality.grade in {"A", "B", "C", "D", "F"}

    def test_goals_keep_schedule_valid(self, small_institution, small_settings):
        settings = small_settings.model_copy(update={
            "algorithm": "greedy",
            "optimization_goals": list(OptimizationGoal),
        })
        result = OptimizationEngine(settings).optimize(*small_institution)

        assert result.success
        assert len(result.solution) == 9
        assert detect_conflicts(result.solution) == []

    def test_balanced_goal_spreads_greedy_schedule(self, small_institution, small_settings):
        plain = OptimizationEngine(small_settings.model_copy(update={"algorithm": "greedy"}))
        balanced = OptimizationEngine(small_settings.model_copy(update={
            "algorithm": "greedy",
            "optimization_goals": [OptimizationGoal.BALANCED_SCHEDULE],
        }))
        before = plain.optimize(*small_institution)
        after = balanced.optimize(*small_institution)
        assert after.metrics["repair_moves"] > 0
        assert after.quality.schedule_balance > before.quality.schedule_balance

    def test_json_output(self, small_institution, small_settings):
        teachers, rooms, courses = small_institution
        settings = small_settings.model_copy(update={"algorithm": "greedy"})
        result = OptimizationEngine(settings).optimize(teachers, rooms, courses)

        data = json.loads(result.to_output(teacher_names={t.id: t.name for t in teachers}).to_json())
        assert data["success"] is True
        assert data["algorithm"] == "Greedy"
        assert len(data["solution"]) == 9
        first = data["solution"][0]
        assert (first["day"], first["startTime"]) == ("Monday", "09:00")
        assert first["teacherName"] == "Teacher T1"
        assert set(data["views"]["byTeacher"]) == {"T1", "T2", "T3"}
        assert data["quality"]["grade"] in {"A", "B", "C", "D", "F"}
        assert "failureKind" not in data

    def test_failure_output(self, make_room, make_course):
        teacher = Teacher(id="T1", name="Ada", subjects=["Mathematics"])
        result = OptimizationEngine().optimize([teacher], [make_room()], [make_course()])
        data = result.to_output().to_dict()
        assert data["success"] is False
        assert data["failureKind"] == "validation"
        assert data["validationErrors"]
        assert "views" not in data
