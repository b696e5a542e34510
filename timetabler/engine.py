"""
Optimization engine: the single entry point collaborators call.

One ``optimize`` call validates the input, builds a fresh scheduling
problem, runs the selected strategy, then repairs, scores and annotates
the result. Nothing raised inside a strategy escapes this module; every
outcome is an ``OptimizationResult``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from .data.loader import ValidationReport, validate_input_data
from .data.models import (
    Classroom,
    Course,
    SolverSettings,
    Teacher,
    normalize_records,
    normalize_settings,
)
from .output.metrics import (
    QualityMetrics,
    Recommendation,
    calculate_quality_metrics,
    generate_recommendations,
    summarize_conflicts,
)
from .output.schema import TimetableOutput, create_timetable_output
from .problem import SchedulingProblem
from .repair import ScheduleRepairer
from .schedule import Conflict, ScheduleEntry, detect_conflicts
from .sessions import Session
from .strategies import (
    Algorithm,
    CancellationToken,
    FailureKind,
    ProgressCallback,
    SolverResult,
    create_solver,
)

logger = logging.getLogger(__name__)

LARGE_PROBLEM = 10_000
SMALL_PROBLEM = 1_000


@dataclass
class OptimizationResult:
    """Outcome of one engine run."""
    success: bool
    algorithm: Optional[str] = None
    solution: list[ScheduleEntry] = field(default_factory=list)
    reason: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    metrics: dict[str, Any] = field(default_factory=dict)
    quality: Optional[QualityMetrics] = None
    conflicts: list[Conflict] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    unscheduled: list[Session] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_output(
        self,
        teacher_names: dict[str, str] | None = None,
        classroom_names: dict[str, str] | None = None,
    ) -> TimetableOutput:
        return create_timetable_output(self, teacher_names, classroom_names)


class OptimizationEngine:
    """
    Validate, solve, repair and score a timetable.

    Usage:
        engine = OptimizationEngine(SolverSettings(algorithm="csp", random_seed=7))
        result = engine.optimize(teachers, classrooms, courses)
        print(result.to_output().to_json())
    """

    def __init__(self, settings: Union[SolverSettings, dict, None] = None):
        self.settings = normalize_settings(settings)

    # -------------------------------------------------------------------------
    # Validation and tuning
    # -------------------------------------------------------------------------

    def validate_input(
        self,
        teachers: list[Teacher],
        classrooms: list[Classroom],
        courses: list[Course],
    ) -> ValidationReport:
        return validate_input_data(teachers, classrooms, courses)

    def optimize_parameters(self, problem: SchedulingProblem, algorithm: Algorithm) -> SolverSettings:
        """Adapt GA knobs to the problem size. Other strategies are left alone."""
        settings = self.settings
        if not settings.tune_parameters or algorithm not in (Algorithm.GENETIC, Algorithm.HYBRID):
            return settings

        size = problem.size
        population = settings.population_size
        generations = settings.max_generations
        if size > LARGE_PROBLEM:
            population = min(100, max(50, population))
            generations = min(300, max(150, generations))
        elif size < SMALL_PROBLEM:
            population = int(min(50, max(30, population * 0.8)))
            generations = int(min(150, max(100, generations * 0.8)))
        else:
            population = min(75, max(40, population))
            generations = min(200, max(100, generations))

        mutation_rate = settings.mutation_rate
        if problem.department_count > 5:
            mutation_rate = min(0.2, mutation_rate * 1.2)

        tuned = settings.model_copy(update={
            "population_size": population,
            "max_generations": generations,
            "mutation_rate": mutation_rate,
            "elite_size": min(settings.elite_size, population - 1),
        })
        logger.info(
            "Tuned GA parameters for problem size %d: population=%d generations=%d mutation=%.2f",
            size, population, generations, mutation_rate,
        )
        return tuned

    def select_algorithm(self, name: str) -> Algorithm:
        algorithm = Algorithm.from_name(name)
        if algorithm is None:
            logger.warning("Unknown algorithm %r, using hybrid", name)
            return Algorithm.HYBRID
        return algorithm

    # -------------------------------------------------------------------------
    # Optimization
    # -------------------------------------------------------------------------

    def optimize(
        self,
        teachers: Iterable[Any],
        classrooms: Iterable[Any],
        courses: Iterable[Any],
        progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> OptimizationResult:
        """Run one full solve. Never raises."""
        started = time.perf_counter()
        try:
            result = self._optimize(teachers, classrooms, courses, progress, cancel_token)
        except Exception as e:
            logger.exception("Optimization failed")
            result = OptimizationResult(success=False, reason=str(e), failure_kind=FailureKind.ERROR)
        result.metrics["total_duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        return result

    def _optimize(
        self,
        teachers: Iterable[Any],
        classrooms: Iterable[Any],
        courses: Iterable[Any],
        progress: ProgressCallback | None,
        cancel_token: CancellationToken | None,
    ) -> OptimizationResult:
        teachers = normalize_records(Teacher, teachers)
        classrooms = normalize_records(Classroom, classrooms)
        courses = normalize_records(Course, courses)

        report = self.validate_input(teachers, classrooms, courses)
        if not report.is_valid:
            return OptimizationResult(
                success=False,
                reason="Input validation failed: " + "; ".join(report.errors),
                failure_kind=FailureKind.VALIDATION,
                validation_errors=report.errors,
                warnings=report.warnings,
            )

        algorithm = self.select_algorithm(self.settings.algorithm)
        problem = SchedulingProblem.build(teachers, classrooms, courses, self.settings)
        settings = self.optimize_parameters(problem, algorithm)
        problem.settings = settings

        logger.info(
            "Optimizing %d sessions with %s (%d slots, %d teachers, %d classrooms)",
            len(problem.sessions), algorithm.value, len(problem.time_slots), len(teachers), len(classrooms),
        )
        solver = create_solver(algorithm, problem, settings, cancel_token)
        solver_result = solver.solve(progress)
        return self._post_process(problem, solver_result, report, solver.display_name)

    def _post_process(
        self,
        problem: SchedulingProblem,
        solver_result: SolverResult,
        report: ValidationReport,
        algorithm_name: str,
    ) -> OptimizationResult:
        if not solver_result.success:
            logger.warning("Optimization failed: %s", solver_result.reason)
            return OptimizationResult(
                success=False,
                algorithm=algorithm_name,
                solution=solver_result.solution,
                reason=solver_result.reason,
                failure_kind=solver_result.failure_kind,
                metrics=solver_result.metrics,
                unscheduled=solver_result.unscheduled,
                conflicts=detect_conflicts(solver_result.solution),
                warnings=report.warnings,
            )

        repairer = ScheduleRepairer(problem)
        schedule = repairer.repair_conflicts(solver_result.solution)
        schedule = repairer.apply_goals(schedule, problem.settings.optimization_goals)

        conflicts = detect_conflicts(schedule)
        quality = calculate_quality_metrics(
            schedule,
            conflicts,
            len(problem.classrooms),
            problem.time_slots,
            problem.settings.working_days,
        )
        recommendations = generate_recommendations(quality, len(solver_result.unscheduled))

        metrics = dict(solver_result.metrics)
        metrics["repair_moves"] = repairer.moves
        metrics["conflict_counts"] = summarize_conflicts(conflicts)

        logger.info(
            "Optimization complete: %d entries, %d conflicts, quality %.1f",
            len(schedule), len(conflicts), quality.overall_score,
        )
        return OptimizationResult(
            success=True,
            algorithm=algorithm_name,
            solution=schedule,
            metrics=metrics,
            quality=quality,
            conflicts=conflicts,
            recommendations=recommendations,
            unscheduled=solver_result.unscheduled,
            warnings=report.warnings,
        )
