"""Timetabler - multi-strategy institutional timetable optimization."""

from .data.models import Classroom, Course, SolverSettings, Teacher, TimetableInput
from .engine import OptimizationEngine, OptimizationResult
from .errors import DataValidationError, SolveCancelled, TimetablerError
from .strategies import Algorithm, CancellationToken, FailureKind, create_solver

__version__ = "0.1.0"

__all__ = [
    # Engine API
    "OptimizationEngine",
    "OptimizationResult",
    "Algorithm",
    "CancellationToken",
    "FailureKind",
    "create_solver",
    # Input models
    "Classroom",
    "Course",
    "SolverSettings",
    "Teacher",
    "TimetableInput",
    # Errors
    "DataValidationError",
    "SolveCancelled",
    "TimetablerError",
]
