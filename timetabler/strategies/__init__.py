"""Scheduling strategies and the registry that creates them."""

from __future__ import annotations

from timetabler.data.models import SolverSettings
from timetabler.problem import SchedulingProblem

from .annealing import SimulatedAnnealingSolver
from .backtracking import BacktrackingSolver
from .base import (
    Algorithm,
    CancellationToken,
    FailureKind,
    ProgressCallback,
    Solver,
    SolverResult,
)
from .csp import CSPSolver
from .genetic import GeneticSolver
from .greedy import GreedySolver
from .hybrid import HybridSolver

SOLVERS: dict[Algorithm, type[Solver]] = {
    Algorithm.GREEDY: GreedySolver,
    Algorithm.BACKTRACKING: BacktrackingSolver,
    Algorithm.CSP: CSPSolver,
    Algorithm.GENETIC: GeneticSolver,
    Algorithm.SIMULATED_ANNEALING: SimulatedAnnealingSolver,
    Algorithm.HYBRID: HybridSolver,
}


def create_solver(
    algorithm: Algorithm | str,
    problem: SchedulingProblem,
    settings: SolverSettings | None = None,
    cancel_token: CancellationToken | None = None,
) -> Solver:
    """Instantiate a strategy by enum or name. Raises ValueError for unknown names."""
    if not isinstance(algorithm, Algorithm):
        resolved = Algorithm.from_name(algorithm)
        if resolved is None:
            raise ValueError(f"Unknown algorithm: {algorithm!r}")
        algorithm = resolved
    return SOLVERS[algorithm](problem, settings, cancel_token)


__all__ = [
    "Algorithm",
    "BacktrackingSolver",
    "CSPSolver",
    "CancellationToken",
    "FailureKind",
    "GeneticSolver",
    "GreedySolver",
    "HybridSolver",
    "ProgressCallback",
    "SOLVERS",
    "SimulatedAnnealingSolver",
    "Solver",
    "SolverResult",
    "create_solver",
]
