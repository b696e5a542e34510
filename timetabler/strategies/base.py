"""
Shared contract for the scheduling strategies.

Every strategy is a synchronous computation. It reports progress through an
optional callback and polls a cancellation token at the same checkpoints.
"""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Protocol

from timetabler.data.models import EmptyDomainPolicy, SolverSettings
from timetabler.errors import SolveCancelled
from timetabler.problem import SchedulingProblem
from timetabler.schedule import ScheduleEntry
from timetabler.sessions import Session

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class Algorithm(str, Enum):
    """Closed set of strategies the engine can run."""
    GREEDY = "greedy"
    BACKTRACKING = "backtracking"
    CSP = "csp"
    GENETIC = "genetic"
    SIMULATED_ANNEALING = "simulated_annealing"
    HYBRID = "hybrid"

    @classmethod
    def from_name(cls, name: str | None) -> Optional[Algorithm]:
        """Look up a strategy by name, None if unknown."""
        if not name:
            return None
        try:
            return cls(name.strip().lower().replace("-", "_"))
        except ValueError:
            return None


class FailureKind(str, Enum):
    INFEASIBLE = "infeasible"
    BUDGET_EXHAUSTED = "budget_exhausted"
    CANCELLED = "cancelled"
    VALIDATION = "validation"
    ERROR = "error"


# =============================================================================
# Progress and Cancellation
# =============================================================================

class ProgressCallback(Protocol):
    def __call__(self, percent: float, message: str, **extras: Any) -> None: ...


class CancellationToken:
    """Cooperative cancellation flag polled at progress checkpoints."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SolveCancelled("Solve cancelled")


# =============================================================================
# Results
# =============================================================================

@dataclass
class SolverResult:
    """Outcome of one strategy run."""
    success: bool
    solution: list[ScheduleEntry] = field(default_factory=list)
    reason: Optional[str] = None
    metrics: dict[str, Any] = field(default_factory=dict)
    unscheduled: list[Session] = field(default_factory=list)
    failure_kind: Optional[FailureKind] = None

    @classmethod
    def failure(cls, reason: str, kind: FailureKind, **kwargs) -> SolverResult:
        return cls(success=False, reason=reason, failure_kind=kind, **kwargs)


# =============================================================================
# Solver Base
# =============================================================================

class Solver(ABC):
    """
    Base class for scheduling strategies.

    Usage:
        solver = GreedySolver(problem)
        result = solver.solve(progress=lambda pct, msg, **kw: print(pct, msg))
    """

    algorithm: ClassVar[Algorithm]
    display_name: ClassVar[str]

    def __init__(
        self,
        problem: SchedulingProblem,
        settings: SolverSettings | None = None,
        cancel_token: CancellationToken | None = None,
    ):
        self.problem = problem
        self.settings = settings or problem.settings
        self.cancel_token = cancel_token or CancellationToken()
        self.random = random.Random(self.settings.random_seed)
        self._progress: Optional[ProgressCallback] = None

    def solve(self, progress: ProgressCallback | None = None) -> SolverResult:
        """Run the strategy. Cancellation becomes a failure result."""
        self._progress = progress
        started = time.perf_counter()
        logger.info("%s: solving %d sessions", self.display_name, len(self.problem.sessions))

        try:
            result = self._solve()
        except SolveCancelled as e:
            logger.info("%s: cancelled", self.display_name)
            result = SolverResult.failure(str(e), FailureKind.CANCELLED)

        result.metrics.setdefault("algorithm", self.display_name)
        result.metrics["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "%s: %s in %.0f ms (%d entries)",
            self.display_name,
            "succeeded" if result.success else f"failed ({result.reason})",
            result.metrics["duration_ms"],
            len(result.solution),
        )
        return result

    @abstractmethod
    def _solve(self) -> SolverResult:
        """Strategy body."""

    def checkpoint(self, percent: float, message: str, **extras: Any) -> None:
        """Poll cancellation, then report progress."""
        self.cancel_token.raise_if_cancelled()
        if self._progress is not None:
            self._progress(max(0.0, min(100.0, percent)), message, **extras)

    def empty_domain_policy(self, default: Optional[EmptyDomainPolicy]) -> Optional[EmptyDomainPolicy]:
        """Settings override, else the strategy's own behavior."""
        return self.settings.empty_domain_policy or default
