"""
CSP followed by a seeded genetic refinement.

The CSP stage gets a short step budget and takes the first 30% of the
progress bar. Whatever it assigns seeds the GA, which runs with a smaller
population and half the generations. If the CSP stage fails outright a
full GA run starts from scratch with the unreduced settings.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import Algorithm, FailureKind, Solver, SolverResult
from .csp import CSPSolver
from .genetic import GeneticSolver

logger = logging.getLogger(__name__)

CSP_SHARE = 30.0


class HybridSolver(Solver):
    """Run CSP for a feasible start, then improve it with the GA."""

    algorithm = Algorithm.HYBRID
    display_name = "Hybrid CSP + Genetic"

    def _stage_progress(self, offset: float, share: float):
        def report(percent: float, message: str, **extras: Any) -> None:
            self.checkpoint(offset + percent * share / 100, message, **extras)
        return report

    def _solve(self) -> SolverResult:
        csp = CSPSolver(
            self.problem,
            self.settings,
            self.cancel_token,
            max_steps=self.settings.hybrid_csp_steps,
        )
        csp_result = csp.solve(progress=self._stage_progress(0, CSP_SHARE))
        if csp_result.failure_kind == FailureKind.CANCELLED:
            return csp_result

        ga_settings = self.settings.model_copy(update={
            "population_size": min(self.settings.population_size, 50),
            "max_generations": max(1, min(self.settings.max_generations // 2, 100)),
        })
        ga_settings.elite_size = min(ga_settings.elite_size, ga_settings.population_size - 1)

        if csp_result.success:
            logger.info("Hybrid: CSP assigned %d sessions, refining with GA", len(csp_result.solution))
            ga = GeneticSolver(self.problem, ga_settings, self.cancel_token, initial_solution=csp_result.solution)
        else:
            logger.warning("Hybrid: CSP stage failed (%s), running GA from scratch", csp_result.reason)
            ga = GeneticSolver(self.problem, self.settings, self.cancel_token)

        self.checkpoint(CSP_SHARE, "Starting genetic refinement")
        result = ga.solve(progress=self._stage_progress(CSP_SHARE, 100 - CSP_SHARE))

        result.metrics["algorithm"] = self.display_name
        result.metrics["csp_success"] = csp_result.success
        result.metrics["csp_backtracks"] = csp_result.metrics.get("backtracks", 0)
        result.metrics["csp_scheduled_sessions"] = len(csp_result.solution)
        if result.success:
            self.checkpoint(100, "Hybrid optimization complete")
        return result
