"""
Greedy constructive strategy.

Sessions are placed one at a time in course order, each at the first slot
where an eligible teacher and a suitable classroom are both free. Nothing
is ever undone, so the run always terminates; a session that finds no
free placement is left unscheduled.
"""

from __future__ import annotations

import logging
from typing import Optional

from timetabler.data.models import EmptyDomainPolicy
from timetabler.schedule import ScheduleEntry, ScheduleIndex
from timetabler.sessions import Session, sort_sessions_by_priority

from .base import Algorithm, FailureKind, Solver, SolverResult

logger = logging.getLogger(__name__)


class GreedySolver(Solver):
    """First-fit placement in a fixed visitation order."""

    algorithm = Algorithm.GREEDY
    display_name = "Greedy"

    def _solve(self) -> SolverResult:
        sessions = sort_sessions_by_priority(
            self.problem.sessions, self.problem.teachers, by_constraint_count=False
        )
        policy = self.empty_domain_policy(EmptyDomainPolicy.SKIP)
        total = len(sessions)

        index = ScheduleIndex()
        solution: list[ScheduleEntry] = []
        unscheduled: list[Session] = []
        self.attempts = 0

        for i, session in enumerate(sessions):
            if i % 10 == 0:
                self.checkpoint(i / max(total, 1) * 100, f"Scheduling {session}", scheduled=len(solution))

            entry = self._place(session, index)
            if entry is None:
                if policy == EmptyDomainPolicy.FAIL:
                    return SolverResult.failure(
                        f"No feasible placement for {session.id}",
                        FailureKind.INFEASIBLE,
                        solution=solution,
                        unscheduled=[session],
                        metrics=self._metrics(total, solution, unscheduled + [session]),
                    )
                logger.debug("Greedy: could not place %s", session)
                unscheduled.append(session)
                continue

            index.insert(entry)
            solution.append(entry)

        metrics = self._metrics(total, solution, unscheduled)
        if not solution:
            return SolverResult.failure(
                "No sessions could be scheduled" if total else "No sessions to schedule",
                FailureKind.INFEASIBLE,
                metrics=metrics,
                unscheduled=unscheduled,
            )

        if unscheduled:
            logger.warning("Greedy: %d of %d sessions left unscheduled", len(unscheduled), total)
        self.checkpoint(100, "Greedy scheduling complete", scheduled=len(solution))
        return SolverResult(success=True, solution=solution, metrics=metrics, unscheduled=unscheduled)

    def _place(self, session: Session, index: ScheduleIndex) -> Optional[ScheduleEntry]:
        """First free placement in slot order, tightest room first."""
        for placement in self.problem.build_domain(session):
            self.attempts += 1
            entry = self.problem.entry_for(session, placement)
            if index.is_free(entry):
                return entry
        return None

    def _metrics(
        self,
        total: int,
        solution: list[ScheduleEntry],
        unscheduled: list[Session],
    ) -> dict:
        return {
            "total_sessions": total,
            "scheduled_sessions": len(solution),
            "failed_sessions": len(unscheduled),
            "success_rate": round(len(solution) / total * 100, 2) if total else 0.0,
            "scheduling_attempts": self.attempts,
            "teachers_utilized": len({e.teacher_id for e in solution}),
            "classrooms_utilized": len({e.classroom_id for e in solution}),
            "divisions_scheduled": len({
                (e.session.course_id, e.session.division_id) for e in solution if e.session.division_id
            }),
        }
