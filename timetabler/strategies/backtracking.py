"""
Depth-first backtracking search.

Sessions are ordered most-constrained first (visiting faculty, then
constraint count). Each session's domain is tried least-constraining value
first: placements on teachers and rooms that few other sessions need come
before contested ones, ties broken by earliest day and time.
"""

from __future__ import annotations

import logging
from collections import Counter

from timetabler.data.models import EmptyDomainPolicy
from timetabler.problem import Placement
from timetabler.schedule import ScheduleEntry, ScheduleIndex
from timetabler.sessions import Session, sort_sessions_by_priority

from .base import Algorithm, FailureKind, Solver, SolverResult

logger = logging.getLogger(__name__)

BUDGET_EXHAUSTED_REASON = "No feasible solution found within backtrack limit"


class BacktrackingSolver(Solver):
    """Complete search bounded by ``settings.max_backtracks``."""

    algorithm = Algorithm.BACKTRACKING
    display_name = "Backtracking Search"

    def _solve(self) -> SolverResult:
        sessions = sort_sessions_by_priority(self.problem.sessions, self.problem.teachers)
        if not sessions:
            return SolverResult.failure("No sessions to schedule", FailureKind.INFEASIBLE)
        domains = [self.problem.build_domain(s) for s in sessions]
        policy = self.empty_domain_policy(EmptyDomainPolicy.FAIL)

        empty = [s for s, d in zip(sessions, domains) if not d]
        if empty and (policy == EmptyDomainPolicy.FAIL or len(empty) == len(sessions)):
            return SolverResult.failure(
                f"{len(empty)} session(s) have no feasible placement: "
                + ", ".join(s.id for s in empty[:5]),
                FailureKind.INFEASIBLE,
                unscheduled=empty,
                metrics=self._metrics(0, 0, len(sessions)),
            )
        if empty:
            logger.warning("Backtracking: skipping %d sessions with empty domains", len(empty))
            kept = [(s, d) for s, d in zip(sessions, domains) if d]
            sessions = [s for s, _ in kept]
            domains = [d for _, d in kept]

        domains = self._order_values(sessions, domains)
        return self._search(sessions, domains, empty)

    def _order_values(self, sessions: list[Session], domains: list[list[Placement]]) -> list[list[Placement]]:
        """Least-constraining value first, then earliest day and time."""
        teacher_demand: Counter[str] = Counter()
        room_demand: Counter[str] = Counter()
        for session, domain in zip(sessions, domains):
            teacher_demand.update(session.eligible_teacher_ids)
            room_demand.update({p.classroom_id for p in domain})

        return [
            sorted(
                domain,
                key=lambda p: (teacher_demand[p.teacher_id] + room_demand[p.classroom_id], p.sort_key),
            )
            for domain in domains
        ]

    def _search(
        self,
        sessions: list[Session],
        domains: list[list[Placement]],
        skipped: list[Session],
    ) -> SolverResult:
        total = len(sessions)
        index = ScheduleIndex()
        stack: list[ScheduleEntry] = []
        cursors = [0] * total
        depth = 0
        backtracks = 0
        tried = 0
        limit = self.settings.max_backtracks

        while 0 <= depth < total:
            session = sessions[depth]
            domain = domains[depth]
            placed = False

            while cursors[depth] < len(domain):
                placement = domain[cursors[depth]]
                cursors[depth] += 1
                tried += 1
                entry = self.problem.entry_for(session, placement)
                if index.is_free(entry):
                    index.insert(entry)
                    stack.append(entry)
                    placed = True
                    break

            if placed:
                depth += 1
                if depth % 10 == 0:
                    self.checkpoint(
                        depth / total * 100,
                        f"Assigned {depth}/{total} sessions",
                        backtracks=backtracks,
                    )
                continue

            # Dead end: undo the previous assignment and resume its domain.
            cursors[depth] = 0
            depth -= 1
            if depth >= 0:
                index.remove(stack.pop())
                backtracks += 1
                if backtracks > limit:
                    return SolverResult.failure(
                        BUDGET_EXHAUSTED_REASON,
                        FailureKind.BUDGET_EXHAUSTED,
                        metrics=self._metrics(backtracks, len(stack), total, tried),
                        unscheduled=sessions[len(stack):] + skipped,
                    )
                if backtracks % 100 == 0:
                    self.checkpoint(
                        len(stack) / total * 100,
                        f"Backtracking ({backtracks} backtracks)",
                        backtracks=backtracks,
                    )

        if depth < 0:
            return SolverResult.failure(
                "Search space exhausted: no conflict-free assignment exists",
                FailureKind.INFEASIBLE,
                metrics=self._metrics(backtracks, 0, total, tried),
                unscheduled=sessions + skipped,
            )

        self.checkpoint(100, "Backtracking search complete", backtracks=backtracks)
        return SolverResult(
            success=True,
            solution=stack,
            metrics=self._metrics(backtracks, len(stack), total + len(skipped), tried),
            unscheduled=skipped,
        )

    @staticmethod
    def _metrics(backtracks: int, assigned: int, total: int, tried: int = 0) -> dict:
        return {
            "backtracks": backtracks,
            "assignments_tried": tried,
            "sessions_assigned": assigned,
            "scheduled_sessions": assigned,
            "total_sessions": total,
        }
