"""
Constraint-satisfaction search with forward checking.

Variables are sessions, values are placements. Domains are pruned up front
by availability, capacity and a relaxed feature match. Search picks the
variable with the fewest remaining values (MRV) and, after each commit,
removes clashing values from the unassigned variables that share a
teacher, room or cohort with it. Removed values come back on backtrack.

AC-3 is available through ``settings.use_arc_consistency`` but is off by
default: on dense timetables it prunes too much to be useful.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Optional

from timetabler.data.models import EmptyDomainPolicy, SolverSettings, windows_overlap
from timetabler.problem import Placement, SchedulingProblem
from timetabler.schedule import (
    ScheduleEntry,
    ScheduleIndex,
    electives_can_overlap,
    lab_can_share,
    same_cohort,
)
from timetabler.sessions import Session

from .base import Algorithm, CancellationToken, FailureKind, Solver, SolverResult

logger = logging.getLogger(__name__)


@dataclass
class _Frame:
    """One level of the search stack."""
    var: int
    values: list[Placement]
    cursor: int = 0
    entry: Optional[ScheduleEntry] = None
    pruned: list[tuple[int, list[Placement]]] = field(default_factory=list)


def clashes(entry: ScheduleEntry, session: Session, placement: Placement) -> bool:
    """True if ``placement`` for ``session`` cannot coexist with ``entry``."""
    if entry.day != placement.slot.day:
        return False
    if not windows_overlap(entry.start, entry.end, placement.start, placement.end):
        return False
    if entry.teacher_id == placement.teacher_id:
        return True
    if entry.classroom_id == placement.classroom_id and not lab_can_share(
        entry.session, session, entry.teacher_id, placement.teacher_id
    ):
        return True
    return same_cohort(entry.session, session) and not electives_can_overlap(entry.session, session)


class CSPSolver(Solver):
    """MRV backtracking with forward checking, bounded by a step budget."""

    algorithm = Algorithm.CSP
    display_name = "Constraint Satisfaction"

    def __init__(
        self,
        problem: SchedulingProblem,
        settings: SolverSettings | None = None,
        cancel_token: CancellationToken | None = None,
        max_steps: int | None = None,
    ):
        super().__init__(problem, settings, cancel_token)
        self.max_steps = max_steps or self.settings.max_csp_steps

    def _solve(self) -> SolverResult:
        sessions = self.problem.sessions
        if not sessions:
            return SolverResult.failure("No sessions to schedule", FailureKind.INFEASIBLE)

        self.sessions = sessions
        self.domains = self.problem.build_domains(self.settings.csp_feature_match)
        for domain in self.domains:
            domain.sort(key=lambda p: p.sort_key)

        empty = [i for i, d in enumerate(self.domains) if not d]
        policy = self.empty_domain_policy(None)
        if len(empty) == len(sessions) or (empty and policy == EmptyDomainPolicy.FAIL):
            return SolverResult.failure(
                "No feasible placements: every session has an empty domain"
                if len(empty) == len(sessions)
                else f"{len(empty)} session(s) have no feasible placement",
                FailureKind.INFEASIBLE,
                unscheduled=[sessions[i] for i in empty],
                metrics=self._metrics(0, 0, 0),
            )
        if empty:
            logger.warning("CSP: %d sessions have empty domains and will stay unscheduled", len(empty))

        self.neighbors = self._build_neighbors()

        if self.settings.use_arc_consistency:
            self.checkpoint(0, "Enforcing arc consistency")
            self.arc_consistency()
            empty = [i for i, d in enumerate(self.domains) if not d]
            if len(empty) == len(sessions):
                return SolverResult.failure(
                    "Arc consistency left every session without a placement",
                    FailureKind.INFEASIBLE,
                    unscheduled=list(sessions),
                    metrics=self._metrics(0, 0, 0),
                )

        self.checkpoint(5, "Starting search", variables=len(sessions))
        return self._search(set(range(len(sessions))) - set(empty), empty)

    # -------------------------------------------------------------------------
    # Constraint graph
    # -------------------------------------------------------------------------

    def _build_neighbors(self) -> list[set[int]]:
        """Variables that can clash: shared teacher, shared room or shared students."""
        by_teacher: dict[str, set[int]] = defaultdict(set)
        by_room: dict[str, set[int]] = defaultdict(set)
        by_cohort: dict[tuple, set[int]] = defaultdict(set)
        for i, (session, domain) in enumerate(zip(self.sessions, self.domains)):
            for teacher_id in session.eligible_teacher_ids:
                by_teacher[teacher_id].add(i)
            for room_id in {p.classroom_id for p in domain}:
                by_room[room_id].add(i)
            by_cohort[session.cohort].add(i)

        neighbors: list[set[int]] = [set() for _ in self.sessions]
        for i, session in enumerate(self.sessions):
            for teacher_id in session.eligible_teacher_ids:
                neighbors[i] |= by_teacher[teacher_id]
            for room_id in {p.classroom_id for p in self.domains[i]}:
                neighbors[i] |= by_room[room_id]
            neighbors[i] |= {
                j for j in by_cohort[session.cohort] if same_cohort(session, self.sessions[j])
            }
            neighbors[i].discard(i)
        return neighbors

    # -------------------------------------------------------------------------
    # Arc consistency
    # -------------------------------------------------------------------------

    def revise(self, i: int, j: int) -> bool:
        """Drop values of ``i`` that clash with every value of ``j``."""
        if not self.domains[j]:
            return False
        kept = []
        for placement in self.domains[i]:
            entry = self.problem.entry_for(self.sessions[i], placement)
            if any(not clashes(entry, self.sessions[j], other) for other in self.domains[j]):
                kept.append(placement)
        revised = len(kept) != len(self.domains[i])
        self.domains[i] = kept
        return revised

    def arc_consistency(self) -> bool:
        """AC-3 over the constraint graph. False if some domain was wiped out."""
        queue = deque((i, j) for i in range(len(self.sessions)) for j in self.neighbors[i])
        while queue:
            i, j = queue.popleft()
            if self.revise(i, j):
                if not self.domains[i]:
                    logger.debug("AC-3 emptied the domain of %s", self.sessions[i])
                    return False
                queue.extend((k, i) for k in self.neighbors[i] if k != j)
        return True

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def _select_variable(self, unassigned: set[int]) -> int:
        """Minimum remaining values, then highest degree."""
        return min(unassigned, key=lambda v: (len(self.domains[v]), -len(self.neighbors[v]), v))

    def _forward_check(self, var: int, entry: ScheduleEntry, unassigned: set[int]) -> tuple[list, bool]:
        """Prune neighbors' domains; report whether any of them was wiped out."""
        pruned: list[tuple[int, list[Placement]]] = []
        for j in self.neighbors[var] & unassigned:
            session = self.sessions[j]
            domain = self.domains[j]
            kept = [p for p in domain if not clashes(entry, session, p)]
            if len(kept) != len(domain):
                pruned.append((j, domain))
                self.domains[j] = kept
                if not kept:
                    return pruned, True
        return pruned, False

    def _restore(self, pruned: list[tuple[int, list[Placement]]]) -> None:
        for j, domain in reversed(pruned):
            self.domains[j] = domain

    def _search(self, unassigned: set[int], empty: list[int]) -> SolverResult:
        total = len(self.sessions)
        self._var_of = {id(s): i for i, s in enumerate(self.sessions)}
        index = ScheduleIndex()
        frames: list[_Frame] = []
        steps = 0
        backtracks = 0

        if unassigned:
            first = self._select_variable(unassigned)
            frames.append(_Frame(first, list(self.domains[first])))

        while frames:
            frame = frames[-1]
            if frame.entry is not None:
                index.remove(frame.entry)
                self._restore(frame.pruned)
                frame.entry, frame.pruned = None, []

            while frame.cursor < len(frame.values):
                placement = frame.values[frame.cursor]
                frame.cursor += 1
                steps += 1
                if steps > self.max_steps:
                    return SolverResult.failure(
                        f"No complete assignment found within {self.max_steps} steps",
                        FailureKind.BUDGET_EXHAUSTED,
                        metrics=self._metrics(backtracks, steps, len(index)),
                        unscheduled=[self.sessions[i] for i in sorted(unassigned | set(empty))],
                    )
                if steps % 100 == 0:
                    self.checkpoint(
                        5 + 90 * len(index) / total,
                        f"Assigned {len(index)}/{total} variables",
                        backtracks=backtracks,
                    )

                entry = self.problem.entry_for(self.sessions[frame.var], placement)
                if not index.is_free(entry):
                    continue
                index.insert(entry)
                pruned, wiped = self._forward_check(frame.var, entry, unassigned - {frame.var})
                if wiped:
                    self._restore(pruned)
                    index.remove(entry)
                    continue
                frame.entry, frame.pruned = entry, pruned
                break

            if frame.entry is None:
                frames.pop()
                unassigned.add(frame.var)
                backtracks += 1
                continue

            unassigned.discard(frame.var)
            if not unassigned:
                break
            nxt = self._select_variable(unassigned)
            frames.append(_Frame(nxt, list(self.domains[nxt])))

        if not frames and unassigned:
            return SolverResult.failure(
                "Search space exhausted: no consistent assignment exists",
                FailureKind.INFEASIBLE,
                metrics=self._metrics(backtracks, steps, 0),
                unscheduled=list(self.sessions),
            )

        solution = sorted(
            (f.entry for f in frames if f.entry is not None),
            key=lambda e: self._var_of[id(e.session)],
        )
        self.checkpoint(100, "CSP search complete", backtracks=backtracks)
        return SolverResult(
            success=True,
            solution=solution,
            metrics=self._metrics(backtracks, steps, len(solution)),
            unscheduled=[self.sessions[i] for i in empty],
        )

    def _metrics(self, backtracks: int, steps: int, assigned: int) -> dict:
        total = len(self.problem.sessions)
        return {
            "backtracks": backtracks,
            "steps": steps,
            "variables_assigned": assigned,
            "total_variables": total,
            "scheduled_sessions": assigned,
            "total_sessions": total,
            "satisfaction_rate": round(assigned / total * 100, 2) if total else 0.0,
        }
