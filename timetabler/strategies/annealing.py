"""
Simulated annealing.

The state is a full schedule. Energy per entry is 100 per hard conflict
plus 10 times its soft-score shortfall. Moves never change an entry's
teacher, so a move only affects the energy of entries on the same teacher
day or in conflict with the moved entries. Only those are re-scored.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Optional

from timetabler.data.models import EmptyDomainPolicy
from timetabler.problem import Placement
from timetabler.schedule import ScheduleEntry, ScheduleIndex, detect_conflicts

from .base import Algorithm, FailureKind, Solver, SolverResult

logger = logging.getLogger(__name__)

CONFLICT_ENERGY = 100.0
SOFT_ENERGY = 10.0
SUCCESS_ENERGY = 100.0
INITIAL_ATTEMPTS = 50


class SimulatedAnnealingSolver(Solver):
    """Metropolis acceptance with geometric cooling."""

    algorithm = Algorithm.SIMULATED_ANNEALING
    display_name = "Simulated Annealing"

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _prepare(self) -> list[int]:
        """Build domains and lookup tables; return positions with empty domains."""
        self.sessions = self.problem.sessions
        self.domains = self.problem.build_domains()
        self.valid: list[set[tuple[int, str, str]]] = []
        self.by_resources: list[dict[tuple[str, str], list[Placement]]] = []
        self.by_slot_teacher: list[dict[tuple[int, str], list[Placement]]] = []
        for domain in self.domains:
            self.valid.append({(p.slot.id, p.teacher_id, p.classroom_id) for p in domain})
            by_resources = defaultdict(list)
            by_slot_teacher = defaultdict(list)
            for p in domain:
                by_resources[(p.teacher_id, p.classroom_id)].append(p)
                by_slot_teacher[(p.slot.id, p.teacher_id)].append(p)
            self.by_resources.append(by_resources)
            self.by_slot_teacher.append(by_slot_teacher)
        return [i for i, d in enumerate(self.domains) if not d]

    def _initial_assignment(self) -> None:
        """Random feasible placement per session, conflicting only as a last resort."""
        self.entries: list[Optional[ScheduleEntry]] = [None] * len(self.sessions)
        self.index = ScheduleIndex()
        self.positions: dict[int, int] = {}
        self.flagged_initial = 0

        for i, session in enumerate(self.sessions):
            domain = self.domains[i]
            if not domain:
                continue
            entry = None
            for attempt in range(INITIAL_ATTEMPTS):
                candidate = self.problem.entry_for(session, self.random.choice(domain))
                if self.index.is_free(candidate):
                    entry = candidate
                    break
                if attempt == INITIAL_ATTEMPTS - 1:
                    entry = candidate.moved(flagged=True)
                    self.flagged_initial += 1
            self._place(i, entry)

        self.energies = [self._entry_energy(i) for i in range(len(self.sessions))]
        self.energy = sum(self.energies)

    # -------------------------------------------------------------------------
    # Energy bookkeeping
    # -------------------------------------------------------------------------

    def _place(self, i: int, entry: ScheduleEntry) -> None:
        self.entries[i] = entry
        self.index.insert(entry)
        self.positions[id(entry)] = i

    def _unplace(self, i: int) -> ScheduleEntry:
        entry = self.entries[i]
        self.index.remove(entry)
        del self.positions[id(entry)]
        self.entries[i] = None
        return entry

    def _entry_energy(self, i: int) -> float:
        entry = self.entries[i]
        if entry is None:
            return 0.0
        conflicts = len(self.index.conflicts_with(entry))
        soft = self.problem.checker.evaluate_soft_constraints(entry, self.index)
        return CONFLICT_ENERGY * conflicts + SOFT_ENERGY * (1 - soft)

    def _related(self, entry: ScheduleEntry) -> set[int]:
        """Positions whose energy depends on ``entry`` being where it is."""
        related = {self.positions[id(e)] for e in self.index.teacher_day(entry.teacher_id, entry.day)}
        related.update(self.positions[id(c.first)] for c in self.index.conflicts_with(entry))
        return related

    def _apply(self, changes: dict[int, ScheduleEntry]) -> None:
        """Swap in new entries and re-score every affected position."""
        affected = set(changes)
        for i in changes:
            affected |= self._related(self.entries[i])
        for i in changes:
            self._unplace(i)
        for i, entry in changes.items():
            self._place(i, entry)
        for entry in changes.values():
            affected |= self._related(entry)

        for i in affected:
            new_energy = self._entry_energy(i)
            self.energy += new_energy - self.energies[i]
            self.energies[i] = new_energy

    # -------------------------------------------------------------------------
    # Neighborhood
    # -------------------------------------------------------------------------

    def _neighbor(self, placed: list[int]) -> Optional[dict[int, ScheduleEntry]]:
        """Swap time/room (50%), re-slot (30%) or re-room (20%)."""
        roll = self.random.random()
        if roll < 0.5 and len(placed) >= 2:
            i, j = self.random.sample(placed, 2)
            a, b = self.entries[i], self.entries[j]
            new_a = self._relocated(i, b.slot_id, a.teacher_id, b.classroom_id)
            new_b = self._relocated(j, a.slot_id, b.teacher_id, a.classroom_id)
            if new_a is None or new_b is None:
                return None
            return {i: new_a, j: new_b}

        i = self.random.choice(placed)
        current = self.entries[i]
        if roll < 0.8:
            options = [
                p for p in self.by_resources[i][(current.teacher_id, current.classroom_id)]
                if p.slot.id != current.slot_id
            ] or self.domains[i]
        else:
            options = [
                p for p in self.by_slot_teacher[i][(current.slot_id, current.teacher_id)]
                if p.classroom_id != current.classroom_id
            ]
        if not options:
            return None
        return {i: self.problem.entry_for(self.sessions[i], self.random.choice(options))}

    def _relocated(self, i: int, slot_id: int, teacher_id: str, classroom_id: str) -> Optional[ScheduleEntry]:
        if (slot_id, teacher_id, classroom_id) not in self.valid[i]:
            return None
        for p in self.by_slot_teacher[i][(slot_id, teacher_id)]:
            if p.classroom_id == classroom_id:
                return self.problem.entry_for(self.sessions[i], p)
        return None

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    def _solve(self) -> SolverResult:
        if not self.problem.sessions:
            return SolverResult.failure("No sessions to schedule", FailureKind.INFEASIBLE)

        empty = self._prepare()
        policy = self.empty_domain_policy(None)
        if len(empty) == len(self.sessions) or (empty and policy == EmptyDomainPolicy.FAIL):
            return SolverResult.failure(
                f"{len(empty)} session(s) have no feasible placement",
                FailureKind.INFEASIBLE,
                unscheduled=[self.sessions[i] for i in empty],
            )

        self._initial_assignment()
        placed = [i for i, e in enumerate(self.entries) if e is not None]

        settings = self.settings
        temperature = settings.initial_temperature
        iteration = 0
        accepted = 0
        proposed = 0
        best_energy = self.energy
        best_entries = list(self.entries)
        best_energy_history = [best_energy]

        while temperature > settings.min_temperature and iteration < settings.max_iterations:
            for _ in range(settings.iterations_per_temperature):
                if iteration >= settings.max_iterations:
                    break
                iteration += 1
                changes = self._neighbor(placed)
                if changes is None:
                    continue
                proposed += 1

                previous = {i: self.entries[i] for i in changes}
                before = self.energy
                self._apply(changes)
                delta = self.energy - before

                if delta <= 0 or self.random.random() < math.exp(-delta / temperature):
                    accepted += 1
                    if self.energy < best_energy:
                        best_energy = self.energy
                        best_entries = list(self.entries)
                else:
                    self._apply(previous)

            temperature *= settings.cooling_rate
            best_energy_history.append(best_energy)
            self.checkpoint(
                iteration / settings.max_iterations * 100,
                f"Iteration {iteration}, temperature {temperature:.2f}, best energy {best_energy:.2f}",
                iteration=iteration,
                temperature=temperature,
                energy=best_energy,
            )
            if best_energy == 0:
                break

        solution = [e for e in best_entries if e is not None]
        violations = len(detect_conflicts(solution))
        metrics = {
            "iterations": iteration,
            "final_temperature": round(temperature, 6),
            "best_energy": round(best_energy, 4),
            "best_energy_history": best_energy_history,
            "acceptance_rate": round(accepted / proposed, 4) if proposed else 0.0,
            "initial_fallbacks": self.flagged_initial,
            "violations": violations,
            "scheduled_sessions": len(solution),
            "total_sessions": len(self.sessions),
        }
        unscheduled = [self.sessions[i] for i in empty]

        if violations == 0 or best_energy < SUCCESS_ENERGY:
            return SolverResult(success=True, solution=solution, metrics=metrics, unscheduled=unscheduled)
        return SolverResult.failure(
            f"Solution has {violations} constraint violations",
            FailureKind.BUDGET_EXHAUSTED,
            solution=solution,
            metrics=metrics,
            unscheduled=unscheduled,
        )
