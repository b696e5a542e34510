"""
Genetic algorithm.

A chromosome holds one gene per session; a gene is a (slot id, teacher id,
classroom id) triple drawn from that session's valid placements. Fitness
blends the hard-violation rate, the mean soft score and a schedule-shape
score (daily balance, student gaps, room usage). Elites are carried over
unchanged, so the best fitness never drops between generations.
"""

from __future__ import annotations

import logging
import statistics
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from timetabler.data.models import EmptyDomainPolicy, SolverSettings
from timetabler.problem import Placement, SchedulingProblem
from timetabler.schedule import ScheduleEntry, ScheduleIndex
from timetabler.sessions import Session

from .base import Algorithm, CancellationToken, FailureKind, Solver, SolverResult

logger = logging.getLogger(__name__)

Gene = tuple[int, str, str]

EARLY_EXIT_FITNESS = 0.95
CONVERGENCE_EPSILON = 1e-3


@dataclass
class EvaluationResult:
    fitness: float
    hard_violations: int
    violation_rate: float
    soft_score: float
    optimization_score: float


class GeneticSolver(Solver):
    """Tournament selection, two-point crossover with repair, elitism."""

    algorithm = Algorithm.GENETIC
    display_name = "Genetic Algorithm"

    def __init__(
        self,
        problem: SchedulingProblem,
        settings: SolverSettings | None = None,
        cancel_token: CancellationToken | None = None,
        initial_solution: Optional[list[ScheduleEntry]] = None,
    ):
        super().__init__(problem, settings, cancel_token)
        self.initial_solution = initial_solution or []
        self._cache: dict[tuple[Gene, ...], EvaluationResult] = {}

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _prepare(self) -> None:
        self.sessions: list[Session] = self.problem.sessions
        self.options: list[list[Gene]] = []
        self.placements: list[dict[Gene, Placement]] = []
        for domain in self.problem.build_domains():
            by_gene = {(p.slot.id, p.teacher_id, p.classroom_id): p for p in domain}
            self.placements.append(by_gene)
            self.options.append(list(by_gene))

        self.total_slot_minutes = sum(s.end - s.start for s in self.problem.time_slots)

    def _drop_positions(self, positions: set[int]) -> list[Session]:
        """Remove sessions from the chromosome layout and return them."""
        dropped = [self.sessions[i] for i in sorted(positions)]
        keep = [i for i in range(len(self.sessions)) if i not in positions]
        self.sessions = [self.sessions[i] for i in keep]
        self.options = [self.options[i] for i in keep]
        self.placements = [self.placements[i] for i in keep]
        return dropped

    def _is_valid(self, position: int, gene: Gene) -> bool:
        return gene in self.placements[position]

    def _random_gene(self, position: int) -> Gene:
        options = self.options[position]
        if options:
            return self.random.choice(options)
        # No valid placement exists: draw anything and let decoding flag it.
        session = self.sessions[position]
        slot = self.random.choice(self.problem.time_slots)
        teacher_ids = session.eligible_teacher_ids or tuple(t.id for t in self.problem.teachers)
        return (
            slot.id,
            self.random.choice(teacher_ids),
            self.random.choice(self.problem.classrooms).id,
        )

    def _random_individual(self) -> list[Gene]:
        return [self._random_gene(i) for i in range(len(self.sessions))]

    def _seeded_individual(self) -> list[Gene]:
        by_session = {e.session.id: e for e in self.initial_solution}
        genes = []
        for i, session in enumerate(self.sessions):
            entry = by_session.get(session.id)
            gene = (entry.slot_id, entry.teacher_id, entry.classroom_id) if entry else None
            genes.append(gene if gene is not None and self._is_valid(i, gene) else self._random_gene(i))
        return genes

    def _initial_population(self, size: int) -> list[list[Gene]]:
        population = []
        if self.initial_solution:
            seed = self._seeded_individual()
            population.append(seed)
            for _ in range(max(0, size // 5 - 1)):
                population.append(self._mutate(list(seed)))
        while len(population) < size:
            population.append(self._random_individual())
        return population

    # -------------------------------------------------------------------------
    # Decoding and fitness
    # -------------------------------------------------------------------------

    def decode(self, genes: list[Gene]) -> list[ScheduleEntry]:
        entries = []
        for i, gene in enumerate(genes):
            session = self.sessions[i]
            placement = self.placements[i].get(gene)
            if placement is not None:
                entries.append(self.problem.entry_for(session, placement))
                continue
            slot_id, teacher_id, classroom_id = gene
            slot = self.problem.slot(slot_id)
            entries.append(ScheduleEntry(
                session=session,
                slot_id=slot_id,
                day=slot.day,
                start=slot.start,
                end=slot.start + session.duration,
                teacher_id=teacher_id,
                classroom_id=classroom_id,
                flagged=True,
            ))
        return entries

    def evaluate(self, genes: list[Gene]) -> EvaluationResult:
        key = tuple(genes)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        entries = self.decode(genes)
        index = ScheduleIndex()
        violations = 0
        for entry in entries:
            violations += len({c.type for c in index.conflicts_with(entry)})
            if entry.flagged:
                violations += 1
            index.insert(entry)

        checks = 3 * len(entries)
        violation_rate = min(1.0, violations / checks) if checks else 0.0
        soft = (
            statistics.fmean(self.problem.checker.evaluate_soft_constraints(e, index) for e in entries)
            if entries else 0.0
        )
        shape = self.optimization_score(entries)

        w_hard, w_soft, w_opt = self.settings.fitness_weights
        result = EvaluationResult(
            fitness=w_hard * (1 - violation_rate) + w_soft * soft + w_opt * shape,
            hard_violations=violations,
            violation_rate=violation_rate,
            soft_score=soft,
            optimization_score=shape,
        )
        self._cache[key] = result
        return result

    def optimization_score(self, entries: list[ScheduleEntry]) -> float:
        """Mean of daily balance, student-gap and room-usage scores, each in [0, 1]."""
        if not entries:
            return 0.0

        per_day: dict = defaultdict(int)
        for day in self.settings.working_days:
            per_day[day] = 0
        for entry in entries:
            per_day[entry.day] += 1
        balance = 1 / (1 + statistics.pvariance(per_day.values()))

        by_cohort_day: dict = defaultdict(list)
        for entry in entries:
            by_cohort_day[(entry.session.cohort, entry.session.division_id, entry.day)].append(entry)
        gap_hours = 0.0
        for day_entries in by_cohort_day.values():
            day_entries.sort(key=lambda e: e.start)
            for previous, current in zip(day_entries, day_entries[1:]):
                gap_hours += max(0, current.start - previous.end) / 60
        gaps = 1 / (1 + gap_hours / len(entries))

        capacity_minutes = self.total_slot_minutes * max(1, len(self.problem.classrooms))
        booked = sum(e.duration for e in entries)
        usage = min(1.0, (booked / capacity_minutes) * 2) if capacity_minutes else 0.0

        return (balance + gaps + usage) / 3

    # -------------------------------------------------------------------------
    # Operators
    # -------------------------------------------------------------------------

    def _select(self, population: list[list[Gene]], evaluations: list[EvaluationResult]) -> list[Gene]:
        k = min(self.settings.tournament_size, len(population))
        contenders = self.random.sample(range(len(population)), k)
        best_index = max(contenders, key=lambda idx: evaluations[idx].fitness)
        return population[best_index]

    def _crossover(self, parent_a: list[Gene], parent_b: list[Gene]) -> tuple[list[Gene], list[Gene]]:
        """Two-point crossover; genes outside the segment come from the other parent when valid."""
        n = len(parent_a)
        if n < 2:
            return list(parent_a), list(parent_b)
        start, end = sorted(self.random.sample(range(n + 1), 2))
        return (
            self._repair_child(parent_a, parent_b, start, end),
            self._repair_child(parent_b, parent_a, start, end),
        )

    def _repair_child(self, segment_parent: list[Gene], other: list[Gene], start: int, end: int) -> list[Gene]:
        child = []
        for i in range(len(segment_parent)):
            if start <= i < end:
                child.append(segment_parent[i])
            elif self._is_valid(i, other[i]) or not self.options[i]:
                child.append(other[i])
            else:
                child.append(self._random_gene(i))
        return child

    def _mutate(self, genes: list[Gene]) -> list[Gene]:
        """Apply one of swap (40%), insertion (30%) or inversion (30%)."""
        n = len(genes)
        if n == 0:
            return genes
        roll = self.random.random()
        if roll < 0.4 and n >= 2:
            i, j = self.random.sample(range(n), 2)
            swapped_i = (genes[j][0], genes[i][1], genes[i][2])
            swapped_j = (genes[i][0], genes[j][1], genes[j][2])
            if self._is_valid(i, swapped_i) and self._is_valid(j, swapped_j):
                genes[i], genes[j] = swapped_i, swapped_j
        elif roll < 0.7 or n < 2:
            i = self.random.randrange(n)
            genes[i] = self._random_gene(i)
        else:
            start, end = sorted(self.random.sample(range(n), 2))
            slots = [genes[k][0] for k in range(start, end + 1)][::-1]
            for offset, k in enumerate(range(start, end + 1)):
                candidate = (slots[offset], genes[k][1], genes[k][2])
                if self._is_valid(k, candidate):
                    genes[k] = candidate
        return genes

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    def _solve(self) -> SolverResult:
        if not self.problem.sessions:
            return SolverResult.failure("No sessions to schedule", FailureKind.INFEASIBLE)
        if not self.problem.time_slots or not self.problem.classrooms:
            return SolverResult.failure("No time slots or classrooms to schedule into", FailureKind.INFEASIBLE)

        self._prepare()
        empty = [i for i, options in enumerate(self.options) if not options]
        policy = self.empty_domain_policy(None)
        if len(empty) == len(self.sessions) or (empty and policy == EmptyDomainPolicy.FAIL):
            return SolverResult.failure(
                f"{len(empty)} session(s) have no feasible placement",
                FailureKind.INFEASIBLE,
                unscheduled=[self.sessions[i] for i in empty],
            )
        skipped: list[Session] = []
        if empty and policy == EmptyDomainPolicy.SKIP:
            logger.warning("GA: skipping %d sessions with no valid genes", len(empty))
            skipped = self._drop_positions(set(empty))
        elif empty:
            logger.warning("GA: %d sessions have no valid genes and will be flagged", len(empty))

        size = min(self.settings.population_size, 100)
        max_generations = min(self.settings.max_generations, 300)
        elite_count = min(self.settings.elite_size, size - 1)

        population = self._initial_population(size)
        fitness_history: list[float] = []
        stagnant = 0
        generation = 0

        for generation in range(1, max_generations + 1):
            evaluations = [self.evaluate(genes) for genes in population]
            ranked = sorted(range(len(population)), key=lambda idx: evaluations[idx].fitness, reverse=True)
            population = [population[idx] for idx in ranked]
            evaluations = [evaluations[idx] for idx in ranked]

            best = evaluations[0].fitness
            if fitness_history and abs(best - fitness_history[-1]) < CONVERGENCE_EPSILON:
                stagnant += 1
            else:
                stagnant = 0
            fitness_history.append(best)

            self.checkpoint(
                generation / max_generations * 100,
                f"Generation {generation}/{max_generations}, best fitness {best:.4f}",
                generation=generation,
                fitness=best,
            )

            if best > EARLY_EXIT_FITNESS:
                logger.debug("GA: early exit at generation %d (fitness %.4f)", generation, best)
                break
            if stagnant >= self.settings.convergence_generations:
                logger.debug("GA: converged at generation %d", generation)
                break
            if generation == max_generations:
                break

            next_population = [list(genes) for genes in population[:elite_count]]
            while len(next_population) < size:
                parent_a = self._select(population, evaluations)
                parent_b = self._select(population, evaluations)
                if self.random.random() < self.settings.crossover_rate:
                    children = self._crossover(parent_a, parent_b)
                else:
                    children = (list(parent_a), list(parent_b))
                for child in children:
                    if self.random.random() < self.settings.mutation_rate:
                        child = self._mutate(child)
                    if len(next_population) < size:
                        next_population.append(child)
            population = next_population

        best_genes = population[0]
        best_eval = self.evaluate(best_genes)
        entries = self.decode(best_genes)
        solution = [e for e in entries if not e.flagged]
        unscheduled = skipped + [e.session for e in entries if e.flagged]

        metrics = {
            "generations": generation,
            "final_fitness": round(best_eval.fitness, 6),
            "fitness_history": fitness_history,
            "population_size": size,
            "hard_violations": best_eval.hard_violations,
            "soft_score": round(best_eval.soft_score, 4),
            "optimization_score": round(best_eval.optimization_score, 4),
            "scheduled_sessions": len(solution),
            "total_sessions": len(self.problem.sessions),
        }
        if not solution:
            return SolverResult.failure(
                "Genetic algorithm produced no valid placements",
                FailureKind.INFEASIBLE,
                metrics=metrics,
                unscheduled=unscheduled,
            )
        return SolverResult(success=True, solution=solution, metrics=metrics, unscheduled=unscheduled)
