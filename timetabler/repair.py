"""
Post-solve local search.

Every move here replaces one entry with another placement from the same
session's domain, and only when the new placement is conflict-free against
the rest of the schedule. A pass therefore never adds conflicts; it either
removes them or improves a quality aspect while keeping the schedule valid.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Iterable, Optional

from .data.models import OptimizationGoal
from .problem import Placement, SchedulingProblem
from .schedule import ScheduleEntry, ScheduleIndex, detect_conflicts
from .sessions import Session

logger = logging.getLogger(__name__)

MAX_BALANCE_MOVES_PER_GROUP = 10


class ScheduleRepairer:
    """
    Best-effort improvement passes over a finished schedule.

    Usage:
        repairer = ScheduleRepairer(problem)
        schedule = repairer.repair_conflicts(schedule)
        schedule = repairer.apply_goals(schedule, settings.optimization_goals)
    """

    def __init__(self, problem: SchedulingProblem):
        self.problem = problem
        self._domains: dict[str, list[Placement]] = {}
        self.moves = 0

    def domain(self, session: Session) -> list[Placement]:
        if session.id not in self._domains:
            self._domains[session.id] = self.problem.build_domain(session)
        return self._domains[session.id]

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    def _try_move(
        self,
        schedule: list[ScheduleEntry],
        index: ScheduleIndex,
        position: int,
        candidates: Iterable[Placement],
    ) -> bool:
        """Move ``schedule[position]`` to the first conflict-free candidate."""
        current = schedule[position]
        for placement in candidates:
            entry = self.problem.entry_for(current.session, placement)
            if not index.is_free(entry, ignore=current):
                continue
            index.remove(current)
            index.insert(entry)
            schedule[position] = entry
            self.moves += 1
            logger.debug("Moved %s -> %s", current, entry)
            return True
        return False

    def _reroom_then_reslot(self, entry: ScheduleEntry) -> list[Placement]:
        domain = self.domain(entry.session)
        same_time = [
            p for p in domain
            if p.slot.id == entry.slot_id and p.teacher_id == entry.teacher_id
            and p.classroom_id != entry.classroom_id
        ]
        elsewhere = [p for p in domain if p.slot.id != entry.slot_id]
        return same_time + elsewhere

    # -------------------------------------------------------------------------
    # Conflict repair
    # -------------------------------------------------------------------------

    def repair_conflicts(self, schedule: list[ScheduleEntry], rounds: int = 1) -> list[ScheduleEntry]:
        """Re-room or re-slot one side of each detected conflict."""
        schedule = list(schedule)
        for round_number in range(rounds):
            conflicts = detect_conflicts(schedule)
            if not conflicts:
                break
            logger.info("Repair round %d: %d conflicts", round_number + 1, len(conflicts))

            index = ScheduleIndex(schedule)
            repaired = 0
            for conflict in conflicts:
                first, second = conflict.indices
                # An earlier move may already have resolved this pair.
                if schedule[first] is not conflict.first or schedule[second] is not conflict.second:
                    continue
                for position in (second, first):
                    if self._try_move(schedule, index, position, self._reroom_then_reslot(schedule[position])):
                        repaired += 1
                        break
            if not repaired:
                break
        return schedule

    # -------------------------------------------------------------------------
    # Optimization goals
    # -------------------------------------------------------------------------

    def balance_days(self, schedule: list[ScheduleEntry]) -> list[ScheduleEntry]:
        """Move entries from a cohort's heaviest day to its lightest days."""
        schedule = list(schedule)
        index = ScheduleIndex(schedule)
        days = list(self.problem.settings.working_days)

        groups: dict[tuple, list[int]] = defaultdict(list)
        for position, entry in enumerate(schedule):
            session = entry.session
            groups[(session.cohort, session.division_id, session.batch_id)].append(position)

        for positions in groups.values():
            for _ in range(MAX_BALANCE_MOVES_PER_GROUP):
                load = {day: 0 for day in days}
                for position in positions:
                    load[schedule[position].day] = load.get(schedule[position].day, 0) + 1
                heaviest = max(load, key=load.get)
                lighter = sorted((d for d in load if load[heaviest] - load[d] >= 2), key=load.get)
                if not lighter:
                    break

                moved = False
                for position in positions:
                    entry = schedule[position]
                    if entry.day != heaviest:
                        continue
                    candidates = [
                        p for day in lighter for p in self.domain(entry.session)
                        if p.slot.day == day and p.teacher_id == entry.teacher_id
                    ]
                    if self._try_move(schedule, index, position, candidates):
                        moved = True
                        break
                if not moved:
                    break
        return schedule

    def respect_preferences(self, schedule: list[ScheduleEntry]) -> list[ScheduleEntry]:
        """Move entries out of the teacher's avoided windows."""
        schedule = list(schedule)
        index = ScheduleIndex(schedule)

        def avoided(teacher_id: str, placement_day, start: int) -> bool:
            teacher = self.problem.teacher(teacher_id)
            return teacher is not None and any(
                w.contains(placement_day, start) for w in teacher.preferences.avoid_time_slots
            )

        for position, entry in enumerate(schedule):
            if not avoided(entry.teacher_id, entry.day, entry.start):
                continue
            candidates = [
                p for p in self.domain(entry.session)
                if p.teacher_id == entry.teacher_id and not avoided(p.teacher_id, p.slot.day, p.start)
            ]
            self._try_move(schedule, index, position, candidates)
        return schedule

    def tighten_rooms(self, schedule: list[ScheduleEntry]) -> list[ScheduleEntry]:
        """Re-room each entry to the tightest fitting room that is free."""
        schedule = list(schedule)
        index = ScheduleIndex(schedule)

        def slack(classroom_id: str, session: Session) -> int:
            room = self.problem.classroom(classroom_id)
            return room.capacity - session.required_capacity if room else 0

        for position, entry in enumerate(schedule):
            current_slack = slack(entry.classroom_id, entry.session)
            candidates = sorted(
                (
                    p for p in self.domain(entry.session)
                    if p.slot.id == entry.slot_id and p.teacher_id == entry.teacher_id
                    and slack(p.classroom_id, entry.session) < current_slack
                ),
                key=lambda p: slack(p.classroom_id, entry.session),
            )
            self._try_move(schedule, index, position, candidates)
        return schedule

    def close_student_gaps(self, schedule: list[ScheduleEntry]) -> list[ScheduleEntry]:
        """Pull entries that follow a gap in their cohort's day earlier."""
        schedule = list(schedule)
        index = ScheduleIndex(schedule)

        by_group_day: dict[tuple, list[int]] = defaultdict(list)
        for position, entry in enumerate(schedule):
            session = entry.session
            by_group_day[(session.cohort, session.division_id, session.batch_id, entry.day)].append(position)

        for positions in by_group_day.values():
            positions.sort(key=lambda p: schedule[p].start)
            for previous, position in zip(positions, positions[1:]):
                before, entry = schedule[previous], schedule[position]
                if entry.start <= before.end:
                    continue
                candidates = sorted(
                    (
                        p for p in self.domain(entry.session)
                        if p.slot.day == entry.day and p.teacher_id == entry.teacher_id
                        and before.end <= p.start < entry.start
                    ),
                    key=lambda p: p.start,
                )
                self._try_move(schedule, index, position, candidates)
        return schedule

    def apply_goals(
        self,
        schedule: list[ScheduleEntry],
        goals: Iterable[OptimizationGoal],
    ) -> list[ScheduleEntry]:
        """Run the pass for each goal in order."""
        passes: dict[OptimizationGoal, Callable[[list[ScheduleEntry]], list[ScheduleEntry]]] = {
            OptimizationGoal.MINIMIZE_CONFLICTS: lambda s: self.repair_conflicts(s, rounds=2),
            OptimizationGoal.BALANCED_SCHEDULE: self.balance_days,
            OptimizationGoal.TEACHER_PREFERENCES: self.respect_preferences,
            OptimizationGoal.RESOURCE_OPTIMIZATION: self.tighten_rooms,
            OptimizationGoal.STUDENT_CONVENIENCE: self.close_student_gaps,
        }
        for goal in goals:
            step: Optional[Callable] = passes.get(goal)
            if step is None:
                continue
            before = self.moves
            schedule = step(schedule)
            logger.info("Goal %s: %d moves", goal.value, self.moves - before)
        return schedule
