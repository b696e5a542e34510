"""
Soft constraint penalties.

Each function returns a penalty in [0, 1]. The checker subtracts the sum
from a starting score of 1.0 and clamps at zero.
"""

from __future__ import annotations

from dataclasses import dataclass

from timetabler.data.models import Classroom, Teacher
from timetabler.schedule import ScheduleEntry


@dataclass
class SoftConstraintWeights:
    """Configurable penalty weights for soft constraints."""
    outside_preferred: float = 0.1
    in_avoided: float = 0.2
    underused_room: float = 0.15  # times (1 - occupancy) below 50%
    overfull_room: float = 0.25  # times (occupancy - 1) above 100%
    workload: float = 0.2  # per 10% of max hours above 90%
    consecutive: float = 0.15  # per session over the limit
    gaps: float = 0.1  # per hour of gaps above the allowance

    underused_threshold: float = 0.5
    workload_threshold: float = 0.9
    gap_allowance_minutes: int = 120
    max_counted_gap_minutes: int = 180


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def preference_penalty(
    teacher: Teacher,
    entry: ScheduleEntry,
    weights: SoftConstraintWeights,
) -> float:
    """Penalty for teaching outside preferred windows or inside avoided ones."""
    prefs = teacher.preferences
    penalty = 0.0
    if prefs.preferred_time_slots and not any(
        w.contains(entry.day, entry.start) for w in prefs.preferred_time_slots
    ):
        penalty += weights.outside_preferred
    if any(w.contains(entry.day, entry.start) for w in prefs.avoid_time_slots):
        penalty += weights.in_avoided
    return _clamp(penalty)


def utilization_penalty(
    room: Classroom,
    entry: ScheduleEntry,
    weights: SoftConstraintWeights,
) -> float:
    """Penalty for a room that is much too big or too small for the group."""
    if room.capacity <= 0:
        return 1.0
    occupancy = entry.session.student_count / room.capacity
    if occupancy < weights.underused_threshold:
        return _clamp(weights.underused_room * (1 - occupancy))
    if occupancy > 1:
        return _clamp(weights.overfull_room * (occupancy - 1))
    return 0.0


def workload_penalty(
    teacher: Teacher,
    weekly_minutes: int,
    weights: SoftConstraintWeights,
) -> float:
    """Penalty once weekly load passes 90% of the teacher's maximum."""
    load = weekly_minutes / 60 / teacher.max_hours_per_week
    if load > weights.workload_threshold:
        return _clamp(weights.workload * (load - weights.workload_threshold) / 0.1)
    return 0.0


def consecutive_penalty(
    entry: ScheduleEntry,
    day_entries: list[ScheduleEntry],
    max_consecutive_hours: int,
    weights: SoftConstraintWeights,
) -> float:
    """
    Penalty for the back-to-back run containing ``entry``, charged per
    session beyond ``max_consecutive_hours``.

    ``day_entries`` are the teacher's entries that day, including ``entry``,
    sorted by start. Entries are back-to-back when one starts exactly when
    the previous ends.
    """
    run_start = run_end = None
    run_length = 0
    for other in day_entries:
        if run_end is not None and other.start == run_end:
            run_end = other.end
            run_length += 1
        else:
            if run_start is not None and run_start <= entry.start < run_end:
                break
            run_start, run_end = other.start, other.end
            run_length = 1
    if run_start is None or not (run_start <= entry.start < run_end):
        return 0.0

    if run_length > max_consecutive_hours:
        return _clamp(weights.consecutive * (run_length - max_consecutive_hours))
    return 0.0


def gap_penalty(day_entries: list[ScheduleEntry], weights: SoftConstraintWeights) -> float:
    """Penalty for idle time between a teacher's sessions on one day."""
    total = 0
    for previous, current in zip(day_entries, day_entries[1:]):
        gap = current.start - previous.end
        if 0 < gap <= weights.max_counted_gap_minutes:
            total += gap
    if total > weights.gap_allowance_minutes:
        return _clamp(weights.gaps * (total - weights.gap_allowance_minutes) / 60)
    return 0.0
