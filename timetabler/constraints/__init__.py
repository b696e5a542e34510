"""
Constraint checking for the timetabling strategies.

The ``ConstraintChecker`` evaluates one candidate entry against a partial
schedule. It holds no schedule state of its own: callers pass either the
accepted entries or a ``ScheduleIndex`` built over them.

Hard constraints (all must pass):
- teacher, classroom and student-group overlap (see ``timetabler.schedule``)
- teacher and classroom availability windows
- classroom capacity, lab requirement and required features

Soft constraints (penalties subtracted from 1.0):
- teacher preferred/avoided windows
- room occupancy ratio
- weekly workload, consecutive hours, same-day gaps
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from timetabler.data.models import Classroom, Teacher, Weekday
from timetabler.schedule import ConflictType, ScheduleEntry, ScheduleIndex
from timetabler.sessions import Session

from .availability import classroom_unavailability_reason, teacher_unavailability_reason
from .rooms import (
    COMPUTERS_FEATURE,
    RoomSuitability,
    evaluate_room_suitability,
    feature_match_ratio,
    is_room_suitable,
    meets_lab_requirement,
    suitable_rooms,
)
from .soft import (
    SoftConstraintWeights,
    consecutive_penalty,
    gap_penalty,
    preference_penalty,
    utilization_penalty,
    workload_penalty,
)


# =============================================================================
# Violations
# =============================================================================

class ViolationType(str, Enum):
    TEACHER_CONFLICT = "TEACHER_CONFLICT"
    CLASSROOM_CONFLICT = "CLASSROOM_CONFLICT"
    STUDENT_GROUP_CONFLICT = "STUDENT_GROUP_CONFLICT"
    TEACHER_UNAVAILABLE = "TEACHER_UNAVAILABLE"
    CLASSROOM_UNAVAILABLE = "CLASSROOM_UNAVAILABLE"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    CLASSROOM_TYPE_MISMATCH = "CLASSROOM_TYPE_MISMATCH"
    MISSING_FEATURES = "MISSING_FEATURES"
    TEACHER_NOT_ELIGIBLE = "TEACHER_NOT_ELIGIBLE"
    UNKNOWN_TEACHER = "UNKNOWN_TEACHER"
    UNKNOWN_CLASSROOM = "UNKNOWN_CLASSROOM"


CONFLICT_VIOLATIONS = {
    ConflictType.TEACHER: ViolationType.TEACHER_CONFLICT,
    ConflictType.ROOM: ViolationType.CLASSROOM_CONFLICT,
    ConflictType.STUDENT_GROUP: ViolationType.STUDENT_GROUP_CONFLICT,
}


@dataclass(frozen=True)
class Violation:
    """One failed hard constraint for a candidate entry."""
    type: ViolationType
    message: str
    severity: str = "high"
    conflicting_entry: Optional[ScheduleEntry] = None


Existing = Union[ScheduleIndex, Iterable[ScheduleEntry]]


# =============================================================================
# Constraint Checker
# =============================================================================

class ConstraintChecker:
    """
    Stateless evaluator of hard validity and soft quality for one entry.

    Usage:
        checker = ConstraintChecker(teachers, classrooms)
        violations = checker.check_hard_constraints(candidate, accepted_entries)
        score = checker.evaluate_soft_constraints(candidate, accepted_entries)
    """

    def __init__(
        self,
        teachers: Iterable[Teacher],
        classrooms: Iterable[Classroom],
        weights: SoftConstraintWeights | None = None,
        min_feature_match: float = 1.0,
    ):
        """
        Initialize the checker.

        Args:
            teachers: All teachers of the problem
            classrooms: All classrooms of the problem
            weights: Soft penalty weights (uses defaults if None)
            min_feature_match: Fraction of a session's required features a room must have
        """
        self.teachers = {t.id: t for t in teachers}
        self.classrooms = {r.id: r for r in classrooms}
        self.weights = weights or SoftConstraintWeights()
        self.min_feature_match = min_feature_match

    # -------------------------------------------------------------------------
    # Hard constraints
    # -------------------------------------------------------------------------

    def check_hard_constraints(
        self,
        entry: ScheduleEntry,
        existing: Existing = (),
        ignore: Optional[ScheduleEntry] = None,
    ) -> list[Violation]:
        """Every hard constraint the entry breaks, not just the first."""
        violations = self.placement_violations(entry)
        index = _as_index(existing, entry)
        for conflict in index.conflicts_with(entry, ignore=ignore):
            violations.append(Violation(
                type=CONFLICT_VIOLATIONS[conflict.type],
                message=conflict.message,
                conflicting_entry=conflict.first,
            ))
        return violations

    def is_valid(
        self,
        entry: ScheduleEntry,
        existing: Existing = (),
        ignore: Optional[ScheduleEntry] = None,
    ) -> bool:
        return not self.check_hard_constraints(entry, existing, ignore)

    def placement_violations(self, entry: ScheduleEntry) -> list[Violation]:
        """Checks that depend only on the entry itself, not on other entries."""
        violations = []
        session = entry.session

        teacher = self.teachers.get(entry.teacher_id)
        if teacher is None:
            violations.append(Violation(
                ViolationType.UNKNOWN_TEACHER, f"Teacher {entry.teacher_id} does not exist"
            ))
        else:
            if entry.teacher_id not in session.eligible_teacher_ids:
                violations.append(Violation(
                    ViolationType.TEACHER_NOT_ELIGIBLE,
                    f"Teacher {entry.teacher_id} is not assigned to {session.id}",
                ))
            reason = teacher_unavailability_reason(teacher, entry.day, entry.start, entry.end)
            if reason:
                violations.append(Violation(ViolationType.TEACHER_UNAVAILABLE, reason))

        room = self.classrooms.get(entry.classroom_id)
        if room is None:
            violations.append(Violation(
                ViolationType.UNKNOWN_CLASSROOM, f"Classroom {entry.classroom_id} does not exist"
            ))
            return violations

        reason = classroom_unavailability_reason(room, entry.day, entry.start, entry.end)
        if reason:
            violations.append(Violation(ViolationType.CLASSROOM_UNAVAILABLE, reason))

        suitability = evaluate_room_suitability(room, session, self.min_feature_match)
        if not suitability.capacity_ok:
            violations.append(Violation(
                ViolationType.INSUFFICIENT_CAPACITY,
                f"Classroom {room.id} seats {room.capacity}, {session.id} needs {session.required_capacity}",
            ))
        if not suitability.lab_ok:
            violations.append(Violation(
                ViolationType.CLASSROOM_TYPE_MISMATCH,
                f"{session.id} needs a lab, {room.id} is a {room.type.value}",
            ))
        if suitability.feature_ratio < self.min_feature_match:
            violations.append(Violation(
                ViolationType.MISSING_FEATURES,
                f"Classroom {room.id} lacks {', '.join(suitability.missing_features)}",
                severity="medium",
            ))
        return violations

    def can_place(
        self,
        session: Session,
        teacher_id: str,
        classroom_id: str,
        day: Weekday,
        start: int,
        end: int,
        min_feature_match: float | None = None,
    ) -> bool:
        """Fast unary feasibility test used when building domains."""
        teacher = self.teachers.get(teacher_id)
        room = self.classrooms.get(classroom_id)
        if teacher is None or room is None:
            return False
        if min_feature_match is None:
            min_feature_match = self.min_feature_match
        return (
            teacher.is_available(day, start, end)
            and room.is_available(day, start, end)
            and is_room_suitable(room, session, min_feature_match)
        )

    # -------------------------------------------------------------------------
    # Soft constraints
    # -------------------------------------------------------------------------

    def evaluate_soft_constraints(
        self,
        entry: ScheduleEntry,
        existing: Existing = (),
        ignore: Optional[ScheduleEntry] = None,
    ) -> float:
        """Quality score in [0, 1] of placing ``entry`` next to ``existing``."""
        index = _as_index(existing, entry)
        score = 1.0

        teacher = self.teachers.get(entry.teacher_id)
        if teacher is not None:
            score -= preference_penalty(teacher, entry, self.weights)

            day_entries = [
                e for e in index.teacher_day(entry.teacher_id, entry.day)
                if e is not entry and e is not ignore
            ]
            day_entries.append(entry)
            day_entries.sort(key=lambda e: e.start)

            weekly = index.teacher_minutes(entry.teacher_id)
            if entry in index:
                weekly -= entry.duration
            if ignore is not None and ignore in index and ignore.teacher_id == entry.teacher_id:
                weekly -= ignore.duration
            weekly += entry.duration

            score -= workload_penalty(teacher, weekly, self.weights)
            score -= consecutive_penalty(
                entry, day_entries, teacher.preferences.max_consecutive_hours, self.weights
            )
            score -= gap_penalty(day_entries, self.weights)

        room = self.classrooms.get(entry.classroom_id)
        if room is not None:
            score -= utilization_penalty(room, entry, self.weights)

        return max(0.0, score)


def _as_index(existing: Existing, entry: ScheduleEntry) -> ScheduleIndex:
    if isinstance(existing, ScheduleIndex):
        return existing
    return ScheduleIndex(e for e in existing if e is not entry)


__all__ = [
    "COMPUTERS_FEATURE",
    "ConstraintChecker",
    "RoomSuitability",
    "SoftConstraintWeights",
    "Violation",
    "ViolationType",
    "evaluate_room_suitability",
    "feature_match_ratio",
    "is_room_suitable",
    "meets_lab_requirement",
    "suitable_rooms",
]
