"""
Session extraction.

Expands each course's theory/practical/tutorial requirements, divisions
and batches into the atomic units the strategies place on the timetable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .data.models import Course, Priority, SessionType, Teacher

logger = logging.getLogger(__name__)

SESSION_TYPE_ORDER = {t: i for i, t in enumerate(SessionType)}
PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass(frozen=True)
class Session:
    """One weekly occurrence of a course component that needs a placement."""
    course_id: str
    course_code: str
    session_type: SessionType
    occurrence: int
    duration: int
    eligible_teacher_ids: tuple[str, ...]
    required_capacity: int
    student_count: int
    cohort: tuple[str, int, int]
    required_features: tuple[str, ...] = ()
    requires_lab: bool = False
    division_id: Optional[str] = None
    batch_id: Optional[str] = None
    is_elective: bool = False
    department: Optional[str] = None
    priority: Priority = Priority.MEDIUM

    @property
    def id(self) -> str:
        parts = [self.course_id, self.session_type.value, str(self.occurrence)]
        if self.division_id:
            parts.append(self.division_id)
        if self.batch_id:
            parts.append(self.batch_id)
        return "-".join(parts)

    @property
    def constraint_count(self) -> int:
        return len(self.eligible_teacher_ids) + (2 if self.requires_lab else 0)

    @property
    def is_practical(self) -> bool:
        return self.session_type == SessionType.PRACTICAL

    def __str__(self) -> str:
        return f"{self.course_code} {self.session_type.value} #{self.occurrence}" + (
            f" [{self.division_id}{'/' + self.batch_id if self.batch_id else ''}]"
            if self.division_id else ""
        )


def extract_sessions(
    courses: Iterable[Course],
    teachers: Optional[Iterable[Teacher]] = None,
) -> list[Session]:
    """
    Expand courses into Sessions.

    Order is course, then session type (Theory, Practical, Tutorial), then
    occurrence, then division and batch. Sessions nobody can teach are
    logged and dropped. When ``teachers`` is given, assigned teacher ids
    that do not exist are not counted as eligible.
    """
    known = {t.id for t in teachers} if teachers is not None else None
    sessions: list[Session] = []
    dropped = 0

    for course in courses:
        for session_type, spec in course.sessions.active():
            eligible = [tid for tid in course.teachers_for(session_type) if known is None or tid in known]
            if not eligible:
                logger.warning(
                    "Dropping %s %s sessions of %s: no assigned teacher covers this type",
                    spec.sessions_per_week, session_type.value, course.id,
                )
                dropped += spec.sessions_per_week
                continue

            base_capacity = spec.min_room_capacity or course.enrolled_students
            groups = _cohort_groups(course, base_capacity)

            for occurrence in range(1, spec.sessions_per_week + 1):
                for division_id, batch_id, students, capacity in groups:
                    sessions.append(Session(
                        course_id=course.id,
                        course_code=course.code or course.id,
                        session_type=session_type,
                        occurrence=occurrence,
                        duration=spec.duration,
                        eligible_teacher_ids=tuple(eligible),
                        required_capacity=capacity,
                        student_count=students,
                        cohort=course.cohort,
                        required_features=tuple(spec.required_features),
                        requires_lab=spec.requires_lab,
                        division_id=division_id,
                        batch_id=batch_id,
                        is_elective=course.is_elective,
                        department=course.department,
                        priority=course.priority,
                    ))

    logger.info("Extracted %d sessions (%d dropped)", len(sessions), dropped)
    return sessions


def _cohort_groups(
    course: Course,
    base_capacity: int,
) -> list[tuple[Optional[str], Optional[str], int, int]]:
    """(division_id, batch_id, student_count, required_capacity) per group taught separately."""
    if not course.divisions:
        return [(None, None, course.enrolled_students, base_capacity)]

    groups = []
    for division in course.divisions:
        division_size = division.student_count
        if division_size is None:
            division_size = course.enrolled_students // len(course.divisions)
        if division.batches:
            for batch in division.batches:
                groups.append((division.division_id, batch.batch_id, batch.student_count, batch.student_count))
        else:
            groups.append((division.division_id, None, division_size, division_size))
    return groups


def sort_sessions_by_priority(
    sessions: list[Session],
    teachers: Iterable[Teacher],
    by_constraint_count: bool = True,
) -> list[Session]:
    """
    Order sessions for constructive search.

    Sessions that a visiting or guest teacher can take come first. With
    ``by_constraint_count`` the most constrained sessions follow, otherwise
    the incoming order is kept within each group.
    """
    priority_ids = {t.id for t in teachers if t.is_priority}

    def has_priority_teacher(session: Session) -> int:
        return 0 if any(tid in priority_ids for tid in session.eligible_teacher_ids) else 1

    if not by_constraint_count:
        return sorted(sessions, key=has_priority_teacher)

    return sorted(
        sessions,
        key=lambda s: (
            has_priority_teacher(s),
            -s.constraint_count,
            PRIORITY_ORDER[s.priority],
            s.course_id,
            SESSION_TYPE_ORDER[s.session_type],
            s.occurrence,
            s.division_id or "",
            s.batch_id or "",
        ),
    )
