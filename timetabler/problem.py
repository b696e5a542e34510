"""
The read-only problem bundle handed to every strategy.

A ``SchedulingProblem`` is built once per solve. It holds the normalized
inputs, the extracted sessions, the generated time slots and a constraint
checker. It also knows how to enumerate a session's domain of feasible
placements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .constraints import ConstraintChecker, suitable_rooms
from .data.models import Classroom, Course, SolverSettings, Teacher
from .schedule import ScheduleEntry
from .sessions import Session, extract_sessions
from .timeslots import TimeSlot, generate_time_slots, session_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    """One domain value: where, when and by whom a session could be taught."""
    slot: TimeSlot
    teacher_id: str
    classroom_id: str
    start: int
    end: int

    @property
    def sort_key(self) -> tuple[int, int]:
        return self.slot.sort_key


@dataclass
class SchedulingProblem:
    """Inputs and derived data shared read-only by the strategies of one solve."""
    teachers: list[Teacher]
    classrooms: list[Classroom]
    courses: list[Course]
    settings: SolverSettings
    sessions: list[Session]
    time_slots: list[TimeSlot]
    checker: ConstraintChecker
    _teachers_by_id: dict[str, Teacher] = field(default_factory=dict, repr=False)
    _classrooms_by_id: dict[str, Classroom] = field(default_factory=dict, repr=False)
    _slots_by_id: dict[int, TimeSlot] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self._teachers_by_id = {t.id: t for t in self.teachers}
        self._classrooms_by_id = {r.id: r for r in self.classrooms}
        self._slots_by_id = {s.id: s for s in self.time_slots}
        self.day_end = self.settings.end_minutes
        self.breaks = self.settings.break_windows

    @classmethod
    def build(
        cls,
        teachers: Iterable[Teacher],
        classrooms: Iterable[Classroom],
        courses: Iterable[Course],
        settings: SolverSettings | None = None,
    ) -> SchedulingProblem:
        settings = settings or SolverSettings()
        teachers = list(teachers)
        classrooms = list(classrooms)
        courses = list(courses)
        problem = cls(
            teachers=teachers,
            classrooms=classrooms,
            courses=courses,
            settings=settings,
            sessions=extract_sessions(courses, teachers),
            time_slots=generate_time_slots(settings),
            checker=ConstraintChecker(teachers, classrooms),
        )
        logger.debug(
            "Problem built: %d sessions, %d slots, %d teachers, %d classrooms",
            len(problem.sessions), len(problem.time_slots), len(teachers), len(classrooms),
        )
        return problem

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def teacher(self, teacher_id: str) -> Optional[Teacher]:
        return self._teachers_by_id.get(teacher_id)

    def classroom(self, classroom_id: str) -> Optional[Classroom]:
        return self._classrooms_by_id.get(classroom_id)

    def slot(self, slot_id: int) -> TimeSlot:
        return self._slots_by_id[slot_id]

    def window(self, slot: TimeSlot, duration: int) -> Optional[tuple[int, int]]:
        return session_window(slot, duration, self.day_end, self.breaks)

    # -------------------------------------------------------------------------
    # Domains
    # -------------------------------------------------------------------------

    def build_domain(self, session: Session, min_feature_match: float | None = None) -> list[Placement]:
        """
        Feasible placements for a session, ignoring other sessions.

        Ordered by slot (day, then start), then by the session's teacher
        order, then by tightest room fit.
        """
        if min_feature_match is None:
            min_feature_match = self.checker.min_feature_match
        rooms = suitable_rooms(self.classrooms, session, min_feature_match)
        domain = []
        for slot in self.time_slots:
            window = self.window(slot, session.duration)
            if window is None:
                continue
            start, end = window
            for teacher_id in session.eligible_teacher_ids:
                teacher = self.teacher(teacher_id)
                if teacher is None or not teacher.is_available(slot.day, start, end):
                    continue
                for room in rooms:
                    if room.is_available(slot.day, start, end):
                        domain.append(Placement(slot, teacher_id, room.id, start, end))
        return domain

    def build_domains(self, min_feature_match: float | None = None) -> list[list[Placement]]:
        """Domains aligned with ``self.sessions``."""
        return [self.build_domain(s, min_feature_match) for s in self.sessions]

    def entry_for(self, session: Session, placement: Placement, flagged: bool = False) -> ScheduleEntry:
        return ScheduleEntry(
            session=session,
            slot_id=placement.slot.id,
            day=placement.slot.day,
            start=placement.start,
            end=placement.end,
            teacher_id=placement.teacher_id,
            classroom_id=placement.classroom_id,
            flagged=flagged,
        )

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Search-space proxy used to tune strategy parameters."""
        return len(self.teachers) * len(self.classrooms) * len(self.courses)

    @property
    def department_count(self) -> int:
        return len({c.department for c in self.courses if c.department})
