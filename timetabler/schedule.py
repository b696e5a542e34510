"""
Schedule entries, conflicts and the occupancy index shared by every strategy.

All pairwise rules (teacher, room and cohort overlap, including the lab
co-location and elective exceptions) live in ``pair_conflicts``. The
``ScheduleIndex`` buckets entries by (resource, day) so a candidate is only
compared with entries it could possibly clash with.
"""

from __future__ import annotations

import dataclasses
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

from .data.models import Weekday, minutes_to_time, windows_overlap
from .sessions import Session


# =============================================================================
# Entries and Conflicts
# =============================================================================

@dataclass(frozen=True, eq=False)
class ScheduleEntry:
    """A session bound to a day, a time window, a teacher and a classroom.

    Entries compare by identity so that an index removes exactly the
    object that was inserted.
    """
    session: Session
    slot_id: int
    day: Weekday
    start: int
    end: int
    teacher_id: str
    classroom_id: str
    flagged: bool = False

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)

    @property
    def duration(self) -> int:
        return self.end - self.start

    def overlaps(self, other: ScheduleEntry) -> bool:
        return self.day == other.day and windows_overlap(self.start, self.end, other.start, other.end)

    def moved(self, **changes) -> ScheduleEntry:
        """Copy with some fields replaced."""
        return dataclasses.replace(self, **changes)

    def __str__(self) -> str:
        return (
            f"{self.session} @ {self.day.value} {self.start_time}-{self.end_time} "
            f"({self.teacher_id}, {self.classroom_id})"
        )


class ConflictType(str, Enum):
    TEACHER = "teacher_conflict"
    ROOM = "room_conflict"
    STUDENT_GROUP = "student_conflict"


@dataclass(frozen=True)
class Conflict:
    """Pairwise violation between two entries.

    ``indices`` are positions in the schedule the entries came from; -1
    marks a candidate that is not part of it.
    """
    type: ConflictType
    first: ScheduleEntry
    second: ScheduleEntry
    indices: tuple[int, int] = (-1, -1)
    severity: str = "high"

    @property
    def message(self) -> str:
        if self.type == ConflictType.TEACHER:
            what = f"Teacher {self.first.teacher_id} double-booked"
        elif self.type == ConflictType.ROOM:
            what = f"Classroom {self.first.classroom_id} double-booked"
        else:
            what = f"Students of {'/'.join(map(str, self.first.session.cohort))} double-booked"
        return (
            f"{what} on {self.first.day.value}: {self.first.session.id} "
            f"{self.first.start_time}-{self.first.end_time} vs {self.second.session.id} "
            f"{self.second.start_time}-{self.second.end_time}"
        )


# =============================================================================
# Pairwise Rules
# =============================================================================

def same_cohort(a: Session, b: Session) -> bool:
    """True if some student attends both sessions.

    Sessions share students when program, year and semester match, unless
    they name different divisions or different batches.
    """
    if a.cohort != b.cohort:
        return False
    if a.division_id and b.division_id and a.division_id != b.division_id:
        return False
    if a.batch_id and b.batch_id and a.batch_id != b.batch_id:
        return False
    return True


def lab_can_share(a: Session, b: Session, teacher_a: str, teacher_b: str) -> bool:
    """Two practicals of different courses with different teachers may share a lab."""
    return (
        a.is_practical and b.is_practical
        and teacher_a != teacher_b
        and a.course_id != b.course_id
    )


def electives_can_overlap(a: Session, b: Session) -> bool:
    """Students pick one of two electives, so different elective courses may overlap."""
    return a.is_elective and b.is_elective and a.course_id != b.course_id


def pair_conflicts(a: ScheduleEntry, b: ScheduleEntry) -> list[ConflictType]:
    """Conflict types between two entries, empty if they can coexist."""
    if not a.overlaps(b):
        return []

    found = []
    if a.teacher_id == b.teacher_id:
        found.append(ConflictType.TEACHER)
    if a.classroom_id == b.classroom_id and not lab_can_share(a.session, b.session, a.teacher_id, b.teacher_id):
        found.append(ConflictType.ROOM)
    if same_cohort(a.session, b.session) and not electives_can_overlap(a.session, b.session):
        found.append(ConflictType.STUDENT_GROUP)
    return found


# =============================================================================
# Schedule Index
# =============================================================================

class ScheduleIndex:
    """Occupancy of a partial schedule, bucketed by teacher, room and cohort per day."""

    def __init__(self, entries: Iterable[ScheduleEntry] = ()):
        self._by_teacher: dict[tuple[str, Weekday], list[ScheduleEntry]] = defaultdict(list)
        self._by_room: dict[tuple[str, Weekday], list[ScheduleEntry]] = defaultdict(list)
        self._by_cohort: dict[tuple, list[ScheduleEntry]] = defaultdict(list)
        self._entries: dict[int, ScheduleEntry] = {}
        self._positions: dict[int, int] = {}
        self._teacher_minutes: dict[str, int] = defaultdict(int)
        self._next_position = 0
        for entry in entries:
            self.insert(entry)

    def insert(self, entry: ScheduleEntry) -> None:
        key = id(entry)
        if key in self._entries:
            raise ValueError(f"Entry already indexed: {entry}")
        self._entries[key] = entry
        self._positions[key] = self._next_position
        self._next_position += 1
        self._by_teacher[(entry.teacher_id, entry.day)].append(entry)
        self._by_room[(entry.classroom_id, entry.day)].append(entry)
        self._by_cohort[(entry.session.cohort, entry.day)].append(entry)
        self._teacher_minutes[entry.teacher_id] += entry.duration

    def remove(self, entry: ScheduleEntry) -> None:
        key = id(entry)
        if key not in self._entries:
            raise KeyError(f"Entry not indexed: {entry}")
        del self._entries[key]
        del self._positions[key]
        _discard(self._by_teacher[(entry.teacher_id, entry.day)], entry)
        _discard(self._by_room[(entry.classroom_id, entry.day)], entry)
        _discard(self._by_cohort[(entry.session.cohort, entry.day)], entry)
        self._teacher_minutes[entry.teacher_id] -= entry.duration

    def conflicts_with(
        self,
        candidate: ScheduleEntry,
        ignore: Optional[ScheduleEntry] = None,
    ) -> list[Conflict]:
        """Conflicts the candidate would have with indexed entries.

        ``ignore`` skips one indexed entry, typically the candidate's own
        previous placement.
        """
        conflicts = []
        seen: set[tuple[int, ConflictType]] = set()
        buckets = (
            self._by_teacher.get((candidate.teacher_id, candidate.day), ()),
            self._by_room.get((candidate.classroom_id, candidate.day), ()),
            self._by_cohort.get((candidate.session.cohort, candidate.day), ()),
        )
        for bucket in buckets:
            for existing in bucket:
                if existing is candidate or existing is ignore:
                    continue
                for conflict_type in pair_conflicts(existing, candidate):
                    mark = (id(existing), conflict_type)
                    if mark in seen:
                        continue
                    seen.add(mark)
                    conflicts.append(Conflict(
                        type=conflict_type,
                        first=existing,
                        second=candidate,
                        indices=(self._positions[id(existing)], self._positions.get(id(candidate), -1)),
                    ))
        return conflicts

    def is_free(self, candidate: ScheduleEntry, ignore: Optional[ScheduleEntry] = None) -> bool:
        return not self.conflicts_with(candidate, ignore=ignore)

    def teacher_day(self, teacher_id: str, day: Weekday) -> list[ScheduleEntry]:
        return sorted(self._by_teacher.get((teacher_id, day), ()), key=lambda e: e.start)

    def room_day(self, classroom_id: str, day: Weekday) -> list[ScheduleEntry]:
        return sorted(self._by_room.get((classroom_id, day), ()), key=lambda e: e.start)

    def cohort_day(self, cohort: tuple, day: Weekday) -> list[ScheduleEntry]:
        return sorted(self._by_cohort.get((cohort, day), ()), key=lambda e: e.start)

    def teacher_minutes(self, teacher_id: str) -> int:
        return self._teacher_minutes.get(teacher_id, 0)

    def __contains__(self, entry: object) -> bool:
        return id(entry) in self._entries

    def __iter__(self) -> Iterator[ScheduleEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


def _discard(bucket: list[ScheduleEntry], entry: ScheduleEntry) -> None:
    for i, existing in enumerate(bucket):
        if existing is entry:
            del bucket[i]
            return


def detect_conflicts(schedule: list[ScheduleEntry]) -> list[Conflict]:
    """All pairwise conflicts in a schedule, with indices into it."""
    index = ScheduleIndex()
    conflicts = []
    for i, entry in enumerate(schedule):
        for conflict in index.conflicts_with(entry):
            conflicts.append(dataclasses.replace(conflict, indices=(conflict.indices[0], i)))
        index.insert(entry)
    return conflicts
