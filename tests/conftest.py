"""Shared builders for timetabling tests."""

from __future__ import annotations

from typing import Optional

import pytest

from timetabler.data.models import (
    AssignedTeacher,
    Classroom,
    Course,
    CourseSessions,
    RoomType,
    SessionSpec,
    SessionType,
    SolverSettings,
    Teacher,
    WeeklyAvailability,
    Weekday,
    WEEKDAYS,
)
from timetabler.problem import SchedulingProblem
from timetabler.schedule import ScheduleEntry, detect_conflicts
from timetabler.sessions import Session


def build_teacher(
    id: str = "T1",
    days: Optional[list[Weekday]] = None,
    start: str = "09:00",
    end: str = "17:00",
    **kwargs,
) -> Teacher:
    kwargs.setdefault("name", f"Teacher {id}")
    kwargs.setdefault("subjects", ["Mathematics"])
    return Teacher(
        id=id,
        availability=WeeklyAvailability.on_days(days if days is not None else WEEKDAYS[:5], start, end),
        **kwargs,
    )


def build_room(
    id: str = "R1",
    capacity: int = 40,
    type: RoomType = RoomType.LECTURE_HALL,
    features: Optional[list[str]] = None,
    **kwargs,
) -> Classroom:
    return Classroom(id=id, name=f"Room {id}", capacity=capacity, type=type, features=features or [], **kwargs)


def build_course(
    id: str = "C1",
    teacher_ids: tuple[str, ...] = ("T1",),
    theory: int = 1,
    practical: int = 0,
    tutorial: int = 0,
    duration: int = 60,
    practical_duration: int = 60,
    requires_lab: bool = False,
    program: str = "BSc",
    year: int = 1,
    semester: int = 1,
    students: int = 30,
    **kwargs,
) -> Course:
    kwargs.setdefault("name", "Mathematics")
    return Course(
        id=id,
        code=id,
        program=program,
        year=year,
        semester=semester,
        enrolled_students=students,
        sessions=CourseSessions(
            theory=SessionSpec(duration=duration, sessions_per_week=theory) if theory else None,
            practical=(
                SessionSpec(duration=practical_duration, sessions_per_week=practical, requires_lab=requires_lab)
                if practical else None
            ),
            tutorial=SessionSpec(duration=duration, sessions_per_week=tutorial) if tutorial else None,
        ),
        assigned_teachers=[AssignedTeacher(teacher_id=tid) for tid in teacher_ids],
        **kwargs,
    )


def build_session(
    course_id: str = "C1",
    session_type: SessionType = SessionType.THEORY,
    occurrence: int = 1,
    duration: int = 60,
    teachers: tuple[str, ...] = ("T1",),
    capacity: int = 30,
    cohort: tuple[str, int, int] = ("BSc", 1, 1),
    **kwargs,
) -> Session:
    return Session(
        course_id=course_id,
        course_code=course_id,
        session_type=session_type,
        occurrence=occurrence,
        duration=duration,
        eligible_teacher_ids=teachers,
        required_capacity=capacity,
        student_count=capacity,
        cohort=cohort,
        **kwargs,
    )


def build_entry(
    session: Session,
    day: Weekday = Weekday.MONDAY,
    start: int = 540,
    teacher_id: Optional[str] = None,
    classroom_id: str = "R1",
    slot_id: int = 0,
) -> ScheduleEntry:
    return ScheduleEntry(
        session=session,
        slot_id=slot_id,
        day=day,
        start=start,
        end=start + session.duration,
        teacher_id=teacher_id or session.eligible_teacher_ids[0],
        classroom_id=classroom_id,
    )


@pytest.fixture
def make_teacher():
    return build_teacher


@pytest.fixture
def make_room():
    return build_room


@pytest.fixture
def make_course():
    return build_course


@pytest.fixture
def make_session():
    return build_session


@pytest.fixture
def make_entry():
    return build_entry


@pytest.fixture
def small_institution() -> tuple[list[Teacher], list[Classroom], list[Course]]:
    """Three teachers, three rooms, four courses over two cohorts. Easily feasible."""
    teachers = [
        build_teacher("T1", subjects=["Calculus", "Algebra"]),
        build_teacher("T2", subjects=["Programming"]),
        build_teacher("T3", subjects=["Physics"]),
    ]
    rooms = [
        build_room("LH1", capacity=60),
        build_room("LH2", capacity=50),
        build_room("LAB1", capacity=40, type=RoomType.COMPUTER_LAB, features=["Computers"]),
    ]
    courses = [
        build_course("MA101", ("T1",), theory=2, name="Calculus", students=45),
        build_course("MA102", ("T1",), theory=2, name="Algebra", students=40),
        build_course("CS101", ("T2",), theory=2, practical=1, practical_duration=120,
                     requires_lab=True, name="Programming", program="BSc CS", students=35),
        build_course("PH101", ("T3",), theory=2, name="Physics", program="BSc CS", students=35),
    ]
    return teachers, rooms, courses


@pytest.fixture
def small_settings() -> SolverSettings:
    return SolverSettings(
        random_seed=7,
        population_size=10,
        max_generations=20,
        elite_size=2,
        convergence_generations=10,
        max_iterations=1500,
        tune_parameters=False,
    )


@pytest.fixture
def small_problem(small_institution, small_settings) -> SchedulingProblem:
    teachers, rooms, courses = small_institution
    return SchedulingProblem.build(teachers, rooms, courses, small_settings)


@pytest.fixture
def assert_valid_schedule():
    """Checks that a schedule has no pairwise conflicts, no placement violations and no repeats."""
    def check(problem: SchedulingProblem, solution: list[ScheduleEntry]) -> None:
        assert detect_conflicts(solution) == []
        for entry in solution:
            assert problem.checker.placement_violations(entry) == [], str(entry)
        ids = [e.session.id for e in solution]
        assert len(ids) == len(set(ids))

    return check


@pytest.fixture
def two_slot_settings() -> SolverSettings:
    """Monday 09:00 and 10:00 only."""
    return SolverSettings(
        working_days=["Monday"],
        start_time="09:00",
        end_time="11:00",
        break_slots=[],
        random_seed=1,
        population_size=10,
        max_generations=20,
        elite_size=2,
        max_iterations=500,
        tune_parameters=False,
    )


@pytest.fixture
def contested_problem(two_slot_settings) -> SchedulingProblem:
    """C2 can only go at 09:00, so C1 must take 10:00 in the single room."""
    teachers = [
        build_teacher("T1", days=[Weekday.MONDAY]),
        build_teacher("T2", days=[Weekday.MONDAY], end="10:00"),
    ]
    courses = [
        build_course("C1", ("T1",), program="BSc A"),
        build_course("C2", ("T2",), program="BSc B"),
    ]
    return SchedulingProblem.build(teachers, [build_room("R1")], courses, two_slot_settings)


@pytest.fixture
def overloaded_problem(two_slot_settings) -> SchedulingProblem:
    """Three sessions of one teacher and only two slots."""
    return SchedulingProblem.build(
        [build_teacher("T1", days=[Weekday.MONDAY])],
        [build_room("R1")],
        [build_course("C1", ("T1",), theory=3)],
        two_slot_settings,
    )


@pytest.fixture
def missing_lab_problem(small_settings) -> SchedulingProblem:
    """A lab practical with no lab anywhere, next to a schedulable theory course."""
    teachers = [build_teacher("T1", subjects=["Programming"]), build_teacher("T2")]
    courses = [
        build_course("CS101", ("T1",), theory=0, practical=1, requires_lab=True, name="Programming"),
        build_course("MA101", ("T2",), theory=1, program="BSc Maths"),
    ]
    return SchedulingProblem.build(teachers, [build_room("LH1", capacity=60)], courses, small_settings)
