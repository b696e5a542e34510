"""
Sample data generator for testing the timetabling engine.

This module generates synthetic institutions (teachers, classrooms and
courses grouped into program/year cohorts) with configurable size.

Usage:
    from timetabler.data.generator import generate_sample_institution, generate_small_institution

    # Generate with custom config
    data = generate_sample_institution(GeneratorConfig(num_teachers=12, seed=3))

    # Quick test data
    small = generate_small_institution(seed=1)
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .models import (
    AssignedTeacher,
    Batch,
    Classroom,
    Course,
    CourseSessions,
    Division,
    RoomType,
    SessionSpec,
    SessionType,
    SolverSettings,
    Teacher,
    TeacherType,
    TimetableInput,
    WeeklyAvailability,
    WEEKDAYS,
)
from timetabler.timeslots import generate_time_slots


# =============================================================================
# Name Data
# =============================================================================

FIRST_NAMES = [
    "Aarav", "Priya", "James", "Sarah", "Rohan", "Meera", "Daniel", "Emily",
    "Karthik", "Ananya", "Thomas", "Grace", "Vikram", "Neha", "Samuel", "Lucy",
    "Arjun", "Kavya", "Oliver", "Hannah", "Rahul", "Isha", "Henry", "Zoe",
]

LAST_NAMES = [
    "Sharma", "Iyer", "Smith", "Patel", "Brown", "Nair", "Wilson", "Rao",
    "Taylor", "Gupta", "Clark", "Menon", "Lewis", "Kulkarni", "Walker", "Das",
]


# =============================================================================
# Program Catalog
# =============================================================================

# Courses offered per program; (name, code, has_practical)
PROGRAM_CATALOG: dict[str, list[tuple[str, str, bool]]] = {
    "B.Sc Computer Science": [
        ("Programming Fundamentals", "CS101", True),
        ("Data Structures", "CS201", True),
        ("Discrete Mathematics", "CS102", False),
        ("Database Systems", "CS202", True),
        ("Operating Systems", "CS301", False),
        ("Computer Networks", "CS302", True),
    ],
    "B.Sc Mathematics": [
        ("Calculus", "MA101", False),
        ("Linear Algebra", "MA102", False),
        ("Probability", "MA201", False),
        ("Numerical Methods", "MA202", True),
        ("Real Analysis", "MA301", False),
        ("Statistics", "MA302", True),
    ],
    "B.Sc Physics": [
        ("Mechanics", "PH101", True),
        ("Electromagnetism", "PH201", True),
        ("Thermodynamics", "PH102", False),
        ("Quantum Physics", "PH301", False),
    ],
}

DEPARTMENTS = {
    "B.Sc Computer Science": "Computer Science",
    "B.Sc Mathematics": "Mathematics",
    "B.Sc Physics": "Physics",
}


# =============================================================================
# Generator Configuration
# =============================================================================

@dataclass
class GeneratorConfig:
    """Configuration for data generation.

    The defaults produce a solvable institution: total weekly session
    minutes stay well under the bookable room minutes, and each cohort
    needs far fewer sessions than there are slots in a week.
    """
    # Entity counts
    num_teachers: int = 8
    num_lecture_halls: int = 3
    num_tutorial_rooms: int = 2
    num_labs: int = 2

    # Cohorts
    programs: list[str] = field(default_factory=lambda: ["B.Sc Computer Science", "B.Sc Mathematics"])
    years: list[int] = field(default_factory=lambda: [1, 2])
    courses_per_cohort: int = 2
    theory_per_week: int = 2

    # Variety
    elective_probability: float = 0.2
    division_probability: float = 0.25
    visiting_probability: float = 0.15
    min_students: int = 30
    max_students: int = 60

    # Randomization
    seed: Optional[int] = None


# =============================================================================
# Generator Functions
# =============================================================================

def generate_sample_institution(config: GeneratorConfig | None = None) -> TimetableInput:
    """
    Generate a sample institution.

    Args:
        config: Generator configuration (uses defaults if None)

    Returns:
        TimetableInput with generated data and default settings
    """
    if config is None:
        config = GeneratorConfig()
    rng = random.Random(config.seed)

    teachers = _generate_teachers(config, rng)
    classrooms = _generate_classrooms(config, rng)
    courses = _generate_courses(config, teachers, rng)

    return TimetableInput(
        teachers=teachers,
        classrooms=classrooms,
        courses=courses,
        settings=SolverSettings(random_seed=config.seed),
    )


def generate_small_institution(seed: int | None = None) -> TimetableInput:
    """
    Generate a small institution for quick testing.

    - 6 teachers
    - 5 classrooms, one of them a lab
    - 2 programs x 1 year x 2 courses
    """
    config = GeneratorConfig(
        num_teachers=6,
        num_lecture_halls=2,
        num_tutorial_rooms=2,
        num_labs=1,
        years=[1],
        seed=seed,
    )
    return generate_sample_institution(config)


def generate_medium_institution(seed: int | None = None) -> TimetableInput:
    """
    Generate a medium institution for standard testing.

    - 16 teachers
    - 12 classrooms, four of them labs
    - 3 programs x 3 years x 2 courses, some with divisions
    """
    config = GeneratorConfig(
        num_teachers=16,
        num_lecture_halls=5,
        num_tutorial_rooms=3,
        num_labs=4,
        programs=list(PROGRAM_CATALOG),
        years=[1, 2, 3],
        seed=seed,
    )
    return generate_sample_institution(config)


# =============================================================================
# Private Generator Helpers
# =============================================================================

def _generate_teachers(config: GeneratorConfig, rng: random.Random) -> list[Teacher]:
    teachers = []
    departments = [DEPARTMENTS.get(p, p) for p in config.programs]
    for i in range(config.num_teachers):
        visiting = rng.random() < config.visiting_probability
        days = sorted(rng.sample(WEEKDAYS[:5], 3), key=lambda d: d.order) if visiting else WEEKDAYS[:5]
        teachers.append(Teacher(
            id=f"T{i + 1:03d}",
            name=f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
            department=departments[i % len(departments)],
            subjects=[departments[i % len(departments)]],
            availability=WeeklyAvailability.on_days(days, "09:00", "17:00"),
            max_hours_per_week=rng.choice([16, 18, 20]),
            teacher_type=TeacherType.VISITING if visiting else TeacherType.CORE,
        ))
    return teachers


def _generate_classrooms(config: GeneratorConfig, rng: random.Random) -> list[Classroom]:
    rooms = []
    for i in range(config.num_lecture_halls):
        rooms.append(Classroom(
            id=f"LH{i + 1:02d}",
            name=f"Lecture Hall {i + 1}",
            capacity=rng.choice([60, 70, 80]),
            type=RoomType.LECTURE_HALL,
            features=["Projector", "Whiteboard"],
            building="Main Block",
        ))
    for i in range(config.num_tutorial_rooms):
        rooms.append(Classroom(
            id=f"TR{i + 1:02d}",
            name=f"Tutorial Room {i + 1}",
            capacity=rng.choice([35, 40]),
            type=RoomType.TUTORIAL_ROOM,
            features=["Whiteboard"],
            building="Main Block",
        ))
    for i in range(config.num_labs):
        rooms.append(Classroom(
            id=f"LAB{i + 1:02d}",
            name=f"Computer Lab {i + 1}",
            capacity=rng.choice([60, 70]),
            type=RoomType.COMPUTER_LAB,
            features=["Computers", "Projector"],
            building="Lab Block",
        ))
    return rooms


def _generate_courses(
    config: GeneratorConfig,
    teachers: list[Teacher],
    rng: random.Random,
) -> list[Course]:
    """Courses per (program, year) cohort, each assigned to one teacher."""
    courses = []
    teacher_cycle = 0
    for program in config.programs:
        catalog = PROGRAM_CATALOG.get(program, PROGRAM_CATALOG["B.Sc Computer Science"])
        for year in config.years:
            picks = rng.sample(catalog, min(config.courses_per_cohort, len(catalog)))
            for name, code, has_practical in picks:
                teacher = teachers[teacher_cycle % len(teachers)]
                teacher_cycle += 1
                teacher.subjects.append(name)

                students = rng.randint(config.min_students, config.max_students)
                divisions = []
                if rng.random() < config.division_probability:
                    half = students // 2
                    divisions = [
                        Division(division_id="A", student_count=half, batches=[
                            Batch(batch_id="A1", student_count=half // 2),
                            Batch(batch_id="A2", student_count=half - half // 2),
                        ]),
                        Division(division_id="B", student_count=students - half),
                    ]

                sessions = CourseSessions(
                    theory=SessionSpec(duration=60, sessions_per_week=config.theory_per_week),
                    practical=(
                        SessionSpec(duration=120, sessions_per_week=1, requires_lab=True,
                                    required_features=["Computers"])
                        if has_practical else None
                    ),
                )
                courses.append(Course(
                    id=f"{code}-Y{year}",
                    name=name,
                    code=code,
                    department=DEPARTMENTS.get(program, program),
                    program=program,
                    year=year,
                    semester=1,
                    enrolled_students=students,
                    sessions=sessions,
                    divisions=divisions,
                    assigned_teachers=[AssignedTeacher(
                        teacher_id=teacher.id,
                        session_types=[SessionType.THEORY, SessionType.PRACTICAL],
                        is_primary=True,
                    )],
                    is_elective=rng.random() < config.elective_probability,
                ))
    return courses


# =============================================================================
# Utility Functions
# =============================================================================

def save_generated_institution(data: TimetableInput, filepath: Union[str, Path]) -> None:
    """Save generated data to a JSON file that ``load_timetable_input`` reads back."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data.model_dump(mode="json", exclude_none=True), f, indent=2)


def get_generation_stats(data: TimetableInput) -> dict:
    """
    Get statistics about generated data.

    Utilization compares weekly session minutes with bookable room minutes.
    """
    slots = generate_time_slots(data.settings)
    room_minutes = sum(s.end - s.start for s in slots) * len(data.classrooms)

    session_minutes = 0
    for course in data.courses:
        groups = sum(max(1, len(d.batches)) for d in course.divisions) or 1
        for _, spec in course.sessions.active():
            session_minutes += spec.duration * spec.sessions_per_week * groups

    utilization = session_minutes / room_minutes * 100 if room_minutes else 0.0
    return {
        **data.summary(),
        "time_slots": len(slots),
        "utilization_percent": round(utilization, 1),
        "labs": sum(1 for r in data.classrooms if r.is_lab),
        "visiting_teachers": sum(1 for t in data.teachers if t.is_priority),
    }
