"""
Pydantic models for the timetabling engine's input data.

Collaborators (persistence layers, import scripts, HTTP handlers) hand the
engine plain records. Everything is normalized here into fixed DTOs before
any solver sees it.

Time conventions:
- Input and output times are "HH:MM" strings
- Internally, times are minutes from midnight (0-1439)
- Days are weekday names ("Monday" ... "Sunday")

Example times:
- 09:00 = 540
- 12:30 = 750
- 16:00 = 960
"""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# Constants and Enums
# =============================================================================

class Weekday(str, Enum):
    """Day of week."""
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @property
    def order(self) -> int:
        return WEEKDAYS.index(self)


WEEKDAYS: list[Weekday] = list(Weekday)


class SessionType(str, Enum):
    """Component of a course that needs weekly teaching sessions."""
    THEORY = "Theory"
    PRACTICAL = "Practical"
    TUTORIAL = "Tutorial"


class TeacherType(str, Enum):
    CORE = "core"
    VISITING = "visiting"
    GUEST = "guest"
    ADJUNCT = "adjunct"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RoomType(str, Enum):
    """Type of classroom/facility."""
    LECTURE_HALL = "Lecture Hall"
    TUTORIAL_ROOM = "Tutorial Room"
    COMPUTER_LAB = "Computer Lab"
    SCIENCE_LAB = "Science Lab"
    SEMINAR_HALL = "Seminar Hall"
    WORKSHOP = "Workshop"


LAB_ROOM_TYPES = {RoomType.COMPUTER_LAB, RoomType.SCIENCE_LAB}


class EmptyDomainPolicy(str, Enum):
    """What a strategy does with a session that has no feasible placement."""
    SKIP = "skip"
    FAIL = "fail"


class OptimizationGoal(str, Enum):
    """Post-processing passes applied by the engine after a strategy returns."""
    MINIMIZE_CONFLICTS = "minimize_conflicts"
    BALANCED_SCHEDULE = "balanced_schedule"
    TEACHER_PREFERENCES = "teacher_preferences"
    RESOURCE_OPTIMIZATION = "resource_optimization"
    STUDENT_CONVENIENCE = "student_convenience"


TimeString = Annotated[
    str,
    Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="Time of day as HH:MM"),
]


# =============================================================================
# Helper Functions
# =============================================================================

def minutes_to_time(minutes: int) -> str:
    """Convert minutes from midnight to HH:MM format."""
    h, m = divmod(minutes, 60)
    return f"{h:02d}:{m:02d}"


def time_to_minutes(time_str: str) -> int:
    """Convert HH:MM format to minutes from midnight."""
    h, m = map(int, time_str.split(":"))
    return h * 60 + m


def parse_time_range(value: str) -> tuple[int, int]:
    """Parse an "HH:MM-HH:MM" window into (start, end) minutes."""
    match = re.fullmatch(r"\s*(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})\s*", value)
    if not match:
        raise ValueError(f"Invalid time range '{value}', expected HH:MM-HH:MM")
    start, end = time_to_minutes(match.group(1)), time_to_minutes(match.group(2))
    if start >= end:
        raise ValueError(f"Time range '{value}' must start before it ends")
    return start, end


def windows_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """True if two half-open [start, end) windows intersect."""
    return start_a < end_b and start_b < end_a


# =============================================================================
# Availability and Preferences
# =============================================================================

class DayAvailability(BaseModel):
    """Availability window on one weekday."""
    model_config = ConfigDict(extra="ignore")

    available: bool = Field(default=True, description="Whether available at all on this day")
    start_time: TimeString = Field(default="09:00", description="Window start")
    end_time: TimeString = Field(default="17:00", description="Window end")

    @model_validator(mode="after")
    def validate_time_range(self) -> "DayAvailability":
        """Ensure start time is before end time."""
        if time_to_minutes(self.start_time) >= time_to_minutes(self.end_time):
            raise ValueError(
                f"start_time ({self.start_time}) must be before end_time ({self.end_time})"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time)

    def covers(self, start: int, end: int) -> bool:
        """True if [start, end) lies entirely inside this window."""
        return self.available and self.start_minutes <= start and end <= self.end_minutes


class WeeklyAvailability(BaseModel):
    """Per-weekday availability. Days left out are unavailable."""
    model_config = ConfigDict(extra="ignore")

    monday: Optional[DayAvailability] = None
    tuesday: Optional[DayAvailability] = None
    wednesday: Optional[DayAvailability] = None
    thursday: Optional[DayAvailability] = None
    friday: Optional[DayAvailability] = None
    saturday: Optional[DayAvailability] = None
    sunday: Optional[DayAvailability] = None

    @classmethod
    def on_days(
        cls,
        days: list[Weekday],
        start_time: str = "09:00",
        end_time: str = "17:00",
    ) -> "WeeklyAvailability":
        """Same window on each of ``days``."""
        return cls(**{
            day.value.lower(): DayAvailability(start_time=start_time, end_time=end_time)
            for day in days
        })

    def for_day(self, day: Weekday) -> Optional[DayAvailability]:
        return getattr(self, day.value.lower())

    def covers(self, day: Weekday, start: int, end: int) -> bool:
        window = self.for_day(day)
        return window is not None and window.covers(start, end)

    def is_available_on(self, day: Weekday) -> bool:
        window = self.for_day(day)
        return window is not None and window.available


class TimeWindow(BaseModel):
    """A preferred or avoided teaching window."""
    model_config = ConfigDict(extra="ignore")

    day: Weekday
    start_time: TimeString
    end_time: TimeString

    @field_validator("day", mode="before")
    @classmethod
    def capitalize_day(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().capitalize()
        return value

    def contains(self, day: Weekday, start: int) -> bool:
        return (
            self.day == day
            and time_to_minutes(self.start_time) <= start < time_to_minutes(self.end_time)
        )


class TeacherPreferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    preferred_time_slots: list[TimeWindow] = Field(default_factory=list)
    avoid_time_slots: list[TimeWindow] = Field(default_factory=list)
    max_consecutive_hours: int = Field(default=3, ge=1, le=12)


# =============================================================================
# Core Entity Models
# =============================================================================

class _Record(BaseModel):
    """Base for collaborator-supplied records.

    Extra persistence fields are ignored and a Mongo-style ``_id`` is
    accepted in place of ``id``.
    """
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def accept_underscore_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and "id" not in data and "_id" in data:
            data = {**data, "id": str(data["_id"])}
        return data


class Teacher(_Record):
    """Teacher entity."""

    id: str = Field(min_length=1, description="Unique identifier")
    name: str = Field(default="", description="Full name")
    department: Optional[str] = Field(default=None, description="Home department")
    subjects: list[str] = Field(default_factory=list, description="Subject qualifications")
    availability: Optional[WeeklyAvailability] = Field(
        default=None, description="Per-weekday availability windows"
    )
    max_hours_per_week: int = Field(default=20, ge=1, le=60, description="Max teaching hours per week")
    preferences: TeacherPreferences = Field(default_factory=TeacherPreferences)
    teacher_type: TeacherType = Field(default=TeacherType.CORE)
    priority: Priority = Field(default=Priority.MEDIUM)

    @property
    def is_priority(self) -> bool:
        """Visiting and guest faculty are scheduled first."""
        return self.teacher_type in (TeacherType.VISITING, TeacherType.GUEST)

    def is_available(self, day: Weekday, start: int, end: int) -> bool:
        if self.availability is None:
            return True
        return self.availability.covers(day, start, end)

    def __str__(self) -> str:
        return f"{self.name or self.id} ({self.id})"


class Classroom(_Record):
    """Bookable room."""

    id: str = Field(min_length=1, description="Unique identifier")
    name: str = Field(default="", description="Display name")
    capacity: int = Field(default=0, description="Seats; validated to be >= 1 by the engine")
    type: RoomType = Field(default=RoomType.LECTURE_HALL)
    features: list[str] = Field(default_factory=list, description="Equipment, e.g. Projector, Computers")
    availability: Optional[WeeklyAvailability] = Field(default=None)
    building: Optional[str] = None

    @property
    def is_lab(self) -> bool:
        return self.type in LAB_ROOM_TYPES

    def has_feature(self, feature: str) -> bool:
        wanted = feature.lower()
        return any(f.lower() == wanted for f in self.features)

    def is_available(self, day: Weekday, start: int, end: int) -> bool:
        if self.availability is None:
            return True
        return self.availability.covers(day, start, end)

    def __str__(self) -> str:
        return f"{self.name or self.id} ({self.type.value}, {self.capacity} seats)"


class SessionSpec(BaseModel):
    """Weekly requirement for one session type of a course."""
    model_config = ConfigDict(extra="ignore")

    duration: int = Field(default=60, ge=15, le=240, description="Minutes per session")
    sessions_per_week: int = Field(default=0, ge=0, le=20)
    required_features: list[str] = Field(default_factory=list)
    min_room_capacity: Optional[int] = Field(default=None, ge=1)
    requires_lab: bool = False


class CourseSessions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    theory: Optional[SessionSpec] = None
    practical: Optional[SessionSpec] = None
    tutorial: Optional[SessionSpec] = None

    def get(self, session_type: SessionType) -> Optional[SessionSpec]:
        return getattr(self, session_type.value.lower())

    def active(self) -> list[tuple[SessionType, SessionSpec]]:
        """Session types with at least one weekly occurrence, in fixed order."""
        result = []
        for session_type in SessionType:
            spec = self.get(session_type)
            if spec is not None and spec.sessions_per_week > 0:
                result.append((session_type, spec))
        return result


class Batch(BaseModel):
    """Sub-cohort of a division, e.g. a lab group."""
    model_config = ConfigDict(extra="ignore")

    batch_id: str = Field(min_length=1)
    student_count: int = Field(default=0, ge=0)
    type: Optional[str] = None


class Division(BaseModel):
    """Sub-cohort of a course."""
    model_config = ConfigDict(extra="ignore")

    division_id: str = Field(min_length=1)
    student_count: Optional[int] = Field(default=None, ge=0)
    batches: list[Batch] = Field(default_factory=list)


class AssignedTeacher(BaseModel):
    """Teacher assigned to a course. An empty session_types list covers every type."""
    model_config = ConfigDict(extra="ignore")

    teacher_id: str = Field(min_length=1)
    session_types: list[SessionType] = Field(default_factory=list)
    is_primary: bool = False

    @field_validator("session_types", mode="before")
    @classmethod
    def normalize_session_types(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [v.strip().capitalize() if isinstance(v, str) else v for v in value]
        return value

    def teaches(self, session_type: SessionType) -> bool:
        return not self.session_types or session_type in self.session_types


class Course(_Record):
    """Course with its weekly session requirements."""

    id: str = Field(min_length=1)
    name: str = Field(default="")
    code: Optional[str] = None
    department: Optional[str] = None
    program: str = Field(default="", description="Degree program, part of the cohort key")
    year: int = Field(default=1, ge=1)
    semester: int = Field(default=1, ge=1)
    credits: Optional[int] = Field(default=None, ge=0)
    enrolled_students: int = Field(default=30, ge=0)
    sessions: CourseSessions = Field(default_factory=CourseSessions)
    divisions: list[Division] = Field(default_factory=list)
    assigned_teachers: list[AssignedTeacher] = Field(default_factory=list)
    is_elective: bool = False
    priority: Priority = Field(default=Priority.MEDIUM)

    @model_validator(mode="before")
    @classmethod
    def derive_elective_flag(cls, data: Any) -> Any:
        """Collaborators may send ``is_core`` instead of ``is_elective``."""
        if isinstance(data, dict) and "is_elective" not in data and "is_core" in data:
            data = {**data, "is_elective": not data["is_core"]}
        return data

    @property
    def cohort(self) -> tuple[str, int, int]:
        return (self.program, self.year, self.semester)

    def teachers_for(self, session_type: SessionType) -> list[str]:
        return [a.teacher_id for a in self.assigned_teachers if a.teaches(session_type)]

    def __str__(self) -> str:
        return f"{self.code or self.id}: {self.name}"


# =============================================================================
# Solver Settings
# =============================================================================

class SolverSettings(BaseModel):
    """Settings for one solve: calendar, strategy choice and tuning knobs."""
    model_config = ConfigDict(extra="forbid")

    # Calendar
    working_days: list[Weekday] = Field(
        default_factory=lambda: WEEKDAYS[:5], description="Days that get time slots"
    )
    start_time: TimeString = Field(default="09:00")
    end_time: TimeString = Field(default="17:00")
    slot_duration: int = Field(default=60, ge=5, le=240, description="Minutes between slot starts")
    break_slots: list[str] = Field(default_factory=lambda: ["12:00-13:00"])

    # Strategy
    algorithm: str = Field(default="hybrid", description="Strategy name; unknown names fall back to hybrid")
    random_seed: Optional[int] = Field(default=None, description="Seed for every random decision")
    empty_domain_policy: Optional[EmptyDomainPolicy] = Field(
        default=None, description="Override per-strategy handling of sessions with no placement"
    )
    tune_parameters: bool = Field(default=True, description="Adapt GA knobs to problem size")
    optimization_goals: list[OptimizationGoal] = Field(default_factory=list)

    # Genetic algorithm
    population_size: int = Field(default=50, ge=2, le=100)
    max_generations: int = Field(default=200, ge=1, le=300)
    crossover_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    mutation_rate: float = Field(default=0.15, ge=0.0, le=1.0)
    elite_size: int = Field(default=5, ge=1)
    tournament_size: int = Field(default=3, ge=1)
    convergence_generations: int = Field(default=30, ge=1)
    fitness_weights: tuple[float, float, float] = Field(
        default=(0.6, 0.2, 0.2), description="Hard, soft and optimization weights"
    )

    # Backtracking / CSP
    max_backtracks: int = Field(default=10_000, ge=1)
    max_csp_steps: int = Field(default=100_000, ge=1)
    hybrid_csp_steps: int = Field(default=3_000, ge=1)
    use_arc_consistency: bool = False
    csp_feature_match: float = Field(default=0.5, ge=0.0, le=1.0)

    # Simulated annealing
    initial_temperature: float = Field(default=1000.0, gt=0)
    cooling_rate: float = Field(default=0.995, gt=0, lt=1)
    min_temperature: float = Field(default=0.1, gt=0)
    max_iterations: int = Field(default=10_000, ge=1)
    iterations_per_temperature: int = Field(default=10, ge=1)

    @field_validator("working_days", mode="before")
    @classmethod
    def capitalize_days(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [v.strip().capitalize() if isinstance(v, str) else v for v in value]
        return value

    @model_validator(mode="after")
    def validate_calendar(self) -> "SolverSettings":
        if time_to_minutes(self.start_time) >= time_to_minutes(self.end_time):
            raise ValueError(
                f"start_time ({self.start_time}) must be before end_time ({self.end_time})"
            )
        for window in self.break_slots:
            parse_time_range(window)
        if self.elite_size >= self.population_size:
            raise ValueError("elite_size must be smaller than population_size")
        return self

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time)

    @property
    def break_windows(self) -> list[tuple[int, int]]:
        return [parse_time_range(window) for window in self.break_slots]


# =============================================================================
# Input Bundle
# =============================================================================

class TimetableInput(BaseModel):
    """Everything one solve needs."""
    model_config = ConfigDict(extra="ignore")

    teachers: list[Teacher] = Field(default_factory=list)
    classrooms: list[Classroom] = Field(default_factory=list)
    courses: list[Course] = Field(default_factory=list)
    settings: SolverSettings = Field(default_factory=SolverSettings)

    def get_teacher(self, teacher_id: str) -> Optional[Teacher]:
        return next((t for t in self.teachers if t.id == teacher_id), None)

    def get_classroom(self, classroom_id: str) -> Optional[Classroom]:
        return next((r for r in self.classrooms if r.id == classroom_id), None)

    def get_course(self, course_id: str) -> Optional[Course]:
        return next((c for c in self.courses if c.id == course_id), None)

    @property
    def total_sessions_per_week(self) -> int:
        total = 0
        for course in self.courses:
            groups = sum(max(1, len(d.batches)) for d in course.divisions) or 1
            total += sum(spec.sessions_per_week for _, spec in course.sessions.active()) * groups
        return total

    def summary(self) -> dict[str, Any]:
        return {
            "teachers": len(self.teachers),
            "classrooms": len(self.classrooms),
            "courses": len(self.courses),
            "sessions_per_week": self.total_sessions_per_week,
            "departments": len({c.department for c in self.courses if c.department}),
        }


# =============================================================================
# Boundary Normalization
# =============================================================================

def normalize_records(model: type[BaseModel], records: Any) -> list[Any]:
    """Turn a collection of dicts or model instances into validated DTOs.

    Dicts may use camelCase keys; model instances pass through untouched.
    """
    result = []
    for record in records or []:
        if isinstance(record, model):
            result.append(record)
        elif isinstance(record, BaseModel):
            result.append(model.model_validate(record.model_dump()))
        else:
            result.append(model.model_validate(_convert_keys_to_snake_case(record)))
    return result


def normalize_settings(settings: Union[SolverSettings, dict, None]) -> SolverSettings:
    if settings is None:
        return SolverSettings()
    if isinstance(settings, SolverSettings):
        return settings
    return SolverSettings.model_validate(_convert_keys_to_snake_case(settings))


def load_timetable_from_json(path: Union[str, Path]) -> TimetableInput:
    """
    Load and validate timetable data from a JSON file.

    Keys may be camelCase (as produced by the web collaborators) or
    snake_case.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If invalid JSON
        pydantic.ValidationError: If validation fails
    """
    with open(Path(path)) as f:
        data = json.load(f)

    return TimetableInput.model_validate(_convert_keys_to_snake_case(data))


def _convert_keys_to_snake_case(obj: Any) -> Any:
    """Recursively convert dictionary keys from camelCase to snake_case."""

    def to_snake_case(name: str) -> str:
        name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
        name = re.sub(r'([a-z\d])([A-Z])', r'\1_\2', name)
        return name.lower()

    if isinstance(obj, dict):
        return {
            (to_snake_case(k) if isinstance(k, str) else k): _convert_keys_to_snake_case(v)
            for k, v in obj.items()
        }
    elif isinstance(obj, list):
        return [_convert_keys_to_snake_case(item) for item in obj]
    else:
        return obj
