"""
Output schema for optimization results.

This module defines the JSON-serializable form of an ``OptimizationResult``,
including pre-computed views by teacher, classroom and day.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from timetabler.data.models import WEEKDAYS

if TYPE_CHECKING:
    from timetabler.engine import OptimizationResult
    from timetabler.schedule import Conflict, ScheduleEntry
    from timetabler.sessions import Session


# =============================================================================
# Entries
# =============================================================================

class EntryOutput(BaseModel):
    """A single scheduled session in the output."""
    session_id: str = Field(alias="sessionId")
    course_id: str = Field(alias="courseId")
    course_code: str = Field(alias="courseCode")
    session_type: str = Field(alias="sessionType")
    day: str
    start_time: str = Field(alias="startTime")  # 'HH:MM'
    end_time: str = Field(alias="endTime")  # 'HH:MM'
    teacher_id: str = Field(alias="teacherId")
    classroom_id: str = Field(alias="classroomId")
    division_id: Optional[str] = Field(default=None, alias="divisionId")
    batch_id: Optional[str] = Field(default=None, alias="batchId")

    # Optional enriched data
    teacher_name: Optional[str] = Field(default=None, alias="teacherName")
    classroom_name: Optional[str] = Field(default=None, alias="classroomName")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_entry(
        cls,
        entry: ScheduleEntry,
        teacher_names: dict[str, str] | None = None,
        classroom_names: dict[str, str] | None = None,
    ) -> EntryOutput:
        session = entry.session
        return cls(
            sessionId=session.id,
            courseId=session.course_id,
            courseCode=session.course_code,
            sessionType=session.session_type.value,
            day=entry.day.value,
            startTime=entry.start_time,
            endTime=entry.end_time,
            teacherId=entry.teacher_id,
            classroomId=entry.classroom_id,
            divisionId=session.division_id,
            batchId=session.batch_id,
            teacherName=(teacher_names or {}).get(entry.teacher_id),
            classroomName=(classroom_names or {}).get(entry.classroom_id),
        )


class UnscheduledOutput(BaseModel):
    session_id: str = Field(alias="sessionId")
    course_id: str = Field(alias="courseId")
    session_type: str = Field(alias="sessionType")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_session(cls, session: Session) -> UnscheduledOutput:
        return cls(sessionId=session.id, courseId=session.course_id, sessionType=session.session_type.value)


# =============================================================================
# Quality, Conflicts, Recommendations
# =============================================================================

class QualityOutput(BaseModel):
    constraint_compliance: float = Field(alias="constraintCompliance")
    room_utilization: float = Field(alias="roomUtilization")
    schedule_balance: float = Field(alias="scheduleBalance")
    teacher_satisfaction: float = Field(alias="teacherSatisfaction")
    student_convenience: float = Field(alias="studentConvenience")
    overall_score: float = Field(alias="overallScore")
    grade: str

    model_config = ConfigDict(populate_by_name=True)


class ConflictOutput(BaseModel):
    type: str
    severity: str
    message: str
    session_ids: list[str] = Field(alias="sessionIds")
    indices: list[int]

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_conflict(cls, conflict: Conflict) -> ConflictOutput:
        return cls(
            type=conflict.type.value,
            severity=conflict.severity,
            message=conflict.message,
            sessionIds=[conflict.first.session.id, conflict.second.session.id],
            indices=list(conflict.indices),
        )


class RecommendationOutput(BaseModel):
    type: str
    priority: str
    message: str
    action: str


# =============================================================================
# Views
# =============================================================================

class TimetableViews(BaseModel):
    """Pre-computed views of the solution for convenience."""
    by_teacher: dict[str, list[EntryOutput]] = Field(default_factory=dict, alias="byTeacher")
    by_classroom: dict[str, list[EntryOutput]] = Field(default_factory=dict, alias="byClassroom")
    by_day: dict[str, list[EntryOutput]] = Field(default_factory=dict, alias="byDay")

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Complete Output
# =============================================================================

class TimetableOutput(BaseModel):
    """Complete output of one optimization run."""
    success: bool
    algorithm: Optional[str] = None
    reason: Optional[str] = None
    failure_kind: Optional[str] = Field(default=None, alias="failureKind")
    solution: list[EntryOutput] = Field(default_factory=list)
    unscheduled: list[UnscheduledOutput] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    quality: Optional[QualityOutput] = None
    conflicts: list[ConflictOutput] = Field(default_factory=list)
    recommendations: list[RecommendationOutput] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list, alias="validationErrors")
    warnings: list[str] = Field(default_factory=list)
    views: Optional[TimetableViews] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return self.model_dump_json(by_alias=True, indent=indent, exclude_none=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Conversion Functions
# =============================================================================

def _create_views(entries: list[EntryOutput]) -> TimetableViews:
    by_teacher: dict[str, list[EntryOutput]] = defaultdict(list)
    by_classroom: dict[str, list[EntryOutput]] = defaultdict(list)
    by_day: dict[str, list[EntryOutput]] = defaultdict(list)

    for entry in entries:
        by_teacher[entry.teacher_id].append(entry)
        by_classroom[entry.classroom_id].append(entry)
        by_day[entry.day].append(entry)

    day_order = {day.value: i for i, day in enumerate(WEEKDAYS)}

    def ordered(items: list[EntryOutput]) -> list[EntryOutput]:
        return sorted(items, key=lambda e: (day_order.get(e.day, 7), e.start_time))

    return TimetableViews(
        byTeacher={k: ordered(v) for k, v in sorted(by_teacher.items())},
        byClassroom={k: ordered(v) for k, v in sorted(by_classroom.items())},
        byDay={
            day: sorted(v, key=lambda e: e.start_time)
            for day, v in sorted(by_day.items(), key=lambda item: day_order.get(item[0], 7))
        },
    )


def create_timetable_output(
    result: OptimizationResult,
    teacher_names: dict[str, str] | None = None,
    classroom_names: dict[str, str] | None = None,
) -> TimetableOutput:
    """
    Create a TimetableOutput from an OptimizationResult.

    Args:
        result: The engine result
        teacher_names: Optional mapping of teacher_id to name
        classroom_names: Optional mapping of classroom_id to name

    Returns:
        TimetableOutput, with views populated when the run succeeded
    """
    entries = [EntryOutput.from_entry(e, teacher_names, classroom_names) for e in result.solution]

    quality = None
    if result.quality is not None:
        quality = QualityOutput(**result.quality.to_dict(), grade=result.quality.grade)

    return TimetableOutput(
        success=result.success,
        algorithm=result.algorithm,
        reason=result.reason,
        failureKind=result.failure_kind.value if result.failure_kind else None,
        solution=entries,
        unscheduled=[UnscheduledOutput.from_session(s) for s in result.unscheduled],
        metrics=result.metrics,
        quality=quality,
        conflicts=[ConflictOutput.from_conflict(c) for c in result.conflicts],
        recommendations=[RecommendationOutput(**vars(r)) for r in result.recommendations],
        validationErrors=result.validation_errors,
        warnings=result.warnings,
        views=_create_views(entries) if result.success else None,
    )
