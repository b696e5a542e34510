"""
Quality metrics and recommendations for a finished schedule.

The aggregate score blends five components:
- Constraint compliance: share of entries not involved in a conflict
- Room utilization: booked room minutes against bookable room minutes
- Schedule balance: evenness of the daily load
- Teacher satisfaction and student convenience: fixed baselines
"""

from __future__ import annotations

import statistics
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Iterable

from timetabler.data.models import Weekday
from timetabler.schedule import Conflict, ScheduleEntry
from timetabler.timeslots import TimeSlot


# =============================================================================
# Constants
# =============================================================================

TEACHER_SATISFACTION_BASELINE = 85.0
STUDENT_CONVENIENCE_BASELINE = 80.0

SCORE_WEIGHTS = {
    "constraint_compliance": 0.4,
    "room_utilization": 0.2,
    "schedule_balance": 0.2,
    "teacher_satisfaction": 0.1,
    "student_convenience": 0.1,
}

COMPLIANCE_TARGET = 90.0
UTILIZATION_LIMIT = 90.0
BALANCE_TARGET = 70.0


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class QualityMetrics:
    """Aggregate quality of a schedule. Every score is in [0, 100]."""
    constraint_compliance: float
    room_utilization: float
    schedule_balance: float
    teacher_satisfaction: float = TEACHER_SATISFACTION_BASELINE
    student_convenience: float = STUDENT_CONVENIENCE_BASELINE
    overall_score: float = 0.0

    @property
    def grade(self) -> str:
        """Letter grade of the overall score."""
        if self.overall_score >= 90:
            return "A"
        if self.overall_score >= 80:
            return "B"
        if self.overall_score >= 70:
            return "C"
        if self.overall_score >= 60:
            return "D"
        return "F"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Recommendation:
    type: str
    priority: str
    message: str
    action: str


# =============================================================================
# Calculations
# =============================================================================

def constraint_compliance(schedule: list[ScheduleEntry], conflicts: list[Conflict]) -> float:
    if not schedule:
        return 100.0
    return round(max(0.0, 100 - 100 * len(conflicts) / len(schedule)), 2)


def room_utilization(
    schedule: list[ScheduleEntry],
    classroom_count: int,
    time_slots: list[TimeSlot],
) -> float:
    """Booked minutes over (rooms x slot minutes), capped at 100."""
    available = classroom_count * sum(s.end - s.start for s in time_slots)
    if available <= 0:
        return 0.0
    booked = sum(e.duration for e in schedule)
    return round(min(100.0, booked / available * 100), 2)


def schedule_balance(schedule: list[ScheduleEntry], working_days: Iterable[Weekday]) -> float:
    """100 minus ten times the variance of entries per working day."""
    load = {day: 0 for day in working_days}
    for entry in schedule:
        load[entry.day] = load.get(entry.day, 0) + 1
    if not load:
        return 100.0
    return round(max(0.0, 100 - 10 * statistics.pvariance(load.values())), 2)


def calculate_quality_metrics(
    schedule: list[ScheduleEntry],
    conflicts: list[Conflict],
    classroom_count: int,
    time_slots: list[TimeSlot],
    working_days: Iterable[Weekday],
) -> QualityMetrics:
    metrics = QualityMetrics(
        constraint_compliance=constraint_compliance(schedule, conflicts),
        room_utilization=room_utilization(schedule, classroom_count, time_slots),
        schedule_balance=schedule_balance(schedule, working_days),
    )
    metrics.overall_score = round(
        sum(getattr(metrics, name) * weight for name, weight in SCORE_WEIGHTS.items()), 2
    )
    return metrics


def summarize_conflicts(conflicts: list[Conflict]) -> dict[str, int]:
    """Conflict counts keyed by conflict type."""
    return dict(Counter(c.type.value for c in conflicts))


def generate_recommendations(metrics: QualityMetrics, unscheduled_count: int = 0) -> list[Recommendation]:
    recommendations = []
    if metrics.constraint_compliance < COMPLIANCE_TARGET:
        recommendations.append(Recommendation(
            type="constraint_violation",
            priority="high",
            message=f"Constraint compliance is {metrics.constraint_compliance:.1f}%",
            action="Add teachers or classrooms, or widen availability windows",
        ))
    if metrics.room_utilization > UTILIZATION_LIMIT:
        recommendations.append(Recommendation(
            type="high_utilization",
            priority="medium",
            message=f"Classrooms are {metrics.room_utilization:.1f}% booked",
            action="Add classrooms or extend the teaching day",
        ))
    if metrics.schedule_balance < BALANCE_TARGET:
        recommendations.append(Recommendation(
            type="unbalanced_schedule",
            priority="medium",
            message=f"Daily load balance score is {metrics.schedule_balance:.1f}",
            action="Enable the balanced_schedule optimization goal",
        ))
    if unscheduled_count:
        recommendations.append(Recommendation(
            type="unscheduled_sessions",
            priority="high",
            message=f"{unscheduled_count} session(s) could not be scheduled",
            action="Check teacher availability, room capacity and lab requirements for these courses",
        ))
    return recommendations
