"""Availability-window checks for teachers and classrooms."""

from __future__ import annotations

from timetabler.data.models import Classroom, Teacher, Weekday, minutes_to_time


def teacher_unavailability_reason(teacher: Teacher, day: Weekday, start: int, end: int) -> str | None:
    """Why the teacher cannot teach in [start, end) on ``day``, or None if they can."""
    if teacher.availability is None:
        return None
    window = teacher.availability.for_day(day)
    if window is None or not window.available:
        return f"Teacher {teacher.id} is not available on {day.value}"
    if start < window.start_minutes or end > window.end_minutes:
        return (
            f"Teacher {teacher.id} is available {window.start_time}-{window.end_time} on "
            f"{day.value}, not {minutes_to_time(start)}-{minutes_to_time(end)}"
        )
    return None


def classroom_unavailability_reason(room: Classroom, day: Weekday, start: int, end: int) -> str | None:
    """Why the classroom cannot be booked in [start, end) on ``day``, or None if it can."""
    if room.availability is None:
        return None
    window = room.availability.for_day(day)
    if window is None or not window.available:
        return f"Classroom {room.id} is not available on {day.value}"
    if start < window.start_minutes or end > window.end_minutes:
        return (
            f"Classroom {room.id} is open {window.start_time}-{window.end_time} on "
            f"{day.value}, not {minutes_to_time(start)}-{minutes_to_time(end)}"
        )
    return None
