"""Load timetable input from JSON files and check it for completeness."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Union

from pydantic import ValidationError

from timetabler.errors import DataValidationError

from .models import Classroom, Course, Teacher, TimetableInput, _convert_keys_to_snake_case

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["teachers", "classrooms", "courses"]


@dataclass
class ValidationReport:
    """Issues block a solve; warnings are reported but do not."""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def load_timetable_input(path: Union[str, Path]) -> TimetableInput:
    """
    Load timetable input from a JSON file.

    Args:
        path: Path to the JSON file

    Returns:
        Parsed and reference-checked TimetableInput

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file isn't valid JSON
        DataValidationError: If the data fails schema or reference checks
    """
    with open(Path(path)) as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise DataValidationError("Top-level JSON value must be an object")
    missing = [name for name in REQUIRED_FIELDS if name not in data]
    if missing:
        raise DataValidationError([f"Missing required field: {name}" for name in missing])

    try:
        timetable = TimetableInput.model_validate(_convert_keys_to_snake_case(data))
    except ValidationError as e:
        raise DataValidationError([_format_error(err) for err in e.errors()]) from e

    errors = check_references(timetable)
    if errors:
        raise DataValidationError(errors)
    return timetable


def _format_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg', 'invalid value')}" if location else error.get("msg", "invalid value")


def check_references(data: TimetableInput) -> list[str]:
    """Duplicate ids only; unknown teacher references are left to ``validate_input_data``."""
    errors = []

    def check_duplicates(ids: Iterable[str], name: str) -> None:
        seen = set()
        for id_ in ids:
            if id_ in seen:
                errors.append(f"Duplicate {name} ID: {id_}")
            seen.add(id_)

    check_duplicates((t.id for t in data.teachers), "teacher")
    check_duplicates((r.id for r in data.classrooms), "classroom")
    check_duplicates((c.id for c in data.courses), "course")
    return errors


def _subject_matches(subject: str, course: Course) -> bool:
    subject = subject.lower()
    names = [course.name.lower(), (course.code or "").lower()]
    return any(name and (subject in name or name in subject) for name in names)


def validate_input_data(
    teachers: list[Teacher],
    classrooms: list[Classroom],
    courses: list[Course],
) -> ValidationReport:
    """
    Completeness checks run before any strategy.

    Every issue is collected rather than stopping at the first one. A
    teacher whose subjects don't match the course is only a warning.
    """
    report = ValidationReport()

    if not teachers:
        report.errors.append("No teachers provided")
    for teacher in teachers:
        if not teacher.subjects:
            report.errors.append(f"Teacher {teacher} has no subjects assigned")
        if teacher.availability is None:
            report.errors.append(f"Teacher {teacher} has no availability defined")

    if not classrooms:
        report.errors.append("No classrooms provided")
    for room in classrooms:
        if room.capacity < 1:
            report.errors.append(f"Classroom {room.name or room.id} has invalid capacity ({room.capacity})")

    if not courses:
        report.errors.append("No courses provided")
    teachers_by_id = {t.id: t for t in teachers}
    for course in courses:
        if not course.assigned_teachers:
            report.errors.append(f"Course {course} has no teachers assigned")
        if not course.sessions.active():
            report.errors.append(f"Course {course} has no valid sessions defined")
        for assigned in course.assigned_teachers:
            teacher = teachers_by_id.get(assigned.teacher_id)
            if teacher is None:
                report.errors.append(
                    f"Course {course} assigned to non-existent teacher {assigned.teacher_id}"
                )
            elif teacher.subjects and not any(_subject_matches(s, course) for s in teacher.subjects):
                report.warnings.append(
                    f"Teacher {teacher} may not be qualified to teach {course.name or course.id} (subject mismatch)"
                )

    for warning in report.warnings:
        logger.warning("Validation: %s", warning)
    if report.errors:
        logger.error("Validation failed with %d issue(s)", len(report.errors))
    return report


def validate_timetable_input(data: TimetableInput) -> ValidationReport:
    """Reference and completeness checks for a parsed input bundle."""
    report = validate_input_data(data.teachers, data.classrooms, data.courses)
    report.errors = check_references(data) + report.errors
    return report
