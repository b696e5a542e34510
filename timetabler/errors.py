"""Exception types raised by the timetabling engine."""

from __future__ import annotations


class TimetablerError(Exception):
    """Base class for engine errors."""
    pass


class DataValidationError(TimetablerError):
    """Raised when teacher, classroom or course data fails validation.

    All issues found are collected in ``issues``; the message joins them
    with "; " so a single line still carries the full report.
    """

    def __init__(self, issues: list[str] | str):
        if isinstance(issues, str):
            issues = [issues]
        self.issues = list(issues)
        super().__init__("; ".join(self.issues))


class SolveCancelled(TimetablerError):
    """Raised at a progress checkpoint once the cancellation token is set."""
    pass
