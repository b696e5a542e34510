"""
Time-slot generation.

Slots are generated per working day at duration-aligned offsets from the
day start. A slot that intersects a break window is never emitted. The
output order (day, then start) is a pure function of the settings, which
keeps deterministic strategies reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .data.models import SolverSettings, Weekday, minutes_to_time, windows_overlap


@dataclass(frozen=True)
class TimeSlot:
    """A bookable (day, start, end) window. Times are minutes from midnight."""
    id: int
    day: Weekday
    start: int
    end: int

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.day.order, self.start)

    def __str__(self) -> str:
        return f"{self.day.value} {self.start_time}-{self.end_time}"


def generate_time_slots(settings: SolverSettings) -> list[TimeSlot]:
    """Build the ordered slot list for a solve."""
    breaks = settings.break_windows
    slots: list[TimeSlot] = []

    days = sorted(set(settings.working_days), key=lambda d: d.order)
    for day in days:
        start = settings.start_minutes
        while start + settings.slot_duration <= settings.end_minutes:
            end = start + settings.slot_duration
            if not any(windows_overlap(start, end, b_start, b_end) for b_start, b_end in breaks):
                slots.append(TimeSlot(id=len(slots), day=day, start=start, end=end))
            start += settings.slot_duration

    return slots


def session_window(
    slot: TimeSlot,
    duration: int,
    day_end: int,
    breaks: list[tuple[int, int]],
) -> Optional[tuple[int, int]]:
    """
    Window a session of ``duration`` minutes occupies when started in ``slot``.

    Returns None when the session would run past ``day_end`` or into a
    break.
    """
    end = slot.start + duration
    if end > day_end:
        return None
    for b_start, b_end in breaks:
        if windows_overlap(slot.start, end, b_start, b_end):
            return None
    return slot.start, end
