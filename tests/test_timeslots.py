"""Tests for time-slot generation."""

from __future__ import annotations

from timetabler.data.models import SolverSettings, Weekday
from timetabler.timeslots import TimeSlot, generate_time_slots, session_window


class TestGenerateTimeSlots:
    """Tests for the per-day slot grid."""

    def test_default_week(self):
        slots = generate_time_slots(SolverSettings())
        # 09:00-17:00 in hour steps, minus the 12:00 break, over five days
        assert len(slots) == 35
        assert [s.id for s in slots] == list(range(35))
        assert (slots[0].day, slots[0].start, slots[0].end) == (Weekday.MONDAY, 540, 600)

    def test_break_slots_are_never_emitted(self):
        slots = generate_time_slots(SolverSettings())
        assert all(not (s.start < 780 and 720 < s.end) for s in slots)
        assert 720 not in {s.start for s in slots}

    def test_without_breaks(self):
        slots = generate_time_slots(SolverSettings(working_days=["Monday"], break_slots=[]))
        assert [s.start_time for s in slots] == [
            "09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00",
        ]

    def test_slot_must_fit_before_day_end(self):
        settings = SolverSettings(working_days=["Monday"], slot_duration=90, break_slots=[])
        starts = [s.start for s in generate_time_slots(settings)]
        assert starts == [540, 630, 720, 810, 900]

    def test_partial_break_overlap_excludes_slot(self):
        settings = SolverSettings(working_days=["Monday"], break_slots=["12:30-13:00"])
        starts = [s.start for s in generate_time_slots(settings)]
        assert 720 not in starts
        assert 780 in starts

    def test_days_are_ordered_by_weekday(self):
        settings = SolverSettings(working_days=["Wednesday", "Monday"], break_slots=[])
        slots = generate_time_slots(settings)
        assert slots[0].day == Weekday.MONDAY
        assert slots[-1].day == Weekday.WEDNESDAY
        assert slots == sorted(slots, key=lambda s: s.sort_key)

    def test_generation_is_deterministic(self):
        assert generate_time_slots(SolverSettings()) == generate_time_slots(SolverSettings())


class TestSessionWindow:
    """Tests for fitting a session of some duration into a slot."""

    def test_fits(self):
        slot = TimeSlot(id=0, day=Weekday.MONDAY, start=540, end=600)
        assert session_window(slot, 90, 1020, [(720, 780)]) == (540, 630)

    def test_runs_into_break(self):
        slot = TimeSlot(id=2, day=Weekday.MONDAY, start=660, end=720)
        assert session_window(slot, 120, 1020, [(720, 780)]) is None

    def test_runs_past_day_end(self):
        slot = TimeSlot(id=6, day=Weekday.MONDAY, start=960, end=1020)
        assert session_window(slot, 120, 1020, []) is None

    def test_str(self):
        slot = TimeSlot(id=0, day=Weekday.TUESDAY, start=600, end=660)
        assert str(slot) == "Tuesday 10:00-11:00"
