"""Tests for post-solve repair and optimization-goal passes."""

from __future__ import annotations

from collections import Counter

import pytest

from timetabler.data.models import (
    OptimizationGoal,
    TeacherPreferences,
    TimeWindow,
    Weekday,
)
from timetabler.problem import SchedulingProblem
from timetabler.repair import ScheduleRepairer
from timetabler.schedule import detect_conflicts
from timetabler.strategies import GreedySolver


def place(problem: SchedulingProblem, session_id: str, day: Weekday, start: int, room: str):
    """Entry for a session at an exact day, start and classroom from its domain."""
    session = next(s for s in problem.sessions if s.id == session_id)
    placement = next(
        p for p in problem.build_domain(session)
        if p.slot.day == day and p.start == start and p.classroom_id == room
    )
    return problem.entry_for(session, placement)


@pytest.fixture
def greedy_schedule(small_problem):
    """Greedy puts every session of the small problem on Monday."""
    return GreedySolver(small_problem).solve().solution


# =============================================================================
# Conflict Repair
# =============================================================================

class TestRepairConflicts:
    """Tests for re-rooming and re-slotting conflicting entries."""

    def test_reroom_keeps_time(self, small_problem):
        schedule = [
            place(small_problem, "MA101-Theory-1", Weekday.MONDAY, 540, "LH1"),
            place(small_problem, "CS101-Theory-1", Weekday.MONDAY, 540, "LH1"),
        ]
        repairer = ScheduleRepairer(small_problem)
        repaired = repairer.repair_conflicts(schedule)

        assert detect_conflicts(repaired) == []
        assert repaired[0] is schedule[0]
        assert (repaired[1].day, repaired[1].start) == (Weekday.MONDAY, 540)
        assert repaired[1].classroom_id != "LH1"
        assert repairer.moves == 1

    def test_reslot_teacher_clash(self, small_problem):
        schedule = [
            place(small_problem, "MA101-Theory-1", Weekday.MONDAY, 540, "LH1"),
            place(small_problem, "MA101-Theory-2", Weekday.MONDAY, 540, "LH2"),
        ]
        repaired = ScheduleRepairer(small_problem).repair_conflicts(schedule)

        assert detect_conflicts(repaired) == []
        assert repaired[1].start != 540

    def test_never_adds_conflicts(self, overloaded_problem):
        schedule = [
            place(overloaded_problem, f"C1-Theory-{n}", Weekday.MONDAY, 540, "R1") for n in (1, 2, 3)
        ]
        before = detect_conflicts(schedule)
        repairer = ScheduleRepairer(overloaded_problem)
        after = detect_conflicts(repairer.repair_conflicts(schedule, rounds=3))

        assert len(before) == 9
        assert len(after) == 3
        assert repairer.moves == 1

    def test_clean_schedule_untouched(self, small_problem, greedy_schedule):
        repairer = ScheduleRepairer(small_problem)
        assert repairer.repair_conflicts(greedy_schedule) == greedy_schedule
        assert repairer.moves == 0


# =============================================================================
# Optimization Goals
# =============================================================================

class TestGoals:
    """Tests for the quality passes behind each optimization goal."""

    def test_balance_days(self, small_problem, greedy_schedule):
        assert {e.day for e in greedy_schedule} == {Weekday.MONDAY}

        balanced = ScheduleRepairer(small_problem).balance_days(greedy_schedule)

        assert detect_conflicts(balanced) == []
        for cohort in {e.session.cohort for e in balanced}:
            per_day = Counter(e.day for e in balanced if e.session.cohort == cohort)
            loads = [per_day.get(day, 0) for day in small_problem.settings.working_days]
            assert max(loads) - min(loads) <= 1

    def test_respect_preferences(self, make_teacher, make_room, make_course, small_settings):
        avoid = TimeWindow(day=Weekday.MONDAY, start_time="09:00", end_time="12:00")
        teacher = make_teacher(preferences=TeacherPreferences(avoid_time_slots=[avoid]))
        problem = SchedulingProblem.build([teacher], [make_room()], [make_course()], small_settings)
        schedule = [place(problem, "C1-Theory-1", Weekday.MONDAY, 540, "R1")]

        moved = ScheduleRepairer(problem).respect_preferences(schedule)
        assert (moved[0].day, moved[0].start) == (Weekday.MONDAY, 780)

    def test_tighten_rooms(self, make_teacher, make_room, make_course, small_settings):
        rooms = [make_room("BIG", capacity=100), make_room("FIT", capacity=35)]
        problem = SchedulingProblem.build([make_teacher()], rooms, [make_course(students=30)], small_settings)
        schedule = [place(problem, "C1-Theory-1", Weekday.MONDAY, 540, "BIG")]

        repairer = ScheduleRepairer(problem)
        tightened = repairer.tighten_rooms(schedule)
        assert tightened[0].classroom_id == "FIT"
        assert tightened[0].start == 540
        assert repairer.moves == 1

    def test_close_student_gaps(self, make_teacher, make_room, make_course, small_settings):
        problem = SchedulingProblem.build(
            [make_teacher()], [make_room()], [make_course(theory=2)], small_settings
        )
        schedule = [
            place(problem, "C1-Theory-1", Weekday.MONDAY, 540, "R1"),
            place(problem, "C1-Theory-2", Weekday.MONDAY, 780, "R1"),
        ]
        closed = ScheduleRepairer(problem).close_student_gaps(schedule)
        assert [e.start for e in closed] == [540, 600]

    def test_apply_goals_in_order(self, small_problem):
        schedule = [
            place(small_problem, "MA101-Theory-1", Weekday.MONDAY, 540, "LH1"),
            place(small_problem, "CS101-Theory-1", Weekday.MONDAY, 540, "LH1"),
        ]
        repairer = ScheduleRepairer(small_problem)
        result = repairer.apply_goals(
            schedule,
            [OptimizationGoal.MINIMIZE_CONFLICTS, OptimizationGoal.RESOURCE_OPTIMIZATION],
        )
        assert detect_conflicts(result) == []
        assert repairer.moves >= 1

    def test_no_goals(self, small_problem, greedy_schedule):
        assert ScheduleRepairer(small_problem).apply_goals(greedy_schedule, []) == greedy_schedule
