"""Tests for expanding courses into sessions."""

from __future__ import annotations

from timetabler.data.models import (
    AssignedTeacher,
    Batch,
    Division,
    Priority,
    SessionType,
    TeacherType,
)
from timetabler.sessions import extract_sessions, sort_sessions_by_priority


class TestExtractSessions:
    """Tests for session extraction."""

    def test_one_session_per_weekly_occurrence(self, make_course):
        sessions = extract_sessions([make_course(theory=2, practical=1)])
        assert [s.id for s in sessions] == ["C1-Theory-1", "C1-Theory-2", "C1-Practical-1"]

    def test_fields_copied_from_course(self, make_course):
        course = make_course(
            theory=1, students=45, program="BSc CS", year=2, department="CS", is_elective=True,
        )
        session = extract_sessions([course])[0]
        assert session.required_capacity == 45
        assert session.cohort == ("BSc CS", 2, 1)
        assert session.eligible_teacher_ids == ("T1",)
        assert session.is_elective
        assert session.department == "CS"

    def test_min_room_capacity_overrides_enrolment(self, make_course):
        course = make_course(theory=1, students=45)
        course.sessions.theory.min_room_capacity = 60
        assert extract_sessions([course])[0].required_capacity == 60

    def test_divisions_and_batches(self, make_course):
        course = make_course(theory=1, students=60)
        course.divisions = [
            Division(division_id="A", student_count=30, batches=[
                Batch(batch_id="A1", student_count=15),
                Batch(batch_id="A2", student_count=15),
            ]),
            Division(division_id="B", student_count=30),
        ]
        sessions = extract_sessions([course])
        assert [s.id for s in sessions] == ["C1-Theory-1-A-A1", "C1-Theory-1-A-A2", "C1-Theory-1-B"]
        assert [s.required_capacity for s in sessions] == [15, 15, 30]

    def test_division_size_defaults_to_even_split(self, make_course):
        course = make_course(theory=1, students=60)
        course.divisions = [Division(division_id="A"), Division(division_id="B")]
        assert [s.student_count for s in extract_sessions([course])] == [30, 30]

    def test_teachers_filtered_by_session_type(self, make_course):
        course = make_course(theory=1, practical=1)
        course.assigned_teachers = [
            AssignedTeacher(teacher_id="T1", session_types=[SessionType.THEORY]),
            AssignedTeacher(teacher_id="T2", session_types=[SessionType.PRACTICAL]),
        ]
        theory, practical = extract_sessions([course])
        assert theory.eligible_teacher_ids == ("T1",)
        assert practical.eligible_teacher_ids == ("T2",)

    def test_session_without_teacher_is_dropped(self, make_course):
        course = make_course(theory=1, practical=1)
        course.assigned_teachers = [AssignedTeacher(teacher_id="T1", session_types=[SessionType.THEORY])]
        sessions = extract_sessions([course])
        assert [s.session_type for s in sessions] == [SessionType.THEORY]

    def test_unknown_teachers_are_not_eligible(self, make_course, make_teacher):
        course = make_course(theory=1, teacher_ids=("T1", "GHOST"))
        sessions = extract_sessions([course], [make_teacher("T1")])
        assert sessions[0].eligible_teacher_ids == ("T1",)

    def test_str(self, make_session):
        assert str(make_session(division_id="A", batch_id="A1")) == "C1 Theory #1 [A/A1]"


class TestSortSessions:
    """Tests for the constructive visitation order."""

    def test_visiting_teacher_sessions_first(self, make_session, make_teacher):
        teachers = [make_teacher("T1"), make_teacher("T2", teacher_type=TeacherType.VISITING)]
        core = make_session("C1", teachers=("T1",))
        visiting = make_session("C2", teachers=("T2",))
        ordered = sort_sessions_by_priority([core, visiting], teachers, by_constraint_count=False)
        assert ordered == [visiting, core]

    def test_incoming_order_kept_without_constraint_count(self, make_session, make_teacher):
        sessions = [make_session("C3"), make_session("C1"), make_session("C2")]
        ordered = sort_sessions_by_priority(sessions, [make_teacher("T1")], by_constraint_count=False)
        assert [s.course_id for s in ordered] == ["C3", "C1", "C2"]

    def test_most_constrained_first(self, make_session, make_teacher):
        loose = make_session("C1")
        lab = make_session("C2", session_type=SessionType.PRACTICAL, requires_lab=True)
        ordered = sort_sessions_by_priority([loose, lab], [make_teacher("T1")])
        assert ordered == [lab, loose]

    def test_course_priority_breaks_ties(self, make_session, make_teacher):
        low = make_session("C1", priority=Priority.LOW)
        high = make_session("C2", priority=Priority.HIGH)
        ordered = sort_sessions_by_priority([low, high], [make_teacher("T1")])
        assert ordered == [high, low]
