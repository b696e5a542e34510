"""Tests for sample data generator."""

from __future__ import annotations

import pytest

from timetabler.data.generator import (
    GeneratorConfig,
    generate_medium_institution,
    generate_sample_institution,
    generate_small_institution,
    get_generation_stats,
    save_generated_institution,
)
from timetabler.data.loader import load_timetable_input, validate_timetable_input
from timetabler.data.models import RoomType, TimetableInput


class TestGeneratorConfig:
    """Tests for GeneratorConfig."""

    def test_default_config(self):
        """Default config has expected values."""
        config = GeneratorConfig()
        assert config.num_teachers == 8
        assert config.programs == ["B.Sc Computer Science", "B.Sc Mathematics"]
        assert config.seed is None

    def test_lists_not_shared(self):
        first, second = GeneratorConfig(), GeneratorConfig()
        first.years.append(3)
        assert second.years == [1, 2]


class TestGenerateSampleInstitution:
    """Tests for generate_sample_institution."""

    def test_counts_follow_config(self):
        config = GeneratorConfig(num_teachers=4, num_lecture_halls=1, num_tutorial_rooms=1, num_labs=1, seed=1)
        data = generate_sample_institution(config)
        assert isinstance(data, TimetableInput)
        assert len(data.teachers) == 4
        assert len(data.classrooms) == 3
        # 2 programs x 2 years x 2 courses
        assert len(data.courses) == 8

    def test_room_types(self):
        data = generate_sample_institution(GeneratorConfig(seed=2))
        types = [r.type for r in data.classrooms]
        assert types.count(RoomType.LECTURE_HALL) == 3
        assert types.count(RoomType.TUTORIAL_ROOM) == 2
        assert types.count(RoomType.COMPUTER_LAB) == 2

    def test_reproducible_with_seed(self):
        first = generate_sample_institution(GeneratorConfig(seed=42))
        second = generate_sample_institution(GeneratorConfig(seed=42))
        assert first.model_dump() == second.model_dump()

    def test_seed_carried_into_settings(self):
        data = generate_sample_institution(GeneratorConfig(seed=9))
        assert data.settings.random_seed == 9

    def test_every_course_has_a_known_teacher(self):
        data = generate_sample_institution(GeneratorConfig(seed=3))
        teacher_ids = {t.id for t in data.teachers}
        for course in data.courses:
            assert course.assigned_teachers
            assert {a.teacher_id for a in course.assigned_teachers} <= teacher_ids

    def test_practicals_need_labs(self):
        data = generate_sample_institution(GeneratorConfig(seed=4))
        practicals = [c.sessions.practical for c in data.courses if c.sessions.practical]
        assert practicals
        assert all(p.requires_lab and p.duration == 120 for p in practicals)

    def test_no_divisions_when_disabled(self):
        data = generate_sample_institution(GeneratorConfig(division_probability=0.0, seed=5))
        assert all(not c.divisions for c in data.courses)

    def test_all_visiting_when_forced(self):
        data = generate_sample_institution(GeneratorConfig(visiting_probability=1.0, seed=6))
        for teacher in data.teachers:
            assert teacher.is_priority
            assert sum(teacher.availability.is_available_on(d) for d in data.settings.working_days) == 3


class TestPresets:
    """Tests for the preset sizes."""

    def test_small(self):
        data = generate_small_institution(seed=1)
        assert (len(data.teachers), len(data.classrooms), len(data.courses)) == (6, 5, 4)

    def test_medium(self):
        data = generate_medium_institution(seed=1)
        assert (len(data.teachers), len(data.classrooms), len(data.courses)) == (16, 12, 18)

    @pytest.mark.parametrize("generate", [generate_small_institution, generate_medium_institution])
    def test_output_is_valid(self, generate):
        report = validate_timetable_input(generate(seed=11))
        assert report.is_valid, report.errors
        assert report.warnings == []


class TestSaveAndStats:
    """Tests for saving and summarizing generated data."""

    def test_save_and_load_round_trip(self, tmp_path):
        data = generate_small_institution(seed=8)
        path = tmp_path / "nested" / "institution.json"
        save_generated_institution(data, path)

        loaded = load_timetable_input(path)
        assert [t.id for t in loaded.teachers] == [t.id for t in data.teachers]
        assert [c.id for c in loaded.courses] == [c.id for c in data.courses]
        assert loaded.settings.random_seed == 8

    def test_stats(self):
        data = generate_small_institution(seed=1)
        stats = get_generation_stats(data)
        assert stats["teachers"] == 6
        assert stats["classrooms"] == 5
        assert stats["time_slots"] == 35
        assert stats["labs"] == 1
        assert 0 < stats["utilization_percent"] < 100
        assert stats["sessions_per_week"] == data.total_sessions_per_week
