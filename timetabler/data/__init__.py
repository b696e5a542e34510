"""Input models, loading and sample data generation."""

from .loader import (
    ValidationReport,
    load_timetable_input,
    validate_input_data,
    validate_timetable_input,
)
from .generator import (
    GeneratorConfig,
    generate_sample_institution,
    generate_small_institution,
    generate_medium_institution,
    save_generated_institution,
    get_generation_stats,
)

__all__ = [
    # Loader
    "ValidationReport",
    "load_timetable_input",
    "validate_input_data",
    "validate_timetable_input",
    # Generator
    "GeneratorConfig",
    "generate_sample_institution",
    "generate_small_institution",
    "generate_medium_institution",
    "save_generated_institution",
    "get_generation_stats",
]
