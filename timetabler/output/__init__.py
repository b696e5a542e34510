"""Result rendering: quality metrics, recommendations and the JSON output schema."""

from .metrics import (
    QualityMetrics,
    Recommendation,
    calculate_quality_metrics,
    generate_recommendations,
    summarize_conflicts,
)
from .schema import TimetableOutput, create_timetable_output

__all__ = [
    "QualityMetrics",
    "Recommendation",
    "TimetableOutput",
    "calculate_quality_metrics",
    "create_timetable_output",
    "generate_recommendations",
    "summarize_conflicts",
]
