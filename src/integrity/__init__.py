# ABOUTME: Exposes the academic-integrity analysis engine.
# ABOUTME: Groups the violation analyzer and the report entrypoint.

from .analyzer import (
    analyze_quiz_integrity,
    analyze_violation_patterns,
    assess_user_risk,
    calculate_integrity_score,
    generate_recommendations,
    summarize_activities,
)
from .report import IntegrityReport, generate_integrity_report

__all__ = [
    "analyze_quiz_integrity",
    "analyze_violation_patterns",
    "assess_user_risk",
    "calculate_integrity_score",
    "generate_recommendations",
    "summarize_activities",
    "IntegrityReport",
    "generate_integrity_report",
]
