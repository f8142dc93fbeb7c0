# ABOUTME: Runs the student-success prediction pipeline for one activity window.
# ABOUTME: Reads records once, scores every student, then aggregates cohort insights and warnings.

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from src.common.config import DEFAULT_POLICY, ScoringPolicy
from src.common.data_source import ActivityDataSource, build_window, resolve_quiz, upstream_reads
from src.common.schemas import ActivityWindow, StudyGroupMembership
from src.common.statistics import safe_mean

from .cohort import CohortInsights, generate_cohort_insights
from .early_warning import EarlyWarning, generate_early_warnings
from .prediction import SuccessPrediction, predict_student
from .scoring import RiskLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionSummary:
    total_students: int
    high_risk_count: int
    medium_risk_count: int
    low_risk_count: int
    average_success_probability: float


@dataclass(frozen=True)
class PredictionResult:
    window: ActivityWindow
    predictions: List[SuccessPrediction]
    cohort_insights: CohortInsights
    early_warnings: List[EarlyWarning]
    summary: PredictionSummary


def summarize_predictions(predictions: List[SuccessPrediction]) -> PredictionSummary:
    levels = [p.risk_level for p in predictions]
    return PredictionSummary(
        total_students=len(predictions),
        high_risk_count=levels.count(RiskLevel.HIGH),
        medium_risk_count=levels.count(RiskLevel.MEDIUM),
        low_risk_count=levels.count(RiskLevel.LOW),
        average_success_probability=safe_mean([p.success_probability for p in predictions]),
    )


def run_success_prediction(
    source: ActivityDataSource,
    time_range_days: object = 90,
    quiz_id: Optional[str] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
) -> PredictionResult:
    """
    Score every student in the window and aggregate the cohort.

    Invalid input raises ValueError before any read. Any failure while reading
    from the data source surfaces as a single AnalyticsComputationError; there
    are no partial results.
    """
    window = build_window(time_range_days, quiz_id=quiz_id, now=now)
    resolve_quiz(source, window, stage="predict")

    with upstream_reads("predict"):
        students = source.fetch_students(window)
        memberships = source.fetch_study_group_memberships(window)
    logger.info(
        "Scoring %d students between %s and %s (quiz=%s)",
        len(students),
        window.start_date.isoformat(),
        window.end_date.isoformat(),
        window.quiz_id or "all",
    )

    memberships_by_student: Dict[str, List[StudyGroupMembership]] = defaultdict(list)
    for membership in memberships:
        memberships_by_student[membership.student_id].append(membership)

    predictions = [
        predict_student(student, memberships_by_student.get(student.student_id, []), window.end_date, policy)
        for student in students
    ]
    predictions.sort(key=lambda p: p.success_probability)

    early_warnings = generate_early_warnings(predictions, policy.early_warning)
    for warning in early_warnings:
        logger.info("Early warning %s: %s", warning.type, warning.message)

    return PredictionResult(
        window=window,
        predictions=predictions,
        cohort_insights=generate_cohort_insights(predictions, policy.cohort),
        early_warnings=early_warnings,
        summary=summarize_predictions(predictions),
    )
