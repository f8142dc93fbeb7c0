# ABOUTME: Produces the academic-integrity report for one activity window.
# ABOUTME: Reads flagged activity once and assembles score, patterns, user risk, and recommendations.

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional

from src.common.config import DEFAULT_POLICY, ScoringPolicy
from src.common.data_source import ActivityDataSource, build_window, resolve_quiz, upstream_reads
from src.common.schemas import ActivityWindow, SuspiciousActivityRecord

from .analyzer import (
    IntegrityScore,
    IntegritySummary,
    PatternAnalysis,
    QuizIntegrityAnalysis,
    UserRiskAssessment,
    analyze_quiz_integrity,
    analyze_violation_patterns,
    assess_user_risk,
    calculate_integrity_score,
    generate_recommendations,
    summarize_activities,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegrityReport:
    window: ActivityWindow
    summary: IntegritySummary
    integrity_score: IntegrityScore
    suspicious_activities: List[SuspiciousActivityRecord]
    pattern_analysis: PatternAnalysis
    user_risk_assessment: List[UserRiskAssessment]
    recommendations: List[str]
    quiz_analysis: Optional[QuizIntegrityAnalysis] = None


def build_integrity_report(
    records: List[SuspiciousActivityRecord],
    window: ActivityWindow,
    policy: ScoringPolicy = DEFAULT_POLICY,
    quiz_analysis: Optional[QuizIntegrityAnalysis] = None,
) -> IntegrityReport:
    """Assemble the report from records that were already read for the window."""
    records = sorted(records, key=lambda r: r.timestamp, reverse=True)
    summary = summarize_activities(records, window, policy.integrity)
    patterns = analyze_violation_patterns(records, policy.integrity)

    return IntegrityReport(
        window=window,
        summary=summary,
        integrity_score=calculate_integrity_score(summary, patterns, policy.integrity),
        suspicious_activities=records,
        pattern_analysis=patterns,
        user_risk_assessment=assess_user_risk(records, policy.integrity),
        recommendations=generate_recommendations(summary, patterns, policy.integrity),
        quiz_analysis=quiz_analysis,
    )


def generate_integrity_report(
    source: ActivityDataSource,
    time_range_days: object = 30,
    quiz_id: Optional[str] = None,
    user_id: Optional[str] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
) -> IntegrityReport:
    """
    Build the integrity report for flagged discussion activity in the window.

    A window without flagged records yields a perfect score and empty
    collections rather than an error.
    """
    window = build_window(time_range_days, quiz_id=quiz_id, user_id=user_id, now=now)
    quiz = resolve_quiz(source, window, stage="integrity")

    quiz_analysis = None
    with upstream_reads("integrity"):
        records = source.fetch_suspicious_activities(window)
        if quiz is not None:
            # Quiz integrity covers every participant, even when the report is scoped to one user.
            quiz_window = replace(window, user_id=None)
            quiz_records = records if window.user_id is None else source.fetch_suspicious_activities(quiz_window)
            attempts = source.fetch_quiz_attempts(quiz_window)
    logger.info("Analyzing %d flagged activities (quiz=%s, user=%s)", len(records), window.quiz_id, window.user_id)

    if quiz is not None:
        quiz_analysis = analyze_quiz_integrity(quiz, attempts, quiz_records)
    report = build_integrity_report(records, window, policy, quiz_analysis)
    logger.info("Integrity score %d (%s)", report.integrity_score.score, report.integrity_score.level)
    return report
