# ABOUTME: Tests cohort aggregation and the early-warning scanner.
# ABOUTME: Builds predictions directly to exercise band edges, correlation, and detector thresholds.

from typing import List

import pytest

from src.common.schemas import Severity
from src.success_risk.cohort import generate_cohort_insights
from src.success_risk.early_warning import generate_early_warnings
from src.success_risk.metrics import (
    ChatEngagementMetrics,
    PerformanceMetrics,
    StudentMetrics,
    StudyGroupParticipation,
)
from src.success_risk.prediction import SuccessPrediction
from src.success_risk.risk_factors import RiskFactor


def _prediction(
    name: str,
    average_score: float = 75,
    engagement_score: float = 50,
    improvement_trend: float = 0,
    has_groups: bool = False,
    risk_level: str = "MEDIUM",
    total_messages: int = 10,
    total_attempts: int = 3,
    risk_factors: List[RiskFactor] = None,
) -> SuccessPrediction:
    return SuccessPrediction(
        student_id=name.lower(),
        student_name=name,
        metrics=StudentMetrics(
            chat=ChatEngagementMetrics(total_messages=total_messages, engagement_score=engagement_score),
            performance=PerformanceMetrics(
                total_attempts=total_attempts,
                average_score=average_score,
                improvement_trend=improvement_trend,
            ),
            study_group=StudyGroupParticipation(active_groups=int(has_groups), has_groups=has_groups),
        ),
        success_probability=60,
        risk_level=risk_level,
        next_quiz_success_rate=60,
        risk_factors=risk_factors or [],
        interventions=[],
    )


def _factor(severity: str) -> RiskFactor:
    return RiskFactor(type="LOW_PERFORMANCE", severity=severity, description="", value=0)


def test_performance_and_engagement_bands_are_lower_inclusive():
    averages = [95, 90, 85, 80, 75, 70, 69.9, 0]
    engagements = [70, 69.9, 40, 39.9, 100, 55, 0, 10]
    predictions = [
        _prediction(f"S{i}", average_score=a, engagement_score=e)
        for i, (a, e) in enumerate(zip(averages, engagements))
    ]

    insights = generate_cohort_insights(predictions)
    dist = insights.performance_distribution
    assert (dist.excellent, dist.good, dist.average, dist.below_average) == (2, 2, 2, 2)
    patterns = insights.engagement_patterns
    assert (patterns.high, patterns.moderate, patterns.low) == (2, 3, 3)


def test_two_student_cohort_correlation_is_strong():
    predictions = [
        _prediction("Low", average_score=20, engagement_score=10),
        _prediction("High", average_score=95, engagement_score=90),
    ]
    correlation = generate_cohort_insights(predictions).correlation
    assert correlation.value == pytest.approx(1.0)
    assert correlation.strength == "Strong"


def test_trends_average_improvement_and_group_share():
    predictions = [
        _prediction("A", improvement_trend=10, has_groups=True),
        _prediction("B", improvement_trend=-20, has_groups=False),
    ]
    trends = generate_cohort_insights(predictions).trends
    assert trends.average_improvement == pytest.approx(-5.0)
    assert trends.study_group_participation == pytest.approx(0.5)


def test_empty_and_single_student_cohorts_are_neutral():
    empty = generate_cohort_insights([])
    assert empty.performance_distribution.below_average == 0
    assert empty.engagement_patterns.low == 0
    assert empty.correlation.value == 0.0
    assert empty.correlation.strength == "Weak"
    assert empty.trends.average_improvement == 0.0
    assert empty.trends.study_group_participation == 0.0

    single = generate_cohort_insights([_prediction("Solo", average_score=88, engagement_score=70)])
    assert single.correlation.value == 0.0
    assert single.performance_distribution.good == 1


def test_no_warnings_for_healthy_cohort():
    predictions = [_prediction("Fine", risk_level="LOW", total_messages=12, improvement_trend=4)]
    assert generate_early_warnings(predictions) == []


def test_critical_risk_requires_high_level_and_high_factor():
    predictions = [
        _prediction("Critical", risk_level="HIGH", risk_factors=[_factor(Severity.HIGH)]),
        _prediction("OnlyMedium", risk_level="HIGH", risk_factors=[_factor(Severity.MEDIUM)]),
        _prediction("NotHighRisk", risk_level="MEDIUM", risk_factors=[_factor(Severity.HIGH)]),
    ]
    warnings = generate_early_warnings(predictions)

    assert [w.type for w in warnings] == ["CRITICAL_RISK"]
    assert warnings[0].severity == "HIGH"
    assert warnings[0].count == 1
    assert warnings[0].affected_student_names == ["Critical"]
    assert warnings[0].message == "1 students require immediate intervention"


def test_declining_and_silent_detectors():
    predictions = [
        _prediction("Sliding", improvement_trend=-16),
        _prediction("Edge", improvement_trend=-15),
        _prediction("Silent", total_messages=2, total_attempts=1),
        _prediction("Absent", total_messages=2, total_attempts=0),
        _prediction("Chatty", total_messages=3, total_attempts=5),
    ]
    warnings = {w.type: w for w in generate_early_warnings(predictions)}

    assert set(warnings) == {"DECLINING_TREND", "LOW_ENGAGEMENT"}
    assert warnings["DECLINING_TREND"].affected_student_names == ["Sliding"]
    assert warnings["DECLINING_TREND"].severity == "MEDIUM"
    assert warnings["LOW_ENGAGEMENT"].affected_student_names == ["Silent"]
    assert warnings["LOW_ENGAGEMENT"].severity == "LOW"
