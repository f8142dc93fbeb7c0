# ABOUTME: Combines metric groups into a success probability and a discrete risk level.
# ABOUTME: Also projects the student's likely score on the next quiz.

from __future__ import annotations

from src.common.config import DEFAULT_POLICY, NextQuizPolicy, RiskBands, SuccessWeights
from src.common.schemas import Severity
from src.common.statistics import clamp, round_half_up

from .metrics import ChatEngagementMetrics, PerformanceMetrics, StudyGroupParticipation


# Risk levels share the severity vocabulary.
RiskLevel = Severity


def predict_success_probability(
    chat: ChatEngagementMetrics,
    performance: PerformanceMetrics,
    study_group: StudyGroupParticipation,
    weights: SuccessWeights = DEFAULT_POLICY.weights,
) -> int:
    """
    Weighted composite of performance, engagement, study groups and consistency.

    Each term is clamped into [0, 100] before weighting, so the result is an
    integer in [0, 100].
    """
    weighted = (
        clamp(performance.average_score) * weights.performance
        + clamp(chat.engagement_score) * weights.engagement
        + clamp(study_group.participation_score) * weights.study_group
        + clamp(performance.consistency_score) * weights.consistency
    )
    return int(clamp(round_half_up(weighted)))


def classify_risk_level(success_probability: float, bands: RiskBands = DEFAULT_POLICY.risk_bands) -> str:
    if success_probability >= bands.low_risk_min:
        return RiskLevel.LOW
    if success_probability >= bands.medium_risk_min:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def predict_next_quiz_success(
    chat: ChatEngagementMetrics,
    performance: PerformanceMetrics,
    policy: NextQuizPolicy = DEFAULT_POLICY.next_quiz,
) -> int:
    baseline = performance.recent_performance or performance.average_score
    trend_bonus = policy.improving_bonus if performance.improvement_trend > 0 else policy.not_improving_bonus
    engagement_bonus = (
        policy.engaged_bonus if chat.engagement_score > policy.engagement_cutoff else policy.disengaged_bonus
    )
    return int(round_half_up(clamp(baseline + trend_bonus + engagement_bonus)))
