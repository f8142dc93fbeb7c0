# ABOUTME: Maps metric thresholds to named risk factors and risk factors to interventions.
# ABOUTME: Rules are an ordered, independent table; interventions come from a static lookup.

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from src.common.config import DEFAULT_POLICY, RiskFactorThresholds
from src.common.schemas import Severity

from .metrics import ChatEngagementMetrics, PerformanceMetrics, StudentMetrics, StudyGroupParticipation


class RiskFactorType:
    LOW_PERFORMANCE = "LOW_PERFORMANCE"
    DECLINING_PERFORMANCE = "DECLINING_PERFORMANCE"
    LOW_ENGAGEMENT = "LOW_ENGAGEMENT"
    INFREQUENT_PARTICIPATION = "INFREQUENT_PARTICIPATION"
    NO_STUDY_GROUPS = "NO_STUDY_GROUPS"
    INCONSISTENT_PERFORMANCE = "INCONSISTENT_PERFORMANCE"


@dataclass(frozen=True)
class RiskFactor:
    type: str
    severity: str
    description: str
    value: float


@dataclass(frozen=True)
class Intervention:
    type: str
    priority: str
    action: str
    description: str


@dataclass(frozen=True)
class RiskRule:
    factor_type: str
    severity: str
    description: str
    # Returns the observed value when the rule fires, None otherwise.
    evaluate: Callable[[StudentMetrics, RiskFactorThresholds], Optional[float]]
    needs_attempts: bool = False


def _below(value: float, threshold: float) -> Optional[float]:
    return value if value < threshold else None


RISK_RULES: Tuple[RiskRule, ...] = (
    RiskRule(
        RiskFactorType.LOW_PERFORMANCE,
        Severity.HIGH,
        "Consistently low quiz scores",
        lambda m, t: _below(m.performance.average_score, t.low_performance),
        needs_attempts=True,
    ),
    RiskRule(
        RiskFactorType.DECLINING_PERFORMANCE,
        Severity.HIGH,
        "Performance declining over time",
        lambda m, t: _below(m.performance.improvement_trend, t.declining_trend),
        needs_attempts=True,
    ),
    RiskRule(
        RiskFactorType.LOW_ENGAGEMENT,
        Severity.MEDIUM,
        "Very low chat participation",
        lambda m, t: _below(m.chat.total_messages, t.low_engagement_messages),
    ),
    RiskRule(
        RiskFactorType.INFREQUENT_PARTICIPATION,
        Severity.MEDIUM,
        "Infrequent learning activities",
        lambda m, t: _below(m.chat.messages_per_day, t.infrequent_messages_per_day),
    ),
    RiskRule(
        RiskFactorType.NO_STUDY_GROUPS,
        Severity.LOW,
        "Not participating in study groups",
        lambda m, t: None if m.study_group.has_groups else 0.0,
    ),
    RiskRule(
        RiskFactorType.INCONSISTENT_PERFORMANCE,
        Severity.MEDIUM,
        "Highly variable quiz performance",
        lambda m, t: _below(m.performance.consistency_score, t.inconsistent_performance),
        needs_attempts=True,
    ),
)

INTERVENTIONS: Dict[str, Intervention] = {
    RiskFactorType.LOW_PERFORMANCE: Intervention(
        type="ACADEMIC_SUPPORT",
        priority=Severity.HIGH,
        action="Schedule one-on-one tutoring session",
        description="Provide additional academic support and review study strategies",
    ),
    RiskFactorType.DECLINING_PERFORMANCE: Intervention(
        type="EARLY_WARNING",
        priority=Severity.HIGH,
        action="Immediate instructor meeting",
        description="Address declining performance before it becomes critical",
    ),
    RiskFactorType.LOW_ENGAGEMENT: Intervention(
        type="ENGAGEMENT_BOOST",
        priority=Severity.MEDIUM,
        action="Encourage chat participation",
        description="Send personalized messages to increase discussion involvement",
    ),
    RiskFactorType.NO_STUDY_GROUPS: Intervention(
        type="SOCIAL_LEARNING",
        priority=Severity.LOW,
        action="Invite to study group",
        description="Connect with peers for collaborative learning",
    ),
    RiskFactorType.INCONSISTENT_PERFORMANCE: Intervention(
        type="STUDY_HABITS",
        priority=Severity.MEDIUM,
        action="Study skills workshop",
        description="Help develop consistent study routines and time management",
    ),
}


def identify_risk_factors(
    chat: ChatEngagementMetrics,
    performance: PerformanceMetrics,
    study_group: StudyGroupParticipation,
    thresholds: RiskFactorThresholds = DEFAULT_POLICY.risk_factors,
) -> List[RiskFactor]:
    """
    Evaluate every rule in order; each matching rule contributes one factor.

    Score-based rules are skipped for students with no attempts in the window,
    so "never attempted" is not reported as "failing".
    """
    metrics = StudentMetrics(chat=chat, performance=performance, study_group=study_group)
    no_attempts = performance.total_attempts == 0
    factors: List[RiskFactor] = []
    for rule in RISK_RULES:
        if rule.needs_attempts and no_attempts and thresholds.skip_performance_rules_without_attempts:
            continue
        value = rule.evaluate(metrics, thresholds)
        if value is None:
            continue
        factors.append(
            RiskFactor(type=rule.factor_type, severity=rule.severity, description=rule.description, value=float(value))
        )
    return factors


def recommend_interventions(risk_factors: List[RiskFactor]) -> List[Intervention]:
    return [INTERVENTIONS[factor.type] for factor in risk_factors if factor.type in INTERVENTIONS]
