# ABOUTME: Builds the per-student success prediction from raw activity records.
# ABOUTME: Chains metric calculators, risk scorer, and the risk-factor/intervention engine.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from src.common.config import DEFAULT_POLICY, ScoringPolicy
from src.common.schemas import StudentActivity, StudyGroupMembership

from .metrics import (
    StudentMetrics,
    calculate_chat_engagement,
    calculate_performance_metrics,
    calculate_study_group_participation,
)
from .risk_factors import Intervention, RiskFactor, identify_risk_factors, recommend_interventions
from .scoring import classify_risk_level, predict_next_quiz_success, predict_success_probability


@dataclass(frozen=True)
class SuccessPrediction:
    student_id: str
    student_name: str
    metrics: StudentMetrics
    success_probability: int
    risk_level: str
    next_quiz_success_rate: int
    risk_factors: List[RiskFactor]
    interventions: List[Intervention]
    student_email: Optional[str] = None


def predict_student(
    student: StudentActivity,
    memberships: Iterable[StudyGroupMembership],
    as_of: datetime,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> SuccessPrediction:
    chat = calculate_chat_engagement(student.messages, as_of, policy.metrics)
    performance = calculate_performance_metrics(student.attempts, policy.metrics)
    study_group = calculate_study_group_participation(memberships, policy.metrics)

    success_probability = predict_success_probability(chat, performance, study_group, policy.weights)
    risk_factors = identify_risk_factors(chat, performance, study_group, policy.risk_factors)

    return SuccessPrediction(
        student_id=student.student_id,
        student_name=student.name,
        student_email=student.email,
        metrics=StudentMetrics(chat=chat, performance=performance, study_group=study_group),
        success_probability=success_probability,
        risk_level=classify_risk_level(success_probability, policy.risk_bands),
        next_quiz_success_rate=predict_next_quiz_success(chat, performance, policy.next_quiz),
        risk_factors=risk_factors,
        interventions=recommend_interventions(risk_factors),
    )
