# ABOUTME: Scans the whole cohort for students that need attention now.
# ABOUTME: Emits one grouped warning per detector: critical risk, declining trend, silent test-takers.

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from src.common.config import DEFAULT_POLICY, EarlyWarningThresholds
from src.common.schemas import Severity

from .prediction import SuccessPrediction
from .scoring import RiskLevel


@dataclass(frozen=True)
class EarlyWarning:
    type: str
    severity: str
    count: int
    message: str
    affected_student_names: List[str]


def _warning(
    predictions: Sequence[SuccessPrediction],
    matches: Callable[[SuccessPrediction], bool],
    warning_type: str,
    severity: str,
    message: str,
) -> Optional[EarlyWarning]:
    affected = [p for p in predictions if matches(p)]
    if not affected:
        return None
    return EarlyWarning(
        type=warning_type,
        severity=severity,
        count=len(affected),
        message=message.format(count=len(affected)),
        affected_student_names=[p.student_name for p in affected],
    )


def detect_critical_risk(predictions: Sequence[SuccessPrediction]) -> Optional[EarlyWarning]:
    return _warning(
        predictions,
        lambda p: p.risk_level == RiskLevel.HIGH and any(f.severity == Severity.HIGH for f in p.risk_factors),
        "CRITICAL_RISK",
        Severity.HIGH,
        "{count} students require immediate intervention",
    )


def detect_declining_trend(
    predictions: Sequence[SuccessPrediction],
    thresholds: EarlyWarningThresholds = DEFAULT_POLICY.early_warning,
) -> Optional[EarlyWarning]:
    return _warning(
        predictions,
        lambda p: p.metrics.performance.improvement_trend < thresholds.declining_trend,
        "DECLINING_TREND",
        Severity.MEDIUM,
        "{count} students showing significant performance decline",
    )


def detect_low_engagement(
    predictions: Sequence[SuccessPrediction],
    thresholds: EarlyWarningThresholds = DEFAULT_POLICY.early_warning,
) -> Optional[EarlyWarning]:
    return _warning(
        predictions,
        lambda p: p.metrics.chat.total_messages < thresholds.silent_max_messages
        and p.metrics.performance.total_attempts > 0,
        "LOW_ENGAGEMENT",
        Severity.LOW,
        "{count} students with very low engagement",
    )


def generate_early_warnings(
    predictions: Sequence[SuccessPrediction],
    thresholds: EarlyWarningThresholds = DEFAULT_POLICY.early_warning,
) -> List[EarlyWarning]:
    candidates = (
        detect_critical_risk(predictions),
        detect_declining_trend(predictions, thresholds),
        detect_low_engagement(predictions, thresholds),
    )
    return [warning for warning in candidates if warning is not None]
