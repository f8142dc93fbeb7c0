# ABOUTME: Aggregates pre-flagged discussion violations into integrity metrics.
# ABOUTME: Scores integrity, finds type/hour patterns and repeat offenders, and ranks user risk.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Mapping, Optional, Sequence

import pandas as pd

from src.common.config import DEFAULT_POLICY, IntegrityPolicy
from src.common.schemas import (
    ActivityWindow,
    QuizAttempt,
    QuizInfo,
    Severity,
    SuspiciousActivityRecord,
    ViolationType,
)
from src.common.statistics import round_half_up, safe_ratio

RECORD_COLUMNS = ["id", "type", "severity", "timestamp", "hour", "user_id", "user_name", "quiz_id", "resolved"]


@dataclass(frozen=True)
class SeverityCounts:
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0

    @classmethod
    def from_counts(cls, counts: Mapping[str, int]) -> "SeverityCounts":
        return cls(
            high=int(counts.get(Severity.HIGH, 0)),
            medium=int(counts.get(Severity.MEDIUM, 0)),
            low=int(counts.get(Severity.LOW, 0)),
            total=int(sum(counts.values())),
        )


@dataclass(frozen=True)
class ViolationTypeCount:
    type: str
    count: int


@dataclass(frozen=True)
class RepeatOffender:
    user_id: str
    violation_count: int
    user_name: Optional[str] = None


@dataclass(frozen=True)
class PatternAnalysis:
    violations_by_type: List[ViolationTypeCount]
    hourly_distribution: Dict[int, SeverityCounts]
    repeat_offenders: List[RepeatOffender]


@dataclass(frozen=True)
class IntegritySummary:
    total_violations: int
    high_severity_violations: int
    medium_severity_violations: int
    low_severity_violations: int
    resolved_violations: int
    unique_users: int
    unique_quizzes: int
    time_range_days: int
    risk_level: str
    headline: str
    recommendations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class IntegrityScore:
    score: int
    level: str
    description: str


@dataclass(frozen=True)
class UserRiskAssessment:
    user_id: str
    violations: SeverityCounts
    risk_score: float
    risk_level: str
    user_name: Optional[str] = None


@dataclass(frozen=True)
class QuizIntegrityAnalysis:
    quiz_id: str
    quiz_title: str
    total_attempts: int
    total_violations: int
    compromised_attempts: int
    integrity_score: float
    violations_by_type: Dict[str, int]


def records_to_frame(records: Sequence[SuspiciousActivityRecord]) -> pd.DataFrame:
    if not records:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    frame = pd.DataFrame(
        {
            "id": [r.id for r in records],
            "type": [r.type for r in records],
            "severity": [str(r.severity).upper() for r in records],
            "timestamp": pd.to_datetime([r.timestamp for r in records], utc=True),
            "user_id": [r.user_id for r in records],
            "user_name": [r.user_name for r in records],
            "quiz_id": [r.quiz_id for r in records],
            "resolved": [bool(r.resolved) for r in records],
        }
    )
    frame["hour"] = frame["timestamp"].dt.hour.astype(int)
    return frame[RECORD_COLUMNS]


def _severity_counts_by(frame: pd.DataFrame, key: str) -> Dict[Hashable, SeverityCounts]:
    """Group records by key, then finalize each group into a SeverityCounts struct."""
    if frame.empty:
        return {}
    table = frame.groupby([key, "severity"]).size().unstack(fill_value=0)
    return {group: SeverityCounts.from_counts(row.to_dict()) for group, row in table.iterrows()}


def _user_names(frame: pd.DataFrame) -> Dict[str, Optional[str]]:
    names: Dict[str, Optional[str]] = {}
    for user_id, user_name in zip(frame["user_id"], frame["user_name"]):
        if names.get(user_id) is None:
            names[user_id] = user_name if isinstance(user_name, str) and user_name else None
    return names


def summarize_activities(
    records: Sequence[SuspiciousActivityRecord],
    window: ActivityWindow,
    policy: IntegrityPolicy = DEFAULT_POLICY.integrity,
) -> IntegritySummary:
    """
    Count records by severity and triage the window.

    The summary carries its own short action list for the triaged level; the
    report-wide recommendations come from generate_recommendations.
    """
    counts = SeverityCounts.from_counts(records_to_frame(records)["severity"].value_counts().to_dict())

    if counts.high > 0:
        risk_level = Severity.HIGH
        headline = f"{counts.high} high-risk activities detected. Immediate review recommended."
        actions = [
            "Review flagged messages immediately",
            "Consider invalidating quiz attempts if cheating is confirmed",
            "Contact affected students for clarification",
        ]
    elif counts.medium > policy.summary_medium_count:
        risk_level = Severity.HIGH
        headline = f"{counts.medium} medium-risk activities detected. Pattern suggests potential issues."
        actions = [
            "Review message patterns for academic dishonesty",
            "Monitor students more closely in future assessments",
        ]
    elif counts.medium > 0 or counts.low > policy.summary_low_count:
        risk_level = Severity.MEDIUM
        headline = f"{counts.medium + counts.low} suspicious activities detected. Monitoring recommended."
        actions = ["Keep records of flagged activities", "Consider additional proctoring measures"]
    else:
        risk_level = Severity.LOW
        headline = "No significant integrity concerns detected."
        actions = []

    types = {r.type for r in records}
    if ViolationType.TIMING_VIOLATION in types:
        actions.append("Ensure chat restrictions during quizzes are properly enforced")
    if ViolationType.KEYWORD_MATCH in types:
        actions.append("Review chat content for academic integrity violations")

    return IntegritySummary(
        total_violations=len(records),
        high_severity_violations=counts.high,
        medium_severity_violations=counts.medium,
        low_severity_violations=counts.low,
        resolved_violations=sum(1 for r in records if r.resolved),
        unique_users=len({r.user_id for r in records}),
        unique_quizzes=len({r.quiz_id for r in records if r.quiz_id}),
        time_range_days=window.days,
        risk_level=risk_level,
        headline=headline,
        recommendations=actions,
    )


def analyze_violation_patterns(
    records: Sequence[SuspiciousActivityRecord],
    policy: IntegrityPolicy = DEFAULT_POLICY.integrity,
) -> PatternAnalysis:
    frame = records_to_frame(records)
    if frame.empty:
        return PatternAnalysis(violations_by_type=[], hourly_distribution={}, repeat_offenders=[])

    by_type = frame.groupby("type").size()
    violations_by_type = [
        ViolationTypeCount(type=str(t), count=int(c))
        for t, c in sorted(by_type.items(), key=lambda item: (-item[1], item[0]))
    ]

    hourly = _severity_counts_by(frame, "hour")
    hourly_distribution = {int(hour): hourly[hour] for hour in sorted(hourly)}

    names = _user_names(frame)
    per_user = frame.groupby("user_id").size()
    repeat_offenders = [
        RepeatOffender(user_id=str(user_id), violation_count=int(count), user_name=names.get(user_id))
        for user_id, count in sorted(per_user.items(), key=lambda item: (-item[1], item[0]))
        if count >= policy.repeat_offender_min_records
    ]

    return PatternAnalysis(
        violations_by_type=violations_by_type,
        hourly_distribution=hourly_distribution,
        repeat_offenders=repeat_offenders,
    )


INTEGRITY_LEVELS = (
    ("EXCELLENT", "Very high academic integrity with minimal violations"),
    ("GOOD", "Good academic integrity with some minor concerns"),
    ("FAIR", "Moderate integrity concerns requiring attention"),
    ("POOR", "Significant integrity issues requiring immediate action"),
    ("CRITICAL", "Critical integrity violations requiring urgent intervention"),
)


def calculate_integrity_score(
    summary: IntegritySummary,
    patterns: PatternAnalysis,
    policy: IntegrityPolicy = DEFAULT_POLICY.integrity,
) -> IntegrityScore:
    penalty = (
        summary.high_severity_violations * policy.high_penalty
        + summary.medium_severity_violations * policy.medium_penalty
        + summary.low_severity_violations * policy.low_penalty
        + len(patterns.repeat_offenders) * policy.repeat_offender_penalty
    )
    score = max(0, int(round_half_up(100 - penalty)))

    thresholds = (policy.excellent_min, policy.good_min, policy.fair_min, policy.poor_min)
    level, description = INTEGRITY_LEVELS[-1]
    for minimum, (candidate, text) in zip(thresholds, INTEGRITY_LEVELS):
        if score >= minimum:
            level, description = candidate, text
            break
    return IntegrityScore(score=score, level=level, description=description)


def _user_risk_level(counts: SeverityCounts, risk_score: float, policy: IntegrityPolicy) -> str:
    if risk_score >= policy.user_high_risk_score or counts.high >= policy.user_high_risk_count:
        return Severity.HIGH
    if risk_score >= policy.user_medium_risk_score or counts.medium >= policy.user_medium_risk_count:
        return Severity.MEDIUM
    return Severity.LOW


def assess_user_risk(
    records: Sequence[SuspiciousActivityRecord],
    policy: IntegrityPolicy = DEFAULT_POLICY.integrity,
) -> List[UserRiskAssessment]:
    """
    Rank users by the mean severity weight of their violations.

    A user's risk score is (3*high + 2*medium + 1*low) / total with the
    default weights, so it sits in [1, 3] whenever every record carries a
    known severity.
    """
    frame = records_to_frame(records)
    names = _user_names(frame)
    assessments = []
    for user_id, counts in _severity_counts_by(frame, "user_id").items():
        weighted = counts.high * policy.high_weight + counts.medium * policy.medium_weight + counts.low * policy.low_weight
        risk_score = round_half_up(safe_ratio(weighted, counts.total), 2)
        assessments.append(
            UserRiskAssessment(
                user_id=str(user_id),
                user_name=names.get(user_id),
                violations=counts,
                risk_score=risk_score,
                risk_level=_user_risk_level(counts, risk_score, policy),
            )
        )
    return sorted(assessments, key=lambda a: (-a.risk_score, -a.violations.total, a.user_id))


def analyze_quiz_integrity(
    quiz: QuizInfo,
    attempts: Sequence[QuizAttempt],
    records: Sequence[SuspiciousActivityRecord],
) -> QuizIntegrityAnalysis:
    quiz_attempts = [a for a in attempts if a.quiz_id == quiz.quiz_id]
    quiz_records = [r for r in records if r.quiz_id == quiz.quiz_id]
    violators = {r.user_id for r in quiz_records}
    compromised = sum(1 for a in quiz_attempts if a.user_id in violators)

    if quiz_attempts:
        integrity_score = max(0.0, 100.0 - safe_ratio(compromised, len(quiz_attempts)) * 100.0)
    else:
        integrity_score = 100.0

    violations_by_type: Dict[str, int] = {}
    for record in quiz_records:
        violations_by_type[record.type] = violations_by_type.get(record.type, 0) + 1

    return QuizIntegrityAnalysis(
        quiz_id=quiz.quiz_id,
        quiz_title=quiz.title,
        total_attempts=len(quiz_attempts),
        total_violations=len(quiz_records),
        compromised_attempts=compromised,
        integrity_score=round_half_up(integrity_score, 2),
        violations_by_type=violations_by_type,
    )


def generate_recommendations(
    summary: IntegritySummary,
    patterns: PatternAnalysis,
    policy: IntegrityPolicy = DEFAULT_POLICY.integrity,
) -> List[str]:
    recommendations: List[str] = []

    if summary.high_severity_violations > policy.review_high_count:
        recommendations.append("Immediate review required: High number of severe violations detected")
        recommendations.append("Consider implementing stricter chat monitoring during quiz periods")

    if patterns.repeat_offenders:
        recommendations.append(f"Monitor {len(patterns.repeat_offenders)} repeat offenders closely")
        recommendations.append("Consider individual meetings with students showing repeated violations")

    if patterns.hourly_distribution:
        # max() keeps the earliest hour on ties since the mapping is ordered by hour.
        peak_hour, peak = max(patterns.hourly_distribution.items(), key=lambda item: item[1].total)
        if peak.total > policy.peak_hour_count:
            recommendations.append(f"Increase monitoring during {peak_hour:02d}:00 UTC - peak violation time")

    type_counts = {v.type: v.count for v in patterns.violations_by_type}
    if type_counts.get(ViolationType.KEYWORD_MATCH, 0) > policy.keyword_match_count:
        recommendations.append("Review and update suspicious keyword detection rules")
        recommendations.append("Provide clearer guidelines on acceptable chat behavior during quizzes")

    if type_counts.get(ViolationType.TIMING_VIOLATION, 0) > policy.timing_violation_count:
        recommendations.append("Enforce stricter chat restrictions during active quiz periods")
        recommendations.append("Consider disabling chat completely during quiz attempts")

    if summary.total_violations > policy.workshop_total_count:
        recommendations.append("Conduct academic integrity workshop for students")
        recommendations.append("Review quiz security measures and chat policies")

    return recommendations
