# ABOUTME: Holds every scoring threshold and weight behind one auditable policy object.
# ABOUTME: Loads YAML overrides on top of the built-in defaults and validates them.

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


@dataclass(frozen=True)
class SuccessWeights:
    performance: float = 0.4
    engagement: float = 0.3
    study_group: float = 0.2
    consistency: float = 0.1

    def __post_init__(self) -> None:
        total = self.performance + self.engagement + self.study_group + self.consistency
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Success weights must sum to 1.0, got {total:.4f}.")
        if min(self.performance, self.engagement, self.study_group, self.consistency) < 0:
            raise ValueError("Success weights must be non-negative.")


@dataclass(frozen=True)
class RiskBands:
    low_risk_min: float = 75
    medium_risk_min: float = 50

    def __post_init__(self) -> None:
        if self.medium_risk_min > self.low_risk_min:
            raise ValueError("medium_risk_min must not exceed low_risk_min.")


@dataclass(frozen=True)
class MetricPolicy:
    messages_per_day_factor: float = 10
    diversity_factor: float = 30
    recent_attempt_count: int = 3
    points_per_group: float = 25


@dataclass(frozen=True)
class NextQuizPolicy:
    improving_bonus: float = 10
    not_improving_bonus: float = -5
    engagement_cutoff: float = 50
    engaged_bonus: float = 5
    disengaged_bonus: float = -10


@dataclass(frozen=True)
class RiskFactorThresholds:
    low_performance: float = 60
    declining_trend: float = -10
    low_engagement_messages: int = 5
    infrequent_messages_per_day: float = 0.1
    inconsistent_performance: float = 30
    skip_performance_rules_without_attempts: bool = True


@dataclass(frozen=True)
class CohortBands:
    excellent_min: float = 90
    good_min: float = 80
    average_min: float = 70
    high_engagement_min: float = 70
    moderate_engagement_min: float = 40
    strong_correlation: float = 0.7
    moderate_correlation: float = 0.3


@dataclass(frozen=True)
class EarlyWarningThresholds:
    declining_trend: float = -15
    silent_max_messages: int = 3


@dataclass(frozen=True)
class IntegrityPolicy:
    high_penalty: float = 5
    medium_penalty: float = 2
    low_penalty: float = 0.5
    repeat_offender_penalty: float = 3
    repeat_offender_min_records: int = 2

    excellent_min: float = 90
    good_min: float = 75
    fair_min: float = 60
    poor_min: float = 40

    high_weight: float = 3
    medium_weight: float = 2
    low_weight: float = 1
    user_high_risk_score: float = 2.5
    user_high_risk_count: int = 3
    user_medium_risk_score: float = 1.5
    user_medium_risk_count: int = 5

    summary_medium_count: int = 2
    summary_low_count: int = 3

    review_high_count: int = 5
    peak_hour_count: int = 5
    keyword_match_count: int = 10
    timing_violation_count: int = 5
    workshop_total_count: int = 20


@dataclass(frozen=True)
class ScoringPolicy:
    weights: SuccessWeights = field(default_factory=SuccessWeights)
    risk_bands: RiskBands = field(default_factory=RiskBands)
    metrics: MetricPolicy = field(default_factory=MetricPolicy)
    next_quiz: NextQuizPolicy = field(default_factory=NextQuizPolicy)
    risk_factors: RiskFactorThresholds = field(default_factory=RiskFactorThresholds)
    cohort: CohortBands = field(default_factory=CohortBands)
    early_warning: EarlyWarningThresholds = field(default_factory=EarlyWarningThresholds)
    integrity: IntegrityPolicy = field(default_factory=IntegrityPolicy)


DEFAULT_POLICY = ScoringPolicy()


def load_policy(config_path: Optional[Union[str, Path]] = None) -> ScoringPolicy:
    """
    Build a ScoringPolicy from a YAML file layered over the defaults.

    The file holds one mapping per policy section (``weights``, ``risk_bands``,
    ``integrity`` ...); omitted sections and keys keep their default values.
    Unknown sections or keys raise ValueError so typos never pass silently.
    """
    if config_path is None:
        return DEFAULT_POLICY

    with open(config_path) as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Policy file {config_path} must contain a mapping at the top level.")
    return policy_from_dict(cfg)


def policy_from_dict(cfg: Dict[str, Any]) -> ScoringPolicy:
    sections = {f.name for f in fields(ScoringPolicy)}
    unknown = set(cfg) - sections
    if unknown:
        raise ValueError(f"Unknown policy sections: {', '.join(sorted(unknown))}.")

    overrides = {}
    for name, values in cfg.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Policy section '{name}' must be a mapping.")
        default_section = getattr(DEFAULT_POLICY, name)
        allowed = {f.name for f in fields(default_section)}
        bad_keys = set(values) - allowed
        if bad_keys:
            raise ValueError(f"Unknown keys in policy section '{name}': {', '.join(sorted(bad_keys))}.")
        overrides[name] = replace(default_section, **values)
    return replace(DEFAULT_POLICY, **overrides)
