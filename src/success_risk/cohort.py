# ABOUTME: Reduces a run's per-student predictions into cohort-level insights.
# ABOUTME: Buckets performance and engagement, correlates them, and summarizes trends.

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from src.common.config import DEFAULT_POLICY, CohortBands
from src.common.statistics import correlation_strength, pearson_correlation, safe_mean, safe_ratio

from .prediction import SuccessPrediction

PREDICTION_COLUMNS = [
    "student_id",
    "student_name",
    "success_probability",
    "risk_level",
    "average_score",
    "total_attempts",
    "improvement_trend",
    "engagement_score",
    "total_messages",
    "has_groups",
]


@dataclass(frozen=True)
class PerformanceDistribution:
    excellent: int = 0
    good: int = 0
    average: int = 0
    below_average: int = 0


@dataclass(frozen=True)
class EngagementPatterns:
    high: int = 0
    moderate: int = 0
    low: int = 0


@dataclass(frozen=True)
class CorrelationSummary:
    value: float = 0.0
    strength: str = "Weak"


@dataclass(frozen=True)
class CohortTrends:
    average_improvement: float = 0.0
    study_group_participation: float = 0.0


@dataclass(frozen=True)
class CohortInsights:
    performance_distribution: PerformanceDistribution
    engagement_patterns: EngagementPatterns
    correlation: CorrelationSummary
    trends: CohortTrends


def predictions_to_frame(predictions: Sequence[SuccessPrediction]) -> pd.DataFrame:
    """Flatten predictions into one row per student for cohort-level reductions."""
    rows = [
        {
            "student_id": p.student_id,
            "student_name": p.student_name,
            "success_probability": p.success_probability,
            "risk_level": p.risk_level,
            "average_score": p.metrics.performance.average_score,
            "total_attempts": p.metrics.performance.total_attempts,
            "improvement_trend": p.metrics.performance.improvement_trend,
            "engagement_score": p.metrics.chat.engagement_score,
            "total_messages": p.metrics.chat.total_messages,
            "has_groups": p.metrics.study_group.has_groups,
        }
        for p in predictions
    ]
    return pd.DataFrame(rows, columns=PREDICTION_COLUMNS)


def _band_counts(values: pd.Series, edges: List[float], labels: List[str]) -> Dict[str, int]:
    # Bands are closed on the lower edge: [edge_i, edge_i+1).
    bins = [-np.inf, *edges, np.inf]
    banded = pd.cut(values.astype(float), bins=bins, right=False, labels=labels)
    counts = banded.value_counts()
    return {label: int(counts.get(label, 0)) for label in labels}


def generate_cohort_insights(
    predictions: Sequence[SuccessPrediction],
    bands: CohortBands = DEFAULT_POLICY.cohort,
) -> CohortInsights:
    frame = predictions_to_frame(predictions)

    performance = _band_counts(
        frame["average_score"],
        [bands.average_min, bands.good_min, bands.excellent_min],
        ["below_average", "average", "good", "excellent"],
    )
    engagement = _band_counts(
        frame["engagement_score"],
        [bands.moderate_engagement_min, bands.high_engagement_min],
        ["low", "moderate", "high"],
    )

    r = pearson_correlation(frame["engagement_score"].tolist(), frame["average_score"].tolist())

    return CohortInsights(
        performance_distribution=PerformanceDistribution(**performance),
        engagement_patterns=EngagementPatterns(**engagement),
        correlation=CorrelationSummary(
            value=r,
            strength=correlation_strength(r, bands.strong_correlation, bands.moderate_correlation),
        ),
        trends=CohortTrends(
            average_improvement=safe_mean(frame["improvement_trend"].tolist()),
            study_group_participation=safe_ratio(int(frame["has_groups"].astype(bool).sum()), len(frame)),
        ),
    )
