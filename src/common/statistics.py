# ABOUTME: Shared descriptive statistics used by the prediction and integrity engines.
# ABOUTME: Guards every division so empty or constant inputs resolve to neutral values.

from __future__ import annotations

import math
from typing import Sequence

import numpy as np


def safe_mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.sum(np.asarray(values, dtype=float)) / max(1, len(values)))


def population_std(values: Sequence[float]) -> float:
    """Population standard deviation (ddof=0), 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def safe_ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return float(numerator) / float(denominator)


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    if math.isnan(value):
        return lower
    return float(min(upper, max(lower, value)))


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round halves away from zero for non-negative values.

    Python's built-in round() uses banker's rounding, which would turn a
    success probability of 62.5 into 62.
    """
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation via the raw-sum formula.

    r = (nΣxy − ΣxΣy) / sqrt((nΣx² − (Σx)²)(nΣy² − (Σy)²))

    Returns 0.0 when fewer than two pairs are present or when either vector is
    constant, and clips the result into [-1, 1] to absorb float drift.
    """
    if len(x) != len(y):
        raise ValueError(f"Correlation vectors differ in length: {len(x)} != {len(y)}.")
    n = len(x)
    if n < 2:
        return 0.0

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if np.ptp(xs) == 0 or np.ptp(ys) == 0:
        return 0.0
    sum_x = xs.sum()
    sum_y = ys.sum()
    numerator = n * np.dot(xs, ys) - sum_x * sum_y
    spread_x = n * np.dot(xs, xs) - sum_x * sum_x
    spread_y = n * np.dot(ys, ys) - sum_y * sum_y
    denominator_sq = spread_x * spread_y
    if denominator_sq <= 0:
        return 0.0
    r = numerator / math.sqrt(denominator_sq)
    if not math.isfinite(r):
        return 0.0
    return float(np.clip(r, -1.0, 1.0))


def correlation_strength(r: float, strong: float = 0.7, moderate: float = 0.3) -> str:
    magnitude = abs(r)
    if magnitude >= strong:
        return "Strong"
    if magnitude >= moderate:
        return "Moderate"
    return "Weak"
