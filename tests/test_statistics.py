# ABOUTME: Tests the shared statistics helpers used by both engines.
# ABOUTME: Covers degenerate inputs, correlation symmetry, and half-up rounding.

import numpy as np
import pytest

from src.common.statistics import (
    clamp,
    correlation_strength,
    pearson_correlation,
    population_std,
    round_half_up,
    safe_mean,
    safe_ratio,
)


def test_empty_sequences_resolve_to_zero():
    assert safe_mean([]) == 0.0
    assert population_std([]) == 0.0
    assert safe_ratio(3, 0) == 0.0


def test_population_std_matches_numpy_ddof_zero():
    scores = [50, 55, 60, 65, 70, 75, 80, 85, 90, 95]
    assert population_std(scores) == pytest.approx(np.std(scores, ddof=0))


def test_pearson_two_points_is_perfectly_correlated():
    r = pearson_correlation([10, 90], [20, 95])
    assert r == pytest.approx(1.0)
    assert correlation_strength(r) == "Strong"


def test_pearson_is_symmetric():
    x = [12.0, 40.5, 33.3, 80.0, 5.0]
    y = [55.0, 61.0, 70.2, 92.0, 48.0]
    assert pearson_correlation(x, y) == pearson_correlation(y, x)
    assert -1.0 <= pearson_correlation(x, y) <= 1.0


def test_pearson_degenerate_inputs_return_zero():
    assert pearson_correlation([], []) == 0.0
    assert pearson_correlation([42], [7]) == 0.0
    assert pearson_correlation([5, 5, 5], [1, 2, 3]) == 0.0
    assert pearson_correlation([0.1, 0.1, 0.1], [3, 1, 2]) == 0.0


def test_pearson_negative_relationship():
    assert pearson_correlation([1, 2, 3, 4], [8, 6, 4, 2]) == pytest.approx(-1.0)


def test_pearson_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        pearson_correlation([1, 2, 3], [1, 2])


@pytest.mark.parametrize(
    "r,expected",
    [(0.7, "Strong"), (-0.75, "Strong"), (0.69, "Moderate"), (-0.3, "Moderate"), (0.29, "Weak"), (0.0, "Weak")],
)
def test_correlation_strength_buckets(r, expected):
    assert correlation_strength(r) == expected


def test_round_half_up_and_clamp():
    assert round_half_up(62.5) == 63
    assert round_half_up(62.49) == 62
    assert round_half_up(1.125, 2) == pytest.approx(1.13)
    assert clamp(150) == 100.0
    assert clamp(-3) == 0.0
    assert clamp(float("nan")) == 0.0
