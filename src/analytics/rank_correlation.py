"""Spearman rank correlation with tie-aware ranking.

Ranks are 1..n with tied values sharing the mean of the positions they
span.  rho uses the classic difference-of-ranks form

    rho = 1 - 6 * Σd² / (n * (n² - 1))

and the two-tailed p-value comes from the t distribution with n - 2
degrees of freedom (scipy), the same test used for Pearson p-values in the
daily-metric layers.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np
from scipy import stats as sp_stats

from errors import InputValidationError
from models import RankCorrelation

MIN_SAMPLE_SIZE = 3
MIN_TESTABLE_SAMPLE_SIZE = 10
PERFECT_RHO_P_VALUE = 0.0001

STRONG_THRESHOLD = 0.7
MODERATE_THRESHOLD = 0.3


def rank_data(values: Sequence[float]) -> np.ndarray:
    """Ascending ranks, ties averaged (``[10, 20, 20, 30]`` -> ``[1, 2.5, 2.5, 4]``)."""
    return sp_stats.rankdata(np.asarray(values, dtype=np.float64), method="average")


def classify_strength(rho: float) -> str:
    magnitude = abs(rho)
    if magnitude >= STRONG_THRESHOLD:
        return "strong"
    if magnitude >= MODERATE_THRESHOLD:
        return "moderate"
    return "weak"


def spearman_p_value(rho: float, n: int) -> float:
    """Two-tailed p-value for rho; 1.0 when n is too small to test."""
    if n < MIN_TESTABLE_SAMPLE_SIZE:
        return 1.0
    if abs(rho) >= 1.0:
        return PERFECT_RHO_P_VALUE
    t_stat = rho * math.sqrt((n - 2) / (1.0 - rho * rho))
    p = 2 * sp_stats.t.sf(abs(t_stat), n - 2)
    return float(min(1.0, max(0.0, p)))


def spearman_correlation(x: Sequence[float], y: Sequence[float]) -> Optional[RankCorrelation]:
    """Spearman rho between two aligned series.

    Returns None when fewer than three points are available or either
    series is constant.  Raises InputValidationError on mismatched lengths
    or non-finite values.
    """
    xa = np.asarray(x, dtype=np.float64)
    ya = np.asarray(y, dtype=np.float64)
    if xa.shape != ya.shape:
        raise InputValidationError(f"Series lengths differ ({len(xa)} vs {len(ya)})")
    if not (np.all(np.isfinite(xa)) and np.all(np.isfinite(ya))):
        raise InputValidationError("Series contain non-finite values")

    n = len(xa)
    if n < MIN_SAMPLE_SIZE:
        return None
    if np.ptp(xa) == 0 or np.ptp(ya) == 0:
        return None

    d = rank_data(xa) - rank_data(ya)
    rho = 1.0 - 6.0 * float(np.sum(d * d)) / (n * (n * n - 1))
    rho = max(-1.0, min(1.0, rho))

    p_value = spearman_p_value(rho, n)
    return RankCorrelation(
        rho=rho,
        strength=classify_strength(rho),
        sample_size=n,
        p_value=p_value,
        is_significant=p_value < 0.05,
    )
