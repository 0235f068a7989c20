"""Confidence tiering for correlation results.

Window correlations combine three independent tiers (sample size,
consistency, p-value) and report the weakest one.  Population-level rank
correlations use a two-factor rule on sample size and p-value.
"""

from __future__ import annotations

import math

from errors import InputValidationError

# ─── Window correlation tiers ─────────────────────────────────
HIGH_SAMPLE_SIZE = 5
MEDIUM_SAMPLE_SIZE = 3
HIGH_CONSISTENCY = 0.70
MEDIUM_CONSISTENCY = 0.50
HIGH_P_VALUE = 0.01
MEDIUM_P_VALUE = 0.05

# ─── Population rank-correlation tiers ───────────────────────
RANK_HIGH_SAMPLE_SIZE = 30
RANK_MEDIUM_SAMPLE_SIZE = 10
RANK_MIN_ABS_RHO = 0.3

_TIER_RANK = {"low": 0, "medium": 1, "high": 2}


def _validate(sample_size: int, consistency: float, p_value: float) -> None:
    if sample_size < 0:
        raise InputValidationError(f"sample_size must be >= 0 (got {sample_size})")
    if math.isnan(consistency) or not 0.0 <= consistency <= 1.0:
        raise InputValidationError(f"consistency must be within [0, 1] (got {consistency})")
    if math.isnan(p_value) or not 0.0 <= p_value <= 1.0:
        raise InputValidationError(f"p_value must be within [0, 1] (got {p_value})")


def sample_size_tier(sample_size: int) -> str:
    if sample_size >= HIGH_SAMPLE_SIZE:
        return "high"
    if sample_size >= MEDIUM_SAMPLE_SIZE:
        return "medium"
    return "low"


def consistency_tier(consistency: float) -> str:
    if consistency >= HIGH_CONSISTENCY:
        return "high"
    if consistency >= MEDIUM_CONSISTENCY:
        return "medium"
    return "low"


def p_value_tier(p_value: float) -> str:
    if p_value < HIGH_P_VALUE:
        return "high"
    if p_value < MEDIUM_P_VALUE:
        return "medium"
    return "low"


def determine_confidence(sample_size: int, consistency: float, p_value: float) -> str:
    """Weakest of the sample, consistency and p-value tiers.

    Raises InputValidationError for a negative sample size or a
    consistency / p-value outside [0, 1].
    """
    _validate(sample_size, consistency, p_value)
    tiers = (
        sample_size_tier(sample_size),
        consistency_tier(consistency),
        p_value_tier(p_value),
    )
    return min(tiers, key=_TIER_RANK.__getitem__)


def rank_confidence(sample_size: int, p_value: float) -> str:
    if sample_size >= RANK_HIGH_SAMPLE_SIZE and p_value < HIGH_P_VALUE:
        return "high"
    if sample_size >= RANK_MEDIUM_SAMPLE_SIZE and p_value < MEDIUM_P_VALUE:
        return "medium"
    return "low"


def meets_significance_criteria(rho: float, sample_size: int, p_value: float) -> bool:
    return (
        abs(rho) >= RANK_MIN_ABS_RHO
        and sample_size >= RANK_MEDIUM_SAMPLE_SIZE
        and p_value < MEDIUM_P_VALUE
    )
