"""Dose-response regression between portion size and symptom severity."""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple, Union

import numpy as np
from scipy import stats as sp_stats

from errors import InputValidationError
from models import DoseResponseResult

log = logging.getLogger("analytics.dose_response")

PORTION_SCALE = {"small": 1, "medium": 2, "large": 3}
DEFAULT_PORTION = 2

MIN_SAMPLE_SIZE = 5
HIGH_R_SQUARED = 0.7
LOW_R_SQUARED = 0.4
HIGH_CONFIDENCE_SAMPLE_SIZE = 10
FLAT_SLOPE = 0.1


def normalize_portion_size(portion: str) -> int:
    """Map small/medium/large (any case) onto 1/2/3; unknown -> medium."""
    value = PORTION_SCALE.get(str(portion).strip().lower())
    if value is None:
        log.warning("Unknown portion size %r, defaulting to medium", portion)
        return DEFAULT_PORTION
    return value


def _dose_value(dose: Union[str, int, float]) -> float:
    if isinstance(dose, str):
        return float(normalize_portion_size(dose))
    return float(dose)


def fit_linear_regression(x: Sequence[float], y: Sequence[float]) -> Tuple[float, float, float]:
    """Least-squares (slope, intercept, R²).

    Raises ValueError when every x is identical.  A constant response with
    a flat fit counts as fully explained (R² = 1).
    """
    xa = np.asarray(x, dtype=np.float64)
    ya = np.asarray(y, dtype=np.float64)
    if np.ptp(xa) == 0:
        raise ValueError("all dose values are identical")
    fit = sp_stats.linregress(xa, ya)
    slope, intercept = float(fit.slope), float(fit.intercept)
    if np.ptp(ya) == 0:
        r_squared = 1.0 if abs(slope) < 1e-10 else 0.0
    else:
        r_squared = float(fit.rvalue) ** 2
    return slope, intercept, r_squared


def classify_dose_confidence(r_squared: float, sample_size: int) -> str:
    if sample_size < MIN_SAMPLE_SIZE:
        return "insufficient"
    if r_squared >= HIGH_R_SQUARED and sample_size >= HIGH_CONFIDENCE_SAMPLE_SIZE:
        return "high"
    if r_squared < LOW_R_SQUARED:
        return "low"
    return "medium"


def describe_dose_response(slope: float, r_squared: float, confidence: str, sample_size: int) -> str:
    if abs(slope) < FLAT_SLOPE:
        relationship = "No clear dose-response relationship detected"
    elif slope > 0:
        relationship = "Larger portions correlate with more severe symptoms"
    else:
        relationship = "Larger portions correlate with less severe symptoms"

    if confidence == "low":
        detail = f"(Low confidence: R² = {r_squared:.2f} < {LOW_R_SQUARED})"
    elif confidence == "medium":
        detail = f"(Medium confidence: R² = {r_squared:.2f})"
    else:
        detail = f"(High confidence: R² = {r_squared:.2f})"
    return f"{relationship} {detail}. Based on {sample_size} observations."


def _insufficient(pairs: List[Tuple[float, float]], message: str) -> DoseResponseResult:
    return DoseResponseResult(
        slope=0.0,
        intercept=0.0,
        r_squared=0.0,
        confidence="insufficient",
        sample_size=len(pairs),
        pairs=pairs if len(pairs) >= MIN_SAMPLE_SIZE else [],
        message=message,
    )


def compute_dose_response(
    doses: Sequence[Union[str, int, float]],
    severities: Sequence[float],
) -> DoseResponseResult:
    """Regress severity on dose.

    ``doses`` may hold portion labels or numeric values.  Fewer than five
    observations, or a regression that cannot be fitted, return an
    ``"insufficient"`` result rather than raising.
    """
    if len(doses) != len(severities):
        raise InputValidationError(
            f"Dose and severity arrays must be the same length ({len(doses)} vs {len(severities)})"
        )

    pairs = [(_dose_value(d), float(s)) for d, s in zip(doses, severities)]
    n = len(pairs)
    if n < MIN_SAMPLE_SIZE:
        return _insufficient(
            pairs, f"Insufficient data: minimum {MIN_SAMPLE_SIZE} events required (found {n})"
        )

    try:
        slope, intercept, r_squared = fit_linear_regression(
            [p[0] for p in pairs], [p[1] for p in pairs]
        )
    except ValueError as e:
        log.warning("Dose-response regression failed; reporting insufficient: %s", e)
        return _insufficient(pairs, f"Analysis failed: {e}")

    confidence = classify_dose_confidence(r_squared, n)
    return DoseResponseResult(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        confidence=confidence,
        sample_size=n,
        pairs=pairs,
        message=describe_dose_response(slope, r_squared, confidence, n),
    )
