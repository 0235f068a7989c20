"""
Treatment effectiveness
=======================
Before/after comparison of effect severity around each time a treatment
was taken.

  baseline  = mean severity in the 7 days before the treatment
  outcome   = mean severity from day 7 to day 30 after
  cycle %   = (baseline - outcome) / baseline * 100   (0 when baseline is 0)

Instances missing either side are dropped.  Fewer than three usable cycles
is the normal "not enough data yet" state and yields None.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import numpy as np

from models import Event, TreatmentCycle, TreatmentEffectiveness, utcnow

BASELINE_DAYS = 7
OUTCOME_START_DAYS = 7
OUTCOME_END_DAYS = 30

MIN_CYCLES = 3
TREND_MIN_CYCLES = 6
TREND_RECENT_CYCLES = 3
TREND_THRESHOLD = 10.0

HIGH_CONFIDENCE_CYCLES = 10
MEDIUM_CONFIDENCE_CYCLES = 5


def _mean_severity(effect_events: Sequence[Event], start: datetime, end: datetime) -> Optional[float]:
    values = [
        e.severity for e in effect_events
        if e.severity is not None and start <= e.timestamp <= end
    ]
    if not values:
        return None
    return float(np.mean(values))


def cycle_effectiveness(baseline: float, outcome: float) -> float:
    if baseline == 0:
        return 0.0
    return (baseline - outcome) / baseline * 100.0


def build_cycles(treatment_times: Sequence[datetime], effect_events: Sequence[Event]) -> List[TreatmentCycle]:
    """One cycle per treatment instance with severity data on both sides."""
    cycles: List[TreatmentCycle] = []
    for taken_at in sorted(treatment_times):
        baseline = _mean_severity(effect_events, taken_at - timedelta(days=BASELINE_DAYS), taken_at)
        outcome = _mean_severity(
            effect_events,
            taken_at + timedelta(days=OUTCOME_START_DAYS),
            taken_at + timedelta(days=OUTCOME_END_DAYS),
        )
        if baseline is None or outcome is None:
            continue
        cycles.append(TreatmentCycle(
            treatment_date=taken_at,
            baseline_severity=baseline,
            outcome_severity=outcome,
            effectiveness=cycle_effectiveness(baseline, outcome),
        ))
    return cycles


def classify_trend(cycles: Sequence[TreatmentCycle]) -> str:
    """Last three cycles against all earlier ones; stable below six cycles."""
    if len(cycles) < TREND_MIN_CYCLES:
        return "stable"
    recent = np.mean([c.effectiveness for c in cycles[-TREND_RECENT_CYCLES:]])
    older = np.mean([c.effectiveness for c in cycles[:-TREND_RECENT_CYCLES]])
    if recent > older + TREND_THRESHOLD:
        return "improving"
    if recent < older - TREND_THRESHOLD:
        return "declining"
    return "stable"


def classify_treatment_confidence(cycle_count: int) -> str:
    if cycle_count >= HIGH_CONFIDENCE_CYCLES:
        return "high"
    if cycle_count >= MEDIUM_CONFIDENCE_CYCLES:
        return "medium"
    return "low"


def analyze_treatment(
    treatment_id: str,
    treatment_times: Sequence[datetime],
    effect_events: Sequence[Event],
    treatment_type: str = "medication",
    calculated_at: Optional[datetime] = None,
) -> Optional[TreatmentEffectiveness]:
    cycles = build_cycles(treatment_times, effect_events)
    if len(cycles) < MIN_CYCLES:
        return None

    return TreatmentEffectiveness(
        treatment_id=treatment_id,
        treatment_type=treatment_type,
        score=float(np.mean([c.effectiveness for c in cycles])),
        trend=classify_trend(cycles),
        sample_size=len(cycles),
        confidence=classify_treatment_confidence(len(cycles)),
        cycles=cycles,
        calculated_at=calculated_at or utcnow(),
    )
