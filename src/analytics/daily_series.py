"""
Daily series for population-level rank correlation
==================================================
Collapses event streams into one value per calendar day and aligns two
series with a lag, feeding the Spearman sweep.

  food / trigger    -> occurrences per day, zero-filled across the range
  symptom / flare   -> mean severity on days with a logged entry
  medication        -> adherence (taken / scheduled) on days with a dose

Alignment maps each day of the first series to ``day + lag_hours`` on the
second series (floored to a day key) and keeps days present on both sides.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from constants import (
    FLARE_EFFECT_ID,
    KIND_FLARE,
    KIND_FOOD,
    KIND_MEDICATION,
    KIND_SYMPTOM,
    KIND_TRIGGER,
    MIN_ALIGNED_POINTS,
)
from models import Event

# (correlation type, first kind, second kind)
PAIR_TYPES = [
    ("food-symptom", KIND_FOOD, KIND_SYMPTOM),
    ("trigger-symptom", KIND_TRIGGER, KIND_SYMPTOM),
    ("medication-symptom", KIND_MEDICATION, KIND_SYMPTOM),
    ("food-flare", KIND_FOOD, KIND_FLARE),
    ("trigger-flare", KIND_TRIGGER, KIND_FLARE),
]


@dataclass
class RankPair:
    correlation_type: str
    item1: str
    item2: str
    lag_hours: int
    values1: np.ndarray
    values2: np.ndarray

    @property
    def sample_size(self) -> int:
        return len(self.values1)


def _daily(events: Sequence[Event], value_fn: Callable[[Event], Optional[float]], how: str) -> pd.Series:
    rows = [(e.timestamp, value_fn(e)) for e in events]
    rows = [(ts, v) for ts, v in rows if v is not None]
    if not rows:
        return pd.Series(dtype=np.float64)
    df = pd.DataFrame(rows, columns=["timestamp", "value"])
    df["date"] = pd.to_datetime(df["timestamp"]).dt.normalize()
    return df.groupby("date")["value"].agg(how).astype(np.float64).sort_index()


def daily_counts(events: Sequence[Event], item_id: str,
                 range_start: Optional[datetime] = None,
                 range_end: Optional[datetime] = None) -> pd.Series:
    """Occurrences of ``item_id`` per day; days in range without one count 0."""
    series = _daily(events, lambda e: 1.0 if e.references(item_id) else None, "sum")
    if range_start is None or range_end is None:
        return series
    days = pd.date_range(pd.Timestamp(range_start).normalize(), pd.Timestamp(range_end).normalize(), freq="D")
    return series.reindex(days, fill_value=0.0)


def daily_mean_severity(events: Sequence[Event], item_id: Optional[str] = None) -> pd.Series:
    def value(e: Event) -> Optional[float]:
        if item_id is not None and not e.references(item_id):
            return None
        return e.severity
    return _daily(events, value, "mean")


def daily_adherence(events: Sequence[Event], item_id: str) -> pd.Series:
    def value(e: Event) -> Optional[float]:
        if not e.references(item_id):
            return None
        return 1.0 if e.taken else 0.0
    return _daily(events, value, "mean")


def align_with_lag(first: pd.Series, second: pd.Series, lag_hours: int) -> Tuple[np.ndarray, np.ndarray]:
    """Pair ``first[day]`` with ``second[day + lag]`` for days present on both sides."""
    if first.empty or second.empty:
        return np.array([]), np.array([])
    targets = (first.index + pd.Timedelta(hours=lag_hours)).normalize()
    matched = second.reindex(targets).to_numpy(dtype=np.float64)
    values = first.to_numpy(dtype=np.float64)
    mask = ~np.isnan(matched) & ~np.isnan(values)
    return values[mask], matched[mask]


def _unique_ids(events: Sequence[Event]) -> List[str]:
    return sorted({item for e in events for item in e.item_ids})


def build_daily_series(
    events_by_kind: Dict[str, Sequence[Event]],
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
) -> Dict[str, Dict[str, pd.Series]]:
    """Per-kind, per-item daily series for every item seen in the events."""
    foods = events_by_kind.get(KIND_FOOD, [])
    triggers = events_by_kind.get(KIND_TRIGGER, [])
    medications = events_by_kind.get(KIND_MEDICATION, [])
    symptoms = events_by_kind.get(KIND_SYMPTOM, [])
    flares = events_by_kind.get(KIND_FLARE, [])

    series: Dict[str, Dict[str, pd.Series]] = {
        KIND_FOOD: {i: daily_counts(foods, i, range_start, range_end) for i in _unique_ids(foods)},
        KIND_TRIGGER: {i: daily_counts(triggers, i, range_start, range_end) for i in _unique_ids(triggers)},
        KIND_MEDICATION: {i: daily_adherence(medications, i) for i in _unique_ids(medications)},
        KIND_SYMPTOM: {i: daily_mean_severity(symptoms, i) for i in _unique_ids(symptoms)},
        KIND_FLARE: {},
    }
    if flares:
        series[KIND_FLARE][FLARE_EFFECT_ID] = daily_mean_severity(flares)
    return series


def generate_rank_pairs(
    events_by_kind: Dict[str, Sequence[Event]],
    lag_hours: int,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    min_points: int = MIN_ALIGNED_POINTS,
) -> List[RankPair]:
    """Every cause/effect item pair with at least ``min_points`` aligned days."""
    series = build_daily_series(events_by_kind, range_start, range_end)
    pairs: List[RankPair] = []
    for correlation_type, first_kind, second_kind in PAIR_TYPES:
        for item1, first in series[first_kind].items():
            for item2, second in series[second_kind].items():
                values1, values2 = align_with_lag(first, second, lag_hours)
                if len(values1) < min_points:
                    continue
                pairs.append(RankPair(correlation_type, item1, item2, lag_hours, values1, values2))
    return pairs
