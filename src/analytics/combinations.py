"""Synergistic cause-pair detection.

A pair of causes logged together (e.g. two foods in one meal) is
synergistic when the rate at which meals containing both are followed by
the effect beats the stronger of the two individual rates by more than
SYNERGY_THRESHOLD.
"""

from __future__ import annotations

import bisect
import itertools
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from analytics.window_correlation import ContingencyTable, chi_square, chi_square_p_value
from constants import COMBINATION_WINDOW_HOURS
from models import Event, FoodCombination, Meal, utcnow

SYNERGY_THRESHOLD = 0.15
DEFAULT_MIN_SAMPLE_SIZE = 3

HIGH_SAMPLE_SIZE = 10
MEDIUM_SAMPLE_SIZE = 5


def pair_key(pair: Tuple[str, str]) -> str:
    return "+".join(pair)


def meal_pairs(meal: Meal) -> List[Tuple[str, str]]:
    """Unique unordered cause pairs within one meal, each sorted."""
    unique = sorted(set(meal.cause_ids))
    return list(itertools.combinations(unique, 2))


def classify_combination_confidence(sample_size: int, p_value: float) -> str:
    if sample_size >= HIGH_SAMPLE_SIZE and p_value < 0.01:
        return "high"
    if sample_size >= MEDIUM_SAMPLE_SIZE and p_value < 0.05:
        return "medium"
    return "low"


def _followed_by_effect(meal: Meal, effect_times: List[datetime], window: timedelta) -> bool:
    idx = bisect.bisect_left(effect_times, meal.timestamp)
    return idx < len(effect_times) and effect_times[idx] <= meal.timestamp + window


def detect_combinations(
    meals: Sequence[Meal],
    effect_events: Sequence[Event],
    effect_id: str,
    individual_rates: Mapping[str, float],
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    min_sample_size: int = DEFAULT_MIN_SAMPLE_SIZE,
    window_hours: int = COMBINATION_WINDOW_HOURS,
) -> List[FoodCombination]:
    """Score every cause pair seen in at least ``min_sample_size`` meals.

    Meals without the pair form the baseline row of the contingency table.
    Results are ordered by how far the pair rate exceeds the stronger
    individual rate.
    """
    def in_range(ts: datetime) -> bool:
        return (range_start is None or ts >= range_start) and (range_end is None or ts <= range_end)

    meals = [m for m in meals if in_range(m.timestamp)]
    effect_times = sorted(e.timestamp for e in effect_events if in_range(e.timestamp))
    if not meals or not effect_times:
        return []

    window = timedelta(hours=window_hours)
    followed = {m.meal_id: _followed_by_effect(m, effect_times, window) for m in meals}

    meals_by_pair: Dict[Tuple[str, str], List[Meal]] = {}
    for meal in meals:
        for pair in meal_pairs(meal):
            meals_by_pair.setdefault(pair, []).append(meal)

    computed_at = utcnow()
    results: List[FoodCombination] = []
    for pair, with_pair in meals_by_pair.items():
        n = len(with_pair)
        if n < min_sample_size:
            continue

        pair_ids = {m.meal_id for m in with_pair}
        a = sum(1 for m in with_pair if followed[m.meal_id])
        b = n - a
        c = sum(1 for m in meals if m.meal_id not in pair_ids and followed[m.meal_id])
        d = len(meals) - n - c
        score = chi_square(ContingencyTable(a, b, c, d))
        p_value = chi_square_p_value(score)

        rate = a / n
        individual_max = max(
            0.0,
            individual_rates.get(pair[0], 0.0),
            individual_rates.get(pair[1], 0.0),
        )
        results.append(FoodCombination(
            cause_ids=pair,
            effect_id=effect_id,
            combination_rate=rate,
            individual_max=individual_max,
            synergistic=rate > individual_max + SYNERGY_THRESHOLD,
            p_value=p_value,
            chi_square_score=score,
            confidence=classify_combination_confidence(n, p_value),
            sample_size=n,
            computed_at=computed_at,
        ))

    results.sort(key=lambda r: r.synergy_margin, reverse=True)
    return results


def meals_from_events(food_events: Sequence[Event]) -> List[Meal]:
    """Group food events into meals.

    Events sharing a ``meal_id`` attribute are merged; an event without one
    is a meal of its own keyed by its timestamp.
    """
    grouped: Dict[str, Tuple[datetime, List[str]]] = {}
    for event in food_events:
        meal_id = str(event.attributes.get("meal_id") or event.timestamp.isoformat())
        ts, ids = grouped.setdefault(meal_id, (event.timestamp, []))
        ids.extend(event.item_ids)
        if event.timestamp < ts:
            grouped[meal_id] = (event.timestamp, ids)
    return [Meal(meal_id, ts, tuple(ids)) for meal_id, (ts, ids) in grouped.items()]
