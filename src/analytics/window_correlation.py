"""
Window correlation engine
=========================
Chi-square association between a cause-event stream and an effect-event
stream, evaluated separately for each named time window.

For every window a 2x2 contingency table is built:

                       effect in window     no effect in window
    cause event               a                      b
    no cause event            c                      d

  a = cause events followed by >=1 effect inside the window
  b = cause events with no effect inside the window
  c = effect events not preceded by any cause inside the window
  d = unexposed, effect-free time: the number of window-length slots in
      the analysis range left over after a, b and c have claimed theirs.
      Without a range there is no exposure clock and d falls back to b.

The statistic is Pearson's χ² with expected-zero cells excluded; the
p-value comes from a fixed df=1 critical-value ladder so confidence tiers
keep a monotonic ordering.
"""

from __future__ import annotations

import bisect
from datetime import datetime, timedelta
from typing import Iterable, List, NamedTuple, Optional, Sequence

from constants import (
    CHI_SQUARE_CRITICAL_VALUES,
    CHI_SQUARE_FLOOR_P_VALUE,
    WINDOW_DEFINITIONS,
)
from errors import InputValidationError
from models import Event, TimeWindow, WindowScore


DEFAULT_WINDOWS: List[TimeWindow] = [
    TimeWindow(label, timedelta(minutes=start), timedelta(minutes=end))
    for label, start, end in WINDOW_DEFINITIONS
]


class ContingencyTable(NamedTuple):
    a: int
    b: int
    c: int
    d: int


def get_window(label: str, windows: Sequence[TimeWindow] = DEFAULT_WINDOWS) -> TimeWindow:
    for window in windows:
        if window.label == label:
            return window
    raise InputValidationError(f"Unknown correlation window: {label!r}")


def chi_square(table: ContingencyTable) -> float:
    """Pearson χ² for a 2x2 table; cells with zero expectation are skipped."""
    a, b, c, d = table
    total = a + b + c + d
    if total == 0:
        return 0.0
    row1, row2 = a + b, c + d
    col1, col2 = a + c, b + d
    observed = (a, b, c, d)
    expected = (
        row1 * col1 / total,
        row1 * col2 / total,
        row2 * col1 / total,
        row2 * col2 / total,
    )
    return float(sum((o - e) ** 2 / e for o, e in zip(observed, expected) if e > 0))


def chi_square_p_value(score: float) -> float:
    for critical, p_value in CHI_SQUARE_CRITICAL_VALUES:
        if score >= critical:
            return p_value
    return CHI_SQUARE_FLOOR_P_VALUE


def _sorted_times(events: Iterable[Event], start: Optional[datetime], end: Optional[datetime]) -> List[datetime]:
    times = [e.timestamp for e in events]
    if start is not None:
        times = [t for t in times if t >= start]
    if end is not None:
        times = [t for t in times if t <= end]
    return sorted(times)


def _has_between(sorted_times: List[datetime], lo: datetime, hi: datetime) -> bool:
    idx = bisect.bisect_left(sorted_times, lo)
    return idx < len(sorted_times) and sorted_times[idx] <= hi


def build_contingency_table(
    cause_times: List[datetime],
    effect_times: List[datetime],
    window: TimeWindow,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
) -> ContingencyTable:
    """Contingency counts for one window.  Both time lists must be sorted."""
    a = sum(
        1 for t in cause_times
        if _has_between(effect_times, t + window.offset_start, t + window.offset_end)
    )
    b = len(cause_times) - a
    # An effect is exposed when some cause sits in [effect - end, effect - start]
    c = sum(
        1 for t in effect_times
        if not _has_between(cause_times, t - window.offset_end, t - window.offset_start)
    )

    if range_start is None or range_end is None or window.span <= timedelta(0):
        d = b
    else:
        slots = int((range_end - range_start) / window.span)
        d = max(0, slots - a - b - c)
    return ContingencyTable(a, b, c, d)


def compute_window_scores(
    cause_events: Sequence[Event],
    effect_events: Sequence[Event],
    windows: Sequence[TimeWindow] = DEFAULT_WINDOWS,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
) -> List[WindowScore]:
    """One WindowScore per window, in window order.

    Events outside ``[range_start, range_end]`` are ignored.  An empty
    cause list yields zero scores with sample size 0.
    """
    causes = _sorted_times(cause_events, range_start, range_end)
    effects = _sorted_times(effect_events, range_start, range_end)

    scores: List[WindowScore] = []
    for window in windows:
        table = build_contingency_table(causes, effects, window, range_start, range_end)
        score = chi_square(table)
        scores.append(WindowScore(
            window=window.label,
            chi_square_score=score,
            sample_size=len(causes),
            p_value=chi_square_p_value(score),
        ))
    return scores


def select_best_window(scores: Sequence[WindowScore]) -> Optional[WindowScore]:
    """Highest χ²; ties go to the larger sample, then to the earlier window."""
    if not scores:
        return None
    return max(scores, key=lambda s: (s.chi_square_score, s.sample_size))


def compute_consistency(
    cause_events: Sequence[Event],
    effect_events: Sequence[Event],
    window: TimeWindow,
) -> float:
    """Fraction of cause events followed by at least one effect in ``window``."""
    if not cause_events:
        return 0.0
    effects = sorted(e.timestamp for e in effect_events)
    matched = sum(
        1 for cause in cause_events
        if _has_between(effects, cause.timestamp + window.offset_start, cause.timestamp + window.offset_end)
    )
    return matched / len(cause_events)
