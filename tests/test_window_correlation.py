"""
Tests for the window correlation engine.

Covers: chi-square math, critical-value p lookup, contingency tables,
per-window scoring, best-window selection and consistency.
"""
from datetime import timedelta

import pytest

from analytics.window_correlation import (
    DEFAULT_WINDOWS,
    ContingencyTable,
    build_contingency_table,
    chi_square,
    chi_square_p_value,
    compute_consistency,
    compute_window_scores,
    get_window,
    select_best_window,
)
from errors import InputValidationError
from models import TimeWindow, WindowScore


def _daily_pairs(t0, event, days=5, effect_after=timedelta(minutes=20)):
    causes = [event(t0 + timedelta(days=d), "dairy") for d in range(days)]
    effects = [event(t0 + timedelta(days=d) + effect_after, "pain", severity=6) for d in range(days)]
    return causes, effects


# ─── chi-square / p-value ─────────────────────────────────────


class TestChiSquare:

    def test_perfect_association_equals_total(self):
        assert chi_square(ContingencyTable(10, 0, 0, 10)) == pytest.approx(20.0)

    def test_independence_is_zero(self):
        assert chi_square(ContingencyTable(10, 10, 10, 10)) == pytest.approx(0.0)

    def test_empty_table_is_zero(self):
        assert chi_square(ContingencyTable(0, 0, 0, 0)) == 0.0

    def test_zero_expectation_cells_are_skipped(self):
        """A zero row would divide by zero if its cells were summed."""
        assert chi_square(ContingencyTable(0, 0, 4, 6)) == pytest.approx(0.0)

    @pytest.mark.parametrize("score,expected", [
        (12.0, 0.001),
        (10.828, 0.001),
        (10.8, 0.01),
        (6.635, 0.01),
        (3.841, 0.05),
        (2.706, 0.10),
        (1.0, 0.20),
        (0.99, 0.30),
        (0.0, 0.30),
    ])
    def test_critical_value_ladder(self, score, expected):
        assert chi_square_p_value(score) == expected

    def test_p_value_is_monotonic_in_score(self):
        scores = [0, 0.5, 1.0, 2.0, 3.0, 5.0, 8.0, 11.0, 50.0]
        ps = [chi_square_p_value(s) for s in scores]
        assert ps == sorted(ps, reverse=True)


# ─── Windows ──────────────────────────────────────────────────


class TestWindows:

    def test_default_labels_in_order(self):
        assert [w.label for w in DEFAULT_WINDOWS] == [
            "15m", "30m", "1h", "2-4h", "6-12h", "24h", "48h", "72h"]

    def test_offsets_are_ordered(self):
        for w in DEFAULT_WINDOWS:
            assert w.offset_start <= w.offset_end

    def test_inverted_window_raises(self):
        with pytest.raises(InputValidationError):
            TimeWindow("bad", timedelta(hours=2), timedelta(hours=1))

    def test_bounds_are_inclusive(self):
        w = get_window("2-4h")
        assert w.contains(timedelta(hours=2))
        assert w.contains(timedelta(hours=4))
        assert not w.contains(timedelta(hours=1, minutes=59))

    def test_unknown_label_raises(self):
        with pytest.raises(InputValidationError):
            get_window("5y")


# ─── Contingency table ───────────────────────────────────────


class TestContingencyTable:

    def test_counts_matched_and_unmatched(self, t0):
        causes = [t0, t0 + timedelta(hours=5)]
        effects = [t0 + timedelta(minutes=10), t0 + timedelta(hours=20)]
        table = build_contingency_table(causes, effects, get_window("30m"))
        assert table.a == 1
        assert table.b == 1
        assert table.c == 1
        # Without a range the baseline falls back to b
        assert table.d == table.b

    def test_exposure_slots_fill_baseline(self, t0):
        causes = [t0]
        effects = [t0 + timedelta(minutes=10)]
        table = build_contingency_table(
            causes, effects, get_window("1h"), t0, t0 + timedelta(hours=10))
        assert table == ContingencyTable(1, 0, 0, 9)

    def test_baseline_never_negative(self, t0):
        causes = [t0 + timedelta(hours=h) for h in range(5)]
        table = build_contingency_table(
            causes, [], get_window("72h"), t0, t0 + timedelta(hours=80))
        assert table.d == 0


# ─── compute_window_scores ───────────────────────────────────


class TestComputeWindowScores:

    def test_empty_causes_yield_zero_scores(self, t0, event):
        effects = [event(t0 + timedelta(hours=h), "pain") for h in range(3)]
        scores = compute_window_scores([], effects, range_start=t0, range_end=t0 + timedelta(days=7))
        assert len(scores) == len(DEFAULT_WINDOWS)
        assert all(s.chi_square_score == 0 for s in scores)
        assert all(s.sample_size == 0 for s in scores)

    def test_no_events_at_all(self):
        scores = compute_window_scores([], [])
        assert all(s.chi_square_score == 0 and s.p_value == 0.30 for s in scores)

    def test_tight_window_wins(self, t0, event):
        causes, effects = _daily_pairs(t0, event)
        scores = compute_window_scores(causes, effects, range_start=t0, range_end=t0 + timedelta(days=7))
        by_label = {s.window: s for s in scores}

        assert by_label["15m"].p_value == 0.30
        assert by_label["2-4h"].p_value == 0.30
        assert by_label["30m"].p_value == 0.001
        assert by_label["30m"].chi_square_score > by_label["1h"].chi_square_score
        assert select_best_window(scores).window == "30m"

    def test_sample_size_is_cause_count(self, t0, event):
        causes, effects = _daily_pairs(t0, event, days=4)
        scores = compute_window_scores(causes, effects, range_start=t0, range_end=t0 + timedelta(days=7))
        assert {s.sample_size for s in scores} == {4}

    def test_events_outside_range_ignored(self, t0, event):
        causes, effects = _daily_pairs(t0, event, days=5)
        scores = compute_window_scores(
            causes, effects, range_start=t0 + timedelta(days=2), range_end=t0 + timedelta(days=10))
        assert scores[0].sample_size == 3

    def test_deterministic(self, t0, event):
        causes, effects = _daily_pairs(t0, event)
        first = compute_window_scores(causes, effects, range_start=t0, range_end=t0 + timedelta(days=7))
        second = compute_window_scores(causes, effects, range_start=t0, range_end=t0 + timedelta(days=7))
        assert first == second


# ─── select_best_window ──────────────────────────────────────


class TestSelectBestWindow:

    def test_empty_is_none(self):
        assert select_best_window([]) is None

    def test_tie_broken_by_sample_size(self):
        scores = [WindowScore("15m", 5.0, 3, 0.05), WindowScore("30m", 5.0, 4, 0.05)]
        assert select_best_window(scores).window == "30m"

    def test_full_tie_keeps_first(self):
        scores = [WindowScore("15m", 0.0, 0, 0.3), WindowScore("30m", 0.0, 0, 0.3)]
        assert select_best_window(scores).window == "15m"

    def test_highest_score_wins(self):
        scores = [WindowScore("15m", 1.0, 9, 0.2), WindowScore("24h", 7.0, 2, 0.01)]
        assert select_best_window(scores).window == "24h"


# ─── compute_consistency ─────────────────────────────────────


class TestConsistency:

    def test_no_causes_is_zero(self, t0, event):
        assert compute_consistency([], [event(t0, "pain")], get_window("24h")) == 0.0

    def test_fraction_followed(self, t0, event):
        causes = [event(t0 + timedelta(days=d), "dairy") for d in range(4)]
        effects = [event(t0 + timedelta(days=d, hours=1), "pain") for d in range(3)]
        assert compute_consistency(causes, effects, get_window("2-4h")) == 0.0
        assert compute_consistency(causes, effects, get_window("1h")) == pytest.approx(0.75)

    def test_effect_before_cause_does_not_count(self, t0, event):
        causes = [event(t0, "dairy")]
        effects = [event(t0 - timedelta(minutes=5), "pain")]
        assert compute_consistency(causes, effects, get_window("24h")) == 0.0
