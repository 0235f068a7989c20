"""
Tests for confidence tiering.

Covers: weakest-tier composition, tier boundaries, input validation and
the population-level rank-correlation rules.
"""
import math

import pytest

from analytics.confidence import (
    consistency_tier,
    determine_confidence,
    meets_significance_criteria,
    p_value_tier,
    rank_confidence,
    sample_size_tier,
)
from errors import InputValidationError


class TestDetermineConfidence:

    def test_all_strong_is_high(self):
        assert determine_confidence(6, 0.80, 0.009) == "high"

    def test_small_sample_dominates(self):
        assert determine_confidence(2, 0.75, 0.009) == "low"

    def test_weak_p_value_dominates(self):
        assert determine_confidence(6, 0.75, 0.10) == "low"

    def test_poor_consistency_dominates(self):
        """A large sample with poor consistency never reads as high."""
        assert determine_confidence(500, 0.30, 0.001) == "low"

    def test_boundaries_are_inclusive_for_high(self):
        assert determine_confidence(5, 0.70, 0.009) == "high"

    def test_medium_when_one_tier_medium(self):
        assert determine_confidence(4, 0.90, 0.001) == "medium"
        assert determine_confidence(10, 0.55, 0.001) == "medium"
        assert determine_confidence(10, 0.90, 0.02) == "medium"

    @pytest.mark.parametrize("args", [
        (-1, 0.5, 0.05),
        (5, -0.1, 0.05),
        (5, 1.1, 0.05),
        (5, 0.5, -0.01),
        (5, 0.5, 1.5),
        (5, math.nan, 0.05),
        (5, 0.5, math.nan),
    ])
    def test_invalid_inputs_raise(self, args):
        with pytest.raises(InputValidationError):
            determine_confidence(*args)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            determine_confidence(-3, 0.5, 0.5)


class TestTiers:

    def test_sample_tiers(self):
        assert sample_size_tier(5) == "high"
        assert sample_size_tier(3) == "medium"
        assert sample_size_tier(2) == "low"

    def test_consistency_tiers(self):
        assert consistency_tier(0.70) == "high"
        assert consistency_tier(0.50) == "medium"
        assert consistency_tier(0.49) == "low"

    def test_p_value_tiers(self):
        assert p_value_tier(0.0099) == "high"
        assert p_value_tier(0.01) == "medium"
        assert p_value_tier(0.05) == "low"


class TestRankConfidence:

    def test_high_needs_thirty_points(self):
        assert rank_confidence(30, 0.005) == "high"
        assert rank_confidence(29, 0.005) == "medium"

    def test_medium_and_low(self):
        assert rank_confidence(10, 0.04) == "medium"
        assert rank_confidence(9, 0.001) == "low"
        assert rank_confidence(50, 0.2) == "low"

    def test_significance_criteria(self):
        assert meets_significance_criteria(0.3, 10, 0.049)
        assert meets_significance_criteria(-0.8, 40, 0.001)
        assert not meets_significance_criteria(0.29, 40, 0.001)
        assert not meets_significance_criteria(0.9, 9, 0.001)
        assert not meets_significance_criteria(0.9, 40, 0.05)
