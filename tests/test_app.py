"""
Tests for helpers of the Streamlit UI.
"""

import pytest

from app import MAX_EXPONENT, threshold_exponent


class TestThresholdExponent:
    """Test the p-value slider position."""

    def test_genome_wide_threshold(self):
        assert threshold_exponent(5e-8) == pytest.approx(7.30103)

    def test_loose_threshold_stays_in_range(self):
        assert threshold_exponent(0.5) == pytest.approx(0.30103)
        assert threshold_exponent(1.0) == 0.0

    def test_tiny_threshold_is_capped(self):
        assert threshold_exponent(1e-300) == MAX_EXPONENT
