#!/usr/bin/env python
"""
Unit tests for the SQS significance transform.
"""

import numpy as np
import pytest

from infodmr.null_model import MACHINE_EPSILON, from_replicate_pool
from infodmr.scoring import significance_signal, to_significance
from infodmr.signal import IntervalSignal


class TestToSignificance:
    """Tests for to_significance."""

    def test_known_values(self):
        """Test SQS at a few known p-values."""
        assert to_significance(1.0) == 0.0
        assert to_significance(0.1) == pytest.approx(10.0)
        assert to_significance(1e-5) == pytest.approx(50.0)

    def test_zero_is_floored_at_epsilon(self):
        """Test that a p-value of zero is floored at machine epsilon."""
        expected = -10.0 * np.log10(MACHINE_EPSILON)
        assert to_significance(0.0) == pytest.approx(expected)
        assert to_significance(1e-300) == pytest.approx(expected)
        assert np.isfinite(to_significance(0.0))

    def test_ceiling(self):
        """Test that SQS is capped at the ceiling."""
        assert to_significance(1e-12, ceiling=100.0) == 100.0
        assert to_significance(1e-12) == pytest.approx(120.0)

    def test_decreasing_in_p(self):
        """Test that SQS decreases as the p-value grows."""
        scores = to_significance(np.array([1e-10, 1e-3, 0.5, 1.0]))
        assert np.all(np.diff(scores) < 0)

    def test_nan_passes_through(self):
        """Test that NaN p-values stay NaN."""
        scores = to_significance(np.array([np.nan, 0.01]))
        assert np.isnan(scores[0])
        assert scores[1] == pytest.approx(20.0)


class TestSignificanceSignal:
    """Tests for converting a smoothed signal to SQS."""

    def test_same_intervals_new_scores(self):
        """Test that the significance signal keeps the smoothed intervals."""
        smoothed = IntervalSignal.from_records([("chr1", 0, 10, 0.15), ("chr1", 10, 20, 5.0)])
        model = from_replicate_pool([np.linspace(0, 1, 11)])

        sqs = significance_signal(smoothed, model)

        np.testing.assert_array_equal(sqs.starts, smoothed.starts)
        # 0.15 -> p = 1 - 2/11; 5.0 -> p floored at epsilon
        np.testing.assert_allclose(sqs.values, [-10 * np.log10(9 / 11), -10 * np.log10(MACHINE_EPSILON)])


if __name__ == "__main__":
    pytest.main()
