#!/usr/bin/env python
"""
Unit tests for thresholding, morphological closing and DMR aggregation.
"""

import numpy as np
import pandas as pd
import pytest

from infodmr.morphology import close_intervals, merge_intervals, threshold
from infodmr.signal import IntervalSignal


@pytest.fixture
def scenario_signal():
    """Five single-base positions 1 kb apart with SQS scores [10, 60, 65, 5, 70]."""
    return IntervalSignal.from_records([
        ("chr1", 1000, 1001, 10.0),
        ("chr1", 2000, 2001, 60.0),
        ("chr1", 3000, 3001, 65.0),
        ("chr1", 4000, 4001, 5.0),
        ("chr1", 5000, 5001, 70.0),
    ])


def intervals(*records):
    return pd.DataFrame(list(records), columns=["chromosome", "start", "end"])


class TestMergeIntervals:
    """Tests for merging overlapping intervals."""

    def test_merges_overlapping_and_touching(self):
        """Test that overlapping and touching intervals merge."""
        merged = merge_intervals(intervals(("chr1", 0, 10), ("chr1", 5, 20), ("chr1", 20, 25), ("chr1", 30, 40)))
        assert merged.values.tolist() == [["chr1", 0, 25], ["chr1", 30, 40]]

    def test_contained_interval(self):
        """Test that an interval inside another is absorbed."""
        merged = merge_intervals(intervals(("chr1", 0, 100), ("chr1", 10, 20), ("chr1", 50, 120)))
        assert merged.values.tolist() == [["chr1", 0, 120]]

    def test_chromosomes_never_merge(self):
        """Test that intervals on different chromosomes stay apart."""
        merged = merge_intervals(intervals(("chr1", 0, 10), ("chr2", 5, 20)))
        assert merged.values.tolist() == [["chr1", 0, 10], ["chr2", 5, 20]]


class TestCloseIntervals:
    """Tests for morphological closing."""

    def test_zero_length_is_noop(self):
        """Test that a closing length of zero returns the seeds unchanged."""
        seeds = intervals(("chr1", 100, 110), ("chr1", 200, 230), ("chr2", 5, 6))
        closed = close_intervals(seeds, closing_length=0)
        pd.testing.assert_frame_equal(closed, seeds.astype({"start": np.int64, "end": np.int64}))

    def test_fuses_intervals_within_closing_length(self):
        """Test that a gap no wider than the closing length is filled."""
        closed = close_intervals(intervals(("chr1", 100, 110), ("chr1", 150, 160)), closing_length=40)
        assert closed.values.tolist() == [["chr1", 100, 160]]

    def test_keeps_distant_intervals_apart(self):
        """Test that a gap wider than the closing length is kept."""
        closed = close_intervals(intervals(("chr1", 100, 110), ("chr1", 150, 160)), closing_length=38)
        assert closed.values.tolist() == [["chr1", 100, 110], ["chr1", 150, 160]]

    def test_isolated_interval_keeps_span(self):
        """Test that closing does not grow an isolated interval."""
        closed = close_intervals(intervals(("chr1", 10, 12)), closing_length=1000)
        assert closed.values.tolist() == [["chr1", 10, 12]]

    def test_clips_to_chromosome_size(self):
        """Test that closed intervals are clipped to the chromosome end."""
        closed = close_intervals(intervals(("chr1", 100, 300)), closing_length=10, chrom_sizes={"chr1": 250})
        assert closed.values.tolist() == [["chr1", 100, 250]]


class TestThreshold:
    """Tests for DMR calling."""

    def test_closing_merges_nearby_seeds(self, scenario_signal):
        """Test that nearby seeds fuse into one DMR scored over the full signal."""
        dmrs = threshold(scenario_signal, threshold_value=50, closing_length=2000)

        assert len(dmrs) == 1
        assert dmrs.loc[0, ["chromosome", "start", "end"]].tolist() == ["chr1", 2000, 5001]
        # Aggregation uses the full signal, including the sub-threshold position at 4000
        assert dmrs.loc[0, "score"] == pytest.approx((60 + 65 + 5 + 70) / 150.0)

    def test_no_closing_keeps_seeds_separate(self, scenario_signal):
        """Test that without closing every seed is its own DMR."""
        dmrs = threshold(scenario_signal, threshold_value=50, closing_length=0)

        assert dmrs["start"].tolist() == [2000, 3000, 5000]
        np.testing.assert_allclose(dmrs["score"], np.array([60.0, 65.0, 70.0]) / 150.0)

    def test_nothing_above_threshold_gives_empty_result(self, scenario_signal):
        """Test that no seeds give an empty DMR frame."""
        dmrs = threshold(scenario_signal, threshold_value=100, closing_length=2000)
        assert dmrs.empty
        assert list(dmrs.columns) == ["chromosome", "start", "end", "score"]

    def test_threshold_is_strict(self, scenario_signal):
        """Test that a score equal to the threshold is not a seed."""
        dmrs = threshold(scenario_signal, threshold_value=70, closing_length=0)
        assert dmrs.empty

    def test_infinite_scores_are_clamped(self):
        """Test that infinite scores are clamped and NaN scores dropped."""
        signal = IntervalSignal.from_records([("chr1", 0, 1, np.inf), ("chr1", 10, 11, np.nan)])
        dmrs = threshold(signal, threshold_value=50, closing_length=0, unit_size=1.0)
        assert dmrs["score"].tolist() == [250.0]

    def test_unit_size_normalisation(self):
        """Test that aggregated coverage is divided by the unit size."""
        signal = IntervalSignal.from_records([("chr1", 0, 100, 60.0)])
        dmrs = threshold(signal, threshold_value=50, closing_length=0, unit_size=150.0)
        assert dmrs.loc[0, "score"] == pytest.approx(60.0 * 100 / 150.0)


if __name__ == "__main__":
    pytest.main()
