"""
Thresholding and morphological closing of significance tracks.

Intervals scoring above a threshold are dilated by half the closing length
on each side, merged where they overlap or touch, and eroded back by the same
amount. Nearby regions are thereby fused and small gaps filled. Each closed
region is scored by the coverage-weighted sum of the full (unthresholded)
signal inside it, normalised by a unit size.
"""

import logging
from typing import Mapping, Optional

import numpy as np
import pandas as pd

from infodmr.signal import SIGNAL_COLUMNS, IntervalSignal

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 50.0
DEFAULT_CLOSING_LENGTH = 50000
DEFAULT_UNIT_SIZE = 150.0
INFINITE_SCORE_FACTOR = 5.0


def empty_dmr_frame() -> pd.DataFrame:
    return pd.DataFrame({
        'chromosome': pd.Series(dtype=str),
        'start': pd.Series(dtype=np.int64),
        'end': pd.Series(dtype=np.int64),
        'score': pd.Series(dtype=float),
    })


def merge_intervals(intervals_df: pd.DataFrame) -> pd.DataFrame:
    """
    Merge overlapping or touching intervals into maximal unions.

    Args:
        intervals_df: DataFrame with chromosome, start, end columns

    Returns:
        pandas.DataFrame: Disjoint, non-adjacent intervals sorted per chromosome
    """
    if intervals_df.empty:
        return intervals_df.loc[:, ['chromosome', 'start', 'end']].copy()

    merged_df = intervals_df.loc[:, ['chromosome', 'start', 'end']].copy()
    # Keep chromosomes in order of first appearance
    chromosome_rank = {name: rank for rank, name in enumerate(pd.unique(merged_df['chromosome']))}
    merged_df['chromosome_rank'] = merged_df['chromosome'].map(chromosome_rank)
    merged_df = merged_df.sort_values(by=['chromosome_rank', 'start']).reset_index(drop=True)
    # A new block starts where an interval begins past everything seen so far on its chromosome
    reach = merged_df.groupby('chromosome', sort=False)['end'].cummax()
    previous_reach = reach.groupby(merged_df['chromosome'], sort=False).shift(1)
    merged_df['block_change'] = previous_reach.isna() | (merged_df['start'] > previous_reach)
    merged_df['block_id'] = merged_df['block_change'].cumsum()

    return merged_df.groupby('block_id', sort=True).agg({
        'chromosome': 'first',
        'start': 'min',
        'end': 'max',
    }).reset_index(drop=True)


def close_intervals(intervals_df: pd.DataFrame, closing_length: float,
                    chrom_sizes: Optional[Mapping[str, int]] = None) -> pd.DataFrame:
    """
    Morphological closing (dilate then erode) of a set of intervals.

    Args:
        intervals_df: DataFrame with chromosome, start, end columns
        closing_length: Structuring element length; half of it is added then removed on each side
        chrom_sizes: Optional chromosome lengths used to clip the result

    Returns:
        pandas.DataFrame: Closed intervals
    """
    half_length = int(round(0.5 * closing_length))

    dilated_df = intervals_df.loc[:, ['chromosome', 'start', 'end']].copy()
    dilated_df['start'] = dilated_df['start'] - half_length
    dilated_df['end'] = dilated_df['end'] + half_length
    merged_df = merge_intervals(dilated_df)

    closed_df = merged_df.copy()
    closed_df['start'] = closed_df['start'] + half_length
    closed_df['end'] = closed_df['end'] - half_length
    closed_df = closed_df[closed_df['end'] > closed_df['start']].copy()

    # Clip to chromosome bounds
    closed_df['start'] = closed_df['start'].clip(lower=0)
    if chrom_sizes is not None:
        sizes = closed_df['chromosome'].map(chrom_sizes)
        closed_df['end'] = np.where(sizes.notna(), np.minimum(closed_df['end'], sizes.fillna(0)), closed_df['end'])
    closed_df = closed_df[closed_df['end'] > closed_df['start']]
    return closed_df.astype({'start': np.int64, 'end': np.int64}).reset_index(drop=True)


def threshold(signal: IntervalSignal, threshold_value: float = DEFAULT_THRESHOLD,
              closing_length: float = DEFAULT_CLOSING_LENGTH, unit_size: float = DEFAULT_UNIT_SIZE,
              chrom_sizes: Optional[Mapping[str, int]] = None) -> pd.DataFrame:
    """
    Call DMRs by thresholding, closing and coverage-weighted aggregation.

    Args:
        signal: Significance (SQS) signal
        threshold_value: Scores strictly above this value seed DMRs
        closing_length: Morphological closing length
        unit_size: Normaliser of the aggregated score
        chrom_sizes: Optional chromosome lengths used to clip DMRs

    Returns:
        pandas.DataFrame: DMRs with chromosome, start, end, score columns; empty if none survive
    """
    frame = signal.drop_undefined().frame
    infinite = np.isinf(frame['score'])
    if infinite.any():
        logger.debug("Clamping %d infinite scores to %s", infinite.sum(), INFINITE_SCORE_FACTOR * threshold_value)
        frame.loc[infinite, 'score'] = INFINITE_SCORE_FACTOR * threshold_value

    above_df = frame[frame['score'] > threshold_value]
    logger.debug("%d of %d records above threshold %s", len(above_df), len(frame), threshold_value)
    if above_df.empty:
        return empty_dmr_frame()

    closed_df = close_intervals(above_df, closing_length, chrom_sizes)
    if closed_df.empty:
        return empty_dmr_frame()

    # Sum the full signal inside each closed region
    coverage = IntervalSignal(frame).coverage_weighted()
    sums = []
    for chromosome, group in closed_df.groupby('chromosome', sort=False):
        sums.append(pd.Series(coverage[chromosome].sum_within(group['start'], group['end']), index=group.index))
    closed_df['score'] = pd.concat(sums) / unit_size

    dmr_df = closed_df[closed_df['score'].notna()].loc[:, SIGNAL_COLUMNS]
    logger.info("Found %d DMRs", len(dmr_df))
    return dmr_df.reset_index(drop=True)
