"""
Gaussian kernel smoothing of interval signals.

Smoothing is a Nadaraya-Watson kernel regression of the score on the
interval start position, evaluated at the original positions of each
chromosome. The bandwidth follows the classical ``ksmooth`` convention: the
kernel is scaled so that its quartiles sit at +/- 0.25 * bandwidth, and it is
truncated at four standard deviations.
"""

import logging

import numpy as np

from infodmr.signal import IntervalSignal

logger = logging.getLogger(__name__)

DEFAULT_BANDWIDTH = 50000

# Standard deviation of the normal kernel per unit of bandwidth (0.25 / qnorm(0.75))
NORMAL_KERNEL_SCALE = 0.3706506
KERNEL_CUTOFF_SDS = 4.0


def kernel_smooth(positions: np.ndarray, values: np.ndarray, bandwidth: float) -> np.ndarray:
    """
    Gaussian kernel weighted local average of values at each position.

    Args:
        positions: Sorted evaluation (and data) positions
        values: Values observed at the positions
        bandwidth: Kernel bandwidth in genomic distance units

    Returns:
        numpy.ndarray: Smoothed values, NaN where the window has no usable weight
    """
    positions = np.asarray(positions, dtype=float)
    values = np.asarray(values, dtype=float)
    if bandwidth <= 0:
        raise ValueError(f"Bandwidth must be positive, got {bandwidth}")

    sd = NORMAL_KERNEL_SCALE * bandwidth
    cutoff = KERNEL_CUTOFF_SDS * sd

    # The kernel window around every position is inclusive on both sides
    lower = np.searchsorted(positions, positions - cutoff, side='left')
    upper = np.searchsorted(positions, positions + cutoff, side='right')

    smoothed = np.full(len(positions), np.nan)
    for j, (lo, hi) in enumerate(zip(lower, upper)):
        weights = np.exp(-0.5 * ((positions[lo:hi] - positions[j]) / sd) ** 2)
        denominator = weights.sum()
        if denominator > 0:
            smoothed[j] = np.dot(weights, values[lo:hi]) / denominator
    return smoothed


def smooth_chromosome(signal: IntervalSignal, bandwidth: float = DEFAULT_BANDWIDTH) -> IntervalSignal:
    """
    Smooth the signal of a single chromosome.

    Args:
        signal: Signal restricted to one chromosome, sorted by start
        bandwidth: Kernel bandwidth

    Returns:
        IntervalSignal: Smoothed signal on the same intervals, undefined values dropped

    Raises:
        InputShapeError: If starts do not strictly increase or intervals overlap
    """
    if len(signal) == 0:
        return signal
    signal.validate()
    smoothed = kernel_smooth(signal.starts, signal.values, bandwidth)
    result = signal.with_values(smoothed).drop_undefined()
    dropped = len(signal) - len(result)
    if dropped:
        logger.debug("Dropped %d undefined smoothed values on %s", dropped, signal.chromosomes[0])
    return result


def smooth(signal: IntervalSignal, bandwidth: float = DEFAULT_BANDWIDTH) -> IntervalSignal:
    """
    Smooth every chromosome of a signal independently.

    Evaluation points are the original interval starts, so the output never
    contains positions absent from the input. Positions whose smoothed value
    is undefined are dropped, so the output may be shorter than the input.

    Args:
        signal: Canonical interval signal
        bandwidth: Kernel bandwidth shared across chromosomes

    Returns:
        IntervalSignal: Smoothed signal, chromosomes in input order

    Raises:
        InputShapeError: If a chromosome is not sorted by start or has overlapping intervals
    """
    parts = [smooth_chromosome(signal.for_chromosome(chromosome), bandwidth)
             for chromosome in signal.chromosomes]
    result = IntervalSignal.concat(parts)
    logger.info("Smoothed %d records (bandwidth=%s), %d defined", len(signal), bandwidth, len(result))
    return result
