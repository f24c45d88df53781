"""
Conversion of p-values into the SQS significance score.

SQS = -10 * log10(p), with p floored at machine epsilon and the score capped
at a ceiling to bound its dynamic range.
"""

from typing import Union

import numpy as np

from infodmr.null_model import MACHINE_EPSILON, NullModel
from infodmr.signal import IntervalSignal

DEFAULT_MAX_SQS = 250.0


def to_significance(p_values: Union[float, np.ndarray], ceiling: float = DEFAULT_MAX_SQS) -> Union[float, np.ndarray]:
    """
    Compute the bounded significance score of p-values.

    Args:
        p_values: P-value or array of p-values
        ceiling: Largest score reported

    Returns:
        float or numpy.ndarray: Scores in [0, ceiling], NaN where p is NaN
    """
    p = np.asarray(p_values, dtype=float)
    p = np.where(p < MACHINE_EPSILON, MACHINE_EPSILON, p)
    scores = np.minimum(-10.0 * np.log10(p), ceiling)
    return float(scores) if scores.ndim == 0 else scores


def significance_signal(smoothed: IntervalSignal, null_model: NullModel,
                        ceiling: float = DEFAULT_MAX_SQS) -> IntervalSignal:
    """
    Replace smoothed scores by their SQS under a null model.

    Args:
        smoothed: Smoothed signal
        null_model: Model giving the p-value of each smoothed score
        ceiling: Largest score reported

    Returns:
        IntervalSignal: SQS signal on the same intervals
    """
    p_values = null_model.pvalues(smoothed.values)
    return smoothed.with_values(to_significance(p_values, ceiling))
