"""
Information-content DMR detection.

This package detects differentially methylated regions (DMRs) from per-position
information-content tracks (for example Jensen-Shannon distances between a test
and a reference sample). Tracks are kernel smoothed, converted into p-values
under an empirical or logit-space mixture null model, transformed into the SQS
significance score, and thresholded with morphological closing.
"""

__version__ = "0.1.0"

# Import main functionality to expose at package level
from infodmr.exceptions import DMRError, FitFailure, InputShapeError
from infodmr.signal import CoverageTrack, GenomicInterval, IntervalSignal
from infodmr.smoothing import smooth
from infodmr.null_model import (
    EmpiricalNullModel,
    MixtureNullModel,
    NullModel,
    from_mixture_fit,
    from_replicate_pool,
)
from infodmr.scoring import to_significance
from infodmr.morphology import threshold
from infodmr.config import DMRConfig
from infodmr.pipeline import run_no_replicate_dmr, run_replicate_dmr

__all__ = [
    "DMRError",
    "FitFailure",
    "InputShapeError",
    "CoverageTrack",
    "GenomicInterval",
    "IntervalSignal",
    "smooth",
    "NullModel",
    "EmpiricalNullModel",
    "MixtureNullModel",
    "from_replicate_pool",
    "from_mixture_fit",
    "to_significance",
    "threshold",
    "DMRConfig",
    "run_replicate_dmr",
    "run_no_replicate_dmr",
]
