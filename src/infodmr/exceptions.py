"""
Error taxonomy for DMR detection.

Structural and input problems are raised to the caller unmodified. Numeric
edge cases (p-values below machine precision, infinite scores, logit of
boundary values) are clamped where they occur and never raised. An empty
thresholding result is not an error.
"""


class DMRError(Exception):
    """Base class for all errors raised by infodmr."""


class InputShapeError(DMRError, ValueError):
    """Malformed or empty input signal (bad coordinates, unsorted positions, empty pool)."""


class FitFailure(DMRError, RuntimeError):
    """The logit-space mixture model could not be estimated from the data."""
