"""
Run configuration for DMR detection.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from infodmr.morphology import DEFAULT_THRESHOLD, DEFAULT_UNIT_SIZE
from infodmr.null_model import MIXTURE_MAX_ITER
from infodmr.scoring import DEFAULT_MAX_SQS
from infodmr.smoothing import DEFAULT_BANDWIDTH

DEFAULT_CHROMOSOMES = tuple(f"chr{i}" for i in range(1, 23))


@dataclass(frozen=True)
class DMRConfig:
    """
    Parameters shared by the replicate and no-replicate pipelines.

    Attributes:
        chromosomes: Chromosomes to process, in output order
        bandwidth: Smoothing kernel bandwidth
        closing_length: Morphological closing length; defaults to the bandwidth
        threshold: SQS threshold seeding DMRs
        max_sqs: Ceiling of the SQS score
        unit_size: Normaliser of the aggregated DMR score
        max_iter: Iteration cap of the mixture fit
        outflag: Also write smoothed and SQS tracks
        workers: Number of processes used for per-chromosome work
        chrom_sizes: Optional chromosome lengths used to clip DMRs
    """
    chromosomes: Tuple[str, ...] = DEFAULT_CHROMOSOMES
    bandwidth: float = DEFAULT_BANDWIDTH
    closing_length: Optional[float] = None
    threshold: float = DEFAULT_THRESHOLD
    max_sqs: float = DEFAULT_MAX_SQS
    unit_size: float = DEFAULT_UNIT_SIZE
    max_iter: int = MIXTURE_MAX_ITER
    outflag: bool = False
    workers: int = 1
    chrom_sizes: Optional[Dict[str, int]] = field(default=None, compare=False)

    def __post_init__(self):
        if self.bandwidth <= 0:
            raise ValueError(f"bandwidth must be positive, got {self.bandwidth}")
        if self.closing_length is not None and self.closing_length < 0:
            raise ValueError(f"closing_length must be non-negative, got {self.closing_length}")
        if self.unit_size <= 0:
            raise ValueError(f"unit_size must be positive, got {self.unit_size}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be at least 1, got {self.max_iter}")
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")
        object.__setattr__(self, 'chromosomes', tuple(self.chromosomes))

    @property
    def effective_closing_length(self) -> float:
        return self.bandwidth if self.closing_length is None else self.closing_length
