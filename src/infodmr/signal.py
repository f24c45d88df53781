"""
Interval signal data structures.

An IntervalSignal is an ordered collection of (chromosome, start, end, score)
records backed by a pandas DataFrame. Coordinates are 0-based and half-open,
as in BED/bedGraph files. Signals are never modified in place: every operation
returns a new signal.

A CoverageTrack is the run-length encoded, per-base weighted coverage of a set
of (possibly overlapping) intervals on one chromosome. It is built the same way
prior localizations are built from BED loci: interval starts contribute +weight,
interval ends contribute -weight, and the sorted differentials are integrated
with a cumulative sum.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

import numpy as np
import pandas as pd

from infodmr.exceptions import InputShapeError

logger = logging.getLogger(__name__)

SIGNAL_COLUMNS = ['chromosome', 'start', 'end', 'score']


def chromosome_sort_key(name: str) -> Tuple:
    """
    Natural sort key for chromosome names, so that chr2 sorts before chr10.

    Args:
        name: Chromosome name

    Returns:
        tuple: Key usable with sorted()
    """
    return tuple(
        (0, int(token), '') if token.isdigit() else (1, 0, token)
        for token in re.split(r'(\d+)', str(name)) if token
    )


@dataclass(frozen=True)
class GenomicInterval:
    """Half-open genomic interval [start, end) on a chromosome."""
    chromosome: str
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0:
            raise InputShapeError(f"Negative start in interval {self.chromosome}:{self.start}-{self.end}")
        if self.end <= self.start:
            raise InputShapeError(f"Empty interval {self.chromosome}:{self.start}-{self.end}")

    @property
    def width(self) -> int:
        return self.end - self.start


class CoverageTrack:
    """
    Run-length encoded weighted coverage on one chromosome.

    The coverage equals ``values[i]`` on ``[breakpoints[i], breakpoints[i + 1])``
    and zero outside ``[breakpoints[0], breakpoints[-1])``.
    """

    def __init__(self, chromosome: str, breakpoints: np.ndarray, values: np.ndarray):
        breakpoints = np.asarray(breakpoints, dtype=np.int64)
        values = np.asarray(values, dtype=float)
        if len(breakpoints) != len(values) + 1 and not (len(breakpoints) == 0 and len(values) == 0):
            raise InputShapeError("Coverage needs one more breakpoint than run values")
        self.chromosome = chromosome
        self.breakpoints = breakpoints
        self.values = values
        widths = np.diff(breakpoints)
        # area[i] is the integral of the coverage over [breakpoints[0], breakpoints[i])
        self._area = np.concatenate(([0.0], np.cumsum(values * widths))) if len(values) else np.zeros(0)

    @classmethod
    def from_intervals(cls, chromosome: str, starts: Sequence[int], ends: Sequence[int],
                       weights: Sequence[float]) -> 'CoverageTrack':
        """
        Build the weighted coverage of possibly overlapping intervals.

        Args:
            chromosome: Chromosome name
            starts: Interval starts (0-based)
            ends: Interval ends (exclusive)
            weights: Weight each interval adds to every base it covers

        Returns:
            CoverageTrack: The step function sum of all weighted intervals
        """
        starts = np.asarray(starts, dtype=np.int64)
        ends = np.asarray(ends, dtype=np.int64)
        weights = np.asarray(weights, dtype=float)
        if len(starts) == 0:
            return cls(chromosome, np.zeros(0, dtype=np.int64), np.zeros(0))

        differentials = pd.DataFrame({
            'position': np.concatenate((starts, ends)),
            'differential': np.concatenate((weights, -weights)),
        })
        # Integrate the differentials at every distinct boundary
        steps = differentials.groupby('position', sort=True)['differential'].sum().cumsum()
        breakpoints = steps.index.to_numpy(dtype=np.int64)
        values = steps.to_numpy()[:-1]
        return cls(chromosome, breakpoints, values)

    def __len__(self) -> int:
        return len(self.values)

    def _area_before(self, positions: np.ndarray) -> np.ndarray:
        """Integral of the coverage over (-inf, position) for each position."""
        positions = np.asarray(positions, dtype=np.int64)
        if len(self.values) == 0:
            return np.zeros(len(positions))
        clipped = np.clip(positions, self.breakpoints[0], self.breakpoints[-1])
        run = np.searchsorted(self.breakpoints, clipped, side='right') - 1
        run = np.clip(run, 0, len(self.values) - 1)
        return self._area[run] + self.values[run] * (clipped - self.breakpoints[run])

    def sum_within(self, starts: Sequence[int], ends: Sequence[int]) -> np.ndarray:
        """
        Sum the per-base coverage inside each interval [start, end).

        Args:
            starts: Interval starts
            ends: Interval ends

        Returns:
            numpy.ndarray: One sum per interval
        """
        return self._area_before(ends) - self._area_before(starts)


class IntervalSignal:
    """
    Ordered (interval, value) records, partitioned by chromosome.

    The constructor only checks coordinate shape. Canonical signals (sorted
    by start and non-overlapping within each chromosome) are checked with
    validate().
    """

    def __init__(self, frame: pd.DataFrame):
        missing = [column for column in SIGNAL_COLUMNS if column not in frame.columns]
        if missing:
            raise InputShapeError(f"Signal frame is missing columns: {', '.join(missing)}")

        frame = frame.loc[:, SIGNAL_COLUMNS].reset_index(drop=True).copy()
        try:
            frame = frame.astype({'chromosome': str, 'start': np.int64, 'end': np.int64, 'score': float})
        except (TypeError, ValueError) as e:
            raise InputShapeError(f"Signal frame has non-numeric coordinates or scores: {e}") from e

        invalid_mask = (frame['start'] < 0) | (frame['end'] <= frame['start'])
        if invalid_mask.any():
            first_bad = frame[invalid_mask].iloc[0]
            raise InputShapeError(
                f"{invalid_mask.sum()} invalid intervals (negative start or end <= start), "
                f"first at {first_bad['chromosome']}:{first_bad['start']}-{first_bad['end']}"
            )
        self._frame = frame

    @classmethod
    def empty(cls) -> 'IntervalSignal':
        return cls(pd.DataFrame(columns=SIGNAL_COLUMNS))

    @classmethod
    def from_records(cls, records: Iterable[Tuple[str, int, int, float]]) -> 'IntervalSignal':
        """Build a signal from (chromosome, start, end, score) tuples."""
        return cls(pd.DataFrame(list(records), columns=SIGNAL_COLUMNS))

    @classmethod
    def concat(cls, parts: Iterable['IntervalSignal']) -> 'IntervalSignal':
        """Concatenate signals in the given order."""
        frames = [part._frame for part in parts if len(part) > 0]
        if not frames:
            return cls.empty()
        return cls(pd.concat(frames, ignore_index=True))

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the backing DataFrame."""
        return self._frame.copy()

    def __len__(self) -> int:
        return len(self._frame)

    def __iter__(self) -> Iterator[Tuple[GenomicInterval, float]]:
        for chromosome, start, end, score in self._frame.itertuples(index=False, name=None):
            yield GenomicInterval(chromosome, int(start), int(end)), float(score)

    def __repr__(self) -> str:
        return f"IntervalSignal({len(self)} records on {len(self.chromosomes)} chromosomes)"

    @property
    def chromosomes(self) -> List[str]:
        """Chromosome names in order of first appearance."""
        return list(pd.unique(self._frame['chromosome']))

    @property
    def starts(self) -> np.ndarray:
        return self._frame['start'].to_numpy(dtype=np.int64, copy=True)

    @property
    def ends(self) -> np.ndarray:
        return self._frame['end'].to_numpy(dtype=np.int64, copy=True)

    @property
    def values(self) -> np.ndarray:
        return self._frame['score'].to_numpy(dtype=float, copy=True)

    def for_chromosome(self, chromosome: str) -> 'IntervalSignal':
        return IntervalSignal(self._frame[self._frame['chromosome'] == chromosome])

    def restrict_to_chromosomes(self, names: Iterable[str]) -> 'IntervalSignal':
        """
        Limit the signal to the given chromosomes, preserving record order.

        Unknown chromosome names are ignored, so the result may be empty.
        """
        names = set(names)
        restricted = self._frame[self._frame['chromosome'].isin(names)]
        logger.debug("Restricted signal from %d to %d records", len(self._frame), len(restricted))
        return IntervalSignal(restricted)

    def sorted_by_start(self) -> 'IntervalSignal':
        """Sort by chromosome (natural order) then start; stable for equal starts."""
        frame = self._frame.copy()
        names = sorted(frame['chromosome'].unique(), key=chromosome_sort_key)
        frame['_chromosome_rank'] = frame['chromosome'].map({name: rank for rank, name in enumerate(names)})
        frame = frame.sort_values(by=['_chromosome_rank', 'start'], kind='mergesort')
        return IntervalSignal(frame.drop(columns=['_chromosome_rank']))

    def with_values(self, values: Sequence[float]) -> 'IntervalSignal':
        """Return a signal with the same intervals and new scores."""
        values = np.asarray(values, dtype=float)
        if len(values) != len(self._frame):
            raise InputShapeError(f"Expected {len(self._frame)} values, got {len(values)}")
        frame = self._frame.copy()
        frame['score'] = values
        return IntervalSignal(frame)

    def drop_undefined(self) -> 'IntervalSignal':
        """Drop records whose score is NaN."""
        return IntervalSignal(self._frame[self._frame['score'].notna()])

    def validate(self) -> 'IntervalSignal':
        """
        Check the canonical ordering invariant.

        Within each chromosome, starts must strictly increase and intervals
        must not overlap, and each chromosome must form one contiguous block.

        Returns:
            IntervalSignal: self, for chaining

        Raises:
            InputShapeError: If the invariant does not hold
        """
        chromosome = self._frame['chromosome']
        block_starts = chromosome != chromosome.shift(1)
        if block_starts.sum() != chromosome.nunique():
            raise InputShapeError("Chromosome records are not contiguous")

        same_chromosome = ~block_starts
        previous_start = self._frame['start'].shift(1)
        previous_end = self._frame['end'].shift(1)
        unsorted = same_chromosome & (self._frame['start'] <= previous_start)
        if unsorted.any():
            row = self._frame[unsorted].iloc[0]
            raise InputShapeError(f"Non-monotonic positions at {row['chromosome']}:{row['start']}")
        overlapping = same_chromosome & (self._frame['start'] < previous_end)
        if overlapping.any():
            row = self._frame[overlapping].iloc[0]
            raise InputShapeError(f"Overlapping intervals at {row['chromosome']}:{row['start']}")
        return self

    def coverage_weighted(self) -> Dict[str, CoverageTrack]:
        """
        Per-chromosome weighted coverage, each record adding its score to every base it spans.

        Returns:
            dict: Chromosome name -> CoverageTrack
        """
        coverage = {}
        for chromosome, group in self._frame.groupby('chromosome', sort=False):
            coverage[chromosome] = CoverageTrack.from_intervals(
                chromosome, group['start'].to_numpy(), group['end'].to_numpy(), group['score'].to_numpy()
            )
        return coverage
