"""
DMR detection pipelines.

Two entry points are provided:

- run_replicate_dmr: replicate reference data is available. Smoothed
  reference-vs-reference ("null") comparisons are pooled into an empirical
  null distribution, and every null and test comparison is scored against it.
- run_no_replicate_dmr: no replicate reference data. The null distribution is
  inferred from the test comparison itself with a logit-space mixture model.

Per-chromosome smoothing and thresholding are independent. They are mapped
over the configured chromosomes, optionally in a process pool, and merged back
in chromosome order before anything order-sensitive (null pooling) happens.
"""

import functools
import logging
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Union

import pandas as pd

from infodmr.bedgraph_io import write_bedgraph
from infodmr.config import DMRConfig
from infodmr.exceptions import InputShapeError
from infodmr.morphology import empty_dmr_frame, threshold
from infodmr.null_model import NullModel, from_mixture_fit, from_replicate_pool
from infodmr.scoring import significance_signal
from infodmr.signal import IntervalSignal
from infodmr.smoothing import smooth_chromosome

logger = logging.getLogger(__name__)


def map_chromosomes(func: Callable, signal: IntervalSignal, chromosomes, workers: int = 1, **kwargs) -> List:
    """
    Apply func to each chromosome's sub-signal, returning results in chromosome order.

    Args:
        func: Picklable function taking a single-chromosome IntervalSignal
        signal: Signal to partition
        chromosomes: Partition keys, in result order
        workers: Number of worker processes; 1 runs in the calling process
        **kwargs: Extra keyword arguments passed to func

    Returns:
        list: One result per chromosome present in the signal
    """
    present = set(signal.chromosomes)
    parts = [signal.for_chromosome(chromosome) for chromosome in chromosomes if chromosome in present]
    task = functools.partial(func, **kwargs)

    if workers > 1 and len(parts) > 1:
        logger.debug("Running %s on %d chromosomes with %d workers", func.__name__, len(parts), workers)
        with ProcessPoolExecutor(max_workers=workers) as executor:
            # map preserves submission order
            return list(executor.map(task, parts))
    return [task(part) for part in parts]


def prepare_signal(signal: IntervalSignal, config: DMRConfig, name: str = 'signal') -> IntervalSignal:
    """
    Restrict a raw signal to the configured chromosomes, sort it and check its shape.

    Raises:
        InputShapeError: If nothing remains on the configured chromosomes,
            or positions overlap within a chromosome
    """
    restricted = signal.restrict_to_chromosomes(config.chromosomes).sorted_by_start().validate()
    if len(restricted) == 0:
        raise InputShapeError(f"No records of {name} on the configured chromosomes")
    return restricted


def smooth_signal(signal: IntervalSignal, config: DMRConfig, name: str = 'signal') -> IntervalSignal:
    """Smooth each configured chromosome of a raw signal."""
    prepared = prepare_signal(signal, config, name)
    parts = map_chromosomes(smooth_chromosome, prepared, config.chromosomes, config.workers,
                            bandwidth=config.bandwidth)
    smoothed = IntervalSignal.concat(parts)
    logger.info("Smoothed %s: %d of %d records defined", name, len(smoothed), len(prepared))
    return smoothed


def call_dmrs(sqs: IntervalSignal, config: DMRConfig, name: str = 'signal') -> pd.DataFrame:
    """Threshold, close and aggregate an SQS signal chromosome by chromosome."""
    frames = map_chromosomes(
        threshold, sqs, config.chromosomes, config.workers,
        threshold_value=config.threshold,
        closing_length=config.effective_closing_length,
        unit_size=config.unit_size,
        chrom_sizes=config.chrom_sizes,
    )
    frames = [frame for frame in frames if not frame.empty]
    if not frames:
        logger.info("No DMRs found for %s", name)
        return empty_dmr_frame()
    dmr_df = pd.concat(frames, ignore_index=True)
    logger.info("Found %d DMRs for %s", len(dmr_df), name)
    return dmr_df


def _score_and_call(name: str, smoothed: IntervalSignal, null_model: NullModel, config: DMRConfig,
                    out_folder: Optional[Path]) -> pd.DataFrame:
    sqs = significance_signal(smoothed, null_model, config.max_sqs)
    if out_folder is not None and config.outflag:
        write_bedgraph(sqs.drop_undefined(), out_folder / f"SQS-s{name}", track_name=f"SQS-s{name}",
                       visibility='full', autoScale='on')

    dmr_df = call_dmrs(sqs, config, name)
    if out_folder is not None:
        dmr_file = out_folder / f"DMR-{name}"
        if dmr_df.empty:
            logger.info("No DMRs - no output file is generated for: %s", dmr_file)
        else:
            write_bedgraph(dmr_df, dmr_file, track_name=f"DMR-{name}", visibility='full', autoScale='on')
    return dmr_df


def _smooth_and_save(name: str, signal: IntervalSignal, config: DMRConfig,
                     out_folder: Optional[Path]) -> IntervalSignal:
    smoothed = smooth_signal(signal, config, name)
    if out_folder is not None and config.outflag and len(smoothed) > 0:
        write_bedgraph(smoothed, out_folder / f"s{name}", track_name=f"s{name}",
                       visibility='full', autoScale='off', viewLimits='0.0:1.0')
    return smoothed


def run_replicate_dmr(null_signals: Mapping[str, IntervalSignal], test_signals: Mapping[str, IntervalSignal],
                      config: Optional[DMRConfig] = None,
                      out_folder: Optional[Union[str, Path]] = None) -> Dict[str, pd.DataFrame]:
    """
    Detect DMRs when replicate reference data is available.

    Args:
        null_signals: Reference-vs-reference comparisons by name
        test_signals: Test-vs-reference comparisons by name
        config: Run configuration
        out_folder: Where to write DMR (and, with outflag, smoothed and SQS) tracks; nothing is written when None

    Returns:
        dict: Test comparison name -> DMR DataFrame

    Raises:
        InputShapeError: If no null comparisons are given or a signal is malformed
    """
    config = config or DMRConfig()
    out_folder = Path(out_folder) if out_folder is not None else None
    logger.info("Running replicate DMR detection: %d null and %d test comparisons",
                len(null_signals), len(test_signals))
    if not null_signals:
        raise InputShapeError("Replicate DMR detection needs at least one reference-vs-reference comparison")

    smoothed_nulls = {name: _smooth_and_save(name, signal, config, out_folder)
                      for name, signal in null_signals.items()}
    smoothed_tests = {name: _smooth_and_save(name, signal, config, out_folder)
                      for name, signal in test_signals.items()}

    null_model = from_replicate_pool(smoothed_nulls.values())

    for name, smoothed in smoothed_nulls.items():
        _score_and_call(name, smoothed, null_model, config, out_folder)
    return {name: _score_and_call(name, smoothed, null_model, config, out_folder)
            for name, smoothed in smoothed_tests.items()}


def run_no_replicate_dmr(signal: IntervalSignal, name: str = 'signal', config: Optional[DMRConfig] = None,
                         out_folder: Optional[Union[str, Path]] = None) -> pd.DataFrame:
    """
    Detect DMRs in a single test-vs-reference comparison without replicate reference data.

    Args:
        signal: Test-vs-reference comparison
        name: Name used in logs and output file names
        config: Run configuration
        out_folder: Where to write output tracks; nothing is written when None

    Returns:
        pandas.DataFrame: DMRs

    Raises:
        InputShapeError: If the signal is malformed or empty on the configured chromosomes
        FitFailure: If the mixture null model cannot be estimated
    """
    config = config or DMRConfig()
    out_folder = Path(out_folder) if out_folder is not None else None
    logger.info("Running no-replicate DMR detection for %s", name)

    smoothed = _smooth_and_save(name, signal, config, out_folder)
    null_model = from_mixture_fit(smoothed, max_iter=config.max_iter)
    return _score_and_call(name, smoothed, null_model, config, out_folder)
