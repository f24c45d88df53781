#!/usr/bin/env python
"""
Command-line interface for information-content DMR detection.

This module handles argument parsing, logging configuration and file
loading, and hands the loaded tracks to the pipelines in infodmr.pipeline.

Usage:
    infodmr replicate --in-folder ./jsd --out-folder ./dmrs \
        --ref-v-ref ref1-ref2.bedGraph --test-v-ref test1-ref1.bedGraph
    infodmr no-replicate --in-folder ./jsd --out-folder ./dmrs test1-ref1.bedGraph --verbose
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from infodmr.bedgraph_io import read_bedgraph
from infodmr.config import DEFAULT_CHROMOSOMES, DMRConfig
from infodmr.morphology import DEFAULT_THRESHOLD, DEFAULT_UNIT_SIZE
from infodmr.null_model import MIXTURE_MAX_ITER
from infodmr.pipeline import run_no_replicate_dmr, run_replicate_dmr
from infodmr.scoring import DEFAULT_MAX_SQS
from infodmr.smoothing import DEFAULT_BANDWIDTH

# Configure root logger
logger = logging.getLogger()


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity level."""
    # Clear any existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)


def _build_config(chromosomes: Optional[str], bandwidth: int, closing_length: Optional[int], threshold: float,
                  max_sqs: float, unit_size: float, max_iter: int, outflag: bool, workers: int) -> DMRConfig:
    return DMRConfig(
        chromosomes=tuple(chromosomes.split(',')) if chromosomes else DEFAULT_CHROMOSOMES,
        bandwidth=bandwidth,
        closing_length=closing_length,
        threshold=threshold,
        max_sqs=max_sqs,
        unit_size=unit_size,
        max_iter=max_iter,
        outflag=outflag,
        workers=workers,
    )


def common_options(func):
    """Options shared by both DMR detection commands."""
    options = [
        click.option('--in-folder', type=click.Path(exists=True, file_okay=False), required=True,
                     help="Folder containing the input bedGraph files."),
        click.option('--out-folder', type=click.Path(file_okay=False), required=True,
                     help="Folder to write DMR and optional intermediate tracks to."),
        click.option('--chromosomes', default=None,
                     help="Comma-separated chromosomes to process. Default is chr1 to chr22."),
        click.option('--bandwidth', default=DEFAULT_BANDWIDTH, type=int, show_default=True,
                     help="Smoothing kernel bandwidth."),
        click.option('--closing-length', default=None, type=int,
                     help="Morphological closing length. Defaults to the bandwidth."),
        click.option('--threshold', default=DEFAULT_THRESHOLD, type=float, show_default=True,
                     help="SQS threshold seeding DMRs."),
        click.option('--max-sqs', default=DEFAULT_MAX_SQS, type=float, show_default=True,
                     help="Ceiling of the SQS score."),
        click.option('--unit-size', default=DEFAULT_UNIT_SIZE, type=float, show_default=True,
                     help="Normaliser of the aggregated DMR score."),
        click.option('--max-iter', default=MIXTURE_MAX_ITER, type=int, show_default=True,
                     help="Iteration cap of the mixture fit (no-replicate mode)."),
        click.option('--outflag/--no-outflag', default=False,
                     help="Also write smoothed and SQS tracks."),
        click.option('--workers', default=1, type=int, show_default=True,
                     help="Processes used for per-chromosome smoothing and thresholding."),
        click.option('--verbose', is_flag=True, default=False,
                     help="Enable verbose (debug) logging."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def cli():
    """Detect differentially methylated regions from information-content tracks."""


@cli.command('replicate')
@click.option('--ref-v-ref', 'ref_v_ref_files', multiple=True, required=True,
              help="Reference-vs-reference bedGraph file name (repeatable).")
@click.option('--test-v-ref', 'test_v_ref_files', multiple=True, required=True,
              help="Test-vs-reference bedGraph file name (repeatable).")
@common_options
def replicate(ref_v_ref_files: Tuple[str, ...], test_v_ref_files: Tuple[str, ...], in_folder: str,
              out_folder: str, chromosomes: Optional[str], bandwidth: int, closing_length: Optional[int],
              threshold: float, max_sqs: float, unit_size: float, max_iter: int, outflag: bool,
              workers: int, verbose: bool) -> None:
    """
    Detect DMRs using an empirical null from replicate reference comparisons.

    Examples:
        infodmr replicate --in-folder ./jsd --out-folder ./dmrs --ref-v-ref r1-r2.bedGraph --test-v-ref t1-r1.bedGraph
    """
    setup_logging(verbose)
    config = _build_config(chromosomes, bandwidth, closing_length, threshold, max_sqs, unit_size,
                           max_iter, outflag, workers)
    logger.debug("Configuration: %s", config)

    try:
        null_signals = {name: read_bedgraph(Path(in_folder) / name) for name in ref_v_ref_files}
        test_signals = {name: read_bedgraph(Path(in_folder) / name) for name in test_v_ref_files}
        results = run_replicate_dmr(null_signals, test_signals, config, out_folder)
    except Exception as e:
        logger.exception("Error during replicate DMR detection: %s", str(e))
        raise

    for name, dmr_df in results.items():
        logger.info("%s: %d DMRs", name, len(dmr_df))


@cli.command('no-replicate')
@click.argument('test_v_ref_file')
@common_options
def no_replicate(test_v_ref_file: str, in_folder: str, out_folder: str, chromosomes: Optional[str],
                 bandwidth: int, closing_length: Optional[int], threshold: float, max_sqs: float,
                 unit_size: float, max_iter: int, outflag: bool, workers: int, verbose: bool) -> None:
    """
    Detect DMRs using a logit-space mixture null fit on the test comparison itself.

    Examples:
        infodmr no-replicate --in-folder ./jsd --out-folder ./dmrs t1-r1.bedGraph
    """
    setup_logging(verbose)
    config = _build_config(chromosomes, bandwidth, closing_length, threshold, max_sqs, unit_size,
                           max_iter, outflag, workers)
    logger.debug("Configuration: %s", config)

    try:
        signal = read_bedgraph(Path(in_folder) / test_v_ref_file)
        dmr_df = run_no_replicate_dmr(signal, test_v_ref_file, config, out_folder)
    except Exception as e:
        logger.exception("Error during no-replicate DMR detection: %s", str(e))
        raise

    logger.info("%s: %d DMRs", test_v_ref_file, len(dmr_df))


if __name__ == "__main__":
    cli()
