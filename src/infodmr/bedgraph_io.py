"""
Reading and writing bedGraph tracks.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from infodmr.exceptions import InputShapeError
from infodmr.signal import SIGNAL_COLUMNS, IntervalSignal

logger = logging.getLogger(__name__)

HEADER_PREFIXES = ('track', 'browser', '#')


def _count_header_lines(path: Path) -> int:
    count = 0
    with open(path, 'r') as fh:
        for line in fh:
            if line.startswith(HEADER_PREFIXES) or not line.strip():
                count += 1
            else:
                break
    return count


def read_bedgraph(path: Union[str, Path]) -> IntervalSignal:
    """
    Load a bedGraph file into an IntervalSignal.

    Leading track, browser and comment lines are skipped.

    Args:
        path: Path to the bedGraph file

    Returns:
        IntervalSignal: Records in file order

    Raises:
        InputShapeError: If the file has fewer than four columns or bad coordinates
    """
    path = Path(path)
    logger.info("Loading bedGraph track from: %s", path)
    try:
        df = pd.read_csv(
            path,
            sep=r'\s+',
            header=None,
            skiprows=_count_header_lines(path),
            comment='#',
            usecols=[0, 1, 2, 3],
            names=SIGNAL_COLUMNS,
            dtype={'chromosome': str},
        )
    except pd.errors.EmptyDataError:
        logger.warning("No records in %s", path)
        return IntervalSignal.empty()
    except ValueError as e:
        raise InputShapeError(f"Cannot parse bedGraph {path}: {e}") from e

    signal = IntervalSignal(df)
    logger.debug("Loaded %d records on %d chromosomes from %s", len(signal), len(signal.chromosomes), path)
    return signal


def write_bedgraph(track: Union[IntervalSignal, pd.DataFrame], path: Union[str, Path],
                   track_name: Optional[str] = None, **track_attributes) -> Path:
    """
    Write a signal or DMR table as a bedGraph file with an optional track line.

    Args:
        track: IntervalSignal or DataFrame with chromosome, start, end, score columns
        path: Output file path
        track_name: Name written in the track line; no track line when None
        **track_attributes: Extra track line attributes, e.g. visibility='full'

    Returns:
        pathlib.Path: The written path
    """
    path = Path(path)
    path.parent.mkdir(exist_ok=True, parents=True)
    frame = track.frame if isinstance(track, IntervalSignal) else track.loc[:, SIGNAL_COLUMNS]

    with open(path, 'w') as fh:
        if track_name is not None:
            attributes = ' '.join(f'{key}={value}' for key, value in track_attributes.items())
            fh.write(f'track type=bedGraph name="{track_name}" {attributes}'.rstrip() + '\n')
        frame.to_csv(fh, sep='\t', header=False, index=False)
    logger.info("Track with %d records saved to %s", len(frame), path)
    return path
