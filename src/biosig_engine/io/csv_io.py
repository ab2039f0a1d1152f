"""
CSV Boundary Adapter

Reads and writes SignalBuffers as comma-separated text.

Layout:
    header row      channel ids (optionally preceded by a time column)
    data rows       one row per sample, one column per channel

    time,Fz,Cz
    0.000,1.25,-0.40
    0.004,1.31,-0.38

When a time column is present the sampling rate can be inferred from the
median spacing of the time stamps.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path

import numpy as np

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.exceptions import InvalidBufferError

logger = logging.getLogger(__name__)

TIME_COLUMN: str = "time"


def _infer_fs(times: np.ndarray) -> float:
    if times.shape[0] < 2:
        raise InvalidBufferError("at least 2 samples are needed to infer fs from time stamps")
    step = float(np.median(np.diff(times)))
    if not step > 0:
        raise InvalidBufferError("time column must be strictly increasing")
    return 1.0 / step


def read_csv(
    path: Path | str,
    fs: float | None = None,
    time_column: str | None = None,
) -> SignalBuffer:
    """
    Load a SignalBuffer from a CSV file.

    Parameters
    ----------
    path : Path or str
        CSV file with a header row of channel ids.
    fs : float, optional
        Sampling rate in Hz. Required unless ``time_column`` is given.
    time_column : str, optional
        Header of a column holding sample times in seconds. It is removed
        from the channels and used to infer ``fs`` when ``fs`` is None.

    Returns
    -------
    SignalBuffer
        Metadata records ``source_file``.

    Raises
    ------
    InvalidBufferError
        Missing header, ragged or non-numeric rows, missing time column,
        or no way to determine ``fs``.
    """
    path = Path(path)
    with open(path, newline="") as f:
        reader = csv.reader(f)
        try:
            header = [h.strip() for h in next(reader)]
        except StopIteration:
            raise InvalidBufferError(f"{path.name}: empty file, expected a header row") from None

        rows = []
        for line_no, record in enumerate(reader, start=2):
            if not record or all(not cell.strip() for cell in record):
                continue
            if len(record) != len(header):
                raise InvalidBufferError(
                    f"{path.name}:{line_no}: expected {len(header)} fields, got {len(record)}"
                )
            try:
                rows.append([float(cell) for cell in record])
            except ValueError as e:
                raise InvalidBufferError(f"{path.name}:{line_no}: {e}") from None

    if not rows:
        raise InvalidBufferError(f"{path.name}: no data rows")
    table = np.asarray(rows, dtype=np.float64).T

    if time_column is not None:
        if time_column not in header:
            raise InvalidBufferError(f"{path.name}: time column '{time_column}' not found")
        t_idx = header.index(time_column)
        times = table[t_idx]
        keep = [i for i in range(len(header)) if i != t_idx]
        table = table[keep]
        header = [header[i] for i in keep]
        if fs is None:
            fs = _infer_fs(times)
    if fs is None:
        raise InvalidBufferError(f"{path.name}: fs must be given when there is no time column")

    logger.debug("Read %d channel(s) x %d sample(s) from %s", len(header), table.shape[1], path)
    return SignalBuffer(table, fs, tuple(header), {"source_file": str(path)})


def write_csv(
    buffer: SignalBuffer,
    path: Path | str,
    include_time: bool = False,
) -> Path:
    """
    Write a SignalBuffer as CSV.

    Parameters
    ----------
    buffer : SignalBuffer
        Buffer to write.
    path : Path or str
        Output file. Parent directories are created.
    include_time : bool
        Prepend a ``time`` column (seconds from the first sample).

    Returns
    -------
    Path
        The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    header = list(buffer.channels)
    columns = buffer.data
    if include_time:
        header.insert(0, TIME_COLUMN)
        columns = np.vstack([buffer.times(), columns])

    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(columns.T.tolist())

    logger.debug("Wrote %d sample(s) to %s", buffer.n_samples, path)
    return path
