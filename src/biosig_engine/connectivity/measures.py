"""
Connectivity Measures - Channel x Channel Coupling

Computes undirected coupling between every pair of channels:

    COHERENCE    |<S_ab>|^2 / (<S_aa><S_bb>), averaged over bins in band
    PLV          |<S_ab / |S_ab|>| (phase-locking value across segments),
                 averaged over bins in band
    CORRELATION  Pearson r over the analysis window, optionally after a
                 zero-phase Butterworth band-pass (low-pass when the band
                 starts at 0 Hz, high-pass when it reaches Nyquist)

Frequency-domain measures run on the Welch segment machinery from
``biosig_engine.spectral.welch``; each channel's segment spectra are
computed once and shared by all pairs that use it.

Complexity is O(C^2) pairs. Each unordered pair is computed once (fanned
out to the worker pool) and mirrored, so the matrix is exactly symmetric.
The diagonal holds each measure's self-value, 1.0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import Sequence

import numpy as np

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.constants import DEFAULT_OVERLAP, DEFAULT_SEGMENT_LEN
from biosig_engine.core.exceptions import InsufficientSamplesError, InvalidParameterError
from biosig_engine.core.parallel import CancellationToken, check_cancelled, fan_out
from biosig_engine.filtering.apply import apply
from biosig_engine.filtering.design import FilterSpec, design
from biosig_engine.spectral.coherence import coherence_from_spectra
from biosig_engine.spectral.welch import (
    WindowType,
    channel_spectra,
    plan_segments,
    resolve_band,
)

logger = logging.getLogger(__name__)

CORRELATION_FILTER_ORDER: int = 4


class Measure(Enum):
    """Undirected connectivity measures."""

    COHERENCE = "coherence"
    PLV = "plv"
    CORRELATION = "correlation"

    @property
    def is_spectral(self) -> bool:
        return self is not Measure.CORRELATION


@dataclass(frozen=True, eq=False)
class ConnectivityMatrix:
    """
    Channel x channel coupling values.

    Attributes
    ----------
    values : np.ndarray
        Shape (n_channels, n_channels), read-only. Symmetric; diagonal 1.0.
    channels : tuple[str, ...]
        Row/column channel ids.
    measure : Measure
        Measure computed.
    band : tuple[float, float] or None
        Frequency band in Hz (None: full spectrum / broadband).
    directed : bool
        False for every measure here.
    """

    values: np.ndarray
    channels: tuple[str, ...]
    measure: Measure
    band: tuple[float, float] | None
    directed: bool = False

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=np.float64, copy=True)
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def n_channels(self) -> int:
        return len(self.channels)

    def value(self, channel_a: str, channel_b: str) -> float:
        return float(
            self.values[self.channels.index(channel_a), self.channels.index(channel_b)]
        )

    def upper_triangle(self) -> np.ndarray:
        """Off-diagonal values in row-major pair order (a compact feature vector)."""
        return self.values[np.triu_indices(self.n_channels, k=1)]


def _phase_locking(spectra_a: np.ndarray, spectra_b: np.ndarray) -> np.ndarray:
    """PLV per bin across segments."""
    cross = spectra_a * np.conj(spectra_b)
    magnitude = np.abs(cross)
    phasors = np.zeros_like(cross)
    np.divide(cross, magnitude, out=phasors, where=magnitude > 0)
    return np.clip(np.abs(phasors.mean(axis=0)), 0.0, 1.0)


def _pearson(a: np.ndarray, b: np.ndarray) -> float:
    a = a - a.mean()
    b = b - b.mean()
    denom = np.sqrt(np.dot(a, a) * np.dot(b, b))
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))


def _band_limited(
    buffer: SignalBuffer,
    band: tuple[float, float],
    cancel: CancellationToken | None,
    max_workers: int | None,
) -> SignalBuffer:
    low, high = band
    nyquist = buffer.fs / 2.0
    if low <= 0 and high >= nyquist:
        return buffer
    if low <= 0:
        spec = FilterSpec("butterworth", CORRELATION_FILTER_ORDER, "lowpass", high, buffer.fs)
    elif high >= nyquist:
        spec = FilterSpec("butterworth", CORRELATION_FILTER_ORDER, "highpass", low, buffer.fs)
    else:
        spec = FilterSpec("butterworth", CORRELATION_FILTER_ORDER, "bandpass", band, buffer.fs)
    return apply(design(spec), buffer, mode="zero_phase", cancel=cancel, max_workers=max_workers)


def connectivity(
    buffer: SignalBuffer,
    measure: Measure | str = Measure.COHERENCE,
    band: str | Sequence[float] | None = None,
    window: WindowType | str = WindowType.HANN,
    segment_len: int = DEFAULT_SEGMENT_LEN,
    overlap: float = DEFAULT_OVERLAP,
    nfft: int | None = None,
    detrend: str | None = None,
    analysis_window: tuple[int, int] | None = None,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> ConnectivityMatrix:
    """
    All-pairs connectivity matrix.

    Parameters
    ----------
    buffer : SignalBuffer
        Input (read-only).
    measure : Measure or str
        'coherence' (default), 'plv' or 'correlation'.
    band : str or (float, float), optional
        Band name from FREQUENCY_BANDS or (low, high) Hz. None = full
        spectrum (spectral measures) or broadband (correlation).
    window, segment_len, overlap, nfft, detrend
        Welch parameters for spectral measures.
    analysis_window : (int, int), optional
        Sample range ``[start, end)`` to analyse. Default: whole buffer.
    cancel : CancellationToken, optional
        Checked between channels and between pairs.
    max_workers : int, optional
        Thread pool size.

    Returns
    -------
    ConnectivityMatrix

    Raises
    ------
    InvalidParameterError
        Unknown measure/band, empty band, bad analysis window.
    InsufficientSamplesError
        Analysis window shorter than one segment (spectral measures) or
        than 2 samples (correlation).
    CancelledError
        Cancellation observed; no partial matrix is returned.
    """
    try:
        measure = Measure(measure)
    except ValueError as e:
        raise InvalidParameterError(str(e)) from None
    band = resolve_band(band)

    if analysis_window is not None:
        start, end = analysis_window
        buffer = buffer.epoch(start, end, label="analysis_window").as_buffer()

    n_samples = buffer.n_samples
    if measure.is_spectral and n_samples < segment_len:
        raise InsufficientSamplesError(
            f"{measure.value} needs at least one {segment_len}-sample segment; "
            f"analysis window has {n_samples} samples"
        )
    if not measure.is_spectral and n_samples < 2:
        raise InsufficientSamplesError(
            f"correlation needs at least 2 samples; analysis window has {n_samples}"
        )

    n_channels = buffer.n_channels
    pairs = list(combinations(range(n_channels), 2))
    logger.debug("Connectivity %s over %d pair(s), band=%s", measure.value, len(pairs), band)

    if measure.is_spectral:
        plan = plan_segments(
            n_samples, buffer.fs, window, segment_len, overlap, nfft, detrend
        )
        mask = plan.band_mask(band)
        spectra = channel_spectra(
            buffer, range(n_channels), plan, cancel=cancel, max_workers=max_workers
        )
        per_bin = coherence_from_spectra if measure is Measure.COHERENCE else _phase_locking

        def pair_value(pair: tuple[int, int]) -> float:
            i, j = pair
            return float(per_bin(spectra[i], spectra[j])[mask].mean())

    else:
        data = buffer if band is None else _band_limited(buffer, band, cancel, max_workers)

        def pair_value(pair: tuple[int, int]) -> float:
            i, j = pair
            return _pearson(data.data[i], data.data[j])

    results = fan_out(pair_value, pairs, max_workers=max_workers, cancel=cancel)
    check_cancelled(cancel)

    values = np.eye(n_channels)
    for (i, j), v in zip(pairs, results):
        values[i, j] = values[j, i] = v

    return ConnectivityMatrix(
        values=values,
        channels=buffer.channels,
        measure=measure,
        band=band,
    )
