"""
Magnitude-Squared Coherence

    C_ab(f) = |<S_ab(f)>|^2 / (<S_aa(f)> <S_bb(f)>)

where <.> averages over Welch segments and S_ab = X_a conj(X_b). Values are
clipped to [0, 1] to absorb floating-point overshoot; bins where either
auto-spectrum is zero report 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.constants import DEFAULT_OVERLAP, DEFAULT_SEGMENT_LEN
from biosig_engine.core.parallel import CancellationToken, fan_out
from biosig_engine.spectral.welch import (
    WindowType,
    channel_spectra,
    plan_segments,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CoherenceEstimate:
    """
    Coherence per channel pair and frequency bin.

    Attributes
    ----------
    freqs : np.ndarray
        Frequency bins in Hz (same axis as SpectralEstimate).
    coherence : np.ndarray
        Values in [0, 1], shape (n_pairs, n_freqs).
    pairs : tuple[tuple[str, str], ...]
        Channel pair for each row.
    n_segments : int
        Segments averaged.
    """

    freqs: np.ndarray
    coherence: np.ndarray
    pairs: tuple[tuple[str, str], ...]
    n_segments: int

    def __post_init__(self) -> None:
        for name in ("freqs", "coherence"):
            value = np.array(getattr(self, name), copy=True)
            value.setflags(write=False)
            object.__setattr__(self, name, value)

    def pair(self, channel_a: str, channel_b: str) -> np.ndarray:
        """Coherence row for a pair (order-insensitive)."""
        for i, (a, b) in enumerate(self.pairs):
            if (a, b) == (channel_a, channel_b) or (b, a) == (channel_a, channel_b):
                return self.coherence[i]
        raise KeyError((channel_a, channel_b))

    def band_mean(self, band: tuple[float, float]) -> np.ndarray:
        """Mean coherence over bins in ``band`` for every pair."""
        low, high = band
        mask = (self.freqs >= low) & (self.freqs <= high)
        return self.coherence[:, mask].mean(axis=1)


def cross_spectral_means(
    spectra_a: np.ndarray,
    spectra_b: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Segment-averaged auto- and cross-spectra.

    Returns
    -------
    s_aa, s_bb : np.ndarray
        Real auto-spectra, shape (n_freqs,).
    s_ab : np.ndarray
        Complex cross-spectrum, shape (n_freqs,).
    """
    s_ab = (spectra_a * np.conj(spectra_b)).mean(axis=0)
    s_aa = (spectra_a * np.conj(spectra_a)).real.mean(axis=0)
    s_bb = (spectra_b * np.conj(spectra_b)).real.mean(axis=0)
    return s_aa, s_bb, s_ab


def coherence_from_spectra(spectra_a: np.ndarray, spectra_b: np.ndarray) -> np.ndarray:
    """Magnitude-squared coherence per bin from two sets of segment spectra."""
    s_aa, s_bb, s_ab = cross_spectral_means(spectra_a, spectra_b)
    denom = s_aa * s_bb
    coh = np.zeros_like(denom)
    np.divide(s_ab.real ** 2 + s_ab.imag ** 2, denom, out=coh, where=denom > 0)
    return np.clip(coh, 0.0, 1.0)


def coherence_pairs(
    buffer: SignalBuffer,
    pairs: Iterable[tuple[str, str]],
    window: WindowType | str = WindowType.HANN,
    segment_len: int = DEFAULT_SEGMENT_LEN,
    overlap: float = DEFAULT_OVERLAP,
    nfft: int | None = None,
    detrend: str | None = None,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> CoherenceEstimate:
    """
    Coherence for several channel pairs, sharing per-channel spectra.

    Parameters
    ----------
    buffer : SignalBuffer
        Input (read-only).
    pairs : iterable of (str, str)
        Channel pairs. A channel paired with itself yields 1.0 everywhere.
    window, segment_len, overlap, nfft, detrend
        Welch parameters, as for ``psd``.
    cancel : CancellationToken, optional
        Checked between channels and between pairs.
    max_workers : int, optional
        Thread pool size.

    Returns
    -------
    CoherenceEstimate
    """
    pairs = tuple((str(a), str(b)) for a, b in pairs)
    plan = plan_segments(
        buffer.n_samples, buffer.fs, window, segment_len, overlap, nfft, detrend
    )

    needed = sorted({buffer.index_of(ch) for pair in pairs for ch in pair})
    spectra = dict(zip(needed, channel_spectra(buffer, needed, plan, cancel, max_workers)))

    def pair_coherence(pair: tuple[str, str]) -> np.ndarray:
        a, b = pair
        if a == b:
            # Self-coherence is identically 1
            return np.ones(plan.n_freqs)
        return coherence_from_spectra(
            spectra[buffer.index_of(a)], spectra[buffer.index_of(b)]
        )

    rows = fan_out(pair_coherence, pairs, max_workers=max_workers, cancel=cancel)
    logger.debug("Coherence: %d pair(s), %d segments", len(pairs), plan.n_segments)

    return CoherenceEstimate(
        freqs=plan.freqs,
        coherence=np.vstack(rows) if rows else np.empty((0, plan.n_freqs)),
        pairs=pairs,
        n_segments=plan.n_segments,
    )


def coherence(
    buffer: SignalBuffer,
    channel_a: str,
    channel_b: str,
    window: WindowType | str = WindowType.HANN,
    segment_len: int = DEFAULT_SEGMENT_LEN,
    overlap: float = DEFAULT_OVERLAP,
    nfft: int | None = None,
    detrend: str | None = None,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> CoherenceEstimate:
    """
    Coherence between two channels.

    The two channels' segment spectra are computed in parallel; ``cancel``
    is checked before and after each.

    Raises
    ------
    InvalidParameterError, SegmentTooLongError, ChannelNotFound, CancelledError

    Examples
    --------
    >>> est = coherence(buf, "C3", "C4", segment_len=128)
    >>> est.coherence.shape
    (1, 65)
    """
    return coherence_pairs(
        buffer,
        [(channel_a, channel_b)],
        window=window,
        segment_len=segment_len,
        overlap=overlap,
        nfft=nfft,
        detrend=detrend,
        cancel=cancel,
        max_workers=max_workers,
    )
