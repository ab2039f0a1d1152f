"""
Welch Power Spectral Density

Estimates power per Hz by averaging windowed periodograms of overlapping
segments.

Algorithm:
    1. Split the channel into segments of L samples, hop L - round(overlap L)
    2. Optionally remove each segment's mean (detrend="constant"), multiply
       by the window w
    3. X_k = rfft(segment, nfft)
    4. P(f) = mean_k |X_k(f)|^2 / (fs * sum(w^2)), non-DC / non-Nyquist bins x2

Parseval:
    sum(P) * fs / nfft ~= mean(x^2)  (stationary signal, no detrending; a DC
    offset lands in the lowest bins)

The segmentation (SegmentPlan) and per-segment spectra (segment_spectra)
are public so that coherence and connectivity measures run on exactly the
same validated machinery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Iterable, Sequence

import numpy as np
from scipy import signal

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.constants import DEFAULT_OVERLAP, DEFAULT_SEGMENT_LEN, FREQUENCY_BANDS
from biosig_engine.core.exceptions import InvalidParameterError, SegmentTooLongError
from biosig_engine.core.parallel import CancellationToken, fan_out
from biosig_engine.validation.input_validators import validate_segment_params

logger = logging.getLogger(__name__)


class WindowType(Enum):
    """Segment tapers."""

    HANN = "hann"
    HAMMING = "hamming"
    RECT = "rect"


_SCIPY_WINDOW_NAMES = {
    WindowType.HANN: "hann",
    WindowType.HAMMING: "hamming",
    WindowType.RECT: "boxcar",
}

DETREND_TYPES = (None, "constant")


@lru_cache(maxsize=64)
def get_window(window: WindowType, length: int) -> np.ndarray:
    """
    Periodic window of ``length`` samples, cached and read-only.

    Cached arrays are shared by every worker, so they are never writable.
    """
    w = signal.get_window(_SCIPY_WINDOW_NAMES[WindowType(window)], length, fftbins=True)
    w = np.asarray(w, dtype=np.float64)
    w.setflags(write=False)
    return w


def next_pow2(n: int) -> int:
    """Smallest power of two >= n."""
    return 1 << max(int(n) - 1, 0).bit_length()


def resolve_band(
    band: str | Sequence[float] | None,
) -> tuple[float, float] | None:
    """Turn a band name or (low, high) pair into a validated tuple."""
    if band is None:
        return None
    if isinstance(band, str):
        try:
            return FREQUENCY_BANDS[band.lower()]
        except KeyError:
            raise InvalidParameterError(
                f"Unknown band '{band}'. Available: {sorted(FREQUENCY_BANDS)}"
            ) from None
    low, high = (float(f) for f in band)
    if not 0 <= low < high:
        raise InvalidParameterError(f"band must satisfy 0 <= low < high, got {band}")
    return low, high


# =============================================================================
# Segment machinery
# =============================================================================


@dataclass(frozen=True, eq=False)
class SegmentPlan:
    """
    Validated Welch segmentation for one signal length.

    Attributes
    ----------
    fs : float
        Sampling rate in Hz.
    segment_len : int
        Samples per segment.
    step : int
        Hop between segment starts.
    nfft : int
        FFT length (>= segment_len).
    window_type : WindowType
        Taper applied to each segment.
    window : np.ndarray
        Taper samples, shape (segment_len,), read-only.
    starts : np.ndarray
        Segment start indices.
    freqs : np.ndarray
        One-sided frequency axis, shape (nfft // 2 + 1,).
    scale : float
        Density scaling 1 / (fs * sum(w^2)).
    detrend : str or None
        "constant" removes each segment's mean before windowing; None
        keeps it.
    """

    fs: float
    segment_len: int
    step: int
    nfft: int
    window_type: WindowType
    window: np.ndarray
    starts: np.ndarray
    freqs: np.ndarray
    scale: float
    detrend: str | None = None

    @property
    def n_segments(self) -> int:
        return len(self.starts)

    @property
    def n_freqs(self) -> int:
        return len(self.freqs)

    def band_mask(self, band: tuple[float, float] | None) -> np.ndarray:
        """Boolean mask of bins with low <= f <= high (all bins for None)."""
        if band is None:
            return np.ones(self.n_freqs, dtype=bool)
        low, high = band
        mask = (self.freqs >= low) & (self.freqs <= high)
        if not mask.any():
            raise InvalidParameterError(
                f"band {band} Hz contains no frequency bins "
                f"(resolution {self.fs / self.nfft:.3g} Hz)"
            )
        return mask


def plan_segments(
    n_samples: int,
    fs: float,
    window: WindowType | str = WindowType.HANN,
    segment_len: int = DEFAULT_SEGMENT_LEN,
    overlap: float = DEFAULT_OVERLAP,
    nfft: int | None = None,
    detrend: str | None = None,
) -> SegmentPlan:
    """
    Build a SegmentPlan, validating every parameter first.

    Raises
    ------
    InvalidParameterError
        overlap outside [0, 1), segment_len < 2, nfft < segment_len, or an
        unknown window or detrend mode.
    SegmentTooLongError
        segment_len longer than ``n_samples``.
    """
    try:
        window = WindowType(window)
    except ValueError as e:
        raise InvalidParameterError(str(e)) from None
    if detrend not in DETREND_TYPES:
        raise InvalidParameterError(
            f"detrend must be one of {DETREND_TYPES}, got {detrend!r}"
        )

    check = validate_segment_params(n_samples, segment_len, overlap, nfft)
    if check.segment_too_long:
        raise SegmentTooLongError(" ".join(check.errors))
    if not check.is_valid:
        raise InvalidParameterError(" ".join(check.errors))
    for message in check.warnings:
        logger.debug(message)

    segment_len = int(segment_len)
    step = max(segment_len - int(round(overlap * segment_len)), 1)
    nfft = next_pow2(segment_len) if nfft is None else int(nfft)
    w = get_window(window, segment_len)

    starts = np.arange(0, n_samples - segment_len + 1, step)
    freqs = np.fft.rfftfreq(nfft, d=1.0 / fs)
    starts.setflags(write=False)
    freqs.setflags(write=False)

    return SegmentPlan(
        fs=float(fs),
        segment_len=segment_len,
        step=step,
        nfft=nfft,
        window_type=window,
        window=w,
        starts=starts,
        freqs=freqs,
        scale=1.0 / (fs * float(np.sum(w * w))),
        detrend=detrend,
    )


def segment_spectra(x: np.ndarray, plan: SegmentPlan) -> np.ndarray:
    """
    Complex one-sided spectra of every segment of ``x``.

    Returns
    -------
    np.ndarray
        Shape (n_segments, n_freqs), complex128.
    """
    frames = np.lib.stride_tricks.sliding_window_view(
        np.asarray(x, dtype=np.float64), plan.segment_len
    )[plan.starts]
    if plan.detrend == "constant":
        frames = frames - frames.mean(axis=1, keepdims=True)
    return np.fft.rfft(frames * plan.window, n=plan.nfft, axis=1)


def one_sided_weights(plan: SegmentPlan) -> np.ndarray:
    """Per-bin factor folding negative frequencies into the one-sided estimate."""
    weights = np.full(plan.n_freqs, 2.0)
    weights[0] = 1.0
    if plan.nfft % 2 == 0:
        weights[-1] = 1.0
    return weights


def channel_spectra(
    buffer: SignalBuffer,
    indices: Sequence[int],
    plan: SegmentPlan,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> list[np.ndarray]:
    """Segment spectra for each buffer row in ``indices`` (same order)."""
    return fan_out(
        lambda i: segment_spectra(buffer.data[i], plan),
        indices,
        max_workers=max_workers,
        cancel=cancel,
    )


# =============================================================================
# PSD
# =============================================================================


@dataclass(frozen=True, eq=False)
class SpectralEstimate:
    """
    Power spectral density per channel.

    Attributes
    ----------
    freqs : np.ndarray
        Frequency bins in Hz, ascending, shape (nfft // 2 + 1,).
    power : np.ndarray
        Power per Hz, shape (n_channels, n_freqs).
    channels : tuple[str, ...]
        Channel ids, one per row of ``power``.
    fs : float
        Sampling rate of the analysed buffer.
    nfft : int
        FFT length.
    n_segments : int
        Segments averaged.
    window : WindowType
        Taper used.
    """

    freqs: np.ndarray
    power: np.ndarray
    channels: tuple[str, ...]
    fs: float
    nfft: int
    n_segments: int
    window: WindowType

    def __post_init__(self) -> None:
        for name in ("freqs", "power"):
            value = np.array(getattr(self, name), copy=True)
            value.setflags(write=False)
            object.__setattr__(self, name, value)

    @property
    def resolution_hz(self) -> float:
        return self.fs / self.nfft

    def channel(self, channel: str) -> np.ndarray:
        return self.power[self.channels.index(channel)]

    def total_power(self) -> np.ndarray:
        """Integrated power per channel (approximates the mean square)."""
        return self.power.sum(axis=1) * self.resolution_hz

    def band_power(self, band: str | Sequence[float]) -> np.ndarray:
        """Integrated power per channel over bins inside ``band``."""
        low, high = resolve_band(band)
        mask = (self.freqs >= low) & (self.freqs <= high)
        return self.power[:, mask].sum(axis=1) * self.resolution_hz

    def peak_frequency(self) -> np.ndarray:
        """Frequency of maximum power per channel."""
        return self.freqs[np.argmax(self.power, axis=1)]


def psd(
    buffer: SignalBuffer,
    channel: str | Iterable[str] | None = None,
    window: WindowType | str = WindowType.HANN,
    segment_len: int = DEFAULT_SEGMENT_LEN,
    overlap: float = DEFAULT_OVERLAP,
    nfft: int | None = None,
    detrend: str | None = None,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> SpectralEstimate:
    """
    Welch power spectral density.

    Parameters
    ----------
    buffer : SignalBuffer
        Input (read-only).
    channel : str or iterable of str, optional
        Channel(s) to analyse. Default: all, in buffer order.
    window : WindowType or str
        'hann' (default), 'hamming' or 'rect'.
    segment_len : int
        Samples per segment.
    overlap : float
        Overlap fraction in [0, 1).
    nfft : int, optional
        FFT length. Default: next power of two >= segment_len.
    detrend : {None, "constant"}
        Per-segment mean removal. None (default) keeps DC power, so the
        integrated PSD tracks the mean square of the raw signal.
    cancel : CancellationToken, optional
        Checked between channels.
    max_workers : int, optional
        Thread pool size.

    Returns
    -------
    SpectralEstimate

    Raises
    ------
    InvalidParameterError, SegmentTooLongError, ChannelNotFound, CancelledError

    Examples
    --------
    >>> est = psd(buf, "Cz", segment_len=250)
    >>> est.peak_frequency()
    array([10.])
    """
    indices = buffer.resolve(channel)
    plan = plan_segments(
        buffer.n_samples, buffer.fs, window, segment_len, overlap, nfft, detrend
    )
    logger.debug(
        "PSD: %d channel(s), %d segments of %d (nfft=%d)",
        len(indices), plan.n_segments, plan.segment_len, plan.nfft,
    )

    weights = one_sided_weights(plan)

    def channel_power(i: int) -> np.ndarray:
        spectra = segment_spectra(buffer.data[i], plan)
        return (spectra.real ** 2 + spectra.imag ** 2).mean(axis=0) * plan.scale * weights

    rows = fan_out(channel_power, indices, max_workers=max_workers, cancel=cancel)

    return SpectralEstimate(
        freqs=plan.freqs,
        power=np.vstack(rows),
        channels=tuple(buffer.channels[i] for i in indices),
        fs=buffer.fs,
        nfft=plan.nfft,
        n_segments=plan.n_segments,
        window=plan.window_type,
    )
