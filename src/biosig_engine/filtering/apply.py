"""
Filter Application - Causal and Zero-Phase

Runs designed FilterCoefficients over the channels of a SignalBuffer.

Modes:
    CAUSAL      y = H x                 (one pass, introduces group delay)
    ZERO_PHASE  y = R H R H x           (forward then backward, |H|^2 gain,
                                         zero net phase)

Edge handling:
    Both edges are padded before filtering and the padding is cut away
    afterwards. REFLECT mirrors the signal about its end samples; ZERO pads
    with zeros; NONE filters the raw samples. The default pad length is
    3x the realised filter order. The region of the output that is free of
    start-up transients is recorded in ``metadata["valid_region"]``.

The input buffer is never modified; a new SignalBuffer is returned.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

import numpy as np
from scipy import signal

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.exceptions import InvalidParameterError
from biosig_engine.core.parallel import CancellationToken, fan_out
from biosig_engine.filtering.design import FilterCoefficients

logger = logging.getLogger(__name__)


class FilterMode(Enum):
    """How the filter is run over the data."""

    CAUSAL = "causal"
    ZERO_PHASE = "zero_phase"


class PaddingMode(Enum):
    """Edge extension applied before filtering."""

    REFLECT = "reflect"
    ZERO = "zero"
    NONE = "none"


def _pad(x: np.ndarray, padding: PaddingMode, pad_len: int) -> np.ndarray:
    if padding is PaddingMode.NONE or pad_len == 0:
        return x
    if padding is PaddingMode.REFLECT:
        return np.pad(x, pad_len, mode="reflect")
    return np.pad(x, pad_len, mode="constant")


def _run_once(coeffs: FilterCoefficients, x: np.ndarray) -> np.ndarray:
    # Initial state scaled to the first sample removes the step transient
    if coeffs.is_fir:
        zi = signal.lfilter_zi(coeffs.b, coeffs.a) * x[0]
        y, _ = signal.lfilter(coeffs.b, coeffs.a, x, zi=zi)
    else:
        # sosfilt needs a writable section array; coeffs.sos is frozen
        sos = np.array(coeffs.sos)
        zi = signal.sosfilt_zi(sos) * x[0]
        y, _ = signal.sosfilt(sos, x, zi=zi)
    return y


def resolve_pad_len(
    coeffs: FilterCoefficients,
    n_samples: int,
    padding: PaddingMode,
    pad_len: int | None,
) -> int:
    """Effective pad length: default 3x order, clipped to n_samples - 1."""
    if padding is PaddingMode.NONE:
        return 0
    if pad_len is None:
        pad_len = coeffs.transient_len
    if pad_len < 0:
        raise InvalidParameterError(f"pad_len must be >= 0, got {pad_len}")
    limit = max(n_samples - 1, 0)
    if pad_len > limit:
        logger.warning(
            "pad_len %d clipped to %d for a %d-sample signal", pad_len, limit, n_samples
        )
        pad_len = limit
    return int(pad_len)


def valid_region(
    coeffs: FilterCoefficients,
    n_samples: int,
    mode: FilterMode | str,
    pad_len: int,
) -> tuple[int, int]:
    """
    Sample range ``[start, end)`` not affected by edge transients.

    Padding absorbs up to ``pad_len`` samples of the transient; whatever is
    left leaks into the output at the start (causal) or at both ends
    (zero-phase).
    """
    mode = FilterMode(mode)
    residual = min(max(coeffs.transient_len - pad_len, 0), n_samples)
    if mode is FilterMode.CAUSAL:
        return residual, n_samples
    end = max(n_samples - residual, residual)
    return residual, end


def filter_signal(
    coeffs: FilterCoefficients,
    x: np.ndarray,
    mode: FilterMode = FilterMode.ZERO_PHASE,
    padding: PaddingMode = PaddingMode.REFLECT,
    pad_len: int | None = None,
) -> np.ndarray:
    """
    Filter a single 1-D signal.

    Parameters
    ----------
    coeffs : FilterCoefficients
        Designed filter.
    x : np.ndarray
        Signal, shape (n_samples,).
    mode : FilterMode
        Causal (single pass) or zero-phase (forward-backward).
    padding : PaddingMode
        Edge extension.
    pad_len : int, optional
        Samples of padding per edge. Defaults to 3x filter order.

    Returns
    -------
    np.ndarray
        Filtered signal, same length as ``x``.
    """
    mode = FilterMode(mode)
    padding = PaddingMode(padding)
    x = np.asarray(x, dtype=np.float64)
    n = x.shape[0]
    if n == 0:
        return x.copy()
    pad = resolve_pad_len(coeffs, n, padding, pad_len)

    xp = _pad(x, padding, pad)
    y = _run_once(coeffs, xp)
    if mode is FilterMode.ZERO_PHASE:
        y = _run_once(coeffs, y[::-1])[::-1]

    if padding is not PaddingMode.NONE and pad:
        y = y[pad:pad + n]
    return np.ascontiguousarray(y)


def apply(
    coeffs: FilterCoefficients,
    buffer: SignalBuffer,
    channels: Iterable[str] | None = None,
    mode: FilterMode | str = FilterMode.ZERO_PHASE,
    padding: PaddingMode | str = PaddingMode.REFLECT,
    pad_len: int | None = None,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> SignalBuffer:
    """
    Filter channels of a buffer and return a new buffer.

    Parameters
    ----------
    coeffs : FilterCoefficients
        Designed filter. Its sampling rate must match the buffer's.
    buffer : SignalBuffer
        Input buffer (never modified).
    channels : iterable of str, optional
        Channel ids to filter. Others pass through unchanged. Default: all.
    mode : FilterMode or str
        'causal' or 'zero_phase' (default).
    padding : PaddingMode or str
        'reflect' (default), 'zero' or 'none'.
    pad_len : int, optional
        Padding per edge in samples. Default 3x filter order.
    cancel : CancellationToken, optional
        Checked between channels.
    max_workers : int, optional
        Thread pool size for the per-channel fan-out.

    Returns
    -------
    SignalBuffer
        Same channels, order and rate. Metadata gains ``filter``,
        ``filter_mode``, ``padding``, ``pad_len`` and ``valid_region``.

    Raises
    ------
    InvalidParameterError
        Sampling rate mismatch, unknown mode/padding, negative pad_len.
    ChannelNotFound
        A requested channel is not in the buffer.
    CancelledError
        Cancellation observed; no partial buffer is returned.
    """
    try:
        mode = FilterMode(mode)
        padding = PaddingMode(padding)
    except ValueError as e:
        raise InvalidParameterError(str(e)) from None
    if not np.isclose(coeffs.spec.fs, buffer.fs):
        raise InvalidParameterError(
            f"filter designed for fs={coeffs.spec.fs:g} Hz applied to a "
            f"{buffer.fs:g} Hz buffer"
        )

    indices = buffer.resolve(channels)
    pad = resolve_pad_len(coeffs, buffer.n_samples, padding, pad_len)
    logger.debug(
        "Filtering %d/%d channels (%s, %s pad=%d)",
        len(indices), buffer.n_channels, mode.value, padding.value, pad,
    )

    filtered = fan_out(
        lambda i: filter_signal(coeffs, buffer.data[i], mode, padding, pad),
        indices,
        max_workers=max_workers,
        cancel=cancel,
    )

    out = np.array(buffer.data, copy=True)
    for i, y in zip(indices, filtered):
        out[i] = y

    history = list(buffer.metadata.get("filter_history", []))
    history.append(coeffs.spec.describe())
    return buffer.with_data(
        out,
        filter=coeffs.spec.describe(),
        filter_history=history,
        filtered_channels=[buffer.channels[i] for i in indices],
        filter_mode=mode.value,
        padding=padding.value,
        pad_len=pad,
        valid_region=valid_region(coeffs, buffer.n_samples, mode, pad),
    )
