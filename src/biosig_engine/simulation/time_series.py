"""
Time Series Generator - Synthetic EEG-like Recordings

Builds deterministic multi-channel test signals for the processing stages.

Signal Model (per channel):
- Rhythm: sine wave at ``freq_hz`` (default 10 Hz, alpha band)
- Background: Gaussian white noise scaled to ``noise_std``, or pink (1/f)
  noise from ``generate_pink_noise``
- Transient: optional single-sample spike added at ``spike_at``

Usage:
    from biosig_engine.simulation import make_test_buffer

    buf = make_test_buffer(n_channels=2, n_samples=1000, fs=250.0, spike_at=500)
"""

from __future__ import annotations

import numpy as np

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.constants import (
    DEFAULT_RANDOM_SEED,
    DURATION_SEC,
    SAMPLING_RATE_HZ,
)
from biosig_engine.core.exceptions import InvalidParameterError


def generate_time_vector(
    duration_sec: float = DURATION_SEC,
    sampling_rate_hz: float = SAMPLING_RATE_HZ,
) -> np.ndarray:
    """
    Generate a time vector.

    Parameters
    ----------
    duration_sec : float
        Duration in seconds.
    sampling_rate_hz : float
        Sampling rate in Hz.

    Returns
    -------
    np.ndarray
        Time vector with shape (n_samples,) in seconds.
    """
    n_samples = int(round(duration_sec * sampling_rate_hz))
    return np.arange(n_samples) / sampling_rate_hz


def generate_sine(
    time_vector: np.ndarray,
    freq_hz: float,
    amplitude: float = 1.0,
    phase_rad: float = 0.0,
) -> np.ndarray:
    """Sine wave ``amplitude * sin(2 pi f t + phase)`` on ``time_vector``."""
    return amplitude * np.sin(2 * np.pi * freq_hz * np.asarray(time_vector) + phase_rad)


def generate_pink_noise(n_samples: int, seed: int | None = None) -> np.ndarray:
    """
    Generate pink noise (1/f noise) using FFT-based spectral shaping.

    White noise is shaped in the frequency domain so that amplitude falls as
    1/sqrt(f) (PSD proportional to 1/f). The DC bin is zeroed, and the result
    is scaled to unit standard deviation.

    Parameters
    ----------
    n_samples : int
        Number of samples to generate.
    seed : int, optional
        Seed for ``np.random.default_rng``.

    Returns
    -------
    np.ndarray
        Pink noise with zero mean and unit variance, shape (n_samples,).
    """
    rng = np.random.default_rng(seed)
    white = rng.standard_normal(n_samples)

    spectrum = np.fft.rfft(white)
    freqs = np.fft.rfftfreq(n_samples)

    # PSD ~ 1/f means amplitude ~ 1/sqrt(f)
    shaping = np.zeros_like(freqs)
    nonzero = freqs > 0
    shaping[nonzero] = 1.0 / np.sqrt(freqs[nonzero])

    pink = np.fft.irfft(spectrum * shaping, n=n_samples)
    std = pink.std()
    return pink / std if std > 0 else pink


def add_spike(
    signal: np.ndarray,
    index: int,
    amplitude: float,
    width: int = 1,
) -> np.ndarray:
    """
    Return a copy of ``signal`` with a rectangular spike added.

    Parameters
    ----------
    signal : np.ndarray
        Signal with samples on the last axis.
    index : int
        First spike sample.
    amplitude : float
        Value added to the spike samples.
    width : int
        Spike length in samples.
    """
    out = np.array(signal, dtype=np.float64, copy=True)
    n_samples = out.shape[-1]
    if not 0 <= index < n_samples:
        raise InvalidParameterError(f"spike index {index} outside [0, {n_samples})")
    if width < 1:
        raise InvalidParameterError(f"spike width must be >= 1, got {width}")
    out[..., index:index + width] += amplitude
    return out


def make_test_buffer(
    n_channels: int = 2,
    n_samples: int = 1000,
    fs: float = SAMPLING_RATE_HZ,
    freq_hz: float = 10.0,
    spike_at: int | None = None,
    spike_amplitude: float = 50.0,
    noise_std: float = 0.0,
    seed: int = DEFAULT_RANDOM_SEED,
    pink: bool = False,
) -> SignalBuffer:
    """
    Multi-channel sine + noise (+ spike) buffer.

    Every channel carries the same rhythm with a small per-channel phase
    offset and independent noise, so channels are coherent at ``freq_hz``.

    Parameters
    ----------
    n_channels, n_samples : int
        Buffer shape.
    fs : float
        Sampling rate in Hz.
    freq_hz : float
        Rhythm frequency.
    spike_at : int, optional
        Sample at which a spike of ``spike_amplitude`` is added on every channel.
    spike_amplitude : float
        Spike height.
    noise_std : float
        Background noise standard deviation (0 = noiseless).
    seed : int
        Seed for the noise generator.
    pink : bool
        Use pink instead of white background noise.

    Returns
    -------
    SignalBuffer
        Channels named ``ch0``, ``ch1``, ...
    """
    if n_channels < 1 or n_samples < 1:
        raise InvalidParameterError("n_channels and n_samples must be >= 1")
    t = np.arange(n_samples) / fs
    rng = np.random.default_rng(seed)

    rows = []
    for ch in range(n_channels):
        row = generate_sine(t, freq_hz, phase_rad=0.1 * ch)
        if noise_std > 0:
            if pink:
                row = row + noise_std * generate_pink_noise(n_samples, seed=seed + 100 + ch)
            else:
                row = row + noise_std * rng.standard_normal(n_samples)
        rows.append(row)
    data = np.vstack(rows)

    if spike_at is not None:
        data = add_spike(data, spike_at, spike_amplitude)

    return SignalBuffer(
        data,
        fs,
        tuple(f"ch{i}" for i in range(n_channels)),
        {"source": "synthetic", "freq_hz": freq_hz, "seed": seed},
    )
