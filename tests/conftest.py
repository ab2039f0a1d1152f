"""
Shared fixtures: synthetic recordings used across the test modules.
"""

from __future__ import annotations

import numpy as np
import pytest

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.simulation import make_test_buffer

FS = 250.0


@pytest.fixture
def fs() -> float:
    return FS


@pytest.fixture
def sine_buffer() -> SignalBuffer:
    """2 channels x 1000 samples @ 250 Hz, noiseless 10 Hz sine."""
    return make_test_buffer(n_channels=2, n_samples=1000, fs=FS, freq_hz=10.0)


@pytest.fixture
def spike_buffer() -> SignalBuffer:
    """10 Hz sine on 2 channels with a 50-unit spike at sample 500."""
    return make_test_buffer(
        n_channels=2,
        n_samples=1000,
        fs=FS,
        freq_hz=10.0,
        spike_at=500,
        spike_amplitude=50.0,
    )


@pytest.fixture
def noise_buffer() -> SignalBuffer:
    """4 independent white-noise channels, 5000 samples @ 250 Hz."""
    rng = np.random.default_rng(42)
    return SignalBuffer(
        rng.standard_normal((4, 5000)),
        FS,
        ("Fz", "Cz", "Pz", "Oz"),
    )


@pytest.fixture
def independent_sources() -> np.ndarray:
    """
    Three independent sources, shape (3, 5000).

    Row 0: 7 Hz sine
    Row 1: 3 Hz square wave
    Row 2: sparse spike train (strongly super-Gaussian)
    """
    np.random.seed(42)
    t = np.arange(5000) / FS
    sine = np.sin(2 * np.pi * 7.0 * t)
    square = np.sign(np.sin(2 * np.pi * 3.0 * t + 0.3))
    spikes = np.zeros_like(t)
    spikes[np.random.choice(len(t), size=40, replace=False)] = 8.0
    spikes += 0.05 * np.random.randn(len(t))
    return np.vstack([sine, square, spikes])


@pytest.fixture
def mixed_buffer(independent_sources: np.ndarray) -> SignalBuffer:
    """Independent sources mixed onto 3 channels (well-conditioned mixing)."""
    mixing = np.array([
        [1.0, 0.5, 0.3],
        [0.4, 1.0, 0.6],
        [0.2, 0.3, 1.0],
    ])
    return SignalBuffer(mixing @ independent_sources, FS, ("C3", "C4", "Fp1"))
