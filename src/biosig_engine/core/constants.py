"""
Processing Constants for biosig_engine

Default parameters for every pipeline stage. Units are carried in the
names where they apply.
"""

from __future__ import annotations

# Typical EEG Frequency Bands (Hz)
DELTA_BAND_HZ: tuple[float, float] = (0.5, 4.0)
THETA_BAND_HZ: tuple[float, float] = (4.0, 8.0)
ALPHA_BAND_HZ: tuple[float, float] = (8.0, 13.0)
MU_BAND_HZ: tuple[float, float] = (8.0, 12.0)  # Sensorimotor rhythm
BETA_BAND_HZ: tuple[float, float] = (13.0, 30.0)
GAMMA_BAND_HZ: tuple[float, float] = (30.0, 100.0)

FREQUENCY_BANDS: dict[str, tuple[float, float]] = {
    "delta": DELTA_BAND_HZ,
    "theta": THETA_BAND_HZ,
    "alpha": ALPHA_BAND_HZ,
    "mu": MU_BAND_HZ,
    "beta": BETA_BAND_HZ,
    "gamma": GAMMA_BAND_HZ,
}

# =============================================================================
# Filter Engine
# =============================================================================

DEFAULT_FILTER_ORDER: int = 4
DEFAULT_CHEBYSHEV_RIPPLE_DB: float = 0.5
MAX_IIR_ORDER: int = 12  # Above this, direct-form b/a loses precision quickly

# Poles with |p| >= 1 - STABILITY_TOLERANCE are treated as unstable
STABILITY_TOLERANCE: float = 1e-9

# Edge padding length as a multiple of filter order
PAD_ORDER_MULTIPLE: int = 3

# =============================================================================
# Spectral Engine
# =============================================================================

DEFAULT_SEGMENT_LEN: int = 256
DEFAULT_OVERLAP: float = 0.5

# =============================================================================
# Artifact Separation Engine
# =============================================================================

DEFAULT_SEPARATION_TOL: float = 1e-4
DEFAULT_SEPARATION_MAX_ITER: int = 200
DEFAULT_RANK_TOL: float = 1e-10  # Relative to the largest covariance eigenvalue
DEFAULT_RANDOM_SEED: int = 0
DEFAULT_KURTOSIS_WEIGHT: float = 0.5
DEFAULT_ARTIFACT_THRESHOLD: float = 0.5

# =============================================================================
# Defaults used when building synthetic recordings
# =============================================================================

SAMPLING_RATE_HZ: float = 250.0
DURATION_SEC: float = 4.0
