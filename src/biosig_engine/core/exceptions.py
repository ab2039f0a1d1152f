# biosig_engine/core/exceptions.py
from __future__ import annotations

import numpy as np


class BiosigError(Exception):
    """Base error for all biosig_engine exceptions."""


# ---- Error kinds ----
class InvalidParameterError(BiosigError, ValueError):
    """Raised when an operation is called with malformed parameters."""


class InvalidBufferError(InvalidParameterError):
    """Raised when a SignalBuffer / Epoch is constructed with invalid inputs."""


class ChannelNotFound(BiosigError, KeyError):
    """Raised when a requested channel id is not present."""


class NumericalFailureError(BiosigError, ArithmeticError):
    """Raised when a numerical algorithm cannot produce a valid result."""


class InsufficientDataError(BiosigError, ValueError):
    """Raised when a window or segment is shorter than the operation needs."""


class CancelledError(BiosigError):
    """Raised when a cooperative cancellation is observed mid-computation."""


# ---- Component bases ----
class FilterError(BiosigError):
    """Base error for Filter Engine failures."""


class SpectralError(BiosigError):
    """Base error for Spectral Engine failures."""


class SeparationError(BiosigError):
    """Base error for Artifact Separation Engine failures."""


class ConnectivityError(BiosigError):
    """Base error for Connectivity Engine failures."""


# ---- Component errors ----
class InvalidCutoffError(FilterError, InvalidParameterError):
    """Raised when cutoff frequencies violate the Nyquist / ordering rules."""


class UnstableFilterError(FilterError, NumericalFailureError):
    """Raised when a designed IIR filter has a pole on or outside the unit circle."""

    def __init__(self, message: str, max_pole_radius: float) -> None:
        super().__init__(message)
        self.max_pole_radius = max_pole_radius


class SegmentTooLongError(SpectralError, InsufficientDataError):
    """Raised when the Welch segment is longer than the analysed data."""


class NotConvergedError(SeparationError, NumericalFailureError):
    """
    Raised when the separation loop hits its iteration cap.

    Carries the last iteration state so the caller can decide whether to
    retry with a relaxed tolerance or fewer components.
    """

    def __init__(
        self,
        message: str,
        n_iter: int,
        delta: float,
        unmixing: np.ndarray,
    ) -> None:
        super().__init__(message)
        self.n_iter = n_iter
        self.delta = delta
        self.unmixing = unmixing


class InsufficientRankError(SeparationError, NumericalFailureError):
    """Raised when the channel covariance rank is below the requested components."""

    def __init__(self, message: str, rank: int, n_components: int) -> None:
        super().__init__(message)
        self.rank = rank
        self.n_components = n_components


class InsufficientSamplesError(ConnectivityError, InsufficientDataError):
    """Raised when the analysis window is shorter than the measure requires."""
