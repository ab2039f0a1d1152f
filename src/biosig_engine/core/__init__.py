"""
Core Module

Shared data model, error taxonomy, constants and the parallel fan-out used
by every processing stage.
"""

from .buffer import Epoch, SignalBuffer
from .exceptions import (
    BiosigError,
    CancelledError,
    ChannelNotFound,
    ConnectivityError,
    FilterError,
    InsufficientDataError,
    InsufficientRankError,
    InsufficientSamplesError,
    InvalidBufferError,
    InvalidCutoffError,
    InvalidParameterError,
    NotConvergedError,
    NumericalFailureError,
    SegmentTooLongError,
    SeparationError,
    SpectralError,
    UnstableFilterError,
)
from .parallel import CancellationToken, check_cancelled, fan_out

__all__ = [
    "SignalBuffer",
    "Epoch",
    "BiosigError",
    "InvalidParameterError",
    "InvalidBufferError",
    "ChannelNotFound",
    "NumericalFailureError",
    "InsufficientDataError",
    "CancelledError",
    "FilterError",
    "SpectralError",
    "SeparationError",
    "ConnectivityError",
    "InvalidCutoffError",
    "UnstableFilterError",
    "SegmentTooLongError",
    "NotConvergedError",
    "InsufficientRankError",
    "InsufficientSamplesError",
    "CancellationToken",
    "check_cancelled",
    "fan_out",
]
