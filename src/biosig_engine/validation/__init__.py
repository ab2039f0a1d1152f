"""
Validation Module for biosig_engine

Provides input validation for filter cutoffs, Welch segmentation and
configuration files.
"""

from __future__ import annotations

from biosig_engine.validation.input_validators import (
    ConfigValidationResult,
    NyquistResult,
    SegmentResult,
    validate_config_file,
    validate_nyquist,
    validate_segment_params,
)

__all__ = [
    "NyquistResult",
    "SegmentResult",
    "ConfigValidationResult",
    "validate_nyquist",
    "validate_segment_params",
    "validate_config_file",
]
