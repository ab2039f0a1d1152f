"""
Filtering Module

Filter design (Butterworth, Chebyshev type I, windowed-sinc FIR), causal and
zero-phase application, and ICA-based artifact separation.
"""

from .design import (
    BandType,
    FilterCoefficients,
    FilterFamily,
    FilterSpec,
    design,
    frequency_response,
    is_stable,
)
from .apply import (
    FilterMode,
    PaddingMode,
    apply,
    filter_signal,
    valid_region,
)
from .unmixing import (
    ComponentMatch,
    SeparationResult,
    match_components,
    remove_and_reconstruct,
    score_components,
    separate,
    suggest_artifacts,
    whiten,
)

__all__ = [
    "BandType",
    "FilterCoefficients",
    "FilterFamily",
    "FilterSpec",
    "design",
    "frequency_response",
    "is_stable",
    "FilterMode",
    "PaddingMode",
    "apply",
    "filter_signal",
    "valid_region",
    "ComponentMatch",
    "SeparationResult",
    "match_components",
    "remove_and_reconstruct",
    "score_components",
    "separate",
    "suggest_artifacts",
    "whiten",
]
