"""
Spectral Module

Welch power spectral density, coherence, and the shared segment
machinery used by the connectivity measures.
"""

from .welch import (
    SegmentPlan,
    SpectralEstimate,
    WindowType,
    channel_spectra,
    get_window,
    next_pow2,
    one_sided_weights,
    plan_segments,
    psd,
    resolve_band,
    segment_spectra,
)
from .coherence import (
    CoherenceEstimate,
    coherence,
    coherence_from_spectra,
    coherence_pairs,
    cross_spectral_means,
)

__all__ = [
    "SegmentPlan",
    "SpectralEstimate",
    "WindowType",
    "channel_spectra",
    "get_window",
    "next_pow2",
    "one_sided_weights",
    "plan_segments",
    "psd",
    "resolve_band",
    "segment_spectra",
    "CoherenceEstimate",
    "coherence",
    "coherence_from_spectra",
    "coherence_pairs",
    "cross_spectral_means",
]
