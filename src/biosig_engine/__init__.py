"""
biosig_engine - Multi-Channel Biosignal Processing

This package contains the processing stages for EEG-style recordings:
- Core: SignalBuffer data model, error taxonomy, parallel fan-out
- Filtering: IIR/FIR design, zero-phase application, ICA artifact separation
- Spectral: Welch PSD and coherence
- Detection: hysteresis event detector
- Connectivity: coherence, PLV and correlation matrices
- IO / Simulation: CSV adapter and synthetic recordings

Usage:
    # After installing with: pip install -e .
    from biosig_engine.core import SignalBuffer
    from biosig_engine.filtering import FilterSpec, design, apply
    from biosig_engine.spectral import psd
    from biosig_engine.detection import DetectorConfig, detect_events
    from biosig_engine.connectivity import connectivity
    from biosig_engine.pipeline import Pipeline
"""

__version__ = "0.1.0"
__all__ = [
    "core",
    "filtering",
    "spectral",
    "detection",
    "connectivity",
    "io",
    "simulation",
    "validation",
    "config",
    "pipeline",
]
