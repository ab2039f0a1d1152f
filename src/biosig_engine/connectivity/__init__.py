"""
Connectivity Module

All-pairs coherence, phase-locking value and correlation matrices.
"""

from .measures import ConnectivityMatrix, Measure, connectivity

__all__ = ["ConnectivityMatrix", "Measure", "connectivity"]
