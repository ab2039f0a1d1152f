"""
Detection Module

Per-channel event detection with hysteresis thresholds, minimum duration
and refractory period.
"""

from .event_detector import (
    DetectorConfig,
    DetectorState,
    Event,
    EventDetector,
    Statistic,
    detect_events,
    moving_statistic,
)

__all__ = [
    "DetectorConfig",
    "DetectorState",
    "Event",
    "EventDetector",
    "Statistic",
    "detect_events",
    "moving_statistic",
]
