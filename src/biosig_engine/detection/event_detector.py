"""
Event Detection - Hysteresis State Machine

Detects transient events (spikes, bursts, blinks) channel by channel from a
sliding-window statistic.

State Machine (per channel):

    IDLE ──stat >= high──> CANDIDATE ──sustained min_duration──> CONFIRMED
     ^                        │                                      │
     └──── stat < low ────────┘ (rejected)        stat < low (emit) ─┘
                                                  + refractory period

- A candidate starts at the sample where the statistic reaches
  ``threshold_high`` and must stay at or above ``threshold_low`` for
  ``min_duration`` samples to be confirmed.
- A confirmed event closes at the first sample below ``threshold_low``
  (exclusive end) and is emitted.
- After an event closes, new candidates are ignored for
  ``refractory_samples`` samples.

Channels are independent; no cross-channel gating is applied here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable

import numpy as np

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.exceptions import InvalidParameterError
from biosig_engine.core.parallel import CancellationToken, fan_out

logger = logging.getLogger(__name__)


class DetectorState(Enum):
    """Per-channel detector states."""

    IDLE = auto()
    CANDIDATE = auto()
    CONFIRMED = auto()


class Statistic(Enum):
    """Sliding-window statistics."""

    RECTIFIED = "rectified"  # mean |x|
    ENERGY = "energy"  # mean x^2
    RMS = "rms"  # sqrt(mean x^2)


@dataclass(frozen=True)
class Event:
    """
    A detected event.

    Attributes
    ----------
    channel : str
        Channel the event was detected on.
    start : int
        First sample of the event (threshold crossing).
    end : int
        First sample after the event (exclusive).
    label : str
        Event type label.
    score : float
        Peak statistic divided by ``threshold_high`` (>= 1).
    """

    channel: str
    start: int
    end: int
    label: str
    score: float

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class DetectorConfig:
    """
    Detector parameters.

    Attributes
    ----------
    threshold_high : float
        Statistic level that opens a candidate.
    threshold_low : float, optional
        Level the statistic must stay at or above to sustain an event.
        Defaults to ``threshold_high`` (no hysteresis).
    min_duration : int
        Samples a candidate must sustain to be confirmed (>= 1).
    refractory_samples : int
        Samples after an event closes during which new candidates are ignored.
    window : int
        Sliding-window length for the statistic (1 = sample by sample).
    statistic : Statistic or str
        'rectified', 'energy' or 'rms'.
    label : str
        Label given to emitted events.
    """

    threshold_high: float
    threshold_low: float | None = None
    min_duration: int = 1
    refractory_samples: int = 0
    window: int = 1
    statistic: Statistic = Statistic.RECTIFIED
    label: str = "event"

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "statistic", Statistic(self.statistic))
        except ValueError as e:
            raise InvalidParameterError(str(e)) from None
        if self.threshold_low is None:
            object.__setattr__(self, "threshold_low", self.threshold_high)
        if not np.isfinite(self.threshold_high) or not np.isfinite(self.threshold_low):
            raise InvalidParameterError("thresholds must be finite")
        if self.threshold_low > self.threshold_high:
            raise InvalidParameterError(
                f"threshold_low ({self.threshold_low}) must be <= "
                f"threshold_high ({self.threshold_high})"
            )
        if self.min_duration < 1:
            raise InvalidParameterError(f"min_duration must be >= 1, got {self.min_duration}")
        if self.refractory_samples < 0:
            raise InvalidParameterError(
                f"refractory_samples must be >= 0, got {self.refractory_samples}"
            )
        if self.window < 1:
            raise InvalidParameterError(f"window must be >= 1, got {self.window}")


def moving_statistic(
    x: np.ndarray,
    window: int = 1,
    statistic: Statistic | str = Statistic.RECTIFIED,
) -> np.ndarray:
    """
    Centred sliding-window statistic, same length as ``x``.

    Parameters
    ----------
    x : np.ndarray
        Signal, shape (n_samples,).
    window : int
        Window length in samples.
    statistic : Statistic or str
        'rectified' (mean |x|), 'energy' (mean x^2) or 'rms'.
    """
    statistic = Statistic(statistic)
    x = np.asarray(x, dtype=np.float64)
    base = np.abs(x) if statistic is Statistic.RECTIFIED else x * x
    if window > 1:
        base = np.convolve(base, np.full(window, 1.0 / window), mode="same")
    if statistic is Statistic.RMS:
        base = np.sqrt(base)
    return base


class EventDetector:
    """
    Runs the hysteresis state machine for one configuration.

    Parameters
    ----------
    config : DetectorConfig
        Thresholds, durations and statistic.

    Examples
    --------
    >>> det = EventDetector(DetectorConfig(threshold_high=5.0, refractory_samples=50))
    >>> events = det.detect(buffer)
    """

    def __init__(self, config: DetectorConfig) -> None:
        self.config = config

    def run(self, x: np.ndarray) -> list[tuple[int, int, float]]:
        """
        Detect events in a single 1-D signal.

        Returns
        -------
        list of (start, end, peak)
            ``end`` is exclusive; ``peak`` is the maximum statistic.
        """
        cfg = self.config
        stat = moving_statistic(x, cfg.window, cfg.statistic)
        n_samples = stat.shape[0]

        events: list[tuple[int, int, float]] = []
        state = DetectorState.IDLE
        start = 0
        sustained = 0
        peak = 0.0
        blocked_until = 0

        for n in range(n_samples):
            v = stat[n]
            if state is DetectorState.IDLE:
                if n >= blocked_until and v >= cfg.threshold_high:
                    start, sustained, peak = n, 1, v
                    state = (
                        DetectorState.CONFIRMED
                        if cfg.min_duration <= 1
                        else DetectorState.CANDIDATE
                    )
            elif v >= cfg.threshold_low:
                sustained += 1
                peak = max(peak, v)
                if state is DetectorState.CANDIDATE and sustained >= cfg.min_duration:
                    state = DetectorState.CONFIRMED
            else:
                if state is DetectorState.CONFIRMED:
                    events.append((start, n, float(peak)))
                    blocked_until = n + cfg.refractory_samples
                state = DetectorState.IDLE

        if state is DetectorState.CONFIRMED:
            events.append((start, n_samples, float(peak)))
        return events

    def detect(
        self,
        buffer: SignalBuffer,
        channels: Iterable[str] | None = None,
        cancel: CancellationToken | None = None,
        max_workers: int | None = None,
    ) -> list[Event]:
        """
        Detect events on every selected channel.

        Returns
        -------
        list of Event
            Ordered by channel (buffer order), then start sample.
        """
        indices = buffer.resolve(channels)
        per_channel = fan_out(
            lambda i: self.run(buffer.data[i]),
            indices,
            max_workers=max_workers,
            cancel=cancel,
        )

        cfg = self.config
        scale = cfg.threshold_high if cfg.threshold_high > 0 else 1.0
        events = [
            Event(
                channel=buffer.channels[i],
                start=start,
                end=end,
                label=cfg.label,
                score=peak / scale,
            )
            for i, found in zip(indices, per_channel)
            for start, end, peak in found
        ]
        logger.debug("Detected %d event(s) on %d channel(s)", len(events), len(indices))
        return events


def detect_events(
    buffer: SignalBuffer,
    config: DetectorConfig,
    channels: Iterable[str] | None = None,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> list[Event]:
    """Run ``EventDetector(config)`` over ``buffer``."""
    return EventDetector(config).detect(buffer, channels, cancel, max_workers)
