"""
Signal Buffer - Canonical Multi-Channel Representation

Every pipeline stage consumes and produces a SignalBuffer: a rectangular
(n_channels, n_samples) float64 array, a shared sampling rate, and unique
channel ids. The array is copied on construction and flagged read-only, so
read-only stages (spectral, connectivity, detection) can share one buffer
across workers, while mutating stages (filtering, reconstruction) always
return a new buffer.

Usage:
    from biosig_engine.core.buffer import SignalBuffer

    buf = SignalBuffer(data, fs=250.0, channels=("Fz", "Cz", "Pz"))
    alpha = buf.select(["Cz"])
    first_second = buf.epoch(0, 250, label="baseline")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Sequence

import numpy as np

from .exceptions import ChannelNotFound, InvalidBufferError


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class SignalBuffer:
    """
    Multi-channel, uniformly sampled time series.

    Parameters
    ----------
    data : array_like
        Samples with shape (n_channels, n_samples). A 1-D array is treated
        as a single channel.
    fs : float
        Sampling rate in Hz shared by all channels.
    channels : sequence of str
        Unique channel ids, one per row of ``data``.
    metadata : mapping, optional
        Free-form annotations (filter history, valid region, ...).
    """

    data: np.ndarray
    fs: float
    channels: tuple[str, ...]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        data = np.array(self.data, dtype=np.float64, copy=True)
        if data.ndim == 1:
            data = data[np.newaxis, :]
        if data.ndim != 2:
            raise InvalidBufferError(
                f"data must have shape (n_channels, n_samples), got {data.shape}"
            )

        channels = tuple(self.channels)
        if len(channels) != data.shape[0]:
            raise InvalidBufferError(
                f"{len(channels)} channel ids given for {data.shape[0]} rows of data"
            )
        for ch in channels:
            if not isinstance(ch, str) or not ch.strip():
                raise InvalidBufferError("channel ids must be non-empty strings")
        if len(set(channels)) != len(channels):
            raise InvalidBufferError(f"channel ids must be unique, got {channels}")

        try:
            fs = float(self.fs)
        except (TypeError, ValueError):
            raise InvalidBufferError(f"fs must be a number, got {self.fs!r}") from None
        if not np.isfinite(fs) or fs <= 0:
            raise InvalidBufferError(f"fs must be finite and positive, got {fs}")

        object.__setattr__(self, "data", _readonly(data))
        object.__setattr__(self, "fs", fs)
        object.__setattr__(self, "channels", channels)
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def from_channels(
        cls,
        samples: Mapping[str, Sequence[float]],
        fs: float,
        metadata: Mapping[str, Any] | None = None,
    ) -> "SignalBuffer":
        """Build a buffer from a mapping of channel id -> samples."""
        if not samples:
            raise InvalidBufferError("at least one channel is required")
        rows = [np.asarray(v, dtype=np.float64) for v in samples.values()]
        lengths = {r.shape for r in rows}
        if len(lengths) != 1:
            raise InvalidBufferError(f"channels have unequal lengths: {sorted(lengths)}")
        return cls(np.vstack(rows), fs, tuple(samples.keys()), metadata or {})

    # Convenience accessors
    @property
    def n_channels(self) -> int:
        return self.data.shape[0]

    @property
    def n_samples(self) -> int:
        return self.data.shape[1]

    @property
    def duration_sec(self) -> float:
        return self.n_samples / self.fs

    def __len__(self) -> int:
        return self.n_samples

    def __iter__(self) -> Iterator[tuple[str, np.ndarray]]:
        return iter(zip(self.channels, self.data))

    def times(self) -> np.ndarray:
        """Sample times in seconds from the start of the buffer."""
        return np.arange(self.n_samples) / self.fs

    def index_of(self, channel: str) -> int:
        try:
            return self.channels.index(channel)
        except ValueError:
            raise ChannelNotFound(channel) from None

    def channel_data(self, channel: str) -> np.ndarray:
        """Read-only view of one channel's samples."""
        return self.data[self.index_of(channel)]

    def resolve(self, channels: Iterable[str] | str | None) -> list[int]:
        """
        Map channel ids to row indices in buffer order.

        ``None`` selects every channel. A set is accepted; the result is
        always ordered as the buffer is, never as the argument iterates.
        """
        if channels is None:
            return list(range(self.n_channels))
        if isinstance(channels, str):
            channels = [channels]
        wanted = set(channels)
        for ch in wanted:
            if ch not in self.channels:
                raise ChannelNotFound(ch)
        return [i for i, ch in enumerate(self.channels) if ch in wanted]

    # Core operations
    def select(self, channels: Iterable[str] | str) -> "SignalBuffer":
        """Return a new buffer holding only ``channels`` (buffer order kept)."""
        idx = self.resolve(channels)
        if not idx:
            raise InvalidBufferError("selection must contain at least one channel")
        return SignalBuffer(
            self.data[idx],
            self.fs,
            tuple(self.channels[i] for i in idx),
            self.metadata,
        )

    def with_data(self, data: np.ndarray, **metadata: Any) -> "SignalBuffer":
        """
        Return a new buffer with the same channels and rate but new samples.

        Keyword arguments are merged into a copy of the metadata.
        """
        data = np.asarray(data, dtype=np.float64)
        if data.shape != self.data.shape:
            raise InvalidBufferError(
                f"replacement data must have shape {self.data.shape}, got {data.shape}"
            )
        merged = dict(self.metadata)
        merged.update(metadata)
        return SignalBuffer(data, self.fs, self.channels, merged)

    def epoch(self, start: int, end: int, label: str = "") -> "Epoch":
        return Epoch(self, int(start), int(end), label)

    def epochs(
        self,
        length: int,
        step: int | None = None,
        label: str = "",
    ) -> list["Epoch"]:
        """
        Tile the buffer into fixed-length epochs.

        Parameters
        ----------
        length : int
            Epoch length in samples.
        step : int, optional
            Hop between epoch starts. Defaults to ``length`` (no overlap);
            smaller values produce overlapping epochs.
        label : str
            Label applied to every epoch.
        """
        if step is None:
            step = length
        if length < 1 or step < 1:
            raise InvalidBufferError("epoch length and step must be >= 1")
        return [
            Epoch(self, start, start + length, label)
            for start in range(0, self.n_samples - length + 1, step)
        ]

    def __repr__(self) -> str:
        return (
            f"SignalBuffer(n_channels={self.n_channels}, n_samples={self.n_samples}, "
            f"fs={self.fs:g}, channels={list(self.channels)})"
        )


@dataclass(frozen=True, eq=False)
class Epoch:
    """
    Labeled sub-range ``[start, end)`` of a parent SignalBuffer.

    Epochs reference the parent rather than copying it; ``data`` is a view.
    """

    buffer: SignalBuffer
    start: int
    end: int
    label: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end <= self.buffer.n_samples:
            raise InvalidBufferError(
                f"epoch [{self.start}, {self.end}) outside buffer of "
                f"{self.buffer.n_samples} samples"
            )

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def data(self) -> np.ndarray:
        return self.buffer.data[:, self.start:self.end]

    def as_buffer(self) -> SignalBuffer:
        """Materialise the epoch as a standalone buffer."""
        meta = dict(self.buffer.metadata)
        meta["epoch"] = {"start": self.start, "end": self.end, "label": self.label}
        return SignalBuffer(self.data, self.buffer.fs, self.buffer.channels, meta)
