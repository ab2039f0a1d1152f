"""
Signal Buffer Unit Tests

Validates construction rules, immutability, channel resolution and
epoching of the canonical multi-channel container.
"""

from __future__ import annotations

import numpy as np
import pytest

from biosig_engine.core.buffer import Epoch, SignalBuffer
from biosig_engine.core.exceptions import ChannelNotFound, InvalidBufferError


class TestConstruction:
    """Test SignalBuffer validation on construction."""

    def test_copies_and_freezes_data(self) -> None:
        """Mutating the source array must not affect the buffer."""
        data = np.zeros((2, 10))
        buf = SignalBuffer(data, 100.0, ("a", "b"))

        data[0, 0] = 1.0
        assert buf.data[0, 0] == 0.0

        with pytest.raises(ValueError):
            buf.data[0, 0] = 1.0

    def test_one_dimensional_input_is_single_channel(self) -> None:
        """A 1-D array becomes one row."""
        buf = SignalBuffer(np.arange(5.0), 10.0, ("x",))

        assert buf.n_channels == 1
        assert buf.n_samples == 5
        assert buf.data.dtype == np.float64

    def test_channel_count_mismatch(self) -> None:
        """Channel ids must match the number of rows."""
        with pytest.raises(InvalidBufferError):
            SignalBuffer(np.zeros((3, 10)), 100.0, ("a", "b"))

    def test_duplicate_channel_ids(self) -> None:
        """Channel ids must be unique."""
        with pytest.raises(InvalidBufferError, match="unique"):
            SignalBuffer(np.zeros((2, 10)), 100.0, ("a", "a"))

    @pytest.mark.parametrize("fs", [0.0, -250.0, float("nan"), float("inf")])
    def test_invalid_sampling_rate(self, fs: float) -> None:
        """fs must be finite and positive."""
        with pytest.raises(InvalidBufferError):
            SignalBuffer(np.zeros((1, 10)), fs, ("a",))

    def test_invalid_buffer_is_value_error(self) -> None:
        """Buffer errors are catchable as ValueError."""
        with pytest.raises(ValueError):
            SignalBuffer(np.zeros((2, 2, 2)), 100.0, ("a", "b"))

    def test_from_channels(self) -> None:
        """Mapping construction keeps insertion order."""
        buf = SignalBuffer.from_channels({"Cz": [1, 2, 3], "Pz": [4, 5, 6]}, fs=3.0)

        assert buf.channels == ("Cz", "Pz")
        np.testing.assert_array_equal(buf.channel_data("Pz"), [4.0, 5.0, 6.0])
        assert buf.duration_sec == pytest.approx(1.0)

    def test_from_channels_unequal_lengths(self) -> None:
        """All channels must share one length."""
        with pytest.raises(InvalidBufferError, match="unequal"):
            SignalBuffer.from_channels({"a": [1, 2, 3], "b": [1, 2]}, fs=1.0)

    def test_metadata_is_read_only(self) -> None:
        """Metadata is exposed as an immutable mapping."""
        buf = SignalBuffer(np.zeros((1, 4)), 4.0, ("a",), {"subject": "s01"})

        assert buf.metadata["subject"] == "s01"
        with pytest.raises(TypeError):
            buf.metadata["subject"] = "s02"


class TestChannelAccess:
    """Test channel resolution and selection."""

    @pytest.fixture
    def buf(self) -> SignalBuffer:
        data = np.arange(12.0).reshape(3, 4)
        return SignalBuffer(data, 4.0, ("Fz", "Cz", "Pz"))

    def test_resolve_uses_buffer_order(self, buf: SignalBuffer) -> None:
        """Indices follow buffer order regardless of argument order."""
        assert buf.resolve(["Pz", "Fz"]) == [0, 2]
        assert buf.resolve({"Cz", "Fz"}) == [0, 1]
        assert buf.resolve(None) == [0, 1, 2]
        assert buf.resolve("Cz") == [1]

    def test_unknown_channel(self, buf: SignalBuffer) -> None:
        """Unknown ids raise ChannelNotFound, which is also a KeyError."""
        with pytest.raises(ChannelNotFound):
            buf.resolve(["Oz"])
        with pytest.raises(KeyError):
            buf.channel_data("Oz")

    def test_select(self, buf: SignalBuffer) -> None:
        """Selection returns a new buffer with the chosen rows."""
        sub = buf.select(["Pz", "Fz"])

        assert sub.channels == ("Fz", "Pz")
        np.testing.assert_array_equal(sub.data, buf.data[[0, 2]])
        assert sub.fs == buf.fs

    def test_with_data_merges_metadata(self, buf: SignalBuffer) -> None:
        """Replacement keeps channels and merges new metadata keys."""
        first = buf.with_data(np.zeros((3, 4)), stage="a")
        second = first.with_data(np.ones((3, 4)), other=1)

        assert second.metadata["stage"] == "a"
        assert second.metadata["other"] == 1
        assert "other" not in first.metadata
        np.testing.assert_array_equal(buf.data, np.arange(12.0).reshape(3, 4))

    def test_with_data_shape_mismatch(self, buf: SignalBuffer) -> None:
        """Replacement data must keep the shape."""
        with pytest.raises(InvalidBufferError):
            buf.with_data(np.zeros((3, 5)))

    def test_iteration_yields_channel_rows(self, buf: SignalBuffer) -> None:
        """Iterating pairs each channel id with its samples."""
        names = [name for name, _ in buf]
        assert names == ["Fz", "Cz", "Pz"]
        assert len(buf) == 4


class TestEpochs:
    """Test epoch extraction."""

    def test_epoch_view(self) -> None:
        """An epoch exposes its sub-range without copying."""
        buf = SignalBuffer(np.arange(20.0).reshape(2, 10), 10.0, ("a", "b"))
        ep = buf.epoch(2, 6, label="stim")

        assert isinstance(ep, Epoch)
        assert ep.length == 4
        np.testing.assert_array_equal(ep.data, buf.data[:, 2:6])
        assert np.shares_memory(ep.data, buf.data)

    def test_epoch_as_buffer_records_range(self) -> None:
        """Materialised epochs carry their range in metadata."""
        buf = SignalBuffer(np.arange(10.0), 10.0, ("a",))
        sub = buf.epoch(3, 8, label="rest").as_buffer()

        assert sub.n_samples == 5
        assert sub.metadata["epoch"] == {"start": 3, "end": 8, "label": "rest"}

    @pytest.mark.parametrize("start,end", [(-1, 5), (5, 5), (6, 5), (0, 11)])
    def test_epoch_bounds(self, start: int, end: int) -> None:
        """Epochs must satisfy 0 <= start < end <= n_samples."""
        buf = SignalBuffer(np.zeros(10), 10.0, ("a",))
        with pytest.raises(InvalidBufferError):
            buf.epoch(start, end)

    def test_epochs_tiling(self) -> None:
        """Fixed-length tiling with and without overlap."""
        buf = SignalBuffer(np.zeros(1000), 250.0, ("a",))

        assert len(buf.epochs(250)) == 4
        overlapping = buf.epochs(250, step=125)
        assert len(overlapping) == 7
        assert [ep.start for ep in overlapping[:3]] == [0, 125, 250]
