"""
Parallel Fan-Out Tests

Validates result ordering, serial execution, error propagation and
cooperative cancellation of the worker-pool helper, and cancellation of
the stages built on it.
"""

from __future__ import annotations

import threading

import numpy as np
import pytest

from biosig_engine.connectivity import connectivity
from biosig_engine.core.exceptions import BiosigError, CancelledError
from biosig_engine.core.parallel import CancellationToken, check_cancelled, fan_out
from biosig_engine.filtering import FilterSpec, apply, design
from biosig_engine.spectral import psd


class TestFanOut:
    """Test fan_out scheduling semantics."""

    def test_results_in_input_order(self) -> None:
        """Results line up with inputs whatever the scheduling."""
        assert fan_out(lambda x: x * x, range(50), max_workers=8) == [x * x for x in range(50)]

    def test_serial_runs_in_caller_thread(self) -> None:
        """max_workers=1 never leaves the calling thread."""
        caller = threading.get_ident()
        idents = fan_out(lambda _: threading.get_ident(), range(5), max_workers=1)

        assert set(idents) == {caller}

    def test_empty_input(self) -> None:
        """No work items yields an empty list."""
        assert fan_out(lambda x: x, [], max_workers=4) == []

    def test_exception_propagates(self) -> None:
        """A failing unit re-raises its exception to the caller."""
        def work(x: int) -> int:
            if x == 3:
                raise ZeroDivisionError("boom")
            return x

        with pytest.raises(ZeroDivisionError, match="boom"):
            fan_out(work, range(8), max_workers=4)

    def test_pre_cancelled_token(self) -> None:
        """A token that already fired stops the fan-out before any work."""
        token = CancellationToken()
        token.cancel()
        calls = []

        with pytest.raises(CancelledError):
            fan_out(calls.append, range(4), max_workers=2, cancel=token)
        assert calls == []

    def test_cancel_mid_run(self) -> None:
        """Cancelling during a unit discards the partial results."""
        token = CancellationToken()

        def work(x: int) -> int:
            if x == 2:
                token.cancel()
            return x

        with pytest.raises(CancelledError):
            fan_out(work, range(6), max_workers=1, cancel=token)


class TestCancellationToken:
    """Test the token itself."""

    def test_initial_state(self) -> None:
        """A new token is not cancelled."""
        token = CancellationToken()

        assert token.is_cancelled is False
        token.raise_if_cancelled()
        check_cancelled(None)

    def test_cancelled_error_is_biosig_error(self) -> None:
        """CancelledError belongs to the package error taxonomy."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(BiosigError):
            check_cancelled(token)


class TestStageCancellation:
    """Stages raise CancelledError instead of returning partial output."""

    def test_filter_cancelled(self, sine_buffer) -> None:
        """apply() honours a fired token."""
        token = CancellationToken()
        token.cancel()
        coeffs = design(FilterSpec("butterworth", 4, "lowpass", 30.0, sine_buffer.fs))

        with pytest.raises(CancelledError):
            apply(coeffs, sine_buffer, cancel=token)

    def test_psd_cancelled(self, noise_buffer) -> None:
        """psd() honours a fired token."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(CancelledError):
            psd(noise_buffer, cancel=token, max_workers=2)

    def test_connectivity_cancelled(self, noise_buffer) -> None:
        """connectivity() honours a fired token."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(CancelledError):
            connectivity(noise_buffer, cancel=token)

    def test_parallel_matches_serial(self, noise_buffer) -> None:
        """Worker count never changes numerical results."""
        serial = psd(noise_buffer, max_workers=1)
        pooled = psd(noise_buffer, max_workers=4)

        np.testing.assert_array_equal(serial.power, pooled.power)
