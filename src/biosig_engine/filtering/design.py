"""
Digital Filter Design - Butterworth, Chebyshev and FIR

Builds immutable FilterCoefficients from a FilterSpec. All three families
share one output type so ``apply`` never needs to know which family it runs.

IIR Design (Butterworth, Chebyshev type I):
    1. Analog low-pass prototype poles/zeros (unit cutoff)
       Butterworth: |H(jw)|^2 = 1 / (1 + w^2n)           (maximally flat)
       Chebyshev:   |H(jw)|^2 = 1 / (1 + eps^2 T_n^2(w))  (equal ripple)
    2. Frequency pre-warping: W = 2 fs tan(pi f / fs)
    3. Analog frequency transform (lp -> lp/hp/bp/bs)
    4. Bilinear transform: z = (2 fs + s) / (2 fs - s)
    5. Stability check: every pole strictly inside the unit circle

FIR Design:
    Windowed-sinc taps of length order + 1 (Hamming window), normalised to
    unit gain at the centre of the first passband.

References:
    - Oppenheim, A. V., & Schafer, R. W. (2010). Discrete-Time Signal
      Processing, ch. 7.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
from scipy import signal

from biosig_engine.core.constants import (
    DEFAULT_CHEBYSHEV_RIPPLE_DB,
    MAX_IIR_ORDER,
    PAD_ORDER_MULTIPLE,
    STABILITY_TOLERANCE,
)
from biosig_engine.core.exceptions import (
    InvalidCutoffError,
    InvalidParameterError,
    UnstableFilterError,
)
from biosig_engine.validation.input_validators import validate_nyquist

logger = logging.getLogger(__name__)


# =============================================================================
# Enumerations
# =============================================================================


class FilterFamily(Enum):
    """Supported filter families."""

    BUTTERWORTH = "butterworth"
    CHEBYSHEV = "chebyshev"
    FIR = "fir"


class BandType(Enum):
    """Frequency band shapes."""

    LOWPASS = "lowpass"
    HIGHPASS = "highpass"
    BANDPASS = "bandpass"
    BANDSTOP = "bandstop"

    @property
    def n_edges(self) -> int:
        return 2 if self in (BandType.BANDPASS, BandType.BANDSTOP) else 1


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class FilterSpec:
    """
    Filter design request.

    Parameters
    ----------
    family : FilterFamily or str
        Butterworth, Chebyshev (type I) or FIR.
    order : int
        IIR prototype order, or FIR order (number of taps minus one).
    band : BandType or str
        Lowpass, highpass, bandpass or bandstop.
    cutoff : float or (float, float)
        Cutoff frequency in Hz, or (low, high) band edges.
    fs : float
        Sampling rate in Hz.
    ripple_db : float, optional
        Passband ripple in dB (Chebyshev only). Defaults to 0.5 dB.

    Examples
    --------
    >>> spec = FilterSpec("butterworth", 4, "bandpass", (8.0, 12.0), fs=250.0)
    >>> coeffs = design(spec)
    """

    family: FilterFamily
    order: int
    band: BandType
    cutoff: tuple[float, ...]
    fs: float
    ripple_db: float | None = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "family", FilterFamily(self.family))
            object.__setattr__(self, "band", BandType(self.band))
        except ValueError as e:
            raise InvalidParameterError(str(e)) from None
        cutoff = self.cutoff
        if isinstance(cutoff, (int, float, np.floating, np.integer)):
            cutoff = (float(cutoff),)
        else:
            cutoff = tuple(float(c) for c in cutoff)
        object.__setattr__(self, "cutoff", cutoff)

    @property
    def nyquist(self) -> float:
        return self.fs / 2.0

    def describe(self) -> dict:
        """Plain-dict summary recorded in filtered buffer metadata."""
        return {
            "family": self.family.value,
            "band": self.band.value,
            "cutoff": list(self.cutoff),
            "order": self.order,
            "ripple_db": self.ripple_db,
        }


@dataclass(frozen=True, eq=False)
class FilterCoefficients:
    """
    Designed filter, immutable and safe to share across workers.

    Attributes
    ----------
    spec : FilterSpec
        The request this was designed from.
    b, a : np.ndarray
        Transfer-function numerator and denominator (``a = [1.0]`` for FIR).
    sos : np.ndarray or None
        Second-order sections (IIR only), shape (n_sections, 6).
    zeros, poles : np.ndarray
        Digital zeros and poles (IIR only; empty for FIR).
    gain : float
        System gain of the zpk representation (1.0 for FIR).
    """

    spec: FilterSpec
    b: np.ndarray
    a: np.ndarray
    sos: np.ndarray | None
    zeros: np.ndarray
    poles: np.ndarray
    gain: float

    def __post_init__(self) -> None:
        for name in ("b", "a", "sos", "zeros", "poles"):
            value = getattr(self, name)
            if value is not None:
                value = np.array(value, copy=True)
                value.setflags(write=False)
                object.__setattr__(self, name, value)

    @property
    def is_fir(self) -> bool:
        return self.sos is None

    @property
    def max_pole_radius(self) -> float:
        return float(np.max(np.abs(self.poles))) if self.poles.size else 0.0

    @property
    def effective_order(self) -> int:
        """Order of the realised transfer function (doubles for band filters)."""
        return len(self.b) - 1 if self.is_fir else len(self.a) - 1

    @property
    def transient_len(self) -> int:
        """Samples at each edge disturbed by start-up transients."""
        return PAD_ORDER_MULTIPLE * self.effective_order


# =============================================================================
# Design
# =============================================================================


def _validate(spec: FilterSpec) -> None:
    if int(spec.order) != spec.order or spec.order < 1:
        raise InvalidParameterError(f"order must be an integer >= 1, got {spec.order}")
    if spec.family is not FilterFamily.FIR and spec.order > MAX_IIR_ORDER:
        raise InvalidParameterError(
            f"IIR order {spec.order} exceeds the supported maximum of {MAX_IIR_ORDER}"
        )
    if not np.isfinite(spec.fs) or spec.fs <= 0:
        raise InvalidParameterError(f"fs must be finite and positive, got {spec.fs}")

    if len(spec.cutoff) != spec.band.n_edges:
        raise InvalidCutoffError(
            f"{spec.band.value} needs {spec.band.n_edges} cutoff(s), got {len(spec.cutoff)}"
        )
    nyquist = validate_nyquist(spec.fs, spec.cutoff)
    if not nyquist.is_valid:
        raise InvalidCutoffError(" ".join(nyquist.errors))
    for message in nyquist.warnings:
        logger.warning(message)

    if spec.family is FilterFamily.CHEBYSHEV:
        if spec.ripple_db is not None and not spec.ripple_db > 0:
            raise InvalidParameterError(f"ripple_db must be > 0, got {spec.ripple_db}")
    elif spec.ripple_db is not None:
        raise InvalidParameterError("ripple_db only applies to Chebyshev filters")

    if spec.family is FilterFamily.FIR:
        odd_taps_required = spec.band in (BandType.HIGHPASS, BandType.BANDSTOP)
        if odd_taps_required and spec.order % 2:
            raise InvalidParameterError(
                f"FIR {spec.band.value} needs an even order (odd tap count), "
                f"got order {spec.order}"
            )


def _prewarp(freqs_hz: Sequence[float], fs: float) -> np.ndarray:
    """Map digital cutoffs to the analog frequencies the bilinear transform needs."""
    return 2.0 * fs * np.tan(np.pi * np.asarray(freqs_hz) / fs)


def _analog_prototype(spec: FilterSpec) -> tuple[np.ndarray, np.ndarray, float]:
    if spec.family is FilterFamily.BUTTERWORTH:
        return signal.buttap(spec.order)
    ripple = spec.ripple_db if spec.ripple_db is not None else DEFAULT_CHEBYSHEV_RIPPLE_DB
    return signal.cheb1ap(spec.order, ripple)


def _design_iir(spec: FilterSpec) -> FilterCoefficients:
    z, p, k = _analog_prototype(spec)
    warped = _prewarp(spec.cutoff, spec.fs)

    if spec.band is BandType.LOWPASS:
        z, p, k = signal.lp2lp_zpk(z, p, k, wo=warped[0])
    elif spec.band is BandType.HIGHPASS:
        z, p, k = signal.lp2hp_zpk(z, p, k, wo=warped[0])
    else:
        wo = float(np.sqrt(warped[0] * warped[1]))
        bw = float(warped[1] - warped[0])
        if spec.band is BandType.BANDPASS:
            z, p, k = signal.lp2bp_zpk(z, p, k, wo=wo, bw=bw)
        else:
            z, p, k = signal.lp2bs_zpk(z, p, k, wo=wo, bw=bw)

    z, p, k = signal.bilinear_zpk(z, p, k, fs=spec.fs)

    radius = float(np.max(np.abs(p))) if p.size else 0.0
    if radius >= 1.0 - STABILITY_TOLERANCE:
        raise UnstableFilterError(
            f"{spec.family.value} {spec.band.value} design has a pole at radius "
            f"{radius:.12f} (>= 1 - {STABILITY_TOLERANCE:g}); lower the order or "
            "move the cutoff away from the band edge",
            max_pole_radius=radius,
        )
    if radius > 1.0 - 1e-4:
        logger.warning(
            "Filter %s/%s is marginally stable (max pole radius %.8f)",
            spec.family.value, spec.band.value, radius,
        )

    sos = signal.zpk2sos(z, p, k)
    b, a = signal.zpk2tf(z, p, k)
    return FilterCoefficients(
        spec=spec,
        b=np.real(b),
        a=np.real(a),
        sos=sos,
        zeros=z,
        poles=p,
        gain=float(np.real(k)),
    )


def _design_fir(spec: FilterSpec, window: str = "hamming") -> FilterCoefficients:
    pass_zero = spec.band in (BandType.LOWPASS, BandType.BANDSTOP)
    cutoff = spec.cutoff[0] if spec.band.n_edges == 1 else list(spec.cutoff)
    taps = signal.firwin(
        spec.order + 1,
        cutoff,
        window=window,
        pass_zero=pass_zero,
        scale=True,
        fs=spec.fs,
    )
    return FilterCoefficients(
        spec=spec,
        b=taps,
        a=np.array([1.0]),
        sos=None,
        zeros=np.array([], dtype=complex),
        poles=np.array([], dtype=complex),
        gain=1.0,
    )


def design(spec: FilterSpec) -> FilterCoefficients:
    """
    Design a digital filter.

    Parameters
    ----------
    spec : FilterSpec
        Family, order, band, cutoff(s), sampling rate and optional ripple.

    Returns
    -------
    FilterCoefficients
        Immutable coefficients reusable across calls and workers.

    Raises
    ------
    InvalidCutoffError
        Cutoff(s) outside (0, fs/2), misordered, or the wrong count.
    InvalidParameterError
        Bad order, ripple, or FIR tap parity.
    UnstableFilterError
        A designed IIR pole lies on or outside the unit circle.
    """
    _validate(spec)
    logger.debug(
        "Designing %s %s order=%d cutoff=%s fs=%g",
        spec.family.value, spec.band.value, spec.order, spec.cutoff, spec.fs,
    )
    if spec.family is FilterFamily.FIR:
        return _design_fir(spec)
    return _design_iir(spec)


def is_stable(coeffs: FilterCoefficients) -> bool:
    """True if every pole lies strictly inside the unit circle."""
    return coeffs.max_pole_radius < 1.0 - STABILITY_TOLERANCE


def frequency_response(
    coeffs: FilterCoefficients,
    n_points: int = 512,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Complex frequency response on ``n_points`` bins from 0 to Nyquist.

    Returns
    -------
    freqs_hz : np.ndarray
        Frequencies in Hz, shape (n_points,).
    response : np.ndarray
        Complex response, shape (n_points,).
    """
    if coeffs.is_fir:
        return signal.freqz(coeffs.b, [1.0], worN=n_points, fs=coeffs.spec.fs)
    return signal.sosfreqz(coeffs.sos, worN=n_points, fs=coeffs.spec.fs)
