"""
Input Validators for biosig_engine

Provides up-front validation for:
- Nyquist compliance of filter cutoffs
- Welch segmentation parameters
- YAML configuration file parsing

Validators never raise on bad input; they return a result object carrying
errors, warnings and recovery suggestions. Processing stages turn a failed
result into the matching exception before any computation starts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence


# Cutoffs closer than this fraction of Nyquist to either band edge give
# poorly conditioned IIR designs
EDGE_WARNING_FRACTION: float = 0.002


# =============================================================================
# Validation Result Types
# =============================================================================


@dataclass
class NyquistResult:
    """Result of cutoff-vs-Nyquist validation.

    Attributes
    ----------
    is_valid : bool
        True if every cutoff lies strictly inside (0, fs/2) and multi-edge
        cutoffs are strictly increasing.
    sampling_rate_hz : float
        The sampling rate being validated.
    cutoffs_hz : tuple[float, ...]
        Cutoff frequencies checked.
    nyquist_frequency_hz : float
        Nyquist frequency (sampling_rate / 2).
    normalized_cutoffs : tuple[float, ...]
        Cutoffs as a fraction of Nyquist.
    warnings : list[str]
        Non-fatal warnings (e.g., cutoff hugging a band edge).
    errors : list[str]
        Fatal errors (e.g., cutoff above Nyquist).
    recovery_suggestions : list[str]
        Actionable suggestions for fixing issues.
    """

    is_valid: bool
    sampling_rate_hz: float
    cutoffs_hz: tuple[float, ...]
    nyquist_frequency_hz: float
    normalized_cutoffs: tuple[float, ...]
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    recovery_suggestions: list[str] = field(default_factory=list)


@dataclass
class SegmentResult:
    """Result of Welch segmentation validation.

    Attributes
    ----------
    is_valid : bool
        True if the parameters can be used as given.
    segment_too_long : bool
        True if the only problem is a segment longer than the data.
    n_segments : int
        Number of segments the data yields (0 when invalid).
    warnings, errors, recovery_suggestions : list[str]
        Diagnostics as for NyquistResult.
    """

    is_valid: bool
    segment_too_long: bool
    n_segments: int
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    recovery_suggestions: list[str] = field(default_factory=list)


@dataclass
class ConfigValidationResult:
    """Result of YAML configuration file validation.

    Attributes
    ----------
    is_valid : bool
        True if config loaded and validated successfully.
    config : dict | None
        Loaded configuration (None if load failed).
    file_path : Path | None
        Path to the config file (None if using defaults).
    warnings : list[str]
        Non-fatal warnings (e.g., missing optional fields).
    errors : list[str]
        Fatal errors (e.g., parse failures).
    recovery_suggestions : list[str]
        Actionable suggestions for fixing issues.
    """

    is_valid: bool
    config: dict[str, Any] | None
    file_path: Path | None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    recovery_suggestions: list[str] = field(default_factory=list)


# =============================================================================
# Nyquist Validation
# =============================================================================


def validate_nyquist(
    sampling_rate_hz: float,
    cutoffs_hz: float | Sequence[float],
) -> NyquistResult:
    """
    Validate filter cutoffs against the Nyquist frequency.

    Every cutoff must satisfy 0 < f < fs/2. Two-edge bands (bandpass,
    bandstop) must be strictly increasing.

    Parameters
    ----------
    sampling_rate_hz : float
        Sampling rate of the signal.
    cutoffs_hz : float or sequence of float
        One cutoff (lowpass/highpass) or a (low, high) pair.

    Returns
    -------
    NyquistResult
        Validation result with is_valid status and diagnostic info.

    Examples
    --------
    >>> validate_nyquist(250.0, (8.0, 12.0)).is_valid
    True
    >>> result = validate_nyquist(250.0, 130.0)
    >>> result.is_valid
    False
    >>> result.errors
    ['NYQUIST VIOLATION: ...']
    """
    if isinstance(cutoffs_hz, (int, float)):
        cutoffs = (float(cutoffs_hz),)
    else:
        cutoffs = tuple(float(c) for c in cutoffs_hz)

    nyquist_freq = sampling_rate_hz / 2.0
    normalized = tuple(c / nyquist_freq for c in cutoffs) if nyquist_freq > 0 else ()

    warnings = []
    errors = []
    suggestions = []

    if not cutoffs:
        errors.append("MISSING CUTOFF: at least one cutoff frequency is required.")

    for c in cutoffs:
        if c <= 0:
            errors.append(
                f"NON-POSITIVE CUTOFF: {c} Hz. Cutoffs must be > 0 Hz."
            )
            suggestions.append("Use a highpass/lowpass cutoff strictly above 0 Hz.")
        elif c >= nyquist_freq:
            errors.append(
                f"NYQUIST VIOLATION: cutoff ({c} Hz) must be < fs/2 "
                f"({nyquist_freq} Hz) at fs = {sampling_rate_hz} Hz."
            )
            suggestions.append(
                f"Lower the cutoff below {nyquist_freq:.1f} Hz, or resample "
                f"the recording above {2.0 * c:.1f} Hz."
            )
        elif min(c, nyquist_freq - c) < EDGE_WARNING_FRACTION * nyquist_freq:
            warnings.append(
                f"EDGE CUTOFF: {c} Hz lies within {EDGE_WARNING_FRACTION:.1%} of a band "
                "edge; IIR designs there are poorly conditioned."
            )

    if len(cutoffs) > 2:
        errors.append(f"TOO MANY CUTOFFS: expected 1 or 2, got {len(cutoffs)}.")
    if len(cutoffs) == 2 and not cutoffs[0] < cutoffs[1]:
        errors.append(
            f"CUTOFF ORDER: low ({cutoffs[0]} Hz) must be < high ({cutoffs[1]} Hz)."
        )
        suggestions.append("Pass band edges as (low, high).")

    return NyquistResult(
        is_valid=len(errors) == 0,
        sampling_rate_hz=sampling_rate_hz,
        cutoffs_hz=cutoffs,
        nyquist_frequency_hz=nyquist_freq,
        normalized_cutoffs=normalized,
        warnings=warnings,
        errors=errors,
        recovery_suggestions=suggestions,
    )


# =============================================================================
# Welch Segmentation Validation
# =============================================================================


def validate_segment_params(
    n_samples: int,
    segment_len: int,
    overlap: float,
    nfft: int | None = None,
) -> SegmentResult:
    """
    Validate Welch segmentation parameters for a signal of ``n_samples``.

    Parameters
    ----------
    n_samples : int
        Length of the analysed signal.
    segment_len : int
        Samples per segment (>= 2).
    overlap : float
        Fraction of overlap between consecutive segments, in [0, 1).
    nfft : int, optional
        FFT length; must be >= segment_len when given.

    Returns
    -------
    SegmentResult
    """
    warnings = []
    errors = []
    suggestions = []

    if int(segment_len) != segment_len or segment_len < 2:
        errors.append(f"SEGMENT LENGTH: must be an integer >= 2, got {segment_len}.")
    if not 0.0 <= overlap < 1.0:
        errors.append(f"OVERLAP: fraction must lie in [0, 1), got {overlap}.")
        suggestions.append("Use 0.5 (50%) overlap for Hann-windowed Welch estimates.")
    if nfft is not None and nfft < segment_len:
        errors.append(f"NFFT: nfft ({nfft}) must be >= segment_len ({segment_len}).")

    too_long = False
    n_segments = 0
    if not errors:
        if segment_len > n_samples:
            too_long = True
            errors.append(
                f"SEGMENT TOO LONG: segment_len ({segment_len}) exceeds the "
                f"{n_samples} samples available."
            )
            suggestions.append(f"Use segment_len <= {n_samples}.")
        else:
            step = segment_len - int(round(overlap * segment_len))
            step = max(step, 1)
            n_segments = 1 + (n_samples - segment_len) // step
            if n_segments < 2:
                warnings.append(
                    "SINGLE SEGMENT: only one segment fits; the estimate will "
                    "not be averaged (coherence is 1 everywhere)."
                )

    return SegmentResult(
        is_valid=len(errors) == 0,
        segment_too_long=too_long,
        n_segments=n_segments,
        warnings=warnings,
        errors=errors,
        recovery_suggestions=suggestions,
    )


# =============================================================================
# Configuration File Validation
# =============================================================================

# Sections the pipeline cannot run without
REQUIRED_CONFIG_SECTIONS = ["filter", "spectral", "detection"]

# section -> parameter -> (type, min, max)
CONFIG_TYPE_SPECS = {
    "filter": {
        "order": (int, 1, 64),
    },
    "spectral": {
        "segment_len": (int, 2, 1_000_000),
        "overlap": (float, 0.0, 0.99),
    },
    "separation": {
        "tol": (float, 1e-12, 1.0),
        "max_iter": (int, 1, 100_000),
    },
    "detection": {
        "threshold_high": (float, 0.0, 1e12),
        "min_duration": (int, 1, 1_000_000),
        "refractory_samples": (int, 0, 1_000_000),
        "window": (int, 1, 1_000_000),
    },
    "parallel": {
        "max_workers": (int, 1, 1024),
    },
}


def _check_param(
    section: dict[str, Any],
    key: str,
    label: str,
    spec: tuple[type, float, float],
    strict: bool,
    warnings: list[str],
    errors: list[str],
) -> None:
    """Type-check (converting where allowed) and range-check one parameter in place."""
    expected, low, high = spec
    value = section[key]

    accepted = (float, int) if expected is float else (expected,)
    if isinstance(value, bool) or not isinstance(value, accepted):
        message = f"{label} should be {expected.__name__}, got {type(value).__name__}"
        if strict:
            errors.append(f"TYPE ERROR: {message}.")
            return
        try:
            value = expected(value)
        except (TypeError, ValueError):
            errors.append(f"CONVERSION FAILED: {message} and cannot be converted.")
            return
        warnings.append(f"TYPE WARNING: {message}; converted to {value!r}.")
        section[key] = value

    if not low <= value <= high:
        warnings.append(f"RANGE WARNING: {label}={value} is outside [{low}, {high}].")


def validate_config_file(
    config_path: Path | str | None = None,
    strict: bool = False,
) -> ConfigValidationResult:
    """
    Load a pipeline YAML file and check its structure and values.

    Unreadable files fall back to the built-in defaults so that ``config``
    is always usable; the problems are reported rather than raised.

    Parameters
    ----------
    config_path : Path or str, optional
        YAML file. Defaults to ``configs/default_pipeline.yaml``.
    strict : bool
        Missing sections and wrong types become errors, and any warning
        makes the result invalid.

    Returns
    -------
    ConfigValidationResult

    Examples
    --------
    >>> result = validate_config_file("configs/default_pipeline.yaml", strict=True)
    >>> result.is_valid
    True
    """
    from biosig_engine.config import DEFAULT_CONFIG_PATH, _read_yaml, get_default_config

    path = DEFAULT_CONFIG_PATH if config_path is None else Path(config_path)
    defaults = get_default_config()
    warnings: list[str] = []
    errors: list[str] = []
    suggestions: list[str] = []

    file_exists = path.exists()
    config, read_error = _read_yaml(path)

    if not file_exists:
        warnings.append(f"CONFIG FILE NOT FOUND: '{path}' does not exist. Using built-in defaults.")
        suggestions.append(f"Create '{path}' or call load_config() without a path.")
        config = defaults
    elif read_error is not None:
        errors.append(f"YAML PARSE ERROR: {read_error}")
        suggestions.append("Check YAML syntax: 2-space indentation, a colon after each key, no tabs.")
        config = defaults
    elif config is None:
        warnings.append(f"CONFIG FILE EMPTY: '{path}' holds no settings. Using built-in defaults.")
        config = defaults
    elif not isinstance(config, dict):
        errors.append(
            f"CONFIG STRUCTURE: top level must be a mapping, got {type(config).__name__}."
        )
        config = defaults

    for name in REQUIRED_CONFIG_SECTIONS:
        if name in config:
            continue
        if strict:
            errors.append(f"MISSING REQUIRED SECTION: '{name}' not found in config.")
        else:
            warnings.append(f"MISSING SECTION: '{name}' not found. Using defaults.")
        config[name] = dict(defaults[name])

    for name, params in CONFIG_TYPE_SPECS.items():
        section = config.get(name)
        if not isinstance(section, dict):
            continue
        for param, spec in params.items():
            if section.get(param) is not None:
                _check_param(section, param, f"{name}.{param}", spec, strict, warnings, errors)

    is_valid = not errors and not (strict and warnings)
    return ConfigValidationResult(
        is_valid=is_valid,
        config=config,
        file_path=path if file_exists else None,
        warnings=warnings,
        errors=errors,
        recovery_suggestions=suggestions,
    )
