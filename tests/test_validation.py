"""
Tests for biosig_engine Validation Module

Tests Nyquist checks on filter cutoffs, Welch segmentation checks and
configuration file validation.
"""

from __future__ import annotations

from pathlib import Path
import tempfile

import pytest

from biosig_engine.validation import (
    ConfigValidationResult,
    NyquistResult,
    SegmentResult,
    validate_config_file,
    validate_nyquist,
    validate_segment_params,
)


# =============================================================================
# Nyquist Validation Tests
# =============================================================================


class TestNyquistValidation:
    """Tests for cutoff-vs-Nyquist validation."""

    def test_valid_band(self):
        """Test that a band inside (0, fs/2) passes validation."""
        result = validate_nyquist(sampling_rate_hz=250.0, cutoffs_hz=(8.0, 12.0))

        assert isinstance(result, NyquistResult)
        assert result.is_valid is True
        assert len(result.errors) == 0
        assert result.nyquist_frequency_hz == 125.0
        assert result.normalized_cutoffs == pytest.approx((0.064, 0.096))

    def test_nyquist_violation(self):
        """Test that a cutoff above Nyquist is rejected."""
        result = validate_nyquist(sampling_rate_hz=250.0, cutoffs_hz=130.0)

        assert result.is_valid is False
        assert "NYQUIST VIOLATION" in result.errors[0]
        assert len(result.recovery_suggestions) > 0

    def test_edge_case_exact_nyquist(self):
        """Test edge case at exactly Nyquist limit."""
        # Cutoffs must be strictly below fs/2
        result = validate_nyquist(sampling_rate_hz=250.0, cutoffs_hz=125.0)

        assert result.is_valid is False

    def test_zero_cutoff(self):
        """Test that a 0 Hz cutoff is rejected."""
        result = validate_nyquist(sampling_rate_hz=250.0, cutoffs_hz=0.0)

        assert result.is_valid is False
        assert "NON-POSITIVE CUTOFF" in result.errors[0]

    def test_reversed_band(self):
        """Test that (high, low) ordering is rejected."""
        result = validate_nyquist(sampling_rate_hz=250.0, cutoffs_hz=[40.0, 1.0])

        assert result.is_valid is False
        assert any("CUTOFF ORDER" in e for e in result.errors)

    def test_too_many_cutoffs(self):
        """Test that three edges are rejected."""
        result = validate_nyquist(sampling_rate_hz=250.0, cutoffs_hz=[1.0, 2.0, 3.0])

        assert result.is_valid is False

    def test_edge_cutoff_warning(self):
        """Test warning for a cutoff hugging 0 Hz."""
        result = validate_nyquist(sampling_rate_hz=250.0, cutoffs_hz=0.1)

        assert result.is_valid is True  # Not a hard failure
        assert len(result.warnings) > 0
        assert "EDGE CUTOFF" in result.warnings[0]


# =============================================================================
# Segment Validation Tests
# =============================================================================


class TestSegmentValidation:
    """Tests for Welch segmentation validation."""

    def test_valid_segments(self):
        """Test segment count for standard parameters."""
        result = validate_segment_params(n_samples=1000, segment_len=256, overlap=0.5)

        assert isinstance(result, SegmentResult)
        assert result.is_valid is True
        assert result.n_segments == 6
        assert result.segment_too_long is False

    def test_segment_too_long(self):
        """Test that a segment longer than the data is flagged."""
        result = validate_segment_params(n_samples=100, segment_len=256, overlap=0.5)

        assert result.is_valid is False
        assert result.segment_too_long is True
        assert "SEGMENT TOO LONG" in result.errors[0]

    def test_single_segment_warning(self):
        """Test warning when only one segment fits."""
        result = validate_segment_params(n_samples=256, segment_len=256, overlap=0.5)

        assert result.is_valid is True
        assert result.n_segments == 1
        assert len(result.warnings) > 0

    @pytest.mark.parametrize("kwargs", [
        {"segment_len": 256, "overlap": 1.0},
        {"segment_len": 1, "overlap": 0.5},
        {"segment_len": 256, "overlap": 0.5, "nfft": 128},
    ])
    def test_invalid_parameters(self, kwargs):
        """Test that malformed parameters are rejected."""
        result = validate_segment_params(n_samples=1000, **kwargs)

        assert result.is_valid is False
        assert result.segment_too_long is False
        assert result.n_segments == 0


# =============================================================================
# Config Validation Tests
# =============================================================================


def _write_temp_yaml(content: str) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(content)
        return f.name


class TestConfigValidation:
    """Tests for configuration file validation."""

    def test_valid_default_config(self):
        """Test loading valid default config."""
        result = validate_config_file()

        assert isinstance(result, ConfigValidationResult)
        assert result.is_valid is True
        assert result.config is not None
        assert "filter" in result.config
        assert "spectral" in result.config

    def test_default_config_strict(self):
        """Test that the shipped config passes strict validation."""
        result = validate_config_file(strict=True)

        assert result.is_valid is True
        assert result.warnings == []

    def test_nonexistent_file_fallback(self):
        """Test fallback to defaults for nonexistent file."""
        result = validate_config_file("/nonexistent/path/config.yaml")

        assert result.is_valid is True  # Falls back gracefully
        assert result.config is not None
        assert result.file_path is None
        assert "not found" in result.warnings[0].lower()

    def test_malformed_yaml(self):
        """Test handling of malformed YAML."""
        temp_path = _write_temp_yaml("invalid: yaml: content: [unclosed")

        try:
            result = validate_config_file(temp_path)

            assert result.config is not None  # Falls back to defaults
            assert result.is_valid is False
            assert "YAML" in result.errors[0].upper()
        finally:
            Path(temp_path).unlink()

    def test_empty_yaml_file(self):
        """Test handling of empty YAML file."""
        temp_path = _write_temp_yaml("")

        try:
            result = validate_config_file(temp_path)

            assert result.config is not None  # Falls back to defaults
            assert len(result.warnings) > 0
        finally:
            Path(temp_path).unlink()

    def test_valid_custom_config(self):
        """Test loading valid custom config."""
        temp_path = _write_temp_yaml("""
filter:
  family: chebyshev
  order: 6
spectral:
  segment_len: 512
  overlap: 0.25
detection:
  threshold_high: 50.0
  refractory_samples: 25
""")

        try:
            result = validate_config_file(temp_path)

            assert result.is_valid is True
            assert result.config["filter"]["order"] == 6
            assert result.config["spectral"]["segment_len"] == 512
        finally:
            Path(temp_path).unlink()

    def test_missing_section(self):
        """Test missing required sections: warning normally, error when strict."""
        temp_path = _write_temp_yaml("spectral:\n  segment_len: 128\n")

        try:
            relaxed = validate_config_file(temp_path)
            strict = validate_config_file(temp_path, strict=True)

            assert relaxed.is_valid is True
            assert any("MISSING SECTION" in w for w in relaxed.warnings)
            assert "filter" in relaxed.config
            assert strict.is_valid is False
            assert any("MISSING REQUIRED SECTION" in e for e in strict.errors)
        finally:
            Path(temp_path).unlink()

    def test_type_conversion(self):
        """Test that a numeric string is converted with a warning."""
        temp_path = _write_temp_yaml("""
filter: {}
spectral:
  segment_len: "256"
detection: {}
""")

        try:
            result = validate_config_file(temp_path)

            assert result.is_valid is True
            assert result.config["spectral"]["segment_len"] == 256
            assert any("TYPE WARNING" in w for w in result.warnings)
        finally:
            Path(temp_path).unlink()

    def test_out_of_range_warning(self):
        """Test that an out-of-range value warns."""
        temp_path = _write_temp_yaml("""
filter: {}
spectral:
  overlap: 0.999
detection: {}
""")

        try:
            result = validate_config_file(temp_path)

            assert any("RANGE WARNING" in w for w in result.warnings)
        finally:
            Path(temp_path).unlink()
