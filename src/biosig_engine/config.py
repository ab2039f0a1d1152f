"""
Pipeline Configuration

YAML files under ``configs/`` hold the parameters of every processing stage.
Anything a file leaves out is taken from ``get_default_config()``, whose
values come from ``core.constants``; a missing, empty or unparsable file
yields the defaults outright.

Usage:
    from biosig_engine.config import load_config

    cfg = load_config()                           # configs/default_pipeline.yaml
    cfg = load_config("configs/high_gamma.yaml")  # any other file
    cfg["spectral"]["segment_len"]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from biosig_engine.core import constants as C

logger = logging.getLogger(__name__)

# src/biosig_engine/config.py -> repository root (editable installs)
PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_DIR = PROJECT_ROOT / "configs"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "default_pipeline.yaml"


def get_config_path(config_name: str = "default_pipeline.yaml") -> Path:
    """Path of a named file in ``configs/`` (the ``.yaml`` suffix is optional)."""
    name = config_name if config_name.endswith(".yaml") else f"{config_name}.yaml"
    return CONFIG_DIR / name


def get_default_config() -> dict[str, Any]:
    """
    Built-in configuration, one section per pipeline stage.

    A fresh dict is returned on every call, so callers may mutate it.
    """
    return {
        "filter": {
            "enabled": True,
            "family": "butterworth",
            "band": "bandpass",
            "cutoff": [1.0, 40.0],
            "order": C.DEFAULT_FILTER_ORDER,
            "ripple_db": C.DEFAULT_CHEBYSHEV_RIPPLE_DB,
            "mode": "zero_phase",
            "padding": "reflect",
        },
        "spectral": {
            "window": "hann",
            "segment_len": C.DEFAULT_SEGMENT_LEN,
            "overlap": C.DEFAULT_OVERLAP,
            "nfft": None,
            "detrend": None,
        },
        "separation": {
            "enabled": False,
            "n_components": None,
            "tol": C.DEFAULT_SEPARATION_TOL,
            "max_iter": C.DEFAULT_SEPARATION_MAX_ITER,
            "contrast": "logcosh",
            "random_state": C.DEFAULT_RANDOM_SEED,
            "reference_channels": [],
            "kurtosis_weight": C.DEFAULT_KURTOSIS_WEIGHT,
            "auto_remove": False,
            "artifact_threshold": C.DEFAULT_ARTIFACT_THRESHOLD,
        },
        "detection": {
            "enabled": True,
            "statistic": "rectified",
            "threshold_high": 100.0,
            "threshold_low": None,
            "min_duration": 1,
            "refractory_samples": 0,
            "window": 1,
            "label": "event",
        },
        "connectivity": {
            "enabled": True,
            "measure": "coherence",
            "band": "alpha",
        },
        "parallel": {
            "max_workers": None,
        },
    }


def _merge_defaults(overrides: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``overrides`` on the defaults, one section at a time."""
    merged = get_default_config()
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def _read_yaml(path: Path) -> tuple[Any, str | None]:
    """Parse ``path``; returns (data, None) or (None, reason)."""
    if not path.exists():
        return None, f"Config file not found: {path}"
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f), None
    except yaml.YAMLError as e:
        return None, f"YAML parse error in {path}: {e} (check indentation and syntax)"
    except OSError as e:
        return None, f"Cannot read {path}: {e}"


def load_config_safe(
    config_path: str | Path | None = None,
) -> tuple[dict[str, Any], list[str]]:
    """
    Load a config file and report every problem instead of logging it.

    Parameters
    ----------
    config_path : str or Path, optional
        YAML file. Defaults to ``DEFAULT_CONFIG_PATH``.

    Returns
    -------
    config : dict
        Always usable: the file merged over the defaults, or the defaults
        alone when the file cannot be used.
    errors : list of str
        Empty when the file loaded cleanly.

    Examples
    --------
    >>> cfg, errors = load_config_safe("configs/typo.yaml")
    >>> errors
    ['YAML parse error in configs/typo.yaml: ... Using defaults.']
    """
    path = DEFAULT_CONFIG_PATH if config_path is None else Path(config_path)
    data, error = _read_yaml(path)

    if error is None and data is None:
        error = f"Config file is empty: {path}"
    elif error is None and not isinstance(data, dict):
        error = f"Config file {path} must hold a mapping at top level, got {type(data).__name__}"

    if error is not None:
        return get_default_config(), [f"{error}. Using defaults."]
    return _merge_defaults(data), []


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load a config file, falling back to the defaults on any problem.

    Never raises; problems are logged as warnings. Use ``load_config_safe``
    to inspect them.

    Examples
    --------
    >>> load_config()["spectral"]["window"]
    'hann'
    """
    config, errors = load_config_safe(config_path)
    for message in errors:
        logger.warning(message)
    return config


def save_config(config: dict[str, Any], config_path: str | Path) -> Path:
    """Write ``config`` as YAML (section order kept), creating parent directories."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    logger.debug("Saved config to %s", path)
    return path
