"""
Pipeline Orchestration

Wires the processing stages in data-flow order from a config dict:

    raw ──> filter ──> PSD
                 └───> separation ──> artifact removal ──> events
                                                      └──> connectivity

Each stage is optional (``<section>.enabled``) except the PSD. Stages run
one after another; parallelism lives inside each stage (``parallel.max_workers``).

Usage:
    from biosig_engine.pipeline import Pipeline

    result = Pipeline.from_config().run(buffer)
    print(result.psd.peak_frequency())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from biosig_engine.config import get_default_config, load_config
from biosig_engine.connectivity.measures import ConnectivityMatrix, connectivity
from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.parallel import CancellationToken, check_cancelled
from biosig_engine.detection.event_detector import DetectorConfig, Event, detect_events
from biosig_engine.filtering.apply import apply
from biosig_engine.filtering.design import FilterSpec, design
from biosig_engine.filtering.unmixing import (
    SeparationResult,
    remove_and_reconstruct,
    separate,
    suggest_artifacts,
)
from biosig_engine.spectral.welch import SpectralEstimate, psd

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """
    Outputs of one pipeline run.

    Attributes
    ----------
    filtered : SignalBuffer
        Filter stage output (the input buffer when filtering is disabled).
    psd : SpectralEstimate
        Welch PSD of ``filtered``.
    separation : SeparationResult or None
        Decomposition of ``filtered`` when separation is enabled.
    cleaned : SignalBuffer
        ``filtered`` with artifact components removed (or ``filtered``).
    events : list of Event
        Detector output on ``cleaned`` (empty when detection is disabled).
    connectivity : ConnectivityMatrix or None
        Connectivity of ``cleaned`` when enabled.
    removed_components : list of int
        Component ids removed from ``filtered``.
    """

    filtered: SignalBuffer
    psd: SpectralEstimate
    separation: SeparationResult | None
    cleaned: SignalBuffer
    events: list[Event] = field(default_factory=list)
    connectivity: ConnectivityMatrix | None = None
    removed_components: list[int] = field(default_factory=list)


class Pipeline:
    """
    Configured chain of processing stages.

    Parameters
    ----------
    config : dict, optional
        Config in the layout of ``configs/default_pipeline.yaml``.
        Defaults to ``get_default_config()``.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config if config is not None else get_default_config()
        self.max_workers = self.config.get("parallel", {}).get("max_workers")

    @classmethod
    def from_config(cls, path: str | Path | None = None) -> "Pipeline":
        """Build a pipeline from a YAML file (default config when None)."""
        return cls(load_config(path))

    def _section(self, name: str) -> dict[str, Any]:
        return self.config.get(name) or {}

    def _filter(self, buffer: SignalBuffer, cancel: CancellationToken | None) -> SignalBuffer:
        cfg = self._section("filter")
        if not cfg.get("enabled", True):
            return buffer
        family = cfg.get("family", "butterworth")
        spec = FilterSpec(
            family=family,
            order=cfg.get("order", 4),
            band=cfg.get("band", "bandpass"),
            cutoff=cfg["cutoff"],
            fs=buffer.fs,
            ripple_db=cfg.get("ripple_db") if family == "chebyshev" else None,
        )
        return apply(
            design(spec),
            buffer,
            mode=cfg.get("mode", "zero_phase"),
            padding=cfg.get("padding", "reflect"),
            cancel=cancel,
            max_workers=self.max_workers,
        )

    def _spectral_kwargs(self) -> dict[str, Any]:
        cfg = self._section("spectral")
        return {
            "window": cfg.get("window", "hann"),
            "segment_len": cfg.get("segment_len", 256),
            "overlap": cfg.get("overlap", 0.5),
            "nfft": cfg.get("nfft"),
            "detrend": cfg.get("detrend"),
        }

    def _separate(
        self,
        buffer: SignalBuffer,
        artifact_components: Iterable[int] | None,
        cancel: CancellationToken | None,
    ) -> tuple[SeparationResult | None, SignalBuffer, list[int]]:
        cfg = self._section("separation")
        if not cfg.get("enabled", False):
            return None, buffer, []

        result = separate(
            buffer,
            cfg.get("n_components"),
            tol=cfg.get("tol", 1e-4),
            max_iter=cfg.get("max_iter", 200),
            contrast=cfg.get("contrast", "logcosh"),
            reference_channels=cfg.get("reference_channels") or None,
            kurtosis_weight=cfg.get("kurtosis_weight", 0.5),
            random_state=cfg.get("random_state", 0),
            cancel=cancel,
        )
        if artifact_components is not None:
            ids = sorted(set(artifact_components))
        elif cfg.get("auto_remove", False):
            ids = suggest_artifacts(result, cfg.get("artifact_threshold", 0.5))
        else:
            ids = []
        if ids:
            logger.info("Removing artifact components %s", ids)
        return result, remove_and_reconstruct(result, ids), ids

    def _detect(self, buffer: SignalBuffer, cancel: CancellationToken | None) -> list[Event]:
        cfg = dict(self._section("detection"))
        if not cfg.pop("enabled", True):
            return []
        return detect_events(
            buffer, DetectorConfig(**cfg), cancel=cancel, max_workers=self.max_workers
        )

    def _connectivity(
        self,
        buffer: SignalBuffer,
        cancel: CancellationToken | None,
    ) -> ConnectivityMatrix | None:
        cfg = self._section("connectivity")
        if not cfg.get("enabled", True) or buffer.n_channels < 2:
            return None
        return connectivity(
            buffer,
            measure=cfg.get("measure", "coherence"),
            band=cfg.get("band"),
            cancel=cancel,
            max_workers=self.max_workers,
            **self._spectral_kwargs(),
        )

    def run(
        self,
        buffer: SignalBuffer,
        artifact_components: Iterable[int] | None = None,
        cancel: CancellationToken | None = None,
    ) -> PipelineResult:
        """
        Run every enabled stage on ``buffer``.

        Parameters
        ----------
        buffer : SignalBuffer
            Raw recording (never modified).
        artifact_components : iterable of int, optional
            Components to remove after separation. Overrides
            ``separation.auto_remove``.
        cancel : CancellationToken, optional
            Checked inside every stage and between stages.

        Returns
        -------
        PipelineResult

        Raises
        ------
        BiosigError
            Whatever a stage raises; no partial result is returned.
        """
        logger.info("Pipeline run on %r", buffer)

        filtered = self._filter(buffer, cancel)
        check_cancelled(cancel)

        spectrum = psd(filtered, cancel=cancel, max_workers=self.max_workers, **self._spectral_kwargs())
        check_cancelled(cancel)

        separation, cleaned, removed = self._separate(filtered, artifact_components, cancel)
        check_cancelled(cancel)

        events = self._detect(cleaned, cancel)
        check_cancelled(cancel)

        matrix = self._connectivity(cleaned, cancel)

        logger.info(
            "Pipeline done: %d event(s), %d component(s) removed", len(events), len(removed)
        )
        return PipelineResult(
            filtered=filtered,
            psd=spectrum,
            separation=separation,
            cleaned=cleaned,
            events=events,
            connectivity=matrix,
            removed_components=removed,
        )
