"""
Artifact Separation via Fixed-Point ICA

Decomposes a multi-channel recording into statistically independent
components, scores each component for artifact likelihood, and rebuilds the
recording with chosen components removed.

Pipeline:
1. Centre channels (StandardScaler, mean only)
2. Whiten: eigendecomposition of the channel covariance, near-zero
   eigenvalues discarded, Z = D^(-1/2) E^T X
3. Fixed-point iteration (symmetric / parallel FastICA):
       W+ = E[g(WZ) Z^T] - diag(E[g'(WZ)]) W
       W  = (W+ W+^T)^(-1/2) W+
   until max|1 - |diag(W+ W^T)|| < tol
4. Scoring: excess kurtosis (eye blinks, muscle bursts and electrode pops are
   strongly super-Gaussian) and |r| against reference channels (EOG/ECG);
   each reference channel is paired with one component (Hungarian assignment)
5. Reconstruction: X_clean = X - A[:, R] S[R] for the removal set R

Mathematical Model:
    X = A @ S        (mixing, A = E D^(1/2) W^T)
    S = W_u @ X      (unmixing, W_u = W D^(-1/2) E^T)

References:
    - Hyvarinen, A., & Oja, E. (2000). Independent component analysis:
      algorithms and applications. Neural Networks, 13(4-5), 411-430.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, NamedTuple, Sequence

import numpy as np
from scipy import stats
from scipy.optimize import linear_sum_assignment
from sklearn.preprocessing import StandardScaler
from sklearn.utils import check_random_state

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.constants import (
    DEFAULT_ARTIFACT_THRESHOLD,
    DEFAULT_KURTOSIS_WEIGHT,
    DEFAULT_RANDOM_SEED,
    DEFAULT_RANK_TOL,
    DEFAULT_SEPARATION_MAX_ITER,
    DEFAULT_SEPARATION_TOL,
)
from biosig_engine.core.exceptions import (
    InsufficientRankError,
    InvalidParameterError,
    NotConvergedError,
)
from biosig_engine.core.parallel import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SeparationResult:
    """Container for separation results."""

    # Decomposition
    sources: np.ndarray  # (n_components, n_samples)
    unmixing: np.ndarray  # (n_components, n_channels)
    mixing: np.ndarray  # (n_channels, n_components)
    mean: np.ndarray  # (n_channels,) - removed before unmixing

    # Artifact scoring (advisory)
    artifact_scores: np.ndarray  # (n_components,) in [0, 1]
    kurtosis: np.ndarray  # (n_components,) excess kurtosis
    reference_correlation: np.ndarray | None  # (n_components, n_refs) |r|
    reference_components: dict[str, int]  # reference channel -> best component

    # Convergence statistics
    n_iter: int
    delta: float
    rank: int

    # The separated recording, used to restore what the components don't span
    buffer: SignalBuffer

    @property
    def n_components(self) -> int:
        return self.sources.shape[0]


class _IterationState(NamedTuple):
    """Accumulator threaded through the fixed-point loop."""

    unmixing: np.ndarray  # (k, k) rotation in whitened space
    delta: float
    n_iter: int


# =============================================================================
# Contrast functions: return g(u) and mean(g'(u)) per row
# =============================================================================


def _logcosh(u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    gu = np.tanh(u)
    return gu, (1.0 - gu ** 2).mean(axis=1)


def _exp(u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    e = np.exp(-(u ** 2) / 2.0)
    return u * e, ((1.0 - u ** 2) * e).mean(axis=1)


def _cube(u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    return u ** 3, (3.0 * u ** 2).mean(axis=1)


CONTRASTS: dict[str, Callable[[np.ndarray], tuple[np.ndarray, np.ndarray]]] = {
    "logcosh": _logcosh,
    "exp": _exp,
    "cube": _cube,
}


# =============================================================================
# Whitening
# =============================================================================


def whiten(
    data: np.ndarray,
    n_components: int | None = None,
    rank_tol: float = DEFAULT_RANK_TOL,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, int]:
    """
    Centre and whiten channel data.

    Parameters
    ----------
    data : np.ndarray
        Channel data, shape (n_channels, n_samples).
    n_components : int, optional
        Components to keep. Defaults to the covariance rank.
    rank_tol : float
        Eigenvalues below rank_tol * max eigenvalue count as zero.

    Returns
    -------
    whitened : np.ndarray
        Whitened data, shape (n_components, n_samples), identity covariance.
    whitening : np.ndarray
        Whitening matrix K, shape (n_components, n_channels).
    dewhitening : np.ndarray
        Inverse map E D^(1/2), shape (n_channels, n_components).
    mean : np.ndarray
        Channel means removed, shape (n_channels,).
    rank : int
        Numerical rank of the covariance.

    Raises
    ------
    InsufficientRankError
        The covariance rank is below ``n_components``.
    """
    # Transpose: sklearn expects (n_samples, n_features)
    scaler = StandardScaler(with_std=False)  # Only center, don't scale
    centered = scaler.fit_transform(data.T).T
    n_samples = centered.shape[1]

    cov = centered @ centered.T / n_samples
    eigvals, eigvecs = np.linalg.eigh(cov)
    order = np.argsort(eigvals)[::-1]
    eigvals, eigvecs = eigvals[order], eigvecs[:, order]

    top = eigvals[0] if eigvals.size else 0.0
    rank = int(np.sum(eigvals > rank_tol * top)) if top > 0 else 0
    if n_components is None:
        n_components = rank
    if rank < n_components or rank == 0:
        raise InsufficientRankError(
            f"covariance rank {rank} is below the {n_components} components requested",
            rank=rank,
            n_components=n_components,
        )

    d = eigvals[:n_components]
    e = eigvecs[:, :n_components]
    whitening = (e / np.sqrt(d)).T
    dewhitening = e * np.sqrt(d)
    return whitening @ centered, whitening, dewhitening, scaler.mean_, rank


def _sym_decorrelation(w: np.ndarray) -> np.ndarray:
    """W <- (W W^T)^(-1/2) W"""
    s, u = np.linalg.eigh(w @ w.T)
    s = np.clip(s, a_min=np.finfo(w.dtype).tiny, a_max=None)
    return (u * (1.0 / np.sqrt(s))) @ u.T @ w


def _fixed_point_step(
    state: _IterationState,
    whitened: np.ndarray,
    contrast: Callable[[np.ndarray], tuple[np.ndarray, np.ndarray]],
) -> _IterationState:
    w = state.unmixing
    gwx, g_wx = contrast(w @ whitened)
    w_new = _sym_decorrelation(gwx @ whitened.T / whitened.shape[1] - g_wx[:, np.newaxis] * w)
    delta = float(np.max(np.abs(np.abs(np.einsum("ij,ij->i", w_new, w)) - 1.0)))
    return _IterationState(w_new, delta, state.n_iter + 1)


def fixed_point_ica(
    whitened: np.ndarray,
    contrast: str = "logcosh",
    tol: float = DEFAULT_SEPARATION_TOL,
    max_iter: int = DEFAULT_SEPARATION_MAX_ITER,
    random_state: int | np.random.RandomState | None = DEFAULT_RANDOM_SEED,
    cancel: CancellationToken | None = None,
) -> _IterationState:
    """
    Rotate whitened data toward statistical independence.

    Parameters
    ----------
    whitened : np.ndarray
        Whitened data, shape (n_components, n_samples).
    contrast : str
        'logcosh' (default, robust for super-Gaussian sources), 'exp' or 'cube'.
    tol : float
        Convergence tolerance on the rotation change.
    max_iter : int
        Iteration cap.
    random_state : int, RandomState or None
        Seed for the initial rotation.
    cancel : CancellationToken, optional
        Checked once per iteration.

    Returns
    -------
    _IterationState
        Converged rotation, final delta and iterations run.

    Raises
    ------
    NotConvergedError
        ``max_iter`` reached with delta >= tol. Carries the last state.
    """
    g = CONTRASTS[contrast]
    k = whitened.shape[0]
    rng = check_random_state(random_state)
    w0 = _sym_decorrelation(rng.standard_normal((k, k)))

    state = _IterationState(w0, float("inf"), 0)
    while state.n_iter < max_iter:
        check_cancelled(cancel)
        state = _fixed_point_step(state, whitened, g)
        if state.delta < tol:
            logger.debug("ICA converged in %d iterations (delta=%.3g)", state.n_iter, state.delta)
            return state

    logger.warning(
        "ICA did not converge: %d iterations, last delta %.3g >= tol %.3g",
        state.n_iter, state.delta, tol,
    )
    raise NotConvergedError(
        f"separation did not converge within {max_iter} iterations "
        f"(last delta {state.delta:.3g}, tol {tol:.3g})",
        n_iter=state.n_iter,
        delta=state.delta,
        unmixing=state.unmixing,
    )


# =============================================================================
# Artifact scoring
# =============================================================================


class ComponentMatch(NamedTuple):
    """One-to-one pairing of components with target signals."""

    components: np.ndarray  # (n_targets,) component id per target, -1 when unpaired
    signs: np.ndarray  # (n_targets,) +1 / -1 so each pair correlates positively
    correlation: np.ndarray  # (n_components, n_targets) signed Pearson r
    matched: np.ndarray  # (n_targets, n_samples) sign-corrected components


def _cross_correlation(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Pearson r between every row of ``a`` and every row of ``b``; 0 for flat rows."""
    a = a - a.mean(axis=1, keepdims=True)
    b = b - b.mean(axis=1, keepdims=True)
    norms = np.outer(np.linalg.norm(a, axis=1), np.linalg.norm(b, axis=1))
    corr = np.zeros(norms.shape)
    np.divide(a @ b.T, norms, out=corr, where=norms > 0)
    return np.clip(corr, -1.0, 1.0)


def match_components(sources: np.ndarray, targets: np.ndarray) -> ComponentMatch:
    """
    Pair each target signal with the component that best explains it.

    Targets are reference channels (EOG, ECG) during scoring, or known
    sources when judging a decomposition. The assignment maximises total
    |r| with each component used at most once (Hungarian algorithm), and
    resolves ICA's sign ambiguity per pair.

    Parameters
    ----------
    sources : np.ndarray
        Components, shape (n_components, n_samples).
    targets : np.ndarray
        Target signals, shape (n_targets, n_samples).

    Returns
    -------
    ComponentMatch
        When there are more targets than components, the surplus targets
        get component id -1, sign +1 and a zero ``matched`` row.
    """
    sources = np.atleast_2d(np.asarray(sources, dtype=np.float64))
    targets = np.atleast_2d(np.asarray(targets, dtype=np.float64))
    if sources.shape[1] != targets.shape[1]:
        raise InvalidParameterError(
            f"sources have {sources.shape[1]} samples, targets {targets.shape[1]}"
        )

    corr = _cross_correlation(sources, targets)
    rows, cols = linear_sum_assignment(-np.abs(corr))

    n_targets = targets.shape[0]
    components = np.full(n_targets, -1, dtype=int)
    signs = np.ones(n_targets)
    matched = np.zeros_like(targets)
    components[cols] = rows
    signs[cols] = np.where(corr[rows, cols] < 0, -1.0, 1.0)
    matched[cols] = sources[rows] * signs[cols, None]

    return ComponentMatch(components, signs, corr, matched)


def score_components(
    sources: np.ndarray,
    reference: np.ndarray | None = None,
    kurtosis_weight: float = DEFAULT_KURTOSIS_WEIGHT,
) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
    """
    Score components for artifact likelihood.

    Parameters
    ----------
    sources : np.ndarray
        Components, shape (n_components, n_samples).
    reference : np.ndarray, optional
        Reference signals (EOG, ECG, ...), shape (n_refs, n_samples).
    kurtosis_weight : float
        Weight of the kurtosis term when a reference is given, in [0, 1].

    Returns
    -------
    scores : np.ndarray
        Combined score per component in [0, 1].
    kurt : np.ndarray
        Excess (Fisher) kurtosis per component.
    ref_corr : np.ndarray or None
        |Pearson r| per (component, reference).
    """
    if not 0.0 <= kurtosis_weight <= 1.0:
        raise InvalidParameterError(f"kurtosis_weight must lie in [0, 1], got {kurtosis_weight}")

    kurt = stats.kurtosis(sources, axis=1, fisher=True)
    kurt_score = np.where(kurt > 0, kurt / (1.0 + np.abs(kurt)), 0.0)

    if reference is None or len(reference) == 0:
        return kurt_score, kurt, None

    ref_corr = np.abs(match_components(sources, reference).correlation)

    scores = kurtosis_weight * kurt_score + (1.0 - kurtosis_weight) * ref_corr.max(axis=1)
    return scores, kurt, ref_corr


def suggest_artifacts(
    result: SeparationResult,
    threshold: float = DEFAULT_ARTIFACT_THRESHOLD,
) -> list[int]:
    """Component ids whose artifact score exceeds ``threshold`` (advisory)."""
    return [int(i) for i in np.flatnonzero(result.artifact_scores > threshold)]


# =============================================================================
# Public API
# =============================================================================


def separate(
    buffer: SignalBuffer,
    n_components: int | None = None,
    *,
    tol: float = DEFAULT_SEPARATION_TOL,
    max_iter: int = DEFAULT_SEPARATION_MAX_ITER,
    contrast: str = "logcosh",
    reference_channels: Sequence[str] | None = None,
    kurtosis_weight: float = DEFAULT_KURTOSIS_WEIGHT,
    rank_tol: float = DEFAULT_RANK_TOL,
    random_state: int | None = DEFAULT_RANDOM_SEED,
    cancel: CancellationToken | None = None,
) -> SeparationResult:
    """
    Separate a buffer into independent components and score them.

    Parameters
    ----------
    buffer : SignalBuffer
        Recording to decompose (read-only).
    n_components : int, optional
        Components to extract. Defaults to the covariance rank.
    tol : float
        Convergence tolerance.
    max_iter : int
        Iteration cap.
    contrast : str
        Non-quadratic contrast: 'logcosh', 'exp' or 'cube'.
    reference_channels : sequence of str, optional
        Channels used as artifact references for scoring.
    kurtosis_weight : float
        Kurtosis weight in the combined score when references are given.
    rank_tol : float
        Relative eigenvalue floor for the rank estimate.
    random_state : int, optional
        Seed for the initial rotation (deterministic by default).
    cancel : CancellationToken, optional
        Checked every iteration.

    Returns
    -------
    SeparationResult

    Raises
    ------
    InvalidParameterError
        Bad n_components, tol, max_iter or contrast.
    ChannelNotFound
        Unknown reference channel.
    InsufficientRankError
        Covariance rank below n_components.
    NotConvergedError
        Iteration cap reached; carries iterations run and last delta.
    """
    if n_components is not None and not 1 <= n_components <= buffer.n_channels:
        raise InvalidParameterError(
            f"n_components must lie in [1, {buffer.n_channels}], got {n_components}"
        )
    if buffer.n_samples < 2:
        raise InvalidParameterError("separation needs at least 2 samples")
    if not tol > 0:
        raise InvalidParameterError(f"tol must be > 0, got {tol}")
    if max_iter < 1:
        raise InvalidParameterError(f"max_iter must be >= 1, got {max_iter}")
    if contrast not in CONTRASTS:
        raise InvalidParameterError(
            f"Unknown contrast '{contrast}'. Use one of {sorted(CONTRASTS)}."
        )
    ref_idx = [buffer.index_of(ch) for ch in (reference_channels or [])]
    check_cancelled(cancel)

    whitened, whitening, dewhitening, mean, rank = whiten(buffer.data, n_components, rank_tol)
    logger.debug(
        "Whitened %d channels to %d components (rank %d)",
        buffer.n_channels, whitened.shape[0], rank,
    )

    state = fixed_point_ica(whitened, contrast, tol, max_iter, random_state, cancel)

    unmixing = state.unmixing @ whitening
    mixing = dewhitening @ state.unmixing.T
    sources = state.unmixing @ whitened

    reference = buffer.data[ref_idx] if ref_idx else None
    scores, kurt, ref_corr = score_components(sources, reference, kurtosis_weight)
    ref_components: dict[str, int] = {}
    if reference is not None:
        paired = match_components(sources, reference).components
        ref_components = {
            buffer.channels[i]: int(c) for i, c in zip(ref_idx, paired) if c >= 0
        }
        logger.debug("Reference channels matched to components: %s", ref_components)

    return SeparationResult(
        sources=sources,
        unmixing=unmixing,
        mixing=mixing,
        mean=np.asarray(mean),
        artifact_scores=scores,
        kurtosis=kurt,
        reference_correlation=ref_corr,
        reference_components=ref_components,
        n_iter=state.n_iter,
        delta=state.delta,
        rank=rank,
        buffer=buffer,
    )


def remove_and_reconstruct(
    result: SeparationResult,
    artifact_component_ids: Iterable[int],
) -> SignalBuffer:
    """
    Rebuild the recording without the chosen components.

    Parameters
    ----------
    result : SeparationResult
        Output of ``separate``.
    artifact_component_ids : iterable of int
        Components to remove. An empty set returns the original samples.

    Returns
    -------
    SignalBuffer
        Same channels, length and rate as the separated buffer; metadata
        records ``removed_components``.

    Raises
    ------
    InvalidParameterError
        A component id is out of range.
    """
    ids = sorted({int(i) for i in artifact_component_ids})
    for i in ids:
        if not 0 <= i < result.n_components:
            raise InvalidParameterError(
                f"component id {i} out of range [0, {result.n_components})"
            )

    original = result.buffer.data
    if ids:
        cleaned = original - result.mixing[:, ids] @ result.sources[ids]
    else:
        cleaned = np.array(original, copy=True)
    logger.debug("Removed components %s", ids)
    return result.buffer.with_data(cleaned, removed_components=ids)

