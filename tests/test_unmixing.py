"""
Artifact Separation Unit Tests

Validates the whitening + fixed-point ICA decomposition, ensuring that
independent sources can be recovered from mixed channel recordings, that
artifact scoring flags super-Gaussian components, and that reconstruction
is exact when nothing is removed.
"""

from __future__ import annotations

import numpy as np
import pytest

from biosig_engine.core.buffer import SignalBuffer
from biosig_engine.core.exceptions import (
    ChannelNotFound,
    InsufficientRankError,
    InvalidParameterError,
    NotConvergedError,
    NumericalFailureError,
)
from biosig_engine.filtering.unmixing import (
    match_components,
    remove_and_reconstruct,
    score_components,
    separate,
    suggest_artifacts,
    whiten,
)


class TestWhitening:
    """Test centring and whitening."""

    def test_whitened_covariance_is_identity(self, mixed_buffer: SignalBuffer) -> None:
        """Whitened data has identity covariance."""
        z, k, dewhite, mean, rank = whiten(mixed_buffer.data)

        assert rank == 3
        cov = z @ z.T / z.shape[1]
        np.testing.assert_allclose(cov, np.eye(3), atol=1e-10)
        np.testing.assert_allclose(mean, mixed_buffer.data.mean(axis=1))
        np.testing.assert_allclose(dewhite @ k @ (mixed_buffer.data - mean[:, None]),
                                   mixed_buffer.data - mean[:, None], atol=1e-9)

    def test_rank_deficient_data(self) -> None:
        """A linearly dependent channel lowers the rank."""
        np.random.seed(42)
        a, b = np.random.randn(2, 1000)
        data = np.vstack([a, b, a + b])

        z, _, _, _, rank = whiten(data)

        assert rank == 2
        assert z.shape == (2, 1000)


class TestSeparate:
    """Test the full decomposition."""

    def test_recovers_independent_sources(
        self,
        mixed_buffer: SignalBuffer,
        independent_sources: np.ndarray,
    ) -> None:
        """Every known source is recovered with |r| > 0.9."""
        result = separate(mixed_buffer)
        match = match_components(result.sources, independent_sources)

        assert result.n_components == 3
        assert result.n_iter >= 1
        assert result.delta < 1e-4
        matched = np.abs(match.correlation[match.components, np.arange(3)])
        assert np.all(matched > 0.9), f"matched correlations: {matched}"

    def test_unmixing_maps_channels_to_sources(self, mixed_buffer: SignalBuffer) -> None:
        """sources = unmixing @ (data - mean)."""
        result = separate(mixed_buffer)
        centred = mixed_buffer.data - result.mean[:, None]

        np.testing.assert_allclose(result.unmixing @ centred, result.sources, atol=1e-8)

    def test_deterministic_with_seed(self, mixed_buffer: SignalBuffer) -> None:
        """The same seed gives the same decomposition."""
        a = separate(mixed_buffer, random_state=3)
        b = separate(mixed_buffer, random_state=3)

        np.testing.assert_array_equal(a.unmixing, b.unmixing)

    @pytest.mark.parametrize("contrast", ["logcosh", "exp", "cube"])
    def test_contrasts_converge(self, mixed_buffer: SignalBuffer, contrast: str) -> None:
        """Every contrast function converges on well-separated sources."""
        result = separate(mixed_buffer, contrast=contrast, max_iter=500)

        assert result.delta < 1e-4

    def test_not_converged_raises(self, mixed_buffer: SignalBuffer) -> None:
        """Hitting the iteration cap raises with the last state attached."""
        with pytest.raises(NotConvergedError) as excinfo:
            separate(mixed_buffer, tol=1e-15, max_iter=2)

        err = excinfo.value
        assert err.n_iter == 2
        assert err.delta >= 1e-15
        assert err.unmixing.shape == (3, 3)
        assert isinstance(err, NumericalFailureError)

    def test_insufficient_rank(self) -> None:
        """Requesting more components than the rank raises."""
        np.random.seed(42)
        a, b = np.random.laplace(size=(2, 2000))
        buf = SignalBuffer(np.vstack([a, b, a - b]), 250.0, ("x", "y", "z"))

        with pytest.raises(InsufficientRankError) as excinfo:
            separate(buf, n_components=3)
        assert excinfo.value.rank == 2
        assert excinfo.value.n_components == 3

    def test_rank_deficient_default_components(self) -> None:
        """Without n_components the covariance rank is used."""
        np.random.seed(42)
        a, b = np.random.laplace(size=(2, 2000))
        buf = SignalBuffer(np.vstack([a, b, a - b]), 250.0, ("x", "y", "z"))

        result = separate(buf)

        assert result.n_components == 2
        assert result.rank == 2

    @pytest.mark.parametrize("kwargs", [
        {"n_components": 0},
        {"n_components": 4},
        {"tol": 0.0},
        {"max_iter": 0},
        {"contrast": "tanh2"},
    ])
    def test_invalid_parameters(self, mixed_buffer: SignalBuffer, kwargs: dict) -> None:
        """Bad arguments raise InvalidParameterError before any work."""
        with pytest.raises(InvalidParameterError):
            separate(mixed_buffer, **kwargs)

    def test_unknown_reference_channel(self, mixed_buffer: SignalBuffer) -> None:
        """Reference channels must exist."""
        with pytest.raises(ChannelNotFound):
            separate(mixed_buffer, reference_channels=["EOG"])


class TestArtifactScoring:
    """Test advisory artifact scores."""

    def test_spike_component_flagged(self, mixed_buffer: SignalBuffer) -> None:
        """Only the sparse spike component exceeds the default threshold."""
        result = separate(mixed_buffer)
        flagged = suggest_artifacts(result)

        assert len(flagged) == 1
        spike_idx = flagged[0]
        assert result.kurtosis[spike_idx] > 10
        assert np.all(result.artifact_scores >= 0)
        assert np.all(result.artifact_scores < 1)

    def test_reference_correlation(self, independent_sources: np.ndarray) -> None:
        """A reference channel carrying the artifact correlates with its component."""
        mixing = np.array([[1.0, 0.5, 0.3], [0.4, 1.0, 0.6]])
        data = np.vstack([mixing @ independent_sources, independent_sources[2]])
        buf = SignalBuffer(data, 250.0, ("C3", "C4", "EOG"))

        result = separate(buf, reference_channels=["EOG"])

        assert result.reference_correlation.shape == (3, 1)
        assert result.reference_correlation.max() > 0.9
        best = int(np.argmax(result.reference_correlation[:, 0]))
        assert best in suggest_artifacts(result)
        assert result.reference_components == {"EOG": best}

    def test_no_reference_no_pairing(self, mixed_buffer: SignalBuffer) -> None:
        """Without reference channels nothing is paired."""
        result = separate(mixed_buffer)

        assert result.reference_correlation is None
        assert result.reference_components == {}

    def test_score_without_reference(self) -> None:
        """Sub-Gaussian components score zero."""
        t = np.arange(2000) / 250.0
        sources = np.vstack([np.sin(2 * np.pi * 5 * t), np.sign(np.sin(2 * np.pi * 2 * t + 0.1))])

        scores, kurt, ref_corr = score_components(sources)

        assert ref_corr is None
        assert np.all(kurt < 0)
        np.testing.assert_array_equal(scores, 0.0)

    def test_invalid_kurtosis_weight(self) -> None:
        """The kurtosis weight must lie in [0, 1]."""
        with pytest.raises(InvalidParameterError):
            score_components(np.random.randn(2, 100), kurtosis_weight=1.5)


class TestReconstruction:
    """Test removal and reconstruction."""

    def test_empty_removal_reconstructs_input(self, mixed_buffer: SignalBuffer) -> None:
        """Removing no components returns the input."""
        result = separate(mixed_buffer)
        cleaned = remove_and_reconstruct(result, [])

        np.testing.assert_allclose(cleaned.data, mixed_buffer.data, atol=1e-10)
        assert cleaned.channels == mixed_buffer.channels
        assert cleaned.fs == mixed_buffer.fs
        assert cleaned.metadata["removed_components"] == []

    def test_removing_everything_leaves_means(self, mixed_buffer: SignalBuffer) -> None:
        """With every component removed only the channel means remain."""
        result = separate(mixed_buffer)
        cleaned = remove_and_reconstruct(result, range(result.n_components))

        expected = np.broadcast_to(result.mean[:, None], mixed_buffer.data.shape)
        np.testing.assert_allclose(cleaned.data, expected, atol=1e-8)

    def test_removing_spike_component(
        self,
        mixed_buffer: SignalBuffer,
        independent_sources: np.ndarray,
    ) -> None:
        """Removing the flagged component strips the spikes from every channel."""
        result = separate(mixed_buffer)
        cleaned = remove_and_reconstruct(result, suggest_artifacts(result))

        spikes = independent_sources[2]
        for row in cleaned.data:
            r = np.corrcoef(row, spikes)[0, 1]
            assert abs(r) < 0.1
        assert max(np.abs(cleaned.data).max(axis=1)) < 3.0

    def test_unknown_component_id(self, mixed_buffer: SignalBuffer) -> None:
        """Component ids must be in range."""
        result = separate(mixed_buffer)
        with pytest.raises(InvalidParameterError):
            remove_and_reconstruct(result, [5])


class TestMatchComponents:
    """Test one-to-one pairing of components with target signals."""

    def test_permutation_and_sign(self) -> None:
        """Permuted, sign-flipped components are paired back."""
        np.random.seed(42)
        truth = np.random.randn(2, 500)
        recovered = np.vstack([-truth[1], truth[0]])

        match = match_components(recovered, truth)

        np.testing.assert_array_equal(match.components, [1, 0])
        np.testing.assert_array_equal(match.signs, [1.0, -1.0])
        np.testing.assert_allclose(match.matched, truth)
        assert match.correlation.shape == (2, 2)

    def test_surplus_targets_unpaired(self) -> None:
        """More targets than components leaves the weakest target unpaired."""
        np.random.seed(42)
        a, b = np.random.randn(2, 500)
        sources = a[None, :]
        targets = np.vstack([b, 2.0 * a])

        match = match_components(sources, targets)

        np.testing.assert_array_equal(match.components, [-1, 0])
        np.testing.assert_array_equal(match.matched[0], 0.0)

    def test_flat_target_has_zero_correlation(self) -> None:
        """A constant target correlates with nothing."""
        np.random.seed(42)
        sources = np.random.randn(2, 300)
        targets = np.vstack([np.ones(300), sources[0]])

        match = match_components(sources, targets)

        np.testing.assert_array_equal(match.correlation[:, 0], 0.0)
        assert match.components[1] == 0

    def test_length_mismatch(self) -> None:
        """Sources and targets must share a time axis."""
        with pytest.raises(InvalidParameterError):
            match_components(np.zeros((2, 100)), np.zeros((1, 99)))
