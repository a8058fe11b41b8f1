"""
Tests for the t-SNE step rule and the batch estimator.
"""

import numpy as np
import pytest

from chartlab.datasets import make_high_dim_clusters
from chartlab.errors import ValidationError
from chartlab.optimizer import (MIN_GAIN, TSNE, EmbeddingState, gradient, kl_divergence,
                                momentum_for, student_t_affinities, tsne_step)

PAIR_P = np.array([[0.0, 0.5], [0.5, 0.0]])


def _pair_state():
    return EmbeddingState(np.array([[0.0, 0.0], [1.0, 0.0]]), np.zeros((2, 2)), np.ones((2, 2)))


class TestEmbeddingState:

    def test_randomize(self):
        state = EmbeddingState.randomize(5, np.random.default_rng(0))
        assert state.positions.shape == (5, 2)
        assert np.all(np.abs(state.positions) <= 5e-5)
        np.testing.assert_array_equal(state.velocities, 0)
        np.testing.assert_array_equal(state.gains, 1)

    def test_drag_sets_position_and_clears_velocity(self):
        state = EmbeddingState.randomize(3, np.random.default_rng(0))
        state.velocities[:] = 1.0
        state.gains[:] = 2.0
        other = state.positions[1].copy()

        state.drag(0, 3.0, -4.0)

        np.testing.assert_array_equal(state.positions[0], [3.0, -4.0])
        np.testing.assert_array_equal(state.velocities[0], [0.0, 0.0])
        np.testing.assert_array_equal(state.gains[0], [2.0, 2.0])
        np.testing.assert_array_equal(state.positions[1], other)
        np.testing.assert_array_equal(state.velocities[1], [1.0, 1.0])


class TestStep:

    def test_student_t_zero_diagonal(self):
        Q = student_t_affinities([[0.0, 0.0], [1.0, 0.0]])
        np.testing.assert_allclose(Q, [[0.0, 0.5], [0.5, 0.0]])

    def test_balanced_pair_has_no_gradient(self):
        np.testing.assert_array_equal(gradient(PAIR_P, _pair_state().positions), 0)

    def test_gains_decay_when_signs_agree(self):
        state = _pair_state()
        movement = tsne_step(state, PAIR_P, learning_rate=1.0, iteration=0)
        assert movement == 0.0
        np.testing.assert_allclose(state.gains, 0.8)

    def test_gain_floor(self):
        state = _pair_state()
        state.gains[:] = 0.011
        tsne_step(state, PAIR_P, learning_rate=1.0, iteration=0)
        np.testing.assert_allclose(state.gains, MIN_GAIN)

    def test_exaggerated_step(self):
        state = _pair_state()
        movement = tsne_step(state, PAIR_P, learning_rate=1.0, iteration=0, exaggeration=4.0)
        # Gradient (-3, 0) / (3, 0): x gains grow to 1.2, y gains decay to 0.8
        np.testing.assert_allclose(state.gains, [[1.2, 0.8], [1.2, 0.8]])
        np.testing.assert_allclose(state.velocities, [[3.6, 0.0], [-3.6, 0.0]])
        np.testing.assert_allclose(state.positions, [[3.6, 0.0], [-2.6, 0.0]])
        assert movement == pytest.approx(7.2)

    def test_momentum_switch(self):
        assert momentum_for(0) == 0.5
        assert momentum_for(249) == 0.5
        assert momentum_for(250) == 0.8

    def test_empty_state(self):
        state = EmbeddingState.randomize(0)
        assert tsne_step(state, np.zeros((0, 0)), 200.0, 0) == 0.0

    def test_velocity_decays_without_gradient(self):
        state = _pair_state()
        state.velocities[:] = [[1.0, 0.0], [-1.0, 0.0]]
        movements = [tsne_step(state, PAIR_P, 1.0, i) for i in range(20)]
        assert movements == sorted(movements, reverse=True)
        assert movements[-1] < 1e-5

    def test_kl_non_negative(self, random_points):
        from chartlab.affinities import compute_affinities
        from chartlab.distances import euclidean_distances
        P = compute_affinities(euclidean_distances(random_points), 5.0)
        Y = EmbeddingState.randomize(20, np.random.default_rng(1)).positions
        assert kl_divergence(P, Y) >= 0


class TestTSNE:

    def test_fit_transform_shapes(self):
        X, _ = make_high_dim_clusters(n_samples=30, n_features=6, random_state=0)
        tsne = TSNE(perplexity=5, n_iter=50, random_state=0)
        Y = tsne.fit_transform(X)
        assert Y.shape == (30, 2)
        assert len(tsne.kl_history_) == 50
        assert len(tsne.movement_history_) == 50
        assert tsne.kl_divergence_ == tsne.kl_history_[-1]

    def test_separates_clusters(self):
        X, labels = make_high_dim_clusters(n_samples=60, n_features=10, random_state=42)
        Y = TSNE(perplexity=10, learning_rate=100, n_iter=400, random_state=0).fit_transform(X)
        D = np.sqrt(((Y[:, None, :] - Y[None, :, :]) ** 2).sum(-1))
        same = labels[:, None] == labels[None, :]
        np.fill_diagonal(same, False)
        different = labels[:, None] != labels[None, :]
        assert D[same].mean() < D[different].mean()

    def test_deterministic_with_seed(self):
        X, _ = make_high_dim_clusters(n_samples=15, n_features=6, random_state=0)
        Y1 = TSNE(perplexity=4, n_iter=30, random_state=3).fit_transform(X)
        Y2 = TSNE(perplexity=4, n_iter=30, random_state=3).fit_transform(X)
        np.testing.assert_array_equal(Y1, Y2)

    def test_precomputed_distances(self):
        D = np.array([[0.0, 1.0, 4.0], [1.0, 0.0, 3.0], [4.0, 3.0, 0.0]])
        Y = TSNE(perplexity=1.5, n_iter=10, random_state=0).fit_transform(distances=D)
        assert Y.shape == (3, 2)

    def test_requires_input(self):
        with pytest.raises(ValidationError):
            TSNE().fit_transform()
