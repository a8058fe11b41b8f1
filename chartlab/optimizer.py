"""
t-SNE OPTIMIZER — Paradigm: PROBABILITY MATCHING BY GRADIENT DESCENT

===============================================================
WHAT IT IS (THE CORE IDEA)
===============================================================

Given the high-dimensional affinities P (see affinities.py), move 2D
points until their OWN affinities Q look like P.

Low-dimensional affinities (Student-t, df=1):
    Q_num[i][j] = 1 / (1 + ||y_i - y_j||²)     (0 on the diagonal)
    q_ij        = Q_num[i][j] / Σ Q_num

Gradient of KL(P || Q):
    ∂KL/∂y_i = 4 Σ_j (p_ij - q_ij) · Q_num[i][j] · (y_i - y_j)

    p > q: ATTRACTIVE (pull neighbors closer)
    p < q: REPULSIVE  (push non-neighbors apart)

===============================================================
ONE STEP
===============================================================

    1. EXAGGERATION: multiply P by a factor (default 4). Only P,
       never Q and never the learning rate.
    2. GAINS: per coordinate,
           gradient sign ≠ velocity sign → gain + 0.2
           otherwise                     → gain × 0.8
       floored at 0.01.
    3. MOMENTUM: 0.5 before iteration 250, 0.8 after.
    4. v = momentum · v - learning_rate · gain · grad
       y = y + v
    5. Return Σ_i ||v_i||, the movement, used as convergence signal.

The state (positions, velocities, gains) is mutated IN PLACE so an
interactive session can step, let the user drag a point, and step again.

===============================================================
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .affinities import compute_affinities
from .distances import euclidean_distances
from .errors import ValidationError
from .log import get_logger

logger = get_logger(__name__)

INIT_SCALE = 1e-4          # positions start in a box of half-width 5e-5
MOMENTUM_INIT = 0.5
MOMENTUM_FINAL = 0.8
MOMENTUM_SWITCH_ITER = 250
GAIN_INCREASE = 0.2
GAIN_DECAY = 0.8
MIN_GAIN = 0.01


@dataclass
class EmbeddingState:
    """Per-entity 2D position, velocity and adaptive gain."""
    positions: np.ndarray
    velocities: np.ndarray
    gains: np.ndarray

    @classmethod
    def randomize(cls, n: int, rng: Optional[np.random.Generator] = None) -> "EmbeddingState":
        """Small random positions around the origin, zero velocity, unit gains."""
        rng = rng if rng is not None else np.random.default_rng()
        positions = (rng.random((n, 2)) - 0.5) * INIT_SCALE
        return cls(positions, np.zeros((n, 2)), np.ones((n, 2)))

    def __len__(self):
        return self.positions.shape[0]

    def drag(self, index: int, x: float, y: float) -> None:
        """Move one point by hand: new position, zero velocity, gain untouched."""
        self.positions[index] = (x, y)
        self.velocities[index] = 0.0


def student_t_affinities(Y) -> np.ndarray:
    """Unnormalized Q_num[i][j] = 1 / (1 + ||y_i - y_j||²), zero diagonal."""
    Y = np.asarray(Y, dtype=float)
    diff = Y[:, np.newaxis, :] - Y[np.newaxis, :, :]
    numerator = 1.0 / (1.0 + np.sum(diff ** 2, axis=-1))
    np.fill_diagonal(numerator, 0)
    return numerator


def kl_divergence(P, Y) -> float:
    """KL(P || Q) for the current embedding; zero-probability pairs contribute nothing."""
    P = np.asarray(P, dtype=float)
    if P.shape[0] < 2:
        return 0.0
    numerator = student_t_affinities(Y)
    Q = numerator / numerator.sum()
    mask = P > 0
    return float(np.sum(P[mask] * np.log(P[mask] / np.maximum(Q[mask], 1e-12))))


def gradient(P, Y, exaggeration: float = 1.0) -> np.ndarray:
    """∂KL/∂y for every point, with P multiplied by ``exaggeration``."""
    Y = np.asarray(Y, dtype=float)
    n = Y.shape[0]
    if n < 2:
        return np.zeros_like(Y)

    numerator = student_t_affinities(Y)
    q_sum = numerator.sum()
    Q = numerator / q_sum if q_sum > 0 else numerator

    coeff = (np.asarray(P, dtype=float) * exaggeration - Q) * numerator
    diff = Y[:, np.newaxis, :] - Y[np.newaxis, :, :]
    return 4 * np.sum(coeff[:, :, np.newaxis] * diff, axis=1)


def momentum_for(iteration: int) -> float:
    return MOMENTUM_INIT if iteration < MOMENTUM_SWITCH_ITER else MOMENTUM_FINAL


def tsne_step(state: EmbeddingState, P, learning_rate: float,
              iteration: int, exaggeration: float = 1.0) -> float:
    """
    One gradient-descent step, in place. Returns total movement Σ ||v_i||.

    ``exaggeration`` is the factor applied to P (1.0 = no exaggeration).
    """
    if len(state) == 0:
        return 0.0

    grad = gradient(P, state.positions, exaggeration)

    # Adaptive gains: grow where the gradient disagrees with the velocity
    same_sign = np.sign(grad) == np.sign(state.velocities)
    state.gains = np.where(same_sign, state.gains * GAIN_DECAY, state.gains + GAIN_INCREASE)
    state.gains = np.maximum(state.gains, MIN_GAIN)

    state.velocities = momentum_for(iteration) * state.velocities \
        - learning_rate * state.gains * grad
    state.positions = state.positions + state.velocities

    return float(np.sum(np.sqrt(np.sum(state.velocities ** 2, axis=1))))


class TSNE:
    """
    Batch t-SNE built on the interactive step rule.

    Parameters:
    -----------
    perplexity : float
        Effective number of neighbors.
    learning_rate : float
        Step size for gradient descent.
    n_iter : int
        Number of optimization iterations.
    early_exaggeration : float
        Multiply P by this during the first ``early_exaggeration_iters`` iterations.
    early_exaggeration_iters : int
        Length of the exaggeration phase.
    random_state : int or None
        Seed for the initial layout.
    """

    SNAPSHOT_ITERS = (0, 5, 10, 25, 50, 100, 250, 500, 750)

    def __init__(self, perplexity=30.0, learning_rate=200.0, n_iter=1000,
                 early_exaggeration=4.0, early_exaggeration_iters=100,
                 random_state=None):
        if n_iter < 0:
            raise ValidationError(f"n_iter must be non-negative, got {n_iter}")
        self.perplexity = perplexity
        self.learning_rate = learning_rate
        self.n_iter = n_iter
        self.early_exaggeration = early_exaggeration
        self.early_exaggeration_iters = early_exaggeration_iters
        self.random_state = random_state

        # Diagnostics
        self.kl_divergence_ = None
        self.kl_history_: List[float] = []
        self.movement_history_: List[float] = []
        self.embedding_history_: List[np.ndarray] = []

    def fit_transform(self, X=None, distances=None):
        """
        Embed ``X`` (n_samples, n_features) or a precomputed distance matrix.

        Returns:
            Y: embedding, shape (n_samples, 2)
        """
        if distances is None:
            if X is None:
                raise ValidationError("Provide either X or distances")
            distances = euclidean_distances(X)
        distances = np.asarray(distances, dtype=float)
        n = distances.shape[0]

        logger.info("Computing pairwise affinities (perplexity=%s, n=%d)", self.perplexity, n)
        P = compute_affinities(distances, self.perplexity)

        state = EmbeddingState.randomize(n, np.random.default_rng(self.random_state))
        self.kl_history_ = []
        self.movement_history_ = []
        self.embedding_history_ = [state.positions.copy()]

        for iteration in range(self.n_iter):
            exaggerate = iteration < self.early_exaggeration_iters
            factor = self.early_exaggeration if exaggerate else 1.0
            movement = tsne_step(state, P, self.learning_rate, iteration, factor)

            self.movement_history_.append(movement)
            self.kl_history_.append(kl_divergence(P, state.positions))

            if iteration in self.SNAPSHOT_ITERS or iteration % 100 == 0:
                self.embedding_history_.append(state.positions.copy())
            if (iteration + 1) % 250 == 0:
                logger.debug("Iteration %d/%d, KL=%.4f", iteration + 1, self.n_iter,
                             self.kl_history_[-1])

        self.kl_divergence_ = self.kl_history_[-1] if self.kl_history_ else None
        self.embedding_ = state.positions
        return state.positions
