"""
GAUSSIAN-PERPLEXITY SOLVER — Paradigm: DISTANCES → PROBABILITIES

===============================================================
WHAT IT IS (THE CORE IDEA)
===============================================================

For every point i, turn its distances into a probability distribution
over the OTHER points with a Gaussian kernel:

    p(j|i) ∝ exp(-β_i · d_ij²)          (j ≠ i)

β_i (precision = 1/2σ_i²) is tuned per point so the distribution has
a fixed "effective number of neighbors", the PERPLEXITY:

    H(P_i) = -Σ_j p(j|i) ln p(j|i)      (entropy in nats)
    target: H(P_i) = ln(perplexity)

Dense regions get a large β (narrow kernel), sparse regions a small β.

===============================================================
THE BINARY SEARCH
===============================================================

    β = 1, bounds unknown on both sides
    entropy too HIGH → kernel too wide  → raise β
        (double it while no upper bound is known, else bisect)
    entropy too LOW  → kernel too narrow → lower β
        (halve it while no lower bound is known, else bisect)

Stop when |H - ln(perplexity)| < 1e-5 or after 50 rounds.
If it never gets there, keep the best β seen: a slightly-off row is
better than no embedding at all.

===============================================================
SYMMETRIZE
===============================================================

    P_ij = (p(j|i) + p(i|j)) / 2n

Symmetric, non-negative, sums to 1. This is the target distribution
t-SNE tries to reproduce in 2D.
"""

from typing import Tuple

import numpy as np

from .errors import ValidationError
from .log import get_logger

logger = get_logger(__name__)

ENTROPY_TOL = 1e-5
MAX_SEARCH_ITER = 50


def row_entropy(p) -> float:
    """Shannon entropy (nats) of a probability vector, ignoring zero entries."""
    p = np.asarray(p, dtype=float)
    nz = p[p > 0]
    return float(-np.sum(nz * np.log(nz)))


def _search_row(d2: np.ndarray, target_entropy: float,
                tol: float = ENTROPY_TOL, max_iter: int = MAX_SEARCH_ITER) -> Tuple[np.ndarray, float, bool]:
    """
    Binary search for β on one row of squared distances (self excluded).

    NaN or infinite entries are unknown pairs and get probability 0.
    Returns (p, beta, converged).
    """
    known = np.isfinite(d2)
    p = np.zeros_like(d2)
    if not known.any():
        return p, 1.0, False

    # Shifting by the smallest distance leaves the normalized row unchanged
    # but keeps exp() away from underflowing to an all-zero row
    shifted = d2[known] - d2[known].min()

    beta_min, beta_max = -np.inf, np.inf
    beta = 1.0
    best_p, best_beta, best_gap = None, beta, np.inf

    for _ in range(max_iter):
        w = np.exp(-shifted * beta)
        total = w.sum()
        row = w / total if total > 0 else w

        entropy = row_entropy(row)
        diff = entropy - target_entropy
        if abs(diff) < best_gap:
            best_p, best_beta, best_gap = row, beta, abs(diff)
        if abs(diff) < tol:
            break

        if diff > 0:
            beta_min = beta
            beta = beta * 2 if beta_max == np.inf else (beta + beta_max) / 2
        else:
            beta_max = beta
            beta = beta / 2 if beta_min == -np.inf else (beta + beta_min) / 2

    p[known] = best_p
    return p, best_beta, best_gap < tol


def conditional_probabilities(D, perplexity: float,
                              tol: float = ENTROPY_TOL,
                              max_iter: int = MAX_SEARCH_ITER) -> Tuple[np.ndarray, np.ndarray]:
    """
    Row-normalized p(j|i) for every point, before symmetrization.

    Returns (P_cond, betas). Row i sums to 1 unless point i has no known
    neighbor, in which case it is all zeros.
    """
    if perplexity <= 0:
        raise ValidationError(f"Perplexity must be positive, got {perplexity}")
    D = np.asarray(D, dtype=float)
    n = D.shape[0]
    P = np.zeros((n, n))
    betas = np.ones(n)
    if n < 2:
        return P, betas

    target = np.log(perplexity)
    n_unconverged = 0
    for i in range(n):
        mask = np.ones(n, dtype=bool)
        mask[i] = False
        p_i, beta_i, converged = _search_row(D[i, mask] ** 2, target, tol, max_iter)
        P[i, mask] = p_i
        betas[i] = beta_i
        if not converged:
            n_unconverged += 1

    if n_unconverged:
        logger.debug("Perplexity %.3g not reached for %d of %d points; using best beta",
                     perplexity, n_unconverged, n)
    return P, betas


def symmetrize(P_cond) -> np.ndarray:
    """P_ij = (p(j|i) + p(i|j)) / 2n, exactly symmetric."""
    P_cond = np.asarray(P_cond, dtype=float)
    n = P_cond.shape[0]
    if n == 0:
        return P_cond.copy()
    return (P_cond + P_cond.T) / (2 * n)


def compute_affinities(D, perplexity: float) -> np.ndarray:
    """Symmetric affinity matrix P from a distance matrix and a target perplexity."""
    P_cond, _ = conditional_probabilities(D, perplexity)
    return symmetrize(P_cond)
