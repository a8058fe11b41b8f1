"""
Correlation matrices and their conversion to clustering distances.

    compute_correlations  → Pearson + Spearman over complete rows
    correlation_distance  → d = sqrt(max(0, ½(1 - ρ)))      'signed'
                            d = sqrt(max(0, ½(1 - |ρ|)))    'absolute'
    correlation_edges     → upper-triangle records for CorrPlot / Graph

'absolute' puts strongly NEGATIVELY correlated variables next to each
other; 'signed' puts them as far apart as possible.
"""

from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from .errors import ValidationError
from .records import numeric_value

DISTANCE_MODES = ("absolute", "signed")


def _data_matrix(records: Sequence[Dict[str, Any]], columns: Sequence[str]) -> np.ndarray:
    """Rows of ``columns`` with any missing / non-numeric value dropped."""
    rows = []
    for row in records:
        values = [numeric_value(row.get(c)) for c in columns]
        if all(v is not None for v in values):
            rows.append(values)
    return np.array(rows, dtype=float).reshape(len(rows), len(columns))


def rank_average(x) -> np.ndarray:
    """1-based ranks, ties get the mean of the ranks they span."""
    x = np.asarray(x, dtype=float)
    order = np.argsort(x, kind="mergesort")
    ranks = np.empty(len(x))
    sorted_x = x[order]
    i = 0
    while i < len(x):
        j = i
        while j + 1 < len(x) and sorted_x[j + 1] == sorted_x[i]:
            j += 1
        ranks[order[i:j + 1]] = (i + j) / 2 + 1
        i = j + 1
    return ranks


def pearson(data) -> np.ndarray:
    """Pearson correlation between the columns of ``data``; constant columns give NaN off-diagonal."""
    data = np.asarray(data, dtype=float)
    centered = data - data.mean(axis=0)
    norms = np.sqrt(np.sum(centered ** 2, axis=0))
    with np.errstate(invalid="ignore", divide="ignore"):
        corr = (centered.T @ centered) / np.outer(norms, norms)
    corr = np.clip(corr, -1.0, 1.0)
    np.fill_diagonal(corr, 1.0)
    return corr


def spearman(data) -> np.ndarray:
    data = np.asarray(data, dtype=float)
    ranked = np.column_stack([rank_average(data[:, k]) for k in range(data.shape[1])])
    return pearson(ranked)


def compute_correlations(records: Sequence[Dict[str, Any]],
                         columns: Sequence[str]) -> Tuple[np.ndarray, np.ndarray]:
    """(pearson, spearman) matrices over rows where every column is numeric."""
    data = _data_matrix(records, columns)
    if data.shape[0] < 2:
        raise ValidationError("Need at least 2 valid observations for correlation")
    return pearson(data), spearman(data)


def correlation_distance(corr, mode: str = "absolute") -> np.ndarray:
    """Distance matrix from a correlation matrix; NaN correlations count as 0."""
    if mode not in DISTANCE_MODES:
        raise ValidationError(f"Unknown distance mode '{mode}'. Must be one of: {DISTANCE_MODES}")
    corr = np.nan_to_num(np.asarray(corr, dtype=float), nan=0.0)
    similarity = np.abs(corr) if mode == "absolute" else corr
    D = np.sqrt(np.maximum(0.0, 0.5 * (1 - similarity)))
    np.fill_diagonal(D, 0.0)
    return D


def correlation_edges(pearson_matrix, spearman_matrix, labels: Sequence[Any],
                      scenario: str = "default") -> List[Dict[str, Any]]:
    """Edge records for every unique pair, one per correlation method."""
    labels = [str(label) for label in labels]
    n = len(labels)
    P = np.asarray(pearson_matrix, dtype=float)
    S = np.asarray(spearman_matrix, dtype=float)
    if P.shape != (n, n) or S.shape != (n, n):
        raise ValidationError(f"Correlation matrices must be {n}x{n} to match the labels")

    edges = []
    for i in range(n):
        for j in range(i + 1, n):
            for method, matrix in (("pearson", P), ("spearman", S)):
                edges.append({
                    "node1": labels[i],
                    "node2": labels[j],
                    "strength": float(matrix[i, j]),
                    "scenario": scenario,
                    "correlation_method": method,
                })
    return edges
