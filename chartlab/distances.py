"""
DISTANCE BUILDER — Paradigm: FEATURES → GEOMETRY

===============================================================
WHAT IT IS (THE CORE IDEA)
===============================================================

Turn a table of entities into a symmetric n×n DISTANCE MATRIX.

Two entry points:

FEATURE TABLE:
    1. Pick the selected numeric columns for every entity
       (missing / non-numeric values become 0)
    2. Optionally RESCALE each column across all entities
    3. Euclidean distance between the feature vectors

EDGE LIST:
    Rows of (node1, node2, distance) fill the matrix directly.
    No rescaling. What happens to pairs with no row is a POLICY:
        'unknown' → NaN (the pair carries no affinity)
        'zero'    → 0   (treated as identical)

===============================================================
RESCALING
===============================================================

Features on different scales dominate Euclidean distance
(GDP in dollars swamps population in millions). Rescale first:

    none           passthrough
    zscore         (x - mean) / std          (population std, 1 if zero)
    zscore_capped  zscore clamped to [-2, 2]
    quantile       rank / (n - 1) in [0, 1]  (ties share the lowest rank)

===============================================================
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .errors import ValidationError
from .log import get_logger
from .records import numeric_value, unique_in_order

logger = get_logger(__name__)

RESCALINGS = ("none", "zscore", "zscore_capped", "quantile")
MISSING_PAIR_POLICIES = ("unknown", "zero")
ZSCORE_CAP = 2.0


def rescale_column(values, method: str = "zscore") -> np.ndarray:
    """Rescale one feature column across all entities."""
    if method not in RESCALINGS:
        raise ValidationError(f"Unknown rescaling '{method}'. Must be one of: {RESCALINGS}")
    x = np.asarray(values, dtype=float)
    n = len(x)
    if n == 0 or method == "none":
        return x.copy()

    if method in ("zscore", "zscore_capped"):
        mean = x.mean()
        std = x.std()  # population std (ddof=0)
        if std == 0:
            std = 1.0
        z = (x - mean) / std
        if method == "zscore_capped":
            z = np.clip(z, -ZSCORE_CAP, ZSCORE_CAP)
        return z

    # quantile
    if n == 1:
        return np.full(1, 0.5)
    sorted_x = np.sort(x)
    ranks = np.searchsorted(sorted_x, x, side="left")
    return ranks / (n - 1)


def feature_matrix(entities: Sequence[Any],
                   feature_table: Mapping[Any, Mapping[str, Any]],
                   selected_features: Sequence[str],
                   rescaling: str = "none") -> np.ndarray:
    """
    Build the (n_entities, n_features) matrix of rescaled feature vectors.

    Entities absent from ``feature_table`` get an all-zero row. A feature column
    absent from every record logs a warning and contributes zeros.
    """
    if rescaling not in RESCALINGS:
        raise ValidationError(f"Unknown rescaling '{rescaling}'. Must be one of: {RESCALINGS}")

    n, d = len(entities), len(selected_features)
    X = np.zeros((n, d))
    for col_idx, col in enumerate(selected_features):
        found = False
        for i, entity in enumerate(entities):
            row = feature_table.get(entity)
            if row is None:
                continue
            if col in row:
                found = True
            value = numeric_value(row.get(col))
            X[i, col_idx] = 0.0 if value is None else value
        if not found and n > 0:
            logger.warning("Feature column %s not found in data, using 0", col)

    if d > 0 and rescaling != "none":
        for col_idx in range(d):
            X[:, col_idx] = rescale_column(X[:, col_idx], rescaling)
    return X


def euclidean_distances(X) -> np.ndarray:
    """Pairwise Euclidean distances, exactly symmetric with a zero diagonal."""
    X = np.asarray(X, dtype=float)
    n = X.shape[0]
    if n == 0:
        return np.zeros((0, 0))
    if X.ndim == 1 or X.shape[1] == 0:
        return np.zeros((n, n))
    diff = X[:, np.newaxis, :] - X[np.newaxis, :, :]
    D = np.sqrt(np.sum(diff ** 2, axis=-1))
    # Take the upper triangle so D[i, j] and D[j, i] are the same float
    upper = np.triu(D, k=1)
    return upper + upper.T


def build_distances(entities: Sequence[Any],
                    feature_table: Mapping[Any, Mapping[str, Any]],
                    selected_features: Sequence[str],
                    rescaling: str = "none") -> np.ndarray:
    """Distance matrix between entities over the selected (rescaled) features."""
    X = feature_matrix(entities, feature_table, selected_features, rescaling)
    return euclidean_distances(X)


def _edge_fields(edge) -> Tuple[Any, Any, Any]:
    if isinstance(edge, Mapping):
        return edge.get("node1"), edge.get("node2"), edge.get("distance")
    node1, node2, distance = edge
    return node1, node2, distance


def edge_entities(edges: Iterable) -> List[Any]:
    """Node names of an edge list: every node1 in order, then unseen node2s."""
    edges = [_edge_fields(e) for e in edges]
    return unique_in_order([e[0] for e in edges] + [e[1] for e in edges])


def distances_from_edges(edges: Iterable,
                         entities: Optional[Sequence[Any]] = None,
                         missing: str = "unknown") -> Tuple[List[Any], np.ndarray]:
    """
    Distance matrix from (node1, node2, distance) rows or dicts.

    Returns (entities, D). Pairs with no row follow ``missing``: NaN for
    'unknown', 0 for 'zero'. Rows naming nodes outside ``entities`` are skipped,
    a later row for the same pair overrides an earlier one.
    """
    if missing not in MISSING_PAIR_POLICIES:
        raise ValidationError(
            f"Unknown missing-pair policy '{missing}'. Must be one of: {MISSING_PAIR_POLICIES}")
    edges = [_edge_fields(e) for e in edges]
    if entities is None:
        entities = edge_entities(edges)
    entities = list(entities)
    index = {e: i for i, e in enumerate(entities)}

    n = len(entities)
    D = np.full((n, n), np.nan if missing == "unknown" else 0.0)
    np.fill_diagonal(D, 0.0)

    for node1, node2, distance in edges:
        i, j = index.get(node1), index.get(node2)
        if i is None or j is None or i == j:
            continue
        value = numeric_value(distance)
        if value is None:
            continue
        D[i, j] = value
        D[j, i] = value
    return entities, D
