"""
HIERARCHICAL CLUSTERING — Paradigm: DENDROGRAM (Tree of Merges)

===============================================================
WHAT IT IS (THE CORE IDEA)
===============================================================

Agglomerative (bottom-up) clustering on a PRECOMPUTED distance matrix:

    1. Start: each item is its own cluster
    2. Merge: combine the two closest clusters
    3. Repeat until one cluster remains
    4. Result: n-1 merges, each with a HEIGHT (the merge distance)

Reading the leaves of the tree left to right gives an ORDERING that puts
close items next to each other. That ordering is what correlation
heatmaps use to line up related variables.

===============================================================
LINKAGE (LANCE-WILLIAMS UPDATES)
===============================================================

After merging i and j, the distance from the new cluster to any other k:

SINGLE:    min(d_ki, d_kj)
COMPLETE:  max(d_ki, d_kj)
AVERAGE:   (n_i·d_ki + n_j·d_kj) / (n_i + n_j)
WARD:      sqrt(((n_i+n_k)·d_ki² + (n_j+n_k)·d_kj² - n_k·d_ij²) / (n_i+n_j+n_k))

Only distances are needed, so any dissimilarity (e.g. one derived from
correlations) can be clustered, not just points in a vector space.

===============================================================
DETERMINISM
===============================================================

Ties between candidate pairs go to the pair with the lowest cluster ids.
Within each merge the child holding the lowest original index goes left.
Identical input → identical merges, heights and leaf order.

===============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .correlation import correlation_distance
from .distances import euclidean_distances
from .errors import ValidationError
from .log import get_logger

logger = get_logger(__name__)

LINKAGES = ("ward", "average", "single", "complete")


@dataclass
class ClusterTree:
    """
    Merge history of an agglomerative clustering.

    Node ids below ``n_leaves`` are original items; merge k creates node
    ``n_leaves + k``.
    """
    n_leaves: int
    merges: List[Tuple[int, int]] = field(default_factory=list)
    heights: List[float] = field(default_factory=list)
    sizes: List[int] = field(default_factory=list)

    @property
    def root(self) -> Optional[int]:
        if self.n_leaves == 0:
            return None
        return self.n_leaves + len(self.merges) - 1 if self.merges else 0

    def leaves(self, node: int) -> List[int]:
        """Original items under ``node`` in left-to-right order."""
        out, stack = [], [node]
        while stack:
            current = stack.pop()
            if current < self.n_leaves:
                out.append(current)
            else:
                left, right = self.merges[current - self.n_leaves]
                stack.append(right)
                stack.append(left)
        return out

    @property
    def order(self) -> List[int]:
        if self.n_leaves == 0:
            return []
        if not self.merges:
            return list(range(self.n_leaves))
        return self.leaves(self.root)

    def linkage_matrix(self) -> np.ndarray:
        """scipy-style rows [left, right, height, size]."""
        rows = [[l, r, h, s] for (l, r), h, s in zip(self.merges, self.heights, self.sizes)]
        return np.array(rows, dtype=float).reshape(len(rows), 4)

    def cut(self, n_clusters: int) -> np.ndarray:
        """Flat labels for ``n_clusters`` clusters, numbered by lowest member index."""
        if not 1 <= n_clusters <= max(self.n_leaves, 1):
            raise ValidationError(f"n_clusters must be between 1 and {self.n_leaves}, "
                                  f"got {n_clusters}")
        members = {i: [i] for i in range(self.n_leaves)}
        for k, (left, right) in enumerate(self.merges[:self.n_leaves - n_clusters]):
            members[self.n_leaves + k] = members.pop(left) + members.pop(right)

        labels = np.zeros(self.n_leaves, dtype=int)
        groups = sorted(members.values(), key=min)
        for label, group in enumerate(groups):
            labels[group] = label
        return labels

    def to_dict(self, labels: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        return {
            "merges": [list(m) for m in self.merges],
            "heights": list(self.heights),
            "labels": list(labels) if labels is not None else list(range(self.n_leaves)),
            "order": self.order,
        }


def _lance_williams(linkage, d_ki, d_kj, d_ij, n_i, n_j, n_k):
    if linkage == "single":
        return np.minimum(d_ki, d_kj)
    if linkage == "complete":
        return np.maximum(d_ki, d_kj)
    if linkage == "average":
        return (n_i * d_ki + n_j * d_kj) / (n_i + n_j)
    # ward
    total = n_i + n_j + n_k
    value = ((n_i + n_k) * d_ki ** 2 + (n_j + n_k) * d_kj ** 2 - n_k * d_ij ** 2) / total
    return np.sqrt(np.maximum(value, 0.0))


def cluster_from_distance(D, linkage: str = "ward") -> ClusterTree:
    """Agglomerative clustering of a symmetric distance matrix."""
    if linkage not in LINKAGES:
        raise ValidationError(f"Unknown linkage: {linkage}. Must be one of: {LINKAGES}")
    D = np.asarray(D, dtype=float)
    if D.ndim != 2 or D.shape[0] != D.shape[1]:
        raise ValidationError(f"Distance matrix must be square, got shape {D.shape}")
    if not np.all(np.isfinite(D)):
        raise ValidationError("Distance matrix contains missing or infinite values")

    n = D.shape[0]
    tree = ClusterTree(n_leaves=n)
    if n < 2:
        return tree

    # Cluster-to-cluster distances, room for every node the merges will create
    size_total = 2 * n - 1
    M = np.full((size_total, size_total), np.inf)
    M[:n, :n] = (D + D.T) / 2
    sizes = np.zeros(size_total, dtype=int)
    sizes[:n] = 1
    first_leaf = np.zeros(size_total, dtype=int)
    first_leaf[:n] = np.arange(n)

    active = list(range(n))
    for k in range(n - 1):
        sub = M[np.ix_(active, active)].copy()
        sub[np.tril_indices(len(active))] = np.inf
        r, c = np.unravel_index(np.argmin(sub), sub.shape)
        a, b = active[r], active[c]
        height = M[a, b]

        if first_leaf[b] < first_leaf[a]:
            a, b = b, a
        new_id = n + k
        tree.merges.append((a, b))
        tree.heights.append(float(height))
        sizes[new_id] = sizes[a] + sizes[b]
        first_leaf[new_id] = first_leaf[a]
        tree.sizes.append(int(sizes[new_id]))

        others = [x for x in active if x not in (a, b)]
        if others:
            others_arr = np.array(others)
            updated = _lance_williams(linkage, M[others_arr, a], M[others_arr, b], height,
                                      sizes[a], sizes[b], sizes[others_arr])
            M[new_id, others_arr] = updated
            M[others_arr, new_id] = updated
        active = others + [new_id]

    return tree


def cluster_from_correlation(corr, linkage: str = "ward",
                             distance_mode: str = "absolute") -> ClusterTree:
    corr = np.asarray(corr, dtype=float)
    if corr.shape[0] < 2:
        raise ValidationError("Need at least 2 variables for clustering")
    return cluster_from_distance(correlation_distance(corr, distance_mode), linkage)


def compute_dendrogram_data(corr, labels: Sequence[Any],
                            distance_mode: str = "absolute") -> Dict[str, Dict[str, Any]]:
    """
    Ordering and tree for every linkage method.

    Returns {linkage: {"ordering": [labels...], "tree": {...}}}. Fewer than two
    labels, or a linkage that fails, fall back to the original order.
    """
    labels = list(labels)
    n = len(labels)
    trivial = {"merges": [], "heights": [], "labels": labels, "order": list(range(n))}
    result = {}
    for linkage in LINKAGES:
        if n < 2:
            result[linkage] = {"ordering": list(labels), "tree": dict(trivial)}
            continue
        try:
            tree = cluster_from_correlation(corr, linkage, distance_mode)
        except ValueError as exc:
            logger.warning("Clustering with %s linkage failed: %s", linkage, exc)
            result[linkage] = {"ordering": list(labels), "tree": dict(trivial)}
            continue
        result[linkage] = {
            "ordering": [labels[i] for i in tree.order],
            "tree": tree.to_dict(labels),
        }
    return result


class HierarchicalClustering:
    """
    Agglomerative Hierarchical Clustering (estimator interface).

    Parameters:
    -----------
    n_clusters : int
        Number of flat clusters to report in ``labels_``.
    linkage : str
        'single', 'complete', 'average', or 'ward'
    precomputed : bool
        Treat the input to ``fit`` as a distance matrix instead of features.
    """

    def __init__(self, n_clusters=2, linkage='ward', precomputed=False):
        self.n_clusters = n_clusters
        self.linkage = linkage
        self.precomputed = precomputed

        # Attributes set after fit
        self.labels_ = None
        self.n_leaves_ = None
        self.children_ = None      # Merge history: (i, j) merged at step k
        self.distances_ = None     # Distance at each merge
        self.dendrogram_data_ = None
        self.tree_ = None

    def fit(self, X):
        D = X if self.precomputed else euclidean_distances(X)
        self.tree_ = cluster_from_distance(D, self.linkage)
        self.n_leaves_ = self.tree_.n_leaves
        self.children_ = list(self.tree_.merges)
        self.distances_ = list(self.tree_.heights)
        self.dendrogram_data_ = self.tree_.linkage_matrix().tolist()
        self.labels_ = self.tree_.cut(min(self.n_clusters, self.n_leaves_)) \
            if self.n_leaves_ else np.zeros(0, dtype=int)
        return self

    def fit_predict(self, X):
        """Fit and return cluster labels."""
        self.fit(X)
        return self.labels_
