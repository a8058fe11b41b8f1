"""
Synthetic datasets for demos and tests, as lists of records.

    make_cluster_records: entities in well-separated high-D clusters
    make_correlated_records: columns with known positive/negative correlations
    make_distance_edges: (node1, node2, distance) rows for a cluster dataset
"""

import numpy as np

from .distances import euclidean_distances


def make_high_dim_clusters(n_samples=60, n_features=10, n_clusters=3, random_state=42):
    """High-dimensional clusters: each cluster is informative in its own 3 dims."""
    rng = np.random.default_rng(random_state)
    n_per = n_samples // n_clusters
    X, labels = [], []
    for c in range(n_clusters):
        center = np.zeros(n_features)
        center[(c * 3) % n_features:(c * 3) % n_features + 3] = 5.0
        X.append(rng.standard_normal((n_per, n_features)) * 0.8 + center)
        labels.append(np.full(n_per, c))
    return np.vstack(X), np.concatenate(labels)


def make_cluster_records(n_samples=60, n_features=10, n_clusters=3, random_state=42):
    """
    Records with an ``entity`` name, ``f0..f{d-1}`` features, a discrete
    ``cluster`` label and a continuous ``score`` (first feature's z-score).
    """
    X, labels = make_high_dim_clusters(n_samples, n_features, n_clusters, random_state)
    score = (X[:, 0] - X[:, 0].mean()) / (X[:, 0].std() or 1.0)
    records = []
    for i, (row, label) in enumerate(zip(X, labels)):
        record = {"entity": f"e{i:03d}", "cluster": f"C{label}", "score": float(score[i])}
        for k, value in enumerate(row):
            record[f"f{k}"] = float(value)
        records.append(record)
    return records


def make_correlated_records(n_samples=200, random_state=0):
    """
    Columns a..e: a/b strongly positive, c the negative of a plus noise,
    d/e independent of the rest but correlated with each other.
    """
    rng = np.random.default_rng(random_state)
    a = rng.standard_normal(n_samples)
    d = rng.standard_normal(n_samples)
    columns = {
        "a": a,
        "b": a + rng.standard_normal(n_samples) * 0.2,
        "c": -a + rng.standard_normal(n_samples) * 0.3,
        "d": d,
        "e": d + rng.standard_normal(n_samples) * 0.4,
    }
    return [{name: float(values[i]) for name, values in columns.items()}
            for i in range(n_samples)]


def make_distance_edges(n_samples=30, n_features=6, n_clusters=3, random_state=7):
    """Edge-list form of a cluster dataset: every unique pair once."""
    X, _ = make_high_dim_clusters(n_samples, n_features, n_clusters, random_state)
    D = euclidean_distances(X)
    names = [f"n{i:02d}" for i in range(X.shape[0])]
    return [{"node1": names[i], "node2": names[j], "distance": float(D[i, j])}
            for i in range(len(names)) for j in range(i + 1, len(names))]
