"""
Pytest configuration and shared fixtures for chartlab tests.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from chartlab.datasets import make_cluster_records, make_correlated_records, make_distance_edges
from chartlab.session import SynchronousScheduler


@pytest.fixture
def scheduler():
    """Scheduler whose callbacks only run on explicit run_pending calls."""
    return SynchronousScheduler()


@pytest.fixture
def two_entities():
    """Entities A and B, 10 apart on f1."""
    return [
        {"entity": "A", "f1": 0.0, "f2": 0.0},
        {"entity": "B", "f1": 10.0, "f2": 0.0},
    ]


@pytest.fixture
def cluster_records():
    return make_cluster_records(n_samples=30, n_features=6, n_clusters=3, random_state=1)


@pytest.fixture
def correlated_records():
    return make_correlated_records(n_samples=200, random_state=0)


@pytest.fixture
def distance_edges():
    return make_distance_edges(n_samples=12, n_features=4, n_clusters=3, random_state=3)


@pytest.fixture
def random_points():
    rng = np.random.default_rng(0)
    return rng.standard_normal((20, 5))
