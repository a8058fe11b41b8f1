"""
Tests for correlation matrices and correlation distances.
"""

import numpy as np
import pytest

from chartlab.correlation import (compute_correlations, correlation_distance,
                                  correlation_edges, rank_average)
from chartlab.errors import ValidationError

LINEAR = [{"x": float(i), "y": 2.0 * i + 1, "z": -float(i)} for i in range(1, 6)]


class TestCorrelations:

    def test_perfect_linear(self):
        p, s = compute_correlations(LINEAR, ["x", "y", "z"])
        np.testing.assert_allclose(p, [[1, 1, -1], [1, 1, -1], [-1, -1, 1]])
        np.testing.assert_allclose(s, p)

    def test_spearman_is_rank_based(self):
        rows = [{"x": float(i), "y": float(i) ** 3} for i in range(1, 8)]
        p, s = compute_correlations(rows, ["x", "y"])
        assert s[0, 1] == pytest.approx(1.0)
        assert p[0, 1] < 1.0

    def test_incomplete_rows_dropped(self):
        rows = LINEAR + [{"x": None, "y": 100.0, "z": 3.0}, {"x": 1.0, "y": "n/a", "z": 0.0}]
        p, _ = compute_correlations(rows, ["x", "y", "z"])
        assert p[0, 1] == pytest.approx(1.0)

    def test_too_few_rows(self):
        with pytest.raises(ValidationError):
            compute_correlations(LINEAR[:1], ["x", "y"])

    def test_rank_average_ties(self):
        np.testing.assert_allclose(rank_average([10, 20, 20, 30]), [1, 2.5, 2.5, 4])

    def test_correlated_dataset(self, correlated_records):
        p, _ = compute_correlations(correlated_records, ["a", "b", "c", "d", "e"])
        assert p[0, 1] > 0.9
        assert p[0, 2] < -0.9
        assert abs(p[0, 3]) < 0.3


class TestCorrelationDistance:

    CORR = np.array([[1.0, -1.0, 0.0], [-1.0, 1.0, 0.5], [0.0, 0.5, 1.0]])

    def test_absolute(self):
        D = correlation_distance(self.CORR, "absolute")
        assert D[0, 1] == 0.0
        assert D[0, 2] == pytest.approx(np.sqrt(0.5))
        assert D[1, 2] == pytest.approx(0.5)

    def test_signed(self):
        D = correlation_distance(self.CORR, "signed")
        assert D[0, 1] == pytest.approx(1.0)
        assert D[1, 2] == pytest.approx(0.5)

    def test_zero_diagonal(self):
        assert np.all(np.diag(correlation_distance(self.CORR)) == 0)

    def test_nan_counts_as_uncorrelated(self):
        D = correlation_distance(np.array([[1.0, np.nan], [np.nan, 1.0]]))
        assert D[0, 1] == pytest.approx(np.sqrt(0.5))

    def test_unknown_mode(self):
        with pytest.raises(ValidationError):
            correlation_distance(self.CORR, "cosine")


class TestCorrelationEdges:

    def test_one_row_per_pair_and_method(self):
        p, s = compute_correlations(LINEAR, ["x", "y", "z"])
        edges = correlation_edges(p, s, ["x", "y", "z"], scenario="base")
        assert len(edges) == 6
        assert {e["correlation_method"] for e in edges} == {"pearson", "spearman"}
        first = edges[0]
        assert (first["node1"], first["node2"], first["scenario"]) == ("x", "y", "base")
        assert first["strength"] == pytest.approx(1.0)

    def test_shape_mismatch(self):
        with pytest.raises(ValidationError):
            correlation_edges(np.eye(2), np.eye(2), ["a", "b", "c"])
