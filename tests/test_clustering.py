"""
Tests for agglomerative clustering and dendrogram data.
"""

import numpy as np
import pytest

from chartlab.clustering import (LINKAGES, ClusterTree, HierarchicalClustering,
                                 cluster_from_correlation, cluster_from_distance,
                                 compute_dendrogram_data)
from chartlab.correlation import compute_correlations
from chartlab.distances import euclidean_distances
from chartlab.errors import ValidationError

# Points on a line: two tight pairs and an outlier
LINE = np.array([[0.0], [1.0], [5.0], [6.0], [20.0]])


@pytest.fixture
def line_distances():
    return euclidean_distances(LINE)


class TestLinkages:

    def test_single(self, line_distances):
        tree = cluster_from_distance(line_distances, "single")
        assert tree.merges == [(0, 1), (2, 3), (5, 6), (7, 4)]
        assert tree.heights == [1.0, 1.0, 4.0, 14.0]
        assert tree.sizes == [2, 2, 4, 5]

    def test_complete(self, line_distances):
        tree = cluster_from_distance(line_distances, "complete")
        assert tree.heights == [1.0, 1.0, 6.0, 20.0]

    def test_average(self, line_distances):
        tree = cluster_from_distance(line_distances, "average")
        np.testing.assert_allclose(tree.heights, [1.0, 1.0, 5.0, 17.0])

    def test_ward_matches_centroid_formula(self, line_distances):
        tree = cluster_from_distance(line_distances, "ward")
        # {0, 1, 5, 6} (centroid 3) joins {20}: sqrt(2·4·1/5 · 17²)
        assert tree.heights[-1] == pytest.approx(np.sqrt(1.6 * 17 ** 2))

    @pytest.mark.parametrize("linkage", LINKAGES)
    def test_order_and_heights(self, line_distances, linkage):
        tree = cluster_from_distance(line_distances, linkage)
        assert tree.order == [0, 1, 2, 3, 4]
        assert tree.heights == sorted(tree.heights)

    @pytest.mark.parametrize("linkage", LINKAGES)
    def test_deterministic(self, random_points, linkage):
        D = euclidean_distances(random_points)
        first = cluster_from_distance(D, linkage)
        second = cluster_from_distance(D, linkage)
        assert first.merges == second.merges
        assert first.heights == second.heights
        assert sorted(first.order) == list(range(20))


class TestValidation:

    def test_unknown_linkage(self, line_distances):
        with pytest.raises(ValidationError):
            cluster_from_distance(line_distances, "centroid")

    def test_non_square(self):
        with pytest.raises(ValidationError):
            cluster_from_distance(np.zeros((2, 3)))

    def test_nan(self):
        with pytest.raises(ValidationError):
            cluster_from_distance(np.array([[0.0, np.nan], [np.nan, 0.0]]))

    def test_correlation_needs_two_variables(self):
        with pytest.raises(ValidationError):
            cluster_from_correlation(np.eye(1))


class TestClusterTree:

    def test_cut(self, line_distances):
        tree = cluster_from_distance(line_distances, "single")
        np.testing.assert_array_equal(tree.cut(1), [0, 0, 0, 0, 0])
        np.testing.assert_array_equal(tree.cut(2), [0, 0, 0, 0, 1])
        np.testing.assert_array_equal(tree.cut(3), [0, 0, 1, 1, 2])
        np.testing.assert_array_equal(tree.cut(5), [0, 1, 2, 3, 4])

    def test_cut_out_of_range(self, line_distances):
        tree = cluster_from_distance(line_distances, "single")
        with pytest.raises(ValidationError):
            tree.cut(6)

    def test_small_trees(self):
        assert cluster_from_distance(np.zeros((1, 1))).order == [0]
        assert cluster_from_distance(np.zeros((0, 0))).order == []

    def test_linkage_matrix(self, line_distances):
        Z = cluster_from_distance(line_distances, "single").linkage_matrix()
        assert Z.shape == (4, 4)
        np.testing.assert_array_equal(Z[-1], [7, 4, 14, 5])

    def test_to_dict(self, line_distances):
        data = cluster_from_distance(line_distances, "single").to_dict(list("abcde"))
        assert data["labels"] == list("abcde")
        assert data["order"] == [0, 1, 2, 3, 4]
        assert data["merges"][0] == [0, 1]

    def test_leaves(self):
        tree = ClusterTree(n_leaves=3, merges=[(1, 2), (0, 3)], heights=[1.0, 2.0])
        assert tree.leaves(3) == [1, 2]
        assert tree.order == [0, 1, 2]


class TestDendrogramData:

    VARS = ["a", "b", "c", "d", "e"]

    def test_all_linkages(self, correlated_records):
        p, _ = compute_correlations(correlated_records, self.VARS)
        data = compute_dendrogram_data(p, self.VARS)
        assert set(data) == set(LINKAGES)
        for entry in data.values():
            assert sorted(entry["ordering"]) == self.VARS
            assert entry["tree"]["labels"] == self.VARS

    @pytest.mark.parametrize("linkage", LINKAGES)
    def test_absolute_mode_groups_related_variables(self, correlated_records, linkage):
        p, _ = compute_correlations(correlated_records, self.VARS)
        ordering = compute_dendrogram_data(p, self.VARS, "absolute")[linkage]["ordering"]
        positions = sorted(ordering.index(v) for v in "abc")
        assert positions[-1] - positions[0] == 2
        de = sorted(ordering.index(v) for v in "de")
        assert de[1] - de[0] == 1

    def test_single_variable_is_trivial(self):
        data = compute_dendrogram_data(np.eye(1), ["a"])
        assert data["ward"]["ordering"] == ["a"]
        assert data["ward"]["tree"]["merges"] == []


class TestHierarchicalClustering:

    def test_fit_predict_two_blobs(self):
        rng = np.random.default_rng(0)
        X = np.vstack([rng.normal(0, 0.1, (5, 2)), rng.normal(5, 0.1, (5, 2))])
        labels = HierarchicalClustering(n_clusters=2).fit_predict(X)
        np.testing.assert_array_equal(labels, [0] * 5 + [1] * 5)

    def test_precomputed(self, line_distances):
        model = HierarchicalClustering(n_clusters=2, linkage="single", precomputed=True)
        model.fit(line_distances)
        assert model.children_ == [(0, 1), (2, 3), (5, 6), (7, 4)]
        assert model.distances_ == [1.0, 1.0, 4.0, 14.0]
        assert len(model.dendrogram_data_) == 4
