"""chartlab: chart building blocks: colour gradients, t-SNE sessions, correlation clustering."""

from .affinities import compute_affinities, conditional_probabilities
from .charts import ChartSpec, Control, CorrPlot, Graph, Scene, Trace, TSNEPlot
from .clustering import (ClusterTree, HierarchicalClustering, cluster_from_correlation,
                         cluster_from_distance, compute_dendrogram_data)
from .colors import ColorGradient, ColourMap, discrete_color_map, interpolate
from .correlation import compute_correlations, correlation_distance, correlation_edges
from .distances import build_distances, distances_from_edges, rescale_column
from .errors import ValidationError
from .optimizer import TSNE, EmbeddingState, tsne_step
from .session import ChartSession, RunSettings, RunState, SynchronousScheduler

__version__ = "0.1.0"

__all__ = [
    "ChartSession", "ChartSpec", "ClusterTree", "ColorGradient", "ColourMap", "Control",
    "CorrPlot", "EmbeddingState", "Graph", "HierarchicalClustering", "RunSettings",
    "RunState", "Scene", "SynchronousScheduler", "TSNE", "TSNEPlot", "Trace",
    "ValidationError", "build_distances", "cluster_from_correlation",
    "cluster_from_distance", "compute_affinities", "compute_correlations",
    "compute_dendrogram_data", "conditional_probabilities", "correlation_distance",
    "correlation_edges", "discrete_color_map", "distances_from_edges", "interpolate",
    "rescale_column", "tsne_step",
]
