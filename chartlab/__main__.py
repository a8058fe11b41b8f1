"""
Demo: run an interactive t-SNE session to convergence and draw a correlation plot.

    python -m chartlab [output_dir]
"""

import os
import sys

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from .charts import CorrPlot, TSNEPlot
from .correlation import compute_correlations, correlation_edges
from .datasets import make_cluster_records, make_correlated_records
from .log import setup_logging
from .plotting import plot_corrplot, plot_embedding


def run_tsne_demo(out_dir):
    print("\n" + "="*60)
    print("t-SNE SESSION")
    print("="*60)

    records = make_cluster_records(n_samples=60, n_features=10, n_clusters=3)
    chart = TSNEPlot("clusters", records, entity_col="entity",
                     color_cols=["cluster", "score"], perplexity=10.0,
                     title="Cluster Similarity", random_state=0)
    session = chart.session
    session.start()
    session.scheduler.run_pending()

    status = session.status()
    print(f"   {status.message} after {status.iteration} iterations, "
          f"movement={status.movement_text}, KL={session.kl_divergence():.4f}")

    fig, axes = plt.subplots(1, 2, figsize=(14, 7))
    plot_embedding(chart.render(session, color_by="cluster"), ax=axes[0])
    plot_embedding(chart.render(session, color_by="score"), ax=axes[1], show_labels=False)
    plt.tight_layout()
    path = os.path.join(out_dir, 'chartlab_tsne.png')
    fig.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    print(f"Saved: {path}")


def run_corrplot_demo(out_dir):
    print("\n" + "="*60)
    print("CORRELATION PLOT")
    print("="*60)

    columns = ["a", "b", "c", "d", "e"]
    pearson, spearman = compute_correlations(make_correlated_records(), columns)
    chart = CorrPlot("corr", correlation_edges(pearson, spearman, columns))
    for linkage in ("ward", "average", "single", "complete"):
        order = chart.dendrogram_data["default"]["pearson"][linkage]["ordering"]
        print(f"   {linkage:<9} order: {' '.join(order)}")

    fig = plot_corrplot(chart.render(linkage="average"))
    path = os.path.join(out_dir, 'chartlab_corrplot.png')
    fig.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    print(f"Saved: {path}")


if __name__ == '__main__':
    setup_logging("INFO")
    out_dir = sys.argv[1] if len(sys.argv) > 1 else '.'
    os.makedirs(out_dir, exist_ok=True)
    run_tsne_demo(out_dir)
    run_corrplot_demo(out_dir)
