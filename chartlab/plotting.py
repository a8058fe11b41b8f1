"""
matplotlib drawing for chart scenes.

Front ends draw scenes with D3 / Plotly; these functions draw the same
Scene objects onto matplotlib axes, for scripts, notebooks and reports.
"""

import matplotlib.pyplot as plt
import numpy as np

from .charts import Scene
from .clustering import ClusterTree


def _axes(ax, figsize):
    if ax is None:
        _, ax = plt.subplots(figsize=figsize)
    return ax


def plot_embedding(scene: Scene, ax=None, show_labels=True, label_font_size=8):
    """Scatter of a TSNEPlot scene: one colored dot per entity, status in the title."""
    ax = _axes(ax, (8, 8))
    scatter = scene.trace("scatter")
    if scatter is None or not scatter.data["x"]:
        ax.text(0.5, 0.5, 'No embedding', ha='center', va='center')
        return ax

    data = scatter.data
    ax.scatter(data["x"], data["y"], c=data["colors"], s=40, alpha=0.85,
               edgecolors='white', linewidths=0.5)
    if show_labels and len(data["labels"]) <= 100:
        for x, y, label in zip(data["x"], data["y"], data["labels"]):
            ax.annotate(str(label), (x, y), xytext=(4, 4), textcoords='offset points',
                        fontsize=label_font_size)

    title = scene.title
    if scene.status:
        title += (f"\nIteration {scene.status['iteration']} | "
                  f"movement {scene.status['movement']} | {scene.status['message']}")
    ax.set_title(title, fontsize=11)
    ax.set_aspect('equal', adjustable='datalim')
    ax.set_xticks([])
    ax.set_yticks([])
    ax.grid(True, alpha=0.2)
    return ax


def plot_dendrogram(tree: ClusterTree, labels=None, ax=None, leaf_rotation=90,
                    leaf_font_size=8, color='b'):
    """Draw a cluster tree; leaves are placed in the tree's leaf order."""
    ax = _axes(ax, (10, 6))
    n_leaves = tree.n_leaves
    if not tree.merges:
        ax.text(0.5, 0.5, 'No dendrogram data', ha='center', va='center')
        return ax

    positions = {leaf: i for i, leaf in enumerate(tree.order)}

    def draw_node(node_id):
        if node_id < n_leaves:
            return positions[node_id], 0.0

        left, right = tree.merges[node_id - n_leaves]
        height = tree.heights[node_id - n_leaves]
        left_x, left_y = draw_node(left)
        right_x, right_y = draw_node(right)

        ax.plot([left_x, left_x], [left_y, height], color=color, linewidth=1)
        ax.plot([right_x, right_x], [right_y, height], color=color, linewidth=1)
        ax.plot([left_x, right_x], [height, height], color=color, linewidth=1)
        return (left_x + right_x) / 2, height

    draw_node(tree.root)

    names = labels if labels is not None else list(range(n_leaves))
    ax.set_xticks(range(n_leaves))
    ax.set_xticklabels([str(names[leaf]) for leaf in tree.order],
                       rotation=leaf_rotation, fontsize=leaf_font_size)
    ax.set_ylabel('Distance')
    ax.set_xlim(-0.5, n_leaves - 0.5)
    ax.set_ylim(0, max(tree.heights) * 1.05 if max(tree.heights) > 0 else 1)
    return ax


def plot_correlation_heatmap(scene: Scene, ax=None, cmap='RdBu_r', annotate=True):
    """Heatmap of a CorrPlot scene in its rendered variable order."""
    ax = _axes(ax, (8, 7))
    heatmap = scene.trace("heatmap")
    if heatmap is None:
        ax.text(0.5, 0.5, '\n'.join(scene.messages) or 'No data', ha='center', va='center')
        return ax

    z = np.array(heatmap.data["z"])
    labels = heatmap.data["labels"]
    im = ax.imshow(z, cmap=cmap, vmin=-1, vmax=1, aspect='equal', interpolation='nearest')
    plt.colorbar(im, ax=ax, fraction=0.046)

    ax.set_xticks(range(len(labels)))
    ax.set_yticks(range(len(labels)))
    ax.set_xticklabels(labels, rotation=45, ha='right', fontsize=9)
    ax.set_yticklabels(labels, fontsize=9)
    if annotate and len(labels) <= 20:
        for i in range(len(labels)):
            for j in range(len(labels)):
                ax.text(j, i, f'{z[i, j]:.2f}', ha='center', va='center', fontsize=7,
                        color='white' if abs(z[i, j]) > 0.5 else 'black')
    ax.set_title(f"{scene.title} ({heatmap.data['method']})", fontsize=11)
    return ax


def plot_corrplot(scene: Scene, figsize=(14, 6)):
    """Heatmap and, when the scene has one, its dendrogram side by side."""
    dendro = scene.trace("dendrogram")
    if dendro is None:
        fig, ax = plt.subplots(figsize=(figsize[0] / 2, figsize[1]))
        plot_correlation_heatmap(scene, ax=ax)
        return fig

    fig, axes = plt.subplots(1, 2, figsize=figsize)
    plot_correlation_heatmap(scene, ax=axes[0])
    tree = ClusterTree(
        n_leaves=len(dendro.data["labels"]),
        merges=[tuple(m) for m in dendro.data["merges"]],
        heights=list(dendro.data["heights"]),
    )
    plot_dendrogram(tree, dendro.data["labels"], ax=axes[1])
    axes[1].set_title(f"Hierarchical Clustering Dendrogram ({dendro.data['linkage']} linkage)",
                      fontsize=11)
    plt.tight_layout()
    return fig
