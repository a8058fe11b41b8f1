"""
Chart specifications.

Each chart validates its data and options at construction and renders to
a structured Scene (traces + controls) instead of HTML/JS strings. The
Scene is what a front end, or chartlab.plotting, draws.

    TSNEPlot: interactive t-SNE embedding of entities
    CorrPlot: correlation heatmap ordered by hierarchical clustering
    Graph: correlation network with a strength cutoff
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .clustering import LINKAGES, cluster_from_correlation, compute_dendrogram_data
from .colors import (CATEGORY_PALETTE, DEFAULT_NODE_COLOR, ColourMap,
                     discrete_color_map, generate_colors)
from .correlation import DISTANCE_MODES
from .distances import MISSING_PAIR_POLICIES, RESCALINGS
from .errors import ValidationError
from .log import get_logger
from .records import (column_names, index_records, is_missing, is_numeric_column,
                      numeric_columns, unique_in_order)
from .session import ChartSession, RunSettings, Scheduler

logger = get_logger(__name__)


@dataclass
class Control:
    kind: str                 # select, multiselect, slider, number, button, sortable
    id: str
    label: str
    value: Any = None
    options: List[Any] = field(default_factory=list)
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Trace:
    kind: str                 # scatter, heatmap, dendrogram, nodes, edges
    data: Dict[str, Any]


@dataclass
class Scene:
    chart_title: str
    title: str
    notes: str = ""
    traces: List[Trace] = field(default_factory=list)
    controls: List[Control] = field(default_factory=list)
    status: Optional[Dict[str, Any]] = None
    messages: List[str] = field(default_factory=list)

    def trace(self, kind: str) -> Optional[Trace]:
        for t in self.traces:
            if t.kind == kind:
                return t
        return None


class ChartSpec:
    """Base for all charts: title, notes and the data/JS dependencies they need."""

    kind = "chart"
    js_dependencies: Sequence[str] = ()

    def __init__(self, chart_title: str, title: str = "", notes: str = "",
                 data_label: Optional[str] = None):
        self.chart_title = str(chart_title)
        self.title = title
        self.notes = notes
        self.data_label = data_label

    def dependencies(self) -> List[str]:
        return [self.data_label] if self.data_label is not None else []

    def render(self, **view) -> Scene:
        raise NotImplementedError

    def _control_id(self, name: str) -> str:
        return f"{name}_{self.chart_title}"


def _require_columns(records, required: Iterable[str], message: str) -> List[str]:
    names = column_names(records)
    for col in required:
        if col not in names:
            raise ValidationError(f"{message}. Missing: {col}")
    return names


def _scenarios(records, scenario_col, default_scenario, names):
    if scenario_col is not None:
        if scenario_col not in names:
            raise ValidationError(f"Scenario column {scenario_col} not found in data")
        scenarios = unique_in_order(r.get(scenario_col) for r in records)
    else:
        scenarios = ["default"]
    if default_scenario is None:
        return scenarios, scenarios[0]
    if default_scenario not in scenarios:
        raise ValidationError(f"Default scenario '{default_scenario}' not found in data")
    return scenarios, default_scenario


def _default_variables(all_vars, default_variables):
    if default_variables is None:
        return list(all_vars)
    for var in default_variables:
        if var not in all_vars:
            raise ValidationError(f"Default variable '{var}' not found in data")
    return list(default_variables)


# ============================================================
# t-SNE
# ============================================================

class TSNEPlot(ChartSpec):
    """
    Interactive t-SNE of the entities in ``records``.

    With ``distance_matrix=True`` the records are (node1, node2, distance) rows;
    otherwise each record is an entity row and ``feature_cols`` (default: all
    numeric columns) drive the distances.
    """

    kind = "tsne"
    js_dependencies = ("jquery", "d3")

    def __init__(self, chart_title: str, records: Sequence[Dict[str, Any]], *,
                 entity_col: str = "entity",
                 label_col: Optional[str] = None,
                 feature_cols: Optional[Sequence[str]] = None,
                 distance_matrix: bool = False,
                 missing_pairs: str = "unknown",
                 color_cols: Sequence[str] = (),
                 tooltip_cols: Sequence[str] = (),
                 colour_map: Optional[Mapping] = None,
                 extrapolate_colors: bool = False,
                 perplexity: float = 30.0,
                 learning_rate: float = 200.0,
                 rescaling: str = "zscore",
                 title: str = "t-SNE Visualization",
                 notes: str = "",
                 data_label: Optional[str] = None,
                 random_state=None):
        super().__init__(chart_title, title, notes, data_label)
        self.records = list(records)
        self.entity_col = entity_col
        self.distance_matrix = distance_matrix
        self.missing_pairs = missing_pairs
        self.random_state = random_state
        self.settings = RunSettings(perplexity=perplexity, learning_rate=learning_rate,
                                    rescaling=rescaling)
        if missing_pairs not in MISSING_PAIR_POLICIES:
            raise ValidationError(f"Unknown missing-pair policy '{missing_pairs}'. "
                                  f"Must be one of: {MISSING_PAIR_POLICIES}")

        names = column_names(self.records)
        if distance_matrix:
            _require_columns(self.records, ("node1", "node2", "distance"),
                             "Distance matrix must have columns: node1, node2, distance")
            self.entities = unique_in_order([r["node1"] for r in self.records]
                                            + [r["node2"] for r in self.records])
            self.numeric_cols: List[str] = []
            self.initial_features: List[str] = []
            self._table: Dict[Any, Dict[str, Any]] = {}
        else:
            if entity_col not in names:
                raise ValidationError(f"Entity column {entity_col} not found in data")
            self.numeric_cols = numeric_columns(self.records, exclude=(entity_col, label_col))
            if feature_cols is not None:
                for col in feature_cols:
                    if col not in names:
                        raise ValidationError(f"Feature column {col} not found in data")
                self.initial_features = list(feature_cols)
            else:
                self.initial_features = list(self.numeric_cols)
            self.entities, self._table = index_records(self.records, entity_col)

        self.label_col = label_col if label_col is not None else entity_col
        if not distance_matrix and self.label_col not in names:
            logger.warning("Label column %s not found, using %s", self.label_col, entity_col)
            self.label_col = entity_col

        self.color_cols = []
        for col in color_cols:
            if distance_matrix:
                logger.warning("Color column %s ignored: distance-matrix input has no "
                               "per-entity attributes", col)
            elif col in names:
                self.color_cols.append(col)
            else:
                logger.warning("Color column %s not found in data, it will be ignored", col)

        extra_tooltips = []
        for col in tooltip_cols:
            if col not in names:
                logger.warning("Tooltip column %s not found in data, it will be ignored", col)
            elif col not in self.color_cols:
                extra_tooltips.append(col)
        self.tooltip_cols = self.color_cols + extra_tooltips

        self.continuous_cols = [c for c in self.color_cols if is_numeric_column(self.records, c)]
        self.discrete_cols = [c for c in self.color_cols if c not in self.continuous_cols]
        self.colour_map = ColourMap(colour_map, extrapolate=extrapolate_colors)

        self._session: Optional[ChartSession] = None

    # ---------------------------------------------------------- session

    def create_session(self, scheduler: Optional[Scheduler] = None,
                       on_render=None) -> ChartSession:
        """A fresh interactive session over this chart's data."""
        kwargs = dict(settings=self.settings, scheduler=scheduler,
                      random_state=self.random_state, on_render=on_render)
        if self.distance_matrix:
            edges = [(r.get("node1"), r.get("node2"), r.get("distance")) for r in self.records]
            return ChartSession.from_edges(edges, missing=self.missing_pairs, **kwargs)
        return ChartSession.from_records(self.records, self.entity_col,
                                         self.initial_features, **kwargs)

    @property
    def session(self) -> ChartSession:
        if self._session is None:
            self._session = self.create_session()
            self._session.randomize()
        return self._session

    # ---------------------------------------------------------- coloring

    def node_colors(self, color_by: str = "none") -> List[str]:
        """One color per entity for the chosen color column."""
        if color_by == "none" or self.distance_matrix:
            return [DEFAULT_NODE_COLOR] * len(self.entities)
        if color_by not in self.color_cols:
            raise ValidationError(f"Cannot color by '{color_by}'. Options: {self.color_cols}")

        if color_by in self.continuous_cols:
            gradient = self.colour_map.gradient_for(color_by)
            return [gradient.interpolate(self._table[e].get(color_by)) for e in self.entities]

        mapping = discrete_color_map((r.get(color_by) for r in self.records), CATEGORY_PALETTE)
        return [mapping.get(self._table[e].get(color_by), DEFAULT_NODE_COLOR)
                for e in self.entities]

    def tooltips(self) -> List[Dict[str, Any]]:
        rows = []
        for entity in self.entities:
            row = {self.entity_col: entity}
            record = self._table.get(entity, {})
            for col in self.tooltip_cols:
                row[col] = record.get(col)
            rows.append(row)
        return rows

    def labels(self) -> List[Any]:
        if self.distance_matrix:
            return list(self.entities)
        return [self._table[e].get(self.label_col, e) for e in self.entities]

    # ---------------------------------------------------------- render

    def controls(self) -> List[Control]:
        s = self.settings
        controls = []
        if self.color_cols:
            options = ["none"] + self.discrete_cols + self.continuous_cols
            controls.append(Control("select", self._control_id("color_select"),
                                    "Color nodes by", "none", options,
                                    params={"discrete": list(self.discrete_cols),
                                            "continuous": list(self.continuous_cols)}))
        if not self.distance_matrix:
            available = [c for c in self.numeric_cols if c not in self.initial_features]
            controls.append(Control("sortable", self._control_id("available_features"),
                                    "Available", options=available))
            controls.append(Control("sortable", self._control_id("selected_features"),
                                    "Selected", options=list(self.initial_features)))
            controls.append(Control("select", self._control_id("rescaling"), "Rescaling",
                                    s.rescaling, list(RESCALINGS)))
        controls += [
            Control("slider", self._control_id("perplexity_slider"), "Perplexity", s.perplexity,
                    params={"min": 2, "max": 100, "step": 1}),
            Control("slider", self._control_id("lr_slider"), "Learning rate", s.learning_rate,
                    params={"min": 10, "max": 1000, "step": 10}),
            Control("number", self._control_id("convergence"), "Convergence threshold",
                    s.convergence_threshold, params={"min": 0.001, "max": 10, "step": 0.01}),
            Control("number", self._control_id("max_iter"), "Max iterations", s.max_iterations,
                    params={"min": 100, "max": 10000, "step": 100}),
            Control("number", self._control_id("exag_iters"), "Early exaggeration iters",
                    s.early_exaggeration_iters, params={"min": 0, "max": 500, "step": 10}),
            Control("number", self._control_id("exag_factor"), "Exaggeration factor",
                    s.exaggeration, params={"min": 1.0, "max": 20.0, "step": 0.5}),
            Control("button", self._control_id("randomize_btn"), "Randomize"),
            Control("button", self._control_id("step_btn"), "Step (small)"),
            Control("button", self._control_id("exag_step_btn"), "Exaggerated Step"),
            Control("button", self._control_id("run_btn"), "Run to Convergence"),
        ]
        return controls

    def render(self, session: Optional[ChartSession] = None, color_by: str = "none") -> Scene:
        session = session if session is not None else self.session
        positions = session.positions
        if positions is None:
            positions = np.zeros((len(self.entities), 2))
        status = session.status()
        scatter = Trace("scatter", {
            "entities": list(self.entities),
            "x": positions[:, 0].tolist(),
            "y": positions[:, 1].tolist(),
            "labels": self.labels(),
            "colors": self.node_colors(color_by),
            "tooltips": self.tooltips(),
            "color_by": color_by,
        })
        return Scene(self.chart_title, self.title, self.notes, [scatter], self.controls(),
                     status={
                         "iteration": status.iteration,
                         "movement": status.movement_text,
                         "message": status.message,
                         "exaggeration": status.exaggeration_note,
                     })


# ============================================================
# Correlation heatmap + dendrogram
# ============================================================

class CorrPlot(ChartSpec):
    """
    Correlation heatmap from edge records
    (node1, node2, strength, correlation_method[, scenario]).
    """

    kind = "corrplot"
    js_dependencies = ("plotly", "sortable")
    ORDER_MODES = ("dendrogram", "alphabetical", "manual")

    def __init__(self, chart_title: str, edges: Sequence[Dict[str, Any]], *,
                 title: str = "Correlation Plot with Dendrogram",
                 notes: str = "",
                 scenario_col: Optional[str] = None,
                 default_scenario: Optional[str] = None,
                 default_variables: Optional[Sequence[str]] = None,
                 allow_manual_order: bool = True,
                 distance_mode: str = "absolute",
                 data_label: Optional[str] = None):
        super().__init__(chart_title, title, notes, data_label)
        self.edges = list(edges)
        names = _require_columns(self.edges, ("node1", "node2", "strength", "correlation_method"),
                                 "Data must have columns: node1, node2, strength, "
                                 "correlation_method")
        if distance_mode not in DISTANCE_MODES:
            raise ValidationError(f"Unknown distance mode '{distance_mode}'. "
                                  f"Must be one of: {DISTANCE_MODES}")
        self.scenario_col = scenario_col
        self.scenarios, self.default_scenario = _scenarios(self.edges, scenario_col,
                                                           default_scenario, names)
        self.variables = unique_in_order([e["node1"] for e in self.edges]
                                         + [e["node2"] for e in self.edges])
        self.default_variables = _default_variables(self.variables, default_variables)
        self.methods = unique_in_order(e["correlation_method"] for e in self.edges)
        self.allow_manual_order = allow_manual_order
        self.distance_mode = distance_mode

        self.dendrogram_data = {
            scenario: {
                method: compute_dendrogram_data(
                    self.correlation_matrix(self.variables, scenario, method),
                    self.variables, distance_mode)
                for method in self.methods
            }
            for scenario in self.scenarios
        }

    def _in_scenario(self, edge, scenario) -> bool:
        return self.scenario_col is None or edge.get(self.scenario_col) == scenario

    def correlation_matrix(self, variables: Sequence[str], scenario: str,
                           method: str) -> np.ndarray:
        """Unit diagonal; pairs with no edge are 0."""
        index = {v: i for i, v in enumerate(variables)}
        n = len(variables)
        corr = np.zeros((n, n))
        for edge in self.edges:
            if edge.get("correlation_method") != method or not self._in_scenario(edge, scenario):
                continue
            i, j = index.get(edge["node1"]), index.get(edge["node2"])
            if i is None or j is None or i == j or is_missing(edge["strength"]):
                continue
            corr[i, j] = corr[j, i] = float(edge["strength"])
        np.fill_diagonal(corr, 1.0)
        return corr

    def order_variables(self, variables: Sequence[str], corr: np.ndarray, order_mode: str,
                        linkage: str = "ward",
                        manual_order: Optional[Sequence[str]] = None) -> List[str]:
        if order_mode == "manual" and manual_order:
            ordered = [v for v in manual_order if v in variables]
            return ordered + [v for v in variables if v not in ordered]
        if order_mode == "alphabetical":
            return sorted(variables)
        if order_mode == "manual":
            return list(variables)
        tree = cluster_from_correlation(corr, linkage, self.distance_mode)
        return [variables[i] for i in tree.order]

    def controls(self, method: str, order_mode: str, linkage: str) -> List[Control]:
        controls = []
        if self.scenario_col is not None and len(self.scenarios) > 1:
            controls.append(Control("select", self._control_id("scenario_select"), "Scenario",
                                    self.default_scenario, list(self.scenarios)))
        controls.append(Control("multiselect", self._control_id("var_select"),
                                "Select Variables", list(self.default_variables),
                                list(self.variables)))
        controls.append(Control("select", self._control_id("corr_method_select"),
                                "Correlation method", method, list(self.methods)))
        modes = list(self.ORDER_MODES if self.allow_manual_order else self.ORDER_MODES[:2])
        controls.append(Control("select", self._control_id("order_mode"), "Order",
                                order_mode, modes))
        if order_mode == "dendrogram":
            controls.append(Control("select", self._control_id("linkage_select"),
                                    "Clustering linkage", linkage, list(LINKAGES)))
        return controls

    def render(self, scenario: Optional[str] = None, method: Optional[str] = None,
               variables: Optional[Sequence[str]] = None, order_mode: str = "dendrogram",
               linkage: str = "ward", manual_order: Optional[Sequence[str]] = None) -> Scene:
        scenario = scenario if scenario is not None else self.default_scenario
        method = method if method is not None else self.methods[0]
        variables = list(variables) if variables is not None else list(self.default_variables)
        if order_mode not in self.ORDER_MODES:
            raise ValidationError(f"Unknown order mode '{order_mode}'. "
                                  f"Must be one of: {self.ORDER_MODES}")
        if linkage not in LINKAGES:
            raise ValidationError(f"Unknown linkage: {linkage}. Must be one of: {LINKAGES}")

        scene = Scene(self.chart_title, self.title, self.notes,
                      controls=self.controls(method, order_mode, linkage))
        if len(variables) < 2:
            logger.warning("Select at least 2 variables")
            scene.messages.append("Select at least 2 variables")
            return scene

        corr = self.correlation_matrix(variables, scenario, method)
        tree = None
        if order_mode == "dendrogram":
            tree = cluster_from_correlation(corr, linkage, self.distance_mode)
            ordered = [variables[i] for i in tree.order]
        else:
            ordered = self.order_variables(variables, corr, order_mode, linkage, manual_order)
        idx = [variables.index(v) for v in ordered]
        z = corr[np.ix_(idx, idx)]

        scene.traces.append(Trace("heatmap", {
            "labels": ordered,
            "z": z.tolist(),
            "method": method,
            "scenario": scenario,
        }))
        if tree is not None:
            scene.traces.append(Trace("dendrogram", {"linkage": linkage,
                                                     **tree.to_dict(variables)}))
        return scene


# ============================================================
# Network graph
# ============================================================

class Graph(ChartSpec):
    """
    Network of variables; an edge is drawn when 1 - |strength| <= cutoff.
    """

    kind = "graph"
    js_dependencies = ("cytoscape",)
    VALID_LAYOUTS = ("cose", "circle", "grid", "concentric", "breadthfirst", "random")

    def __init__(self, chart_title: str, edges: Sequence[Dict[str, Any]], *,
                 title: str = "Network Graph",
                 notes: str = "",
                 cutoff: float = 0.5,
                 color_cols: Optional[Sequence[str]] = None,
                 node_attributes: Optional[Mapping[str, Mapping[str, Any]]] = None,
                 show_edge_labels: bool = False,
                 layout: str = "cose",
                 scenario_col: Optional[str] = None,
                 default_scenario: Optional[str] = None,
                 default_variables: Optional[Sequence[str]] = None,
                 data_label: Optional[str] = None):
        super().__init__(chart_title, title, notes, data_label)
        self.edges = list(edges)
        names = _require_columns(self.edges, ("node1", "node2", "strength"),
                                 "Data must have columns: node1, node2, strength")
        if layout not in self.VALID_LAYOUTS:
            raise ValidationError(f"Invalid layout: {layout}. Must be one of: {self.VALID_LAYOUTS}")
        self.scenario_col = scenario_col
        self.scenarios, self.default_scenario = _scenarios(self.edges, scenario_col,
                                                           default_scenario, names)
        self.variables = unique_in_order([e["node1"] for e in self.edges]
                                         + [e["node2"] for e in self.edges])
        self.default_variables = _default_variables(self.variables, default_variables)
        self.cutoff = cutoff
        self.color_cols = list(color_cols) if color_cols else []
        self.node_attributes = {k: dict(v) for k, v in (node_attributes or {}).items()}
        self.show_edge_labels = show_edge_labels
        self.layout = layout
        self.methods = unique_in_order(e["correlation_method"] for e in self.edges
                                       if "correlation_method" in e)

    def filter_edges(self, scenario: str, variables: Sequence[str], cutoff: float,
                     correlation_method: Optional[str] = None,
                     show_edge_labels: bool = False) -> List[Dict[str, Any]]:
        selected = set(variables)
        out = []
        for idx, row in enumerate(self.edges):
            if self.scenario_col is not None and row.get(self.scenario_col) not in (None, scenario):
                continue
            if row["node1"] not in selected or row["node2"] not in selected:
                continue
            row_method = row.get("correlation_method")
            if correlation_method is not None and row_method is not None \
                    and row_method != correlation_method:
                continue
            if is_missing(row["strength"]):
                continue
            strength = float(row["strength"])
            if 1 - abs(strength) > cutoff:
                continue
            edge = {
                "id": f"edge_{scenario}_{idx}",
                "source": row["node1"],
                "target": row["node2"],
                "strength": strength,
                "width": abs(strength) * 5 + 1,
            }
            if show_edge_labels:
                edge["label"] = f"{strength:.2f}"
            out.append(edge)
        return out

    def node_colors(self, nodes: Sequence[str], color_by: Optional[str]) -> List[str]:
        if not color_by or color_by == "none":
            return [DEFAULT_NODE_COLOR] * len(nodes)
        values = [self.node_attributes.get(n, {}).get(color_by) for n in nodes]
        present = unique_in_order(v for v in values if not is_missing(v) and v != "")
        mapping = dict(zip(present, generate_colors(len(present))))
        return [mapping.get(v, DEFAULT_NODE_COLOR) for v in values]

    def render(self, scenario: Optional[str] = None, variables: Optional[Sequence[str]] = None,
               cutoff: Optional[float] = None, correlation_method: Optional[str] = None,
               color_by: Optional[str] = None, show_edge_labels: Optional[bool] = None) -> Scene:
        scenario = scenario if scenario is not None else self.default_scenario
        variables = list(variables) if variables is not None else list(self.default_variables)
        cutoff = self.cutoff if cutoff is None else cutoff
        if correlation_method is None and self.methods:
            correlation_method = self.methods[0]
        if color_by is None:
            color_by = self.color_cols[0] if self.color_cols else "none"
        show_labels = self.show_edge_labels if show_edge_labels is None else show_edge_labels

        selected = set(variables)
        nodes = unique_in_order(
            name
            for row in self.edges
            if row["node1"] in selected and row["node2"] in selected
            for name in (row["node1"], row["node2"]))
        edges = self.filter_edges(scenario, variables, cutoff, correlation_method, show_labels)

        controls = [
            Control("multiselect", self._control_id("var_select"), "Select Variables",
                    variables, list(self.variables)),
            Control("number", self._control_id("cutoff"), "Cutoff", cutoff,
                    params={"min": 0, "max": 1, "step": 0.05}),
            Control("select", self._control_id("layout_select"), "Layout", self.layout,
                    list(self.VALID_LAYOUTS)),
            Control("button", self._control_id("recalc_btn"), "Recalculate Graph"),
        ]
        if self.scenario_col is not None and len(self.scenarios) > 1:
            controls.insert(0, Control("select", self._control_id("scenario_select"), "Scenario",
                                       scenario, list(self.scenarios)))
        if self.methods:
            controls.append(Control("select", self._control_id("corr_method_select"),
                                    "Correlation method", correlation_method, list(self.methods)))
        if self.color_cols:
            controls.append(Control("select", self._control_id("color_select"), "Color by",
                                    color_by, ["none"] + self.color_cols))

        return Scene(self.chart_title, self.title, self.notes, [
            Trace("nodes", {
                "ids": nodes,
                "colors": self.node_colors(nodes, color_by),
                "attributes": [self.node_attributes.get(n, {}) for n in nodes],
                "layout": self.layout,
            }),
            Trace("edges", {"edges": edges}),
        ], controls)
