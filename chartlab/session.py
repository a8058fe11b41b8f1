"""
Interactive t-SNE session: one per chart instance.

A ChartSession owns all per-chart state: the distance matrix, the cached
affinities P, the embedding state, the iteration counter and the run flag.
Continuous running is cooperative: each step schedules the next one through
an injected Scheduler (the animation-frame analogue), and ``stop()`` takes
effect once the step in flight has finished.

States:

    UNINITIALIZED → READY → RUNNING → CONVERGED | MAX_ITERATIONS | STOPPED
                      ↑___________________________________|
"""

import dataclasses
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from .affinities import compute_affinities
from .distances import RESCALINGS, build_distances, distances_from_edges
from .errors import ValidationError
from .log import get_logger
from .optimizer import EmbeddingState, kl_divergence, tsne_step
from .records import index_records

logger = get_logger(__name__)


class RunState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    STOPPED = "stopped"


STATUS_TEXT = {
    RunState.UNINITIALIZED: "Loading...",
    RunState.READY: "Ready",
    RunState.RUNNING: "Running...",
    RunState.CONVERGED: "Converged!",
    RunState.MAX_ITERATIONS: "Max iterations reached",
    RunState.STOPPED: "Stopped",
}


@dataclass(frozen=True)
class RunSettings:
    """Optimizer and run-loop settings; defaults match the chart's control panel."""
    perplexity: float = 30.0
    learning_rate: float = 200.0
    exaggeration: float = 4.0
    early_exaggeration_iters: int = 100
    convergence_threshold: float = 0.1
    max_iterations: int = 5000
    rescaling: str = "zscore"

    def __post_init__(self):
        if not self.perplexity > 0:
            raise ValidationError(f"perplexity must be positive, got {self.perplexity}")
        if not self.learning_rate > 0:
            raise ValidationError(f"learning_rate must be positive, got {self.learning_rate}")
        if not self.exaggeration > 0:
            raise ValidationError(f"exaggeration must be positive, got {self.exaggeration}")
        if self.early_exaggeration_iters < 0:
            raise ValidationError("early_exaggeration_iters must be non-negative, "
                                  f"got {self.early_exaggeration_iters}")
        if self.convergence_threshold < 0:
            raise ValidationError("convergence_threshold must be non-negative, "
                                  f"got {self.convergence_threshold}")
        if self.max_iterations < 1:
            raise ValidationError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if self.rescaling not in RESCALINGS:
            raise ValidationError(f"Unknown rescaling '{self.rescaling}'. "
                                  f"Must be one of: {RESCALINGS}")

    def replace(self, **changes) -> "RunSettings":
        return dataclasses.replace(self, **changes)


class Scheduler:
    """Host callback scheduler. ``schedule`` returns a handle ``cancel`` accepts."""

    def schedule(self, callback: Callable[[], None]) -> Any:
        raise NotImplementedError

    def cancel(self, handle: Any) -> None:
        raise NotImplementedError


class SynchronousScheduler(Scheduler):
    """FIFO scheduler driven by explicit ``run_pending`` calls (tests, scripts)."""

    def __init__(self):
        self._queue: "OrderedDict[int, Callable[[], None]]" = OrderedDict()
        self._next_handle = 0

    def schedule(self, callback):
        handle = self._next_handle
        self._next_handle += 1
        self._queue[handle] = callback
        return handle

    def cancel(self, handle):
        self._queue.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run_pending(self, max_callbacks: Optional[int] = None) -> int:
        """Run queued callbacks (including ones they schedule) until empty or the cap."""
        ran = 0
        while self._queue and (max_callbacks is None or ran < max_callbacks):
            _, callback = self._queue.popitem(last=False)
            callback()
            ran += 1
        return ran


@dataclass(frozen=True)
class StatusReadout:
    iteration: int
    movement: float
    state: RunState
    exaggeration_remaining: int

    @property
    def message(self) -> str:
        return STATUS_TEXT[self.state]

    @property
    def movement_text(self) -> str:
        return f"{self.movement:.4f}"

    @property
    def exaggeration_note(self) -> str:
        if self.exaggeration_remaining > 0:
            return f"(Early Exaggeration: {self.exaggeration_remaining} iters remaining)"
        return ""


class ChartSession:
    """
    Interactive t-SNE over a fixed set of entities.

    Build one with ``from_records`` (feature table, features can be re-selected)
    or ``from_edges`` (precomputed pairwise distances).
    """

    def __init__(self, entities: Sequence[Any], distances, settings: Optional[RunSettings] = None,
                 scheduler: Optional[Scheduler] = None, random_state=None,
                 on_render: Optional[Callable[["ChartSession"], None]] = None):
        self.entities = list(entities)
        self.distances = np.asarray(distances, dtype=float)
        if self.distances.shape != (len(self.entities), len(self.entities)):
            raise ValidationError(f"Distance matrix shape {self.distances.shape} does not match "
                                  f"{len(self.entities)} entities")
        self.settings = settings if settings is not None else RunSettings()
        self.scheduler = scheduler if scheduler is not None else SynchronousScheduler()
        self.on_render = on_render
        self._rng = np.random.default_rng(random_state)

        self.embedding: Optional[EmbeddingState] = None
        self.iteration = 0
        self.last_movement = 0.0
        self.state = RunState.UNINITIALIZED

        self._cached_p: Optional[np.ndarray] = None
        self._cached_perplexity: Optional[float] = None
        self._handle = None

        # Feature-table sessions only
        self._feature_table: Optional[Mapping[Any, Mapping[str, Any]]] = None
        self.features: List[str] = []

    @classmethod
    def from_records(cls, records: Sequence[Dict[str, Any]], entity_col: str,
                     features: Sequence[str], settings: Optional[RunSettings] = None,
                     **kwargs) -> "ChartSession":
        settings = settings if settings is not None else RunSettings()
        entities, table = index_records(records, entity_col)
        distances = build_distances(entities, table, list(features), settings.rescaling)
        session = cls(entities, distances, settings, **kwargs)
        session._feature_table = table
        session.features = list(features)
        return session

    @classmethod
    def from_edges(cls, edges: Iterable, missing: str = "unknown",
                   settings: Optional[RunSettings] = None, **kwargs) -> "ChartSession":
        entities, distances = distances_from_edges(edges, missing=missing)
        return cls(entities, distances, settings, **kwargs)

    def __len__(self):
        return len(self.entities)

    # ---------------------------------------------------------- state access

    @property
    def positions(self) -> Optional[np.ndarray]:
        return None if self.embedding is None else self.embedding.positions

    @property
    def is_running(self) -> bool:
        return self.state == RunState.RUNNING

    @property
    def affinities(self) -> np.ndarray:
        """P for the current perplexity; recomputed only when perplexity or distances change."""
        perplexity = self.settings.perplexity
        if self._cached_p is None or self._cached_perplexity != perplexity:
            self._cached_p = compute_affinities(self.distances, perplexity)
            self._cached_perplexity = perplexity
        return self._cached_p

    def status(self) -> StatusReadout:
        remaining = max(0, self.settings.early_exaggeration_iters - self.iteration)
        return StatusReadout(self.iteration, self.last_movement, self.state, remaining)

    def kl_divergence(self) -> float:
        if self.embedding is None:
            return 0.0
        return kl_divergence(self.affinities, self.embedding.positions)

    # ---------------------------------------------------------- configuration

    def update_settings(self, **changes) -> RunSettings:
        """Apply new settings. Changing rescaling recalculates distances."""
        old = self.settings
        self.settings = old.replace(**changes)
        if self.settings.rescaling != old.rescaling and self._feature_table is not None:
            self.recalculate()
        return self.settings

    def set_features(self, features: Sequence[str]) -> None:
        """Re-select the features used for distances; resets the layout."""
        if self._feature_table is None:
            raise ValidationError("Feature selection requires a session built from records")
        self.features = list(features)
        self.recalculate()

    def recalculate(self) -> None:
        if self._feature_table is not None:
            self.distances = build_distances(self.entities, self._feature_table,
                                             self.features, self.settings.rescaling)
        self._cached_p = None
        self._cached_perplexity = None
        self.randomize()
        logger.info("Distances recalculated over %d features", len(self.features))

    # ---------------------------------------------------------- commands

    def randomize(self) -> None:
        """Fresh random layout; P stays cached since it does not depend on positions."""
        if self.is_running:
            self._cancel()
        self.embedding = EmbeddingState.randomize(len(self.entities), self._rng)
        self.iteration = 0
        self.last_movement = 0.0
        self.state = RunState.READY
        logger.info("Randomized layout of %d entities", len(self.entities))
        self._render()

    def step(self) -> float:
        """One small step, never exaggerated."""
        return self._manual_step(exaggerate=False)

    def exaggerated_step(self) -> float:
        """One step, always exaggerated."""
        return self._manual_step(exaggerate=True)

    def start(self) -> None:
        """Run to convergence, one scheduled step at a time."""
        if self.is_running:
            return
        if self.embedding is None:
            self.randomize()
        self.state = RunState.RUNNING
        logger.info("Running (iteration %d)", self.iteration)
        self._handle = self.scheduler.schedule(self._run_tick)

    def stop(self) -> None:
        if not self.is_running:
            return
        self._cancel()
        self.state = RunState.STOPPED
        logger.info("Stopped at iteration %d", self.iteration)

    def toggle_run(self) -> None:
        if self.is_running:
            self.stop()
        else:
            self.start()

    def drag(self, index: int, x: float, y: float) -> None:
        """Place a point by hand. Stops a run in progress; iteration count is kept."""
        if self.embedding is None:
            self.randomize()
        self.stop()
        self.embedding.drag(index, x, y)
        self._render()

    # ---------------------------------------------------------- internals

    def _manual_step(self, exaggerate: bool) -> float:
        if self.embedding is None:
            self.randomize()
        if self.state != RunState.RUNNING:
            self.state = RunState.READY
        return self._advance(exaggerate)

    def _advance(self, exaggerate: bool) -> float:
        factor = self.settings.exaggeration if exaggerate else 1.0
        self.last_movement = tsne_step(self.embedding, self.affinities,
                                       self.settings.learning_rate, self.iteration, factor)
        self.iteration += 1
        logger.debug("Iteration %d, movement %.4f", self.iteration, self.last_movement)
        self._render()
        return self.last_movement

    def _run_tick(self) -> None:
        self._handle = None
        if not self.is_running:
            return
        settings = self.settings
        self._advance(self.iteration < settings.early_exaggeration_iters)

        if (self.iteration > settings.early_exaggeration_iters
                and self.last_movement < settings.convergence_threshold):
            self.state = RunState.CONVERGED
            logger.info("Converged after %d iterations", self.iteration)
            return
        if self.iteration >= settings.max_iterations:
            self.state = RunState.MAX_ITERATIONS
            logger.info("Max iterations reached (%d)", self.iteration)
            return
        self._handle = self.scheduler.schedule(self._run_tick)

    def _cancel(self) -> None:
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None
        self.state = RunState.READY

    def _render(self) -> None:
        if self.on_render is not None:
            self.on_render(self)
