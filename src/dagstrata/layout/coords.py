"""Horizontal coordinate assignment by quadratic programming.

Positions nodes to keep edges vertical and long edges straight while
respecting the in-layer order from decrossing. Layers are split into runs
that share no connected component and each run is solved separately, then
runs are centered on the widest one.
"""

from __future__ import annotations

__all__ = ["NodeSize", "QuadCoordinates", "assign_coordinates", "default_node_size"]

import logging
from dataclasses import dataclass, field, replace
from typing import Callable

import networkx as nx
import numpy as np

from dagstrata.errors import ConfigurationError, DegenerateObjective
from dagstrata.layout.constants import (
    COMPONENT_WEIGHT,
    CURVE_WEIGHTS,
    RIDGE_EPSILON,
    VERTICAL_WEIGHTS,
)
from dagstrata.model import LayoutNode
from dagstrata.solvers import CvxpyQuadraticSolver, QuadraticProgram, QuadraticSolver

logger = logging.getLogger(__name__)

NodeSize = Callable[[LayoutNode], float]
"""Horizontal extent of a node; must be pure and non-negative."""

Layers = list[list[LayoutNode]]


def default_node_size(node: LayoutNode) -> float:
    """Real nodes are one unit wide, dummy nodes take no space."""
    return 0.0 if node.is_dummy else 1.0


def component_map(layers: Layers) -> dict[LayoutNode, int]:
    """Map each node to the index of its weakly connected component."""
    G = nx.Graph()
    for layer in layers:
        G.add_nodes_from(layer)
    for layer in layers:
        for node in layer:
            for child in node.children:
                if child in G:
                    G.add_edge(node, child)
    comp: dict[LayoutNode, int] = {}
    for i, members in enumerate(nx.connected_components(G)):
        for node in members:
            comp[node] = i
    return comp


def split_runs(layers: Layers, comp: dict[LayoutNode, int]) -> list[Layers]:
    """Split layers into runs where adjacent runs share no component.

    Dummy nodes keep components from skipping a layer, so a boundary with no
    shared component cleanly separates the drawing into independent bands.
    """
    runs: list[Layers] = []
    last: set[int] = set()
    for layer in layers:
        current = {comp[node] for node in layer}
        if not runs or last.isdisjoint(current):
            runs.append([])
        runs[-1].append(layer)
        last = current
    return runs


def _min_dist(Q: np.ndarray, i: int, j: int, weight: float) -> None:
    """Add ``weight * (x_i - x_j)^2``."""
    Q[i, i] += weight
    Q[j, j] += weight
    Q[i, j] -= weight
    Q[j, i] -= weight


def _min_bend(Q: np.ndarray, p: int, n: int, c: int, weight: float) -> None:
    """Add ``weight * (x_p - 2 x_n + x_c)^2``."""
    v = {p: 1.0, n: -2.0, c: 1.0}
    for a, va in v.items():
        for b, vb in v.items():
            Q[a, b] += weight * va * vb


@dataclass(frozen=True)
class QuadCoordinates:
    """Quadratic program coordinate operator.

    Weights come in (real node, dummy node) pairs. The verticality weight of
    a link is the sum of its endpoints' weights; the curvature weight of a
    path through a node is that node's weight. Each node type needs a
    positive verticality or curvature weight, otherwise its objective is
    degenerate. ``component`` pulls together nodes of different components
    that sit next to each other in a layer, and must be positive. Only those
    adjacent pairs are pulled, not every pair across two components.
    """

    vertical: tuple[float, float] = VERTICAL_WEIGHTS
    curve: tuple[float, float] = CURVE_WEIGHTS
    component: float = COMPONENT_WEIGHT
    solver: QuadraticSolver = field(default_factory=CvxpyQuadraticSolver)

    def __post_init__(self) -> None:
        for name in ("vertical", "curve"):
            weights = tuple(getattr(self, name))
            object.__setattr__(self, name, weights)
            if len(weights) != 2:
                raise ConfigurationError(
                    f"{name} needs (node, dummy) weights, got {weights!r}"
                )
            node_w, dummy_w = weights
            if node_w < 0 or dummy_w < 0:
                raise ConfigurationError(
                    f"weights must be non-negative, but were {node_w} and {dummy_w}"
                )
        if self.component <= 0:
            raise ConfigurationError(
                f"weight must be positive, but was {self.component}"
            )
        if self.vertical[0] == 0 and self.curve[0] == 0:
            raise DegenerateObjective(
                "node vertical weight or node curve weight needs to be positive"
            )
        if self.vertical[1] == 0 and self.curve[1] == 0:
            raise DegenerateObjective(
                "dummy vertical weight or dummy curve weight needs to be positive"
            )

    def with_vertical(self, vertical: tuple[float, float]) -> QuadCoordinates:
        return replace(self, vertical=vertical)

    def with_curve(self, curve: tuple[float, float]) -> QuadCoordinates:
        return replace(self, curve=curve)

    def with_component(self, component: float) -> QuadCoordinates:
        return replace(self, component=component)

    def with_solver(self, solver: QuadraticSolver) -> QuadCoordinates:
        return replace(self, solver=solver)

    def _solve_run(
        self,
        run: Layers,
        sizes: dict[LayoutNode, float],
        comp: dict[LayoutNode, int],
    ) -> tuple[dict[LayoutNode, float], float]:
        """Lay out one run, leftmost extent at 0.

        Returns the positions and the run width; nodes are left untouched.
        """
        nodes = [node for layer in run for node in layer]
        if not nodes:
            return {}, 0.0
        index = {node: i for i, node in enumerate(nodes)}
        n = len(nodes)

        # Order and separation: x_next - x_prev >= (w_prev + w_next) / 2
        rows: list[np.ndarray] = []
        bounds: list[float] = []
        for layer in run:
            for first, second in zip(layer, layer[1:]):
                row = np.zeros(n)
                row[index[first]] = 1.0
                row[index[second]] = -1.0
                rows.append(row)
                bounds.append(-(sizes[first] + sizes[second]) / 2)

        vert_node, vert_dummy = self.vertical
        curve_node, curve_dummy = self.curve
        Q = np.zeros((n, n))
        for layer in run:
            for par in layer:
                pind = index[par]
                wpar = vert_dummy if par.is_dummy else vert_node
                for node in par.children:
                    nind = index.get(node)
                    if nind is None:
                        continue
                    wnode = vert_dummy if node.is_dummy else vert_node
                    wcurve = curve_dummy if node.is_dummy else curve_node
                    _min_dist(Q, pind, nind, wpar + wnode)
                    for child in node.children:
                        cind = index.get(child)
                        if cind is not None:
                            _min_bend(Q, pind, nind, cind, wcurve)

        # keep disconnected components close
        for layer in run:
            for first, second in zip(layer, layer[1:]):
                if comp[first] != comp[second]:
                    _min_dist(Q, index[first], index[second], self.component)

        Q += RIDGE_EPSILON * np.eye(n)
        program = QuadraticProgram(
            Q=Q,
            c=np.zeros(n),
            A=np.array(rows) if rows else np.zeros((0, n)),
            b=np.array(bounds),
        )
        solution = self.solver.solve(program)

        start = np.inf
        finish = -np.inf
        for layer in run:
            if not layer:
                continue
            first, last = layer[0], layer[-1]
            start = min(start, solution[index[first]] - sizes[first] / 2)
            finish = max(finish, solution[index[last]] + sizes[last] / 2)

        positions = {node: float(solution[index[node]] - start) for node in nodes}
        return positions, float(finish - start)

    def __call__(self, layers: Layers, node_size: NodeSize = default_node_size) -> float:
        """Assign ``x`` to every node and return the drawing width."""
        sizes: dict[LayoutNode, float] = {}
        for layer in layers:
            for node in layer:
                size = node_size(node)
                if size < 0:
                    raise ConfigurationError(
                        f"node size must be non-negative, got {size} for '{node.id}'"
                    )
                sizes[node] = float(size)

        comp = component_map(layers)
        runs = split_runs(layers, comp)
        solved = [self._solve_run(run, sizes, comp) for run in runs]
        widths = [width for _, width in solved]
        logger.debug("quad coordinates: %d runs, widths %s", len(runs), widths)

        max_width = max(widths, default=0.0)
        if max_width <= 0:
            raise DegenerateObjective("must assign nonzero width to at least one node")

        for positions, width in solved:
            offset = (max_width - width) / 2
            for node, x in positions.items():
                node.x = x + offset
        return max_width


def assign_coordinates(
    layers: Layers,
    node_size: NodeSize = default_node_size,
    vertical: tuple[float, float] = VERTICAL_WEIGHTS,
    curve: tuple[float, float] = CURVE_WEIGHTS,
    component: float = COMPONENT_WEIGHT,
    solver: QuadraticSolver | None = None,
) -> float:
    """Assign coordinates with a freshly configured operator; returns width."""
    operator = QuadCoordinates(vertical=vertical, curve=curve, component=component)
    if solver is not None:
        operator = operator.with_solver(solver)
    return operator(layers, node_size)
