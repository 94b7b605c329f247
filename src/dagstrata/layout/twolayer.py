"""Two-layer reordering operators.

A two-layer operator receives two adjacent layers and reorders one of them
while the other stays fixed: top-down reorders the bottom layer, bottom-up
reorders the top layer. ``OptTwoLayer`` minimizes crossings exactly;
``MeanTwoLayer`` and ``MedianTwoLayer`` are the classic cheap heuristics a
caller can fall back to when the exact operator refuses a layer.
"""

from __future__ import annotations

__all__ = ["MeanTwoLayer", "MedianTwoLayer", "OptTwoLayer"]

import logging
from dataclasses import dataclass, field, replace
from itertools import combinations

import numpy as np
from scipy import sparse

from dagstrata.errors import ConfigurationError, SizeLimitExceeded, SolverError
from dagstrata.layout.constants import (
    LARGE_SETTINGS,
    OPT_DP_LIMIT,
    OPT_LARGE_LIMIT,
    OPT_MEDIUM_LIMIT,
)
from dagstrata.model import LayoutNode
from dagstrata.solvers import IntegerProgram, IntegerSolver, MilpSolver

logger = logging.getLogger(__name__)

Cost = tuple[int, int, int]
"""(crossings, distance, inversions), compared lexicographically."""


def fixed_positions(
    top: list[LayoutNode],
    bottom: list[LayoutNode],
    top_down: bool,
) -> list[list[int]]:
    """Positions in the fixed layer linked to each free node, with repeats."""
    if top_down:
        index = {node: i for i, node in enumerate(bottom)}
        positions: list[list[int]] = [[] for _ in bottom]
        for pos, node in enumerate(top):
            for child in node.children:
                i = index.get(child)
                if i is not None:
                    positions[i].append(pos)
        return positions

    index = {node: i for i, node in enumerate(bottom)}
    return [
        [index[child] for child in node.children if child in index] for node in top
    ]


def _pair_crossings(positions: list[list[int]]) -> list[list[int]]:
    """``c[a][b]`` is the number of crossings when a is placed before b."""
    n = len(positions)
    c = [[0] * n for _ in range(n)]
    for a in range(n):
        for b in range(n):
            if a != b:
                c[a][b] = sum(1 for i in positions[a] for j in positions[b] if i > j)
    return c


def _shared_pairs(positions: list[list[int]]) -> dict[tuple[int, int], int]:
    """Free node pairs sharing a fixed neighbour, weighted by how many."""
    by_fixed: dict[int, set[int]] = {}
    for free, fixed in enumerate(positions):
        for pos in fixed:
            by_fixed.setdefault(pos, set()).add(free)
    weights: dict[tuple[int, int], int] = {}
    for members in by_fixed.values():
        for a, b in combinations(sorted(members), 2):
            weights[(a, b)] = weights.get((a, b), 0) + 1
    return weights


def _add(first: Cost, second: Cost) -> Cost:
    return (first[0] + second[0], first[1] + second[1], first[2] + second[2])


def _solve_dp(
    crossings: list[list[int]],
    shared: dict[tuple[int, int], int],
) -> list[int]:
    """Exact ordering by dynamic programming over placed prefixes.

    The distance between two nodes equals the number of prefix boundaries
    separating them, so it is charged per prefix. Among equal costs the
    lexicographically smallest sequence of incoming indices wins.
    """
    n = len(crossings)
    full = (1 << n) - 1

    split = [0] * (full + 1)
    if shared:
        for mask in range(1, full):
            split[mask] = sum(
                w for (a, b), w in shared.items() if ((mask >> a) ^ (mask >> b)) & 1
            )

    def step(mask: int, v: int) -> Cost:
        cross = 0
        inversions = 0
        for u in range(n):
            if mask >> u & 1:
                cross += crossings[u][v]
                if u > v:
                    inversions += 1
        return (cross, split[mask | 1 << v], inversions)

    best: list[Cost] = [(0, 0, 0)] * (full + 1)
    for mask in range(full - 1, -1, -1):
        options = [
            _add(step(mask, v), best[mask | 1 << v])
            for v in range(n)
            if not mask >> v & 1
        ]
        best[mask] = min(options)

    order: list[int] = []
    mask = 0
    while mask != full:
        for v in range(n):
            if mask >> v & 1:
                continue
            if _add(step(mask, v), best[mask | 1 << v]) == best[mask]:
                order.append(v)
                mask |= 1 << v
                break
    return order


def _before(a: int, b: int, var: dict[tuple[int, int], int]) -> tuple[int, float, float]:
    """Linear form of "a before b" as (variable, coefficient, constant)."""
    if a < b:
        return var[(a, b)], 1.0, 0.0
    return var[(b, a)], -1.0, 1.0


def _position(
    v: int, n: int, var: dict[tuple[int, int], int]
) -> tuple[dict[int, float], float]:
    """Linear form of v's position: the number of nodes placed before it."""
    coefs: dict[int, float] = {}
    const = 0.0
    for u in range(n):
        if u != v:
            col, coef, offset = _before(u, v, var)
            coefs[col] = coefs.get(col, 0.0) + coef
            const += offset
    return coefs, const


def _solve_ilp(
    crossings: list[list[int]],
    shared: dict[tuple[int, int], int],
    solver: IntegerSolver,
) -> list[int]:
    """Exact ordering as an integer program over pairwise order variables.

    ``x[a, b] = 1`` means a precedes b. Transitivity is enforced on every
    triple. A node's position is the sum of its "placed before" terms, so
    the distance of a shared pair is a continuous variable bounded below by
    the difference of two positions in either direction.
    """
    n = len(crossings)
    var: dict[tuple[int, int], int] = {
        pair: i for i, pair in enumerate(combinations(range(n), 2))
    }
    num_order = len(var)
    pairs = list(shared)
    num_vars = num_order + len(pairs)

    max_inversions = num_order
    max_distance = sum(weight * (n - 1) for weight in shared.values())
    w_dist = max_inversions + 1
    w_cross = w_dist * max_distance + max_inversions + 1

    objective = np.zeros(num_vars)
    for (a, b), i in var.items():
        objective[i] += w_cross * (crossings[a][b] - crossings[b][a])
        objective[i] -= 1
    for k, pair in enumerate(pairs):
        objective[num_order + k] += w_dist * shared[pair]

    row_idx: list[int] = []
    col_idx: list[int] = []
    data: list[float] = []
    lower: list[float] = []
    upper: list[float] = []

    def add_row(coefs: dict[int, float], lo: float, hi: float) -> None:
        r = len(lower)
        for col, coef in coefs.items():
            if coef:
                row_idx.append(r)
                col_idx.append(col)
                data.append(coef)
        lower.append(lo)
        upper.append(hi)

    for a, b, c in combinations(range(n), 3):
        add_row({var[(a, b)]: 1.0, var[(b, c)]: 1.0, var[(a, c)]: -1.0}, 0.0, 1.0)

    positions = {v: _position(v, n, var) for pair in pairs for v in pair}
    for k, (a, b) in enumerate(pairs):
        # d >= pos(first) - pos(last) for both orientations
        for first, last in ((a, b), (b, a)):
            coefs = {num_order + k: 1.0}
            first_coefs, first_const = positions[first]
            last_coefs, last_const = positions[last]
            for col, coef in first_coefs.items():
                coefs[col] = coefs.get(col, 0.0) - coef
            for col, coef in last_coefs.items():
                coefs[col] = coefs.get(col, 0.0) + coef
            add_row(coefs, first_const - last_const, np.inf)

    integral = np.zeros(num_vars, dtype=bool)
    integral[:num_order] = True
    upper_bounds = np.ones(num_vars)
    upper_bounds[num_order:] = max(n - 1, 0)
    program = IntegerProgram(
        objective=objective,
        A=sparse.coo_array(
            (data, (row_idx, col_idx)), shape=(len(lower), num_vars)
        ).tocsr(),
        row_lower=np.array(lower),
        row_upper=np.array(upper),
        lower=np.zeros(num_vars),
        upper=upper_bounds,
        integral=integral,
    )
    logger.debug(
        "opt two-layer ilp: %d variables, %d constraints, %d nonzeros",
        num_vars,
        len(lower),
        len(data),
    )
    solution = solver.solve(program)
    if solution is None:
        raise SolverError("pairwise ordering program reported infeasible")

    preceding = [0] * n
    for (a, b), i in var.items():
        if solution.x[i] > 0.5:
            preceding[b] += 1
        else:
            preceding[a] += 1
    return sorted(range(n), key=lambda v: (preceding[v], v))


@dataclass(frozen=True)
class OptTwoLayer:
    """Exact minimal-crossing two-layer operator.

    Ties on crossings go to shorter distances between nodes sharing a fixed
    neighbour when ``dist`` is set, then to the ordering closest to the
    incoming one. Nodes without links keep their relative order.

    Args:
        large: Largest size class allowed to run: ``"small"`` refuses free
            layers above the medium limit, ``"medium"`` above the large
            limit, ``"large"`` runs anything.
        dist: Also minimize distance between nodes sharing a neighbour.
        solver: Integer program backend for layers too big for the DP.
    """

    large: str = "small"
    dist: bool = False
    solver: IntegerSolver = field(default_factory=MilpSolver)

    def __post_init__(self) -> None:
        if self.large not in LARGE_SETTINGS:
            raise ConfigurationError(
                f"large must be one of {LARGE_SETTINGS}, got {self.large!r}"
            )
        if not isinstance(self.dist, bool):
            raise ConfigurationError(f"dist must be a bool, got {self.dist!r}")

    def with_large(self, large: str) -> OptTwoLayer:
        return replace(self, large=large)

    def with_dist(self, dist: bool) -> OptTwoLayer:
        return replace(self, dist=dist)

    def with_solver(self, solver: IntegerSolver) -> OptTwoLayer:
        return replace(self, solver=solver)

    def check_size(self, size: int) -> None:
        if size > OPT_LARGE_LIMIT and self.large != "large":
            raise SizeLimitExceeded("large", size, OPT_LARGE_LIMIT)
        if size > OPT_MEDIUM_LIMIT and self.large == "small":
            raise SizeLimitExceeded("medium", size, OPT_MEDIUM_LIMIT)

    def __call__(
        self,
        top: list[LayoutNode],
        bottom: list[LayoutNode],
        top_down: bool,
    ) -> None:
        free = bottom if top_down else top
        self.check_size(len(free))
        if len(free) < 2:
            return

        positions = fixed_positions(top, bottom, top_down)
        crossings = _pair_crossings(positions)
        shared = _shared_pairs(positions) if self.dist else {}

        if len(free) <= OPT_DP_LIMIT:
            order = _solve_dp(crossings, shared)
        else:
            logger.debug("opt two-layer: %d free nodes, using ilp", len(free))
            order = _solve_ilp(crossings, shared, self.solver)

        free[:] = [free[i] for i in order]


def _reorder_by_key(free: list[LayoutNode], keys: list[float | None]) -> None:
    """Sort linked nodes by key in place; unlinked nodes keep their slot."""
    slots = [i for i, key in enumerate(keys) if key is not None]
    ranked = sorted(slots, key=lambda i: keys[i])
    reordered = list(free)
    for slot, i in zip(slots, ranked):
        reordered[slot] = free[i]
    free[:] = reordered


@dataclass(frozen=True)
class MeanTwoLayer:
    """Order free nodes by the mean position of their fixed neighbours."""

    def __call__(
        self,
        top: list[LayoutNode],
        bottom: list[LayoutNode],
        top_down: bool,
    ) -> None:
        free = bottom if top_down else top
        keys = [
            sum(pos) / len(pos) if pos else None
            for pos in fixed_positions(top, bottom, top_down)
        ]
        _reorder_by_key(free, keys)


@dataclass(frozen=True)
class MedianTwoLayer:
    """Order free nodes by the median position of their fixed neighbours."""

    def __call__(
        self,
        top: list[LayoutNode],
        bottom: list[LayoutNode],
        top_down: bool,
    ) -> None:
        free = bottom if top_down else top
        keys: list[float | None] = []
        for pos in fixed_positions(top, bottom, top_down):
            if not pos:
                keys.append(None)
                continue
            ordered = sorted(pos)
            mid = len(ordered) // 2
            if len(ordered) % 2:
                keys.append(float(ordered[mid]))
            else:
                keys.append((ordered[mid - 1] + ordered[mid]) / 2)
        _reorder_by_key(free, keys)
