"""Layer assignment by integer linear programming (network simplex layering).

Every node gets an integer layer so that each link points strictly downward
and the total link span is as small as possible. Minimizing span also
minimizes the number of dummy nodes inserted for long edges later on.
Optional rank and group accessors add ordering and same-layer constraints.
"""

from __future__ import annotations

__all__ = ["GroupAccessor", "RankAccessor", "SimplexLayering", "assign_layers"]

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Hashable

import numpy as np
from scipy import sparse

from dagstrata.errors import ConfigurationError, LayoutInfeasible, SolverError
from dagstrata.layout.constants import OBJECTIVE_SLACK
from dagstrata.model import LayoutDag, LayoutNode
from dagstrata.solvers import IntegerProgram, IntegerSolver, MilpSolver

logger = logging.getLogger(__name__)

RankAccessor = Callable[[LayoutNode], Any]
"""Returns an orderable rank for a node, or None for no rank."""

GroupAccessor = Callable[[LayoutNode], Hashable]
"""Returns a group key for a node, or None for no group."""


class _Constraints:
    """Accumulates ``lower <= sum(coef * layer) <= upper`` rows."""

    def __init__(self, index: dict[str, int]) -> None:
        self.index = index
        self.rows: list[dict[int, float]] = []
        self.lower: list[float] = []
        self.upper: list[float] = []

    def before(self, first: LayoutNode, second: LayoutNode, strict: bool = True) -> None:
        """Require ``second.layer - first.layer >= 1`` (or ``>= 0``)."""
        self.rows.append({self.index[first.id]: -1.0, self.index[second.id]: 1.0})
        self.lower.append(1.0 if strict else 0.0)
        self.upper.append(np.inf)

    def equal(self, first: LayoutNode, second: LayoutNode) -> None:
        self.rows.append({self.index[first.id]: -1.0, self.index[second.id]: 1.0})
        self.lower.append(0.0)
        self.upper.append(0.0)

    def matrix(self, n: int) -> sparse.csr_array:
        rows, cols, data = [], [], []
        for r, row in enumerate(self.rows):
            for col, coef in row.items():
                rows.append(r)
                cols.append(col)
                data.append(coef)
        return sparse.coo_array(
            (data, (rows, cols)), shape=(len(self.rows), n)
        ).tocsr()


@dataclass(frozen=True)
class SimplexLayering:
    """Layering operator minimizing total edge span.

    Operators are immutable: ``with_rank``, ``with_group`` and ``with_solver``
    return reconfigured copies, so one instance can be shared freely.

    Args:
        rank: Nodes with a rank are ordered by it; equal ranks share a
            layer. Contradicting the link direction makes layout fail.
        group: Nodes with the same group key share a layer.
        solver: Integer program backend.
    """

    rank: RankAccessor | None = None
    group: GroupAccessor | None = None
    solver: IntegerSolver = field(default_factory=MilpSolver)

    def __post_init__(self) -> None:
        for name in ("rank", "group"):
            accessor = getattr(self, name)
            if accessor is not None and not callable(accessor):
                raise ConfigurationError(
                    f"{name} accessor must be callable, got {accessor!r}"
                )
        if not hasattr(self.solver, "solve"):
            raise ConfigurationError(f"solver must define solve(), got {self.solver!r}")

    def with_rank(self, rank: RankAccessor | None) -> SimplexLayering:
        return replace(self, rank=rank)

    def with_group(self, group: GroupAccessor | None) -> SimplexLayering:
        return replace(self, group=group)

    def with_solver(self, solver: IntegerSolver) -> SimplexLayering:
        return replace(self, solver=solver)

    def __call__(self, dag: LayoutDag) -> None:
        """Write an integer layer onto every node of *dag*."""
        dag.validate()
        nodes = list(dag)
        if not nodes:
            return
        index = {node.id: i for i, node in enumerate(nodes)}
        n = len(nodes)

        objective = np.zeros(n)
        constraints = _Constraints(index)

        # Link constraints; each link adds +1 to its source and -1 to its
        # target so maximizing the sum minimizes total span.
        for source, target in dag.links():
            constraints.before(source, target)
            objective[index[source.id]] += 1
            objective[index[target.id]] -= 1

        ranked: list[tuple[Any, LayoutNode]] = []
        groups: dict[Hashable, list[LayoutNode]] = defaultdict(list)
        for node in nodes:
            if self.rank is not None:
                value = self.rank(node)
                if value is not None:
                    ranked.append((value, node))
            if self.group is not None:
                key = self.group(node)
                if key is not None:
                    groups[key].append(node)

        # Adjacent pairs suffice by transitivity.
        ranked.sort(key=lambda pair: pair[0])
        for (frank, fnode), (srank, snode) in zip(ranked, ranked[1:]):
            if frank < srank:
                constraints.before(fnode, snode)
            else:
                constraints.equal(fnode, snode)

        for members in groups.values():
            for first, second in zip(members, members[1:]):
                constraints.equal(first, second)

        has_hints = bool(ranked) or bool(groups)
        logger.debug(
            "simplex layering: %d nodes, %d constraints, %d ranked, %d groups",
            n,
            len(constraints.rows),
            len(ranked),
            len(groups),
        )

        A = constraints.matrix(n)
        program = IntegerProgram(
            objective=objective,
            A=A,
            row_lower=np.array(constraints.lower),
            row_upper=np.array(constraints.upper),
            lower=np.zeros(n),
            upper=np.full(n, np.inf),
            integral=np.ones(n, dtype=bool),
            maximize=True,
        )
        solution = self.solver.solve(program)
        if solution is None:
            if has_hints:
                raise LayoutInfeasible(
                    "could not find a feasible simplex layout, check that "
                    "rank or group accessors are not ill-defined",
                    from_hints=True,
                )
            raise LayoutInfeasible(
                "could not find a feasible simplex layout, this should not happen",
                from_hints=False,
            )

        # Several layerings can share the optimal span; pin the span and
        # prefer the one with the smallest layer indices.
        tiebreak = IntegerProgram(
            objective=np.ones(n),
            A=sparse.vstack(
                [A, sparse.csr_array(objective[np.newaxis, :])], format="csr"
            ),
            row_lower=np.append(program.row_lower, solution.objective - OBJECTIVE_SLACK),
            row_upper=np.append(program.row_upper, np.inf),
            lower=program.lower,
            upper=program.upper,
            integral=program.integral,
            maximize=False,
        )
        refined = self.solver.solve(tiebreak)
        if refined is None:
            raise SolverError("tie-break solve lost feasibility of the optimal layering")

        values = refined.x
        for i, node in enumerate(nodes):
            # backends may omit or blur zero assignments
            value = values[i] if i < len(values) else 0.0
            node.layer = int(round(value or 0.0))


def assign_layers(
    dag: LayoutDag,
    rank: RankAccessor | None = None,
    group: GroupAccessor | None = None,
    solver: IntegerSolver | None = None,
) -> None:
    """Assign layers to *dag* in place with a default simplex operator."""
    operator = SimplexLayering(rank=rank, group=group)
    if solver is not None:
        operator = operator.with_solver(solver)
    operator(dag)
