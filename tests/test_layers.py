"""Tests for simplex layer assignment."""

import pytest
from scipy import sparse

from dagstrata.errors import ConfigurationError, LayoutError, LayoutInfeasible
from dagstrata.layout.layers import SimplexLayering, assign_layers
from dagstrata.model import LayoutDag, LayoutNode
from dagstrata.solvers import MilpSolver


def _make_square():
    return LayoutDag.from_edges([("0", "1"), ("0", "2"), ("1", "3"), ("2", "3")])


def _make_x():
    """Two sources merging into 3, which fans out and merges again into 6."""
    return LayoutDag.from_edges(
        [
            ("0", "1"),
            ("1", "3"),
            ("2", "3"),
            ("3", "4"),
            ("3", "5"),
            ("4", "6"),
            ("5", "6"),
        ]
    )


def _make_double():
    return LayoutDag.from_edges([], nodes=["0", "1"])


def _make_zigzag():
    """Two components, one with a long edge."""
    return LayoutDag.from_edges(
        [("a", "b"), ("b", "c"), ("a", "c"), ("x", "y"), ("z", "y")]
    )


def _layers_of(dag):
    layers: dict[int, list[str]] = {}
    for node in dag:
        layers.setdefault(node.layer, []).append(node.id)
    return [sorted(layers[i]) for i in sorted(layers)]


class _RecordingSolver:
    def __init__(self, inner=None):
        self.inner = inner or MilpSolver()
        self.programs = []

    def solve(self, program):
        self.programs.append(program)
        return self.inner.solve(program)


class _InfeasibleSolver:
    def solve(self, program):
        return None


def test_simplex_square():
    dag = _make_square()
    SimplexLayering()(dag)
    assert _layers_of(dag) == [["0"], ["1", "2"], ["3"]]


def test_simplex_x_avoids_long_edges():
    dag = _make_x()
    SimplexLayering()(dag)
    assert _layers_of(dag) == [["0"], ["1", "2"], ["3"], ["4", "5"], ["6"]]


def test_simplex_disconnected_nodes_sit_at_zero():
    dag = _make_double()
    SimplexLayering()(dag)
    assert _layers_of(dag) == [["0", "1"]]


def test_simplex_respects_ranks():
    dag = _make_square()

    def ranker(node):
        return {"1": 1, "2": 2}.get(node.id)

    layering = SimplexLayering().with_rank(ranker)
    assert layering.rank is ranker
    layering(dag)
    assert _layers_of(dag) == [["0"], ["1"], ["2"], ["3"]]


def test_simplex_respects_equal_ranks():
    dag = _make_x()
    layering = SimplexLayering(rank=lambda n: 0 if n.id in ("0", "2") else None)
    layering(dag)
    assert _layers_of(dag) == [["0", "2"], ["1"], ["3"], ["4", "5"], ["6"]]


def test_simplex_respects_groups():
    dag = _make_x()

    def grp(node):
        return "group" if node.id in ("0", "2") else None

    layering = SimplexLayering().with_group(grp)
    assert layering.group is grp
    layering(dag)
    assert _layers_of(dag) == [["0", "2"], ["1"], ["3"], ["4", "5"], ["6"]]


def test_simplex_fails_with_ill_defined_ranks():
    dag = _make_square()
    layering = SimplexLayering(rank=lambda n: {"0": 1, "3": 0}.get(n.id))
    with pytest.raises(LayoutInfeasible, match="rank or group accessors") as exc:
        layering(dag)
    assert exc.value.from_hints


def test_simplex_fails_with_ill_defined_group():
    dag = _make_square()
    layering = SimplexLayering(group=lambda n: "g" if n.id in ("0", "3") else None)
    with pytest.raises(LayoutInfeasible, match="rank or group accessors") as exc:
        layering(dag)
    assert exc.value.from_hints


def test_simplex_infeasible_without_hints_is_internal():
    dag = _make_square()
    layering = SimplexLayering(solver=_InfeasibleSolver())
    with pytest.raises(LayoutInfeasible, match="should not happen") as exc:
        layering(dag)
    assert not exc.value.from_hints


def test_simplex_rejects_non_callable_accessor():
    with pytest.raises(ConfigurationError):
        SimplexLayering(rank=3)
    with pytest.raises(ConfigurationError):
        SimplexLayering().with_group("not a function")


def test_simplex_reconfiguring_returns_new_operator():
    base = SimplexLayering()
    ranked = base.with_rank(lambda n: 0)
    assert base.rank is None
    assert ranked.rank is not None
    assert ranked is not base


def test_simplex_rejects_cycles():
    dag = LayoutDag.from_edges([("a", "b"), ("b", "a")])
    with pytest.raises(LayoutError, match="cycle"):
        SimplexLayering()(dag)


def test_simplex_uses_supplied_solver():
    solver = _RecordingSolver()
    dag = _make_square()
    SimplexLayering().with_solver(solver)(dag)
    assert len(solver.programs) == 2
    first = solver.programs[0]
    assert first.maximize
    # out-degree minus in-degree per node
    assert list(first.objective) == [2, 0, 0, -2]
    assert first.A.shape == (4, 4)
    assert sparse.issparse(first.A)
    # the tie-break solve adds one row pinning the optimal span
    assert solver.programs[1].A.shape == (5, 4)


@pytest.mark.parametrize("make", [_make_square, _make_x, _make_double, _make_zigzag])
def test_simplex_precedence_invariant(make):
    dag = make()
    assign_layers(dag)
    for source, target in dag.links():
        assert target.layer > source.layer
    assert all(node.layer >= 0 for node in dag)


def test_simplex_rank_monotonicity():
    dag = _make_zigzag()
    ranks = {"a": 0, "x": 0, "y": 2, "c": 2, "z": 1}
    assign_layers(dag, rank=lambda n: ranks.get(n.id))
    nodes = dag.nodes
    for u, ru in ranks.items():
        for v, rv in ranks.items():
            if ru < rv:
                assert nodes[u].layer <= nodes[v].layer
            elif ru == rv:
                assert nodes[u].layer == nodes[v].layer


def test_simplex_group_equality():
    dag = _make_zigzag()
    assign_layers(dag, group=lambda n: "g" if n.id in ("b", "y") else None)
    assert dag.nodes["b"].layer == dag.nodes["y"].layer


def test_simplex_parallel_links():
    dag = LayoutDag.from_edges([("a", "b"), ("a", "b"), ("b", "c")])
    assign_layers(dag)
    assert _layers_of(dag) == [["a"], ["b"], ["c"]]


def test_simplex_is_idempotent():
    dag = _make_x()
    layering = SimplexLayering()
    layering(dag)
    first = {node.id: node.layer for node in dag}
    layering(dag)
    assert {node.id: node.layer for node in dag} == first


def test_simplex_empty_dag():
    dag = LayoutDag()
    SimplexLayering()(dag)
    assert len(dag) == 0


def test_simplex_single_node():
    dag = LayoutDag()
    dag.add_node(LayoutNode(id="solo"))
    assign_layers(dag)
    assert dag.nodes["solo"].layer == 0
