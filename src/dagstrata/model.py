"""Data model for layered DAG layout."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterator

import networkx as nx

from dagstrata.errors import LayoutError


@dataclass(eq=False)
class LayoutNode:
    """A node of the DAG, either user data or a dummy edge segment.

    Nodes compare by identity so two nodes with equal data stay distinct.
    """

    id: str
    data: Any = None
    children: list[LayoutNode] = field(default_factory=list)
    is_dummy: bool = False
    # Populated by layout stages
    layer: int | None = None
    order: int | None = None
    x: float | None = None

    def __repr__(self) -> str:
        kind = "DummyNode" if self.is_dummy else "LayoutNode"
        return f"{kind}({self.id!r}, layer={self.layer}, x={self.x})"


@dataclass
class LayoutDag:
    """A directed acyclic graph of layout nodes, in insertion order."""

    nodes: dict[str, LayoutNode] = field(default_factory=dict)

    def add_node(self, node: LayoutNode) -> LayoutNode:
        if node.id in self.nodes:
            raise LayoutError(f"duplicate node id '{node.id}'")
        self.nodes[node.id] = node
        return node

    def add_edge(self, source: str, target: str) -> None:
        """Add a link; repeated calls create parallel links."""
        for nid in (source, target):
            if nid not in self.nodes:
                raise LayoutError(f"edge references unknown node '{nid}'")
        self.nodes[source].children.append(self.nodes[target])

    def __iter__(self) -> Iterator[LayoutNode]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    def links(self) -> Iterator[tuple[LayoutNode, LayoutNode]]:
        for node in self.nodes.values():
            for child in node.children:
                yield node, child

    def parents(self) -> dict[str, list[LayoutNode]]:
        """Return node id -> parent nodes (one entry per link)."""
        result: dict[str, list[LayoutNode]] = {nid: [] for nid in self.nodes}
        for source, target in self.links():
            result[target.id].append(source)
        return result

    def roots(self) -> list[LayoutNode]:
        parents = self.parents()
        return [node for node in self.nodes.values() if not parents[node.id]]

    def to_networkx(self) -> nx.MultiDiGraph:
        G = nx.MultiDiGraph()
        G.add_nodes_from(self.nodes)
        G.add_edges_from((s.id, t.id) for s, t in self.links())
        return G

    def validate(self) -> None:
        """Raise LayoutError if the graph has a cycle or a foreign child."""
        for source, target in self.links():
            if self.nodes.get(target.id) is not target:
                raise LayoutError(
                    f"node '{source.id}' links to '{target.id}' outside the dag"
                )
        if not nx.is_directed_acyclic_graph(self.to_networkx()):
            raise LayoutError("graph contains a cycle")

    @classmethod
    def from_edges(
        cls,
        edges: list[tuple[str, str]],
        nodes: list[str] | None = None,
    ) -> LayoutDag:
        """Build a dag from an edge list, adding nodes in first-seen order."""
        dag = cls()
        for nid in nodes or []:
            dag.add_node(LayoutNode(id=nid))
        for source, target in edges:
            for nid in (source, target):
                if nid not in dag.nodes:
                    dag.add_node(LayoutNode(id=nid))
            dag.add_edge(source, target)
        return dag


def build_layers(dag: LayoutDag) -> list[list[LayoutNode]]:
    """Group layered nodes into a list of layers.

    Every link must span exactly one layer, so long edges need dummy nodes
    before calling this. Empty layers in between are kept as empty lists.
    """
    by_layer: dict[int, list[LayoutNode]] = defaultdict(list)
    for node in dag:
        if node.layer is None:
            raise LayoutError(f"node '{node.id}' has no layer assigned")
        by_layer[node.layer].append(node)

    for source, target in dag.links():
        if target.layer != source.layer + 1:
            raise LayoutError(
                f"link {source.id} -> {target.id} spans layers "
                f"{source.layer} -> {target.layer}; insert dummy nodes first"
            )

    if not by_layer:
        return []
    return [by_layer.get(i, []) for i in range(max(by_layer) + 1)]


def assign_order(layers: list[list[LayoutNode]]) -> None:
    """Write each node's index within its layer."""
    for layer in layers:
        for i, node in enumerate(layer):
            node.order = i
