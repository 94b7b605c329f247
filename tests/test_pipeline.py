"""End-to-end tests chaining layering, decrossing, and coordinates."""

import pytest

from dagstrata.layout import (
    QuadCoordinates,
    SimplexLayering,
    TwoLayerDecross,
    crossings,
)
from dagstrata.model import LayoutDag, build_layers


def _make_crossed_diamonds():
    """Two diamonds whose middle layers start out interleaved."""
    return LayoutDag.from_edges(
        [
            ("a", "b1"),
            ("c", "d1"),
            ("a", "b2"),
            ("c", "d2"),
            ("b1", "e"),
            ("b2", "e"),
            ("d1", "f"),
            ("d2", "f"),
        ]
    )


def test_pipeline_produces_layer_order_and_x():
    dag = _make_crossed_diamonds()
    SimplexLayering()(dag)
    layers = build_layers(dag)
    # interleave the middle layer to force crossings
    layers[1][:] = [dag.nodes[i] for i in ("b1", "d1", "b2", "d2")]
    assert crossings(layers) > 0

    TwoLayerDecross()(layers)
    assert crossings(layers) == 0

    width = QuadCoordinates()(layers)
    assert width == pytest.approx(4.0, abs=1e-4)
    for node in dag:
        assert node.layer is not None
        assert node.order is not None
        assert node.x is not None
    for source, target in dag.links():
        assert target.layer == source.layer + 1
