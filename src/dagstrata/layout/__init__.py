"""Layout stages: layering, decrossing, and coordinate assignment."""

from dagstrata.layout.coords import QuadCoordinates, assign_coordinates, default_node_size
from dagstrata.layout.decross import (
    DecrossOperator,
    IdentityDecross,
    TwoLayerDecross,
    TwoLayerOperator,
    crossings,
)
from dagstrata.layout.layers import SimplexLayering, assign_layers
from dagstrata.layout.twolayer import MeanTwoLayer, MedianTwoLayer, OptTwoLayer

__all__ = [
    "DecrossOperator",
    "IdentityDecross",
    "MeanTwoLayer",
    "MedianTwoLayer",
    "OptTwoLayer",
    "QuadCoordinates",
    "SimplexLayering",
    "TwoLayerDecross",
    "TwoLayerOperator",
    "assign_coordinates",
    "assign_layers",
    "crossings",
    "default_node_size",
]
