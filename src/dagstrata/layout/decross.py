"""Decrossing: reorder nodes within layers to reduce edge crossings.

A decross operator receives the full list of layers and may only permute
nodes inside each layer. It never moves a node to another layer and never
adds or removes nodes. The identity permutation is valid, just poor.
"""

from __future__ import annotations

__all__ = [
    "DecrossOperator",
    "IdentityDecross",
    "TwoLayerDecross",
    "TwoLayerOperator",
    "crossings",
]

import logging
from dataclasses import dataclass, field, replace
from typing import Protocol

from dagstrata.errors import ConfigurationError, LayoutError
from dagstrata.layout.twolayer import OptTwoLayer
from dagstrata.model import LayoutNode, assign_order

logger = logging.getLogger(__name__)


class DecrossOperator(Protocol):
    def __call__(self, layers: list[list[LayoutNode]]) -> None: ...


class TwoLayerOperator(Protocol):
    def __call__(
        self,
        top: list[LayoutNode],
        bottom: list[LayoutNode],
        top_down: bool,
    ) -> None: ...


def crossings(layers: list[list[LayoutNode]]) -> int:
    """Count pairs of links between adjacent layers whose endpoints interleave."""
    total = 0
    for top, bottom in zip(layers, layers[1:]):
        bottom_index = {node: i for i, node in enumerate(bottom)}
        links = [
            (i, bottom_index[child])
            for i, node in enumerate(top)
            for child in node.children
            if child in bottom_index
        ]
        for k, (s1, t1) in enumerate(links):
            for s2, t2 in links[k + 1 :]:
                if (s1 - s2) * (t1 - t2) < 0:
                    total += 1
    return total


@dataclass(frozen=True)
class IdentityDecross:
    """Keep the incoming order."""

    def __call__(self, layers: list[list[LayoutNode]]) -> None:
        assign_order(layers)


@dataclass(frozen=True)
class TwoLayerDecross:
    """Sweep a two-layer operator down and up the layers.

    Each pass reorders every layer against the one above it, then every
    layer against the one below it. The ordering with the fewest crossings
    seen after any sweep is kept.
    """

    order: TwoLayerOperator = field(default_factory=OptTwoLayer)
    passes: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.passes, int) or self.passes < 1:
            raise ConfigurationError(f"passes must be a positive int, got {self.passes!r}")

    def with_order(self, order: TwoLayerOperator) -> TwoLayerDecross:
        return replace(self, order=order)

    def with_passes(self, passes: int) -> TwoLayerDecross:
        return replace(self, passes=passes)

    def __call__(self, layers: list[list[LayoutNode]]) -> None:
        """Reorder *layers* in place.

        If the operator raises, every layer is put back in its incoming
        order before the error propagates.
        """
        original = [list(layer) for layer in layers]
        best = original
        best_count = crossings(layers)

        try:
            for sweep in range(self.passes):
                if best_count == 0:
                    break
                for i in range(len(layers) - 1):
                    self.order(layers[i], layers[i + 1], True)
                count = crossings(layers)
                if count < best_count:
                    best, best_count = [list(layer) for layer in layers], count

                for i in range(len(layers) - 2, -1, -1):
                    self.order(layers[i], layers[i + 1], False)
                count = crossings(layers)
                if count < best_count:
                    best, best_count = [list(layer) for layer in layers], count
                logger.debug("decross pass %d: %d crossings", sweep, best_count)
        except LayoutError:
            for layer, kept in zip(layers, original):
                layer[:] = kept
            raise

        for layer, kept in zip(layers, best):
            layer[:] = kept
        assign_order(layers)
