"""Error types raised by the layout stages."""

from __future__ import annotations


class LayoutError(Exception):
    """Base class for all layout failures."""


class ConfigurationError(LayoutError, ValueError):
    """An operator was configured with invalid weights or options."""


class LayoutInfeasible(LayoutError):
    """The layering program has no solution.

    ``from_hints`` is True when rank or group hints were supplied, which is
    the only way a valid DAG can become infeasible.
    """

    def __init__(self, message: str, from_hints: bool) -> None:
        super().__init__(message)
        self.from_hints = from_hints


class SizeLimitExceeded(LayoutError):
    """An exact decrossing was asked to reorder a layer that is too big.

    ``tier`` is ``"medium"`` or ``"large"`` so callers can fall back to a
    heuristic operator.
    """

    def __init__(self, tier: str, size: int, limit: int) -> None:
        super().__init__(
            f"layer of {size} nodes exceeds the {limit} node limit; "
            f'enable "{tier}" layers to run anyway'
        )
        self.tier = tier
        self.size = size
        self.limit = limit


class DegenerateObjective(LayoutError, ValueError):
    """The coordinate objective is ill-posed or yields a non-positive width."""


class SolverError(LayoutError):
    """A solver backend failed for a reason other than infeasibility."""
