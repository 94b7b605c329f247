"""Layout constants used across layout modules.

Centralizes default weights and size limits for layers.py, twolayer.py,
and coords.py.
"""

# ---------------------------------------------------------------------------
# Two-layer exact decrossing
# ---------------------------------------------------------------------------
OPT_MEDIUM_LIMIT: int = 30
"""Free-layer size above which the exact operator needs "medium" enabled."""

OPT_LARGE_LIMIT: int = 50
"""Free-layer size above which the exact operator needs "large" enabled."""

OPT_DP_LIMIT: int = 12
"""Largest free layer solved by subset dynamic programming.

Bigger layers are solved as an integer program over pairwise orders.
"""

LARGE_SETTINGS: tuple[str, ...] = ("small", "medium", "large")
"""Accepted values for the exact operator's ``large`` option."""

# ---------------------------------------------------------------------------
# Quadratic coordinate assignment
# ---------------------------------------------------------------------------
VERTICAL_WEIGHTS: tuple[float, float] = (1.0, 0.0)
"""Verticality weight for (real, dummy) nodes.

Dummy nodes default to zero so long edges are not pulled straighter than
short ones.
"""

CURVE_WEIGHTS: tuple[float, float] = (0.0, 1.0)
"""Curvature weight for (real, dummy) nodes.

Real nodes default to zero so only bends along long edges are penalized.
"""

COMPONENT_WEIGHT: float = 1.0
"""Pull between neighbouring nodes of different connected components."""

RIDGE_EPSILON: float = 1e-6
"""Diagonal term added to the quadratic objective to make it strictly convex."""

# ---------------------------------------------------------------------------
# Layer assignment
# ---------------------------------------------------------------------------
OBJECTIVE_SLACK: float = 0.5
"""Tolerance when pinning the optimal span for the tie-break solve.

Spans are integral, so anything below one keeps the optimum exact.
"""
