"""Solver boundary for the integer and quadratic programs built by the layout.

Layout stages only build self-contained program descriptions and hand them to
a solver object, so any backend satisfying the ``IntegerSolver`` or
``QuadraticSolver`` protocol can be swapped in. The defaults wrap
``scipy.optimize.milp`` (HiGHS) and ``cvxpy``.
"""

from __future__ import annotations

__all__ = [
    "CvxpyQuadraticSolver",
    "IntegerProgram",
    "IntegerSolver",
    "MilpSolver",
    "QuadraticProgram",
    "QuadraticSolver",
    "Solution",
]

import logging
from dataclasses import dataclass
from typing import Protocol

import cvxpy as cp
import numpy as np
from scipy.optimize import Bounds, LinearConstraint, milp
from scipy.sparse import sparray

from dagstrata.errors import SolverError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegerProgram:
    """Optimize ``objective @ x`` s.t. ``row_lower <= A @ x <= row_upper``.

    ``integral`` flags integer variables; ``lower``/``upper`` bound them.
    ``A`` may be dense or a scipy sparse array; the layout stages build it
    sparse since their rows touch only a few variables each.
    """

    objective: np.ndarray
    A: np.ndarray | sparray
    row_lower: np.ndarray
    row_upper: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    integral: np.ndarray
    maximize: bool = False

    @property
    def num_variables(self) -> int:
        return len(self.objective)


@dataclass(frozen=True)
class QuadraticProgram:
    """Minimize ``0.5 x'Qx + c'x`` s.t. ``A @ x <= b``."""

    Q: np.ndarray
    c: np.ndarray
    A: np.ndarray
    b: np.ndarray

    @property
    def num_variables(self) -> int:
        return len(self.c)


@dataclass(frozen=True)
class Solution:
    x: np.ndarray
    objective: float


class IntegerSolver(Protocol):
    def solve(self, program: IntegerProgram) -> Solution | None:
        """Return an optimal solution, or None if the program is infeasible."""
        ...


class QuadraticSolver(Protocol):
    def solve(self, program: QuadraticProgram) -> np.ndarray:
        """Return the minimizer; raise SolverError if none was found."""
        ...


@dataclass(frozen=True)
class MilpSolver:
    """Mixed integer solver backed by HiGHS through scipy."""

    time_limit: float | None = None
    mip_rel_gap: float = 0.0

    def solve(self, program: IntegerProgram) -> Solution | None:
        n = program.num_variables
        if n == 0:
            return Solution(x=np.zeros(0), objective=0.0)

        c = -program.objective if program.maximize else program.objective
        constraints = None
        if program.A.shape[0]:
            constraints = LinearConstraint(
                program.A, program.row_lower, program.row_upper
            )

        options: dict[str, float] = {"mip_rel_gap": self.mip_rel_gap}
        if self.time_limit is not None:
            options["time_limit"] = self.time_limit

        logger.debug(
            "milp: %d variables, %d constraints", n, program.A.shape[0]
        )
        result = milp(
            c=c,
            integrality=program.integral.astype(int),
            bounds=Bounds(lb=program.lower, ub=program.upper),
            constraints=constraints,
            options=options,
        )
        logger.debug("milp status %d: %s", result.status, result.message)

        # 2 is infeasible in scipy's milp status codes
        if result.status == 2:
            return None
        if not result.success or result.x is None:
            raise SolverError(f"integer program failed: {result.message}")

        x = np.asarray(result.x, dtype=float)
        return Solution(x=x, objective=float(program.objective @ x))


@dataclass(frozen=True)
class CvxpyQuadraticSolver:
    """Convex quadratic solver backed by cvxpy."""

    solver: str | None = cp.CLARABEL

    def solve(self, program: QuadraticProgram) -> np.ndarray:
        n = program.num_variables
        if n == 0:
            return np.zeros(0)

        x = cp.Variable(n)
        objective = cp.Minimize(
            0.5 * cp.quad_form(x, cp.psd_wrap(program.Q)) + program.c @ x
        )
        constraints = []
        if program.A.shape[0]:
            constraints.append(program.A @ x <= program.b)

        problem = cp.Problem(objective, constraints)
        logger.debug(
            "qp: %d variables, %d constraints", n, program.A.shape[0]
        )
        try:
            problem.solve(solver=self.solver)
        except cp.SolverError as e:
            raise SolverError(f"quadratic program failed: {e}") from e

        if problem.status not in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE):
            raise SolverError(f"quadratic program ended with status {problem.status}")
        if problem.status == cp.OPTIMAL_INACCURATE:
            logger.warning("quadratic program solved inaccurately")
        return np.asarray(x.value, dtype=float)
