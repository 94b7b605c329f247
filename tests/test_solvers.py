"""Tests for the solver backends."""

import numpy as np
import pytest
from scipy import sparse

from dagstrata.solvers import (
    CvxpyQuadraticSolver,
    IntegerProgram,
    MilpSolver,
    QuadraticProgram,
)


def _make_program(row_lower, row_upper, maximize=True):
    # x0 + x1 within bounds, objective favours x1
    return IntegerProgram(
        objective=np.array([1.0, 2.0]),
        A=np.array([[1.0, 1.0]]),
        row_lower=np.array([row_lower]),
        row_upper=np.array([row_upper]),
        lower=np.zeros(2),
        upper=np.full(2, 3.0),
        integral=np.ones(2, dtype=bool),
        maximize=maximize,
    )


def test_milp_maximizes():
    solution = MilpSolver().solve(_make_program(0.0, 2.5))
    assert solution is not None
    assert list(np.round(solution.x)) == [0.0, 2.0]
    assert solution.objective == pytest.approx(4.0)


def test_milp_minimizes():
    solution = MilpSolver().solve(_make_program(1.0, 2.0, maximize=False))
    assert solution is not None
    assert list(np.round(solution.x)) == [1.0, 0.0]


def test_milp_reports_infeasible_as_none():
    assert MilpSolver().solve(_make_program(7.0, np.inf)) is None


def test_milp_accepts_sparse_rows():
    dense = _make_program(0.0, 2.5)
    program = IntegerProgram(
        objective=dense.objective,
        A=sparse.csr_array(dense.A),
        row_lower=dense.row_lower,
        row_upper=dense.row_upper,
        lower=dense.lower,
        upper=dense.upper,
        integral=dense.integral,
        maximize=True,
    )
    solution = MilpSolver().solve(program)
    assert solution is not None
    assert list(np.round(solution.x)) == [0.0, 2.0]


def test_milp_without_constraints():
    program = IntegerProgram(
        objective=np.array([1.0]),
        A=np.zeros((0, 1)),
        row_lower=np.zeros(0),
        row_upper=np.zeros(0),
        lower=np.zeros(1),
        upper=np.full(1, np.inf),
        integral=np.ones(1, dtype=bool),
    )
    solution = MilpSolver().solve(program)
    assert solution is not None
    assert solution.x[0] == pytest.approx(0.0)


def test_qp_with_active_constraint():
    program = QuadraticProgram(
        Q=np.eye(2),
        c=np.array([-1.0, -2.0]),
        A=np.array([[1.0, 1.0]]),
        b=np.array([1.0]),
    )
    x = CvxpyQuadraticSolver().solve(program)
    assert x == pytest.approx([0.0, 1.0], abs=1e-5)


def test_qp_empty_program():
    program = QuadraticProgram(
        Q=np.zeros((0, 0)), c=np.zeros(0), A=np.zeros((0, 0)), b=np.zeros(0)
    )
    assert len(CvxpyQuadraticSolver().solve(program)) == 0
