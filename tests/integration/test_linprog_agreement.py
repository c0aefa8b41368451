"""
Cross-check the simplex solver against scipy's HiGHS backend on random
problems that are feasible and bounded by construction.
"""

import numpy as np
import pytest

from casso import InfeasibleError, Problem

scipy_optimize = pytest.importorskip("scipy.optimize")


def _random_packing_problem(rng, m, n):
    # Positive constraint rows and bounds keep x = 0 feasible and the
    # region bounded, so maximizing a positive objective has an optimum.
    A = rng.integers(1, 10, size=(m, n)).astype(float)
    b = rng.integers(20, 100, size=m).astype(float)
    c = rng.integers(1, 10, size=n).astype(float)
    return c, A, b


@pytest.mark.parametrize("seed", range(8))
def test_packing_problems_agree(seed):
    rng = np.random.default_rng(seed)
    c, A, b = _random_packing_problem(rng, m=4, n=3)

    problem, variables = Problem.from_arrays(c, A_ub=A, b_ub=b, maximize=True)
    solution = problem.solve()

    expected = scipy_optimize.linprog(-c, A_ub=A, b_ub=b, method="highs")
    assert expected.status == 0
    assert solution.objective == pytest.approx(-expected.fun, rel=1e-6)

    x = solution.values(variables)
    assert np.all(x >= -1e-7)
    assert np.all(A @ x <= b + 1e-6)
    assert c @ x == pytest.approx(solution.objective, rel=1e-6)


@pytest.mark.parametrize("seed", range(4))
def test_covering_problems_agree(seed):
    rng = np.random.default_rng(100 + seed)
    c, A, b = _random_packing_problem(rng, m=3, n=4)

    # minimize c @ x subject to A @ x >= b, written as -A @ x <= -b
    problem, variables = Problem.from_arrays(c, A_ub=-A, b_ub=-b)
    solution = problem.solve()

    expected = scipy_optimize.linprog(c, A_ub=-A, b_ub=-b, method="highs")
    assert expected.status == 0
    assert solution.objective == pytest.approx(expected.fun, rel=1e-6)

    x = solution.values(variables)
    assert np.all(A @ x >= b - 1e-6)


def test_infeasible_problems_agree():
    c = np.array([1.0, 1.0])
    A_ub = np.array([[1.0, 1.0], [-1.0, -1.0]])
    b_ub = np.array([1.0, -2.0])

    expected = scipy_optimize.linprog(c, A_ub=A_ub, b_ub=b_ub, method="highs")
    assert expected.status == 2

    problem, _ = Problem.from_arrays(c, A_ub=A_ub, b_ub=b_ub)
    with pytest.raises(InfeasibleError):
        problem.solve()
