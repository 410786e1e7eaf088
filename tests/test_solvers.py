import logging

import numpy as np
import pytest
import scipy.sparse as sp

from pyFORM.CPU import SPLU, SPSOLVE, CG, GMRES
from pyFORM._exceptions import SolveError


def laplacian_1d(n):
    return sp.diags([-np.ones(n - 1), 2 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1], format="csr")


@pytest.mark.parametrize("solver", [SPLU(), SPSOLVE(), CG(tol=1e-12), GMRES(tol=1e-12)])
def test_solvers_agree(solver, rng):
    A = laplacian_1d(40)
    b = rng.rand(40)

    x, residual = solver.solve(A, b)

    assert residual < 1e-8
    assert np.allclose(A @ x, b, atol=1e-8)


def test_zero_rhs_returns_zero():
    A = laplacian_1d(5)
    for solver in (SPLU(), CG()):
        x, residual = solver(A, np.zeros(5))
        assert np.all(x == 0.0)
        assert residual == 0.0


def test_singular_matrix_raises():
    A = sp.diags([1.0, 0.0, 1.0], format="csr")

    with pytest.raises(SolveError) as e:
        SPLU().solve(A, np.ones(3))
    assert "SPLU" in str(e.value)


def test_shape_mismatch_raises():
    with pytest.raises(SolveError):
        SPLU().solve(laplacian_1d(4), np.ones(5))


def test_cg_non_convergence_retries_then_raises(caplog):
    A = laplacian_1d(100)
    b = np.ones(100)
    solver = CG(maxiter=1, tol=1e-12)

    with caplog.at_level(logging.WARNING):
        with pytest.raises(SolveError) as e:
            solver.solve(A, b)

    assert "CG" in str(e.value)
    assert any("Retrying" in record.message for record in caplog.records)


def test_gmres_non_symmetric(rng):
    A = laplacian_1d(30) + sp.diags([0.5 * np.ones(29)], [1], format="csr")
    b = rng.rand(30)

    x, residual = GMRES(tol=1e-12).solve(A, b)

    assert np.allclose(A @ x, b, atol=1e-8)


def test_cg_warm_start(rng):
    A = laplacian_1d(40)
    b = rng.rand(40)
    solver = CG(tol=1e-12)

    x1, _ = solver.solve(A, b)
    assert np.array_equal(solver.last_x0, x1)

    solver.reset()
    assert solver.last_x0 is None
