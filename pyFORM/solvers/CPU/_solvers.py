import numpy as np
from ..commons import Solver
from ..._exceptions import SolveError
from scipy.sparse.linalg import gmres as sp_gmres, cg as sp_cg
from scipy.sparse.linalg import splu, spsolve
import logging
logger = logging.getLogger(__name__)


def _relative_residual(A, x, rhs):
    r = rhs - A @ x
    return (r*r).sum()**0.5/(rhs*rhs).sum()**0.5


class _DirectSolver(Solver):
    """Shared checks of the direct solvers."""
    name = "direct"

    def __init__(self, max_residual=1e-6):
        super().__init__()
        self.max_residual = max_residual

    def _factor_solve(self, A, rhs):
        raise NotImplementedError("_factor_solve must be implemented in subclasses.")

    def solve(self, A, rhs, x0=None):
        if A.shape[0] != rhs.shape[0]:
            raise SolveError(self.name, f"Matrix of shape {A.shape} does not match right-hand side of length {rhs.shape[0]}.")
        if not np.any(rhs):
            return np.zeros_like(rhs), 0.0

        try:
            out = self._factor_solve(A, rhs)
        except RuntimeError as e:
            raise SolveError(self.name, str(e)) from e

        if not np.all(np.isfinite(out)):
            raise SolveError(self.name, "The solution contains non-finite values (singular system).")

        residual = _relative_residual(A, out, rhs)
        logger.debug(f"{self.name} residual: {residual:.3e}")
        if not residual <= self.max_residual:
            raise SolveError(self.name, f"Relative residual {residual:.3e} exceeds {self.max_residual:.1e}.")

        return out, residual


class SPLU(_DirectSolver):
    """
    Direct sparse LU solver using SuperLU.

    General-purpose direct solver. Handles the indefinite Taylor-Hood saddle
    point systems as well as the SPD elasticity and Laplace systems.

    Parameters
    ----------
    max_residual : float, optional
        Largest relative residual accepted (default: 1e-6)

    Notes
    -----
    - Refactorizes at every solve
    - An exactly singular factor raises SolveError

    Examples
    --------
    >>> solver = SPLU()
    >>> x, residual = solver.solve(A, b)
    """
    name = "SPLU"

    def _factor_solve(self, A, rhs):
        LU = splu(A.tocsc())
        return LU.solve(rhs)


class SPSOLVE(_DirectSolver):
    """
    Direct sparse solver using scipy.sparse.linalg.spsolve.

    Convenience wrapper around SciPy's spsolve. Simple to use but no
    factorization reuse.

    Parameters
    ----------
    max_residual : float, optional
        Largest relative residual accepted (default: 1e-6)

    Examples
    --------
    >>> solver = SPSOLVE()
    >>> x, residual = solver.solve(A, b)
    """
    name = "SPSOLVE"

    def _factor_solve(self, A, rhs):
        return np.asarray(spsolve(A.tocsc(), rhs)).ravel()


class _IterativeSolver(Solver):
    """Warm-started Krylov solver with one tightened retry."""
    name = "iterative"

    def __init__(self, maxiter=1000, tol=1e-8):
        super().__init__()
        self.last_x0 = None
        self.tol = tol
        self.maxiter = maxiter

    def reset(self):
        self.last_x0 = None

    def _iterate(self, A, rhs, x0, rtol):
        raise NotImplementedError("_iterate must be implemented in subclasses.")

    def solve(self, A, rhs, x0=None, use_last=True):
        if not np.any(rhs):
            return np.zeros_like(rhs), 0.0

        if x0 is None and use_last and self.last_x0 is not None and self.last_x0.shape == rhs.shape:
            x0 = self.last_x0

        out, info = self._iterate(A, rhs, x0, self.tol)
        if info != 0:
            logger.warning(f"{self.name} did not converge (info={info}). Retrying from the last iterate with rtol={self.tol/10:.1e}.")
            out, info = self._iterate(A, rhs, out, self.tol / 10)
            if info != 0:
                raise SolveError(self.name, f"No convergence after retry (info={info}, maxiter={self.maxiter}).")

        if not np.all(np.isfinite(out)):
            raise SolveError(self.name, "The solution contains non-finite values.")

        if use_last:
            self.last_x0 = out

        residual = _relative_residual(A, out, rhs)
        logger.debug(f"{self.name} residual: {residual:.3e}")
        return out, residual


class CG(_IterativeSolver):
    """
    Conjugate Gradient iterative solver.

    Memory-efficient Krylov subspace solver for symmetric positive definite
    systems (elasticity, Laplace). Not suited to the Stokes saddle point.

    Parameters
    ----------
    maxiter : int, optional
        Maximum iterations (default: 1000)
    tol : float, optional
        Relative convergence tolerance (default: 1e-8)

    Attributes
    ----------
    last_x0 : ndarray
        Last solution (used as initial guess for warm-starting)

    Notes
    -----
    - Warm-starting (use_last=True) accelerates successive solves
    - On non-convergence one retry with tol/10 is made from the last iterate,
      then SolveError is raised

    Examples
    --------
    >>> solver = CG(maxiter=500, tol=1e-10)
    >>> x, residual = solver.solve(A, b)
    """
    name = "CG"

    def _iterate(self, A, rhs, x0, rtol):
        return sp_cg(A, rhs, x0=x0, rtol=rtol, maxiter=self.maxiter)


class GMRES(_IterativeSolver):
    """
    Generalized Minimal Residual iterative solver.

    Krylov subspace solver for general non-symmetric or indefinite systems.

    Parameters
    ----------
    maxiter : int, optional
        Maximum iterations (default: 1000)
    tol : float, optional
        Relative convergence tolerance (default: 1e-8)
    restart : int, optional
        Krylov subspace dimension between restarts (default: 50)

    Examples
    --------
    >>> solver = GMRES(maxiter=200, tol=1e-10)
    >>> x, residual = solver.solve(A, b)
    """
    name = "GMRES"

    def __init__(self, maxiter=1000, tol=1e-8, restart=50):
        super().__init__(maxiter=maxiter, tol=tol)
        self.restart = restart

    def _iterate(self, A, rhs, x0, rtol):
        return sp_gmres(A, rhs, x0=x0, rtol=rtol, restart=self.restart, maxiter=self.maxiter)
