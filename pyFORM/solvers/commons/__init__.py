class Solver:
    """
    Base class for linear system solvers.

    Abstract interface for solving the reduced linear systems A @ x = rhs
    arising from the state, adjoint and harmonic-extension problems.
    Subclasses implement specific algorithms (direct or iterative).

    Methods
    -------
    solve(A, rhs, x0=None)
        Solve linear system, returns (x, residual)
    reset()
        Reset solver state (warm starts, etc.)
    __call__(A, rhs, x0=None)
        Convenience: solver(A, rhs) calls solve()

    Notes
    -----
    All solvers accept:
    - A: sparse matrix, shape (n, n)
    - rhs: right-hand side, shape (n,)
    - Returns: (x, residual) where residual is ||A@x - rhs||/||rhs||

    Failures raise pyFORM._exceptions.SolveError.
    """
    def __init__(self):
        pass

    def __call__(self, *args, **kwargs):
        """Convenience method: solver(A, rhs) calls solve(A, rhs)."""
        return self.solve(*args, **kwargs)

    def solve(self, A, rhs, x0=None):
        """
        Solve linear system A @ x = rhs.

        Parameters
        ----------
        A : scipy.sparse matrix
            System matrix, shape (n, n)
        rhs : ndarray
            Right-hand side, shape (n,)
        x0 : ndarray, optional
            Initial guess (ignored by direct solvers)

        Returns
        -------
        x : ndarray
            Solution vector, shape (n,)
        residual : float
            Relative residual: ||A@x - rhs|| / ||rhs||

        Raises
        ------
        NotImplementedError
            Must be implemented in subclasses
        """
        raise NotImplementedError("solve method must be implemented in subclasses.")

    def reset(self):
        """
        Reset solver state.

        Clears internal state such as the stored warm start.
        """
        pass
