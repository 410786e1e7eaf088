"""Exceptions raised by pyFORM.

All exceptions derive from :class:`PyFORMException` so a driver can catch the
whole family at once. None of them is recovered inside the library: the only
local recovery is the single warm-start retry performed by iterative solvers
before :class:`SolveError` is raised.
"""

from typing import Optional


class PyFORMException(Exception):
    """Base class for exceptions raised by pyFORM."""

    pass


class ConfigurationError(PyFORMException):
    """Invalid physics, boundary-condition, lattice or config-file setup.

    Raised at construction time (or when a config file is loaded), never in the
    middle of an optimization iteration.
    """

    pass


class AssemblyError(PyFORMException):
    """Malformed mesh or physics data found while assembling a global system.

    Raised before any global matrix is allocated, so no partially populated
    system can reach a solver.
    """

    pass


class SolveError(PyFORMException):
    """A linear solve failed (singular system, non-convergence, bad residual).

    Parameters
    ----------
    solver : str
        Name of the solver that failed.
    message : str, optional
        Reason for the failure.
    """

    def __init__(self, solver: str, message: Optional[str] = None):
        super().__init__()
        self.solver = solver
        self.message = message

    def __str__(self):
        main_msg = f"The {self.solver} solver failed."
        post_msg = f"\n{self.message}" if self.message is not None else ""
        return main_msg + post_msg


class GeometryError(PyFORMException):
    """A deformation produced degenerate or inverted elements."""

    pass


class StateError(PyFORMException):
    """A state field is missing or was computed on an outdated geometry."""

    pass
