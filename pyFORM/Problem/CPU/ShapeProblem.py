from ..._exceptions import PyFORMException
import numpy as np
import logging
logger = logging.getLogger(__name__)


class ShapeProblem:
    """
    Optimizer-facing coupling of one Problem and one ShapeOptimization.

    Every set_parameters() call runs the whole pipeline once: deform the mesh,
    check the elements, solve state and adjoint, evaluate the objective and
    the shape derivative, and pull the derivative back to the design space.
    On failure the last accepted parameters and geometry are restored before
    the exception is re-raised.

    Parameters
    ----------
    problem : Problem
        State/adjoint problem
    shape : ShapeOptimization
        Geometry parametrization (bound to the same mesh as problem)
    volume_constraint : bool, optional
        Penalize volume changes with an adaptive Lagrange multiplier (default: True)

    Attributes
    ----------
    initial_volume : float
        Area of the reference domain
    lagrange : float
        Current Lagrange multiplier (zero without volume constraint)

    Examples
    --------
    >>> sp = ShapeProblem(problem, FFD(mesh, ((0, 0), (5, 4)), (4, 4), problem))
    >>> J = sp.current_objective()
    >>> sp.set_parameters(sp.get_parameters() - 0.01 * sp.current_gradient())
    """
    def __init__(self, problem, shape, volume_constraint=True):
        self.problem = problem
        self.shape = shape
        self.mesh = shape.mesh
        self.volume_constraint = volume_constraint

        self.initial_volume = self.mesh.volume()
        self.lagrange = 0.0
        self._lagrange_old = None

        self._parameters = shape.parameters
        self._objective = None
        self._derivative = None
        self._gradient = None

        self.set_parameters(self._parameters)

    def _evaluate(self):
        self.shape.deform()
        self.mesh.check_domain()
        state = self.problem.solve_state()
        adjoint = self.problem.solve_adjoint(state)
        J = self.problem.evaluate_objective(state)
        derivative = self.problem.shape_derivative(state, adjoint)
        return J, derivative

    def set_parameters(self, parameters):
        """
        Move to a new design and recompute objective and gradient.

        Raises
        ------
        GeometryError
            The deformation inverts or degenerates an element
        SolveError, AssemblyError, ConfigurationError
            Propagated from the pipeline. When re-solving the restored design
            fails too, that error is raised with the first one as its cause.
        """
        parameters = np.asarray(parameters, dtype=np.float64).copy()
        previous = self._parameters
        try:
            self.shape.set_parameters(parameters)
            J, derivative = self._evaluate()
        except PyFORMException as error:
            logger.info(f"Design rejected ({type(error).__name__}: {error}). Restoring the last accepted design.")
            self.shape.set_parameters(previous)
            try:
                if self._objective is not None:
                    self._evaluate()
                else:
                    self.shape.deform()
            except PyFORMException as restore_error:
                raise restore_error from error
            raise

        self._parameters = parameters
        self._objective = J
        self._derivative = derivative
        self._gradient = self.shape.pullback_gradient(derivative.nodal(self.lagrange))

    def get_parameters(self):
        return self._parameters.copy()

    def current_objective(self):
        return self._objective

    def current_gradient(self):
        """Design gradient of J + lagrange * Vol at the current design."""
        return self._gradient.copy()

    def current_shape_derivative(self):
        return self._derivative

    def volume(self):
        return self.mesh.volume()

    def update_lagrange(self):
        """
        Update the volume multiplier and the gradient.

        lambda = 1/2 (lambda_old + lambda_new) + (Vol - Vol0) / Vol0, with
        lambda_new the multiplier of the current shape derivative.
        """
        if not self.volume_constraint:
            return self.lagrange
        new = self.problem.lagrange_multiplier(self._derivative)
        if self._lagrange_old is None:
            self._lagrange_old = new
        self.lagrange = 0.5 * (self._lagrange_old + new) + (self.volume() - self.initial_volume) / self.initial_volume
        self._lagrange_old = self.lagrange
        self._gradient = self.shape.pullback_gradient(self._derivative.nodal(self.lagrange))
        return self.lagrange

    def descent_direction(self):
        """Search direction proposed by the parametrization."""
        return self.shape.descent_direction(self._gradient, self._derivative, self.lagrange)
