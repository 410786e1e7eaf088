class Problem:
    """Abstract PDE-constrained shape problem.

    Subclasses couple a state equation, an objective functional and its
    adjoint on a borrowed mesh. The Problem interface exposes the forward and
    adjoint solves, the objective and the shape derivative, plus the hooks
    the shape parametrizations query (which nodes and control points may move).
    """
    def __init__(self, *args, **kwargs):
        """Initialize problem state.

        Subclasses accept the mesh, physical coefficients, boundary tags and
        a linear solver.
        """
        pass

    def solve_state(self, mesh=None):
        """Assemble and solve the state equation on the current geometry."""
        raise NotImplementedError("solve_state method must be implemented in subclasses.")

    def solve_adjoint(self, state=None):
        """Assemble and solve the adjoint equation for a non-stale state."""
        raise NotImplementedError("solve_adjoint method must be implemented in subclasses.")

    def evaluate_objective(self, state=None):
        """Return the objective functional value for a state."""
        raise NotImplementedError("evaluate_objective method must be implemented in subclasses.")

    def shape_derivative(self, state=None, adjoint=None):
        """Return the ShapeDerivative of the objective on the current geometry."""
        raise NotImplementedError("shape_derivative method must be implemented in subclasses.")

    def lagrange_multiplier(self, shape_derivative):
        """Return the multiplier that makes the boundary sensitivity volume neutral."""
        raise NotImplementedError("lagrange_multiplier method must be implemented in subclasses.")

    def harmonic_extension(self, shape_derivative, lagrange=0.0):
        """Return a smooth descent perturbation of all nodes, shape (n_nodes, 2)."""
        raise NotImplementedError("harmonic_extension method must be implemented in subclasses.")

    def to_be_moved(self, points):
        """Return a boolean mask of the points a parametrization may move."""
        raise NotImplementedError("to_be_moved method must be implemented in subclasses.")

    def fix_control_points(self, shape):
        """Return a boolean mask of the lattice control points that stay fixed."""
        raise NotImplementedError("fix_control_points method must be implemented in subclasses.")
