class FiniteElement:
    """Abstract base for finite-element wrappers.

    Subclasses implement backend-specific assembly. The base class defines the
    common interface used by problems and shape parametrizations.
    """
    def __init__(self):
        """Initialize finite-element wrapper state.

        Subclasses extend the initializer to accept mesh, physics and solver
        objects.
        """
        pass

    def assemble(self, transpose=False):
        """Assemble the global sparse operator on the current geometry.

        Parameters
        - transpose: assemble element transposes (the adjoint operator).
        """
        raise NotImplementedError("This method should be implemented by subclasses.")

    def add_dirichlet_boundary_condition(self, **kwargs):
        """Add Dirichlet (essential) boundary condition.

        Parameters
        - node_ids / tags: constrained nodes, by index or by boundary tag.
        - components: constrained components (default: all).
        - rhs: prescribed values, scalar, array or position function.
        """
        raise NotImplementedError("This method should be implemented by subclasses.")

    def add_neumann_boundary_condition(self, tags, traction):
        """Add Neumann (natural) boundary condition.

        Parameters
        - tags: boundary tags carrying the load.
        - traction: constant load vector per unit length.
        """
        raise NotImplementedError("This method should be implemented by subclasses.")

    def reset_forces(self):
        """Clear all applied loads for the current problem instance."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def reset_dirichlet_boundary_conditions(self):
        """Remove all Dirichlet boundary conditions previously added."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def visualize_field(self, field, **kwargs):
        """Visualize an arbitrary scalar or vector field defined on nodes or elements."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def solve(self, **kwargs):
        """Run the linear finite element solve.

        Returns the solution vector and the solver residual.
        """
        raise NotImplementedError("This method should be implemented by subclasses.")
