from .._problem import Problem
from ._fields import ShapeDerivative
from ...core.CPU._geom import triangle_gradients
from ...core.CPU._ops import gather_node_sensitivity, gather_node_average
from ..._exceptions import StateError, ConfigurationError
import numpy as np
import logging
logger = logging.getLogger(__name__)


class ShapeSensitiveProblem(Problem):
    """
    Shared machinery of the CPU problems.

    Handles state bookkeeping (revision checks), the assembly of the nodal
    shape sensitivity from element tensors, the Lagrange multiplier and the
    harmonic extension. Subclasses build their FiniteElement objects in
    _setup() and implement the physics-specific solves.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    moving_tags : sequence of int
        Boundary tags the design may move
    derivative_form : str
        "volume" (exact discrete derivative) or "boundary" (Hadamard form)
    solver : Solver, optional
        Linear solver shared by every solve
    """
    def __init__(self, mesh, moving_tags, derivative_form="volume", solver=None):
        super().__init__()
        if derivative_form not in ("volume", "boundary"):
            raise ConfigurationError(f"Unknown derivative form {derivative_form}. Use 'volume' or 'boundary'.")

        self.mesh = mesh
        self.moving_tags = tuple(int(t) for t in moving_tags)
        self.derivative_form = derivative_form
        self.solver = solver

        unknown = set(self.moving_tags) - set(mesh.tags.tolist())
        if unknown:
            raise ConfigurationError(f"Moving tags {sorted(unknown)} do not exist on the mesh (tags: {mesh.tags.tolist()}).")

        self.state = None
        self.adjoint = None
        self._setup()

    def _setup(self):
        raise NotImplementedError("_setup method must be implemented in subclasses.")

    def _rebind(self, mesh):
        if mesh is not None and mesh is not self.mesh:
            self.mesh = mesh
            self.state = None
            self.adjoint = None
            self._setup()

    def _check_state(self, state):
        if state is None:
            state = self.state
        if state is None:
            raise StateError("No state available. Call solve_state() first.")
        if state.revision != self.mesh.revision:
            raise StateError(f"The state was computed on mesh revision {state.revision}, the mesh is at revision {self.mesh.revision}. Solve the state again.")
        return state

    def _check_adjoint(self, adjoint, state):
        if adjoint is None:
            adjoint = self.adjoint
        if adjoint is None:
            adjoint = self.solve_adjoint(state)
        if adjoint.revision != self.mesh.revision:
            raise StateError(f"The adjoint was computed on mesh revision {adjoint.revision}, the mesh is at revision {self.mesh.revision}.")
        return adjoint

    def moving_nodes(self):
        """Sorted nodes of the moving boundary."""
        return self.mesh.boundary_nodes(self.moving_tags)

    def volume_gradient(self):
        """Nodal gradient of the domain area, shape (n_nodes, 2)."""
        grads, A = triangle_gradients(self.mesh.element_coordinates())
        tensors = A[:, None, None] * np.eye(2)[None]
        ptr, node_elements, node_locals = self.mesh.node_element_map()
        return gather_node_sensitivity(tensors, grads, ptr, node_elements, node_locals, self.mesh.n_nodes)

    def _build_derivative(self, tensors, vertex_density, edge_term=None):
        """
        Assemble a ShapeDerivative.

        Parameters
        ----------
        tensors : ndarray
            Element tensors S with dJ/dX_a = sum_T S_T grad phi_a, shape (n_elements, 2, 2)
        vertex_density : ndarray
            Hadamard density at the element vertices, shape (n_elements, 3)
        edge_term : ndarray, optional
            Boundary-integral contribution to dJ/dX, shape (n_nodes, 2)
        """
        mesh = self.mesh
        grads, A = triangle_gradients(mesh.element_coordinates())
        ptr, node_elements, node_locals = mesh.node_element_map()

        distributed = gather_node_sensitivity(np.ascontiguousarray(tensors), grads, ptr, node_elements, node_locals, mesh.n_nodes)
        if edge_term is not None:
            distributed += edge_term

        volume_gradient = self.volume_gradient()

        nodes = self.moving_nodes()
        normals, measure = mesh.boundary_normals(self.moving_tags, nodes)
        density = gather_node_average(np.ascontiguousarray(vertex_density), A, ptr, node_elements, node_locals, mesh.n_nodes)[nodes]

        return ShapeDerivative(nodes, density, normals, measure, distributed, volume_gradient,
                               form=self.derivative_form, revision=mesh.revision)

    def lagrange_multiplier(self, shape_derivative):
        """
        Multiplier that makes the boundary sensitivity volume neutral.

        Returns -sum(g * measure) / sum(measure) over the moving boundary.
        """
        m = shape_derivative.measure
        total = m.sum()
        if total <= 0:
            return 0.0
        return float(-np.sum(shape_derivative.density * m) / total)

    def harmonic_extension(self, shape_derivative, lagrange=0.0):
        """
        Harmonic extension of the shape sensitivity.

        Solves the vector Laplace problem with load -nodal(lagrange) and a zero
        Dirichlet condition on the fixed boundaries.

        Returns
        -------
        ndarray
            Descent perturbation of every node, shape (n_nodes, 2)
        """
        return self.extension(-shape_derivative.nodal(lagrange))

    def to_be_moved(self, points):
        return np.ones(np.atleast_2d(points).shape[0], dtype=bool)
