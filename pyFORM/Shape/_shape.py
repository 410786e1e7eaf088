from ..Problem.CPU._fields import ShapeDerivative
from .._exceptions import ConfigurationError
import numpy as np


class ShapeOptimization:
    """Abstract geometry parametrization.

    A parametrization maps a design vector p linearly to a displacement of the
    mesh nodes, X = X_ref + displacement(p), and maps nodal sensitivities back
    to design gradients through the exact transpose of that map:
    <displacement(p), G> == <p, pullback_gradient(G)>.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference). Its node positions at construction are the
        reference geometry, a private copy is kept
    problem : Problem, optional
        Problem queried for movable nodes and fixed control points
    """
    def __init__(self, mesh, problem=None):
        self.mesh = mesh
        self.problem = problem
        self.reference = mesh.get_node_positions()
        self._parameters = np.zeros(0)

    @property
    def n_parameters(self):
        return self._parameters.shape[0]

    @property
    def parameters(self):
        return self._parameters.copy()

    def set_parameters(self, parameters):
        """Set the design vector, raises ConfigurationError on a wrong length."""
        parameters = np.asarray(parameters, dtype=np.float64).ravel()
        if parameters.shape[0] != self.n_parameters:
            raise ConfigurationError(f"Expected {self.n_parameters} parameters, got {parameters.shape[0]}.")
        self._parameters = parameters.copy()

    def displacement(self, parameters):
        """Nodal displacement of a design vector, shape (n_nodes, 2)."""
        raise NotImplementedError("displacement method must be implemented in subclasses.")

    def _pullback(self, G):
        raise NotImplementedError("_pullback method must be implemented in subclasses.")

    def deform(self, mesh=None, parameters=None):
        """
        Move the mesh nodes to X_ref + displacement(p) in place.

        Parameters
        ----------
        mesh : TriangleMesh, optional
            Mesh to deform (default: the bound mesh). It must have the same nodes
        parameters : ndarray, optional
            Design vector to set first (default: the current parameters)

        Returns
        -------
        TriangleMesh
        """
        if parameters is not None:
            self.set_parameters(parameters)
        if mesh is None:
            mesh = self.mesh
        mesh.set_node_positions(self.reference + self.displacement(self._parameters))
        return mesh

    def pullback_gradient(self, sensitivity):
        """
        Design gradient of a nodal sensitivity.

        Parameters
        ----------
        sensitivity : ShapeDerivative or ndarray
            Shape derivative (its nodal() form is used) or nodal sensitivity of
            shape (n_nodes, 2)

        Returns
        -------
        ndarray
            Shape (n_parameters,)
        """
        if isinstance(sensitivity, ShapeDerivative):
            G = sensitivity.nodal()
        else:
            G = np.asarray(sensitivity, dtype=np.float64)
        if G.shape != self.reference.shape:
            raise ValueError(f"Sensitivity must have shape {self.reference.shape}, got {G.shape}.")
        return self._pullback(G)

    def descent_direction(self, gradient, shape_derivative=None, lagrange=0.0):
        """Search direction in the design space (default: -gradient)."""
        return -gradient

    def reset(self):
        """Zero the parameters and restore the reference geometry."""
        self._parameters = np.zeros(self.n_parameters)
        self.mesh.set_node_positions(self.reference)


def parse_bounding_box(bounding_box):
    """Validate ((x0, y0), (x1, y1)) and return (sw, extent)."""
    box = np.asarray(bounding_box, dtype=np.float64)
    if box.shape != (2, 2):
        raise ConfigurationError(f"bounding_box must be ((x0, y0), (x1, y1)), got {bounding_box}.")
    sw, ne = box
    extent = ne - sw
    if np.any(~np.isfinite(extent)) or np.any(extent <= 0):
        raise ConfigurationError(f"Degenerate bounding box {bounding_box}.")
    return sw, extent


def box_coordinates(points, sw, extent, tol=1e-12):
    """
    Map points to the unit square of a box.

    Returns
    -------
    ref : ndarray
        psi(X) = (X - sw) / extent, shape (n, 2)
    inside : ndarray
        Boolean mask of the points with psi in [0, 1]^2
    """
    ref = np.ascontiguousarray((points - sw) / extent)
    inside = np.all((ref >= -tol) & (ref <= 1 + tol), axis=1)
    return np.clip(ref, 0.0, 1.0), inside
