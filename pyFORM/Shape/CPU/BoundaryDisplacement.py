from .._shape import ShapeOptimization
from ...FiniteElement.CPU.FiniteElement import FiniteElement
from ...physics.Laplace import Laplace
from ..._exceptions import ConfigurationError
from scipy.sparse.linalg import splu
import numpy as np
import logging
logger = logging.getLogger(__name__)


class BoundaryDisplacement(ShapeOptimization):
    """
    Normal displacement of the moving-boundary nodes.

    One parameter per moving-boundary node: the node moves by p_i n_i along
    its reference normal (averaged from the adjacent moving edges). Nodes that
    also touch a fixed boundary are not parameters.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    problem : Problem
        Supplies the moving tags and the harmonic extension
    extend : bool, optional
        Move the interior nodes with the discrete P1 harmonic extension of the
        boundary displacement, computed once on the reference mesh (default: True)
    sobolev : bool, optional
        Use the normal trace of problem.harmonic_extension() as descent
        direction instead of -gradient (default: True)

    Notes
    -----
    With extend=True the displacement is d_B = N p, d_I = -K_II^{-1} K_IB d_B
    (zero on the other boundary nodes) and the pullback applies the transpose,
    N^T (G_B - K_BI K_II^{-T} G_I).
    """
    def __init__(self, mesh, problem, extend=True, sobolev=True):
        super().__init__(mesh, problem)
        if problem is None:
            raise ConfigurationError("BoundaryDisplacement needs a problem to know the moving boundary.")

        self.extend = extend
        self.sobolev = sobolev

        moving = mesh.boundary_nodes(problem.moving_tags)
        fixed_tags = [int(t) for t in mesh.tags if int(t) not in problem.moving_tags]
        fixed = mesh.boundary_nodes(fixed_tags) if fixed_tags else np.zeros(0, dtype=np.int32)
        self.nodes = np.setdiff1d(moving, fixed).astype(np.int64)
        if self.nodes.shape[0] == 0:
            raise ConfigurationError(f"No movable boundary nodes on tags {problem.moving_tags}.")

        self.normals, _ = mesh.boundary_normals(problem.moving_tags, self.nodes)

        if extend:
            K = FiniteElement(mesh, Laplace()).assemble().tocsr()
            boundary = np.zeros(mesh.n_nodes, dtype=bool)
            boundary[mesh.boundary_nodes()] = True
            self.interior = np.where(~boundary)[0]
            self.K_IB = K[self.interior][:, self.nodes]
            self.LU = splu(K[self.interior][:, self.interior].tocsc()) if self.interior.shape[0] > 0 else None

        self._parameters = np.zeros(self.nodes.shape[0])
        logger.info(f"Boundary displacement with {self.nodes.shape[0]} parameters (extend={extend}, sobolev={sobolev}).")

    def displacement(self, parameters):
        p = np.asarray(parameters, dtype=np.float64)
        out = np.zeros_like(self.reference)
        d_B = p[:, None] * self.normals
        out[self.nodes] = d_B
        if self.extend and self.LU is not None:
            out[self.interior] = -self.LU.solve(np.ascontiguousarray(self.K_IB @ d_B))
        return out

    def _pullback(self, G):
        G_B = G[self.nodes].copy()
        if self.extend and self.LU is not None:
            G_B -= self.K_IB.T @ self.LU.solve(np.ascontiguousarray(G[self.interior]), trans='T')
        return np.sum(self.normals * G_B, axis=1)

    def descent_direction(self, gradient, shape_derivative=None, lagrange=0.0):
        """Normal trace of the harmonic extension (sobolev=True), else -gradient."""
        if not self.sobolev or shape_derivative is None:
            return -gradient
        V = self.problem.harmonic_extension(shape_derivative, lagrange)
        return np.sum(self.normals * V[self.nodes], axis=1)
