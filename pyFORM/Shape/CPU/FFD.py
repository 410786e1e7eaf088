from .._shape import ShapeOptimization, parse_bounding_box, box_coordinates
from ...core.CPU._ops import bernstein_weights
from ...visualizers._2d import plot_lattice_2D
from ..._exceptions import ConfigurationError
from scipy.special import comb
from typing import Sequence, Tuple
import numpy as np
import logging
logger = logging.getLogger(__name__)


class FFD(ShapeOptimization):
    """
    Free-form deformation with a Bernstein control lattice.

    A (L+1) x (K+1) lattice of control points spans the bounding box. Every
    control point carries a 2D displacement mu; a node with box coordinates
    (x, y) = psi(X_ref) moves by

        extent * sum_{k,l} b_k^K(x) b_l^L(y) mu_{kl}

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    bounding_box : ((x0, y0), (x1, y1))
        South-west and north-east corners of the lattice
    subdivisions : (int, int), optional
        (K, L), lattice subdivisions along x and y (default: (4, 4))
    problem : Problem, optional
        Supplies to_be_moved() and fix_control_points()

    Attributes
    ----------
    W : ndarray
        Bernstein weight table of the reference nodes, W[i, l*(K+1)+k],
        shape (n_nodes, n_control_points). Rows of nodes outside the box or not
        to be moved are zero
    fixed : ndarray
        Boolean mask of fixed control points, shape (L+1, K+1)

    Notes
    -----
    - The parameter of control point (k, l) and component i is at index
      2 * (l * (K+1) + k) + i
    - Fixed control points have zeroed weight columns, so their parameters
      neither move the mesh nor receive gradient

    Examples
    --------
    >>> shape = FFD(mesh, bounding_box=((0, 0), (5, 4)), subdivisions=(4, 4), problem=problem)
    >>> shape.n_parameters
    50
    >>> shape.deform(parameters=0.01 * np.ones(50))
    """
    def __init__(self,
                 mesh,
                 bounding_box: Sequence[Sequence[float]],
                 subdivisions: Tuple[int, int] = (4, 4),
                 problem=None):
        super().__init__(mesh, problem)

        self.sw, self.extent = parse_bounding_box(bounding_box)
        if len(subdivisions) != 2 or int(subdivisions[0]) < 1 or int(subdivisions[1]) < 1:
            raise ConfigurationError(f"subdivisions must be two positive integers, got {subdivisions}.")
        self.K, self.L = int(subdivisions[0]), int(subdivisions[1])
        self.lattice_shape = (self.L + 1, self.K + 1)
        self.n_control_points = (self.K + 1) * (self.L + 1)

        ref, inside = box_coordinates(self.reference, self.sw, self.extent)
        self.box_coordinates = ref
        self.active = inside
        if problem is not None:
            self.active = self.active & np.asarray(problem.to_be_moved(self.reference), dtype=bool)

        self.W = bernstein_weights(ref, self.active,
                                   comb(self.K, np.arange(self.K + 1)).astype(np.float64),
                                   comb(self.L, np.arange(self.L + 1)).astype(np.float64))

        if problem is not None:
            self.fixed = np.asarray(problem.fix_control_points(self.lattice_shape), dtype=bool)
        else:
            self.fixed = np.zeros(self.lattice_shape, dtype=bool)

        self.W_free = self.W.copy()
        self.W_free[:, self.fixed.ravel()] = 0.0

        self._parameters = np.zeros(2 * self.n_control_points)
        logger.info(f"FFD lattice {self.K + 1} x {self.L + 1}, {int(self.active.sum())} of {self.reference.shape[0]} nodes inside, {int(self.fixed.sum())} fixed control points.")

    def displacement(self, parameters):
        mu = np.asarray(parameters, dtype=np.float64).reshape(self.n_control_points, 2)
        return self.extent * (self.W_free @ mu)

    def _pullback(self, G):
        return (self.W_free.T @ (self.extent * G)).ravel()

    def lattice_points(self):
        """Undeformed control point positions, shape (L+1, K+1, 2)."""
        x = self.sw[0] + self.extent[0] * np.arange(self.K + 1) / self.K
        y = self.sw[1] + self.extent[1] * np.arange(self.L + 1) / self.L
        X, Y = np.meshgrid(x, y)
        return np.stack([X, Y], axis=-1)

    def control_points(self, parameters=None):
        """Displaced control point positions, shape (L+1, K+1, 2)."""
        if parameters is None:
            parameters = self._parameters
        mu = np.asarray(parameters).reshape(self.L + 1, self.K + 1, 2)
        mu = np.where(self.fixed[..., None], 0.0, mu)
        return self.lattice_points() + self.extent * mu

    def visualize_lattice(self, ax=None, **kwargs):
        """Plot the current control lattice, fixed control points in red."""
        return plot_lattice_2D(self.control_points(), fixed=self.fixed, ax=ax, **kwargs)
