from .FFD import FFD
from ...physics._physx import PositionFunction
from ..._exceptions import ConfigurationError
from scipy.linalg import cho_factor, cho_solve
from typing import Optional, Sequence, Tuple, Union
import numpy as np
import logging
logger = logging.getLogger(__name__)


def smoothstep(t):
    """S(t) = t^2 (3 - 2t) on [0, 1]."""
    return t * t * (3.0 - 2.0 * t)


class LevelSetStage:
    """
    Level-set mask carried by an FFD lattice.

    Every control point holds a level-set value phi_cp. The level set at the
    reference nodes is the Bernstein blend phi = W phi_cp and the nodal mask is
    w = S(clip(0.5 - phi / (2 band), 0, 1)). The zero level set is the design
    boundary: nodes well inside (phi < -band) move freely, nodes well
    outside (phi > band) do not move.

    Parameters
    ----------
    ffd : FFD
        Lattice whose weight table is reused
    level_set : ndarray or PositionFunction, optional
        Control point values (n_control_points,) or a function evaluated at the
        undeformed control points (default: -1 everywhere)
    band : float, optional
        Half width of the transition (default: half the smallest lattice spacing)
    """
    def __init__(self, ffd, level_set=None, band=None):
        self.ffd = ffd
        if band is None:
            band = 0.5 * min(ffd.extent[0] / ffd.K, ffd.extent[1] / ffd.L)
        if not band > 0:
            raise ConfigurationError(f"band must be positive, got {band}.")
        self.band = float(band)
        self.set_level_set(level_set)

    def set_level_set(self, values=None):
        """
        Replace the control point level-set values.

        May be called between iterations to change the topology of the moving
        region.
        """
        n = self.ffd.n_control_points
        if values is None:
            phi = -np.ones(n)
        elif callable(values):
            phi = np.asarray(values(self.ffd.lattice_points().reshape(-1, 2)), dtype=np.float64).ravel()
        else:
            phi = np.asarray(values, dtype=np.float64).ravel()
        if phi.shape[0] != n:
            raise ConfigurationError(f"Expected {n} level-set values, got {phi.shape[0]}.")
        self.phi = phi

    def nodal_level_set(self):
        """Reconstructed level set at the reference nodes, shape (n_nodes,)."""
        return self.ffd.W @ self.phi

    def weights(self):
        """Smooth nodal mask w in [0, 1], zero outside the lattice, shape (n_nodes,)."""
        t = np.clip(0.5 - self.nodal_level_set() / (2 * self.band), 0.0, 1.0)
        return np.where(self.ffd.active, smoothstep(t), 0.0)


class FFD_LS(FFD):
    """
    Free-form deformation restricted by a level-set mask.

    The FFD displacement of every node is scaled by the mask w of a
    LevelSetStage: displacement = diag(w) FFD.displacement and
    pullback = FFD.pullback(diag(w) G). Nodes with w = 0 neither move nor
    contribute sensitivity.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    bounding_box : ((x0, y0), (x1, y1))
        Lattice corners
    subdivisions : (int, int), optional
        (K, L) lattice subdivisions (default: (4, 4))
    problem : Problem, optional
        Supplies to_be_moved() and fix_control_points()
    level_set : ndarray or PositionFunction, optional
        Control point level-set values (default: -1, the whole box is active)
    band : float, optional
        Transition half width of the mask
    alpha : float, optional
        Relaxation of the least-squares descent direction, in (0, 1). When set,
        the search direction solves (alpha B^T B + (1 - alpha) I) mu = B^T (-w G)
        per component, B being the FFD map. When None, it is -gradient

    Examples
    --------
    >>> circle = lambda P: np.linalg.norm(P - [2.5, 2.0], axis=1) - 1.0
    >>> shape = FFD_LS(mesh, ((0, 0), (5, 4)), (4, 4), problem, level_set=circle, alpha=0.99)
    """
    def __init__(self,
                 mesh,
                 bounding_box: Sequence[Sequence[float]],
                 subdivisions: Tuple[int, int] = (4, 4),
                 problem=None,
                 level_set: Optional[Union[np.ndarray, PositionFunction]] = None,
                 band: Optional[float] = None,
                 alpha: Optional[float] = None):
        super().__init__(mesh, bounding_box, subdivisions, problem)
        self.stage = LevelSetStage(self, level_set, band)

        self.alpha = alpha
        self._factors = None
        if alpha is not None:
            if not 0.0 < alpha < 1.0:
                raise ConfigurationError(f"alpha must be in (0, 1), got {alpha}.")
            BtB = self.W_free.T @ self.W_free
            I = np.eye(self.n_control_points)
            self._factors = [cho_factor(alpha * self.extent[c] ** 2 * BtB + (1 - alpha) * I) for c in range(2)]

    def set_level_set(self, values):
        self.stage.set_level_set(values)

    def displacement(self, parameters):
        return self.stage.weights()[:, None] * super().displacement(parameters)

    def _pullback(self, G):
        return super()._pullback(self.stage.weights()[:, None] * G)

    def descent_direction(self, gradient, shape_derivative=None, lagrange=0.0):
        """
        Relaxed least-squares fit of the masked negative sensitivity.

        Falls back to -gradient when alpha is None or no shape derivative is given.
        """
        if self._factors is None or shape_derivative is None:
            return -gradient
        rhs = -super()._pullback(self.stage.weights()[:, None] * shape_derivative.nodal(lagrange)).reshape(-1, 2)
        mu = np.stack([cho_solve(self._factors[c], rhs[:, c]) for c in range(2)], axis=1)
        return mu.ravel()
