from .._shape import ShapeOptimization, parse_bounding_box, box_coordinates
from ..._exceptions import ConfigurationError
import numpy as np
import logging
logger = logging.getLogger(__name__)


class DesignElement(ShapeOptimization):
    """
    Vertical deformation driven by an upper and a lower boundary polynomial.

    With (x, y) = psi(X_ref) the box coordinates of a node, the nodes inside
    the box move vertically by

        dy = H (y f_up(x) + (1 - y) f_down(x)),  f(x) = sum_{k<order} a_k x^(k+1)

    H being the box height. The coefficients are projected with
    P = I - 11^T / order on each block, which enforces f(1) = 0; together with
    f(0) = 0 both ends of the design element stay in place.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    bounding_box : ((x0, y0), (x1, y1))
        Box of the design element
    problem : Problem, optional
        Supplies to_be_moved()
    order : int, optional
        Number of coefficients per polynomial (default: 3)

    Notes
    -----
    The parameters are [a_up (order), a_down (order)]. displacement = B P p
    and pullback = P B^T G_y.
    """
    def __init__(self, mesh, bounding_box, problem=None, order=3):
        super().__init__(mesh, problem)

        self.sw, self.extent = parse_bounding_box(bounding_box)
        if int(order) < 1:
            raise ConfigurationError(f"order must be a positive integer, got {order}.")
        self.order = int(order)

        ref, inside = box_coordinates(self.reference, self.sw, self.extent)
        active = inside
        if problem is not None:
            active = active & np.asarray(problem.to_be_moved(self.reference), dtype=bool)
        self.active = active

        x, y = ref[:, 0], ref[:, 1]
        powers = x[:, None] ** np.arange(1, self.order + 1)[None, :]
        H = self.extent[1]
        B = np.concatenate([H * y[:, None] * powers, H * (1 - y)[:, None] * powers], axis=1)
        B[~active] = 0.0
        self.B = B

        block = np.eye(self.order) - np.ones((self.order, self.order)) / self.order
        self.P = np.zeros((2 * self.order, 2 * self.order))
        self.P[:self.order, :self.order] = block
        self.P[self.order:, self.order:] = block

        self._parameters = np.zeros(2 * self.order)
        logger.info(f"Design element of order {self.order} moving {int(active.sum())} nodes.")

    def displacement(self, parameters):
        out = np.zeros_like(self.reference)
        out[:, 1] = self.B @ (self.P @ np.asarray(parameters, dtype=np.float64))
        return out

    def _pullback(self, G):
        return self.P @ (self.B.T @ G[:, 1])

    def profiles(self, parameters=None, n=101):
        """Sample f_up and f_down on [0, 1], returns (x, f_up, f_down)."""
        if parameters is None:
            parameters = self._parameters
        a = self.P @ np.asarray(parameters)
        x = np.linspace(0.0, 1.0, n)
        powers = x[:, None] ** np.arange(1, self.order + 1)[None, :]
        return x, powers @ a[:self.order], powers @ a[self.order:]
