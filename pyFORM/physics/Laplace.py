from ._physx import Physx, vector_p1_dofs
from ..core.CPU._geom import triangle_gradients, triangle_areas
import numpy as np

class Laplace(Physx):
    """
    Scalar P1 Laplace operator, element matrices A grad phi_a . grad phi_b.

    Used to extend boundary displacements into the domain.
    """
    n_components = 1

    def K(self, x0s):
        grads, A = triangle_gradients(x0s)
        return np.einsum('n,naj,nbj->nab', A, grads, grads)

    def locals(self, x0s):
        return list(triangle_gradients(x0s))

    def volume(self, x0s):
        return triangle_areas(x0s)

    def element_dofs(self, mesh):
        return mesh.elements.astype(np.int64)

    def n_dofs(self, mesh):
        return mesh.n_nodes


class VectorLaplace(Laplace):
    """
    Componentwise P1 vector Laplace operator with interleaved dofs.

    The harmonic extension of a boundary sensitivity solves this operator
    with a zero Dirichlet condition on the boundaries that may not move.
    """
    n_components = 2

    def K(self, x0s):
        lap = super().K(x0s)
        K = np.zeros((x0s.shape[0], 6, 6), dtype=x0s.dtype)
        K[:, 0::2, 0::2] = lap
        K[:, 1::2, 1::2] = lap
        return K

    def element_dofs(self, mesh):
        return vector_p1_dofs(mesh.elements)

    def n_dofs(self, mesh):
        return 2 * mesh.n_nodes
