from ._physx import Physx
from ..core.CPU._geom import triangle_gradients, triangle_areas
from ..core.CPU._quadrature import triangle_rule
from .._exceptions import ConfigurationError, AssemblyError
import numpy as np

class Stokes(Physx):
    """
    Stationary Stokes flow with the Taylor-Hood P2/P1 pair on straight triangles.

    The bilinear form is
    a((u, p), (w, q)) = nu int grad u : grad w - int p div w - int q div u,
    which gives a symmetric saddle-point element matrix.

    Parameters
    ----------
    viscosity : float, optional
        Kinematic viscosity nu (default: 1.0)
    degree : int, optional
        Degree of the triangle quadrature rule (default: 2, exact for every
        integrand of this element pair)

    Notes
    -----
    **Local ordering (15 dofs):**
    - 0..11: velocity, interleaved (u_x, u_y) at the six P2 nodes
      (vertices 0, 1, 2 then edge midpoints (0-1), (1-2), (2-0))
    - 12..14: pressure at the three vertices

    **Global ordering:**
    - velocity of P2 node i (vertices first, then mesh edges) at 2*i + c
    - pressure of vertex j at 2*n_p2 + j

    **Shape derivative tensor:**
    With G the constant gradient of a P1 velocity field on an element,
    d(grad u) = -grad u G and d(dx) = tr(G) dx. shape_tensor() collects the
    quadrature of the resulting integrands into one 2x2 tensor per element.
    """
    def __init__(self, viscosity=1.0, degree=2):
        super().__init__()
        self.viscosity = viscosity
        self.bary, self.weights = triangle_rule(degree)

        if not (np.isfinite(viscosity) and viscosity > 0):
            raise ConfigurationError(f"Viscosity must be positive, got {viscosity}.")

    def check(self):
        if not (np.isfinite(self.viscosity) and self.viscosity > 0):
            raise AssemblyError(f"Non-positive viscosity {self.viscosity}.")

    def n_p2(self, mesh):
        return mesh.n_nodes + mesh.edges()[0].shape[0]

    def n_dofs(self, mesh):
        return 2 * self.n_p2(mesh) + mesh.n_nodes

    def p2_elements(self, mesh):
        """P2 node ids of every element, shape (n_elements, 6)."""
        _, element_edges = mesh.edges()
        return np.concatenate([mesh.elements, mesh.n_nodes + element_edges], axis=1).astype(np.int64)

    def p2_nodes(self, mesh):
        """Coordinates of the P2 nodes: mesh vertices followed by edge midpoints."""
        edges, _ = mesh.edges()
        return np.concatenate([mesh.nodes, 0.5 * (mesh.nodes[edges[:, 0]] + mesh.nodes[edges[:, 1]])])

    def element_dofs(self, mesh):
        p2 = self.p2_elements(mesh)
        u_dofs = (p2[:, :, None] * 2 + np.arange(2)[None, None, :]).reshape(p2.shape[0], 12)
        p_dofs = 2 * self.n_p2(mesh) + mesh.elements.astype(np.int64)
        return np.concatenate([u_dofs, p_dofs], axis=1)

    def dof_nodes(self, mesh):
        return self.p2_nodes(mesh)

    def tagged_nodes(self, mesh, tags):
        return self.boundary_p2_nodes(mesh, tags)

    def boundary_p2_nodes(self, mesh, tags):
        """P2 nodes (vertices and edge midpoints) lying on the boundary edges with the given tags."""
        bedges = mesh.tagged_edges(tags)
        if bedges.shape[0] == 0:
            return np.zeros(0, dtype=np.int64)
        edges, _ = mesh.edges()
        n = mesh.n_nodes
        keys = edges[:, 0].astype(np.int64) * n + edges[:, 1]
        sorted_b = np.sort(bedges, axis=1).astype(np.int64)
        edge_ids = np.searchsorted(keys, sorted_b[:, 0] * n + sorted_b[:, 1])
        return np.unique(np.concatenate([np.unique(bedges), n + edge_ids])).astype(np.int64)

    def volume(self, x0s):
        return triangle_areas(x0s)

    def basis_gradients(self, x0s, bary=None):
        """
        Physical gradients of the six P2 basis functions at barycentric points.

        Returns
        -------
        gradN : ndarray
            Shape (n_elements, n_points, 6, 2)
        A : ndarray
            Signed element areas, shape (n_elements,)
        """
        if bary is None:
            bary = self.bary
        gradL, A = triangle_gradients(x0s)

        L0, L1, L2 = bary[:, 0], bary[:, 1], bary[:, 2]
        zero = np.zeros_like(L0)
        dNdL = np.stack([
            np.stack([4 * L0 - 1, zero, zero], axis=1),
            np.stack([zero, 4 * L1 - 1, zero], axis=1),
            np.stack([zero, zero, 4 * L2 - 1], axis=1),
            np.stack([4 * L1, 4 * L0, zero], axis=1),
            np.stack([zero, 4 * L2, 4 * L1], axis=1),
            np.stack([4 * L2, zero, 4 * L0], axis=1),
        ], axis=1)  # (n_points, 6, 3)

        gradN = np.einsum('qab,nbj->nqaj', dNdL, gradL)
        return gradN, A

    def laplacian(self, x0s):
        """Scalar P2 stiffness int grad N_a . grad N_b, shape (n_elements, 6, 6)."""
        gradN, A = self.basis_gradients(x0s)
        return np.einsum('q,n,nqaj,nqbj->nab', self.weights, A, gradN, gradN)

    def K(self, x0s):
        n_elements = x0s.shape[0]
        gradN, A = self.basis_gradients(x0s)
        lap = np.einsum('q,n,nqaj,nqbj->nab', self.weights, A, gradN, gradN)

        # Bp[n, b, a, c] = -int L_b dN_a/dx_c
        Bp = -np.einsum('q,n,qb,nqac->nbac', self.weights, A, self.bary, gradN).reshape(n_elements, 3, 12)

        K = np.zeros((n_elements, 15, 15), dtype=x0s.dtype)
        for c in range(2):
            K[:, c:12:2, c:12:2] = self.viscosity * lap
        K[:, 12:, :12] = Bp
        K[:, :12, 12:] = np.transpose(Bp, (0, 2, 1))
        return K

    def K_energy(self, x0s):
        """Element matrices of the dissipated energy 1/2 int |grad u|^2 (Hessian form), shape (n_elements, 15, 15)."""
        lap = self.laplacian(x0s)
        K = np.zeros((x0s.shape[0], 15, 15), dtype=x0s.dtype)
        for c in range(2):
            K[:, c:12:2, c:12:2] = lap
        return K

    def locals(self, x0s):
        return list(self.basis_gradients(x0s))

    def velocity_gradient(self, x0s, Ue, bary=None):
        """
        Velocity gradients at barycentric points.

        Parameters
        ----------
        Ue : ndarray
            Element dof values in local ordering, shape (n_elements, 15)

        Returns
        -------
        Du : ndarray
            Du[e, q, i, j] = d u_i / d x_j, shape (n_elements, n_points, 2, 2)
        """
        gradN, _ = self.basis_gradients(x0s, bary)
        return np.einsum('nai,nqaj->nqij', Ue[:, :12].reshape(-1, 6, 2), gradN)

    def shape_tensor(self, x0s, Ue, Le):
        """
        Element tensors of the volume shape derivative of the energy Lagrangian.

        L = 1/2 int |grad u|^2 - a((u, p), (lu, lp)) with (u, p) the state and
        (lu, lp) the adjoint.

        Returns
        -------
        S : ndarray
            Shape (n_elements, 2, 2)
        """
        gradN, A = self.basis_gradients(x0s)
        Du = np.einsum('nai,nqaj->nqij', Ue[:, :12].reshape(-1, 6, 2), gradN)
        Dl = np.einsum('nai,nqaj->nqij', Le[:, :12].reshape(-1, 6, 2), gradN)
        p = np.einsum('qb,nb->nq', self.bary, Ue[:, 12:])
        lp = np.einsum('qb,nb->nq', self.bary, Le[:, 12:])

        I = np.eye(2)[None, None]
        div_u = Du[..., 0, 0] + Du[..., 1, 1]
        div_l = Dl[..., 0, 0] + Dl[..., 1, 1]
        Du_T = np.swapaxes(Du, -1, -2)
        Dl_T = np.swapaxes(Dl, -1, -2)

        E_j = 0.5 * np.einsum('nqij,nqij->nq', Du, Du)[..., None, None] * I - Du_T @ Du
        E_a = self.viscosity * (np.einsum('nqij,nqij->nq', Du, Dl)[..., None, None] * I - Du_T @ Dl - Dl_T @ Du) \
            - ((p * div_l)[..., None, None] * I - p[..., None, None] * Dl_T) \
            - ((lp * div_u)[..., None, None] * I - lp[..., None, None] * Du_T)

        return np.einsum('q,n,nqij->nij', self.weights, A, E_j - E_a)

    def vertex_density(self, x0s, Ue, Le):
        """
        Hadamard density nu grad u : grad lu - 1/2 |grad u|^2 at the element vertices, shape (n_elements, 3).
        """
        vertices = np.eye(3)
        Du = self.velocity_gradient(x0s, Ue, vertices)
        Dl = self.velocity_gradient(x0s, Le, vertices)
        return self.viscosity * np.einsum('nqij,nqij->nq', Du, Dl) - 0.5 * np.einsum('nqij,nqij->nq', Du, Du)


class DissipatedEnergy(Physx):
    """
    Hessian of the dissipated energy 1/2 int |grad u|^2 on the Taylor-Hood space.

    Shares the dof maps of a Stokes model, its element matrices are the P2
    vector Laplacian (unit viscosity) padded with zero pressure rows and columns.
    """
    def __init__(self, stokes):
        super().__init__()
        self.stokes = stokes

    def K(self, x0s):
        return self.stokes.K_energy(x0s)

    def locals(self, x0s):
        return self.stokes.locals(x0s)

    def volume(self, x0s):
        return self.stokes.volume(x0s)

    def element_dofs(self, mesh):
        return self.stokes.element_dofs(mesh)

    def n_dofs(self, mesh):
        return self.stokes.n_dofs(mesh)

    def dof_nodes(self, mesh):
        return self.stokes.dof_nodes(mesh)

    def tagged_nodes(self, mesh, tags):
        return self.stokes.tagged_nodes(mesh, tags)
