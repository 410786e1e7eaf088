from ._physx import Physx, vector_p1_dofs
from ..core.CPU._geom import triangle_gradients, triangle_areas
from .._exceptions import ConfigurationError, AssemblyError
import numpy as np

class LinearElasticity(Physx):
    """
    Linear isotropic elasticity on P1 triangles with Lamé coefficients.

    Computes element stiffness matrices, strain-displacement operators and the
    element tensors needed for the shape derivative of elastic energies.

    Parameters
    ----------
    lam : float, optional
        First Lamé coefficient lambda (default: 13.0)
    mu : float, optional
        Shear modulus mu (default: 5.5)
    thickness : float, optional
        Thickness for 2D elements (default: 1.0)
    type : str, optional
        2D formulation: 'PlaneStrain' or 'PlaneStress' (default: 'PlaneStrain')

    Attributes
    ----------
    lam, mu : float
        Lamé coefficients as given
    lam_eff : float
        In-plane lambda (equals lam for plane strain, 2 lam mu / (lam + 2 mu) for plane stress)

    Notes
    -----
    **Constitutive Matrix D (Voigt, engineering shear):**
    - D = [[lam+2mu, lam, 0], [lam, lam+2mu, 0], [0, 0, mu]]
    - sigma : eps = 2 mu |eps|^2 + lam (tr eps)^2

    **Shape derivative tensor:**
    For a P1 velocity field V with constant gradient G on an element, the
    derivative of a(u, w) = int sigma(u) : eps(w) is
    int sigma(u):eps(w) tr(G) - sigma(w):(Du G) - sigma(u):(Dw G).
    shape_tensor() returns the element tensor S such that the contribution of
    vertex a moving along V = e_k phi_a is (S grad phi_a)_k. The formula is exact
    for affine elements.

    Examples
    --------
    >>> from pyFORM.Physics import LinearElasticity
    >>> physics = LinearElasticity(lam=13.0, mu=5.5)
    >>> Ke = physics.K(mesh.element_coordinates())  # (n_elements, 6, 6)
    """
    def __init__(self, lam=13.0, mu=5.5, thickness=1.0, type='PlaneStrain'):
        super().__init__()
        self.lam = lam
        self.mu = mu
        self.thickness = thickness
        if type == 'PlaneStrain':
            self.type = 1
        elif type == 'PlaneStress':
            self.type = 0
        else:
            raise ConfigurationError(f"Unknown 2D formulation {type}. Use 'PlaneStrain' or 'PlaneStress'.")

        if not self._valid():
            raise ConfigurationError(f"Invalid Lamé coefficients lambda={lam}, mu={mu}, thickness={thickness}.")

    @classmethod
    def from_engineering(cls, E=1.0, nu=1./3., thickness=1.0, type='PlaneStrain'):
        """Build from Young's modulus and Poisson's ratio."""
        if E <= 0 or not (-1.0 < nu < 0.5):
            raise ConfigurationError(f"Invalid Young's modulus {E} or Poisson's ratio {nu}.")
        lam = E * nu / ((1 + nu) * (1 - 2 * nu))
        mu = E / (2 * (1 + nu))
        return cls(lam=lam, mu=mu, thickness=thickness, type=type)

    @property
    def lam_eff(self):
        if self.type == 0:
            return 2 * self.lam * self.mu / (self.lam + 2 * self.mu)
        return self.lam

    def _valid(self):
        values = np.array([self.lam, self.mu, self.thickness], dtype=np.float64)
        return bool(np.all(np.isfinite(values)) and self.mu > 0 and self.lam + self.mu > 0 and self.thickness > 0)

    def check(self):
        if not self._valid():
            raise AssemblyError(f"Non-positive stiffness: lambda={self.lam}, mu={self.mu}, thickness={self.thickness}.")

    def D(self):
        lam = self.lam_eff
        mu = self.mu
        return np.array([[lam + 2 * mu, lam, 0.0],
                         [lam, lam + 2 * mu, 0.0],
                         [0.0, 0.0, mu]])

    def K(self, x0s):
        return _triangle_element_stiffness(x0s, self.D(), self.thickness)[0]

    def locals(self, x0s):
        return list(_triangle_element_stiffness(x0s, self.D(), self.thickness)[1:])

    def volume(self, x0s):
        return triangle_areas(x0s)

    def element_dofs(self, mesh):
        return vector_p1_dofs(mesh.elements)

    def n_dofs(self, mesh):
        return 2 * mesh.n_nodes

    def displacement_gradient(self, x0s, Ue):
        """
        Element-constant displacement gradients.

        Parameters
        ----------
        x0s : ndarray
            Element coordinates, shape (n_elements, 3, 2)
        Ue : ndarray
            Element dof values in interleaved order, shape (n_elements, 6)

        Returns
        -------
        Du : ndarray
            Du[e, i, j] = d u_i / d x_j, shape (n_elements, 2, 2)
        """
        grads, _ = triangle_gradients(x0s)
        return np.einsum('nai,naj->nij', Ue.reshape(-1, 3, 2), grads)

    def stress(self, Du):
        """Cauchy stress from displacement gradients, shape (n_elements, 2, 2)."""
        eps = 0.5 * (Du + np.transpose(Du, (0, 2, 1)))
        tr = eps[:, 0, 0] + eps[:, 1, 1]
        return 2 * self.mu * eps + self.lam_eff * tr[:, None, None] * np.eye(2)[None]

    def energy_density(self, Du, Dw):
        """sigma(u) : eps(w) per element."""
        sigma_u = self.stress(Du)
        eps_w = 0.5 * (Dw + np.transpose(Dw, (0, 2, 1)))
        return np.einsum('nij,nij->n', sigma_u, eps_w)

    def shape_tensor(self, x0s, Ue, We):
        """
        Element tensors of the volume shape derivative of a(u, w).

        Returns
        -------
        S : ndarray
            thickness * |T| * (sigma(u):eps(w) I - Du^T sigma(w) - Dw^T sigma(u)), shape (n_elements, 2, 2)
        """
        A = triangle_areas(x0s)
        Du = self.displacement_gradient(x0s, Ue)
        Dw = self.displacement_gradient(x0s, We)
        sigma_u = self.stress(Du)
        sigma_w = self.stress(Dw)
        e = self.energy_density(Du, Dw)

        S = e[:, None, None] * np.eye(2)[None] \
            - np.einsum('nki,nkj->nij', Du, sigma_w) \
            - np.einsum('nki,nkj->nij', Dw, sigma_u)
        return self.thickness * A[:, None, None] * S


def _triangle_element_stiffness(x0s, D, t=1.0):
    """
    This function computes the stiffness matrix for a batch of triangle elements given the nodal positions.

    Parameters:
        x0s (np.array): Array with the nodal positions. Shape (n_elements, 3, 2) or (3, 2) for single element
        D (np.array): Constitutive matrix in Voigt notation. Shape (3, 3)
        t (float): Thickness of the element

    Returns:
        K (np.array): Stiffness matrices. Shape (n_elements, 6, 6) or (6, 6) for single element
        D (np.array): Constitutive matrices. Shape (n_elements, 3, 3) or (3, 3) for single element
        B (np.array): B-Operators. Shape (n_elements, 3, 6) or (3, 6) for single element
    """
    # Handle single element case
    if x0s.ndim == 2:
        x0s = x0s[np.newaxis, ...]
        single_element = True
    else:
        single_element = False

    n_elements = x0s.shape[0]

    grads, A = triangle_gradients(x0s)

    # Build B matrices for all elements
    B = np.zeros((n_elements, 3, 6), dtype=x0s.dtype)
    B[:, 0, 0::2] = grads[:, :, 0]
    B[:, 1, 1::2] = grads[:, :, 1]
    B[:, 2, 0::2] = grads[:, :, 1]
    B[:, 2, 1::2] = grads[:, :, 0]

    Ds = np.broadcast_to(D, (n_elements, 3, 3))

    # K = t * A * B^T @ D @ B
    K = np.einsum('i,ijk,ikl,ilm->ijm', t * A,
                  np.transpose(B, (0, 2, 1)),
                  Ds,
                  B)

    if single_element:
        return K[0], Ds[0], B[0]
    else:
        return K, Ds, B
