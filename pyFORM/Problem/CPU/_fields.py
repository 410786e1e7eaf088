import numpy as np


class PhysicalField:
    """
    Solution vector of a state or adjoint solve.

    Parameters
    ----------
    values : ndarray
        Global dof values, shape (n_dofs,)
    n_components : int
        Components per node
    revision : int
        Mesh revision the field was computed on
    name : str, optional
        Label used in logs and output files

    Notes
    -----
    A field is created fresh by every solve and is never updated in place.
    """
    def __init__(self, values, n_components, revision, name="field"):
        self.values = values
        self.n_components = n_components
        self.revision = revision
        self.name = name

    def nodal(self):
        """Values reshaped to (n_nodes, n_components)."""
        return self.values.reshape(-1, self.n_components)

    def __repr__(self):
        return f"PhysicalField(name={self.name!r}, n_dofs={self.values.shape[0]}, revision={self.revision})"


class StokesField(PhysicalField):
    """
    Taylor-Hood velocity/pressure pair.

    Attributes
    ----------
    velocity : ndarray
        P2 nodal velocity (vertices then edge midpoints), shape (n_p2, 2)
    pressure : ndarray
        P1 pressure at the mesh vertices, shape (n_nodes,)
    """
    def __init__(self, values, n_p2, revision, name="stokes"):
        super().__init__(values, 2, revision, name)
        self.n_p2 = n_p2

    @property
    def velocity(self):
        return self.values[:2 * self.n_p2].reshape(-1, 2)

    @property
    def pressure(self):
        return self.values[2 * self.n_p2:]

    def nodal(self):
        """Velocity at the mesh vertices, shape (n_nodes, 2)."""
        return self.velocity[:self.pressure.shape[0]]


class ShapeDerivative:
    """
    Shape derivative of an objective on the current geometry.

    Carries both the boundary (Hadamard) form and the exact discrete volume
    form of the derivative.

    Parameters
    ----------
    nodes : ndarray
        Moving-boundary node ids, shape (n_b,)
    density : ndarray
        Hadamard density g at those nodes, shape (n_b,)
    normals : ndarray
        Averaged unit outward normals, shape (n_b, 2)
    measure : ndarray
        Lumped boundary measure, shape (n_b,)
    distributed : ndarray
        Exact nodal sensitivity dJ/dX of every mesh node, shape (n_nodes, 2)
    volume_gradient : ndarray
        Nodal gradient of the domain area dVol/dX, shape (n_nodes, 2)
    form : str
        "volume" or "boundary", selects what nodal() returns
    revision : int
        Mesh revision of the geometry it was computed on
    """
    def __init__(self, nodes, density, normals, measure, distributed, volume_gradient, form="volume", revision=0):
        self.nodes = nodes
        self.density = density
        self.normals = normals
        self.measure = measure
        self.distributed = distributed
        self.volume_gradient = volume_gradient
        self.form = form
        self.revision = revision

    @property
    def n_nodes(self):
        return self.distributed.shape[0]

    def boundary(self, lagrange=0.0):
        """(g + lagrange) * measure * normal at the moving-boundary nodes, zero elsewhere."""
        out = np.zeros_like(self.distributed)
        out[self.nodes] = ((self.density + lagrange) * self.measure)[:, None] * self.normals
        return out

    def nodal(self, lagrange=0.0):
        """
        Nodal sensitivity used by the parametrization pullbacks.

        Parameters
        ----------
        lagrange : float, optional
            Volume multiplier added to the objective

        Returns
        -------
        ndarray
            Shape (n_nodes, 2)
        """
        if self.form == "boundary":
            return self.boundary(lagrange)
        return self.distributed + lagrange * self.volume_gradient
