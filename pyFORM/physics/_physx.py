import numpy as np


class Physx:
    """
    Local-operator capability of a physics model.

    A physics model knows how to build element matrices from nodal coordinates
    and how its local degrees of freedom map to global ones. It holds no mesh
    state: every method is a pure function of the coordinates (and the mesh
    topology for the dof maps).

    Methods
    -------
    K(x0s)
        Element matrices for a batch of elements
    locals(x0s)
        Local operators [D, B, ...] used for post-processing
    volume(x0s)
        Element areas
    element_dofs(mesh)
        Global dof indices of every element, shape (n_elements, n_local_dofs)
    n_dofs(mesh)
        Size of the global system
    dof_nodes(mesh), tagged_nodes(mesh, tags)
        Coordinates of the dof-carrying nodes and the nodes lying on tagged
        boundaries. Nodal dof c of node i is n_components * i + c
    check()
        Raise AssemblyError for invalid coefficients

    Notes
    -----
    All methods accept a batch of elements: x0s shape (n_elements, 3, 2).
    """
    n_components = 2

    def __init__(self):
        pass

    def K(self, x0s):
        raise NotImplementedError("K method must be implemented in subclasses.")

    def locals(self, x0s):
        raise NotImplementedError("locals method must be implemented in subclasses.")

    def volume(self, x0s):
        raise NotImplementedError("volume method must be implemented in subclasses.")

    def element_dofs(self, mesh):
        raise NotImplementedError("element_dofs method must be implemented in subclasses.")

    def n_dofs(self, mesh):
        raise NotImplementedError("n_dofs method must be implemented in subclasses.")

    def dof_nodes(self, mesh):
        return mesh.nodes

    def tagged_nodes(self, mesh, tags):
        return mesh.boundary_nodes(tags).astype(np.int64)

    def check(self):
        """Validate coefficients. The default accepts everything."""
        pass


class PositionFunction:
    """
    Function-of-position capability.

    Used for boundary data (e.g. an inlet velocity) and level-set fields. It is
    independent of Physx: an object may implement either, or both.
    """
    def __call__(self, points):
        raise NotImplementedError("__call__ must be implemented in subclasses.")


class ConstantFunction(PositionFunction):
    """Position function returning the same value at every point."""
    def __init__(self, value):
        self.value = np.atleast_1d(np.asarray(value, dtype=np.float64))

    def __call__(self, points):
        points = np.atleast_2d(points)
        out = np.tile(self.value, (points.shape[0], 1))
        return out[:, 0] if self.value.shape[0] == 1 else out


def vector_p1_dofs(elements):
    """Interleaved dofs [2*n0, 2*n0+1, 2*n1, ...] of a 2-component P1 field, shape (n_elements, 6)."""
    return (elements[:, :, None] * 2 + np.arange(2)[None, None, :]).reshape(elements.shape[0], 6).astype(np.int64)
