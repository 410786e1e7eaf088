from ..FiniteElement import FiniteElement as FE
from ...geom.CPU._mesh import TriangleMesh
from ...physics._physx import Physx, PositionFunction
from ...solvers.commons import Solver
from ...solvers.CPU._solvers import SPLU
from ...core.CPU._geom import edge_normals
from ...visualizers._2d import plot_field_2D
from ..._exceptions import AssemblyError, ConfigurationError
from typing import Optional, Union, Sequence
from scipy.sparse import coo_matrix
import numpy as np
import logging
logger = logging.getLogger(__name__)


class FiniteElement(FE):
    """
    Finite element assembly engine for one physics model on one mesh.

    Builds global sparse operators from the batched element matrices of a
    physics model, keeps Dirichlet and Neumann data, and solves the reduced
    system through a solver collaborator.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference, the geometry is read at every assembly)
    physics : Physx
        Local-operator physics model
    solver : Solver, optional
        Linear solver for the reduced system (default: SPLU())

    Attributes
    ----------
    n_dofs : int
        Size of the global system
    constraints : ndarray
        Boolean mask of Dirichlet dofs
    rhs : ndarray
        Load vector assembled on the current geometry

    Notes
    -----
    - Boundary data is stored symbolically and evaluated on the current node
      positions, so loads and prescribed values follow the deformed geometry
    - When Dirichlet conditions overlap, the one added last sets the value
    - solve() eliminates Dirichlet dofs: A_ff x_f = b_f - A_fD g

    Examples
    --------
    >>> from pyFORM.CPU import StructuredTriangleMesh2D, FiniteElement
    >>> from pyFORM.Physics import LinearElasticity
    >>> mesh = StructuredTriangleMesh2D(nx=20, ny=10, lx=2.0, ly=1.0)
    >>> FE = FiniteElement(mesh, LinearElasticity())
    >>> FE.add_dirichlet_boundary_condition(tags=[3])
    >>> FE.add_neumann_boundary_condition(tags=[1], traction=[0.0, -1.0])
    >>> U, residual = FE.solve()
    """
    def __init__(self,
                 mesh: TriangleMesh,
                 physics: Physx,
                 solver: Optional[Solver] = None):
        super().__init__()

        self.mesh = mesh
        self.physics = physics
        self.solver = solver if solver is not None else SPLU()
        self.dtype = mesh.dtype

        self.n_dofs = physics.n_dofs(mesh)
        self.n_components = physics.n_components
        self.forces = np.zeros(self.n_dofs, dtype=self.dtype)

        self._dirichlet = []
        self._neumann = []

    def assemble(self, transpose=False):
        """
        Assemble the global operator on the current geometry.

        Parameters
        ----------
        transpose : bool, optional
            Assemble element transposes, i.e. the adjoint operator (default: False)

        Returns
        -------
        scipy.sparse.csr_matrix
            Shape (n_dofs, n_dofs)

        Raises
        ------
        AssemblyError
            Invalid connectivity, invalid coefficients or non-finite element matrices
        """
        self.mesh.check_connectivity()
        self.physics.check()

        Ke = self.physics.K(self.mesh.element_coordinates())
        if not np.all(np.isfinite(Ke)):
            bad = np.where(~np.all(np.isfinite(Ke.reshape(Ke.shape[0], -1)), axis=1))[0]
            raise AssemblyError(f"Non-finite element matrices in elements: {bad[:10]}")
        if transpose:
            Ke = np.transpose(Ke, (0, 2, 1))

        dofs = self.physics.element_dofs(self.mesh)
        n_local = dofs.shape[1]
        rows = np.repeat(dofs, n_local, axis=1).ravel()
        cols = np.tile(dofs, (1, n_local)).ravel()

        return coo_matrix((Ke.ravel(), (rows, cols)), shape=(self.n_dofs, self.n_dofs)).tocsr()

    def add_dirichlet_boundary_condition(self,
                                         node_ids: Optional[np.ndarray] = None,
                                         tags: Optional[Sequence[int]] = None,
                                         components: Optional[Sequence[int]] = None,
                                         rhs: Union[float, np.ndarray, PositionFunction] = 0.0):
        """
        Apply Dirichlet boundary conditions.

        Parameters
        ----------
        node_ids : ndarray, optional
            Dof-carrying nodes to constrain (P2 nodes for Taylor-Hood velocity)
        tags : sequence of int, optional
            Constrain every node on the boundary edges with these tags
        components : sequence of int, optional
            Components to constrain (default: all). [1] constrains only v in 2D
        rhs : float, ndarray or PositionFunction, optional
            Prescribed values. A scalar applies to every constrained dof, an array
            has shape (n_nodes,) or (n_nodes, n_components) and a position function is
            evaluated at the current node positions at every solve

        Notes
        -----
        - Provide either node_ids OR tags, not both
        - Multiple calls accumulate constraints
        """
        if node_ids is None and tags is None:
            raise ConfigurationError("Either node_ids or tags must be provided.")
        if node_ids is not None and tags is not None:
            raise ConfigurationError("Only one of node_ids or tags should be provided.")

        if tags is not None:
            node_ids = self.physics.tagged_nodes(self.mesh, tags)
        node_ids = np.asarray(node_ids, dtype=np.int64)

        if components is None:
            components = range(self.n_components)
        components = np.array(list(components), dtype=np.int64)
        if components.size == 0 or components.min() < 0 or components.max() >= self.n_components:
            raise ConfigurationError(f"components must be in [0, {self.n_components}).")

        if not isinstance(rhs, PositionFunction) and not np.isscalar(rhs):
            rhs = np.asarray(rhs, dtype=self.dtype).reshape(node_ids.shape[0], -1)
            if rhs.shape[1] not in (1, self.n_components):
                raise ConfigurationError("rhs must have the shape (n_nodes,) or (n_nodes, n_components).")

        self._dirichlet.append((node_ids, components, rhs))

    def reset_dirichlet_boundary_conditions(self):
        """Remove all Dirichlet boundary conditions."""
        self._dirichlet = []

    def dirichlet(self):
        """
        Constrained dofs and prescribed values on the current geometry.

        Returns
        -------
        constraints : ndarray
            Boolean mask, shape (n_dofs,)
        values : ndarray
            Prescribed values (zero on free dofs), shape (n_dofs,)
        """
        constraints = np.zeros(self.n_dofs, dtype=bool)
        values = np.zeros(self.n_dofs, dtype=self.dtype)
        nc = self.n_components

        for node_ids, components, rhs in self._dirichlet:
            if isinstance(rhs, PositionFunction):
                data = np.asarray(rhs(self.physics.dof_nodes(self.mesh)[node_ids]), dtype=self.dtype).reshape(node_ids.shape[0], -1)
            elif isinstance(rhs, np.ndarray):
                data = rhs
            else:
                data = np.full((node_ids.shape[0], nc), rhs, dtype=self.dtype)

            for c in components:
                cons = node_ids * nc + c
                constraints[cons] = True
                values[cons] = data[:, c] if data.shape[1] > 1 else data[:, 0]

        return constraints, values

    @property
    def constraints(self):
        return self.dirichlet()[0]

    def add_neumann_boundary_condition(self, tags: Sequence[int], traction: Sequence[float]):
        """
        Apply a constant traction on tagged boundary edges.

        Each edge e contributes |e|/2 * traction to both of its end nodes.
        Edge lengths are taken on the current geometry at every assembly of
        the load vector.

        Parameters
        ----------
        tags : sequence of int
            Boundary tags carrying the load
        traction : sequence of float
            Load per unit length, shape (n_components,)
        """
        traction = np.asarray(traction, dtype=self.dtype).ravel()
        if traction.shape[0] != self.n_components:
            raise ConfigurationError(f"traction must have {self.n_components} components.")
        if self.physics.element_dofs(self.mesh).shape[1] != 3 * self.n_components:
            raise ConfigurationError("Neumann loads are only supported for P1 spaces.")
        self._neumann.append((tuple(tags), traction))

    def reset_forces(self):
        """Clear all applied tractions and nodal forces."""
        self._neumann = []
        self.forces[:] = 0

    @property
    def rhs(self):
        """Load vector on the current geometry, shape (n_dofs,)."""
        out = self.forces.copy()
        nc = self.n_components
        for tags, traction in self._neumann:
            edges = self.mesh.tagged_edges(tags)
            if edges.shape[0] == 0:
                continue
            _, lengths = edge_normals(self.mesh.nodes, edges)
            for side in range(2):
                for c in range(nc):
                    np.add.at(out, edges[:, side].astype(np.int64) * nc + c, 0.5 * lengths * traction[c])
        return out

    def reduce(self, A, b, homogeneous=False):
        """
        Eliminate the Dirichlet dofs.

        Parameters
        ----------
        A : scipy.sparse matrix
            Global operator, shape (n_dofs, n_dofs)
        b : ndarray
            Global right-hand side, shape (n_dofs,)
        homogeneous : bool, optional
            Use zero prescribed values (adjoint and extension problems)

        Returns
        -------
        A_ff : scipy.sparse.csr_matrix
            Free-free block
        b_f : ndarray
            Lifted right-hand side b_f - A_fD g
        """
        constraints, values = self.dirichlet()
        free = ~constraints
        A = A.tocsr()
        A_f = A[free]
        b_f = b[free].copy()
        if not homogeneous and np.any(values[constraints]):
            b_f -= A_f[:, constraints] @ values[constraints]
        return A_f[:, free], b_f

    def solve(self, A=None, rhs=None, x0=None, homogeneous=False):
        """
        Solve the Dirichlet-reduced system.

        Parameters
        ----------
        A : scipy.sparse matrix, optional
            Global operator (default: assemble())
        rhs : ndarray, optional
            Global right-hand side (default: the load vector rhs)
        x0 : ndarray, optional
            Initial guess on all dofs for iterative solvers
        homogeneous : bool, optional
            Use zero prescribed values

        Returns
        -------
        U : ndarray
            Solution on all dofs, prescribed values included, shape (n_dofs,)
        residual : float
            Relative residual of the reduced solve
        """
        if A is None:
            A = self.assemble()
        if rhs is None:
            rhs = self.rhs

        constraints, values = self.dirichlet()
        free = ~constraints
        A_ff, b_f = self.reduce(A, rhs, homogeneous=homogeneous)

        U = np.zeros(self.n_dofs, dtype=self.dtype) if homogeneous else values.copy()
        x_f, residual = self.solver.solve(A_ff, b_f, x0=None if x0 is None else x0[free])
        U[free] = x_f

        logger.debug(f"Solved {free.sum()} free dofs ({constraints.sum()} constrained), residual {residual:.3e}")
        return U, residual

    def visualize_field(self, field, ax=None, **kwargs):
        """
        Visualize a nodal or element field on the current mesh.

        Parameters
        ----------
        field : ndarray
            (n_nodes,), (n_elements,) or (n_nodes, 2) values. Vector fields are
            drawn by magnitude
        ax : matplotlib.axes.Axes, optional
            Existing axes to plot on
        """
        return plot_field_2D(self.mesh.nodes, self.mesh.elements, field, ax=ax, **kwargs)
