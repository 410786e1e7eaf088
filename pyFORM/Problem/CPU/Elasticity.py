from ._base import ShapeSensitiveProblem
from ._fields import PhysicalField
from ._extension import ElasticityHE
from ...FiniteElement.CPU.FiniteElement import FiniteElement
from ...physics.LinearElasticity import LinearElasticity
from ..._exceptions import ConfigurationError
from typing import Optional, Sequence
import numpy as np
import logging
logger = logging.getLogger(__name__)


class ElasticityState:
    """
    Forward linear elasticity solve.

    Zero displacement on the Dirichlet boundaries, constant traction on the
    traction boundaries.
    """
    def __init__(self, problem):
        self.problem = problem
        self.FE = FiniteElement(problem.mesh, problem.physics, problem.solver)
        self.FE.add_dirichlet_boundary_condition(tags=problem.dirichlet_tags)
        self.FE.add_neumann_boundary_condition(tags=problem.traction_tags, traction=problem.traction)

    def solve(self):
        U, residual = self.FE.solve()
        logger.debug(f"Elasticity state residual: {residual:.3e}")
        return PhysicalField(U, 2, self.problem.mesh.revision, "displacement")


class ElasticityAdjoint:
    """
    Adjoint of the compliance for a non-symmetric elasticity operator.

    Solves the element-transposed operator with the load vector as right-hand
    side and homogeneous Dirichlet data at the state's constrained dofs.
    """
    def __init__(self, problem):
        self.problem = problem

    def solve(self, state):
        FE = self.problem.state_solver.FE
        A = FE.assemble(transpose=True)
        L, residual = FE.solve(A=A, rhs=FE.rhs, homogeneous=True)
        logger.debug(f"Elasticity adjoint residual: {residual:.3e}")
        return PhysicalField(L, 2, state.revision, "adjoint")


class ProblemElasticity(ShapeSensitiveProblem):
    """
    Compliance of a linear elastic body under a boundary traction.

    The state is the P1 plane-strain displacement u solving linear elasticity
    with Lamé coefficients, clamped on dirichlet_tags and loaded by a constant
    traction on traction_tags. The objective is the compliance
    J = int_{Gamma_N} t . u ds = F . U.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    lam, mu : float, optional
        Lamé coefficients (default: 13.0, 5.5)
    dirichlet_tags : sequence of int, optional
        Clamped boundaries (default: (3,))
    traction_tags : sequence of int, optional
        Loaded boundaries (default: (1,))
    traction : sequence of float, optional
        Load per unit length (default: (0.0, -1.0))
    moving_tags : sequence of int, optional
        Boundaries the design may move (default: every tag that is neither
        clamped nor loaded)
    self_adjoint : bool, optional
        Use the state as adjoint (default: True). Set to False to solve the
        transposed operator explicitly
    derivative_form : str, optional
        "volume" or "boundary" (default: "volume")
    solver : Solver, optional
        Linear solver (default: SPLU)
    thickness : float, optional
        Out-of-plane thickness (default: 1.0)

    Notes
    -----
    **Shape derivative (volume form):**
    For a mesh velocity V with G = grad V on every element,
    dJ[V] = int_{Gamma_N} d|e| (t.u + t.lambda) - int_Omega [sigma(u):eps(lambda) tr G
    - sigma(lambda):(grad u G) - sigma(u):(grad lambda G)],
    which is exact for the discrete P1 problem.

    **Hadamard density:** g = -sigma(u):eps(lambda), averaged to the
    moving-boundary nodes.

    Examples
    --------
    >>> from pyFORM.CPU import StructuredTriangleMesh2D, ProblemElasticity
    >>> mesh = StructuredTriangleMesh2D(nx=20, ny=16, lx=5.0, ly=4.0)
    >>> problem = ProblemElasticity(mesh)
    >>> state = problem.solve_state()
    >>> J = problem.evaluate_objective(state)
    >>> dJ = problem.shape_derivative(state)
    """
    name = "Elasticity"

    def __init__(self,
                 mesh,
                 lam: float = 13.0,
                 mu: float = 5.5,
                 dirichlet_tags: Sequence[int] = (3,),
                 traction_tags: Sequence[int] = (1,),
                 traction: Sequence[float] = (0.0, -1.0),
                 moving_tags: Optional[Sequence[int]] = None,
                 self_adjoint: bool = True,
                 derivative_form: str = "volume",
                 solver=None,
                 thickness: float = 1.0):

        self.physics = LinearElasticity(lam=lam, mu=mu, thickness=thickness)
        self.dirichlet_tags = tuple(int(t) for t in dirichlet_tags)
        self.traction_tags = tuple(int(t) for t in traction_tags)
        self.traction = np.asarray(traction, dtype=np.float64).ravel()
        self.self_adjoint = self_adjoint

        if self.traction.shape[0] != 2:
            raise ConfigurationError("traction must have two components.")
        if mesh.boundary_nodes(self.dirichlet_tags).shape[0] == 0:
            raise ConfigurationError(f"No boundary edges carry the Dirichlet tags {self.dirichlet_tags}.")

        if moving_tags is None:
            moving_tags = [int(t) for t in mesh.tags if t not in self.dirichlet_tags and t not in self.traction_tags]

        super().__init__(mesh, moving_tags, derivative_form, solver)

    def _setup(self):
        self.state_solver = ElasticityState(self)
        self.adjoint_solver = None if self.self_adjoint else ElasticityAdjoint(self)
        self.extension = ElasticityHE(self, self.solver)

    def solve_state(self, mesh=None):
        """
        Assemble and solve the elasticity equation on the current geometry.

        Parameters
        ----------
        mesh : TriangleMesh, optional
            Rebind the borrowed mesh reference before solving

        Returns
        -------
        PhysicalField
            Interleaved displacement, shape (2 * n_nodes,)
        """
        self._rebind(mesh)
        self.mesh.check_domain()
        self.state = self.state_solver.solve()
        self.adjoint = None
        return self.state

    def solve_adjoint(self, state=None):
        """Return the adjoint field (the state itself when self-adjoint)."""
        state = self._check_state(state)
        if self.self_adjoint:
            self.adjoint = state
        else:
            self.adjoint = self.adjoint_solver.solve(state)
        return self.adjoint

    def evaluate_objective(self, state=None):
        """Compliance F . U."""
        state = self._check_state(state)
        return float(self.state_solver.FE.rhs @ state.values)

    def _edge_term(self, U, L):
        """Derivative of the traction load with respect to the edge end points."""
        out = np.zeros((self.mesh.n_nodes, 2), dtype=self.mesh.dtype)
        edges = self.mesh.tagged_edges(self.traction_tags)
        if edges.shape[0] == 0:
            return out
        a, b = edges[:, 0], edges[:, 1]
        t = self.mesh.nodes[b] - self.mesh.nodes[a]
        tau = t / np.linalg.norm(t, axis=1)[:, None]
        s = 0.5 * (U[a] + U[b]) @ self.traction + 0.5 * (L[a] + L[b]) @ self.traction
        np.add.at(out, b, s[:, None] * tau)
        np.add.at(out, a, -s[:, None] * tau)
        return out

    def shape_derivative(self, state=None, adjoint=None):
        """
        Shape derivative of the compliance on the current geometry.

        Raises
        ------
        StateError
            No state, or a state computed on an outdated geometry
        """
        state = self._check_state(state)
        if self.self_adjoint and adjoint is None:
            adjoint = state
        adjoint = self._check_adjoint(adjoint, state)

        x0s = self.mesh.element_coordinates()
        dofs = self.physics.element_dofs(self.mesh)
        Ue = state.values[dofs]
        Le = adjoint.values[dofs]

        S = self.physics.shape_tensor(x0s, Ue, Le)
        density = -self.physics.energy_density(self.physics.displacement_gradient(x0s, Ue),
                                               self.physics.displacement_gradient(x0s, Le))
        edge_term = self._edge_term(state.nodal(), adjoint.nodal())

        return self._build_derivative(-S, np.repeat(density[:, None], 3, axis=1), edge_term)

    def fix_control_points(self, shape):
        """Fix the first and last lattice columns (k = 0 and k = K)."""
        mask = np.zeros(shape, dtype=bool)
        mask[:, 0] = True
        mask[:, -1] = True
        return mask
