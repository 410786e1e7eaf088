from ._base import ShapeSensitiveProblem
from ._fields import StokesField
from ._extension import StokesEnergyHE
from ...FiniteElement.CPU.FiniteElement import FiniteElement
from ...physics.Stokes import Stokes, DissipatedEnergy
from ...physics._physx import ConstantFunction
from ..._exceptions import ConfigurationError
from typing import Optional, Sequence
import numpy as np
import logging
logger = logging.getLogger(__name__)


class StokesEnergyBC(ConstantFunction):
    """
    Inlet velocity (ux, uy) as a function of position.

    Parameters
    ----------
    ux, uy : float
        Velocity components imposed on the inlet
    """
    def __init__(self, ux=4.0, uy=0.0):
        super().__init__([ux, uy])
        self.ux = ux
        self.uy = uy


class StokesEnergyState:
    """
    Forward Stokes solve.

    Dirichlet data is added in increasing precedence: symmetry (v = 0), inlet
    (StokesEnergyBC), no-slip (u = 0). Remaining boundaries are do-nothing
    outflows.
    """
    def __init__(self, problem):
        self.problem = problem
        mesh = problem.mesh
        self.FE = FiniteElement(mesh, problem.physics, problem.solver)

        if len(problem.symmetry_tags) > 0:
            self.FE.add_dirichlet_boundary_condition(tags=problem.symmetry_tags, components=[1], rhs=0.0)
        if len(problem.inlet_tags) > 0:
            self.FE.add_dirichlet_boundary_condition(tags=problem.inlet_tags, rhs=problem.inlet)
        if len(problem.noslip_tags) > 0:
            self.FE.add_dirichlet_boundary_condition(tags=problem.noslip_tags, rhs=0.0)

    def solve(self):
        U, residual = self.FE.solve()
        logger.debug(f"Stokes state residual: {residual:.3e}")
        return StokesField(U, self.problem.physics.n_p2(self.problem.mesh), self.problem.mesh.revision, "stokes")


class StokesEnergyAdjoint:
    """
    Adjoint of the dissipated energy.

    Solves the element-transposed saddle-point operator with right-hand side
    M U and homogeneous Dirichlet data at the state's constrained dofs (zero on
    inlet and no-slip walls, v = 0 on symmetry lines).
    """
    def __init__(self, problem):
        self.problem = problem

    def solve(self, state):
        FE = self.problem.state_solver.FE
        A = FE.assemble(transpose=True)
        L, residual = FE.solve(A=A, rhs=self.problem.energy_matrix() @ state.values, homogeneous=True)
        logger.debug(f"Stokes adjoint residual: {residual:.3e}")
        return StokesField(L, state.n_p2, state.revision, "stokes_adjoint")


class ProblemStokesEnergy(ShapeSensitiveProblem):
    """
    Dissipated energy of a Stokes flow.

    The state is the Taylor-Hood P2/P1 velocity/pressure pair solving Stokes
    flow with an inlet velocity (ux, uy), v = 0 on symmetry lines, u = 0 on
    no-slip walls and do-nothing outflow elsewhere. The objective is
    J = 1/2 int |grad u|^2 + |grad v|^2 dx = 1/2 U^T M U.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    ux, uy : float, optional
        Inlet velocity (default: 4.0, 0.0)
    viscosity : float, optional
        Kinematic viscosity (default: 1.0)
    inlet_tags, symmetry_tags, noslip_tags : sequence of int, optional
        Boundary tags of each condition (default: (3,), (), (0, 2))
    moving_tags : sequence of int, optional
        Boundaries the design may move (default: noslip_tags)
    derivative_form : str, optional
        "volume" or "boundary" (default: "volume")
    solver : Solver, optional
        Linear solver able to handle the indefinite saddle point (default: SPLU)

    Notes
    -----
    **Shape derivative (volume form):**
    With a((u,p),(w,q)) = nu int grad u:grad w - int p div w - int q div u,
    dJ[V] = int [1/2 |grad u|^2 tr G - grad u:(grad u G)] - da[V]((u,p),(lu,lp)).

    **Hadamard density:** g = nu grad u : grad lu - 1/2 |grad u|^2.

    The pressure is only determined up to a constant when every boundary is
    a Dirichlet boundary, keep at least one outflow.

    Examples
    --------
    >>> from pyFORM.CPU import StructuredTriangleMesh2D, ProblemStokesEnergy
    >>> mesh = StructuredTriangleMesh2D(nx=20, ny=8, lx=5.0, ly=2.0)
    >>> problem = ProblemStokesEnergy(mesh, ux=1.0)
    >>> state = problem.solve_state()
    >>> problem.evaluate_objective(state)
    """
    name = "StokesEnergy"

    def __init__(self,
                 mesh,
                 ux: float = 4.0,
                 uy: float = 0.0,
                 viscosity: float = 1.0,
                 inlet_tags: Sequence[int] = (3,),
                 symmetry_tags: Sequence[int] = (),
                 noslip_tags: Sequence[int] = (0, 2),
                 moving_tags: Optional[Sequence[int]] = None,
                 derivative_form: str = "volume",
                 solver=None):

        self.physics = Stokes(viscosity=viscosity)
        self.inlet = StokesEnergyBC(ux, uy)
        self.inlet_tags = tuple(int(t) for t in inlet_tags)
        self.symmetry_tags = tuple(int(t) for t in symmetry_tags)
        self.noslip_tags = tuple(int(t) for t in noslip_tags)

        known = set(mesh.tags.tolist())
        for name, tags in (("inlet", self.inlet_tags), ("symmetry", self.symmetry_tags), ("no-slip", self.noslip_tags)):
            if not set(tags) <= known:
                raise ConfigurationError(f"The {name} tags {sorted(set(tags) - known)} do not exist on the mesh.")

        if moving_tags is None:
            moving_tags = self.noslip_tags

        self._energy = None
        super().__init__(mesh, moving_tags, derivative_form, solver)

    def _setup(self):
        self.state_solver = StokesEnergyState(self)
        self.adjoint_solver = StokesEnergyAdjoint(self)
        self.energy_FE = FiniteElement(self.mesh, DissipatedEnergy(self.physics))
        self.extension = StokesEnergyHE(self, self.solver)
        self._energy = None

    def outflow_tags(self):
        """Do-nothing boundaries: every tag without inlet, symmetry or no-slip data."""
        dirichlet = set(self.inlet_tags + self.symmetry_tags + self.noslip_tags)
        return tuple(int(t) for t in self.mesh.tags if int(t) not in dirichlet)

    def energy_matrix(self):
        """Global energy matrix M on the current geometry (cached per mesh revision)."""
        if self._energy is None or self._energy[0] != self.mesh.revision:
            self._energy = (self.mesh.revision, self.energy_FE.assemble())
        return self._energy[1]

    def solve_state(self, mesh=None):
        """
        Assemble and solve the Stokes equations on the current geometry.

        Returns
        -------
        StokesField
            Velocity (P2) and pressure (P1)
        """
        self._rebind(mesh)
        self.mesh.check_domain()
        self.state = self.state_solver.solve()
        self.adjoint = None
        return self.state

    def solve_adjoint(self, state=None):
        state = self._check_state(state)
        self.adjoint = self.adjoint_solver.solve(state)
        return self.adjoint

    def evaluate_objective(self, state=None):
        """Dissipated energy 1/2 U^T M U."""
        state = self._check_state(state)
        U = state.values
        return float(0.5 * U @ (self.energy_matrix() @ U))

    def shape_derivative(self, state=None, adjoint=None):
        """
        Shape derivative of the dissipated energy on the current geometry.

        Raises
        ------
        StateError
            No state, or a state computed on an outdated geometry
        """
        state = self._check_state(state)
        adjoint = self._check_adjoint(adjoint, state)

        x0s = self.mesh.element_coordinates()
        dofs = self.physics.element_dofs(self.mesh)
        Ue = state.values[dofs]
        Le = adjoint.values[dofs]

        S = self.physics.shape_tensor(x0s, Ue, Le)
        density = self.physics.vertex_density(x0s, Ue, Le)
        return self._build_derivative(S, density)

    def fix_control_points(self, shape):
        """Fix the whole lattice border."""
        mask = np.zeros(shape, dtype=bool)
        mask[0, :] = True
        mask[-1, :] = True
        mask[:, 0] = True
        mask[:, -1] = True
        return mask
