from ...FiniteElement.CPU.FiniteElement import FiniteElement
from ...physics.Laplace import VectorLaplace
import numpy as np
import logging
logger = logging.getLogger(__name__)


class HarmonicExtension:
    """
    P1 vector Laplace problem spreading a nodal load into the domain.

    Solves -Laplace(v) = f with v = 0 on the boundaries carrying fixed_tags.
    The load is a nodal vector (already integrated), so the harmonic
    extension of a shape sensitivity G is the solve with f = -G.

    Parameters
    ----------
    mesh : TriangleMesh
        Mesh (borrowed reference)
    fixed_tags : sequence of int
        Boundaries that may not move
    solver : Solver, optional
        Linear solver (default: SPLU)
    """
    def __init__(self, mesh, fixed_tags, solver=None):
        self.mesh = mesh
        self.fixed_tags = tuple(sorted(set(int(t) for t in fixed_tags)))
        self.FE = FiniteElement(mesh, VectorLaplace(), solver)
        if len(self.fixed_tags) > 0 and mesh.boundary_nodes(self.fixed_tags).shape[0] > 0:
            self.FE.add_dirichlet_boundary_condition(tags=self.fixed_tags)
        else:
            # pin one node to remove the rigid translations
            self.FE.add_dirichlet_boundary_condition(node_ids=np.array([0]))
            logger.warning("No fixed boundary for the harmonic extension. Pinning node 0.")

    def __call__(self, load):
        """
        Solve for the extension.

        Parameters
        ----------
        load : ndarray
            Nodal load, shape (n_nodes, 2)

        Returns
        -------
        ndarray
            Extended field, shape (n_nodes, 2)
        """
        U, _ = self.FE.solve(rhs=np.asarray(load).ravel(), homogeneous=True)
        return U.reshape(-1, 2)


class ElasticityHE(HarmonicExtension):
    """
    Harmonic extension on the elasticity domain.

    The supported (Dirichlet) and loaded (traction) boundaries stay fixed
    unless they are listed as moving.
    """
    def __init__(self, problem, solver=None):
        fixed = [t for t in problem.dirichlet_tags + problem.traction_tags if t not in problem.moving_tags]
        super().__init__(problem.mesh, fixed, solver)


class StokesEnergyHE(HarmonicExtension):
    """
    Harmonic extension on the flow domain.

    Inlet, outflow and symmetry boundaries stay fixed unless they are listed
    as moving.
    """
    def __init__(self, problem, solver=None):
        tags = problem.inlet_tags + problem.outflow_tags() + problem.symmetry_tags
        fixed = [t for t in tags if t not in problem.moving_tags]
        super().__init__(problem.mesh, fixed, solver)
