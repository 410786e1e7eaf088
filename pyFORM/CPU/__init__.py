"""CPU backend public API.

Importing from this module gives access to the CPU implementations of the
pyFORM components (meshes, mesh I/O, finite-element assembly, solvers,
problems, shape parametrizations and the optimizer):

>>> from pyFORM.CPU import StructuredTriangleMesh2D, ProblemElasticity, FFD, ShapeProblem, ShapeGradientDescent
"""

from ..geom.CPU._mesh import TriangleMesh, StructuredTriangleMesh2D
from ..geom.CPU._io import read_mesh, write_mesh
from ..FiniteElement.CPU.FiniteElement import FiniteElement
from ..solvers.CPU._solvers import SPLU, SPSOLVE, CG, GMRES
from ..Problem.CPU.Elasticity import ProblemElasticity
from ..Problem.CPU.StokesEnergy import ProblemStokesEnergy, StokesEnergyBC
from ..Problem.CPU.ShapeProblem import ShapeProblem
from ..Problem.CPU._fields import PhysicalField, StokesField, ShapeDerivative
from ..Shape.CPU.FFD import FFD
from ..Shape.CPU.FFD_LS import FFD_LS, LevelSetStage
from ..Shape.CPU.DesignElement import DesignElement
from ..Shape.CPU.BoundaryDisplacement import BoundaryDisplacement
from ..Optimizers.CPU.ShapeGradientDescent import ShapeGradientDescent
