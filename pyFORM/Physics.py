"""Physics models exported by pyFORM.

Each local-operator model implements :class:`pyFORM.physics._physx.Physx` and
provides batched element matrices and dof maps used by the assembly.
Position functions implement :class:`pyFORM.physics._physx.PositionFunction`.

Available models
- LinearElasticity: P1 small-strain linear elasticity (Lamé coefficients)
- Stokes: Taylor-Hood P2/P1 Stokes flow
- DissipatedEnergy: energy Hessian on the Taylor-Hood velocity space
- Laplace, VectorLaplace: P1 Laplace operators for harmonic extension
"""

from .physics._physx import Physx, PositionFunction, ConstantFunction
from .physics.LinearElasticity import LinearElasticity
from .physics.Stokes import Stokes, DissipatedEnergy
from .physics.Laplace import Laplace, VectorLaplace
