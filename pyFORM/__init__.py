"""pyFORM public package.

pyFORM optimizes the shape of 2D domains governed by linear elasticity or
Stokes flow. A run couples a Problem (state, adjoint, objective and shape
derivative on a triangle mesh) with a ShapeOptimization parametrization
(FFD, FFD_LS, DesignElement or BoundaryDisplacement) and a gradient-descent
driver.

Examples
--------
>>> from pyFORM.CPU import StructuredTriangleMesh2D, ProblemElasticity, FFD, ShapeProblem, ShapeGradientDescent
>>> from pyFORM import Physics
"""

__version__ = "0.1.0"
