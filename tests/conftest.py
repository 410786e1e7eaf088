import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from pyFORM.CPU import StructuredTriangleMesh2D, ProblemElasticity, ProblemStokesEnergy


@pytest.fixture
def rng():
    return np.random.RandomState(300696)


@pytest.fixture
def cantilever_mesh():
    return StructuredTriangleMesh2D(nx=8, ny=4, lx=2.0, ly=1.0)


@pytest.fixture
def channel_mesh():
    return StructuredTriangleMesh2D(nx=8, ny=4, lx=2.0, ly=1.0)


@pytest.fixture
def square_mesh():
    return StructuredTriangleMesh2D(nx=8, ny=8, lx=1.0, ly=1.0)


@pytest.fixture
def elasticity(cantilever_mesh):
    return ProblemElasticity(cantilever_mesh)


@pytest.fixture
def stokes(channel_mesh):
    return ProblemStokesEnergy(channel_mesh, ux=1.0)


def _central_difference(shape_problem, index, h):
    """(J(p + h e_i) - J(p - h e_i)) / 2h, leaves the problem at p."""
    p0 = shape_problem.get_parameters()
    e = np.zeros_like(p0)
    e[index] = h
    shape_problem.set_parameters(p0 + e)
    J_plus = shape_problem.current_objective()
    shape_problem.set_parameters(p0 - e)
    J_minus = shape_problem.current_objective()
    shape_problem.set_parameters(p0)
    return (J_plus - J_minus) / (2 * h)


@pytest.fixture
def central_difference():
    return _central_difference
