import numpy as np
import pytest

from pyFORM.CPU import FFD, FFD_LS, DesignElement, BoundaryDisplacement, ProblemElasticity, StructuredTriangleMesh2D
from pyFORM._exceptions import ConfigurationError


def circle(points):
    return np.linalg.norm(points - np.array([1.0, 0.5]), axis=-1) - 0.6


@pytest.fixture(params=["FFD", "FFD_LS", "FFD_LS_alpha", "DesignElement", "BoundaryDisplacement"])
def shape(request, cantilever_mesh, elasticity):
    box = ((0.25, -0.25), (1.75, 1.25))
    if request.param == "FFD":
        return FFD(cantilever_mesh, box, (3, 3), elasticity)
    if request.param == "FFD_LS":
        return FFD_LS(cantilever_mesh, box, (3, 3), elasticity, level_set=circle)
    if request.param == "FFD_LS_alpha":
        return FFD_LS(cantilever_mesh, box, (3, 3), elasticity, level_set=circle, alpha=0.9)
    if request.param == "DesignElement":
        return DesignElement(cantilever_mesh, ((0.5, 0.0), (1.5, 1.0)), elasticity, order=3)
    return BoundaryDisplacement(cantilever_mesh, elasticity)


def test_pullback_is_transpose(shape, rng):
    p = rng.randn(shape.n_parameters)
    G = rng.randn(shape.mesh.n_nodes, 2)

    lhs = np.sum(shape.displacement(p) * G)
    rhs = p @ shape.pullback_gradient(G)

    assert lhs == pytest.approx(rhs, rel=1e-10, abs=1e-12)


def test_zero_parameters_give_identity(shape):
    reference = shape.mesh.get_node_positions()
    shape.deform(parameters=np.zeros(shape.n_parameters))

    assert np.array_equal(shape.mesh.nodes, reference)


def test_reset_restores_reference(shape, rng):
    shape.deform(parameters=1e-3 * rng.randn(shape.n_parameters))
    assert not np.allclose(shape.mesh.nodes, shape.reference)

    shape.reset()
    assert np.array_equal(shape.mesh.nodes, shape.reference)
    assert np.all(shape.parameters == 0.0)


def test_wrong_parameter_length(shape):
    with pytest.raises(ConfigurationError):
        shape.set_parameters(np.zeros(shape.n_parameters + 1))


def test_descent_direction_is_descent(shape, elasticity):
    state = elasticity.solve_state()
    sd = elasticity.shape_derivative(state)
    g = shape.pullback_gradient(sd)

    assert g @ shape.descent_direction(g) < 0
    if not isinstance(shape, BoundaryDisplacement):
        assert g @ shape.descent_direction(g, sd, 0.0) < 0


def test_ffd_counts_and_fixed_columns(cantilever_mesh, elasticity):
    shape = FFD(cantilever_mesh, ((0.25, -0.25), (1.75, 1.25)), (3, 2), elasticity)

    assert shape.lattice_shape == (3, 4)
    assert shape.n_parameters == 24
    assert shape.fixed[:, 0].all() and shape.fixed[:, -1].all()
    assert not shape.fixed[:, 1:-1].any()

    # fixed control points neither move the mesh nor receive gradient
    g = shape.pullback_gradient(np.ones((cantilever_mesh.n_nodes, 2)))
    assert np.all(g.reshape(3, 4, 2)[:, 0] == 0.0)
    assert np.all(g.reshape(3, 4, 2)[:, -1] == 0.0)


def test_ffd_nodes_outside_box_stay(cantilever_mesh, rng):
    shape = FFD(cantilever_mesh, ((0.5, 0.0), (1.5, 1.0)), (2, 2))
    shape.deform(parameters=0.05 * rng.randn(shape.n_parameters))

    outside = ~shape.active
    assert outside.any()
    assert np.array_equal(cantilever_mesh.nodes[outside], shape.reference[outside])


def test_ffd_rigid_translation():
    mesh = StructuredTriangleMesh2D(nx=4, ny=4)
    shape = FFD(mesh, ((0.0, 0.0), (1.0, 1.0)), (2, 3))
    p = np.tile([0.1, -0.2], shape.n_control_points)
    shape.deform(parameters=p)

    # Bernstein weights form a partition of unity
    assert np.allclose(mesh.nodes - shape.reference, [0.1, -0.2])
    assert shape.control_points().shape == (4, 3, 2)


def test_ffd_invalid_box(cantilever_mesh):
    with pytest.raises(ConfigurationError):
        FFD(cantilever_mesh, ((1.0, 0.0), (0.0, 1.0)))
    with pytest.raises(ConfigurationError):
        FFD(cantilever_mesh, ((0.0, 0.0), (1.0, 1.0)), (0, 2))


def test_level_set_mask(cantilever_mesh):
    shape = FFD_LS(cantilever_mesh, ((0.0, 0.0), (2.0, 1.0)), (4, 4), level_set=np.ones(25))
    assert np.all(shape.stage.weights() == 0.0)
    assert np.all(shape.displacement(np.ones(shape.n_parameters)) == 0.0)

    shape.set_level_set(-np.ones(25))
    assert np.allclose(shape.stage.weights(), 1.0)

    with pytest.raises(ConfigurationError):
        shape.set_level_set(np.ones(3))
    with pytest.raises(ConfigurationError):
        FFD_LS(cantilever_mesh, ((0.0, 0.0), (2.0, 1.0)), (4, 4), alpha=1.5)


def test_design_element_keeps_ends(cantilever_mesh, rng):
    shape = DesignElement(cantilever_mesh, ((0.5, 0.0), (1.5, 1.0)), order=4)
    p = rng.randn(shape.n_parameters)

    x, f_up, f_down = shape.profiles(p)
    assert f_up[0] == pytest.approx(0.0) and f_up[-1] == pytest.approx(0.0, abs=1e-12)
    assert f_down[0] == pytest.approx(0.0) and f_down[-1] == pytest.approx(0.0, abs=1e-12)

    d = shape.displacement(p)
    assert np.all(d[:, 0] == 0.0)


def test_boundary_displacement_moves_normal(cantilever_mesh, elasticity):
    shape = BoundaryDisplacement(cantilever_mesh, elasticity, extend=False)
    d = shape.displacement(np.ones(shape.n_parameters))

    moved = np.where(np.any(d != 0.0, axis=1))[0]
    assert np.array_equal(np.sort(moved), np.sort(shape.nodes))
    # top nodes move up, bottom nodes move down
    top = cantilever_mesh.nodes[shape.nodes, 1] > 0.5
    assert np.all(d[shape.nodes[top], 1] > 0.0)
    assert np.all(d[shape.nodes[~top], 1] < 0.0)


def test_boundary_displacement_needs_problem(cantilever_mesh):
    with pytest.raises(ConfigurationError):
        BoundaryDisplacement(cantilever_mesh, None)


def test_visualize_lattice(cantilever_mesh, elasticity):
    shape = FFD(cantilever_mesh, ((0.25, -0.25), (1.75, 1.25)), (3, 3), elasticity)
    assert shape.visualize_lattice() is not None
