import numpy as np
import pytest

from pyFORM.CPU import FiniteElement, StructuredTriangleMesh2D, TriangleMesh
from pyFORM.Physics import LinearElasticity, Stokes, VectorLaplace, Laplace, ConstantFunction
from pyFORM._exceptions import AssemblyError, ConfigurationError


def permuted(mesh, rng):
    order = rng.permutation(mesh.n_elements)
    return TriangleMesh(mesh.nodes, mesh.elements[order], mesh.boundary_edges, mesh.boundary_tags)


@pytest.mark.parametrize("physics", [LinearElasticity(), Stokes(viscosity=0.5), VectorLaplace()])
def test_assembly_is_deterministic(cantilever_mesh, physics):
    FE = FiniteElement(cantilever_mesh, physics)
    A1 = FE.assemble().toarray()
    A2 = FE.assemble().toarray()

    assert np.array_equal(A1, A2)


@pytest.mark.parametrize("physics", [LinearElasticity(), Stokes()])
def test_assembly_independent_of_element_order(cantilever_mesh, physics, rng):
    A = FiniteElement(cantilever_mesh, physics).assemble().toarray()
    B = FiniteElement(permuted(cantilever_mesh, rng), physics).assemble().toarray()

    assert np.allclose(A, B, rtol=1e-12, atol=1e-12)


def test_elasticity_rigid_motions_in_kernel(cantilever_mesh):
    A = FiniteElement(cantilever_mesh, LinearElasticity()).assemble()
    x, y = cantilever_mesh.nodes[:, 0], cantilever_mesh.nodes[:, 1]

    tx = np.stack([np.ones_like(x), np.zeros_like(x)], axis=1).ravel()
    ty = np.stack([np.zeros_like(x), np.ones_like(x)], axis=1).ravel()
    rot = np.stack([-y, x], axis=1).ravel()

    for mode in (tx, ty, rot):
        assert np.allclose(A @ mode, 0.0, atol=1e-10)


def test_laplace_matrix_is_symmetric_with_constant_kernel(square_mesh):
    A = FiniteElement(square_mesh, Laplace()).assemble()

    assert np.allclose((A - A.T).toarray(), 0.0)
    assert np.allclose(A @ np.ones(square_mesh.n_nodes), 0.0)


def test_stokes_adjoint_operator_is_transpose(channel_mesh, rng):
    FE = FiniteElement(channel_mesh, Stokes())
    A = FE.assemble()
    At = FE.assemble(transpose=True)
    x = rng.rand(FE.n_dofs)
    y = rng.rand(FE.n_dofs)

    assert x @ (A @ y) == pytest.approx(y @ (At @ x), rel=1e-12)


def test_stokes_dof_layout(channel_mesh):
    physics = Stokes()
    n_edges = channel_mesh.edges()[0].shape[0]

    assert physics.n_p2(channel_mesh) == channel_mesh.n_nodes + n_edges
    assert physics.n_dofs(channel_mesh) == 2 * (channel_mesh.n_nodes + n_edges) + channel_mesh.n_nodes

    dofs = physics.element_dofs(channel_mesh)
    assert dofs.shape == (channel_mesh.n_elements, 15)
    assert dofs.max() < physics.n_dofs(channel_mesh)

    # the left boundary has ny + 1 vertices and ny midpoints
    assert physics.boundary_p2_nodes(channel_mesh, [3]).shape[0] == 9


def test_out_of_range_node_raises():
    nodes = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    mesh = TriangleMesh(nodes, [[0, 1, 2], [0, 2, 4]], boundary_edges=[[0, 1], [1, 2], [2, 3], [3, 0]])
    FE = FiniteElement(mesh, LinearElasticity())

    with pytest.raises(AssemblyError):
        FE.assemble()


def test_invalid_coefficients_raise(cantilever_mesh):
    physics = LinearElasticity()
    FE = FiniteElement(cantilever_mesh, physics)
    physics.mu = -1.0

    with pytest.raises(AssemblyError):
        FE.assemble()

    with pytest.raises(ConfigurationError):
        LinearElasticity(lam=1.0, mu=0.0)
    with pytest.raises(ConfigurationError):
        Stokes(viscosity=-1.0)


def test_dirichlet_last_condition_wins(channel_mesh):
    FE = FiniteElement(channel_mesh, Stokes())
    FE.add_dirichlet_boundary_condition(tags=[3], rhs=ConstantFunction([2.0, 1.0]))
    FE.add_dirichlet_boundary_condition(tags=[0], rhs=0.0)

    constraints, values = FE.dirichlet()
    # node 0 is the corner shared by the inlet and the bottom wall
    assert constraints[0] and constraints[1]
    assert values[0] == 0.0 and values[1] == 0.0

    top_left = channel_mesh.n_nodes - channel_mesh.nelx - 1
    assert values[2 * top_left] == 2.0
    assert values[2 * top_left + 1] == 1.0


def test_dirichlet_needs_nodes_or_tags(cantilever_mesh):
    FE = FiniteElement(cantilever_mesh, LinearElasticity())

    with pytest.raises(ConfigurationError):
        FE.add_dirichlet_boundary_condition()
    with pytest.raises(ConfigurationError):
        FE.add_dirichlet_boundary_condition(node_ids=[0], tags=[3])
    with pytest.raises(ConfigurationError):
        FE.add_dirichlet_boundary_condition(tags=[3], components=[2])


def test_traction_load_follows_geometry(cantilever_mesh):
    FE = FiniteElement(cantilever_mesh, LinearElasticity())
    FE.add_neumann_boundary_condition(tags=[1], traction=[0.0, -1.0])

    assert FE.rhs[1::2].sum() == pytest.approx(-1.0)
    assert FE.rhs[0::2].sum() == pytest.approx(0.0)

    cantilever_mesh.set_node_positions(2.0 * cantilever_mesh.nodes)
    assert FE.rhs[1::2].sum() == pytest.approx(-2.0)


def test_neumann_rejected_on_taylor_hood(channel_mesh):
    FE = FiniteElement(channel_mesh, Stokes())

    with pytest.raises(ConfigurationError):
        FE.add_neumann_boundary_condition(tags=[1], traction=[1.0, 0.0])


def test_cantilever_tip_deflects_down(cantilever_mesh):
    FE = FiniteElement(cantilever_mesh, LinearElasticity())
    FE.add_dirichlet_boundary_condition(tags=[3])
    FE.add_neumann_boundary_condition(tags=[1], traction=[0.0, -1.0])

    U, residual = FE.solve()

    assert residual < 1e-8
    clamped = cantilever_mesh.boundary_nodes([3])
    assert np.all(U.reshape(-1, 2)[clamped] == 0.0)
    tip = cantilever_mesh.boundary_nodes([1])
    assert np.all(U.reshape(-1, 2)[tip, 1] < 0.0)


def test_visualize_field(cantilever_mesh):
    FE = FiniteElement(cantilever_mesh, VectorLaplace())
    ax = FE.visualize_field(cantilever_mesh.nodes)
    assert ax is not None

    ax = cantilever_mesh.visualize()
    assert ax is not None

    with pytest.raises(ValueError):
        FE.visualize_field(np.zeros(7))
