import meshio
import numpy as np
import pytest

from pyFORM.CPU import StructuredTriangleMesh2D, TriangleMesh, read_mesh, write_mesh
from pyFORM._exceptions import AssemblyError, ConfigurationError, GeometryError


def test_structured_mesh_counts():
    mesh = StructuredTriangleMesh2D(nx=4, ny=2, lx=2.0, ly=1.0)

    assert mesh.n_nodes == 15
    assert mesh.n_elements == 16
    assert mesh.boundary_edges.shape == (12, 2)
    assert mesh.tags.tolist() == [0, 1, 2, 3]
    assert mesh.volume() == pytest.approx(2.0)
    assert np.all(mesh.element_areas() > 0)


def test_boundary_normals_point_outward():
    mesh = StructuredTriangleMesh2D(nx=4, ny=2, lx=2.0, ly=1.0)

    normals, measure = mesh.boundary_normals([0])
    assert np.allclose(normals, [0.0, -1.0])
    assert measure.sum() == pytest.approx(2.0)

    normals, measure = mesh.boundary_normals([1])
    assert np.allclose(normals, [1.0, 0.0])
    assert measure.sum() == pytest.approx(1.0)


def test_revision_tracks_node_moves():
    mesh = StructuredTriangleMesh2D(nx=2, ny=2)
    assert mesh.revision == 0

    mesh.set_node_position(4, [0.45, 0.55])
    assert mesh.revision == 1
    assert np.allclose(mesh.nodes[4], [0.45, 0.55])

    mesh.set_node_positions(mesh.get_node_positions())
    assert mesh.revision == 2


def test_check_domain_inverted_element():
    mesh = StructuredTriangleMesh2D(nx=2, ny=2)
    mesh.check_domain()

    # push the center node through the right boundary
    mesh.set_node_position(4, [1.5, 0.5])
    with pytest.raises(GeometryError):
        mesh.check_domain()


def test_check_connectivity_out_of_range():
    nodes = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    elements = np.array([[0, 1, 2], [0, 2, 7]])
    mesh = TriangleMesh(nodes, elements, boundary_edges=[[0, 1], [1, 2], [2, 3], [3, 0]])

    with pytest.raises(AssemblyError):
        mesh.check_connectivity()


def test_node_element_map():
    mesh = StructuredTriangleMesh2D(nx=2, ny=2)
    ptr, node_elements, node_locals = mesh.node_element_map()

    assert ptr[-1] == 3 * mesh.n_elements
    for i in range(mesh.n_nodes):
        for e, a in zip(node_elements[ptr[i]:ptr[i + 1]], node_locals[ptr[i]:ptr[i + 1]]):
            assert mesh.elements[e, a] == i


def test_gmsh_round_trip(tmp_path):
    mesh = StructuredTriangleMesh2D(nx=4, ny=3, lx=2.0, ly=1.5)
    points = np.zeros((mesh.n_nodes, 3))
    points[:, :2] = mesh.nodes
    n_tri = mesh.n_elements
    n_line = mesh.boundary_edges.shape[0]
    # clockwise triangles are reoriented on read
    triangles = mesh.elements[:, [0, 2, 1]]
    out = meshio.Mesh(
        points,
        [("triangle", triangles), ("line", mesh.boundary_edges[:, ::-1])],
        cell_data={
            "gmsh:physical": [np.zeros(n_tri, dtype=int), mesh.boundary_tags + 1],
            "gmsh:geometrical": [np.zeros(n_tri, dtype=int), mesh.boundary_tags + 1],
        },
    )
    path = str(tmp_path / "rectangle.msh")
    meshio.write(path, out, file_format="gmsh22", binary=False)

    loaded = read_mesh(path)

    assert loaded.n_nodes == mesh.n_nodes
    assert loaded.n_elements == mesh.n_elements
    assert np.all(loaded.element_areas() > 0)
    assert loaded.volume() == pytest.approx(3.0)
    assert loaded.tags.tolist() == [1, 2, 3, 4]
    normals, _ = loaded.boundary_normals([1])
    assert np.allclose(normals, [0.0, -1.0])


def test_read_mesh_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        read_mesh(str(tmp_path / "missing.msh"))


def test_write_mesh_vtu(tmp_path):
    mesh = StructuredTriangleMesh2D(nx=3, ny=2)
    path = str(tmp_path / "mesh.vtu")

    write_mesh(path, mesh, point_data={"x": mesh.nodes[:, 0]})
    back = meshio.read(path)

    assert back.points.shape == (mesh.n_nodes, 3)
    assert np.allclose(back.points[:, :2], mesh.nodes)
    assert np.allclose(back.point_data["x"], mesh.nodes[:, 0])
