import logging
import os
import numpy as np
import meshio
from ._mesh import TriangleMesh
from ...core.CPU._geom import triangle_areas
from ..._exceptions import ConfigurationError
logger = logging.getLogger(__name__)

_TRIANGLE_TYPES = ("triangle", "triangle6", "triangle7")
_LINE_TYPES = ("line", "line3")

def read_mesh(path, tag_key="gmsh:physical"):
    """
    Read a 2D triangle mesh with tagged boundary lines.

    Any format readable by meshio is accepted; gmsh files carry the boundary
    tags as physical groups of the line cells. Higher-order triangles keep
    their three vertices. Unused nodes are dropped and clockwise triangles are
    reoriented.

    Parameters
    ----------
    path : str
        Mesh file
    tag_key : str, optional
        Name of the cell data holding the boundary tags (default: "gmsh:physical")

    Returns
    -------
    TriangleMesh
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f"Mesh file {path} does not exist.")

    logger.info(f"Reading mesh {path} ...")
    m = meshio.read(path)

    triangles = []
    lines = []
    line_tags = []
    for b, block in enumerate(m.cells):
        if block.type in _TRIANGLE_TYPES:
            triangles.append(block.data[:, :3])
        elif block.type in _LINE_TYPES:
            lines.append(block.data[:, :2])
            if tag_key in m.cell_data:
                line_tags.append(np.asarray(m.cell_data[tag_key][b]).ravel())
            else:
                line_tags.append(np.zeros(block.data.shape[0], dtype=np.int32))

    if not triangles:
        raise ConfigurationError(f"Mesh file {path} contains no triangles.")

    elements = np.concatenate(triangles).astype(np.int64)
    nodes = np.asarray(m.points)[:, :2]

    # Clean up mesh to remove redundant nodes
    useful_idx = np.unique(elements)
    mapping = np.full(nodes.shape[0], -1, dtype=np.int64)
    mapping[useful_idx] = np.arange(useful_idx.shape[0])
    if useful_idx.shape[0] != nodes.shape[0]:
        logger.info("Mesh has redundant nodes. Cleaning up ...")
    nodes = nodes[useful_idx]
    elements = mapping[elements]

    A = triangle_areas(nodes[elements])
    flipped = A < 0
    if np.any(flipped):
        logger.info(f"Reorienting {int(flipped.sum())} clockwise triangles.")
        elements[flipped] = elements[flipped][:, [0, 2, 1]]

    if lines:
        edges = mapping[np.concatenate(lines)]
        tags = np.concatenate(line_tags).astype(np.int32)
        keep = np.all(edges >= 0, axis=1)
        edges, tags = edges[keep], tags[keep]
        edges = _orient_edges(elements, edges)
    else:
        edges, tags = None, None

    logger.info("Mesh loaded!")
    return TriangleMesh(nodes, elements, edges, tags)

def _orient_edges(elements, edges):
    """Flip edges so that each one runs counter-clockwise with respect to its element."""
    local = elements[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2)
    oriented = {(int(a), int(b)) for a, b in local}
    out = edges.copy()
    for i, (a, b) in enumerate(edges):
        if (int(a), int(b)) not in oriented:
            out[i] = (b, a)
    return out

def write_mesh(path, mesh, point_data=None):
    """
    Write the current mesh geometry (and optional nodal data) with meshio.

    Parameters
    ----------
    path : str
        Output file, the format follows the extension (e.g. .vtu)
    mesh : TriangleMesh
        Mesh to write
    point_data : dict, optional
        Nodal arrays keyed by name
    """
    points = np.zeros((mesh.n_nodes, 3), dtype=mesh.nodes.dtype)
    points[:, :2] = mesh.nodes
    out = meshio.Mesh(points, [("triangle", mesh.elements)], point_data=point_data or {})
    out.write(path)
