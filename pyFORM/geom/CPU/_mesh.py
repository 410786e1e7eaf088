import numpy as np
import logging
from typing import Optional, Sequence
from ...core.CPU._geom import (generate_structured_triangle_mesh, edge_table, find_boundary_edges,
                               triangle_areas, nodal_normals)
from ..._exceptions import AssemblyError, GeometryError
from ..commons._mesh import Mesh
logger = logging.getLogger(__name__)

class TriangleMesh(Mesh):
    """
    Unstructured 2D mesh of linear triangles with tagged boundary edges.

    The mesh is the single owner of the node positions used by every problem and
    shape parametrization. Those components keep a reference to the same object
    and never a copy, so there is only one view of the geometry. Node positions
    can be moved between optimization iterations; connectivity, boundary edges
    and tags are fixed.

    Parameters
    ----------
    nodes : ndarray
        Node coordinates, shape (n_nodes, 2)
    elements : ndarray
        Counter-clockwise triangle connectivity, shape (n_elements, 3)
    boundary_edges : ndarray, optional
        Boundary edges oriented with the domain on their left, shape (n_edges, 2).
        If None, edges are extracted from the connectivity
    boundary_tags : ndarray, optional
        Integer tag of each boundary edge, shape (n_edges,). Defaults to 0
    dtype : np.dtype, optional
        Data type for coordinates (default: np.float64)

    Attributes
    ----------
    nodes : ndarray
        Current node coordinates
    elements : ndarray
        Element connectivity (int32)
    boundary_edges, boundary_tags : ndarray
        Tagged boundary
    revision : int
        Incremented every time node positions change. Fields computed on the
        mesh record the revision so stale data can be detected

    Notes
    -----
    Connectivity is not validated at construction; assembly checks it and
    raises AssemblyError for out-of-range node indices.

    Examples
    --------
    >>> from pyFORM.CPU import TriangleMesh
    >>> nodes = np.array([[0., 0.], [1., 0.], [1., 1.], [0., 1.]])
    >>> elements = np.array([[0, 1, 2], [0, 2, 3]])
    >>> mesh = TriangleMesh(nodes, elements)
    >>> mesh.volume()
    1.0
    """
    def __init__(self,
                 nodes: np.ndarray,
                 elements: np.ndarray,
                 boundary_edges: Optional[np.ndarray] = None,
                 boundary_tags: Optional[np.ndarray] = None,
                 dtype=np.float64):
        super().__init__()

        self.nodes = np.array(nodes, dtype=dtype)
        self.elements = np.array(elements, dtype=np.int32)
        self.dtype = dtype

        if self.nodes.ndim != 2 or self.nodes.shape[1] != 2:
            raise ValueError("nodes must have shape (n_nodes, 2).")
        if self.elements.ndim != 2 or self.elements.shape[1] != 3:
            raise ValueError("elements must have shape (n_elements, 3).")

        if boundary_edges is None:
            boundary_edges = find_boundary_edges(self.elements)
        self.boundary_edges = np.array(boundary_edges, dtype=np.int32).reshape(-1, 2)

        if boundary_tags is None:
            boundary_tags = np.zeros(self.boundary_edges.shape[0], dtype=np.int32)
        self.boundary_tags = np.array(boundary_tags, dtype=np.int32)

        if self.boundary_tags.shape[0] != self.boundary_edges.shape[0]:
            raise ValueError("boundary_tags must have one entry per boundary edge.")

        self.revision = 0
        self._edges = None
        self._node_map = None

    @property
    def n_nodes(self):
        return self.nodes.shape[0]

    @property
    def n_elements(self):
        return self.elements.shape[0]

    @property
    def dim(self):
        return 2

    @property
    def tags(self):
        """Sorted unique boundary tags."""
        return np.unique(self.boundary_tags)

    def set_node_position(self, index: int, position: Sequence[float]):
        """Move a single node and bump the geometry revision."""
        self.nodes[index] = position
        self.revision += 1

    def set_node_positions(self, positions: np.ndarray):
        """Overwrite all node positions at once and bump the geometry revision."""
        positions = np.asarray(positions, dtype=self.dtype)
        if positions.shape != self.nodes.shape:
            raise ValueError(f"positions must have shape {self.nodes.shape}, got {positions.shape}.")
        self.nodes[:] = positions
        self.revision += 1

    def get_node_positions(self):
        return self.nodes.copy()

    def check_connectivity(self):
        """Raise AssemblyError if the connectivity references a node that does not exist."""
        if self.elements.size == 0:
            raise AssemblyError("Mesh has no elements.")
        lo = self.elements.min()
        hi = self.elements.max()
        if lo < 0 or hi >= self.n_nodes:
            bad = np.where(np.any((self.elements < 0) | (self.elements >= self.n_nodes), axis=1))[0]
            raise AssemblyError(f"Element connectivity references nodes outside [0, {self.n_nodes}) in elements: {bad}")

    def element_coordinates(self):
        """Node coordinates of every element, shape (n_elements, 3, 2)."""
        return self.nodes[self.elements]

    def element_areas(self):
        """Signed element areas, shape (n_elements,)."""
        return triangle_areas(self.element_coordinates())

    def volume(self):
        """Total area of the domain."""
        return float(self.element_areas().sum())

    def check_domain(self):
        """
        Raise GeometryError if any element is degenerate or inverted.

        Called after every deformation and before assembly.
        """
        A = self.element_areas()
        if np.any(~np.isfinite(A)) or np.any(A <= 0.0):
            bad = np.where(~(A > 0.0))[0]
            raise GeometryError(f"The deformed mesh has {bad.shape[0]} non-positive element areas (elements: {bad[:10]}).")

    def edges(self):
        """
        Unique edge table of the triangulation (cached, topology is fixed).

        Returns
        -------
        edges : ndarray
            Sorted node pairs, shape (n_edges, 2)
        element_edges : ndarray
            Edge id of local edges (0-1), (1-2), (2-0) of every element, shape (n_elements, 3)
        """
        if self._edges is None:
            self._edges = edge_table(self.elements)
        return self._edges

    def node_element_map(self):
        """
        Node-to-element adjacency in CSR form (cached, topology is fixed).

        Returns
        -------
        ptr : ndarray
            Offsets, shape (n_nodes + 1,)
        node_elements : ndarray
            Adjacent element of every entry
        node_locals : ndarray
            Local index (0, 1, 2) of the node inside that element
        """
        if self._node_map is None:
            flat = self.elements.ravel()
            sorter = np.argsort(flat, kind='stable').astype(np.int32)
            counts = np.bincount(flat, minlength=self.n_nodes)
            ptr = np.concatenate(([0], np.cumsum(counts))).astype(np.int32)
            self._node_map = (ptr, (sorter // 3).astype(np.int32), (sorter % 3).astype(np.int32))
        return self._node_map

    def tagged_edges(self, tags: Optional[Sequence[int]] = None):
        """Boundary edges carrying one of the given tags (all boundary edges if tags is None)."""
        if tags is None:
            return self.boundary_edges
        return self.boundary_edges[np.isin(self.boundary_tags, list(tags))]

    def boundary_nodes(self, tags: Optional[Sequence[int]] = None):
        """Sorted unique nodes on the boundary edges carrying the given tags."""
        return np.unique(self.tagged_edges(tags)).astype(np.int32)

    def boundary_normals(self, tags: Optional[Sequence[int]] = None, node_ids: Optional[np.ndarray] = None):
        """
        Averaged outward normals and lumped boundary measure at boundary nodes.

        Parameters
        ----------
        tags : sequence of int, optional
            Only edges with these tags contribute
        node_ids : ndarray, optional
            Nodes to evaluate (default: all nodes of the tagged edges)
        """
        edges = self.tagged_edges(tags)
        if node_ids is None:
            node_ids = np.unique(edges)
        return nodal_normals(self.nodes, edges, node_ids)

    def copy(self):
        out = TriangleMesh(self.nodes, self.elements, self.boundary_edges, self.boundary_tags, dtype=self.dtype)
        out._edges = self._edges
        out._node_map = self._node_map
        return out

    def visualize(self, ax=None, **kwargs):
        """Plot the mesh (see pyFORM.visualizers.plot_mesh_2D)."""
        from ...visualizers._2d import plot_mesh_2D
        return plot_mesh_2D(self.nodes, self.elements, ax=ax, boundary_edges=self.boundary_edges,
                            boundary_tags=self.boundary_tags, **kwargs)


class StructuredTriangleMesh2D(TriangleMesh):
    """
    Structured triangulation of a rectangle.

    Each of the nx x ny cells is split into two counter-clockwise triangles.
    Boundary edges are tagged 0 (bottom), 1 (right), 2 (top) and 3 (left).

    Parameters
    ----------
    nx, ny : int
        Number of cells in x and y
    lx, ly : float
        Rectangle side lengths
    origin : tuple of float, optional
        Lower-left corner (default: (0, 0))
    dtype : np.dtype, optional
        Data type for coordinates (default: np.float64)

    Examples
    --------
    >>> mesh = StructuredTriangleMesh2D(nx=20, ny=16, lx=5.0, ly=4.0)
    >>> mesh.n_elements
    640
    """
    def __init__(self, nx: int, ny: int, lx: float = 1.0, ly: float = 1.0, origin=(0.0, 0.0), dtype=np.float64):
        if nx < 1 or ny < 1:
            raise ValueError("nx and ny must be positive.")
        if lx <= 0 or ly <= 0:
            raise ValueError("lx and ly must be positive.")

        nodes, elements, edges, tags = generate_structured_triangle_mesh(nx, ny, lx, ly, origin, dtype=dtype)
        super().__init__(nodes, elements, edges, tags, dtype=dtype)

        self.nelx = nx
        self.nely = ny
        self.lx = lx
        self.ly = ly
        self.origin = tuple(origin)
        logger.info(f"Structured mesh with {self.n_nodes} nodes and {self.n_elements} triangles.")
