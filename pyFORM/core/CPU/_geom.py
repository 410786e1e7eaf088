import numpy as np
from numba import int32, njit, prange

@njit(int32[:,:](int32, int32), cache=True, parallel=True)
def generate_triangles_2d(nx, ny):
    """
    Counter-clockwise triangle connectivity of a structured (nx+1) x (ny+1) node grid.

    Each grid cell is split along its SW-NE diagonal. Nodes are numbered row by
    row: node (i, j) has index j * (nx + 1) + i.
    """
    num_cells = nx * ny
    elements = np.zeros((2 * num_cells, 3), dtype=np.int32)

    for counter in prange(num_cells):
        i = counter % nx
        j = counter // nx

        sw = j * (nx + 1) + i
        se = sw + 1
        nw = sw + nx + 1
        ne = nw + 1

        elements[2 * counter, 0] = sw
        elements[2 * counter, 1] = se
        elements[2 * counter, 2] = ne
        elements[2 * counter + 1, 0] = sw
        elements[2 * counter + 1, 1] = ne
        elements[2 * counter + 1, 2] = nw

    return elements

def generate_structured_triangle_mesh(nx, ny, lx=1.0, ly=1.0, origin=(0.0, 0.0), dtype=np.float64):
    """
    Structured triangulation of the rectangle [x0, x0+lx] x [y0, y0+ly].

    Parameters
    ----------
    nx, ny : int
        Number of cells in x and y
    lx, ly : float
        Rectangle side lengths
    origin : tuple of float
        Lower-left corner

    Returns
    -------
    nodes : ndarray
        Node coordinates, shape ((nx+1)*(ny+1), 2)
    elements : ndarray
        Triangle connectivity, shape (2*nx*ny, 3)
    boundary_edges : ndarray
        Boundary edges oriented with the domain on the left, shape (2*(nx+ny), 2)
    boundary_tags : ndarray
        Edge tags: 0 bottom, 1 right, 2 top, 3 left
    """
    x = np.linspace(origin[0], origin[0] + lx, nx + 1, dtype=dtype)
    y = np.linspace(origin[1], origin[1] + ly, ny + 1, dtype=dtype)
    X, Y = np.meshgrid(x, y)
    nodes = np.stack([X.ravel(), Y.ravel()], axis=1)

    elements = generate_triangles_2d(nx, ny)

    idx = np.arange((nx + 1) * (ny + 1), dtype=np.int32).reshape(ny + 1, nx + 1)
    bottom = np.stack([idx[0, :-1], idx[0, 1:]], axis=1)
    right = np.stack([idx[:-1, -1], idx[1:, -1]], axis=1)
    top = np.stack([idx[-1, 1:], idx[-1, :-1]], axis=1)
    left = np.stack([idx[1:, 0], idx[:-1, 0]], axis=1)

    boundary_edges = np.concatenate([bottom, right, top, left]).astype(np.int32)
    boundary_tags = np.concatenate([np.full(nx, 0), np.full(ny, 1), np.full(nx, 2), np.full(ny, 3)]).astype(np.int32)

    return nodes, elements, boundary_edges, boundary_tags

def edge_table(elements):
    """
    Unique undirected edges of a triangulation.

    Returns
    -------
    edges : ndarray
        Sorted node pairs, shape (n_edges, 2)
    element_edges : ndarray
        Edge index of local edges (0-1), (1-2), (2-0) of every element, shape (n_elements, 3)
    """
    local = elements[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 3, 2)
    pairs = np.sort(local.reshape(-1, 2), axis=1)
    edges, inverse = np.unique(pairs, axis=0, return_inverse=True)
    return edges.astype(np.int32), inverse.reshape(-1, 3).astype(np.int32)

def find_boundary_edges(elements):
    """
    Edges that belong to exactly one element, oriented as in that element.

    For counter-clockwise elements the domain lies on the left of each returned edge.
    """
    local = elements[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2)
    pairs = np.sort(local, axis=1)
    _, inverse, counts = np.unique(pairs, axis=0, return_inverse=True, return_counts=True)
    on_boundary = counts[inverse.ravel()] == 1
    return local[on_boundary].astype(np.int32)

def edge_normals(nodes, edges):
    """
    Outward unit normals and lengths of oriented boundary edges.

    Returns
    -------
    normals : ndarray
        Shape (n_edges, 2)
    lengths : ndarray
        Shape (n_edges,)
    """
    t = nodes[edges[:, 1]] - nodes[edges[:, 0]]
    lengths = np.linalg.norm(t, axis=1)
    normals = np.stack([t[:, 1], -t[:, 0]], axis=1) / lengths[:, None]
    return normals, lengths

def nodal_normals(nodes, edges, node_ids):
    """
    Average the outward normals of the edges adjacent to each node.

    Parameters
    ----------
    nodes : ndarray
        Node coordinates, shape (n_nodes, 2)
    edges : ndarray
        Oriented boundary edges, shape (n_edges, 2)
    node_ids : ndarray
        Nodes for which normals are requested

    Returns
    -------
    normals : ndarray
        Unit normals, shape (len(node_ids), 2)
    measure : ndarray
        Lumped boundary measure (half the length of each adjacent edge), shape (len(node_ids),)
    """
    e_normals, lengths = edge_normals(nodes, edges)
    acc = np.zeros((nodes.shape[0], 2), dtype=nodes.dtype)
    measure = np.zeros(nodes.shape[0], dtype=nodes.dtype)
    for side in range(2):
        np.add.at(acc, edges[:, side], e_normals)
        np.add.at(measure, edges[:, side], lengths / 2)

    normals = acc[node_ids]
    norm = np.linalg.norm(normals, axis=1)
    norm[norm == 0] = 1.0
    return normals / norm[:, None], measure[node_ids]

def triangle_areas(x0s):
    """Signed areas of a batch of triangles, shape (n_elements,). Positive for counter-clockwise nodes."""
    return (
        x0s[:, 0, 0] * (x0s[:, 1, 1] - x0s[:, 2, 1])
        + x0s[:, 1, 0] * (x0s[:, 2, 1] - x0s[:, 0, 1])
        + x0s[:, 2, 0] * (x0s[:, 0, 1] - x0s[:, 1, 1])
    ) / 2

def triangle_gradients(x0s):
    """
    Gradients of the P1 barycentric basis on a batch of triangles.

    Returns
    -------
    grads : ndarray
        grads[e, a] is the gradient of the barycentric coordinate of node a, shape (n_elements, 3, 2)
    A : ndarray
        Signed areas, shape (n_elements,)
    """
    A = triangle_areas(x0s)

    grads = np.empty((x0s.shape[0], 3, 2), dtype=x0s.dtype)
    grads[:, 0, 0] = x0s[:, 1, 1] - x0s[:, 2, 1]
    grads[:, 1, 0] = x0s[:, 2, 1] - x0s[:, 0, 1]
    grads[:, 2, 0] = x0s[:, 0, 1] - x0s[:, 1, 1]
    grads[:, 0, 1] = x0s[:, 2, 0] - x0s[:, 1, 0]
    grads[:, 1, 1] = x0s[:, 0, 0] - x0s[:, 2, 0]
    grads[:, 2, 1] = x0s[:, 1, 0] - x0s[:, 0, 0]

    grads /= (2 * A)[:, None, None]
    return grads, A
