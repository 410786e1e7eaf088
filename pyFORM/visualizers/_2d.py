import matplotlib
import matplotlib.collections
import matplotlib.pyplot as plt
import numpy as np


def _polycollection(nodes, elements, ax, **kwargs):
    verts = nodes[elements]
    pc = matplotlib.collections.PolyCollection(verts, **kwargs)
    ax.add_collection(pc)
    ax.autoscale()
    return pc


def plot_mesh_2D(
    nodes: np.ndarray,
    elements: np.ndarray,
    ax=None,
    face_color="grey",
    edge_color="black",
    boundary_edges=None,
    boundary_tags=None,
    colormap='tab10',
    **kwargs
):
    """
    Plot a triangle mesh, optionally with its boundary edges colored by tag.

    Parameters
    ----------
    nodes : ndarray
        Node coordinates, shape (n_nodes, 2)
    elements : ndarray
        Triangle connectivity, shape (n_elements, 3)
    ax : matplotlib.axes.Axes, optional
        Axes to draw on (default: current axes)
    boundary_edges, boundary_tags : ndarray, optional
        Tagged boundary, drawn as thick lines with one color per tag

    Returns
    -------
    matplotlib.axes.Axes
    """
    if nodes.shape[1] != 2:
        raise ValueError("This function only supports 2D meshes")

    if ax is None:
        ax = plt.gca()

    ax.set_aspect("equal")
    _polycollection(nodes, elements, ax, edgecolor=edge_color, facecolor=face_color, linewidth=0.5, **kwargs)

    if boundary_edges is not None and len(boundary_edges) > 0:
        if boundary_tags is None:
            boundary_tags = np.zeros(len(boundary_edges), dtype=int)
        cmap = plt.get_cmap(colormap)
        for i, tag in enumerate(np.unique(boundary_tags)):
            segs = nodes[boundary_edges[boundary_tags == tag]]
            lc = matplotlib.collections.LineCollection(segs, colors=[cmap(i % cmap.N)], linewidths=2.0, label=f"tag {tag}")
            ax.add_collection(lc)
        ax.legend(loc="best", fontsize="small")

    ax.set_xlabel("X Axis")
    ax.set_ylabel("Y Axis")

    return ax


def plot_field_2D(
    nodes: np.ndarray,
    elements: np.ndarray,
    field: np.ndarray,
    ax=None,
    edge_color="none",
    colormap='viridis',
    show_colorbar=True,
    colorbar_label=None,
    **kwargs,
):
    """
    Plot a scalar field on a triangle mesh.

    Nodal fields (n_nodes,) are averaged to the elements, element fields
    (n_elements,) are drawn as is and vector fields (n, 2) by their magnitude.
    """
    field = np.asarray(field)
    if field.ndim == 2:
        field = np.linalg.norm(field, axis=1)

    if field.shape[0] == nodes.shape[0] and field.shape[0] != elements.shape[0]:
        values = field[elements].mean(axis=1)
    elif field.shape[0] == elements.shape[0]:
        values = field
    else:
        raise ValueError(f"Field of length {field.shape[0]} matches neither the nodes nor the elements.")

    if ax is None:
        ax = plt.gca()

    ax.set_aspect("equal")
    pc = _polycollection(nodes, elements, ax, edgecolor=edge_color, cmap=colormap, **kwargs)
    pc.set_array(values)

    if show_colorbar:
        cbar = plt.colorbar(pc, ax=ax)
        if colorbar_label:
            cbar.set_label(colorbar_label)

    ax.set_xlabel("X Axis")
    ax.set_ylabel("Y Axis")

    return ax


def plot_lattice_2D(
    control_points: np.ndarray,
    fixed=None,
    ax=None,
    line_color="tab:blue",
    free_color="tab:blue",
    fixed_color="tab:red",
):
    """
    Plot an FFD control lattice.

    Parameters
    ----------
    control_points : ndarray
        Lattice positions, shape (L+1, K+1, 2)
    fixed : ndarray, optional
        Boolean mask of fixed control points, shape (L+1, K+1)
    """
    if ax is None:
        ax = plt.gca()

    P = np.asarray(control_points)
    for l in range(P.shape[0]):
        ax.plot(P[l, :, 0], P[l, :, 1], color=line_color, linewidth=0.8)
    for k in range(P.shape[1]):
        ax.plot(P[:, k, 0], P[:, k, 1], color=line_color, linewidth=0.8)

    if fixed is None:
        fixed = np.zeros(P.shape[:2], dtype=bool)
    ax.scatter(P[~fixed][:, 0], P[~fixed][:, 1], color=free_color, s=12, zorder=3)
    ax.scatter(P[fixed][:, 0], P[fixed][:, 1], color=fixed_color, marker="s", s=12, zorder=3)

    ax.set_aspect("equal")
    ax.set_xlabel("X Axis")
    ax.set_ylabel("Y Axis")

    return ax
