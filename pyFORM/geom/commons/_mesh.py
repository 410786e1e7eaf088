class Mesh:
    """
    Base class for finite element meshes.

    Abstract interface for mesh representations. Meshes store node coordinates,
    element connectivity and boundary tagging. Topology is fixed after
    construction while node positions may change between optimization
    iterations.

    Notes
    -----
    Subclasses must provide:
    - nodes: Node coordinates, shape (n_nodes, spatial_dim)
    - elements: Element connectivity
    - boundary_edges / boundary_tags: Tagged boundary facets
    - revision: Counter incremented on every change of node positions
    - set_node_position(index, position): Mutable position accessor
    """
    pass
