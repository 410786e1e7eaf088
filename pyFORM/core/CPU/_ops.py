from numba import njit, prange
import numpy as np

@njit(cache=True, parallel=True)
def bernstein_weights(ref_points, active, binom_k, binom_l):
    """
    Tensor-product Bernstein weight table of a control lattice.

    Parameters
    ----------
    ref_points : ndarray
        Points mapped to the unit square, shape (n_points, 2)
    active : ndarray
        Boolean mask, rows of inactive points stay zero, shape (n_points,)
    binom_k : ndarray
        Binomial coefficients C(K, k), shape (K+1,)
    binom_l : ndarray
        Binomial coefficients C(L, l), shape (L+1,)

    Returns
    -------
    W : ndarray
        W[i, l*(K+1) + k] = C(K,k)(1-x)^(K-k) x^k C(L,l)(1-y)^(L-l) y^l, shape (n_points, (K+1)*(L+1))
    """
    K = binom_k.shape[0] - 1
    L = binom_l.shape[0] - 1
    n = ref_points.shape[0]
    W = np.zeros((n, (K + 1) * (L + 1)), dtype=ref_points.dtype)

    for i in prange(n):
        if active[i]:
            x = ref_points[i, 0]
            y = ref_points[i, 1]
            for l in range(L + 1):
                by = binom_l[l] * (1 - y) ** (L - l) * y ** l
                for k in range(K + 1):
                    W[i, l * (K + 1) + k] = binom_k[k] * (1 - x) ** (K - k) * x ** k * by

    return W

@njit(cache=True, parallel=True)
def gather_node_sensitivity(tensors, grads, node_ptr, node_elements, node_locals, n_nodes):
    """
    Nodal shape sensitivity from per-element 2x2 tensors.

    out[i] = sum over elements e adjacent to node i of tensors[e] @ grads[e, a],
    where a is the local index of node i in e. Each node owns its output row.
    """
    out = np.zeros((n_nodes, 2), dtype=tensors.dtype)

    for i in prange(n_nodes):
        for j in range(node_ptr[i], node_ptr[i + 1]):
            e = node_elements[j]
            a = node_locals[j]
            for r in range(2):
                out[i, r] += tensors[e, r, 0] * grads[e, a, 0] + tensors[e, r, 1] * grads[e, a, 1]

    return out

@njit(cache=True, parallel=True)
def gather_node_average(values, weights, node_ptr, node_elements, node_locals, n_nodes):
    """
    Weighted average at every node of per-element-vertex values.

    values has shape (n_elements, 3); weights (n_elements,) are usually element areas.
    """
    out = np.zeros(n_nodes, dtype=values.dtype)

    for i in prange(n_nodes):
        total = 0.0
        acc = 0.0
        for j in range(node_ptr[i], node_ptr[i + 1]):
            e = node_elements[j]
            acc += weights[e] * values[e, node_locals[j]]
            total += weights[e]
        if total > 0:
            out[i] = acc / total

    return out
