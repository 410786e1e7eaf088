import numpy as np

# Barycentric points and weights (weights sum to one, multiply by the area).
_TRIANGLE_RULES = {
    1: (np.array([[1/3, 1/3, 1/3]]),
        np.array([1.0])),
    2: (np.array([[2/3, 1/6, 1/6],
                  [1/6, 2/3, 1/6],
                  [1/6, 1/6, 2/3]]),
        np.array([1/3, 1/3, 1/3])),
    4: (np.array([[0.108103018168070, 0.445948490915965, 0.445948490915965],
                  [0.445948490915965, 0.108103018168070, 0.445948490915965],
                  [0.445948490915965, 0.445948490915965, 0.108103018168070],
                  [0.816847572980459, 0.091576213509771, 0.091576213509771],
                  [0.091576213509771, 0.816847572980459, 0.091576213509771],
                  [0.091576213509771, 0.091576213509771, 0.816847572980459]]),
        np.array([0.223381589678011, 0.223381589678011, 0.223381589678011,
                  0.109951743655322, 0.109951743655322, 0.109951743655322])),
}


def triangle_rule(degree=2):
    """
    Symmetric quadrature rule on the reference triangle.

    Parameters
    ----------
    degree : int, optional
        Polynomial degree integrated exactly. Supported: 1, 2, 4 (default: 2)

    Returns
    -------
    bary : ndarray
        Barycentric coordinates of the points, shape (n_points, 3)
    weights : ndarray
        Weights normalized to sum to one, shape (n_points,)
    """
    if degree not in _TRIANGLE_RULES:
        raise ValueError(f"No triangle rule of degree {degree}. Available: {sorted(_TRIANGLE_RULES)}")
    bary, weights = _TRIANGLE_RULES[degree]
    return bary.copy(), weights.copy()

