# operators/__init__.py
"""Helper routines for setting up operator tests."""

import numpy as np


def _random_matrix(n: int, m: int = None):
    """Random (n, m) matrix. If ``m`` is not given, return a diagonally
    dominant (hence nonsingular) (n, n) matrix.
    """
    if m is None:
        return np.random.standard_normal((n, n)) + 2 * n * np.eye(n)
    return np.random.standard_normal((n, m))


def _spd_matrix(n: int):
    """Random symmetric positive definite (n, n) matrix."""
    B = np.random.standard_normal((n, n))
    return B @ B.T + n * np.eye(n)


def _time_dependent_matrix(A: np.ndarray):
    """Update rule for an ArrayOperator whose matrix is t * A."""

    def update_func(oldA, state, parameters, t):
        return t * A

    return update_func
