from __future__ import annotations

from typing import Callable

import numpy as np


def numerical_derivative(
    f: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    delta: float = 1e-5,
) -> np.ndarray:
    """
    Central-difference Jacobian (m,n) of f: R^n -> R^m evaluated at x.
    """
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    if delta <= 0.0:
        raise ValueError("delta must be > 0")
    f0 = np.asarray(f(x), dtype=np.float64).reshape(-1)
    H = np.zeros((f0.size, x.size), dtype=np.float64)
    for j in range(x.size):
        dx = np.zeros_like(x)
        dx[j] = delta
        fp = np.asarray(f(x + dx), dtype=np.float64).reshape(-1)
        fm = np.asarray(f(x - dx), dtype=np.float64).reshape(-1)
        H[:, j] = (fp - fm) / (2.0 * delta)
    return H
