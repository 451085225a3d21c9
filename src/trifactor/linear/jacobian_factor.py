from __future__ import annotations

import numpy as np

from trifactor.keys import Key, KeyFormatter, default_key_formatter


class LinearizationWorkspace:
    """
    Scratch buffers for repeated linearization of one factor.

    Buffers are allocated on first use and reused afterwards. Callers must
    overwrite them completely before reading. Not safe to share between threads.
    """

    def __init__(self, rows: int, cols: int) -> None:
        self.rows = int(rows)
        self.cols = int(cols)
        self._A: np.ndarray | None = None
        self._b: np.ndarray | None = None

    @property
    def allocated(self) -> bool:
        return self._A is not None

    def buffers(self) -> tuple[np.ndarray, np.ndarray]:
        if self._A is None or self._b is None:
            self._A = np.empty((self.rows, self.cols), dtype=np.float64)
            self._b = np.empty((self.rows,), dtype=np.float64)
        return self._A, self._b


class JacobianFactor:
    """
    Linear factor ||sum_k A_k dx_k - b||^2 over one or more keys.

    The factor owns copies of its blocks.
    """

    def __init__(self, terms: dict[Key, np.ndarray], b: np.ndarray) -> None:
        if not terms:
            raise ValueError("JacobianFactor needs at least one term")
        b = np.asarray(b, dtype=np.float64).reshape(-1).copy()
        blocks: dict[Key, np.ndarray] = {}
        for key, A in terms.items():
            A = np.asarray(A, dtype=np.float64)
            if A.ndim != 2 or A.shape[0] != b.size:
                raise ValueError(f"block for key {key} must have {b.size} rows")
            blocks[int(key)] = A.copy()
        self._blocks = blocks
        self._b = b

    @property
    def keys(self) -> list[Key]:
        return list(self._blocks)

    @property
    def rows(self) -> int:
        return int(self._b.size)

    def get_A(self, key: Key) -> np.ndarray:
        return self._blocks[int(key)].copy()

    def get_b(self) -> np.ndarray:
        return self._b.copy()

    def augmented_jacobian(self) -> np.ndarray:
        """Dense [A_1 ... A_n | b] with blocks in key order."""
        return np.concatenate([*self._blocks.values(), self._b.reshape(-1, 1)], axis=1)

    def unweighted_error(self, delta: dict[Key, np.ndarray]) -> np.ndarray:
        e = -self._b
        for key, A in self._blocks.items():
            e = e + A @ np.asarray(delta[key], dtype=np.float64).reshape(A.shape[1])
        return e

    def error(self, delta: dict[Key, np.ndarray]) -> float:
        e = self.unweighted_error(delta)
        return 0.5 * float(e @ e)

    def equals(self, other: object, tol: float = 1e-9) -> bool:
        if not isinstance(other, JacobianFactor) or other.keys != self.keys:
            return False
        if not np.allclose(self._b, other._b, rtol=0.0, atol=tol):
            return False
        return all(
            A.shape == other._blocks[key].shape and np.allclose(A, other._blocks[key], rtol=0.0, atol=tol)
            for key, A in self._blocks.items()
        )

    def format(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [f"{label}JacobianFactor"]
        for key, A in self._blocks.items():
            lines.append(f"  A[{key_formatter(key)}] = {np.array2string(A, precision=9, separator=', ')}")
        lines.append(f"  b = {np.array2string(self._b, precision=9, separator=', ')}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()
