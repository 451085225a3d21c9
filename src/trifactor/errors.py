from __future__ import annotations

import numpy as np


class InvalidNoiseModelDimension(ValueError):
    pass


class FactorFormatError(ValueError):
    pass


class ValuesKeyDoesNotExist(KeyError):
    def __init__(self, key: int) -> None:
        super().__init__(key)
        self.key = int(key)

    def __str__(self) -> str:
        return f"Attempting to retrieve value with key {self.key}, which does not exist in Values"


class CheiralityError(RuntimeError):
    """
    Raised when a point lies behind the optical center of a camera.

    `point_cam` is the point in the camera frame; `key` is set when the error
    comes from a factor that knows which landmark moved.
    """

    def __init__(self, point_cam: np.ndarray, key: int | None = None) -> None:
        self.point_cam = np.asarray(point_cam, dtype=np.float64).reshape(3)
        self.key = key
        super().__init__(self._message())

    def _message(self) -> str:
        z = float(self.point_cam[2])
        if self.key is None:
            return f"Cheirality exception (depth {z:.6g} <= 0)"
        return f"Cheirality exception for key {self.key} (depth {z:.6g} <= 0)"
