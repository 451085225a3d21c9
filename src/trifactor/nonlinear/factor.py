from __future__ import annotations

import numpy as np

from trifactor.keys import Key, KeyFormatter, default_key_formatter
from trifactor.nonlinear.noise_model import NoiseModel
from trifactor.nonlinear.values import Values


class NoiseModelFactor1:
    """
    Nonlinear factor on a single unknown, with an optional shared noise model.

    Subclasses implement `evaluate_error(x, jacobian=False) -> (residual, H)`.
    The noise model is referenced, not copied.
    """

    def __init__(self, noise_model: NoiseModel | None, key: Key) -> None:
        self._noise_model = noise_model
        self._keys: tuple[Key, ...] = (int(key),)

    @property
    def noise_model(self) -> NoiseModel | None:
        return self._noise_model

    @property
    def keys(self) -> tuple[Key, ...]:
        return self._keys

    @property
    def key(self) -> Key:
        return self._keys[0]

    @property
    def dim(self) -> int:
        raise NotImplementedError

    def active(self, values: Values) -> bool:
        """Whether the factor contributes at this linearization point."""
        return True

    def evaluate_error(self, x: np.ndarray, jacobian: bool = False) -> tuple[np.ndarray, np.ndarray | None]:
        raise NotImplementedError

    def unwhitened_error(self, values: Values) -> np.ndarray:
        residual, _ = self.evaluate_error(values.at(self.key))
        return residual

    def whitened_error(self, values: Values) -> np.ndarray:
        residual = self.unwhitened_error(values)
        if self._noise_model is None:
            return residual
        return self._noise_model.whiten(residual)

    def error(self, values: Values) -> float:
        """0.5 * squared norm of the whitened residual; 0 when inactive."""
        if not self.active(values):
            return 0.0
        w = self.whitened_error(values)
        return 0.5 * float(w @ w)

    def equals(self, other: object, tol: float = 1e-9) -> bool:
        if not isinstance(other, NoiseModelFactor1) or other.keys != self.keys:
            return False
        if self._noise_model is None or other._noise_model is None:
            return self._noise_model is None and other._noise_model is None
        return self._noise_model.equals(other._noise_model, tol)

    def format(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        keys = " ".join(key_formatter(k) for k in self._keys)
        noise = "  no noise model" if self._noise_model is None else self._noise_model.format("  noise model: ")
        return f"{label}keys = {{ {keys} }}\n{noise}"

    def __str__(self) -> str:
        return self.format()
