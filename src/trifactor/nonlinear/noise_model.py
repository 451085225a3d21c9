"""
Gaussian noise models used to whiten residuals and linear systems.

Every model is defined by an upper-triangular square-root information matrix
R with R^T R = Sigma^-1; whitening a residual r gives R r, whose squared norm is
the Mahalanobis distance of r.
"""

from __future__ import annotations

import numpy as np


def _as_float(a: np.ndarray) -> np.ndarray:
    return np.asarray(a, dtype=np.float64)


class NoiseModel:
    @property
    def dim(self) -> int:
        raise NotImplementedError

    @property
    def R(self) -> np.ndarray:
        """Square-root information matrix (dim,dim)."""
        raise NotImplementedError

    @property
    def sigmas(self) -> np.ndarray:
        raise NotImplementedError

    def whiten(self, v: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def unwhiten(self, v: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def whiten_matrix(self, A: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def whiten_system(self, A: np.ndarray, b: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Whiten the rows of a linear system A x = b. Float64 inputs are
        overwritten in place; the (possibly new) arrays are returned.
        """
        A = _as_float(A)
        b = _as_float(b)
        if A.shape[0] != self.dim or b.shape[0] != self.dim:
            raise ValueError(f"system has {A.shape[0]} rows, noise model has dim {self.dim}")
        A[...] = self.whiten_matrix(A)
        b[...] = self.whiten(b)
        return A, b

    def distance(self, v: np.ndarray) -> float:
        w = self.whiten(v)
        return float(w @ w)

    def equals(self, other: object, tol: float = 1e-9) -> bool:
        if not isinstance(other, NoiseModel) or other.dim != self.dim:
            return False
        return bool(np.allclose(self.R, other.R, rtol=0.0, atol=tol))

    def format(self, label: str = "") -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.format()


class Gaussian(NoiseModel):
    def __init__(self, sqrt_information: np.ndarray) -> None:
        R = _as_float(sqrt_information).copy()
        if R.ndim != 2 or R.shape[0] != R.shape[1]:
            raise ValueError("sqrt_information must be a square matrix")
        self._R = R

    @classmethod
    def from_information(cls, information: np.ndarray) -> "Gaussian":
        from scipy.linalg import cholesky  # type: ignore

        return cls(cholesky(_as_float(information), lower=False))

    @classmethod
    def from_covariance(cls, covariance: np.ndarray) -> "Gaussian":
        from scipy.linalg import inv  # type: ignore

        return cls.from_information(inv(_as_float(covariance)))

    @property
    def dim(self) -> int:
        return int(self._R.shape[0])

    @property
    def R(self) -> np.ndarray:
        return self._R.copy()

    def covariance(self) -> np.ndarray:
        from scipy.linalg import inv  # type: ignore

        return inv(self._R.T @ self._R)

    @property
    def sigmas(self) -> np.ndarray:
        return np.sqrt(np.diag(self.covariance()))

    def whiten(self, v: np.ndarray) -> np.ndarray:
        return self._R @ _as_float(v)

    def unwhiten(self, v: np.ndarray) -> np.ndarray:
        from scipy.linalg import solve  # type: ignore

        return solve(self._R, _as_float(v))

    def whiten_matrix(self, A: np.ndarray) -> np.ndarray:
        return self._R @ _as_float(A)

    def format(self, label: str = "") -> str:
        return f"{label}Gaussian dim={self.dim}\nR: {np.array2string(self._R, precision=9, separator=', ')}"


class Diagonal(Gaussian):
    def __init__(self, sigmas: np.ndarray) -> None:
        sigmas = _as_float(sigmas).reshape(-1).copy()
        if sigmas.size == 0:
            raise ValueError("sigmas is empty")
        if not np.all(np.isfinite(sigmas)) or np.any(sigmas <= 0.0):
            raise ValueError("sigmas must be finite and > 0 (constrained models are not supported)")
        self._sigmas = sigmas
        self._inv_sigmas = 1.0 / sigmas
        super().__init__(np.diag(self._inv_sigmas))

    @classmethod
    def from_sigmas(cls, sigmas: np.ndarray) -> "Diagonal":
        return cls(sigmas)

    @classmethod
    def from_variances(cls, variances: np.ndarray) -> "Diagonal":
        return cls(np.sqrt(_as_float(variances)))

    @classmethod
    def from_precisions(cls, precisions: np.ndarray) -> "Diagonal":
        return cls(1.0 / np.sqrt(_as_float(precisions)))

    @property
    def sigmas(self) -> np.ndarray:
        return self._sigmas.copy()

    def whiten(self, v: np.ndarray) -> np.ndarray:
        return _as_float(v) * self._inv_sigmas

    def unwhiten(self, v: np.ndarray) -> np.ndarray:
        return _as_float(v) * self._sigmas

    def whiten_matrix(self, A: np.ndarray) -> np.ndarray:
        A = _as_float(A)
        return A * self._inv_sigmas.reshape((-1,) + (1,) * (A.ndim - 1))

    def format(self, label: str = "") -> str:
        return f"{label}Diagonal sigmas={np.array2string(self._sigmas, precision=9, separator=', ')}"


class Isotropic(Diagonal):
    def __init__(self, sigmas: np.ndarray) -> None:
        super().__init__(sigmas)
        if not np.all(self._sigmas == self._sigmas[0]):
            raise ValueError("Isotropic noise model needs equal sigmas; use Diagonal instead")

    @classmethod
    def from_sigma(cls, dim: int, sigma: float) -> "Isotropic":
        return Isotropic(np.full((int(dim),), float(sigma), dtype=np.float64))

    @property
    def sigma(self) -> float:
        return float(self._sigmas[0])

    def format(self, label: str = "") -> str:
        return f"{label}Isotropic dim={self.dim} sigma={self.sigma}"


class Unit(Isotropic):
    def __init__(self, dim: int) -> None:
        super().__init__(np.ones((int(dim),), dtype=np.float64))

    @classmethod
    def create(cls, dim: int) -> "Unit":
        return cls(dim)

    def whiten(self, v: np.ndarray) -> np.ndarray:
        return _as_float(v).copy()

    def unwhiten(self, v: np.ndarray) -> np.ndarray:
        return _as_float(v).copy()

    def whiten_matrix(self, A: np.ndarray) -> np.ndarray:
        return _as_float(A).copy()

    def format(self, label: str = "") -> str:
        return f"{label}Unit dim={self.dim}"
