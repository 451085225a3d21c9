"""
Reprojection factor on an unknown landmark seen by a camera of known pose and
calibration.

Residual: h(X) - z, with h the camera projection and z the measured pixel.
"""

from __future__ import annotations

import copy
import logging

import numpy as np

from trifactor.core.geometry import DegenerateProjection, PinholeCamera
from trifactor.errors import CheiralityError, InvalidNoiseModelDimension
from trifactor.keys import Key, KeyFormatter, default_key_formatter
from trifactor.linear.jacobian_factor import JacobianFactor, LinearizationWorkspace
from trifactor.nonlinear.factor import NoiseModelFactor1
from trifactor.nonlinear.noise_model import NoiseModel
from trifactor.nonlinear.values import Values

logger = logging.getLogger(__name__)

MEASUREMENT_DIM = 2
POINT_DIM = 3


class TriangulationFactor(NoiseModelFactor1):
    """
    Args:
        camera: camera in which the landmark is seen (pose and calibration are fixed)
        measured: observed pixel (2,)
        noise_model: 2-dimensional noise model, or None for unit weighting
        point_key: key of the landmark in `Values`
        throw_cheirality: re-raise when the landmark is behind the camera
        verbose_cheirality: log a warning when the landmark is behind the camera
    """

    def __init__(
        self,
        camera: PinholeCamera,
        measured: np.ndarray,
        noise_model: NoiseModel | None,
        point_key: Key,
        throw_cheirality: bool = False,
        verbose_cheirality: bool = False,
    ) -> None:
        if noise_model is not None and noise_model.dim != MEASUREMENT_DIM:
            raise InvalidNoiseModelDimension(
                "TriangulationFactor must be created with 2-dimensional noise model."
            )
        super().__init__(noise_model, point_key)
        self._camera = camera
        self._measured = np.asarray(measured, dtype=np.float64).reshape(MEASUREMENT_DIM).copy()
        self._throw_cheirality = bool(throw_cheirality)
        self._verbose_cheirality = bool(verbose_cheirality)

    @property
    def camera(self) -> PinholeCamera:
        return self._camera

    @property
    def measured(self) -> np.ndarray:
        return self._measured.copy()

    @property
    def throw_cheirality(self) -> bool:
        return self._throw_cheirality

    @property
    def verbose_cheirality(self) -> bool:
        return self._verbose_cheirality

    @property
    def dim(self) -> int:
        return MEASUREMENT_DIM

    def clone(self) -> "TriangulationFactor":
        return copy.copy(self)

    def evaluate_error(self, x: np.ndarray, jacobian: bool = False) -> tuple[np.ndarray, np.ndarray | None]:
        """
        Reprojection error h(x) - z and, if requested, its (2,3) Jacobian.

        A landmark behind the camera gets a zero Jacobian and, unless
        `throw_cheirality` is set, the residual (2 fx, 2 fx).
        """
        result = self._camera.project(x)
        if isinstance(result, DegenerateProjection):
            H = np.zeros((MEASUREMENT_DIM, POINT_DIM), dtype=np.float64) if jacobian else None
            err = CheiralityError(result.point_cam, key=self.key)
            if self._verbose_cheirality:
                logger.warning("%s: Landmark %s moved behind camera", err, default_key_formatter(self.key))
            if self._throw_cheirality:
                raise err
            fx = float(self._camera.calibration.fx)
            return np.full((MEASUREMENT_DIM,), 2.0 * fx, dtype=np.float64), H

        residual = result.uv - self._measured
        return residual, (result.H_point if jacobian else None)

    def linearize(self, values: Values, workspace: LinearizationWorkspace | None = None) -> JacobianFactor | None:
        """
        Linearize to A dx - b ~= h(x + dx) - z, i.e. b = z - h(x).

        Returns None when the factor is inactive. Unlike `evaluate_error`, a
        landmark behind the camera always raises `CheiralityError` here.
        Constrained noise models are not supported.
        """
        if not self.active(values):
            return None

        if workspace is None:
            workspace = LinearizationWorkspace(MEASUREMENT_DIM, POINT_DIM)
        if (workspace.rows, workspace.cols) != (MEASUREMENT_DIM, POINT_DIM):
            raise ValueError(f"workspace must be {MEASUREMENT_DIM}x{POINT_DIM}")
        A, b = workspace.buffers()

        point = values.at(self.key)
        result = self._camera.project(point)
        if isinstance(result, DegenerateProjection):
            raise CheiralityError(result.point_cam, key=self.key)

        A[...] = result.H_point
        b[...] = self._measured - result.uv
        if self._noise_model is not None:
            A, b = self._noise_model.whiten_system(A, b)

        return JacobianFactor({self.key: A}, b)

    def equals(self, other: object, tol: float = 1e-9) -> bool:
        if not isinstance(other, TriangulationFactor):
            return False
        return (
            super().equals(other, tol)
            and self._camera.equals(other._camera, tol)
            and bool(np.allclose(self._measured, other._measured, rtol=0.0, atol=tol))
        )

    def format(self, label: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        z = np.array2string(self._measured, precision=9, separator=", ")
        return "\n".join(
            [
                f"{label}TriangulationFactor,",
                self._camera.format("camera "),
                f"z {z}",
                super().format("", key_formatter),
            ]
        )
