from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np

from trifactor.core.distortion import BrownDistortion


def _vec(x, n: int) -> np.ndarray:
    return np.asarray(x, dtype=np.float64).reshape(n).copy()


def _format_array(a: np.ndarray) -> str:
    return np.array2string(np.asarray(a), precision=9, separator=", ", suppress_small=True)


@dataclass(frozen=True, eq=False)
class Pose3:
    """
    Rigid camera pose, camera -> world.

    Convention: X_world = R X_cam + t, so `t` is the camera center in world
    coordinates and the camera looks along its own +z axis.
    """

    R: np.ndarray = field(default_factory=lambda: np.eye(3, dtype=np.float64))  # (3,3)
    t: np.ndarray = field(default_factory=lambda: np.zeros((3,), dtype=np.float64))  # (3,)

    def __post_init__(self) -> None:
        object.__setattr__(self, "R", np.asarray(self.R, dtype=np.float64).reshape(3, 3).copy())
        object.__setattr__(self, "t", _vec(self.t, 3))

    @classmethod
    def from_rvec(cls, rvec: np.ndarray, t: np.ndarray) -> "Pose3":
        from scipy.spatial.transform import Rotation as Rot  # type: ignore

        return cls(R=Rot.from_rotvec(_vec(rvec, 3)).as_matrix(), t=t)

    def rvec(self) -> np.ndarray:
        from scipy.spatial.transform import Rotation as Rot  # type: ignore

        return Rot.from_matrix(self.R).as_rotvec()

    def transform_to(self, point: np.ndarray) -> np.ndarray:
        """World point -> camera frame."""
        return self.R.T @ (_vec(point, 3) - self.t)

    def transform_from(self, point_cam: np.ndarray) -> np.ndarray:
        """Camera-frame point -> world."""
        return self.R @ _vec(point_cam, 3) + self.t

    def equals(self, other: "Pose3", tol: float = 1e-9) -> bool:
        return bool(
            np.allclose(self.R, other.R, rtol=0.0, atol=tol) and np.allclose(self.t, other.t, rtol=0.0, atol=tol)
        )

    def format(self, label: str = "") -> str:
        return f"{label}R: {_format_array(self.R)}\nt: {_format_array(self.t)}"


@dataclass(frozen=True)
class Cal3S2:
    """
    Five-parameter pinhole calibration (focal lengths, skew, principal point).
    """

    fx: float
    fy: float
    s: float = 0.0
    u0: float = 0.0
    v0: float = 0.0

    def K(self) -> np.ndarray:
        return np.array(
            [[float(self.fx), float(self.s), float(self.u0)], [0.0, float(self.fy), float(self.v0)], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def vector(self) -> np.ndarray:
        return np.array([self.fx, self.fy, self.s, self.u0, self.v0], dtype=np.float64)

    def uncalibrate(self, pn: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Normalized coordinates -> pixels, with the 2x2 Jacobian d(uv)/d(pn).
        """
        x, y = (float(v) for v in _vec(pn, 2))
        uv = np.array([self.fx * x + self.s * y + self.u0, self.fy * y + self.v0], dtype=np.float64)
        D = np.array([[self.fx, self.s], [0.0, self.fy]], dtype=np.float64)
        return uv, D

    def calibrate(self, uv: np.ndarray) -> np.ndarray:
        u, v = (float(c) for c in _vec(uv, 2))
        y = (v - self.v0) / self.fy
        x = (u - self.u0 - self.s * y) / self.fx
        return np.array([x, y], dtype=np.float64)

    def equals(self, other: object, tol: float = 1e-9) -> bool:
        if not isinstance(other, Cal3S2):
            return False
        return bool(np.allclose(self.vector(), other.vector(), rtol=0.0, atol=tol))

    def format(self, label: str = "") -> str:
        return f"{label}Cal3S2(fx={self.fx}, fy={self.fy}, s={self.s}, u0={self.u0}, v0={self.v0})"


@dataclass(frozen=True)
class Cal3DS2:
    """
    Pinhole calibration with Brown-Conrady distortion applied to normalized
    coordinates before the affine pixel map.
    """

    fx: float
    fy: float
    s: float = 0.0
    u0: float = 0.0
    v0: float = 0.0
    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    def K(self) -> np.ndarray:
        return self.pinhole().K()

    def pinhole(self) -> Cal3S2:
        return Cal3S2(fx=self.fx, fy=self.fy, s=self.s, u0=self.u0, v0=self.v0)

    def distortion(self) -> BrownDistortion:
        return BrownDistortion(k1=self.k1, k2=self.k2, p1=self.p1, p2=self.p2, k3=self.k3)

    def vector(self) -> np.ndarray:
        return np.concatenate([self.pinhole().vector(), self.distortion().coefficients()], axis=0)

    def uncalibrate(self, pn: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        x, y = (float(v) for v in _vec(pn, 2))
        xd, yd, D_dist = self.distortion().distort_with_jacobian(x, y)
        uv, D_aff = self.pinhole().uncalibrate(np.array([xd, yd], dtype=np.float64))
        return uv, D_aff @ D_dist

    def calibrate(self, uv: np.ndarray, iterations: int = 20) -> np.ndarray:
        xd, yd = (float(c) for c in self.pinhole().calibrate(uv))
        x, y = self.distortion().undistort(xd, yd, iterations=iterations)
        return np.array([x, y], dtype=np.float64)

    def equals(self, other: object, tol: float = 1e-9) -> bool:
        if not isinstance(other, Cal3DS2):
            return False
        return bool(np.allclose(self.vector(), other.vector(), rtol=0.0, atol=tol))

    def format(self, label: str = "") -> str:
        return (
            f"{label}Cal3DS2(fx={self.fx}, fy={self.fy}, s={self.s}, u0={self.u0}, v0={self.v0}, "
            f"k1={self.k1}, k2={self.k2}, p1={self.p1}, p2={self.p2}, k3={self.k3})"
        )


Calibration = Union[Cal3S2, Cal3DS2]


@dataclass(frozen=True, eq=False)
class Projection:
    """Successful projection: pixel prediction and d(uv)/d(point), shape (2,3)."""

    uv: np.ndarray  # (2,)
    H_point: np.ndarray  # (2,3)


@dataclass(frozen=True, eq=False)
class DegenerateProjection:
    """The point is behind (or on) the camera plane; `point_cam` is in the camera frame."""

    point_cam: np.ndarray  # (3,)


ProjectionResult = Union[Projection, DegenerateProjection]


@dataclass(frozen=True, eq=False)
class PinholeCamera:
    pose: Pose3
    calibration: Calibration

    @classmethod
    def look_at(
        cls,
        eye: np.ndarray,
        target: np.ndarray,
        up: np.ndarray,
        calibration: Calibration,
    ) -> "PinholeCamera":
        """
        Camera at `eye` looking at `target`; image y axis points away from `up`.
        """
        eye = _vec(eye, 3)
        zc = _vec(target, 3) - eye
        zc /= np.linalg.norm(zc)
        xc = np.cross(-_vec(up, 3), zc)
        n = np.linalg.norm(xc)
        if n < 1e-12:
            raise ValueError("up vector is parallel to the viewing direction")
        xc /= n
        yc = np.cross(zc, xc)
        R = np.stack([xc, yc, zc], axis=1)
        return cls(pose=Pose3(R=R, t=eye), calibration=calibration)

    def project(self, point: np.ndarray) -> ProjectionResult:
        """
        Project a world point. Points with camera-frame depth <= 0 yield a
        `DegenerateProjection` instead of a prediction.
        """
        pc = self.pose.transform_to(point)
        if not pc[2] > 0.0:
            return DegenerateProjection(point_cam=pc)

        inv_z = 1.0 / pc[2]
        pn = pc[:2] * inv_z
        uv, D_cal = self.calibration.uncalibrate(pn)
        D_pn_pc = np.array(
            [[inv_z, 0.0, -pn[0] * inv_z], [0.0, inv_z, -pn[1] * inv_z]],
            dtype=np.float64,
        )
        # d(pc)/d(point) = R^T
        H = D_cal @ D_pn_pc @ self.pose.R.T
        return Projection(uv=uv, H_point=H)

    def backproject(self, uv: np.ndarray, depth: float) -> np.ndarray:
        """Pixel + depth along the camera z axis -> world point."""
        pn = self.calibration.calibrate(uv)
        pc = np.array([pn[0] * depth, pn[1] * depth, depth], dtype=np.float64)
        return self.pose.transform_from(pc)

    def equals(self, other: object, tol: float = 1e-9) -> bool:
        if not isinstance(other, PinholeCamera):
            return False
        return self.pose.equals(other.pose, tol) and self.calibration.equals(other.calibration, tol)

    def format(self, label: str = "") -> str:
        return f"{label}PinholeCamera\n{self.pose.format('pose ')}\n{self.calibration.format('calibration ')}"
