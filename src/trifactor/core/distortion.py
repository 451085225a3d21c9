from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class BrownDistortion:
    """
    Brown-Conrady distortion on normalized camera coordinates (x=X/Z, y=Y/Z).

    Parameters follow common OpenCV naming:
      radial: k1, k2, k3
      tangential: p1, p2
    """

    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    def coefficients(self) -> np.ndarray:
        return np.array([self.k1, self.k2, self.p1, self.p2, self.k3], dtype=np.float64)

    def distort(self, x: float, y: float) -> tuple[float, float]:
        r2 = x * x + y * y
        radial = 1.0 + self.k1 * r2 + self.k2 * r2 * r2 + self.k3 * r2 * r2 * r2
        xy = x * y
        xd = x * radial + 2.0 * self.p1 * xy + self.p2 * (r2 + 2.0 * x * x)
        yd = y * radial + self.p1 * (r2 + 2.0 * y * y) + 2.0 * self.p2 * xy
        return float(xd), float(yd)

    def distort_with_jacobian(self, x: float, y: float) -> tuple[float, float, np.ndarray]:
        """
        Distorted coordinates and the 2x2 Jacobian d(xd,yd)/d(x,y).
        """
        xd, yd = self.distort(x, y)
        r2 = x * x + y * y
        radial = 1.0 + self.k1 * r2 + self.k2 * r2 * r2 + self.k3 * r2 * r2 * r2
        # d(radial)/d(r2)
        g = self.k1 + 2.0 * self.k2 * r2 + 3.0 * self.k3 * r2 * r2
        dxd_dx = radial + 2.0 * x * x * g + 2.0 * self.p1 * y + 6.0 * self.p2 * x
        dxd_dy = 2.0 * x * y * g + 2.0 * self.p1 * x + 2.0 * self.p2 * y
        dyd_dx = 2.0 * x * y * g + 2.0 * self.p1 * x + 2.0 * self.p2 * y
        dyd_dy = radial + 2.0 * y * y * g + 6.0 * self.p1 * y + 2.0 * self.p2 * x
        D = np.array([[dxd_dx, dxd_dy], [dyd_dx, dyd_dy]], dtype=np.float64)
        return xd, yd, D

    def undistort(self, xd: float, yd: float, iterations: int = 7) -> tuple[float, float]:
        """
        Iterative inverse of distort() for small/moderate distortion.
        """
        x = float(xd)
        y = float(yd)
        for _ in range(int(iterations)):
            x_est, y_est = self.distort(x, y)
            x += xd - x_est
            y += yd - y_est
        return x, y

    def equals(self, other: "BrownDistortion", tol: float = 1e-9) -> bool:
        return bool(np.allclose(self.coefficients(), other.coefficients(), rtol=0.0, atol=tol))


def brown_from_dict(d: dict) -> BrownDistortion:
    return BrownDistortion(
        k1=float(d.get("k1", 0.0)),
        k2=float(d.get("k2", 0.0)),
        p1=float(d.get("p1", 0.0)),
        p2=float(d.get("p2", 0.0)),
        k3=float(d.get("k3", 0.0)),
    )


def brown_to_dict(m: BrownDistortion) -> dict:
    return {"k1": m.k1, "k2": m.k2, "p1": m.p1, "p2": m.p2, "k3": m.k3}
