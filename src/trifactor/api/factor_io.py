from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from trifactor.core.distortion import brown_from_dict, brown_to_dict
from trifactor.core.geometry import Cal3DS2, Cal3S2, Calibration, PinholeCamera, Pose3
from trifactor.errors import FactorFormatError
from trifactor.factors.triangulation import TriangulationFactor
from trifactor.nonlinear.noise_model import Diagonal, Gaussian, Isotropic, NoiseModel, Unit

SCHEMA_VERSION = "trifactor.factor.triangulation.v0"

_CAL3S2_FIELDS = ("fx", "fy", "s", "u0", "v0")


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise FactorFormatError(msg)


def _to_float_matrix(x: Any, shape: tuple[int, ...], what: str) -> np.ndarray:
    try:
        a = np.asarray(x, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise FactorFormatError(f"{what} must be numeric") from e
    _require(a.size == int(np.prod(shape)), f"{what} must have shape {shape}")
    a = a.reshape(shape)
    _require(bool(np.all(np.isfinite(a))), f"{what} has non-finite values")
    return a


def _to_float(d: dict[str, Any], name: str, what: str) -> float:
    try:
        v = float(d[name])
    except KeyError as e:
        raise FactorFormatError(f"{what}.{name} is required") from e
    except (TypeError, ValueError) as e:
        raise FactorFormatError(f"{what}.{name} must be numeric") from e
    _require(bool(np.isfinite(v)), f"{what}.{name} must be finite")
    return v


def calibration_to_dict(cal: Calibration) -> dict[str, Any]:
    if isinstance(cal, Cal3DS2):
        out = calibration_to_dict(cal.pinhole())
        out.update(model="cal3ds2", **brown_to_dict(cal.distortion()))
        return out
    return {"model": "cal3_s2", **{k: float(getattr(cal, k)) for k in _CAL3S2_FIELDS}}


def calibration_from_dict(d: dict[str, Any]) -> Calibration:
    what = "camera.calibration"
    _require(isinstance(d, dict), f"{what} must be an object")
    model = d.get("model")
    _require(model in ("cal3_s2", "cal3ds2"), f"{what}.model must be cal3_s2 or cal3ds2")
    fx = _to_float(d, "fx", what)
    fy = _to_float(d, "fy", what)
    _require(fx != 0.0 and fy != 0.0, f"{what}.fx and {what}.fy must be non-zero")
    pinhole = Cal3S2(
        fx=fx,
        fy=fy,
        s=_to_float(d, "s", what) if "s" in d else 0.0,
        u0=_to_float(d, "u0", what) if "u0" in d else 0.0,
        v0=_to_float(d, "v0", what) if "v0" in d else 0.0,
    )
    if model == "cal3_s2":
        return pinhole

    try:
        dist = brown_from_dict(d)
    except (TypeError, ValueError) as e:
        raise FactorFormatError(f"{what} distortion coefficients must be numeric") from e
    _require(bool(np.all(np.isfinite(dist.coefficients()))), f"{what} distortion coefficients must be finite")
    return Cal3DS2(
        fx=pinhole.fx,
        fy=pinhole.fy,
        s=pinhole.s,
        u0=pinhole.u0,
        v0=pinhole.v0,
        k1=dist.k1,
        k2=dist.k2,
        p1=dist.p1,
        p2=dist.p2,
        k3=dist.k3,
    )


def noise_model_to_dict(model: NoiseModel | None) -> dict[str, Any] | None:
    if model is None:
        return None
    if isinstance(model, Unit):
        return {"type": "unit", "dim": int(model.dim)}
    if isinstance(model, Isotropic):
        return {"type": "isotropic", "dim": int(model.dim), "sigma": float(model.sigma)}
    if isinstance(model, Diagonal):
        return {"type": "diagonal", "sigmas": model.sigmas.tolist()}
    if isinstance(model, Gaussian):
        return {"type": "gaussian", "sqrt_information": model.R.tolist()}
    raise TypeError(f"unsupported noise model type: {type(model).__name__}")


def noise_model_from_dict(d: dict[str, Any] | None) -> NoiseModel | None:
    if d is None:
        return None
    _require(isinstance(d, dict), "noise_model must be an object or null")
    kind = d.get("type")
    try:
        if kind == "unit":
            return Unit.create(int(d["dim"]))
        if kind == "isotropic":
            return Isotropic.from_sigma(int(d["dim"]), float(d["sigma"]))
        if kind == "diagonal":
            return Diagonal.from_sigmas(np.asarray(d["sigmas"], dtype=np.float64))
        if kind == "gaussian":
            return Gaussian(np.asarray(d["sqrt_information"], dtype=np.float64))
    except KeyError as e:
        raise FactorFormatError(f"noise_model missing key: {e}") from e
    except (TypeError, ValueError) as e:
        raise FactorFormatError(f"invalid noise_model: {e}") from e
    raise FactorFormatError("noise_model.type must be unit, isotropic, diagonal or gaussian")


def factor_to_dict(factor: TriangulationFactor) -> dict[str, Any]:
    camera = factor.camera
    return {
        "schema_version": SCHEMA_VERSION,
        "key": int(factor.key),
        "camera": {
            "pose": {"R": camera.pose.R.tolist(), "t": camera.pose.t.tolist()},
            "calibration": calibration_to_dict(camera.calibration),
        },
        "measured": factor.measured.tolist(),
        "noise_model": noise_model_to_dict(factor.noise_model),
        "throw_cheirality": bool(factor.throw_cheirality),
        "verbose_cheirality": bool(factor.verbose_cheirality),
    }


def factor_from_dict(data: dict[str, Any]) -> TriangulationFactor:
    _require(isinstance(data, dict), "factor document must be an object")
    _require(data.get("schema_version") == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    key = data.get("key")
    _require(isinstance(key, int) and not isinstance(key, bool) and key >= 0, "key must be a non-negative integer")

    camera = data.get("camera")
    _require(isinstance(camera, dict), "camera is required")
    pose = camera.get("pose")
    _require(isinstance(pose, dict), "camera.pose is required")
    R = _to_float_matrix(pose.get("R"), (3, 3), "camera.pose.R")
    _require(
        bool(np.allclose(R.T @ R, np.eye(3), atol=1e-6)) and float(np.linalg.det(R)) > 0.0,
        "camera.pose.R must be a rotation matrix",
    )
    t = _to_float_matrix(pose.get("t"), (3,), "camera.pose.t")
    calibration = calibration_from_dict(camera.get("calibration"))

    measured = _to_float_matrix(data.get("measured"), (2,), "measured")
    noise_model = noise_model_from_dict(data.get("noise_model"))

    for flag in ("throw_cheirality", "verbose_cheirality"):
        _require(isinstance(data.get(flag, False), bool), f"{flag} must be a boolean")

    return TriangulationFactor(
        PinholeCamera(pose=Pose3(R=R, t=t), calibration=calibration),
        measured,
        noise_model,
        key,
        throw_cheirality=bool(data.get("throw_cheirality", False)),
        verbose_cheirality=bool(data.get("verbose_cheirality", False)),
    )


def save_factor(path: Path, factor: TriangulationFactor) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(factor_to_dict(factor), indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_factor(path: Path) -> TriangulationFactor:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return factor_from_dict(data)
