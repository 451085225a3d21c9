import logging

import numpy as np
import pytest

from trifactor.core.geometry import Cal3S2, PinholeCamera, Pose3
from trifactor.core.numerical_derivative import numerical_derivative
from trifactor.errors import CheiralityError, InvalidNoiseModelDimension, ValuesKeyDoesNotExist
from trifactor.factors.triangulation import TriangulationFactor
from trifactor.keys import symbol
from trifactor.linear.jacobian_factor import JacobianFactor, LinearizationWorkspace
from trifactor.nonlinear.noise_model import Gaussian, Isotropic
from trifactor.nonlinear.values import Values

L1 = symbol("l", 1)
FX = 1500.0


def _camera() -> PinholeCamera:
    pose = Pose3.from_rvec(np.array([0.05, -0.1, 0.02]), np.array([0.2, -0.3, -1.0]))
    return PinholeCamera(pose=pose, calibration=Cal3S2(fx=FX, fy=1200.0, s=0.5, u0=640.0, v0=480.0))


def _factor(noise_model=None, **kwargs) -> TriangulationFactor:
    return TriangulationFactor(_camera(), np.array([700.0, 400.0]), noise_model, L1, **kwargs)


def _behind(camera: PinholeCamera) -> np.ndarray:
    return camera.pose.transform_from(np.array([0.1, 0.2, -4.0]))


def _in_front(camera: PinholeCamera) -> np.ndarray:
    return camera.pose.transform_from(np.array([0.3, -0.2, 6.0]))


class _InactiveFactor(TriangulationFactor):
    def active(self, values: Values) -> bool:
        return False


def test_point_on_measurement_ray_has_zero_error():
    camera = _camera()
    z = np.array([700.0, 400.0])
    factor = TriangulationFactor(camera, z, Isotropic.from_sigma(2, 1.0), L1)
    for depth in (1.0, 5.0, 50.0):
        residual, H = factor.evaluate_error(camera.backproject(z, depth))
        assert H is None
        assert np.max(np.abs(residual)) < 1e-8


def test_jacobian_matches_finite_differences():
    factor = _factor()
    rng = np.random.default_rng(1)
    for _ in range(10):
        pc = np.array([rng.uniform(-1, 1), rng.uniform(-1, 1), rng.uniform(2, 10)])
        point = factor.camera.pose.transform_from(pc)
        _, H = factor.evaluate_error(point, jacobian=True)
        H_num = numerical_derivative(lambda p: factor.evaluate_error(p)[0], point)
        assert H.shape == (2, 3)
        assert np.max(np.abs(H - H_num)) < 1e-5


def test_construction_rejects_wrong_noise_dimension():
    with pytest.raises(InvalidNoiseModelDimension):
        _factor(Isotropic.from_sigma(3, 1.0))
    with pytest.raises(ValueError):
        _factor(Isotropic.from_sigma(1, 1.0))
    assert _factor(None).noise_model is None


def test_behind_camera_returns_sentinel_and_zero_jacobian():
    factor = _factor()
    residual, H = factor.evaluate_error(_behind(factor.camera), jacobian=True)
    assert np.array_equal(residual, [2.0 * FX, 2.0 * FX])
    assert np.array_equal(H, np.zeros((2, 3)))

    residual, H = factor.evaluate_error(_behind(factor.camera))
    assert np.array_equal(residual, [3000.0, 3000.0])
    assert H is None


def test_behind_camera_raises_when_requested():
    factor = _factor(throw_cheirality=True)
    with pytest.raises(CheiralityError) as excinfo:
        factor.evaluate_error(_behind(factor.camera), jacobian=True)
    assert excinfo.value.key == L1
    assert excinfo.value.point_cam[2] == pytest.approx(-4.0)


def test_behind_camera_verbose_logs_key(caplog):
    factor = _factor(verbose_cheirality=True)
    with caplog.at_level(logging.WARNING, logger="trifactor.factors.triangulation"):
        residual, _ = factor.evaluate_error(_behind(factor.camera))
    assert np.array_equal(residual, [3000.0, 3000.0])
    assert "Landmark l1 moved behind camera" in caplog.text


def test_default_flags_are_silent(caplog):
    factor = _factor()
    with caplog.at_level(logging.WARNING, logger="trifactor.factors.triangulation"):
        factor.evaluate_error(_behind(factor.camera))
    assert caplog.records == []


def test_linearize_inactive_returns_none_without_lookup():
    factor = _InactiveFactor(_camera(), np.array([700.0, 400.0]), None, L1)
    ws = LinearizationWorkspace(2, 3)
    assert factor.linearize(Values(), ws) is None
    assert not ws.allocated
    assert factor.error(Values()) == 0.0


def test_linearize_without_noise_model():
    factor = _factor()
    point = _in_front(factor.camera)
    residual, H = factor.evaluate_error(point, jacobian=True)

    linear = factor.linearize(Values({L1: point}))
    assert isinstance(linear, JacobianFactor)
    assert linear.keys == [L1]
    assert np.allclose(linear.get_A(L1), H, atol=1e-12)
    assert np.allclose(linear.get_b(), -residual, atol=1e-12)
    assert linear.augmented_jacobian().shape == (2, 4)


def test_linearize_whitens_with_noise_model():
    point = _in_front(_camera())
    residual, H = _factor().evaluate_error(point, jacobian=True)

    iso = _factor(Isotropic.from_sigma(2, 2.0)).linearize(Values({L1: point}))
    assert np.allclose(iso.get_A(L1), H / 2.0, atol=1e-12)
    assert np.allclose(iso.get_b(), -residual / 2.0, atol=1e-12)

    gauss = Gaussian.from_covariance(np.array([[2.0, 0.4], [0.4, 1.0]]))
    full = _factor(gauss).linearize(Values({L1: point}))
    assert np.allclose(full.get_A(L1), gauss.R @ H, atol=1e-9)
    assert np.allclose(full.get_b(), -(gauss.R @ residual), atol=1e-9)


def test_linearize_predicts_local_change():
    factor = _factor()
    point = _in_front(factor.camera)
    linear = factor.linearize(Values({L1: point}))
    dx = np.array([1e-4, -2e-4, 1e-4])
    predicted = linear.unweighted_error({L1: dx})
    actual, _ = factor.evaluate_error(point + dx)
    assert np.max(np.abs(predicted - actual)) < 1e-4
    assert linear.error({L1: np.zeros(3)}) == pytest.approx(0.5 * float(linear.get_b() @ linear.get_b()))


def test_linearize_reuses_workspace_without_aliasing():
    factor = _factor(Isotropic.from_sigma(2, 0.5))
    ws = LinearizationWorkspace(2, 3)
    p1 = _in_front(factor.camera)
    p2 = factor.camera.pose.transform_from(np.array([-0.5, 0.4, 3.0]))

    lin1 = factor.linearize(Values({L1: p1}), ws)
    assert ws.allocated
    A_buf, b_buf = ws.buffers()
    A1 = lin1.get_A(L1)
    b1 = lin1.get_b()

    lin2 = factor.linearize(Values({L1: p2}), ws)
    A_buf2, b_buf2 = ws.buffers()
    assert A_buf2 is A_buf
    assert b_buf2 is b_buf

    assert np.array_equal(lin1.get_A(L1), A1)
    assert np.array_equal(lin1.get_b(), b1)
    assert not np.allclose(lin2.get_A(L1), A1)
    assert lin2.equals(factor.linearize(Values({L1: p2})))


def test_linearize_rejects_mismatched_workspace():
    factor = _factor()
    with pytest.raises(ValueError):
        factor.linearize(Values({L1: _in_front(factor.camera)}), LinearizationWorkspace(3, 3))


def test_linearize_behind_camera_raises_even_with_default_flags():
    # evaluate_error falls back to the sentinel residual, linearize does not.
    factor = _factor()
    values = Values({L1: _behind(factor.camera)})
    residual, _ = factor.evaluate_error(values.at(L1))
    assert np.array_equal(residual, [3000.0, 3000.0])
    with pytest.raises(CheiralityError):
        factor.linearize(values)


def test_linearize_missing_key_propagates():
    factor = _factor()
    with pytest.raises(ValuesKeyDoesNotExist):
        factor.linearize(Values({symbol("l", 2): np.zeros(3)}))


def test_error_is_half_squared_whitened_norm():
    model = Isotropic.from_sigma(2, 3.0)
    factor = _factor(model)
    point = _in_front(factor.camera)
    values = Values({L1: point})
    residual, _ = factor.evaluate_error(point)
    assert np.allclose(factor.unwhitened_error(values), residual)
    assert np.allclose(factor.whitened_error(values), residual / 3.0)
    assert factor.error(values) == pytest.approx(0.5 * float(residual @ residual) / 9.0)


def test_clone_is_equal_and_independent():
    model = Isotropic.from_sigma(2, 1.5)
    factor = _factor(model, throw_cheirality=True, verbose_cheirality=True)
    copy = factor.clone()
    assert copy is not factor
    assert copy.equals(factor)
    assert factor.equals(copy)
    assert copy.noise_model is model
    assert copy.throw_cheirality and copy.verbose_cheirality
    point = _in_front(factor.camera)
    r1, H1 = factor.evaluate_error(point, jacobian=True)
    r2, H2 = copy.evaluate_error(point, jacobian=True)
    assert np.array_equal(r1, r2)
    assert np.array_equal(H1, H2)


def test_equals():
    camera = _camera()
    z = np.array([700.0, 400.0])
    model = Isotropic.from_sigma(2, 1.0)
    factor = TriangulationFactor(camera, z, model, L1)

    assert factor.equals(TriangulationFactor(camera, z + 1e-12, Isotropic.from_sigma(2, 1.0), L1))
    assert not factor.equals(TriangulationFactor(camera, z + 1e-3, model, L1))
    assert not factor.equals(TriangulationFactor(camera, z, model, symbol("l", 2)))
    assert not factor.equals(TriangulationFactor(camera, z, None, L1))
    assert not factor.equals(TriangulationFactor(camera, z, Isotropic.from_sigma(2, 2.0), L1))
    moved = PinholeCamera(pose=Pose3(R=camera.pose.R, t=camera.pose.t + 0.01), calibration=camera.calibration)
    assert not factor.equals(TriangulationFactor(moved, z, model, L1))
    assert not factor.equals(object())
    assert TriangulationFactor(camera, z, None, L1).equals(TriangulationFactor(camera, z, None, L1))


def test_format_mentions_camera_measurement_and_key():
    text = _factor(Isotropic.from_sigma(2, 1.0)).format("landmark ")
    assert text.startswith("landmark TriangulationFactor,")
    assert "camera PinholeCamera" in text
    assert "z [700., 400.]" in text
    assert "l1" in text
    assert str(_factor()).startswith("TriangulationFactor,")


def test_behind_camera_verbose_and_throw_logs_then_raises(caplog):
    factor = _factor(throw_cheirality=True, verbose_cheirality=True)
    with caplog.at_level(logging.WARNING, logger="trifactor.factors.triangulation"):
        with pytest.raises(CheiralityError):
            factor.evaluate_error(_behind(factor.camera), jacobian=True)
    assert "Landmark l1 moved behind camera" in caplog.text
