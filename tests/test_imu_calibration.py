import numpy as np

from drvo.config import STANDARD_GRAVITY
from drvo.imu_calibration import StationaryCalibrator, attitude_from_gravity
from drvo.math_utils import rotate_body_to_world


def _feed(calib, n, accel_mean, gyro_mean, noise=0.0, seed=3):
    rng = np.random.default_rng(seed)
    done = False
    for _ in range(n):
        done = calib.add_sample(accel_mean + rng.normal(0.0, noise, 3),
                                gyro_mean + rng.normal(0.0, noise * 0.01, 3))
    return done


def test_level_calibration_recovers_synthetic_biases():
    accel_bias = np.array([0.05, -0.03, 0.1])
    gyro_bias = np.array([0.01, -0.02, 0.005])
    calib = StationaryCalibrator(max_samples=300)
    done = _feed(calib, 300, np.array([0.0, 0.0, STANDARD_GRAVITY]) + accel_bias, gyro_bias, noise=0.02)

    assert done
    assert calib.is_complete()
    assert calib.progress == 1.0
    assert calib.is_stationary()
    cal = calib.to_calibration()
    assert np.allclose(cal.accel_bias, accel_bias, atol=5e-3)
    assert np.allclose(cal.gyro_bias, gyro_bias, atol=5e-4)
    assert cal.gravity_magnitude == STANDARD_GRAVITY


def test_unlevel_calibration_uses_measured_gravity():
    accel = np.array([1.0, 2.0, 9.5])
    calib = StationaryCalibrator(max_samples=50, assume_level=False)
    _feed(calib, 50, accel, np.zeros(3))
    cal = calib.to_calibration()
    assert np.allclose(cal.accel_bias, 0.0)
    assert abs(cal.gravity_magnitude - np.linalg.norm(accel)) < 1e-9


def test_progress_and_samples_after_completion_are_ignored():
    calib = StationaryCalibrator(max_samples=10)
    _feed(calib, 5, np.array([0.0, 0.0, 9.8]), np.zeros(3))
    assert calib.progress == 0.5
    assert not calib.is_complete()
    _feed(calib, 20, np.array([0.0, 0.0, 9.8]), np.zeros(3))
    assert calib.sample_count == 10


def test_moving_device_is_not_stationary():
    calib = StationaryCalibrator(max_samples=100)
    _feed(calib, 100, np.array([0.0, 0.0, 9.8]), np.zeros(3), noise=2.0)
    assert not calib.is_stationary()


def test_non_finite_samples_are_skipped():
    calib = StationaryCalibrator(max_samples=10)
    calib.add_sample([np.nan, 0.0, 9.8], [0.0, 0.0, 0.0])
    assert calib.sample_count == 0


def test_attitude_from_gravity_levels_the_measured_vector():
    assert np.allclose(attitude_from_gravity([0.0, 0.0, 9.8]), [1.0, 0.0, 0.0, 0.0])
    accel = np.array([2.0, -1.0, 9.0])
    q = attitude_from_gravity(accel)
    up = rotate_body_to_world(q, accel / np.linalg.norm(accel))
    assert np.allclose(up, [0.0, 0.0, 1.0], atol=1e-9)
    q_flip = attitude_from_gravity([0.0, 0.0, -9.8])
    assert np.allclose(rotate_body_to_world(q_flip, [0.0, 0.0, -1.0]), [0.0, 0.0, 1.0], atol=1e-9)
