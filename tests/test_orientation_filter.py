import numpy as np

from drvo.math_utils import quaternion_to_yaw
from drvo.orientation_filter import MadgwickFilter


def test_quaternion_stays_unit_for_random_inputs():
    rng = np.random.default_rng(7)
    f = MadgwickFilter(beta=0.04)
    for i in range(500):
        gyro = rng.normal(0.0, 2.0, 3)
        accel = rng.normal(0.0, 10.0, 3)
        if i % 50 == 0:
            accel = np.zeros(3)
        q = f.update(gyro, accel, 0.01)
        assert abs(np.linalg.norm(q) - 1.0) < 1e-6


def test_near_zero_accel_uses_gyro_only_update():
    f = MadgwickFilter()
    q = f.update(np.array([0.0, 0.0, np.pi / 2]), np.array([0.0, 0.0, 1e-12]), 1.0)
    assert f.gyro_only_updates == 1
    assert abs(np.linalg.norm(q) - 1.0) < 1e-9
    assert abs(quaternion_to_yaw(q) - np.pi / 2) < 1e-9


def test_level_stationary_input_keeps_identity():
    f = MadgwickFilter()
    for _ in range(100):
        q = f.update(np.zeros(3), np.array([0.0, 0.0, 9.80665]), 0.01)
    assert np.allclose(q, [1.0, 0.0, 0.0, 0.0], atol=1e-12)


def test_accel_pulls_tilted_orientation_towards_level():
    tilt = np.radians(20.0)
    q0 = np.array([np.cos(tilt / 2), np.sin(tilt / 2), 0.0, 0.0])
    f = MadgwickFilter(beta=0.5, initial_orientation=q0)
    for _ in range(2000):
        f.update(np.zeros(3), np.array([0.0, 0.0, 9.8]), 0.01)
    q = f.orientation
    assert abs(q[1]) < abs(q0[1]) * 0.1


def test_orientation_returns_copy_and_reset():
    f = MadgwickFilter()
    f.update(np.array([0.1, 0.2, 0.3]), np.array([0.0, 0.0, 9.8]), 0.1)
    q = f.orientation
    q[0] = 42.0
    assert f.orientation[0] != 42.0
    f.reset()
    assert np.allclose(f.orientation, [1.0, 0.0, 0.0, 0.0])
    assert f.gyro_only_updates == 0


def test_set_yaw_changes_heading_only():
    tilt = np.radians(10.0)
    f = MadgwickFilter(initial_orientation=[np.cos(tilt / 2), np.sin(tilt / 2), 0.0, 0.0])
    f.set_yaw(1.2)
    assert abs(f.yaw - 1.2) < 1e-9
    assert abs(np.linalg.norm(f.orientation) - 1.0) < 1e-12
