import numpy as np

from drvo.magnetometer import ComplementaryHeadingFilter, calibrate_magnetometer, compute_yaw_from_mag
from drvo.math_utils import quat_multiply, rotate_world_to_body, yaw_quat


def test_hard_and_soft_iron_correction():
    raw = np.array([12.0, -3.0, 40.0])
    hard = np.array([2.0, 1.0, -5.0])
    soft = np.diag([1.0, 2.0, 0.5])
    assert np.allclose(calibrate_magnetometer(raw, hard, soft), [10.0, -8.0, 22.5])
    assert np.allclose(calibrate_magnetometer(raw), raw)


def test_level_heading_from_field_direction():
    identity = np.array([1.0, 0.0, 0.0, 0.0])
    yaw, quality = compute_yaw_from_mag(np.array([0.0, 25.0, -40.0]), identity)
    assert abs(yaw) < 1e-12
    assert 0.0 < quality < 1.0
    yaw, _ = compute_yaw_from_mag(np.array([25.0, 0.0, -40.0]), identity)
    assert abs(yaw - np.pi / 2) < 1e-12


def test_declination_shifts_heading():
    identity = np.array([1.0, 0.0, 0.0, 0.0])
    yaw, _ = compute_yaw_from_mag(np.array([25.0, 0.0, -40.0]), identity, mag_declination=0.1)
    assert abs(yaw - (np.pi / 2 - 0.1)) < 1e-12


def test_heading_is_tilt_compensated():
    field = np.array([25.0, 0.0, -40.0])
    roll = np.radians(25.0)
    q_roll = np.array([np.cos(roll / 2), np.sin(roll / 2), 0.0, 0.0])
    # The body reads the world field rotated into the tilted frame
    mag_body = rotate_world_to_body(q_roll, field)
    yaw, _ = compute_yaw_from_mag(mag_body, q_roll)
    assert abs(yaw - np.pi / 2) < 1e-9

    # Current yaw of the attitude is ignored
    q = quat_multiply(yaw_quat(0.7), q_roll)
    yaw2, _ = compute_yaw_from_mag(mag_body, q)
    assert abs(yaw2 - np.pi / 2) < 1e-9


def test_vertical_field_returns_zero_quality():
    q = yaw_quat(0.4)
    yaw, quality = compute_yaw_from_mag(np.array([0.0, 0.0, 50.0]), q)
    assert quality == 0.0
    assert abs(yaw - 0.4) < 1e-12


def test_complementary_filter_blends_towards_magnetometer():
    f = ComplementaryHeadingFilter(alpha=0.98)
    assert abs(f.filter(1.0, 0.0) - 0.02) < 1e-12
    assert abs(f.filter(0.5, 0.5) - 0.5) < 1e-12


def test_complementary_filter_wraps_across_pi():
    f = ComplementaryHeadingFilter(alpha=0.98)
    fused = f.filter(3.1, -3.1)
    # Short way round is through ±π, not through 0
    assert abs(abs(fused) - 3.1) < 0.01
    assert -np.pi <= fused <= np.pi

    half = ComplementaryHeadingFilter(alpha=0.5)
    assert abs(abs(half.filter(np.pi - 0.1, -np.pi + 0.1)) - np.pi) < 1e-9
