#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DRVO Math Utilities Module
==========================

Quaternion and 3-vector helpers shared by the dead-reckoning and
visual-odometry engines.

Conventions:
------------
Quaternions are [w, x, y, z] (scalar first, Hamilton product) and describe
the body attitude in the ENU world frame:

    v_world = q ⊗ v_body ⊗ q*

scipy orders quaternions [x, y, z, w]; conversions happen only inside this
module.

Author: DRVO project
"""

import numpy as np
from scipy.spatial.transform import Rotation as R_scipy


IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0])
MIN_QUAT_NORM = 1e-10


def vec3(v) -> np.ndarray:
    """Coerce a 3-sequence to a float (3,) array."""
    arr = np.asarray(v, dtype=float).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {arr.shape}")
    return arr


def _to_scipy(q: np.ndarray) -> R_scipy:
    w, x, y, z = q
    return R_scipy.from_quat([x, y, z, w])


def _from_scipy(rot: R_scipy) -> np.ndarray:
    x, y, z, w = rot.as_quat()
    return np.array([w, x, y, z])


def quat_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Hamilton product q1 ⊗ q2 (apply q2 first, then q1)."""
    a0, a1, a2, a3 = q1
    b0, b1, b2, b3 = q2
    return np.array([
        a0 * b0 - a1 * b1 - a2 * b2 - a3 * b3,
        a0 * b1 + a1 * b0 + a2 * b3 - a3 * b2,
        a0 * b2 - a1 * b3 + a2 * b0 + a3 * b1,
        a0 * b3 + a1 * b2 - a2 * b1 + a3 * b0,
    ])


def quat_normalize(q: np.ndarray) -> np.ndarray:
    """Unit quaternion; identity when q has (near) zero norm."""
    q = np.asarray(q, dtype=float)
    n = np.linalg.norm(q)
    if n < MIN_QUAT_NORM:
        return IDENTITY_QUAT.copy()
    return q / n


def quat_to_rot(q: np.ndarray) -> np.ndarray:
    """Body -> world rotation matrix of a [w,x,y,z] quaternion."""
    return _to_scipy(quat_normalize(q)).as_matrix()


def integrate_gyro(q: np.ndarray, omega: np.ndarray, dt: float) -> np.ndarray:
    """Exact body-rate step q ⊗ exp(½·ω·dt), renormalised."""
    dq = _from_scipy(R_scipy.from_rotvec(np.asarray(omega, dtype=float) * dt))
    return quat_normalize(quat_multiply(q, dq))


def rotate_body_to_world(q: np.ndarray, v_body: np.ndarray) -> np.ndarray:
    return quat_to_rot(q) @ np.asarray(v_body, dtype=float)


def rotate_world_to_body(q: np.ndarray, v_world: np.ndarray) -> np.ndarray:
    return quat_to_rot(q).T @ np.asarray(v_world, dtype=float)


def quat_angle_between(q1: np.ndarray, q2: np.ndarray) -> float:
    """
    Rotation angle in [0, π] between two orientations.

    q and -q are the same rotation, so the sign of the dot product is
    ignored.
    """
    d = abs(float(np.dot(quat_normalize(q1), quat_normalize(q2))))
    return 2.0 * np.arccos(min(1.0, d))


def yaw_quat(yaw: float) -> np.ndarray:
    """Rotation of yaw radians about world Z."""
    return np.array([np.cos(yaw / 2.0), 0.0, 0.0, np.sin(yaw / 2.0)])


def quaternion_to_yaw(q_wxyz: np.ndarray) -> float:
    """ENU heading of the body X axis: 0 = East, π/2 = North, in [-π, π]."""
    w, x, y, z = q_wxyz
    return float(np.arctan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z)))


def angle_wrap(angle: float) -> float:
    """Wrap angle to [-π, π]."""
    return float(np.arctan2(np.sin(angle), np.cos(angle)))
