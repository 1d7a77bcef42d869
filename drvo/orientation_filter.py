#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Orientation Filter Module

Gradient-descent (Madgwick) attitude filter fusing gyroscope and
accelerometer. The accelerometer pulls roll/pitch towards the measured
gravity direction; yaw is gyro-only unless a magnetometer heading is fed in
through set_yaw().

Reference: S. Madgwick, "An efficient orientation filter for inertial and
inertial/magnetic sensor arrays", 2010.

Author: DRVO project
"""

import numpy as np

from .math_utils import (
    IDENTITY_QUAT, angle_wrap, integrate_gyro, quat_multiply, quat_normalize,
    quaternion_to_yaw, yaw_quat,
)

ACCEL_NORM_EPS = 1e-9
GRADIENT_NORM_EPS = 1e-12


class MadgwickFilter:
    """
    Madgwick IMU filter with a fixed gain.

    The quaternion is renormalised after every update, so its norm is 1
    within floating-point tolerance whatever the inputs.
    """

    def __init__(self, beta: float = 0.04, initial_orientation: np.ndarray = None):
        self.beta = float(beta)
        self._q = IDENTITY_QUAT.copy() if initial_orientation is None \
            else quat_normalize(np.asarray(initial_orientation, dtype=float))
        self.gyro_only_updates = 0

    @property
    def orientation(self) -> np.ndarray:
        return self._q.copy()

    def reset(self):
        self._q = IDENTITY_QUAT.copy()
        self.gyro_only_updates = 0

    def set_orientation(self, q: np.ndarray):
        self._q = quat_normalize(np.asarray(q, dtype=float))

    def update(self, gyro: np.ndarray, accel: np.ndarray, dt: float) -> np.ndarray:
        """
        One filter step.

        Args:
            gyro: Angular rate [rad/s] (body frame), bias-corrected
            accel: Specific force [m/s²] (body frame), bias-corrected
            dt: Time step [s]

        Returns:
            Updated orientation quaternion [w,x,y,z]
        """
        gyro = np.asarray(gyro, dtype=float)
        accel = np.asarray(accel, dtype=float)

        a_norm = np.linalg.norm(accel)
        if a_norm < ACCEL_NORM_EPS:
            # Invalid accelerometer sample: gyro-only exponential update
            self._q = integrate_gyro(self._q, gyro, dt)
            self.gyro_only_updates += 1
            return self._q.copy()

        ax, ay, az = accel / a_norm
        q1, q2, q3, q4 = self._q
        gx, gy, gz = gyro

        # Objective: predicted gravity direction in body frame minus measured
        f1 = 2.0 * (q2 * q4 - q1 * q3) - ax
        f2 = 2.0 * (q1 * q2 + q3 * q4) - ay
        f3 = 2.0 * (0.5 - q2 * q2 - q3 * q3) - az

        # Jacobian transpose times objective
        grad = np.array([
            -2.0 * q3 * f1 + 2.0 * q2 * f2,
            2.0 * q4 * f1 + 2.0 * q1 * f2 - 4.0 * q2 * f3,
            -2.0 * q1 * f1 + 2.0 * q4 * f2 - 4.0 * q3 * f3,
            2.0 * q2 * f1 + 2.0 * q3 * f2,
        ])
        g_norm = np.linalg.norm(grad)
        if g_norm > GRADIENT_NORM_EPS:
            grad = grad / g_norm
        else:
            grad = np.zeros(4)

        # Rate of change from gyro: ½ q ⊗ (0, ω)
        q_dot = 0.5 * quat_multiply(self._q, np.array([0.0, gx, gy, gz])) - self.beta * grad

        self._q = quat_normalize(np.array([q1, q2, q3, q4]) + q_dot * dt)
        return self._q.copy()

    @property
    def yaw(self) -> float:
        return quaternion_to_yaw(self._q)

    def set_yaw(self, yaw: float):
        """Rotate about world Z so the heading equals yaw; roll/pitch kept."""
        dyaw = angle_wrap(yaw - self.yaw)
        self._q = quat_normalize(quat_multiply(yaw_quat(dyaw), self._q))
