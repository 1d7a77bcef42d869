#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IMU Calibration Module

Estimates gyroscope bias, accelerometer bias and the local gravity
magnitude from a window of samples recorded while the device is at rest.

Two accelerometer modes:
- assume_level=True: the device lies flat, so the expected reading is
  (0, 0, g_nominal) and everything else is bias.
- assume_level=False: attitude is unknown, accel bias cannot be separated
  from gravity; the measured magnitude becomes the gravity reference so a
  stationary device still integrates to zero displacement.

Author: DRVO project
"""

import numpy as np

from .config import STANDARD_GRAVITY
from .math_utils import vec3
from .pose_types import Calibration

# Std-dev limits for the window to count as stationary
MAX_STATIONARY_ACCEL_STD = 0.2   # m/s²
MAX_STATIONARY_GYRO_STD = 0.02   # rad/s


class StationaryCalibrator:
    """Running-average bias estimator over the first max_samples readings."""

    def __init__(self, max_samples: int = 300, assume_level: bool = True,
                 g_nominal: float = STANDARD_GRAVITY):
        self.max_samples = max(1, int(max_samples))
        self.assume_level = assume_level
        self.g_nominal = float(g_nominal)
        self.reset()

    def reset(self):
        self.sample_count = 0
        self._accel_mean = np.zeros(3)
        self._gyro_mean = np.zeros(3)
        self._accel_m2 = np.zeros(3)
        self._gyro_m2 = np.zeros(3)

    def add_sample(self, accel, gyro) -> bool:
        """
        Accumulate one sample.

        Returns:
            True once the window is full (further samples are ignored)
        """
        if self.is_complete():
            return True
        accel = vec3(accel)
        gyro = vec3(gyro)
        if not (np.all(np.isfinite(accel)) and np.all(np.isfinite(gyro))):
            return False

        # Welford update
        self.sample_count += 1
        n = self.sample_count
        d_a = accel - self._accel_mean
        self._accel_mean += d_a / n
        self._accel_m2 += d_a * (accel - self._accel_mean)
        d_g = gyro - self._gyro_mean
        self._gyro_mean += d_g / n
        self._gyro_m2 += d_g * (gyro - self._gyro_mean)

        if self.is_complete():
            cal = self.to_calibration()
            print(f"[CALIB] Bias calibrated over {n} samples: gyro={cal.gyro_bias}, "
                  f"accel={cal.accel_bias}, g={cal.gravity_magnitude:.5f}")
            return True
        return False

    def is_complete(self) -> bool:
        return self.sample_count >= self.max_samples

    @property
    def progress(self) -> float:
        return min(self.sample_count / self.max_samples, 1.0)

    @property
    def accel_mean(self) -> np.ndarray:
        return self._accel_mean.copy()

    @property
    def accel_std(self) -> np.ndarray:
        if self.sample_count < 2:
            return np.zeros(3)
        return np.sqrt(self._accel_m2 / (self.sample_count - 1))

    @property
    def gyro_std(self) -> np.ndarray:
        if self.sample_count < 2:
            return np.zeros(3)
        return np.sqrt(self._gyro_m2 / (self.sample_count - 1))

    def is_stationary(self) -> bool:
        """Whether the accumulated window looks like a device at rest."""
        return bool(np.all(self.accel_std < MAX_STATIONARY_ACCEL_STD)
                    and np.all(self.gyro_std < MAX_STATIONARY_GYRO_STD))

    def to_calibration(self) -> Calibration:
        if self.sample_count == 0:
            return Calibration(gravity_magnitude=self.g_nominal)
        gyro_bias = self._gyro_mean.copy()
        if self.assume_level:
            accel_bias = self._accel_mean - np.array([0.0, 0.0, self.g_nominal])
            gravity = self.g_nominal
        else:
            accel_bias = np.zeros(3)
            gravity = float(np.linalg.norm(self._accel_mean))
        return Calibration(accel_bias=accel_bias, gyro_bias=gyro_bias, gravity_magnitude=gravity)


def attitude_from_gravity(accel_mean) -> np.ndarray:
    """
    Roll/pitch-only quaternion [w,x,y,z] that rotates the measured gravity
    direction onto world +Z. Yaw is left at zero.
    """
    a = vec3(accel_mean)
    norm = np.linalg.norm(a)
    if norm < 1e-9:
        return np.array([1.0, 0.0, 0.0, 0.0])
    a = a / norm
    z = np.array([0.0, 0.0, 1.0])
    axis = np.cross(a, z)
    s = np.linalg.norm(axis)
    c = float(np.dot(a, z))
    if s < 1e-12:
        if c > 0:
            return np.array([1.0, 0.0, 0.0, 0.0])
        # Upside down: half turn about body X
        return np.array([0.0, 1.0, 0.0, 0.0])
    angle = np.arctan2(s, c)
    axis = axis / s
    return np.concatenate([[np.cos(angle / 2)], np.sin(angle / 2) * axis])
