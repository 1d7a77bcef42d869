#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Magnetometer Heading Module

Magnetometer calibration, tilt-compensated heading, and a complementary
filter that fuses the magnetometer heading with the gyro-propagated yaw.

Frame Convention:
-----------------
Heading is ENU yaw: 0 = body X pointing East, π/2 = North, CCW positive.
Declination is East-positive (magnetic north rotated clockwise from true).

Author: DRVO project
"""

from typing import Optional, Tuple

import numpy as np

from .math_utils import angle_wrap, quat_multiply, quaternion_to_yaw, rotate_body_to_world, yaw_quat

DEFAULT_MAG_HARD_IRON = np.zeros(3, dtype=float)
DEFAULT_MAG_SOFT_IRON = np.eye(3, dtype=float)

MIN_HORIZONTAL_FIELD = 1e-6


def calibrate_magnetometer(mag_raw: np.ndarray,
                           hard_iron: Optional[np.ndarray] = None,
                           soft_iron: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Apply hard-iron and soft-iron calibration to raw magnetometer reading.

    Calibration model: M_calibrated = soft_iron @ (M_raw - hard_iron)
    """
    if hard_iron is None:
        hard_iron = DEFAULT_MAG_HARD_IRON
    if soft_iron is None:
        soft_iron = DEFAULT_MAG_SOFT_IRON
    return soft_iron @ (np.asarray(mag_raw, dtype=float) - hard_iron)


def compute_yaw_from_mag(mag_body: np.ndarray, q_wxyz: np.ndarray,
                         mag_declination: float = 0.0) -> Tuple[float, float]:
    """
    Tilt-compensated yaw from a calibrated magnetometer reading.

    Roll and pitch are taken from the current attitude; its yaw is
    discarded so the field is levelled into a heading-free frame.

    Args:
        mag_body: Calibrated magnetometer reading in body frame [mx, my, mz]
        q_wxyz: Current attitude quaternion [w,x,y,z] (body -> world)
        mag_declination: Magnetic declination in radians (East positive)

    Returns: (yaw_rad, quality_score)
        yaw_rad: ENU yaw in radians [-π, π]
        quality_score: Horizontal / total field strength, 0 if unusable
    """
    q_level = quat_multiply(yaw_quat(-quaternion_to_yaw(q_wxyz)), q_wxyz)
    mag_level = rotate_body_to_world(q_level, mag_body)

    horizontal = float(np.hypot(mag_level[0], mag_level[1]))
    total = float(np.linalg.norm(mag_level))
    if horizontal < MIN_HORIZONTAL_FIELD or total <= 0.0:
        return quaternion_to_yaw(q_wxyz), 0.0

    theta = np.arctan2(mag_level[1], mag_level[0])
    yaw = angle_wrap(np.pi / 2 - mag_declination - theta)
    return yaw, float(np.clip(horizontal / total, 0.0, 1.0))


class ComplementaryHeadingFilter:
    """
    Complementary filter for heading fusion.

    alpha is the gyro trust: 0.98 keeps 98% of the gyro heading and pulls
    2% towards the magnetometer each call. Blending happens on the wrapped
    difference so headings either side of ±π do not average to zero.
    """

    def __init__(self, alpha: float = 0.98):
        self.alpha = float(alpha)

    def filter(self, mag_heading: float, gyro_heading: float) -> float:
        diff = angle_wrap(mag_heading - gyro_heading)
        return angle_wrap(gyro_heading + (1.0 - self.alpha) * diff)
