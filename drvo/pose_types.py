#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DRVO Pose Types Module

Data classes shared by the dead-reckoning and visual-odometry tracks, plus
pose interpolation helpers.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation as R_scipy, Slerp

from .config import STANDARD_GRAVITY
from .math_utils import IDENTITY_QUAT, quat_normalize, quaternion_to_yaw, vec3


def _frozen_array(values, shape) -> np.ndarray:
    arr = np.array(values, dtype=float).reshape(shape)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Pose:
    """Timestamped position + orientation. Immutable once created."""
    timestamp: float  # seconds
    position: np.ndarray  # (3,) world frame
    orientation: np.ndarray  # (4,) [w,x,y,z], body -> world

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', float(self.timestamp))
        object.__setattr__(self, 'position', _frozen_array(self.position, (3,)))
        object.__setattr__(self, 'orientation',
                           _frozen_array(quat_normalize(np.asarray(self.orientation, dtype=float)), (4,)))

    @classmethod
    def identity(cls, timestamp: float = 0.0) -> 'Pose':
        return cls(timestamp, np.zeros(3), IDENTITY_QUAT)

    def with_timestamp(self, timestamp: float) -> 'Pose':
        return Pose(timestamp, self.position, self.orientation)

    @property
    def yaw(self) -> float:
        return quaternion_to_yaw(self.orientation)


@dataclass(frozen=True, eq=False)
class ImuSample:
    """Single IMU measurement (body frame)."""
    timestamp: float  # seconds
    accel: np.ndarray  # m/s²
    gyro: np.ndarray  # rad/s
    mag: Optional[np.ndarray] = None  # µT, optional

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', float(self.timestamp))
        object.__setattr__(self, 'accel', _frozen_array(self.accel, (3,)))
        object.__setattr__(self, 'gyro', _frozen_array(self.gyro, (3,)))
        if self.mag is not None:
            object.__setattr__(self, 'mag', _frozen_array(self.mag, (3,)))


@dataclass
class Calibration:
    """
    IMU calibration shared by reference into the integrator.

    Biases are subtracted from the raw readings before any integration step.
    """
    accel_bias: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    gyro_bias: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    gravity_magnitude: float = STANDARD_GRAVITY

    def __post_init__(self):
        self.accel_bias = vec3(self.accel_bias)
        self.gyro_bias = vec3(self.gyro_bias)
        self.gravity_magnitude = float(self.gravity_magnitude)

    @classmethod
    def from_config(cls, cfg) -> 'Calibration':
        return cls(cfg.accel_bias.copy(), cfg.gyro_bias.copy(), cfg.gravity)


@dataclass(frozen=True)
class Feature:
    """Corner detected in one frame."""
    point: Tuple[float, float]  # (x, y) pixels
    response: float
    score: float


@dataclass(frozen=True)
class Match:
    """Indices into the previous / current feature lists."""
    prev_index: int
    curr_index: int
    score: float


@dataclass(frozen=True, eq=False)
class Keyframe:
    """Stored matching reference: pose, features and the grayscale image."""
    pose: Pose
    features: Tuple[Feature, ...]
    image: np.ndarray  # flat uint8, row-major, width*height
    width: int
    height: int


@dataclass
class TrackState:
    """Pose history and keyframes of one engine."""
    pose_history: List[Pose] = field(default_factory=list)
    keyframes: List[Keyframe] = field(default_factory=list)

    def reset(self):
        self.pose_history.clear()
        self.keyframes.clear()


@dataclass(frozen=True, eq=False)
class CameraFrame:
    """Camera frame as delivered by the platform collaborator."""
    image: object  # bytes-like or ndarray, grayscale
    width: int
    height: int
    timestamp: float
    intrinsics: Optional[Sequence[float]] = None  # [fx, fy, cx, cy]


# =============================================================================
# Pose helpers
# =============================================================================

def lerp_pose(a: Pose, b: Pose, t: float) -> Pose:
    """
    Interpolate between two poses at time t.

    Position is linear, orientation uses slerp. Times outside [a, b] clamp to
    the nearest endpoint.
    """
    if t <= a.timestamp:
        return a
    if t >= b.timestamp:
        return b
    fraction = (t - a.timestamp) / (b.timestamp - a.timestamp)
    pos = a.position + (b.position - a.position) * fraction

    qa, qb = a.orientation, b.orientation
    rots = R_scipy.from_quat([[qa[1], qa[2], qa[3], qa[0]],
                              [qb[1], qb[2], qb[3], qb[0]]])
    x, y, z, w = Slerp([0.0, 1.0], rots)([fraction]).as_quat()[0]
    return Pose(t, pos, np.array([w, x, y, z]))


def positions_of(poses: Sequence[Pose]) -> np.ndarray:
    """Stack pose positions into an (N, 3) array."""
    if len(poses) == 0:
        return np.zeros((0, 3), dtype=float)
    return np.vstack([p.position for p in poses])
