#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Dead-Reckoning Module

Strapdown inertial integration in the ENU world frame:

    1. subtract calibration biases from accel and gyro
    2. Madgwick update -> orientation
    3. rotate accel body -> world, subtract gravity (0, 0, g)
    4. v += a·dt ;  p += v·dt + ½·a·dt²

Samples with dt outside (0, max_dt] or non-finite readings are rejected and
leave the state untouched.

Author: DRVO project
"""

import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np

from . import config as drvo_config
from .magnetometer import ComplementaryHeadingFilter, calibrate_magnetometer, compute_yaw_from_mag
from .math_utils import rotate_body_to_world, vec3
from .numerical_checks import normalize_checked, require_finite
from .orientation_filter import MadgwickFilter
from .pose_types import Calibration, ImuSample, Pose, TrackState


@dataclass(frozen=True, eq=False)
class DeadReckoningState:
    """Latest pose and world-frame velocity."""
    pose: Pose
    velocity: np.ndarray

    def __post_init__(self):
        v = np.array(self.velocity, dtype=float).reshape(3)
        v.setflags(write=False)
        object.__setattr__(self, 'velocity', v)


def _initial_state() -> DeadReckoningState:
    return DeadReckoningState(pose=Pose.identity(0.0), velocity=np.zeros(3))


class DeadReckoningEngine:
    """
    Single-writer strapdown integrator.

    Callers serialise process_sample() calls; reset() may come from any
    thread and waits for the sample in flight to finish.
    """

    def __init__(self, calibration: Optional[Calibration] = None,
                 orientation_filter: Optional[MadgwickFilter] = None,
                 cfg: Optional[drvo_config.TrackingConfig] = None):
        self.cfg = cfg if cfg is not None else drvo_config.TrackingConfig()
        self._calibration = calibration if calibration is not None else Calibration.from_config(self.cfg)
        self._filter = orientation_filter if orientation_filter is not None else MadgwickFilter(beta=self.cfg.beta)
        self._heading_filter = ComplementaryHeadingFilter(self.cfg.heading_alpha)
        self._state = _initial_state()
        self._track = TrackState()
        self._lock = threading.Lock()
        self.stats = {
            'samples': 0,
            'rejected_dt': 0,
            'rejected_nonfinite': 0,
            'mag_updates': 0,
        }

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def state(self) -> DeadReckoningState:
        return self._state

    @property
    def calibration(self) -> Calibration:
        return self._calibration

    @property
    def orientation_filter(self) -> MadgwickFilter:
        return self._filter

    @property
    def pose_history(self) -> Tuple[Pose, ...]:
        with self._lock:
            return tuple(self._track.pose_history)

    def update_calibration(self, calibration: Calibration):
        with self._lock:
            self._calibration = calibration

    def reset(self):
        """Zero position, velocity, orientation and history."""
        with self._lock:
            self._filter.reset()
            self._state = _initial_state()
            self._track.reset()
        print("[DR] Reset")

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def process_sample(self, timestamp: float, accel, gyro, dt: float) -> Optional[Pose]:
        """
        Process one IMU sample (rad/s gyro, m/s² accel).

        Returns:
            The new Pose, or None if the sample was rejected
        """
        dt = float(dt)
        if not (np.isfinite(dt) and 0.0 < dt <= self.cfg.max_dt):
            with self._lock:
                self.stats['rejected_dt'] += 1
                count = self.stats['rejected_dt']
            if count == 1 or drvo_config.VERBOSE_DEBUG:
                print(f"[DR] Rejected sample t={timestamp}: dt={dt} outside (0, {self.cfg.max_dt}] "
                      f"(total={count})")
            return None

        accel = vec3(accel)
        gyro = vec3(gyro)
        if not (require_finite("accel", accel, t=timestamp) and require_finite("gyro", gyro, t=timestamp)):
            with self._lock:
                self.stats['rejected_nonfinite'] += 1
            return None

        with self._lock:
            cal = self._calibration
            corrected_gyro = gyro - cal.gyro_bias
            corrected_accel = accel - cal.accel_bias

            q = self._filter.update(corrected_gyro, corrected_accel, dt)
            q, ok = normalize_checked(q, name="dr_orientation", t=timestamp)
            if not ok:
                self._filter.reset()
                self.stats['rejected_nonfinite'] += 1
                return None

            world_accel = rotate_body_to_world(q, corrected_accel)
            linear_accel = world_accel - np.array([0.0, 0.0, cal.gravity_magnitude])

            velocity = self._state.velocity + linear_accel * dt
            position = self._state.pose.position + velocity * dt + linear_accel * (0.5 * dt * dt)

            pose = Pose(timestamp, position, q)
            self._state = DeadReckoningState(pose=pose, velocity=velocity)
            self._track.pose_history.append(pose)
            self.stats['samples'] += 1

        if drvo_config.VERBOSE_DEBUG:
            print(f"[DR] t={timestamp:.3f} p={position} v={velocity} a_lin={linear_accel}")
        return pose

    def process(self, sample: ImuSample, dt: float) -> Optional[Pose]:
        """Process an ImuSample; the magnetometer reading, if any, is fused too."""
        pose = self.process_sample(sample.timestamp, sample.accel, sample.gyro, dt)
        if pose is not None and sample.mag is not None and self.cfg.use_magnetometer:
            self.process_magnetometer(sample.mag, sample.timestamp)
        return pose

    def process_stream(self, samples: Iterable[ImuSample]) -> List[Pose]:
        """
        Process samples in timestamp order, dt taken from consecutive
        timestamps. The first sample only seeds the clock.
        """
        poses = []
        last_t = None
        for sample in samples:
            if last_t is None:
                last_t = sample.timestamp
                continue
            pose = self.process(sample, sample.timestamp - last_t)
            last_t = sample.timestamp
            if pose is not None:
                poses.append(pose)
        return poses

    def process_magnetometer(self, mag_raw, timestamp: float = None) -> Optional[float]:
        """
        Fuse a magnetometer heading into the filter yaw.

        Returns:
            The fused yaw, or None if the reading carried no usable heading
        """
        mag = calibrate_magnetometer(vec3(mag_raw), self.cfg.mag_hard_iron, self.cfg.mag_soft_iron)
        if not require_finite("mag", mag, t=timestamp):
            return None
        with self._lock:
            yaw_mag, quality = compute_yaw_from_mag(mag, self._filter.orientation, self.cfg.mag_declination)
            if quality <= 0.0:
                return None
            fused = self._heading_filter.filter(yaw_mag, self._filter.yaw)
            self._filter.set_yaw(fused)
            self.stats['mag_updates'] += 1
        return fused
