#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pedestrian Dead Reckoning Module

Step-based alternative to strapdown integration for a device carried by a
walking person. Double integration drifts quadratically with accelerometer
bias; counting steps and advancing a fixed stride along the filter heading
drifts only with heading error and stride mismatch.

Pipeline per IMU sample:
    1. low-pass gravity estimate, linear accel = accel - gravity
    2. EWMA-smoothed linear accel magnitude into DynamicStepCounter
    3. Madgwick update for heading
    4. on a step: position += stride * (cos yaw, sin yaw, 0)

Author: DRVO project
"""

import threading
from typing import Optional, Tuple

import numpy as np

from .config import TrackingConfig
from .math_utils import vec3
from .orientation_filter import MadgwickFilter
from .pose_types import Pose, TrackState

GRAVITY_LPF_ALPHA = 0.8


class DynamicStepCounter:
    """
    Peak detector with thresholds that follow the running mean magnitude.

    A step is counted when the smoothed magnitude rises above
    mean + sensitivity, at most once per crossing, and no sooner than
    min_interval after the previous step. The detector re-arms when the
    signal falls below mean - sensitivity.
    """

    def __init__(self, sensitivity: float = 0.65, min_interval: float = 0.25, ewma_beta: float = 0.25):
        self.sensitivity = float(sensitivity)
        self.min_interval = float(min_interval)
        self.ewma_beta = float(ewma_beta)
        self.reset()

    def reset(self):
        self.step_count = 0
        self.upper_threshold = 10.8
        self.lower_threshold = 8.8
        self._peak_found = False
        self._first_run = True
        self._avg = 0.0
        self._run_count = 0
        self._smoothed = 0.0
        self._last_step_t = None

    def _update_thresholds(self, value: float):
        self._run_count += 1
        if self._first_run:
            self._avg = value
            self._first_run = False
        else:
            self._avg = (self._avg * (self._run_count - 1) + value) / self._run_count
        self.upper_threshold = self._avg + self.sensitivity
        self.lower_threshold = self._avg - self.sensitivity

    def find_step(self, magnitude: float, timestamp: float) -> bool:
        if self._first_run:
            self._smoothed = magnitude
        else:
            self._smoothed = self.ewma_beta * magnitude + (1.0 - self.ewma_beta) * self._smoothed
        self._update_thresholds(self._smoothed)

        refractory_ok = self._last_step_t is None or (timestamp - self._last_step_t) >= self.min_interval
        if self._smoothed > self.upper_threshold and refractory_ok:
            if not self._peak_found:
                self.step_count += 1
                self._peak_found = True
                self._last_step_t = timestamp
                return True
        elif self._smoothed < self.lower_threshold:
            self._peak_found = False
        return False


class PedestrianDeadReckoning:
    """Stride x heading dead reckoning; one pose per detected step."""

    def __init__(self, cfg: Optional[TrackingConfig] = None):
        self.cfg = cfg if cfg is not None else TrackingConfig()
        self.stride_length = self.cfg.stride_length
        self.step_counter = DynamicStepCounter(self.cfg.step_sensitivity,
                                               self.cfg.step_min_interval,
                                               self.cfg.step_ewma_beta)
        self._filter = MadgwickFilter(beta=self.cfg.beta)
        self._lock = threading.Lock()
        self._init_state()

    def _init_state(self):
        self._gravity = np.array([0.0, 0.0, self.cfg.gravity])
        self._position = np.zeros(3)
        self._track = TrackState()
        self._track.pose_history.append(Pose.identity(0.0))

    @property
    def position(self) -> np.ndarray:
        return self._position.copy()

    @property
    def step_count(self) -> int:
        return self.step_counter.step_count

    @property
    def pose_history(self):
        with self._lock:
            return tuple(self._track.pose_history)

    def set_stride_length(self, stride_length: float):
        if stride_length <= 0:
            raise ValueError("stride_length must be positive")
        self.stride_length = float(stride_length)

    def reset(self):
        with self._lock:
            self.step_counter.reset()
            self._filter.reset()
            self._init_state()

    def process_sample(self, timestamp: float, accel, gyro, dt: float) -> Tuple[bool, Optional[Pose]]:
        """
        Returns:
            (step_detected, pose) - pose is the new Pose on a step, else None
        """
        if not (np.isfinite(dt) and 0.0 < dt <= self.cfg.max_dt):
            return False, None
        accel = vec3(accel)
        gyro = vec3(gyro)

        with self._lock:
            q = self._filter.update(gyro, accel, dt)
            self._gravity = GRAVITY_LPF_ALPHA * self._gravity + (1.0 - GRAVITY_LPF_ALPHA) * accel
            magnitude = float(np.linalg.norm(accel - self._gravity))

            if not self.step_counter.find_step(magnitude, timestamp):
                return False, None

            yaw = self._filter.yaw
            self._position = self._position + self.stride_length * np.array([np.cos(yaw), np.sin(yaw), 0.0])
            pose = Pose(timestamp, self._position, q)
            self._track.pose_history.append(pose)
        return True, pose
