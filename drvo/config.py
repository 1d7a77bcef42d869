#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DRVO Configuration Module
=========================

Handles YAML configuration loading and defines the tuning constants for the
dead-reckoning and visual-odometry engines.

All thresholds live in one TrackingConfig instance which is handed to each
engine at construction. Engines never read module globals for tuning, so
tests can vary any threshold independently.

Configuration Structure:
------------------------
The YAML config file contains (every section and key is optional):
- imu: accel/gyro bias, gravity magnitude, dt guard
- orientation_filter: Madgwick gain
- magnetometer: hard/soft-iron calibration, heading fusion
- pedestrian: stride length and step detector tuning
- detector: Harris corner detection thresholds
- matcher: patch matching thresholds
- pose_estimator: median-flow inlier thresholds and flow scale
- visual_odometry: track/keyframe thresholds, outlier clamp, smoothing
- runtime: frame queue size, calibration window

Frame Conventions:
------------------
- World Frame: ENU (East-North-Up), gravity along +Z of the accelerometer
  reading when the device lies flat
- Body Frame: device frame as reported by the motion sensors
- Camera: pixel coordinates, X-right, Y-down
- Quaternion: [w, x, y, z] Hamilton convention

Author: DRVO project
"""

import os
from dataclasses import dataclass, field, fields
from typing import Dict, Any

import yaml
import numpy as np

# ========================================
# Debug verbosity control
# ========================================
VERBOSE_DEBUG = False  # Per-IMU sample debug
VERBOSE_VO = False     # Per-frame VO debug

STANDARD_GRAVITY = 9.80665


@dataclass
class TrackingConfig:
    """Every tunable of the DR and VO engines."""

    # IMU / dead reckoning
    accel_bias: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    gyro_bias: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    gravity: float = STANDARD_GRAVITY
    max_dt: float = 0.5
    beta: float = 0.04

    # Magnetometer heading fusion
    use_magnetometer: bool = False
    mag_hard_iron: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    mag_soft_iron: np.ndarray = field(default_factory=lambda: np.eye(3, dtype=float))
    mag_declination: float = 0.0
    heading_alpha: float = 0.98  # gyro trust in complementary filter

    # Pedestrian dead reckoning
    stride_length: float = 0.75
    step_sensitivity: float = 0.65
    step_min_interval: float = 0.25  # seconds
    step_ewma_beta: float = 0.25

    # Corner detector
    harris_k: float = 0.04
    corner_threshold: float = 20.0
    max_features: int = 150
    min_feature_distance: float = 15.0

    # Feature matcher
    patch_size: int = 15
    max_search_radius: int = 60
    max_prev_features: int = 50
    ssd_threshold: float = 10000.0
    ratio_test: float = 0.8

    # Pose-delta estimator
    min_pose_matches: int = 8
    flow_scale: float = 0.05
    inlier_mad_multiplier: float = 3.0
    inlier_threshold_min: float = 0.001
    inlier_threshold_max: float = 0.05

    # Visual odometry controller
    min_track_matches: int = 4
    keyframe_translation: float = 0.15
    keyframe_rotation_deg: float = 3.0
    max_speed: float = 0.5
    velocity_smoothing: float = 0.3

    # Runtime
    frame_queue_size: int = 1
    calibration_samples: int = 300

    def copy(self) -> "TrackingConfig":
        kwargs = {}
        for f in fields(self):
            val = getattr(self, f.name)
            kwargs[f.name] = val.copy() if isinstance(val, np.ndarray) else val
        return TrackingConfig(**kwargs)


# YAML section -> {yaml key: TrackingConfig attribute}
_SECTION_KEYS = {
    'imu': {
        'accel_bias': 'accel_bias',
        'gyro_bias': 'gyro_bias',
        'g_norm': 'gravity',
        'max_dt': 'max_dt',
    },
    'orientation_filter': {
        'beta': 'beta',
    },
    'magnetometer': {
        'use_magnetometer': 'use_magnetometer',
        'hard_iron_offset': 'mag_hard_iron',
        'soft_iron_matrix': 'mag_soft_iron',
        'declination': 'mag_declination',
        'heading_alpha': 'heading_alpha',
    },
    'pedestrian': {
        'stride_length': 'stride_length',
        'sensitivity': 'step_sensitivity',
        'min_step_interval': 'step_min_interval',
        'ewma_beta': 'step_ewma_beta',
    },
    'detector': {
        'harris_k': 'harris_k',
        'threshold': 'corner_threshold',
        'max_features': 'max_features',
        'min_distance': 'min_feature_distance',
    },
    'matcher': {
        'patch_size': 'patch_size',
        'max_search_radius': 'max_search_radius',
        'max_prev_features': 'max_prev_features',
        'ssd_threshold': 'ssd_threshold',
        'ratio_test': 'ratio_test',
    },
    'pose_estimator': {
        'min_matches': 'min_pose_matches',
        'flow_scale': 'flow_scale',
        'mad_multiplier': 'inlier_mad_multiplier',
        'threshold_min': 'inlier_threshold_min',
        'threshold_max': 'inlier_threshold_max',
    },
    'visual_odometry': {
        'min_matches': 'min_track_matches',
        'keyframe_translation': 'keyframe_translation',
        'keyframe_rotation_deg': 'keyframe_rotation_deg',
        'max_speed': 'max_speed',
        'velocity_smoothing': 'velocity_smoothing',
    },
    'runtime': {
        'frame_queue_size': 'frame_queue_size',
        'calibration_samples': 'calibration_samples',
    },
}

_VECTOR_KEYS = {'accel_bias', 'gyro_bias', 'mag_hard_iron'}
_MATRIX_KEYS = {'mag_soft_iron'}
_INT_KEYS = {
    'max_features', 'patch_size', 'max_search_radius', 'max_prev_features',
    'min_pose_matches', 'min_track_matches', 'frame_queue_size',
    'calibration_samples',
}
_BOOL_KEYS = {'use_magnetometer'}


def _coerce(attr: str, value: Any) -> Any:
    if attr in _VECTOR_KEYS:
        arr = np.array(value, dtype=float).reshape(-1)
        if arr.shape != (3,):
            raise ValueError(f"{attr} must have 3 elements, got {arr.shape[0]}")
        return arr
    if attr in _MATRIX_KEYS:
        arr = np.array(value, dtype=float)
        if arr.shape != (3, 3):
            raise ValueError(f"{attr} must be a 3x3 matrix, got shape {arr.shape}")
        return arr
    if attr in _INT_KEYS:
        return int(value)
    if attr in _BOOL_KEYS:
        return bool(value)
    return float(value)


def config_from_dict(raw: Dict[str, Any], base: TrackingConfig = None) -> TrackingConfig:
    """
    Build a TrackingConfig from a nested dictionary (parsed YAML layout).

    Unknown sections are ignored; unknown keys inside a known section raise,
    since a typo there would silently leave a threshold at its default.

    Args:
        raw: Nested dict {section: {key: value}}
        base: Config to start from (defaults if None)

    Returns:
        New TrackingConfig; base is not modified
    """
    cfg = base.copy() if base is not None else TrackingConfig()
    raw = raw or {}
    for section, keymap in _SECTION_KEYS.items():
        sect = raw.get(section)
        if not sect:
            continue
        if not isinstance(sect, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")
        for key, value in sect.items():
            if key not in keymap:
                raise ValueError(f"Unknown key '{key}' in config section '{section}'")
            attr = keymap[key]
            setattr(cfg, attr, _coerce(attr, value))
    _validate(cfg)
    return cfg


def _validate(cfg: TrackingConfig) -> None:
    if cfg.max_dt <= 0:
        raise ValueError("imu.max_dt must be positive")
    if cfg.gravity <= 0:
        raise ValueError("imu.g_norm must be positive")
    if cfg.patch_size < 3 or cfg.patch_size % 2 == 0:
        raise ValueError("matcher.patch_size must be an odd number >= 3")
    if not 0.0 < cfg.velocity_smoothing <= 1.0:
        raise ValueError("visual_odometry.velocity_smoothing must be in (0, 1]")
    if not 0.0 <= cfg.heading_alpha <= 1.0:
        raise ValueError("magnetometer.heading_alpha must be in [0, 1]")
    if cfg.frame_queue_size < 1:
        raise ValueError("runtime.frame_queue_size must be >= 1")


def load_config(config_path: str) -> TrackingConfig:
    """
    Load YAML configuration file on top of the defaults.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        TrackingConfig

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
        ValueError: If a value is out of range or a key is unknown

    Example:
        >>> cfg = load_config("configs/default.yaml")
        >>> print(f"Madgwick beta: {cfg.beta:.3f}")
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f)

    if raw is not None and not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    cfg = config_from_dict(raw or {})
    print(f"[CONFIG] Loaded {config_path}")
    return cfg
