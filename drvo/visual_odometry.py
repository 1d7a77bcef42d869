#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Visual Odometry Controller Module

Per-frame pipeline: detect -> match against the last keyframe -> median-flow
pose delta -> outlier clamp / velocity smoothing -> pose + keyframe policy.

Matching is always against the last keyframe rather than the previous frame,
which bounds drift while the camera hovers around one viewpoint.

Threading:
----------
process_frame() has a single caller (usually a FrameWorker). reset() may come
from any thread at any time. Frame work runs on a snapshot taken under the
lock; the result is committed only if no reset happened meanwhile, otherwise
it is dropped.

Author: DRVO project
"""

import threading
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from . import config as drvo_config
from .feature_detector import as_gray_image, detect_corners
from .feature_matcher import match_features
from .math_utils import quat_angle_between
from .pose_estimator import PoseDelta, estimate_pose_delta
from .pose_types import CameraFrame, Keyframe, Pose, TrackState


class TrackingState(Enum):
    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"


def _empty_quality() -> dict:
    return {
        'match_count': 0,
        'inlier_ratio': 0.0,
        'inlier_count': 0,
        'outlier_rejected': False,
        'repeated': False,
    }


class VisualOdometryController:
    """Keyframe-based monocular VO with a heuristic translation scale."""

    def __init__(self, cfg: Optional[drvo_config.TrackingConfig] = None):
        self.cfg = cfg if cfg is not None else drvo_config.TrackingConfig()
        self._lock = threading.Lock()
        self._epoch = 0
        self._init_state()

    def _init_state(self):
        self._state = TrackingState.UNINITIALIZED
        self._track = TrackState()
        self._velocity = np.zeros(3)
        self.last_quality = _empty_quality()
        self.stats = {
            'frames': 0,
            'skipped': 0,
            'repeated': 0,
            'outlier_rejected': 0,
            'keyframes': 0,
            'resolution_changes': 0,
        }

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def pose_history(self) -> Tuple[Pose, ...]:
        with self._lock:
            return tuple(self._track.pose_history)

    @property
    def keyframes(self) -> Tuple[Keyframe, ...]:
        with self._lock:
            return tuple(self._track.keyframes)

    @property
    def velocity(self) -> np.ndarray:
        return self._velocity.copy()

    def reset(self):
        """Back to UNINITIALIZED; a frame in flight is discarded."""
        with self._lock:
            self._epoch += 1
            self._init_state()
        print("[VO] Reset")

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def _skip(self, timestamp: float, reason: str) -> None:
        with self._lock:
            self.stats['skipped'] += 1
            count = self.stats['skipped']
        if count == 1 or drvo_config.VERBOSE_VO:
            print(f"[VO] Skipped frame t={timestamp}: {reason} (total={count})")
        return None

    def process(self, frame: CameraFrame) -> Optional[Pose]:
        return self.process_frame(frame.image, frame.width, frame.height, frame.timestamp, frame.intrinsics)

    def process_frame(self, image, width: int, height: int, timestamp: float,
                      intrinsics: Optional[Sequence[float]] = None) -> Optional[Pose]:
        """
        Process one grayscale frame.

        Args:
            image: Grayscale buffer (bytes-like or ndarray), row-major
            width, height: Frame dimensions in pixels
            timestamp: Frame time [s]
            intrinsics: [fx, fy, cx, cy]; frames without them are skipped

        Returns:
            The new Pose, or None if the frame was skipped or discarded by a
            concurrent reset
        """
        cfg = self.cfg
        if intrinsics is None or len(intrinsics) < 4:
            return self._skip(timestamp, "missing intrinsics")
        if not np.all(np.isfinite(np.asarray(intrinsics[:4], dtype=float))) \
                or float(intrinsics[0]) == 0.0 or float(intrinsics[1]) == 0.0:
            return self._skip(timestamp, "invalid intrinsics")
        img = as_gray_image(image, width, height)
        if img is None:
            return self._skip(timestamp, f"malformed image {width}x{height}")
        flat = np.clip(img, 0, 255).astype(np.uint8).reshape(-1)

        with self._lock:
            epoch = self._epoch
            state = self._state
            last_kf = self._track.keyframes[-1] if self._track.keyframes else None
            last_pose = self._track.pose_history[-1] if self._track.pose_history else None
            velocity = self._velocity.copy()

        features = tuple(detect_corners(flat, width, height,
                                        threshold=cfg.corner_threshold,
                                        max_features=cfg.max_features,
                                        min_distance=cfg.min_feature_distance,
                                        harris_k=cfg.harris_k))

        if state == TrackingState.UNINITIALIZED or last_kf is None:
            pose = Pose.identity(timestamp)
            keyframe = Keyframe(pose, features, flat, width, height)
            with self._lock:
                if epoch != self._epoch:
                    return None
                self._track.keyframes.append(keyframe)
                self._track.pose_history.append(pose)
                self._state = TrackingState.TRACKING
                self.last_quality = _empty_quality()
                self.stats['frames'] += 1
                self.stats['keyframes'] += 1
            print(f"[VO] Initialized at t={timestamp:.3f} with {len(features)} features")
            return pose

        if (last_kf.width, last_kf.height) != (width, height):
            return self._rekey(last_kf, last_pose, features, flat, width, height, timestamp, epoch)

        matches = match_features(last_kf.features, features, last_kf.image, flat, width, height,
                                 patch_size=cfg.patch_size,
                                 max_search_radius=cfg.max_search_radius,
                                 ssd_threshold=cfg.ssd_threshold,
                                 ratio=cfg.ratio_test,
                                 max_prev_features=cfg.max_prev_features)
        matches = [m for m in matches
                   if 0 <= m.prev_index < len(last_kf.features) and 0 <= m.curr_index < len(features)]

        quality = _empty_quality()
        quality['match_count'] = len(matches)
        new_keyframe = None

        if len(matches) < cfg.min_track_matches:
            quality['repeated'] = True
            pose = last_pose.with_timestamp(timestamp)
        else:
            delta = estimate_pose_delta(matches, last_kf.features, features, intrinsics,
                                        min_matches=cfg.min_pose_matches,
                                        flow_scale=cfg.flow_scale,
                                        mad_multiplier=cfg.inlier_mad_multiplier,
                                        threshold_min=cfg.inlier_threshold_min,
                                        threshold_max=cfg.inlier_threshold_max)
            quality['inlier_ratio'] = delta.inlier_ratio
            quality['inlier_count'] = delta.inlier_count
            velocity = self._smooth_velocity(delta, velocity, quality)
            pose = Pose(timestamp, last_pose.position + velocity, last_pose.orientation)

            moved = float(np.linalg.norm(pose.position - last_kf.pose.position))
            turned = np.degrees(quat_angle_between(pose.orientation, last_kf.pose.orientation))
            if moved > cfg.keyframe_translation or turned > cfg.keyframe_rotation_deg:
                new_keyframe = Keyframe(pose, features, flat, width, height)

        with self._lock:
            if epoch != self._epoch:
                return None
            self._track.pose_history.append(pose)
            self._velocity = velocity
            self.last_quality = quality
            self.stats['frames'] += 1
            if quality['repeated']:
                self.stats['repeated'] += 1
            if quality['outlier_rejected']:
                self.stats['outlier_rejected'] += 1
            if new_keyframe is not None:
                self._track.keyframes.append(new_keyframe)
                self.stats['keyframes'] += 1

        if new_keyframe is not None:
            print(f"[VO] Creating new keyframe at t={timestamp:.3f} "
                  f"(total={self.stats['keyframes']}, features={len(features)})")
        if drvo_config.VERBOSE_VO:
            print(f"[VO] t={timestamp:.3f} matches={quality['match_count']} "
                  f"inliers={quality['inlier_count']} ratio={quality['inlier_ratio']:.2f} "
                  f"p={pose.position}")
        return pose

    def _rekey(self, last_kf: Keyframe, last_pose: Pose, features, flat: np.ndarray,
               width: int, height: int, timestamp: float, epoch: int) -> Optional[Pose]:
        """
        Hold the last pose and restart tracking from this frame.

        Keyframe pixels cannot be compared across a resolution change, so the
        frame becomes the new keyframe and velocity is cleared.
        """
        pose = last_pose.with_timestamp(timestamp)
        keyframe = Keyframe(pose, features, flat, width, height)
        with self._lock:
            if epoch != self._epoch:
                return None
            self._track.keyframes.append(keyframe)
            self._track.pose_history.append(pose)
            self._velocity = np.zeros(3)
            self.last_quality = _empty_quality()
            self.stats['frames'] += 1
            self.stats['keyframes'] += 1
            self.stats['resolution_changes'] += 1
        print(f"[VO] Resolution changed {last_kf.width}x{last_kf.height} -> {width}x{height} "
              f"at t={timestamp:.3f}, new keyframe with {len(features)} features")
        return pose

    def _smooth_velocity(self, delta: PoseDelta, velocity: np.ndarray, quality: dict) -> np.ndarray:
        speed = float(np.linalg.norm(delta.translation))
        if speed > self.cfg.max_speed:
            quality['outlier_rejected'] = True
            if drvo_config.VERBOSE_VO:
                print(f"[VO] Outlier step rejected: |t|={speed:.3f} > {self.cfg.max_speed}")
            return velocity
        alpha = self.cfg.velocity_smoothing
        return alpha * delta.translation + (1.0 - alpha) * velocity
