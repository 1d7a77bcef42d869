#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Trajectory Alignment & Metrics Module

Similarity alignment (Umeyama) of one trajectory onto another and the
error metrics used to compare the dead-reckoning and visual-odometry tracks.

Transform Convention:
---------------------
    dst ≈ scale · Rᵀ · src + t

with R = V·Uᵀ from the SVD of the cross-covariance
cov = (1/n) Σ (dᵢ - μd)(sᵢ - μs)ᵀ = U Σ Vᵀ.

Metrics:
--------
- rmse / mean_abs_error / max_error of per-pose position error
- drift_rate: max_error divided by the elapsed reference time
- relative trajectory error over a fixed time window (RTE)

Author: DRVO project
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .linalg import svd_3x3
from .pose_types import Pose, lerp_pose, positions_of

MIN_SRC_VARIANCE = 1e-12


@dataclass(frozen=True, eq=False)
class AlignmentResult:
    scale: float
    rotation: np.ndarray  # (3, 3)
    translation: np.ndarray  # (3,)
    rmse: float

    def apply(self, points) -> np.ndarray:
        """Map (N, 3) source points into the destination frame."""
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        return self.scale * pts @ self.rotation + self.translation

    def apply_to_poses(self, poses: Sequence[Pose]) -> List[Pose]:
        if len(poses) == 0:
            return []
        moved = self.apply(positions_of(poses))
        return [Pose(p.timestamp, moved[i], p.orientation) for i, p in enumerate(poses)]


@dataclass(frozen=True)
class TrajectoryMetrics:
    rmse: float
    mean_abs_error: float
    max_error: float
    drift_rate: float


def umeyama(src, dst) -> AlignmentResult:
    """
    Least-squares similarity transform mapping src onto dst.

    Args:
        src, dst: (N, 3) corresponding points, N >= 3

    Raises:
        ValueError: if lengths differ or fewer than 3 points are given
    """
    src = np.asarray(src, dtype=float).reshape(-1, 3)
    dst = np.asarray(dst, dtype=float).reshape(-1, 3)
    if len(src) != len(dst):
        raise ValueError(f"umeyama needs equal-length point sets, got {len(src)} and {len(dst)}")
    if len(src) < 3:
        raise ValueError(f"umeyama needs at least 3 points, got {len(src)}")

    n = len(src)
    mean_src = src.mean(axis=0)
    mean_dst = dst.mean(axis=0)
    xs = src - mean_src
    ys = dst - mean_dst
    cov = ys.T @ xs / n

    u, sigma, v = svd_3x3(cov)
    rotation = v @ u.T
    if np.linalg.det(rotation) < 0:
        v = v.copy()
        v[:, 2] *= -1
        rotation = v @ u.T

    var_src = float(np.sum(xs * xs) / n)
    scale = float(np.sum(sigma) / var_src) if var_src >= MIN_SRC_VARIANCE else 1.0
    translation = mean_dst - rotation.T @ (mean_src * scale)

    est = scale * src @ rotation + translation
    rmse = float(np.sqrt(np.mean(np.sum((est - dst) ** 2, axis=1))))
    return AlignmentResult(scale=scale, rotation=rotation, translation=translation, rmse=rmse)


def compute_metrics(ref: Sequence[Pose], est: Sequence[Pose]) -> TrajectoryMetrics:
    """
    Position error metrics of est against ref, index by index.

    Errors use both sequences truncated to the shorter one. drift_rate is
    the max error over the full reference duration. Empty input gives all
    zeros.
    """
    n = min(len(ref), len(est))
    if n == 0:
        return TrajectoryMetrics(0.0, 0.0, 0.0, 0.0)

    errors = np.linalg.norm(positions_of(est[:n]) - positions_of(ref[:n]), axis=1)
    max_error = float(errors.max())
    elapsed = abs(ref[-1].timestamp - ref[0].timestamp)
    return TrajectoryMetrics(
        rmse=float(np.sqrt(np.mean(errors ** 2))),
        mean_abs_error=float(errors.mean()),
        max_error=max_error,
        drift_rate=max_error / elapsed if elapsed > 0 else 0.0,
    )


def associate_by_timestamp(ref: Sequence[Pose], est: Sequence[Pose],
                           max_dt: float = 0.1) -> Tuple[List[Pose], List[Pose]]:
    """
    Pair each estimated pose with the reference interpolated at its time.

    Estimated poses further than max_dt outside the reference time span are
    dropped; inside the span the reference is interpolated with lerp_pose.

    Returns:
        (ref_matched, est_matched) of equal length
    """
    if len(ref) == 0 or len(est) == 0:
        return [], []
    ref_sorted = sorted(ref, key=lambda p: p.timestamp)
    ref_t = np.array([p.timestamp for p in ref_sorted])

    ref_out, est_out = [], []
    for pose in est:
        t = pose.timestamp
        if t < ref_t[0] - max_dt or t > ref_t[-1] + max_dt:
            continue
        j = int(np.searchsorted(ref_t, t, side='right'))
        if j <= 0:
            matched = ref_sorted[0].with_timestamp(t)
        elif j >= len(ref_sorted):
            matched = ref_sorted[-1].with_timestamp(t)
        else:
            matched = lerp_pose(ref_sorted[j - 1], ref_sorted[j], t)
        ref_out.append(matched)
        est_out.append(pose)
    return ref_out, est_out


def align_and_evaluate(ref: Sequence[Pose], est: Sequence[Pose],
                       max_dt: float = 0.1) -> Tuple[AlignmentResult, TrajectoryMetrics]:
    """
    Associate est with ref by time, fit est -> ref with Umeyama and compute
    metrics on the aligned pair.

    Raises:
        ValueError: if fewer than 3 poses can be associated
    """
    ref_m, est_m = associate_by_timestamp(ref, est, max_dt)
    result = umeyama(positions_of(est_m), positions_of(ref_m))
    metrics = compute_metrics(ref_m, result.apply_to_poses(est_m))
    print(f"[ALIGN] {len(est_m)} poses associated: scale={result.scale:.4f} "
          f"rmse={metrics.rmse:.4f} m max={metrics.max_error:.4f} m")
    return result, metrics


def compute_relative_error(ref: Sequence[Pose], est: Sequence[Pose], delta_t: float = 1.0) -> float:
    """
    Relative trajectory error: RMS difference between reference and
    estimated displacement over windows of delta_t seconds.

    ref and est must be associated pose-by-pose (same length, same times).
    Returns 0.0 when no window fits.
    """
    n = min(len(ref), len(est))
    if n < 2:
        return 0.0
    t = np.array([p.timestamp for p in ref[:n]])
    p_ref = positions_of(ref[:n])
    p_est = positions_of(est[:n])

    errors = []
    for i in range(n):
        j = int(np.searchsorted(t, t[i] + delta_t, side='left'))
        if j >= n:
            break
        d_ref = p_ref[j] - p_ref[i]
        d_est = p_est[j] - p_est[i]
        errors.append(np.linalg.norm(d_est - d_ref))
    if not errors:
        return 0.0
    return float(np.sqrt(np.mean(np.square(errors))))


def path_length(poses: Sequence[Pose]) -> float:
    """Sum of straight-line distances between consecutive poses."""
    if len(poses) < 2:
        return 0.0
    return float(np.sum(np.linalg.norm(np.diff(positions_of(poses), axis=0), axis=1)))
