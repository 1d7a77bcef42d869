#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DRVO Output Utilities Module

Console reports and CSV writers for a finished tracking session.

Author: DRVO project
"""

import os
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .alignment import AlignmentResult, TrajectoryMetrics, path_length
from .pose_types import Pose


# =============================================================================
# CSV Writers
# =============================================================================

def trajectory_frame(poses: Sequence[Pose]) -> pd.DataFrame:
    """Poses as a DataFrame with columns timestamp, x, y, z, qw, qx, qy, qz."""
    cols = ["timestamp", "x", "y", "z", "qw", "qx", "qy", "qz"]
    rows = [[p.timestamp, *p.position, *p.orientation] for p in poses]
    return pd.DataFrame(rows, columns=cols)


def save_trajectory_csv(poses: Sequence[Pose], path: str) -> str:
    """Write poses to CSV (readable back with load_trajectory_csv)."""
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    trajectory_frame(poses).to_csv(path, index=False, float_format="%.6f")
    return path


def init_output_dir(output_dir: str) -> Dict[str, str]:
    """Create the output directory and return the file paths used by a run."""
    os.makedirs(output_dir, exist_ok=True)
    return {
        "dr_csv": os.path.join(output_dir, "dr_trajectory.csv"),
        "vo_csv": os.path.join(output_dir, "vo_trajectory.csv"),
        "pdr_csv": os.path.join(output_dir, "pdr_trajectory.csv"),
        "metrics_csv": os.path.join(output_dir, "metrics.csv"),
    }


def save_metrics_csv(rows: Dict[str, TrajectoryMetrics], path: str) -> str:
    """One row per named comparison."""
    df = pd.DataFrame([
        {"comparison": name, "rmse_m": m.rmse, "mean_abs_error_m": m.mean_abs_error,
         "max_error_m": m.max_error, "drift_rate_m_s": m.drift_rate}
        for name, m in rows.items()
    ])
    df.to_csv(path, index=False)
    return path


# =============================================================================
# Console Reports
# =============================================================================

def print_metrics(title: str, metrics: TrajectoryMetrics,
                  alignment: Optional[AlignmentResult] = None):
    print(f"\n=== {title} ===")
    if alignment is not None:
        print(f"  Alignment: scale={alignment.scale:.4f} fit_rmse={alignment.rmse:.4f} m "
              f"t=[{alignment.translation[0]:.3f}, {alignment.translation[1]:.3f}, "
              f"{alignment.translation[2]:.3f}]")
    print(f"  RMSE:       {metrics.rmse:.4f} m")
    print(f"  Mean error: {metrics.mean_abs_error:.4f} m")
    print(f"  Max error:  {metrics.max_error:.4f} m")
    print(f"  Drift rate: {metrics.drift_rate:.4f} m/s")


def print_tracking_summary(dr_poses: Sequence[Pose], vo_poses: Sequence[Pose],
                           dr_stats: Dict, vo_stats: Dict,
                           pdr_steps: Optional[int] = None):
    """Per-engine pose counts, path lengths and rejection counters."""
    print("\n=== Tracking Summary ===")
    print(f"Dead reckoning: {len(dr_poses)} poses | path {path_length(dr_poses):.2f} m | "
          f"rejected dt={dr_stats.get('rejected_dt', 0)} "
          f"non-finite={dr_stats.get('rejected_nonfinite', 0)} "
          f"mag updates={dr_stats.get('mag_updates', 0)}")
    if dr_poses:
        p = dr_poses[-1].position
        print(f"  Final DR position: [{p[0]:.3f}, {p[1]:.3f}, {p[2]:.3f}]")

    print(f"Visual odometry: {len(vo_poses)} poses | path {path_length(vo_poses):.2f} m | "
          f"keyframes={vo_stats.get('keyframes', 0)} repeated={vo_stats.get('repeated', 0)} "
          f"outliers={vo_stats.get('outlier_rejected', 0)} skipped={vo_stats.get('skipped', 0)}")
    if vo_poses:
        p = vo_poses[-1].position
        print(f"  Final VO position: [{p[0]:.3f}, {p[1]:.3f}, {p[2]:.3f}]")

    if pdr_steps is not None:
        print(f"Pedestrian DR: {pdr_steps} steps")

    if dr_poses and vo_poses:
        gap = float(np.linalg.norm(dr_poses[-1].position - vo_poses[-1].position))
        print(f"Final DR-VO separation: {gap:.3f} m")
