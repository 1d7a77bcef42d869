#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DRVO Data Loaders Module

Loading utilities for recorded sessions: IMU CSV, magnetometer CSV, image
sequence index and reference trajectories.

CSV layouts (header names are case-insensitive):
- IMU: timestamp | t | time | timestamp_ms, ax ay az, gx gy gz, optional mx my mz
- Magnetometer: timestamp column as above, mx my mz (or x y z)
- Images index: timestamp column as above, filename | file | image
- Trajectory: timestamp column as above, x y z, optional qw qx qy qz
"""

import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

import cv2
import numpy as np
import pandas as pd

from .pose_types import CameraFrame, ImuSample, Pose

_TIME_COLUMNS = ("timestamp", "t", "time", "stamp")
_TIME_MS_COLUMNS = ("timestamp_ms", "time_ms")
_FILE_COLUMNS = ("filename", "file", "image", "path")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class MagRecord:
    """Single magnetometer measurement."""
    t: float  # timestamp (seconds)
    mag: np.ndarray  # magnetic field [x,y,z] in body frame


@dataclass
class ImageItem:
    """Image file with timestamp."""
    t: float  # timestamp (seconds)
    path: str  # file path


# =============================================================================
# Helpers
# =============================================================================

def _read_csv(path: str, kind: str) -> pd.DataFrame:
    if not path or not os.path.exists(path):
        raise FileNotFoundError(f"{kind} CSV not found: {path}")
    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    return df


def _time_seconds(df: pd.DataFrame, kind: str) -> np.ndarray:
    for c in _TIME_COLUMNS:
        if c in df.columns:
            return df[c].to_numpy(dtype=float)
    for c in _TIME_MS_COLUMNS:
        if c in df.columns:
            return df[c].to_numpy(dtype=float) / 1000.0
    raise ValueError(f"{kind} CSV missing timestamp column (one of {_TIME_COLUMNS + _TIME_MS_COLUMNS})")


def _require(df: pd.DataFrame, cols: Sequence[str], kind: str) -> np.ndarray:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{kind} CSV missing column(s): {', '.join(missing)}")
    return df[list(cols)].to_numpy(dtype=float)


# =============================================================================
# Loaders
# =============================================================================

def load_imu_csv(path: str) -> List[ImuSample]:
    """
    Load IMU samples sorted by timestamp.

    Rows with non-finite values are kept; the dead-reckoning engine rejects
    them and counts the rejection.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a required column is missing
    """
    df = _read_csv(path, "IMU")
    t = _time_seconds(df, "IMU")
    accel = _require(df, ("ax", "ay", "az"), "IMU")
    gyro = _require(df, ("gx", "gy", "gz"), "IMU")
    has_mag = all(c in df.columns for c in ("mx", "my", "mz"))
    mag = df[["mx", "my", "mz"]].to_numpy(dtype=float) if has_mag else None

    order = np.argsort(t, kind="stable")
    samples = []
    for i in order:
        samples.append(ImuSample(
            timestamp=t[i],
            accel=accel[i],
            gyro=gyro[i],
            mag=mag[i] if has_mag else None,
        ))
    print(f"[IMU] Loaded {len(samples)} samples from {os.path.basename(path)}"
          f"{' (with magnetometer)' if has_mag else ''}")
    return samples


def load_mag_csv(path: Optional[str]) -> List[MagRecord]:
    """Load a separate magnetometer stream; [] when no path is given."""
    if not path:
        return []
    df = _read_csv(path, "Magnetometer")
    t = _time_seconds(df, "Magnetometer")
    cols = ("mx", "my", "mz") if "mx" in df.columns else ("x", "y", "z")
    mag = _require(df, cols, "Magnetometer")

    order = np.argsort(t, kind="stable")
    recs = [MagRecord(t=float(t[i]), mag=mag[i].copy()) for i in order]
    print(f"[IMU] Loaded {len(recs)} magnetometer samples")
    return recs


def load_image_index(images_dir: str, index_csv: str) -> List[ImageItem]:
    """
    Load the image list from an index CSV; paths are relative to images_dir.
    Entries whose file is missing are skipped and counted.
    """
    if not images_dir or not os.path.isdir(images_dir):
        raise FileNotFoundError(f"Images directory not found: {images_dir}")
    df = _read_csv(index_csv, "Images index")
    t = _time_seconds(df, "Images index")
    fcol = next((c for c in _FILE_COLUMNS if c in df.columns), None)
    if fcol is None:
        raise ValueError(f"Images index CSV missing filename column (one of {_FILE_COLUMNS})")

    items = []
    skipped = 0
    for ts, name in zip(t, df[fcol].astype(str)):
        p = os.path.join(images_dir, name.strip())
        if not os.path.exists(p):
            skipped += 1
            continue
        items.append(ImageItem(t=float(ts), path=p))
    items.sort(key=lambda it: it.t)
    print(f"[FRAMES] Loaded {len(items)} images | Missing: {skipped}")
    return items


def read_frame(item: ImageItem, intrinsics: Optional[Sequence[float]]) -> Optional[CameraFrame]:
    """Read one image as an 8-bit grayscale CameraFrame; None if unreadable."""
    img = cv2.imread(item.path, cv2.IMREAD_UNCHANGED)
    if img is None:
        print(f"[FRAMES] WARNING: could not read {item.path}")
        return None
    if img.ndim == 3:
        code = cv2.COLOR_BGRA2GRAY if img.shape[2] == 4 else cv2.COLOR_BGR2GRAY
        img = cv2.cvtColor(img, code)
    if img.dtype != np.uint8:
        img = cv2.normalize(img, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    h, w = img.shape[:2]
    return CameraFrame(image=img.reshape(-1), width=w, height=h, timestamp=item.t,
                       intrinsics=None if intrinsics is None else list(intrinsics))


def load_trajectory_csv(path: str) -> List[Pose]:
    """Load a reference trajectory (e.g. ground truth) as Poses."""
    df = _read_csv(path, "Trajectory")
    t = _time_seconds(df, "Trajectory")
    pos = _require(df, ("x", "y", "z"), "Trajectory")
    has_q = all(c in df.columns for c in ("qw", "qx", "qy", "qz"))
    quat = df[["qw", "qx", "qy", "qz"]].to_numpy(dtype=float) if has_q else None

    order = np.argsort(t, kind="stable")
    poses = []
    for i in order:
        q = quat[i] if has_q else np.array([1.0, 0.0, 0.0, 0.0])
        poses.append(Pose(t[i], pos[i], q))
    print(f"[ALIGN] Loaded reference trajectory: {len(poses)} poses")
    return poses
