#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pose-Delta Estimator Module

Robust median-flow translation estimate between two matched feature sets.

Matched pixels are moved to normalised image coordinates with the camera
intrinsics [fx, fy, cx, cy]; the per-axis median of the flow is the motion
estimate and the inlier set is the matches within a MAD-derived band of it.

Monocular scale is not observable here: translation is the negated median
flow times a fixed flow_scale, a heuristic documented as such.

Author: DRVO project
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .pose_types import Feature, Match


@dataclass(frozen=True, eq=False)
class PoseDelta:
    """Frame-to-frame translation estimate with its inlier support."""
    translation: np.ndarray
    inlier_ratio: float
    inlier_count: int
    match_count: int

    def __post_init__(self):
        t = np.array(self.translation, dtype=float).reshape(3)
        t.setflags(write=False)
        object.__setattr__(self, 'translation', t)

    @classmethod
    def zero(cls) -> 'PoseDelta':
        return cls(np.zeros(3), 0.0, 0, 0)


def _upper_median(values: np.ndarray) -> float:
    return float(np.sort(values)[len(values) // 2])


def estimate_pose_delta(matches: Sequence[Match],
                        prev: Sequence[Feature],
                        curr: Sequence[Feature],
                        intrinsics: Sequence[float],
                        min_matches: int = 8,
                        flow_scale: float = 0.05,
                        mad_multiplier: float = 3.0,
                        threshold_min: float = 0.001,
                        threshold_max: float = 0.05) -> PoseDelta:
    """
    Estimate the translation between two frames from matched features.

    Args:
        matches: Matches indexing into prev / curr
        prev, curr: Feature lists of the two frames
        intrinsics: [fx, fy, cx, cy]

    Returns:
        PoseDelta; all zeros when fewer than min_matches usable matches
    """
    fx, fy, cx, cy = (float(v) for v in intrinsics[:4])

    flows = []
    for m in matches:
        if not (0 <= m.prev_index < len(prev) and 0 <= m.curr_index < len(curr)):
            continue
        p = prev[m.prev_index].point
        c = curr[m.curr_index].point
        flows.append((((c[0] - cx) / fx) - ((p[0] - cx) / fx),
                      ((c[1] - cy) / fy) - ((p[1] - cy) / fy)))

    if len(flows) < min_matches:
        return PoseDelta.zero()

    flows = np.array(flows)
    fx_flow, fy_flow = flows[:, 0], flows[:, 1]
    med_x = _upper_median(fx_flow)
    med_y = _upper_median(fy_flow)

    dev_x = np.abs(fx_flow - med_x)
    dev_y = np.abs(fy_flow - med_y)
    thr_x = float(np.clip(mad_multiplier * dev_x.mean(), threshold_min, threshold_max))
    thr_y = float(np.clip(mad_multiplier * dev_y.mean(), threshold_min, threshold_max))

    inliers = int(np.count_nonzero((dev_x < thr_x) & (dev_y < thr_y)))
    n = len(flows)
    return PoseDelta(translation=np.array([-med_x * flow_scale, -med_y * flow_scale, 0.0]),
                     inlier_ratio=inliers / n,
                     inlier_count=inliers,
                     match_count=n)
