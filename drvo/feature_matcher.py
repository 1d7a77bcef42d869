#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Feature Matcher Module

Patch-based matching of corners between a reference image and the current
image. Each reference corner is compared against every current corner in a
square search window; the score is the SSD of the two mean-subtracted
patches, so a uniform brightness change costs nothing.

A match is accepted only if the best score is below ssd_threshold and the
Lowe ratio best / (second + 1e-3) is below ratio.

Author: DRVO project
"""

from typing import List, Optional, Sequence

import numpy as np

from .feature_detector import as_gray_image
from .pose_types import Feature, Match

RATIO_EPS = 1e-3


def _patch(img: np.ndarray, x: int, y: int, half: int) -> Optional[np.ndarray]:
    """Mean-subtracted (2·half+1)² patch, or None if it crosses the border."""
    h, w = img.shape
    if x < half or x >= w - half or y < half or y >= h - half:
        return None
    p = img[y - half:y + half + 1, x - half:x + half + 1]
    return p - p.mean()


def match_features(prev: Sequence[Feature], curr: Sequence[Feature],
                   prev_image, curr_image, width: int, height: int,
                   patch_size: int = 15,
                   max_search_radius: int = 60,
                   ssd_threshold: float = 10000.0,
                   ratio: float = 0.8,
                   max_prev_features: int = 50) -> List[Match]:
    """
    Match features between a reference frame and the current frame.

    Only the first max_prev_features reference features are considered.
    Candidates are restricted to Chebyshev distance max_search_radius.

    Returns:
        At most one Match per accepted reference feature, in reference order
    """
    if len(prev) == 0 or len(curr) == 0:
        return []
    prev_img = as_gray_image(prev_image, width, height)
    curr_img = as_gray_image(curr_image, width, height)
    if prev_img is None or curr_img is None:
        return []

    half = patch_size // 2

    # Current patches are shared by every reference feature
    curr_xy = []
    curr_patches = []
    for j, f in enumerate(curr):
        cx, cy = int(np.floor(f.point[0])), int(np.floor(f.point[1]))
        p = _patch(curr_img, cx, cy, half)
        if p is not None:
            curr_xy.append((j, cx, cy))
            curr_patches.append(p)
    if not curr_patches:
        return []
    curr_idx = np.array([c[0] for c in curr_xy])
    curr_x = np.array([c[1] for c in curr_xy])
    curr_y = np.array([c[2] for c in curr_xy])
    curr_stack = np.stack(curr_patches)

    matches = []
    for i, f in enumerate(prev[:max_prev_features]):
        px, py = int(np.floor(f.point[0])), int(np.floor(f.point[1]))
        prev_patch = _patch(prev_img, px, py, half)
        if prev_patch is None:
            continue

        in_window = (np.abs(curr_x - px) <= max_search_radius) & (np.abs(curr_y - py) <= max_search_radius)
        if not np.any(in_window):
            continue

        diffs = curr_stack[in_window] - prev_patch
        scores = np.sum(diffs * diffs, axis=(1, 2))
        candidates = curr_idx[in_window]

        # Stable order so the earliest candidate wins a tie
        order = np.argsort(scores, kind='stable')
        best = float(scores[order[0]])
        second = float(scores[order[1]]) if len(order) > 1 else np.inf

        if best < ssd_threshold and best / (second + RATIO_EPS) < ratio:
            matches.append(Match(prev_index=i, curr_index=int(candidates[order[0]]), score=best))
    return matches
