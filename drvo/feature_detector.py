#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Corner Detector Module

Harris corners on a raw grayscale buffer with greedy spatial suppression.

Response at pixel p, over the 3x3 window W around p:

    M = Σ_W [[gx², gx·gy], [gx·gy, gy²]]
    R = det(M) - k·trace(M)²

with central differences gx = I[x+1] - I[x-1], gy = I[y+1] - I[y-1].
Pixels within 2 px of the border have no complete window and are never
reported.

Author: DRVO project
"""

from typing import List

import numpy as np

from .pose_types import Feature

MIN_IMAGE_SIDE = 10  # pixels
BORDER = 2


def as_gray_image(image, width: int, height: int):
    """
    View a grayscale buffer (bytes, bytearray, list or ndarray) as a float
    (height, width) array.

    Returns:
        ndarray, or None when the buffer/dimensions are unusable
    """
    if width < MIN_IMAGE_SIDE or height < MIN_IMAGE_SIDE:
        return None
    if isinstance(image, (bytes, bytearray, memoryview)):
        flat = np.frombuffer(image, dtype=np.uint8)
    else:
        flat = np.asarray(image).reshape(-1)
    if flat.size < width * height:
        return None
    return flat[:width * height].astype(np.float64).reshape(height, width)


def harris_response(img: np.ndarray, harris_k: float = 0.04) -> np.ndarray:
    """Harris response map, zero wherever the 3x3 window is incomplete."""
    h, w = img.shape
    gx = np.zeros_like(img)
    gy = np.zeros_like(img)
    gx[:, 1:-1] = img[:, 2:] - img[:, :-2]
    gy[1:-1, :] = img[2:, :] - img[:-2, :]

    gxx = gx * gx
    gyy = gy * gy
    gxy = gx * gy

    response = np.zeros_like(img)
    if h <= 2 * BORDER or w <= 2 * BORDER:
        return response

    def box3(a):
        # 3x3 sums centred on the interior pixels [BORDER, size-BORDER)
        s = np.zeros((h - 2 * BORDER, w - 2 * BORDER))
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                s += a[BORDER + dy:h - BORDER + dy, BORDER + dx:w - BORDER + dx]
        return s

    sxx = box3(gxx)
    syy = box3(gyy)
    sxy = box3(gxy)
    det = sxx * syy - sxy * sxy
    trace = sxx + syy
    response[BORDER:h - BORDER, BORDER:w - BORDER] = det - harris_k * trace * trace
    return response


def detect_corners(image, width: int, height: int,
                   threshold: float = 20.0,
                   max_features: int = 150,
                   min_distance: float = 15.0,
                   harris_k: float = 0.04) -> List[Feature]:
    """
    Detect Harris corners.

    Args:
        image: Grayscale buffer, row-major, at least width*height values
        width, height: Image dimensions in pixels
        threshold: Minimum Harris response
        max_features: Cap on the number of returned corners
        min_distance: Minimum Euclidean spacing between returned corners
        harris_k: Harris sensitivity constant

    Returns:
        Features sorted by descending response; [] for unusable input
    """
    img = as_gray_image(image, width, height)
    if img is None or max_features <= 0:
        return []

    response = harris_response(img, harris_k)
    ys, xs = np.nonzero(response > threshold)
    if len(xs) == 0:
        return []

    values = response[ys, xs]
    # Stable sort keeps row-major order between equal responses
    order = np.argsort(-values, kind='stable')

    min_dist_sq = float(min_distance) ** 2
    kept = []
    kept_xy = np.empty((0, 2))
    for idx in order:
        x, y = float(xs[idx]), float(ys[idx])
        if len(kept_xy):
            d2 = (kept_xy[:, 0] - x) ** 2 + (kept_xy[:, 1] - y) ** 2
            if np.any(d2 < min_dist_sq):
                continue
        r = float(values[idx])
        kept.append(Feature(point=(x, y), response=r, score=r))
        kept_xy = np.vstack([kept_xy, [x, y]])
        if len(kept) >= max_features:
            break
    return kept
