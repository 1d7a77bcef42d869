#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Numerical Tripwires
===================

Guards at the dead-reckoning boundary. A reading or integrated quantity that
contains NaN/inf is reported with its context and the caller drops the
sample, so velocity and position never absorb a non-finite value.
"""

from typing import Dict, Optional, Tuple

import numpy as np

QUAT_NORM_MIN = 1e-8
QUAT_NORM_WARN = 0.1  # |‖q‖ - 1| above this is reported before normalising


def _describe(value) -> str:
    arr = np.asarray(value, dtype=float)
    if arr.size <= 16:
        return np.array2string(arr.ravel(), precision=6)
    finite = arr[np.isfinite(arr)]
    norm = float(np.linalg.norm(finite)) if finite.size else float("nan")
    return f"shape={arr.shape} finite_norm={norm:.6e}"


def require_finite(name: str, values, t: Optional[float] = None,
                   context: Optional[Dict] = None, raise_on_fail: bool = False) -> bool:
    """
    True when every element of values is finite.

    Otherwise prints a [TRIPWIRE] report (value, NaN/inf counts, optional
    context entries) and returns False, or raises ValueError when
    raise_on_fail is set.
    """
    if values is None:
        ok = False
        detail = "value is None"
    else:
        arr = np.asarray(values, dtype=float)
        ok = bool(np.all(np.isfinite(arr)))
        if ok:
            return True
        detail = (f"nan={int(np.count_nonzero(np.isnan(arr)))} "
                  f"inf={int(np.count_nonzero(np.isinf(arr)))} value={_describe(arr)}")

    when = f" at t={t:.6f}" if t is not None else ""
    print(f"[TRIPWIRE] {name}{when}: {detail}")
    for key, val in (context or {}).items():
        print(f"[TRIPWIRE]   {key}: {_describe(val) if isinstance(val, np.ndarray) else val}")
    if raise_on_fail:
        raise ValueError(f"non-finite {name}{when}")
    return ok


def normalize_checked(q, name: str = "quaternion", t: Optional[float] = None) -> Tuple[np.ndarray, bool]:
    """
    Unit quaternion from q, with a validity flag.

    Returns (q, False) unchanged when q is non-finite or has (near) zero
    norm. A norm far from 1 is reported but still normalised.
    """
    if not require_finite(name, q, t=t):
        return q, False
    q = np.asarray(q, dtype=float)
    norm = float(np.linalg.norm(q))
    if norm < QUAT_NORM_MIN:
        print(f"[TRIPWIRE] {name}: degenerate quaternion, norm={norm:.3e} (t={t})")
        return q, False
    if abs(norm - 1.0) > QUAT_NORM_WARN:
        print(f"[TRIPWIRE] {name}: norm drifted to {norm:.6f} (t={t})")
    return q / norm, True
