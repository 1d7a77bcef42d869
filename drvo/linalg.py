#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Small Dense Linear Algebra Module

3x3 symmetric eigen-decomposition by power iteration with deflation, and the
SVD built on it. Sized for trajectory alignment where matrices are 3x3 and
well inside double precision.

Iteration budget: POWER_ITERATIONS per eigenvector. Directions whose
iterate collapses below DEFLATION_EPS (rank-deficient input) are completed
from the ones already found, so both factors are always orthonormal.

Author: DRVO project
"""

from typing import Tuple

import numpy as np

POWER_ITERATIONS = 50
DEFLATION_EPS = 1e-9
SINGULAR_EPS = 1e-9


def _orthogonalize(v: np.ndarray, basis) -> np.ndarray:
    for b in basis:
        v = v - np.dot(v, b) * b
    return v


def _complete_basis(basis) -> np.ndarray:
    """Unit vector orthogonal to the given orthonormal vectors (at most two)."""
    if len(basis) == 2:
        return np.cross(basis[0], basis[1])
    for axis in np.eye(3):
        v = _orthogonalize(axis, basis)
        n = np.linalg.norm(v)
        if n > 0.5:
            return v / n
    raise ValueError("basis already spans R^3")


def eigen_symmetric_3x3(m: np.ndarray, iterations: int = POWER_ITERATIONS) -> Tuple[np.ndarray, np.ndarray]:
    """
    Eigen-decomposition of a symmetric 3x3 matrix.

    Returns:
        (values, vectors) - values in descending-magnitude discovery order,
        vectors as orthonormal columns
    """
    a = np.array(m, dtype=float).reshape(3, 3)
    values = []
    basis = []
    for i in range(3):
        # Fixed per-axis seed keeps results reproducible run to run
        v = np.random.default_rng(i).random(3)
        v = _orthogonalize(v, basis)
        collapsed = False
        for _ in range(iterations):
            v = _orthogonalize(a @ v, basis)
            norm = np.linalg.norm(v)
            if norm < DEFLATION_EPS:
                collapsed = True
                break
            v = v / norm
        if collapsed:
            v = _complete_basis(basis)
        lam = float(v @ a @ v)
        values.append(lam)
        basis.append(v)
        a = a - lam * np.outer(v, v)
    return np.array(values), np.column_stack(basis)


def svd_3x3(a: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    SVD of a 3x3 matrix from the eigen-decomposition of aᵀa.

    Returns:
        (U, sigma, V) with a ≈ U @ diag(sigma) @ V.T; U and V orthonormal
    """
    a = np.array(a, dtype=float).reshape(3, 3)
    values, v = eigen_symmetric_3x3(a.T @ a)
    sigma = np.sqrt(np.maximum(values, 0.0))

    # U = A V Σ⁻¹, columns with vanishing σ completed afterwards
    u_cols = []
    missing = []
    for i in range(3):
        if sigma[i] > SINGULAR_EPS:
            u = a @ v[:, i] / sigma[i]
            u = _orthogonalize(u, [c for c in u_cols if c is not None])
            n = np.linalg.norm(u)
            if n > DEFLATION_EPS:
                u_cols.append(u / n)
                continue
        missing.append(i)
        u_cols.append(None)

    for i in missing:
        u_cols[i] = _complete_basis([c for c in u_cols if c is not None])
    return np.column_stack(u_cols), sigma, v
