"""Robust local spatiotemporal plane fit for event neighbourhoods.

Events near a moving edge lie approximately on a plane in (x, y, t):

    t = -(A * x + B * y + C)

The plane gradient (dt/dx, dt/dy) = (-A, -B) is the inverse of the local
edge speed along the edge normal, which gives the normal flow.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.linalg

from ..sac import SacModel, ransac


def fit_plane(points: np.ndarray) -> np.ndarray | None:
    """Least-squares plane through (x, y, t) rows.

    Solves the normal equations (M^T M) [A, B, C]^T = M^T (-t) with
    M = [x, y, 1] using a symmetric solver.

    Args:
        points: (N, 3) array of (x, y, t), N >= 3

    Returns:
        (3,) coefficients (A, B, C), or None if the points are degenerate
    """
    M = np.column_stack([points[:, 0], points[:, 1], np.ones(len(points))])
    b = -points[:, 2]
    # Collinear pixels leave the plane tilt undetermined
    if np.linalg.matrix_rank(M) < 3:
        return None
    try:
        abc = scipy.linalg.solve(M.T @ M, M.T @ b, assume_a="sym", check_finite=False)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(abc)):
        return None
    return abc


def plane_time_residuals(abc: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Absolute temporal distance |t - t_hat| of each point to the plane.

    This is a distance along the time axis, not a Euclidean point-to-plane
    distance.
    """
    t_pred = -(abc[0] * points[:, 0] + abc[1] * points[:, 1] + abc[2])
    return np.abs(points[:, 2] - t_pred)


LOCAL_PLANE_MODEL = SacModel(sample_size=3, fit=fit_plane, residuals=plane_time_residuals)


@dataclass
class PlaneFit:
    """Result of a robust local plane fit.

    Attributes:
        success: True if RANSAC found a model and the inlier refit succeeded
        coefficients: (3,) refit coefficients (A, B, C), None on failure
        inliers: Indices of inlier rows in the input
        inlier_ratio: Fraction of rows that are inliers
    """

    success: bool
    coefficients: np.ndarray | None
    inliers: np.ndarray
    inlier_ratio: float


def fit_local_plane(
    points: np.ndarray,
    threshold: float,
    max_iterations: int,
    rng: np.random.Generator,
) -> PlaneFit:
    """Fit a plane robustly, then refit on all inliers of the best model.

    Args:
        points: (N, 3) array of centered (x, y, t)
        threshold: Inlier threshold in seconds (temporal residual)
        max_iterations: RANSAC iteration cap
        rng: Random generator for sample draws

    Returns:
        PlaneFit
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    result = ransac(points, LOCAL_PLANE_MODEL, threshold, max_iterations, rng)
    if not result.success:
        return PlaneFit(
            success=False, coefficients=None, inliers=result.inliers, inlier_ratio=0.0
        )

    inlier_ratio = result.num_inliers / len(points)
    refit = fit_plane(points[result.inliers]) if result.num_inliers >= 3 else None
    if refit is None:
        return PlaneFit(
            success=False,
            coefficients=None,
            inliers=result.inliers,
            inlier_ratio=inlier_ratio,
        )

    return PlaneFit(
        success=True,
        coefficients=refit,
        inliers=result.inliers,
        inlier_ratio=inlier_ratio,
    )


def center_points(points: np.ndarray) -> np.ndarray:
    """Subtract the per-column mean from (x, y, t) rows."""
    points = np.asarray(points, dtype=np.float64)
    return points - points.mean(axis=0)
