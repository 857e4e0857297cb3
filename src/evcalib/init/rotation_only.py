"""Rotation-only two-view relative pose from tracked pixels."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation

from ..frontend.camera import PinholeCamera
from ..sac import SacModel, ransac


@dataclass
class RelativeRotationResult:
    """Result of rotation-only relative pose estimation.

    Attributes:
        success: True if enough inliers supported a rotation
        rotation: R_{C(t1)->C(t0)}, mapping end-view bearings to start-view
            bearings. None if failed.
        inliers: Boolean mask over the input correspondences
        num_inliers: Number of inlier correspondences
        mean_error: Mean angular error of inliers (rad)
    """

    success: bool
    rotation: np.ndarray | None
    inliers: np.ndarray  # (N,) bool
    num_inliers: int
    mean_error: float


def fit_rotation(pairs: np.ndarray) -> np.ndarray | None:
    """Least-squares rotation aligning end bearings onto start bearings.

    Args:
        pairs: (N, 6) rows [f0, f1] of unit bearings, N >= 2

    Returns:
        Flattened 3x3 rotation R with f0 ~ R @ f1, or None if the bearings
        do not span two directions
    """
    f0 = pairs[:, :3]
    f1 = pairs[:, 3:]
    if np.linalg.matrix_rank(f0, tol=1e-9) < 2 or np.linalg.matrix_rank(f1, tol=1e-9) < 2:
        return None
    rotation, _ = Rotation.align_vectors(f0, f1)
    return rotation.as_matrix().flatten()


def angular_residuals(coefficients: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    """Angle between each start bearing and its rotated end bearing."""
    R = coefficients.reshape(3, 3)
    f0 = pairs[:, :3]
    f1_rotated = pairs[:, 3:] @ R.T
    cross = np.linalg.norm(np.cross(f0, f1_rotated), axis=1)
    dot = np.sum(f0 * f1_rotated, axis=1)
    return np.arctan2(cross, dot)


ROTATION_ONLY_MODEL = SacModel(sample_size=2, fit=fit_rotation, residuals=angular_residuals)


class RotationOnlySolver:
    """Estimates the relative camera rotation between two time instants.

    Translation is assumed negligible over the window, so corresponding
    bearings are related by a pure rotation. RANSAC over 2-point samples
    rejects bad tracks, then the rotation is refit on all inliers.
    """

    def __init__(
        self,
        camera: PinholeCamera,
        pixel_threshold: float = 2.0,
        max_iterations: int = 200,
        min_matches: int = 10,
        min_inlier_ratio: float = 0.6,
        seed: int = 0,
    ) -> None:
        """Initialize solver.

        Args:
            camera: Camera used to lift pixels to bearings
            pixel_threshold: Inlier threshold in pixels, converted to an
                angle through the focal length
            max_iterations: RANSAC iteration cap
            min_matches: Minimum correspondences to attempt a solve
            min_inlier_ratio: Minimum inlier fraction for success
            seed: Seed of the sample generator
        """
        self._camera = camera
        self._angular_threshold = float(np.arctan2(pixel_threshold, camera.focal_length))
        self._max_iterations = max_iterations
        self._min_matches = max(min_matches, ROTATION_ONLY_MODEL.sample_size)
        self._min_inlier_ratio = min_inlier_ratio
        self._rng = np.random.default_rng(seed)

    def solve(self, pixels_start: np.ndarray, pixels_end: np.ndarray) -> RelativeRotationResult:
        """Estimate R_{C(t1)->C(t0)} from matched pixels.

        Args:
            pixels_start: Nx2 pixel positions at the window start
            pixels_end: Nx2 pixel positions of the same features at the end

        Returns:
            RelativeRotationResult
        """
        pixels_start = np.asarray(pixels_start, dtype=np.float64).reshape(-1, 2)
        pixels_end = np.asarray(pixels_end, dtype=np.float64).reshape(-1, 2)
        n = len(pixels_start)
        if len(pixels_end) != n:
            raise ValueError(f"Got {n} start pixels but {len(pixels_end)} end pixels")

        failed = RelativeRotationResult(
            success=False,
            rotation=None,
            inliers=np.zeros(n, dtype=bool),
            num_inliers=0,
            mean_error=float("inf"),
        )
        if n < self._min_matches:
            return failed

        pairs = np.hstack([self._camera.bearings(pixels_start), self._camera.bearings(pixels_end)])
        result = ransac(
            pairs,
            ROTATION_ONLY_MODEL,
            self._angular_threshold,
            self._max_iterations,
            self._rng,
        )
        if not result.success or result.num_inliers / n < self._min_inlier_ratio:
            return failed

        refit = fit_rotation(pairs[result.inliers])
        if refit is None:
            return failed

        errors = angular_residuals(refit, pairs)
        inliers = errors <= self._angular_threshold
        if np.count_nonzero(inliers) / n < self._min_inlier_ratio:
            return failed

        return RelativeRotationResult(
            success=True,
            rotation=refit.reshape(3, 3),
            inliers=inliers,
            num_inliers=int(np.count_nonzero(inliers)),
            mean_error=float(errors[inliers].mean()),
        )

    @property
    def angular_threshold(self) -> float:
        """Inlier threshold in radians."""
        return self._angular_threshold
