"""Continuous-time body orientation used as the inertial reference."""

from __future__ import annotations

from typing import Protocol

import numpy as np
from scipy.spatial.transform import Rotation, RotationSpline

from .so3 import exp_so3


class BodyRotationSpline(Protocol):
    """Body orientation R_world_body(t) over a bounded time range."""

    @property
    def min_time(self) -> float: ...

    @property
    def max_time(self) -> float: ...

    def rotation(self, t: float) -> np.ndarray:
        """Return the 3x3 world-from-body rotation at time t."""
        ...


class ScipyRotationSpline:
    """BodyRotationSpline backed by scipy's cubic RotationSpline.

    Example usage:
        spline = ScipyRotationSpline.from_gyroscope(timestamps, gyro)
        R = spline.rotation(0.5 * (spline.min_time + spline.max_time))
    """

    def __init__(self, timestamps: np.ndarray, rotations: Rotation | np.ndarray) -> None:
        """Initialize spline.

        Args:
            timestamps: (N,) strictly increasing knot times in seconds, N >= 2
            rotations: N world-from-body rotations (Rotation or (N, 3, 3))
        """
        timestamps = np.asarray(timestamps, dtype=np.float64).reshape(-1)
        if not isinstance(rotations, Rotation):
            rotations = Rotation.from_matrix(np.asarray(rotations, dtype=np.float64))

        if len(timestamps) < 2:
            raise ValueError(f"Need at least 2 knots, got {len(timestamps)}")
        if len(rotations) != len(timestamps):
            raise ValueError(
                f"Got {len(timestamps)} timestamps but {len(rotations)} rotations"
            )
        if np.any(np.diff(timestamps) <= 0):
            raise ValueError("Spline knot times must be strictly increasing")

        self._timestamps = timestamps
        self._spline = RotationSpline(timestamps, rotations)

    @classmethod
    def from_gyroscope(
        cls,
        timestamps: np.ndarray,
        angular_velocities: np.ndarray,
        initial_rotation: np.ndarray | None = None,
    ) -> ScipyRotationSpline:
        """Integrate body-frame angular velocity into a rotation spline.

        Uses mid-point integration: R_k+1 = R_k @ exp(0.5 * (w_k + w_k+1) * dt).

        Args:
            timestamps: (N,) sample times in seconds
            angular_velocities: (N, 3) bias-free gyroscope readings in rad/s
            initial_rotation: World-from-body rotation at the first sample

        Returns:
            ScipyRotationSpline through the integrated orientations
        """
        timestamps = np.asarray(timestamps, dtype=np.float64).reshape(-1)
        omegas = np.asarray(angular_velocities, dtype=np.float64).reshape(-1, 3)
        if len(omegas) != len(timestamps):
            raise ValueError(
                f"Got {len(timestamps)} timestamps but {len(omegas)} gyro samples"
            )

        R = np.eye(3) if initial_rotation is None else np.asarray(initial_rotation)
        rotations = [R]
        for k in range(1, len(timestamps)):
            dt = timestamps[k] - timestamps[k - 1]
            R = R @ exp_so3(0.5 * (omegas[k - 1] + omegas[k]) * dt)
            rotations.append(R)

        return cls(timestamps, np.stack(rotations))

    def rotation(self, t: float) -> np.ndarray:
        """Return the world-from-body rotation at time t.

        Raises:
            ValueError: If t lies outside the knot range
        """
        if not self.min_time <= t <= self.max_time:
            raise ValueError(
                f"Time {t:.6f} outside spline range [{self.min_time:.6f}, {self.max_time:.6f}]"
            )
        return self._spline(t).as_matrix()

    @property
    def min_time(self) -> float:
        """First knot time."""
        return float(self._timestamps[0])

    @property
    def max_time(self) -> float:
        """Last knot time."""
        return float(self._timestamps[-1])
