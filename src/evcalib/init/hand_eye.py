"""Closed-form rotation hand-eye calibration.

Given relative rotations of the body A_k and of the sensor B_k over the
same intervals, the sensor-to-body rotation X satisfies A_k X = X B_k.
In quaternions this is linear in q_X:

    (L(q_A) - R(q_B)) q_X = 0

Stacking all pairs and taking the right singular vector of the smallest
singular value gives q_X. The second smallest singular value measures how
well the system is conditioned: rotations about a single axis leave a
one-dimensional family of solutions and drive it to zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy.linalg import svd
from scipy.spatial.transform import Rotation

from .so3 import angle_between, canonical_quaternion, quat_left, quat_right

logger = logging.getLogger(__name__)

# Pairs whose residual exceeds this angle (deg) are down-weighted
_HUBER_THRESHOLD_DEG = 5.0


@dataclass
class HandEyeResult:
    """Result of the closed-form rotation hand-eye solve.

    Attributes:
        success: True if the system was well-conditioned
        rotation: Sensor-to-body rotation R_body_sensor (None if no pairs)
        singular_values: Singular values of the stacked system, descending
        num_samples: Number of rotation pairs used
    """

    success: bool
    rotation: np.ndarray | None
    singular_values: np.ndarray
    num_samples: int

    @property
    def conditioning(self) -> float:
        """Second smallest singular value."""
        if len(self.singular_values) < 4:
            return 0.0
        return float(self.singular_values[-2])


def solve_hand_eye_rotation(
    body_rotations: list[np.ndarray],
    sensor_rotations: list[np.ndarray],
    excitation_threshold: float = 0.25,
    num_reweights: int = 3,
) -> HandEyeResult:
    """Solve A_k X = X B_k for the rotation X.

    Args:
        body_rotations: Relative body rotations A_k (3x3)
        sensor_rotations: Relative sensor rotations B_k (3x3), same intervals
        excitation_threshold: Minimum second smallest singular value for success
        num_reweights: Huber reweighting passes after the first solve

    Returns:
        HandEyeResult
    """
    if len(body_rotations) != len(sensor_rotations):
        raise ValueError(
            f"Got {len(body_rotations)} body rotations but "
            f"{len(sensor_rotations)} sensor rotations"
        )
    n = len(body_rotations)
    if n == 0:
        return HandEyeResult(
            success=False, rotation=None, singular_values=np.zeros(0), num_samples=0
        )

    blocks = []
    for A, B in zip(body_rotations, sensor_rotations):
        q_a = canonical_quaternion(Rotation.from_matrix(A).as_quat())
        q_b = canonical_quaternion(Rotation.from_matrix(B).as_quat())
        blocks.append(quat_left(q_a) - quat_right(q_b))

    weights = np.ones(n)
    X = None
    singular_values = np.zeros(4)
    for i in range(num_reweights + 1):
        M = np.vstack([w * block for w, block in zip(weights, blocks)])
        _, singular_values, Vt = svd(M, full_matrices=False)
        X = Rotation.from_quat(Vt[-1]).as_matrix()
        if i == num_reweights:
            break

        # Huber weights of the current estimate for the next solve
        for k, (A, B) in enumerate(zip(body_rotations, sensor_rotations)):
            error_deg = np.degrees(angle_between(A @ X, X @ B))
            weights[k] = 1.0 if error_deg < _HUBER_THRESHOLD_DEG else _HUBER_THRESHOLD_DEG / error_deg

    success = bool(singular_values[-2] > excitation_threshold)
    logger.debug(
        "Hand-eye solve over %d pairs: singular values %s (%s)",
        n,
        np.array2string(singular_values, precision=3),
        "well-conditioned" if success else "ill-conditioned",
    )
    return HandEyeResult(
        success=success, rotation=X, singular_values=singular_values, num_samples=n
    )
