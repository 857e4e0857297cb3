"""SO(3) helpers: exponential/log maps and quaternion multiplication matrices.

Quaternions follow scipy's scalar-last convention ``[x, y, z, w]``.
"""

from __future__ import annotations

import cv2
import numpy as np


def skew(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix [v]x from a 3D vector."""
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ])


def exp_so3(omega: np.ndarray) -> np.ndarray:
    """Exponential map from so(3) to SO(3) (Rodrigues formula).

    Args:
        omega: Rotation vector (3,), axis * angle

    Returns:
        3x3 rotation matrix
    """
    omega = np.asarray(omega, dtype=np.float64).reshape(3)
    theta = np.linalg.norm(omega)
    if theta < 1e-10:
        return np.eye(3) + skew(omega)

    K = skew(omega / theta)
    return np.eye(3) + np.sin(theta) * K + (1 - np.cos(theta)) * (K @ K)


def log_so3(R: np.ndarray) -> np.ndarray:
    """Logarithm map from SO(3) to a rotation vector (3,)."""
    rvec, _ = cv2.Rodrigues(np.asarray(R, dtype=np.float64))
    return rvec.flatten()


def rotation_angle(R: np.ndarray) -> float:
    """Return the rotation angle of R in radians, in [0, pi]."""
    cos_theta = (np.trace(R) - 1.0) / 2.0
    return float(np.arccos(np.clip(cos_theta, -1.0, 1.0)))


def angle_between(R_a: np.ndarray, R_b: np.ndarray) -> float:
    """Return the geodesic distance between two rotations in radians."""
    return rotation_angle(R_a.T @ R_b)


def project_to_so3(M: np.ndarray) -> np.ndarray:
    """Return the rotation matrix closest to M in Frobenius norm."""
    U, _, Vt = np.linalg.svd(M)
    D = np.diag([1.0, 1.0, np.sign(np.linalg.det(U @ Vt))])
    return U @ D @ Vt


def canonical_quaternion(q: np.ndarray) -> np.ndarray:
    """Flip q so that its scalar part is non-negative."""
    q = np.asarray(q, dtype=np.float64)
    return -q if q[3] < 0 else q


def quat_left(q: np.ndarray) -> np.ndarray:
    """Left multiplication matrix: q * p = quat_left(q) @ p."""
    x, y, z, w = q
    L = np.empty((4, 4))
    L[:3, :3] = w * np.eye(3) + skew(np.array([x, y, z]))
    L[:3, 3] = (x, y, z)
    L[3, :3] = (-x, -y, -z)
    L[3, 3] = w
    return L


def quat_right(p: np.ndarray) -> np.ndarray:
    """Right multiplication matrix: q * p = quat_right(p) @ q."""
    x, y, z, w = p
    R = np.empty((4, 4))
    R[:3, :3] = w * np.eye(3) - skew(np.array([x, y, z]))
    R[:3, 3] = (x, y, z)
    R[3, :3] = (-x, -y, -z)
    R[3, 3] = w
    return R
