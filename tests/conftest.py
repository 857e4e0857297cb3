"""Shared synthetic motion fixtures."""

from typing import Callable

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from evcalib.init.spline import ScipyRotationSpline


def wobble_rotation(t: float) -> np.ndarray:
    """World-from-body orientation oscillating about all three axes."""
    rotvec = np.array([
        0.3 * np.sin(2 * np.pi * 0.7 * t),
        0.25 * np.sin(2 * np.pi * 0.5 * t + 1.0),
        0.3 * np.sin(2 * np.pi * 0.9 * t + 2.0),
    ])
    return Rotation.from_rotvec(rotvec).as_matrix()


def yaw_rotation(t: float) -> np.ndarray:
    """World-from-body orientation oscillating about the z axis only."""
    return Rotation.from_rotvec([0.0, 0.0, 0.5 * np.sin(2 * np.pi * 0.7 * t)]).as_matrix()


@pytest.fixture
def make_spline() -> Callable[..., ScipyRotationSpline]:
    """Factory sampling an orientation function into a 200 Hz spline."""

    def factory(motion: str = "wobble", duration: float = 3.0) -> ScipyRotationSpline:
        orientation = {"wobble": wobble_rotation, "yaw": yaw_rotation}[motion]
        times = np.linspace(0.0, duration, int(round(duration * 200)) + 1)
        return ScipyRotationSpline(times, np.stack([orientation(t) for t in times]))

    return factory
