"""Nonlinear refinement of the sensor-to-body rotation and time offset.

Each constraint relates the sensor's relative rotation B over [t0, t1]
to the body's relative rotation over the same interval shifted by the
time offset tau (t_body = t_sensor + tau):

    A(tau) = R_B(t0 + tau)^T @ R_B(t1 + tau)
    r = log(X @ B^T @ X^T @ A(tau))

All residuals are minimized jointly over (rotvec(X), tau).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy.optimize import least_squares

from .so3 import exp_so3, log_so3
from .spline import BodyRotationSpline

logger = logging.getLogger(__name__)

# Scale (rad) at which robust losses start down-weighting residuals
_LOSS_SCALE = 0.01


@dataclass
class RotationAlignmentConstraint:
    """Relative sensor rotation over one interval.

    Attributes:
        start_time: Interval start in sensor time (s)
        end_time: Interval end in sensor time (s)
        sensor_rotation: R_{S(t1)->S(t0)}
    """

    start_time: float
    end_time: float
    sensor_rotation: np.ndarray


@dataclass
class AlignmentEstimate:
    """Outcome of the refinement.

    Attributes:
        success: True if the optimizer reported convergence
        rotation: Refined sensor-to-body rotation R_body_sensor
        time_offset: Refined offset tau such that t_body = t_sensor + tau
        initial_cost: Cost before optimization
        final_cost: Cost after optimization
        num_constraints: Residual blocks used
    """

    success: bool
    rotation: np.ndarray
    time_offset: float
    initial_cost: float
    final_cost: float
    num_constraints: int


class RotationAlignmentEstimator:
    """Collects rotation-alignment constraints and solves them in one call.

    Example usage:
        estimator = RotationAlignmentEstimator(spline, time_offset_bound=0.1)
        for a, b in chain.consecutive_pairs():
            estimator.add_constraint(a.timestamp, b.timestamp, a.rotation.T @ b.rotation)
        estimate = estimator.solve(initial_rotation)
    """

    def __init__(
        self,
        spline: BodyRotationSpline,
        estimate_time_offset: bool = True,
        time_offset_bound: float = 0.1,
        loss: str = "huber",
        max_iterations: int = 50,
    ) -> None:
        """Initialize estimator.

        Args:
            spline: Body orientation reference
            estimate_time_offset: Optimize tau as well as the rotation
            time_offset_bound: tau is limited to [-bound, bound]
            loss: Robust loss passed to scipy.optimize.least_squares
            max_iterations: Iteration budget (scaled by parameter count)
        """
        if time_offset_bound < 0:
            raise ValueError(f"time_offset_bound must be >= 0, got {time_offset_bound}")
        self._spline = spline
        self._estimate_time_offset = estimate_time_offset and time_offset_bound > 0
        self._bound = time_offset_bound
        self._loss = loss
        self._max_iterations = max_iterations
        self._constraints: list[RotationAlignmentConstraint] = []

    def add_constraint(
        self, start_time: float, end_time: float, sensor_rotation: np.ndarray
    ) -> bool:
        """Add one interval unless an admissible offset could leave the spline range.

        Returns:
            True if the constraint was added
        """
        margin = self._bound if self._estimate_time_offset else 0.0
        if start_time - margin < self._spline.min_time or end_time + margin > self._spline.max_time:
            return False
        self._constraints.append(
            RotationAlignmentConstraint(
                start_time=start_time,
                end_time=end_time,
                sensor_rotation=np.asarray(sensor_rotation, dtype=np.float64),
            )
        )
        return True

    def _residuals(self, params: np.ndarray) -> np.ndarray:
        X = exp_so3(params[:3])
        tau = params[3] if self._estimate_time_offset else 0.0

        residuals = np.empty(3 * len(self._constraints))
        for i, c in enumerate(self._constraints):
            A = self._spline.rotation(c.start_time + tau).T @ self._spline.rotation(
                c.end_time + tau
            )
            residuals[3 * i : 3 * i + 3] = log_so3(X @ c.sensor_rotation.T @ X.T @ A)
        return residuals

    def solve(self, initial_rotation: np.ndarray, initial_offset: float = 0.0) -> AlignmentEstimate:
        """Jointly refine rotation (and time offset) over all constraints.

        Args:
            initial_rotation: Starting sensor-to-body rotation
            initial_offset: Starting time offset, clipped into the bounds.
                Ignored when the offset is not estimated (it stays 0).

        Returns:
            AlignmentEstimate (the initial values if there are no constraints)
        """
        initial_rotation = np.asarray(initial_rotation, dtype=np.float64)
        if not self._constraints:
            return AlignmentEstimate(
                success=False,
                rotation=initial_rotation.copy(),
                time_offset=initial_offset,
                initial_cost=0.0,
                final_cost=0.0,
                num_constraints=0,
            )

        x0 = log_so3(initial_rotation)
        lower = np.full(3, -np.inf)
        upper = np.full(3, np.inf)
        if self._estimate_time_offset:
            # least_squares needs a strictly feasible start
            tau0 = float(np.clip(initial_offset, -0.99 * self._bound, 0.99 * self._bound))
            x0 = np.append(x0, tau0)
            lower = np.append(lower, -self._bound)
            upper = np.append(upper, self._bound)

        initial_cost = 0.5 * float(np.sum(self._residuals(x0) ** 2))
        result = least_squares(
            self._residuals,
            x0,
            bounds=(lower, upper),
            method="trf",
            loss=self._loss,
            f_scale=_LOSS_SCALE,
            max_nfev=self._max_iterations * len(x0),
        )

        tau = float(result.x[3]) if self._estimate_time_offset else 0.0
        final_cost = 0.5 * float(np.sum(result.fun**2))
        logger.info(
            "Rotation alignment over %d constraints: cost %.3e -> %.3e, time offset %.6f s",
            len(self._constraints),
            initial_cost,
            final_cost,
            tau,
        )
        return AlignmentEstimate(
            success=bool(result.success),
            rotation=exp_so3(result.x[:3]),
            time_offset=tau,
            initial_cost=initial_cost,
            final_cost=final_cost,
            num_constraints=len(self._constraints),
        )

    @property
    def num_constraints(self) -> int:
        """Number of residual blocks collected."""
        return len(self._constraints)
