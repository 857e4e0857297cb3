"""Generic RANSAC over a model described by plain functions.

A model is a value object bundling its minimal sample size with two pure
functions: one fitting coefficients to a subset of the data, one scoring
data against coefficients. The same loop drives the local-plane fit of the
normal-flow extractor and the rotation-only two-view solver.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

import numpy as np

# Retries for a degenerate minimal sample before the iteration is given up
_MAX_SAMPLE_CHECKS = 10


@dataclass(frozen=True)
class SacModel:
    """A robustly-fittable model.

    Attributes:
        sample_size: Minimal number of data rows that determine the model
        fit: Maps a data subset to coefficients, or None if degenerate
        residuals: Maps (coefficients, data) to one non-negative residual per row
    """

    sample_size: int
    fit: Callable[[np.ndarray], np.ndarray | None]
    residuals: Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass
class RansacResult:
    """Outcome of a RANSAC run.

    Attributes:
        success: True if any non-degenerate model was found
        coefficients: Coefficients of the best minimal-sample model
        inliers: Indices of rows within the threshold of the best model
        num_iterations: Number of hypotheses evaluated
    """

    success: bool
    coefficients: np.ndarray | None
    inliers: np.ndarray  # (K,) int
    num_iterations: int

    @property
    def num_inliers(self) -> int:
        """Return number of inliers."""
        return len(self.inliers)


def ransac(
    data: np.ndarray,
    model: SacModel,
    threshold: float,
    max_iterations: int,
    rng: np.random.Generator,
    probability: float = 0.99,
) -> RansacResult:
    """Find the model supported by the most rows.

    Hypotheses are drawn from minimal samples until the adaptive iteration
    bound (derived from the best inlier ratio and ``probability``) or
    ``max_iterations`` is reached. A row is an inlier when its residual is
    at most ``threshold``.

    Given the same data and the same generator state the result is
    deterministic.

    Args:
        data: (N, D) data rows
        model: Model description
        threshold: Inlier threshold on residuals
        max_iterations: Hard cap on hypotheses
        rng: Random generator used to draw samples
        probability: Desired probability of drawing one outlier-free sample

    Returns:
        RansacResult for the best hypothesis
    """
    n = len(data)
    empty = np.zeros(0, dtype=np.intp)
    if n < model.sample_size or max_iterations <= 0:
        return RansacResult(success=False, coefficients=None, inliers=empty, num_iterations=0)

    best_coefficients: np.ndarray | None = None
    best_count = 0
    # Unbounded until a model is found; the adaptive bound only shrinks it
    k = math.inf
    iterations = 0

    while iterations < k and iterations < max_iterations:
        iterations += 1

        coefficients = None
        for _ in range(_MAX_SAMPLE_CHECKS):
            sample = rng.choice(n, size=model.sample_size, replace=False)
            coefficients = model.fit(data[sample])
            if coefficients is not None:
                break
        if coefficients is None:
            continue

        count = int(np.count_nonzero(model.residuals(coefficients, data) <= threshold))
        if count > best_count:
            best_count = count
            best_coefficients = coefficients

            # Adaptive bound on the number of hypotheses still needed
            w = best_count / n
            p_no_outliers = 1.0 - w**model.sample_size
            p_no_outliers = min(max(p_no_outliers, np.finfo(float).eps), 1.0 - np.finfo(float).eps)
            k = math.log(1.0 - probability) / math.log(p_no_outliers)

    if best_coefficients is None:
        return RansacResult(
            success=False, coefficients=None, inliers=empty, num_iterations=iterations
        )

    inliers = np.flatnonzero(model.residuals(best_coefficients, data) <= threshold)
    return RansacResult(
        success=True,
        coefficients=best_coefficients,
        inliers=inliers,
        num_iterations=iterations,
    )
