"""Externally tracked 2D feature traces and their quality filters."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

import numpy as np

from ..config import TrackFilterConfig

logger = logging.getLogger(__name__)


@dataclass
class FeatureTrace:
    """Pixel trajectory of one tracked feature.

    The position is defined only inside [start_time, end_time] and is
    linearly interpolated between samples.

    Attributes:
        feature_id: Identifier assigned by the tracker
        timestamps: (N,) strictly increasing sample times in seconds
        positions: (N, 2) pixel positions (x, y)
    """

    feature_id: int
    timestamps: np.ndarray
    positions: np.ndarray

    def __post_init__(self) -> None:
        """Normalize arrays and check ordering."""
        self.timestamps = np.asarray(self.timestamps, dtype=np.float64).reshape(-1)
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 2)
        if len(self.timestamps) != len(self.positions):
            raise ValueError(
                f"Trace {self.feature_id}: {len(self.timestamps)} timestamps "
                f"but {len(self.positions)} positions"
            )
        if len(self.timestamps) == 0:
            raise ValueError(f"Trace {self.feature_id} has no samples")
        if np.any(np.diff(self.timestamps) <= 0):
            raise ValueError(f"Trace {self.feature_id}: timestamps must be strictly increasing")

    def covers(self, t: float) -> bool:
        """Return True if the position at t is defined."""
        return self.start_time <= t <= self.end_time

    def position_at(self, t: float) -> np.ndarray | None:
        """Interpolated pixel position at t, or None outside the trace span."""
        if not self.covers(t):
            return None
        x = np.interp(t, self.timestamps, self.positions[:, 0])
        y = np.interp(t, self.timestamps, self.positions[:, 1])
        return np.array([x, y])

    def clipped(self, t_min: float, t_max: float) -> FeatureTrace | None:
        """Return the samples inside [t_min, t_max], or None if fewer than 2 remain."""
        keep = (self.timestamps >= t_min) & (self.timestamps <= t_max)
        if np.count_nonzero(keep) < 2:
            return None
        return FeatureTrace(self.feature_id, self.timestamps[keep], self.positions[keep])

    def fit_rms(self, degree: int) -> float:
        """RMS pixel deviation from a per-axis polynomial fit over time."""
        deg = min(degree, len(self) - 1)
        if deg < 1:
            return 0.0
        t = self.timestamps - self.timestamps[0]
        residuals = []
        for axis in range(2):
            coeffs = np.polyfit(t, self.positions[:, axis], deg)
            residuals.append(self.positions[:, axis] - np.polyval(coeffs, t))
        return float(np.sqrt(np.mean(np.square(residuals))))

    @property
    def start_time(self) -> float:
        """First sample time."""
        return float(self.timestamps[0])

    @property
    def end_time(self) -> float:
        """Last sample time."""
        return float(self.timestamps[-1])

    @property
    def duration(self) -> float:
        """Time span covered by the trace."""
        return self.end_time - self.start_time

    @property
    def frequency(self) -> float:
        """Samples per second."""
        return len(self) / self.duration if self.duration > 0 else 0.0

    def __len__(self) -> int:
        return len(self.timestamps)


def clip_traces(traces: list[FeatureTrace], t_min: float, t_max: float) -> list[FeatureTrace]:
    """Clip every trace to [t_min, t_max], dropping traces left too short."""
    clipped = [trace.clipped(t_min, t_max) for trace in traces]
    return [trace for trace in clipped if trace is not None]


def drop_worst_fraction(
    traces: list[FeatureTrace],
    fraction: float,
    score: Callable[[FeatureTrace], float],
) -> list[FeatureTrace]:
    """Remove floor(fraction * n) traces with the lowest score.

    Ties are broken by input order; survivors keep their input order.
    """
    num_drop = math.floor(fraction * len(traces))
    if num_drop <= 0:
        return list(traces)

    scores = np.array([score(trace) for trace in traces])
    worst = np.argsort(scores, kind="stable")[:num_drop]
    dropped = set(worst.tolist())
    return [trace for i, trace in enumerate(traces) if i not in dropped]


def filter_by_length(traces: list[FeatureTrace], fraction: float) -> list[FeatureTrace]:
    """Drop the traces with the fewest samples."""
    return drop_worst_fraction(traces, fraction, lambda trace: len(trace))


def filter_by_fit_consistency(
    traces: list[FeatureTrace], fraction: float, degree: int = 3
) -> list[FeatureTrace]:
    """Drop the traces that deviate most from a smooth polynomial trajectory."""
    return drop_worst_fraction(traces, fraction, lambda trace: -trace.fit_rms(degree))


def filter_by_age(traces: list[FeatureTrace], fraction: float) -> list[FeatureTrace]:
    """Drop the traces with the shortest duration."""
    return drop_worst_fraction(traces, fraction, lambda trace: trace.duration)


def filter_by_frequency(traces: list[FeatureTrace], fraction: float) -> list[FeatureTrace]:
    """Drop the traces with the lowest sample rate."""
    return drop_worst_fraction(traces, fraction, lambda trace: trace.frequency)


def apply_quality_filters(
    traces: list[FeatureTrace], config: TrackFilterConfig
) -> list[FeatureTrace]:
    """Run length, fit consistency, age and frequency filters in order.

    Args:
        traces: Traces already clipped to the valid time range
        config: Filter fractions

    Returns:
        Surviving traces in input order
    """
    num_input = len(traces)
    traces = filter_by_length(traces, config.length_fraction)
    traces = filter_by_fit_consistency(
        traces, config.fit_consistency_fraction, config.fit_degree
    )
    traces = filter_by_age(traces, config.age_fraction)
    traces = filter_by_frequency(traces, config.frequency_fraction)

    logger.info("Quality filters kept %d of %d feature traces", len(traces), num_input)
    return traces
