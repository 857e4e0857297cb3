"""Configuration for the event-domain frontend and rotation initializer.

Every component takes a small dataclass of options. ``load_config`` reads a
YAML file whose top-level sections mirror the fields of ``CalibConfig``:

    event_surface:
      filter_threshold: 0.001
    normal_flow:
      decay_sec: 0.02
      win_size: 2
    rotation_init:
      window_duration: 0.0333
    output_dir: ./evcalib_output

Missing sections or keys fall back to defaults; unknown keys are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass
class EventSurfaceConfig:
    """Options of the surface of active events.

    Attributes:
        filter_threshold: Refractory period in seconds. A same-polarity event
            closer than this to the previous one only updates "last seen".
    """

    filter_threshold: float = 1e-3

    def __post_init__(self) -> None:
        if self.filter_threshold < 0:
            raise ValueError(f"filter_threshold must be >= 0, got {self.filter_threshold}")


@dataclass
class NormalFlowConfig:
    """Options of the normal-flow extractor.

    Attributes:
        decay_sec: Time-surface decay constant; pixels older than
            1.5 * decay_sec relative to the latest event are ignored
        win_size: Half size of the plane-fitting window
        neighbor_dist: Half size of the exclusion zone around claimed pixels
        good_ratio_thd: Minimum fraction of valid window pixels and of
            plane inliers
        time_dist_thd: RANSAC inlier threshold on temporal residuals (s)
        ransac_max_iter: RANSAC iteration cap per pixel
        max_flow_norm: Flows faster than this (pixels/s) are rejected
        undistort: Extract from the undistorted raw time surface
        seed: Seed of the sample generator
    """

    decay_sec: float = 0.02
    win_size: int = 2
    neighbor_dist: int = 2
    good_ratio_thd: float = 0.9
    time_dist_thd: float = 2e-3
    ransac_max_iter: int = 50
    max_flow_norm: float = 4e3
    undistort: bool = False
    seed: int = 0

    def __post_init__(self) -> None:
        if self.decay_sec <= 0:
            raise ValueError(f"decay_sec must be positive, got {self.decay_sec}")
        if self.win_size < 1:
            raise ValueError(f"win_size must be >= 1, got {self.win_size}")
        if self.neighbor_dist < 0:
            raise ValueError(f"neighbor_dist must be >= 0, got {self.neighbor_dist}")
        if not 0.0 < self.good_ratio_thd <= 1.0:
            raise ValueError(f"good_ratio_thd must be in (0, 1], got {self.good_ratio_thd}")
        if self.time_dist_thd <= 0:
            raise ValueError(f"time_dist_thd must be positive, got {self.time_dist_thd}")
        if self.ransac_max_iter < 1:
            raise ValueError(f"ransac_max_iter must be >= 1, got {self.ransac_max_iter}")


@dataclass
class LineTrackerConfig:
    """Options of the event line tracker.

    Attributes:
        distance_thd: Max point-to-line distance for association (pixels)
        orientation_thd: Min cosine between line normal and flow direction
        max_line_count: Capacity of the active line set
    """

    distance_thd: float = 3.0
    orientation_thd: float = 0.8
    max_line_count: int = 50

    def __post_init__(self) -> None:
        if self.distance_thd <= 0:
            raise ValueError(f"distance_thd must be positive, got {self.distance_thd}")
        if not -1.0 <= self.orientation_thd <= 1.0:
            raise ValueError(f"orientation_thd must be in [-1, 1], got {self.orientation_thd}")
        if self.max_line_count < 1:
            raise ValueError(f"max_line_count must be >= 1, got {self.max_line_count}")


@dataclass
class TrackFilterConfig:
    """Fractions of feature tracks dropped by each quality filter.

    Filters run in the order length, fit consistency, age, frequency; each
    removes the worst ``fraction`` of the tracks still alive.

    Attributes:
        length_fraction: Drop tracks with the fewest samples
        fit_consistency_fraction: Drop tracks deviating most from a smooth fit
        age_fraction: Drop tracks with the shortest duration
        frequency_fraction: Drop tracks with the lowest sample rate
        fit_degree: Polynomial degree of the smooth trace fit
    """

    length_fraction: float = 0.1
    fit_consistency_fraction: float = 0.1
    age_fraction: float = 0.1
    frequency_fraction: float = 0.1
    fit_degree: int = 3

    def __post_init__(self) -> None:
        for name in (
            "length_fraction",
            "fit_consistency_fraction",
            "age_fraction",
            "frequency_fraction",
        ):
            value = getattr(self, name)
            if not 0.0 <= value < 1.0:
                raise ValueError(f"{name} must be in [0, 1), got {value}")
        if self.fit_degree < 1:
            raise ValueError(f"fit_degree must be >= 1, got {self.fit_degree}")


@dataclass
class RotationInitConfig:
    """Options of the event-inertial rotation initializer.

    Attributes:
        window_duration: Width of each relative-rotation window (s)
        min_window_matches: Minimum tracked correspondences per window
        pixel_threshold: Rotation-only RANSAC threshold (pixels)
        ransac_max_iter: Rotation-only RANSAC iteration cap
        min_inlier_ratio: Minimum inlier fraction for a valid window
        min_solver_window: Samples accumulated between two closed-form
            extrinsic attempts
        excitation_threshold: Second-smallest singular value required for
            a well-conditioned extrinsic
        time_offset_padding: Trimmed from both ends of the spline range and
            used as the bound of the time offset (s)
        estimate_time_offset: Refine rotation and time offset jointly
        export_batch_duration: Duration of each exported event batch (s)
        optimizer_loss: Loss of the refinement ("linear", "huber", ...)
        optimizer_max_iterations: Refinement iteration budget
        seed: Seed of the sample generator
    """

    window_duration: float = 1.0 / 30.0
    min_window_matches: int = 10
    pixel_threshold: float = 2.0
    ransac_max_iter: int = 200
    min_inlier_ratio: float = 0.6
    min_solver_window: int = 50
    excitation_threshold: float = 0.25
    time_offset_padding: float = 0.1
    estimate_time_offset: bool = True
    export_batch_duration: float = 0.2
    optimizer_loss: str = "huber"
    optimizer_max_iterations: int = 50
    seed: int = 0

    def __post_init__(self) -> None:
        if self.window_duration <= 0:
            raise ValueError(f"window_duration must be positive, got {self.window_duration}")
        if self.min_window_matches < 2:
            raise ValueError(
                f"min_window_matches must be >= 2, got {self.min_window_matches}"
            )
        if self.min_solver_window < 1:
            raise ValueError(f"min_solver_window must be >= 1, got {self.min_solver_window}")
        if self.time_offset_padding < 0:
            raise ValueError(
                f"time_offset_padding must be >= 0, got {self.time_offset_padding}"
            )
        if self.export_batch_duration <= 0:
            raise ValueError(
                f"export_batch_duration must be positive, got {self.export_batch_duration}"
            )


@dataclass
class CalibConfig:
    """Complete configuration."""

    event_surface: EventSurfaceConfig = field(default_factory=EventSurfaceConfig)
    normal_flow: NormalFlowConfig = field(default_factory=NormalFlowConfig)
    line_tracker: LineTrackerConfig = field(default_factory=LineTrackerConfig)
    track_filter: TrackFilterConfig = field(default_factory=TrackFilterConfig)
    rotation_init: RotationInitConfig = field(default_factory=RotationInitConfig)
    output_dir: str = "./evcalib_output"


_SECTIONS = {
    "event_surface": EventSurfaceConfig,
    "normal_flow": NormalFlowConfig,
    "line_tracker": LineTrackerConfig,
    "track_filter": TrackFilterConfig,
    "rotation_init": RotationInitConfig,
}


def _build_section(name: str, cls: type, values: Any) -> Any:
    if values is None:
        return cls()
    if not isinstance(values, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown keys in config section '{name}': {unknown}")
    return cls(**values)


def config_from_dict(data: dict[str, Any]) -> CalibConfig:
    """Build a CalibConfig from a plain mapping.

    Raises:
        ValueError: On unknown sections/keys or invalid values
    """
    unknown = sorted(set(data) - set(_SECTIONS) - {"output_dir"})
    if unknown:
        raise ValueError(f"Unknown config sections: {unknown}")

    sections = {name: _build_section(name, cls, data.get(name)) for name, cls in _SECTIONS.items()}
    return CalibConfig(output_dir=str(data.get("output_dir", "./evcalib_output")), **sections)


def load_config(path: str | Path) -> CalibConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        CalibConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file content is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return CalibConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping in {path}")
    return config_from_dict(data)
