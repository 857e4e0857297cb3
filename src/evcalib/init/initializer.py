"""Event-inertial rotation initialization.

For every event-camera topic the initializer

    A. loads externally tracked feature traces (exporting event batches for
       the tracker and returning early when they are missing),
    B. recovers rotation-only relative poses over fixed-width windows,
    C. chains them into anchored rotations and solves the hand-eye problem
       in closed form against the body rotation spline, and
    D. optionally refines rotation and time offset jointly.

Results are written into a shared CalibParameters store.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping

import numpy as np

from ..config import CalibConfig
from ..errors import InsufficientExcitationError, NeedsExternalTrackingError
from ..frontend.camera import PinholeCamera
from ..frontend.events import EventArray
from ..io.tracking_io import TrackingWorkspace
from .alignment import RotationAlignmentEstimator
from .feature_traces import FeatureTrace, apply_quality_filters, clip_traces
from .hand_eye import HandEyeResult, solve_hand_eye_rotation
from .parameters import CalibParameters
from .rotation_chain import RelativeRotation, RotationChain
from .rotation_only import RotationOnlySolver
from .spline import BodyRotationSpline

logger = logging.getLogger(__name__)


class AlignmentStatus(Enum):
    """Outcome of an initialization run."""

    SUCCESS = "success"
    NEEDS_EXTERNAL_TRACKING = "needs_external_tracking"
    INSUFFICIENT_EXCITATION = "insufficient_excitation"


@dataclass
class AlignmentResult:
    """Typed result of EventInertialRotationInitializer.initialize.

    Attributes:
        status: Outcome
        rotations: Sensor-to-body rotation per initialized topic
        time_offsets: Time offset per topic (only when estimated)
        export_paths: Exported batch directory per topic lacking tracking
        failed_topic: Topic whose extrinsic stayed ill-conditioned
        num_samples: Chained samples used for the failed topic
    """

    status: AlignmentStatus
    rotations: dict[str, np.ndarray] = field(default_factory=dict)
    time_offsets: dict[str, float] = field(default_factory=dict)
    export_paths: dict[str, Path] = field(default_factory=dict)
    failed_topic: str | None = None
    num_samples: int = 0

    @property
    def success(self) -> bool:
        """True if every topic was initialized."""
        return self.status is AlignmentStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise the matching CalibrationError unless the run succeeded.

        Raises:
            NeedsExternalTrackingError: Tracking results must be produced first
            InsufficientExcitationError: The motion did not excite the extrinsic
        """
        if self.status is AlignmentStatus.NEEDS_EXTERNAL_TRACKING:
            raise NeedsExternalTrackingError(self.export_paths)
        if self.status is AlignmentStatus.INSUFFICIENT_EXCITATION:
            raise InsufficientExcitationError(self.failed_topic or "", self.num_samples)


class EventInertialRotationInitializer:
    """Initializes sensor-to-body rotations of event cameras.

    Example usage:
        initializer = EventInertialRotationInitializer(
            {"/dvs/events": camera}, spline, config
        )
        result = initializer.initialize({"/dvs/events": events})
        if result.status is AlignmentStatus.NEEDS_EXTERNAL_TRACKING:
            print("Run the tracker on", result.export_paths)
    """

    def __init__(
        self,
        cameras: Mapping[str, PinholeCamera],
        spline: BodyRotationSpline,
        config: CalibConfig | None = None,
        parameters: CalibParameters | None = None,
    ) -> None:
        """Initialize the initializer.

        Args:
            cameras: Camera model per event topic
            spline: Body rotation reference
            config: Full configuration (defaults if None)
            parameters: Store receiving the results (new store if None)

        Raises:
            ValueError: If the padded spline range is empty
        """
        self._cameras = dict(cameras)
        self._spline = spline
        self._config = config if config is not None else CalibConfig()
        self._parameters = parameters if parameters is not None else CalibParameters()

        padding = self._config.rotation_init.time_offset_padding
        self._valid_range = (spline.min_time + padding, spline.max_time - padding)
        if self._valid_range[0] >= self._valid_range[1]:
            raise ValueError(
                f"Spline range [{spline.min_time}, {spline.max_time}] is too short "
                f"for a time offset padding of {padding} s"
            )

    def initialize(self, events: Mapping[str, EventArray] | None = None) -> AlignmentResult:
        """Run phases A to D for all topics.

        Args:
            events: Raw events per topic, needed only for topics whose
                tracking results are not on disk yet

        Returns:
            AlignmentResult; a non-success status is returned, not raised

        Raises:
            WorkspaceError: If a topic workspace cannot be created
            ValueError: If events are needed for export but not supplied
        """
        traces_by_topic: dict[str, list[FeatureTrace]] = {}
        export_paths: dict[str, Path] = {}

        for topic in self._cameras:
            traces = self.acquire_traces(topic, events)
            if traces is None:
                export_paths[topic] = TrackingWorkspace(
                    self._config.output_dir, topic
                ).directory
            else:
                traces_by_topic[topic] = traces

        if export_paths:
            logger.info(
                "Tracking results missing for %s; run the feature tracker on the "
                "exported batches and initialize again",
                sorted(export_paths),
            )
            return AlignmentResult(
                status=AlignmentStatus.NEEDS_EXTERNAL_TRACKING, export_paths=export_paths
            )

        result = AlignmentResult(status=AlignmentStatus.SUCCESS)
        for topic, traces in traces_by_topic.items():
            windows = self.recover_window_rotations(topic, traces)
            chain, hand_eye = self.chain_and_solve(topic, windows)

            if not hand_eye.success:
                logger.warning(
                    "Rotation extrinsic of '%s' is ill-conditioned after %d samples "
                    "(second smallest singular value %.4f)",
                    topic,
                    hand_eye.num_samples,
                    hand_eye.conditioning,
                )
                return AlignmentResult(
                    status=AlignmentStatus.INSUFFICIENT_EXCITATION,
                    rotations=result.rotations,
                    time_offsets=result.time_offsets,
                    failed_topic=topic,
                    num_samples=hand_eye.num_samples,
                )

            rotation = hand_eye.rotation
            if self._config.rotation_init.estimate_time_offset:
                rotation, offset = self.refine(topic, chain, rotation)
                self._parameters.set_time_offset(topic, offset)
                result.time_offsets[topic] = offset

            self._parameters.set_rotation(topic, rotation)
            result.rotations[topic] = rotation

        return result

    def acquire_traces(
        self, topic: str, events: Mapping[str, EventArray] | None
    ) -> list[FeatureTrace] | None:
        """Phase A: load and filter tracking results, or export events.

        Returns:
            Filtered traces, or None if events were exported instead
        """
        workspace = TrackingWorkspace(self._config.output_dir, topic)
        workspace.prepare()
        t_min, t_max = self._valid_range

        if workspace.has_tracking_results():
            traces = clip_traces(workspace.load_tracking_results(), t_min, t_max)
            return apply_quality_filters(traces, self._config.track_filter)

        if events is None or topic not in events:
            raise ValueError(
                f"Tracking results of '{topic}' are missing and no events were "
                "supplied to export"
            )
        camera = self._cameras[topic]
        timestamps = events[topic].timestamps
        workspace.export_batches(
            events[topic].select((timestamps >= t_min) & (timestamps <= t_max)),
            batch_duration=self._config.rotation_init.export_batch_duration,
            filter_threshold=self._config.event_surface.filter_threshold,
            width=camera.width,
            height=camera.height,
        )
        return None

    def recover_window_rotations(
        self, topic: str, traces: list[FeatureTrace]
    ) -> list[RelativeRotation]:
        """Phase B: relative rotation of every window with enough matches.

        Traces flagged as outliers in any window are dropped from all later
        windows.
        """
        options = self._config.rotation_init
        solver = RotationOnlySolver(
            self._cameras[topic],
            pixel_threshold=options.pixel_threshold,
            max_iterations=options.ransac_max_iter,
            min_matches=options.min_window_matches,
            min_inlier_ratio=options.min_inlier_ratio,
            seed=options.seed,
        )

        t_min, t_max = self._valid_range
        width = options.window_duration
        num_windows = math.floor((t_max - t_min) / width + 1e-9)
        active = list(traces)
        windows: list[RelativeRotation] = []

        for i in range(num_windows):
            t0 = t_min + i * width
            t1 = t_min + (i + 1) * width
            matched = [trace for trace in active if trace.covers(t0) and trace.covers(t1)]
            if len(matched) < options.min_window_matches:
                logger.debug("Window [%.4f, %.4f]: %d matches, skipped", t0, t1, len(matched))
                continue

            result = solver.solve(
                np.array([trace.position_at(t0) for trace in matched]),
                np.array([trace.position_at(t1) for trace in matched]),
            )
            if not result.success:
                logger.debug("Window [%.4f, %.4f]: rotation-only solve failed", t0, t1)
                continue

            windows.append(RelativeRotation(start_time=t0, end_time=t1, rotation=result.rotation))
            outliers = {
                trace.feature_id
                for trace, inlier in zip(matched, result.inliers)
                if not inlier
            }
            if outliers:
                active = [trace for trace in active if trace.feature_id not in outliers]

        logger.info(
            "'%s': recovered %d of %d window rotations, %d of %d traces kept",
            topic,
            len(windows),
            num_windows,
            len(active),
            len(traces),
        )
        return windows

    def chain_and_solve(
        self, topic: str, windows: list[RelativeRotation]
    ) -> tuple[RotationChain, HandEyeResult]:
        """Phase C: chain windows and solve the closed-form extrinsic.

        A solve is attempted every time more than ``min_solver_window``
        samples have been added, and once more after the last window.
        Chaining stops at the first well-conditioned solve.
        """
        options = self._config.rotation_init
        chain = RotationChain()
        body_rotations: list[np.ndarray] = []
        sensor_rotations: list[np.ndarray] = []
        since_attempt = 0
        hand_eye = solve_hand_eye_rotation([], [], options.excitation_threshold)

        for window in windows:
            entry = chain.add(window)
            R_anchor = self._spline.rotation(entry.anchor_time)
            body_rotations.append(R_anchor.T @ self._spline.rotation(entry.timestamp))
            sensor_rotations.append(entry.rotation)
            since_attempt += 1

            if since_attempt > options.min_solver_window:
                since_attempt = 0
                hand_eye = solve_hand_eye_rotation(
                    body_rotations, sensor_rotations, options.excitation_threshold
                )
                if hand_eye.success:
                    break

        if not hand_eye.success and since_attempt > 0:
            hand_eye = solve_hand_eye_rotation(
                body_rotations, sensor_rotations, options.excitation_threshold
            )

        logger.info(
            "'%s': closed-form extrinsic from %d chained samples in %d runs (%s)",
            topic,
            len(body_rotations),
            chain.num_segments,
            "well-conditioned" if hand_eye.success else "ill-conditioned",
        )
        return chain, hand_eye

    def refine(
        self, topic: str, chain: RotationChain, initial_rotation: np.ndarray
    ) -> tuple[np.ndarray, float]:
        """Phase D: refine rotation and time offset over consecutive chain pairs."""
        options = self._config.rotation_init
        estimator = RotationAlignmentEstimator(
            self._spline,
            estimate_time_offset=True,
            time_offset_bound=options.time_offset_padding,
            loss=options.optimizer_loss,
            max_iterations=options.optimizer_max_iterations,
        )
        for a, b in chain.consecutive_pairs():
            estimator.add_constraint(a.timestamp, b.timestamp, a.rotation.T @ b.rotation)

        estimate = estimator.solve(initial_rotation)
        if not estimate.success:
            logger.warning("'%s': rotation alignment did not converge", topic)
        return estimate.rotation, estimate.time_offset

    @property
    def valid_time_range(self) -> tuple[float, float]:
        """Padded spline range used for traces and windows."""
        return self._valid_range

    @property
    def parameters(self) -> CalibParameters:
        """Store receiving the results."""
        return self._parameters
