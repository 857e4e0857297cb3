"""End-to-end tests for EventInertialRotationInitializer."""

from pathlib import Path
from typing import Callable

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from conftest import wobble_rotation, yaw_rotation
from evcalib.config import CalibConfig, RotationInitConfig
from evcalib.errors import InsufficientExcitationError, NeedsExternalTrackingError
from evcalib.frontend.camera import CameraIntrinsics, PinholeCamera
from evcalib.frontend.events import EventArray
from evcalib.init.feature_traces import FeatureTrace
from evcalib.init.initializer import AlignmentStatus, EventInertialRotationInitializer
from evcalib.init.parameters import CalibParameters
from evcalib.init.so3 import angle_between
from evcalib.io.tracking_io import TrackingWorkspace

TOPIC = "/dvs/events"
X_TRUE = Rotation.from_rotvec([0.2, -0.3, 0.5]).as_matrix()


@pytest.fixture
def camera() -> PinholeCamera:
    """Wide-angle distortion-free camera."""
    return PinholeCamera(CameraIntrinsics(200.0, 200.0, 320.0, 240.0), width=640, height=480)


def make_config(tmp_path: Path, **options) -> CalibConfig:
    return CalibConfig(output_dir=str(tmp_path), rotation_init=RotationInitConfig(**options))


def synthetic_traces(
    camera: PinholeCamera,
    camera_orientation: Callable[[float], np.ndarray],
    times: np.ndarray,
    num_landmarks: int = 300,
    seed: int = 0,
) -> list[FeatureTrace]:
    """Pixel traces of distant landmarks seen by a purely rotating camera.

    Every contiguous visible run of a landmark becomes its own trace.
    """
    rng = np.random.default_rng(seed)
    directions = np.column_stack([
        rng.uniform(-1.5, 1.5, num_landmarks),
        rng.uniform(-1.1, 1.1, num_landmarks),
        np.ones(num_landmarks),
    ])
    world = directions @ camera_orientation(times[len(times) // 2]).T

    rotations = np.stack([camera_orientation(t) for t in times])
    in_camera = np.einsum("tji,nj->tni", rotations, world)
    depth = in_camera[..., 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        u = camera.intrinsics.fx * in_camera[..., 0] / depth + camera.intrinsics.cx
        v = camera.intrinsics.fy * in_camera[..., 1] / depth + camera.intrinsics.cy
    visible = (depth > 0.1) & (u > 2) & (u < camera.width - 3) & (v > 2) & (v < camera.height - 3)

    traces = []
    for n in range(num_landmarks):
        edges = np.diff(np.concatenate([[0], visible[:, n].astype(int), [0]]))
        for start, end in zip(np.flatnonzero(edges == 1), np.flatnonzero(edges == -1)):
            if end - start < 3:
                continue
            traces.append(
                FeatureTrace(
                    feature_id=len(traces),
                    timestamps=times[start:end],
                    positions=np.column_stack([u[start:end, n], v[start:end, n]]),
                )
            )
    return traces


def window_times(initializer: EventInertialRotationInitializer, width: float) -> np.ndarray:
    """Sample times on the initializer's window grid."""
    t_min, t_max = initializer.valid_time_range
    count = int(np.floor((t_max - t_min) / width + 1e-9))
    return np.array([t_min + i * width for i in range(count + 1)])


def write_traces(config: CalibConfig, traces: list[FeatureTrace]) -> None:
    workspace = TrackingWorkspace(config.output_dir, TOPIC)
    workspace.prepare()
    workspace.write_tracking_results(traces)


class TestEventInertialRotationInitializer:
    """Test suite for the four-phase rotation initializer."""

    def test_exports_events_when_tracking_is_missing(self, tmp_path, make_spline, camera):
        """Without tracker output, events are exported and the run asks for tracking."""
        config = make_config(tmp_path)
        initializer = EventInertialRotationInitializer({TOPIC: camera}, make_spline(), config)
        events = EventArray(
            timestamps=np.linspace(0.0, 3.0, 301),
            xs=np.arange(301) % 640,
            ys=np.arange(301) % 480,
            polarities=np.ones(301, dtype=bool),
        )

        result = initializer.initialize({TOPIC: events})

        assert result.status is AlignmentStatus.NEEDS_EXTERNAL_TRACKING
        assert not result.success
        workspace = TrackingWorkspace(tmp_path, TOPIC)
        assert result.export_paths == {TOPIC: workspace.directory}
        assert workspace.batch_index_path.is_file()
        assert initializer.parameters.topics == []
        with pytest.raises(NeedsExternalTrackingError) as excinfo:
            result.raise_for_status()
        assert TOPIC in excinfo.value.export_paths

    def test_missing_events_for_export(self, tmp_path, make_spline, camera):
        """Missing tracking results and missing events is a usage error."""
        initializer = EventInertialRotationInitializer(
            {TOPIC: camera}, make_spline(), make_config(tmp_path)
        )
        with pytest.raises(ValueError, match=TOPIC):
            initializer.initialize()

    def test_padding_longer_than_spline(self, tmp_path, make_spline, camera):
        """A padded range with no time left is rejected."""
        with pytest.raises(ValueError):
            EventInertialRotationInitializer(
                {TOPIC: camera},
                make_spline(duration=0.15),
                make_config(tmp_path, time_offset_padding=0.1),
            )

    def test_recovers_rotation_and_time_offset(self, tmp_path, make_spline, camera):
        """Synthetic tracks of a rotating camera give back the extrinsic and offset."""
        tau = 0.005
        config = make_config(tmp_path, min_solver_window=20)
        parameters = CalibParameters()
        initializer = EventInertialRotationInitializer(
            {TOPIC: camera}, make_spline("wobble"), config, parameters
        )
        times = window_times(initializer, config.rotation_init.window_duration)
        write_traces(
            config,
            synthetic_traces(camera, lambda t: wobble_rotation(t + tau) @ X_TRUE, times),
        )

        result = initializer.initialize()

        assert result.status is AlignmentStatus.SUCCESS
        result.raise_for_status()
        assert angle_between(result.rotations[TOPIC], X_TRUE) < 1e-3
        assert result.time_offsets[TOPIC] == pytest.approx(tau, abs=1e-3)
        assert angle_between(parameters.rotation(TOPIC), X_TRUE) < 1e-3
        assert parameters.time_offset(TOPIC) == result.time_offsets[TOPIC]

        # Results are write-once
        with pytest.raises(ValueError):
            initializer.initialize()

    def test_closed_form_only(self, tmp_path, make_spline, camera):
        """Without offset estimation only the closed-form rotation is stored."""
        config = make_config(tmp_path, min_solver_window=20, estimate_time_offset=False)
        initializer = EventInertialRotationInitializer(
            {TOPIC: camera}, make_spline("wobble"), config
        )
        times = window_times(initializer, config.rotation_init.window_duration)
        write_traces(config, synthetic_traces(camera, lambda t: wobble_rotation(t) @ X_TRUE, times))

        result = initializer.initialize()

        assert result.success
        assert angle_between(result.rotations[TOPIC], X_TRUE) < 1e-3
        assert result.time_offsets == {}
        assert initializer.parameters.time_offset(TOPIC) is None

    def test_single_axis_motion_is_insufficient(self, tmp_path, make_spline, camera):
        """Rotation about one body axis leaves the extrinsic unobservable."""
        config = make_config(tmp_path, min_solver_window=20)
        initializer = EventInertialRotationInitializer(
            {TOPIC: camera}, make_spline("yaw"), config
        )
        times = window_times(initializer, config.rotation_init.window_duration)
        write_traces(config, synthetic_traces(camera, lambda t: yaw_rotation(t) @ X_TRUE, times))

        result = initializer.initialize()

        assert result.status is AlignmentStatus.INSUFFICIENT_EXCITATION
        assert result.failed_topic == TOPIC
        assert result.num_samples > 20
        assert initializer.parameters.rotation(TOPIC) is None
        with pytest.raises(InsufficientExcitationError) as excinfo:
            result.raise_for_status()
        assert excinfo.value.topic == TOPIC


class TestCalibParameters:
    """Test suite for the parameter store."""

    def test_write_once(self):
        """A second write for the same topic is rejected."""
        parameters = CalibParameters()
        parameters.set_rotation("/a", np.eye(3))
        parameters.set_time_offset("/a", 0.01)

        with pytest.raises(ValueError):
            parameters.set_rotation("/a", np.eye(3))
        with pytest.raises(ValueError):
            parameters.set_time_offset("/a", 0.02)

    def test_to_dict(self):
        """Stored values are exported per topic."""
        parameters = CalibParameters()
        parameters.set_rotation("/b", np.eye(3))
        parameters.set_rotation("/a", np.eye(3))
        parameters.set_time_offset("/a", 0.01)

        data = parameters.to_dict()

        assert list(data) == ["/a", "/b"]
        assert data["/a"]["time_offset"] == 0.01
        assert data["/b"]["time_offset"] is None
        assert data["/b"]["so3_sensor_to_body"] == np.eye(3).tolist()

    def test_rejects_bad_shape(self):
        """Only 3x3 rotations are accepted."""
        with pytest.raises(ValueError):
            CalibParameters().set_rotation("/a", np.eye(4))
