"""Tests for the motion frontend pipeline and its offscreen drawings."""

import numpy as np
import pytest

from evcalib.config import CalibConfig, NormalFlowConfig
from evcalib.frontend.camera import CameraIntrinsics, PinholeCamera
from evcalib.frontend.drawing import (
    LINE_COLOR,
    draw_line,
    events_image,
    lines_image,
    pack_overview,
)
from evcalib.frontend.events import EventArray
from evcalib.frontend.motion_frontend import EventMotionFrontend

WIDTH, HEIGHT = 40, 30


@pytest.fixture
def camera() -> PinholeCamera:
    return PinholeCamera(CameraIntrinsics(50.0, 50.0, 20.0, 15.0), WIDTH, HEIGHT)


def sweep(t0: float = 1.0, speed: float = 200.0) -> EventArray:
    """A vertical edge moving right, one event per pixel."""
    ys, xs = np.mgrid[0:HEIGHT, 0:WIDTH]
    return EventArray(
        timestamps=t0 + xs.ravel() / speed,
        xs=xs.ravel(),
        ys=ys.ravel(),
        polarities=np.ones(WIDTH * HEIGHT, dtype=bool),
    )


class TestEventMotionFrontend:
    """Test suite for EventMotionFrontend."""

    def test_process_batch(self, camera: PinholeCamera):
        """A batch goes through surface, extractor and tracker."""
        config = CalibConfig(normal_flow=NormalFlowConfig(decay_sec=0.1, seed=7))
        frontend = EventMotionFrontend(camera, config)

        frame = frontend.process(sweep())

        assert frame.num_events == WIDTH * HEIGHT
        assert frame.num_refreshed == WIDTH * HEIGHT
        assert len(frame.pack) > 0
        assert len(frame.lines) > 0
        assert frontend.tracker.num_lines == len(frame.lines)
        for nf in frame.pack.flows:
            np.testing.assert_allclose(nf.direction, [1.0, 0.0], atol=1e-6)

    def test_overlapping_packs_are_tracked_independently(self, camera: PinholeCamera):
        """Flows re-extracted by a later pack are associated only once."""
        config = CalibConfig(normal_flow=NormalFlowConfig(decay_sec=0.1, seed=7))
        frontend = EventMotionFrontend(camera, config)

        first = frontend.process(sweep())
        second = frontend.process(EventArray.empty())

        assert len(second.pack) > 0
        for frame in (first, second):
            keys = [(nf.x, nf.y, nf.timestamp) for line in frame.lines for nf in line.observations]
            assert len(keys) == len(set(keys))
            assert len(keys) == len(frame.pack)
        assert min(line.id for line in second.lines) > max(line.id for line in first.lines)
        assert frontend.tracker.num_lines == len(second.lines)

    def test_refractory_events_are_counted(self, camera: PinholeCamera):
        """Repeated events inside the refractory period do not refresh pixels."""
        frontend = EventMotionFrontend(camera)
        events = EventArray(
            timestamps=[1.0, 1.0001, 1.0002],
            xs=[5, 5, 5],
            ys=[5, 5, 5],
            polarities=[True, True, True],
        )

        frame = frontend.process(events)

        assert frame.num_events == 3
        assert frame.num_refreshed == 1
        assert frontend.surface.surface_time(5, 5, True) == 1.0


class TestDrawing:
    """Test suite for the offscreen renderers."""

    def test_pack_overview_shape(self, camera: PinholeCamera):
        """The overview is a 2x2 mosaic of BGR images."""
        config = CalibConfig(normal_flow=NormalFlowConfig(decay_sec=0.1, seed=7))
        frame = EventMotionFrontend(camera, config).process(sweep())

        overview = pack_overview(frame.pack, dt=0.01)
        assert overview.shape == (2 * HEIGHT, 2 * WIDTH, 3)
        assert overview.dtype == np.uint8
        assert lines_image(frame.pack, frame.lines).shape == (HEIGHT, WIDTH, 3)

    def test_draw_horizontal_line(self):
        """A line with normal (0, 1) is drawn along one image row."""
        image = np.zeros((HEIGHT, WIDTH, 3), dtype=np.uint8)

        draw_line(image, 0.0, 1.0, 10.0)

        assert np.all(image[10] == LINE_COLOR)
        assert not image[:10].any()
        assert not image[11:].any()

    def test_events_image_colors(self):
        """Positive events are blue, negative events red."""
        events = EventArray(
            timestamps=[0.0, 0.1], xs=[1, 2], ys=[3, 4], polarities=[True, False]
        )
        image = events_image(events, HEIGHT, WIDTH)

        assert tuple(image[3, 1]) == (255, 0, 0)
        assert tuple(image[4, 2]) == (0, 0, 255)
        assert image.sum() == 2 * 255
