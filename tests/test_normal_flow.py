"""Tests for normal-flow extraction."""

import numpy as np
import pytest

from evcalib.config import NormalFlowConfig
from evcalib.frontend.event_surface import ActiveEventSurface
from evcalib.frontend.events import Event, EventArray
from evcalib.frontend.normal_flow import NormalFlowExtractor

WIDTH, HEIGHT = 40, 30
SPEED = 200.0  # pixels/s


def moving_edge_events(angle: float, t0: float = 1.0) -> EventArray:
    """One event per pixel as a straight edge sweeps the sensor.

    The edge normal points along ``angle``; a pixel fires when the edge
    reaches it, t = t0 + (x cos + y sin) / SPEED, shifted to start at t0.
    """
    ys, xs = np.mgrid[0:HEIGHT, 0:WIDTH]
    xs = xs.ravel()
    ys = ys.ravel()
    travel = xs * np.cos(angle) + ys * np.sin(angle)
    timestamps = t0 + (travel - travel.min()) / SPEED
    return EventArray(
        timestamps=timestamps,
        xs=xs,
        ys=ys,
        polarities=np.ones(len(xs), dtype=bool),
    )


@pytest.fixture
def config() -> NormalFlowConfig:
    """Extraction options with a decay long enough to see most of the sweep."""
    return NormalFlowConfig(decay_sec=0.1, seed=7)


class TestNormalFlowExtractor:
    """Test suite for NormalFlowExtractor."""

    @pytest.mark.parametrize("angle", [0.0, np.pi / 6, np.pi / 2])
    def test_flow_follows_edge_normal(self, config: NormalFlowConfig, angle: float):
        """Flow direction is the edge normal and its norm the edge speed."""
        surface = ActiveEventSurface(WIDTH, HEIGHT)
        surface.ingest_array(moving_edge_events(angle))

        pack = NormalFlowExtractor(surface, config).extract()

        assert len(pack) > 0
        expected = np.array([np.cos(angle), np.sin(angle)])
        for nf in pack.flows:
            np.testing.assert_allclose(nf.direction, expected, atol=1e-6)
            assert nf.norm == pytest.approx(SPEED, rel=1e-6)

    def test_seeds_do_not_overlap(self, config: NormalFlowConfig):
        """Accepted seeds are further apart than the neighbour distance."""
        surface = ActiveEventSurface(WIDTH, HEIGHT)
        surface.ingest_array(moving_edge_events(0.0))

        pack = NormalFlowExtractor(surface, config).extract()

        pixels = np.array([[nf.x, nf.y] for nf in pack.flows])
        for i in range(len(pixels)):
            chebyshev = np.abs(pixels - pixels[i]).max(axis=1)
            chebyshev[i] = config.neighbor_dist + 1
            assert np.all(chebyshev > config.neighbor_dist)

        assert pack.claimed_mask.sum() == len(pack)
        assert np.all(pack.candidate_mask[pack.claimed_mask])

    def test_seeds_stay_off_border(self, config: NormalFlowConfig):
        """No flow is seeded within the window border."""
        surface = ActiveEventSurface(WIDTH, HEIGHT)
        surface.ingest_array(moving_edge_events(np.pi / 4))

        pack = NormalFlowExtractor(surface, config).extract()

        border = max(config.win_size, config.neighbor_dist)
        for nf in pack.flows:
            assert border <= nf.x < WIDTH - border
            assert border <= nf.y < HEIGHT - border

    def test_stale_events_are_ignored(self, config: NormalFlowConfig):
        """Events older than 1.5 decay constants produce no flow."""
        surface = ActiveEventSurface(WIDTH, HEIGHT)
        surface.ingest_array(moving_edge_events(0.0))
        surface.ingest(Event(5.0, 0, 0, True))

        pack = NormalFlowExtractor(surface, config).extract()

        assert len(pack) == 0
        assert pack.timestamp == 5.0

    def test_empty_surface(self, config: NormalFlowConfig):
        """An empty surface yields an empty pack."""
        pack = NormalFlowExtractor(ActiveEventSurface(WIDTH, HEIGHT), config).extract()
        assert len(pack) == 0
        assert not pack.candidate_mask.any()

    def test_sorted_flows(self, config: NormalFlowConfig):
        """Flows can be consumed in time order."""
        surface = ActiveEventSurface(WIDTH, HEIGHT)
        surface.ingest_array(moving_edge_events(np.pi / 6))

        flows = NormalFlowExtractor(surface, config).extract().sorted_flows()
        timestamps = [nf.timestamp for nf in flows]
        assert timestamps == sorted(timestamps)


class TestNormFlowPack:
    """Test suite for NormFlowPack event views."""

    def test_active_events(self, config: NormalFlowConfig):
        """Only pixels whose latest event is recent enough are returned."""
        surface = ActiveEventSurface(WIDTH, HEIGHT)
        surface.ingest_array(moving_edge_events(0.0))
        pack = NormalFlowExtractor(surface, config).extract()

        active = pack.active_events(0.012)

        # Columns 37..39 fired within 12 ms of the last event
        assert len(active) == 3 * HEIGHT
        assert set(active.xs.tolist()) == {37, 38, 39}
        assert np.all(active.polarities)

    def test_norm_flow_events(self, config: NormalFlowConfig):
        """Plane inliers of accepted flows are returned as events."""
        surface = ActiveEventSurface(WIDTH, HEIGHT)
        surface.ingest_array(moving_edge_events(0.0))
        pack = NormalFlowExtractor(surface, config).extract()

        events = pack.norm_flow_events()

        assert len(events) == int(pack.inlier_mask.sum())
        assert len(events) >= len(pack)
        assert np.all(pack.inlier_mask[events.ys, events.xs])
