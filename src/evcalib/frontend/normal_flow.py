"""Normal-flow extraction from the raw time surface.

For every recent pixel a plane t = -(A x + B y + C) is fitted to the event
timestamps in a small window. The plane gradient yields the normal flow,
i.e. the velocity component along the local edge normal:

    nf = (-A, -B) / (A^2 + B^2)

Pixels are scanned in raster order and claimed greedily: once a pixel
produced a flow, no other pixel within ``neighbor_dist`` of it is used as
a seed, so estimates never overlap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from ..config import NormalFlowConfig
from .event_surface import ActiveEventSurface
from .events import EventArray
from .plane_ransac import center_points, fit_local_plane

logger = logging.getLogger(__name__)

# Raw timestamps below this are treated as "no event"
_UNASSIGNED_TIME = 1e-3


@dataclass(frozen=True, eq=False)
class NormalFlow:
    """Normal flow measured at one pixel.

    Attributes:
        timestamp: Time of the seed pixel's most recent event (s)
        x: Pixel column
        y: Pixel row
        flow: (2,) flow vector in pixels/s; its norm is the reciprocal of
            the temporal gradient magnitude of the fitted plane
    """

    timestamp: float
    x: int
    y: int
    flow: np.ndarray

    @property
    def pixel(self) -> np.ndarray:
        """Return pixel position as float (2,) array."""
        return np.array([self.x, self.y], dtype=np.float64)

    @property
    def norm(self) -> float:
        """Return flow magnitude."""
        return float(np.linalg.norm(self.flow))

    @property
    def direction(self) -> np.ndarray:
        """Return unit flow direction."""
        return self.flow / self.norm


@dataclass
class NormFlowPack:
    """One extraction batch.

    Attributes:
        flows: Accepted normal flows in raster order of their seeds
        time_map: (H, W) raw time surface used for extraction
        polarity_map: (H, W) uint8 polarity map, 1 = positive
        inlier_mask: (H, W) bool, pixels that supported an accepted plane
        claimed_mask: (H, W) bool, seed pixels of accepted flows
        candidate_mask: (H, W) bool, seeds that had enough valid neighbours
        timestamp: Latest event time when the pack was built
    """

    flows: list[NormalFlow]
    time_map: np.ndarray
    polarity_map: np.ndarray
    inlier_mask: np.ndarray
    claimed_mask: np.ndarray
    candidate_mask: np.ndarray
    timestamp: float
    decay_sec: float = field(default=0.02)

    def sorted_flows(self) -> list[NormalFlow]:
        """Return flows ordered by timestamp."""
        return sorted(self.flows, key=lambda nf: nf.timestamp)

    def active_events(self, dt: float) -> EventArray:
        """Return one event per pixel whose latest event is within ``dt``.

        Args:
            dt: Age limit relative to the pack timestamp (s)

        Returns:
            EventArray (possibly empty) in raster order, time sorted
        """
        mask = (self.time_map >= _UNASSIGNED_TIME) & (self.timestamp - self.time_map <= dt)
        return self._events_from_mask(mask)

    def norm_flow_events(self) -> EventArray:
        """Return one event per pixel that was a plane inlier of an accepted flow."""
        mask = (self.time_map >= _UNASSIGNED_TIME) & self.inlier_mask
        return self._events_from_mask(mask)

    def _events_from_mask(self, mask: np.ndarray) -> EventArray:
        ys, xs = np.nonzero(mask)
        return EventArray(
            timestamps=self.time_map[ys, xs],
            xs=xs,
            ys=ys,
            polarities=self.polarity_map[ys, xs].astype(bool),
        )

    def __len__(self) -> int:
        return len(self.flows)


class NormalFlowExtractor:
    """Extracts normal flow from an ActiveEventSurface.

    Example usage:
        extractor = NormalFlowExtractor(surface, NormalFlowConfig(decay_sec=0.02))
        pack = extractor.extract()
        for nf in pack.flows:
            print(nf.pixel, nf.direction)
    """

    def __init__(
        self,
        surface: ActiveEventSurface,
        config: NormalFlowConfig | None = None,
    ) -> None:
        """Initialize extractor.

        Args:
            surface: Surface to read raw time maps from
            config: Extraction options (defaults if None)
        """
        self._surface = surface
        self._config = config if config is not None else NormalFlowConfig()
        self._rng = np.random.default_rng(self._config.seed)

    def extract(self) -> NormFlowPack:
        """Extract a normal-flow pack from the surface's current state."""
        time_map, polarity_map = self._surface.raw_time_surface(
            ignore_polarity=True, undistort=self._config.undistort
        )
        return extract_normal_flows(
            time_map,
            polarity_map,
            self._surface.time_latest,
            self._config,
            self._rng,
        )

    @property
    def config(self) -> NormalFlowConfig:
        """Return extraction options."""
        return self._config


def extract_normal_flows(
    time_map: np.ndarray,
    polarity_map: np.ndarray,
    time_latest: float,
    config: NormalFlowConfig,
    rng: np.random.Generator,
) -> NormFlowPack:
    """Extract normal flows from raw time and polarity maps.

    Args:
        time_map: (H, W) most recent (unsigned) event time per pixel
        polarity_map: (H, W) most recent polarity per pixel
        time_latest: Latest event time of the stream
        config: Extraction options
        rng: Generator for RANSAC sample draws

    Returns:
        NormFlowPack
    """
    rows, cols = time_map.shape
    ws = config.win_size
    nd = config.neighbor_dist
    border = max(ws, nd)
    win_sample_count = (2 * ws + 1) ** 2
    win_sample_thd = int(win_sample_count * config.good_ratio_thd)
    max_flow_sq = config.max_flow_norm * config.max_flow_norm

    t_min = max(_UNASSIGNED_TIME, time_latest - 1.5 * config.decay_sec)
    valid = (time_map >= t_min) & (time_map <= time_latest)

    claimed = np.zeros((rows, cols), dtype=bool)
    inliers = np.zeros((rows, cols), dtype=bool)
    candidates = np.zeros((rows, cols), dtype=bool)
    flows: list[NormalFlow] = []

    # Interior seeds in raster order; the order decides which of two
    # touching seeds wins the claim
    interior = np.zeros_like(valid)
    if rows > 2 * border and cols > 2 * border:
        interior[border : rows - border, border : cols - border] = True
    seed_ys, seed_xs = np.nonzero(valid & interior)

    for y, x in zip(seed_ys, seed_xs):
        if claimed[y - nd : y + nd + 1, x - nd : x + nd + 1].any():
            continue

        win_valid = valid[y - ws : y + ws + 1, x - ws : x + ws + 1]
        dys, dxs = np.nonzero(win_valid)
        if len(dys) < win_sample_thd:
            continue
        candidates[y, x] = True

        ys = y - ws + dys
        xs = x - ws + dxs
        points = np.column_stack([xs, ys, time_map[ys, xs]]).astype(np.float64)

        fit = fit_local_plane(
            center_points(points),
            threshold=config.time_dist_thd,
            max_iterations=config.ransac_max_iter,
            rng=rng,
        )
        if not fit.success or fit.inlier_ratio < config.good_ratio_thd:
            continue

        dtdx, dtdy = -fit.coefficients[0], -fit.coefficients[1]
        grad_sq = dtdx * dtdx + dtdy * dtdy
        if grad_sq <= 0.0:
            continue
        nf = np.array([dtdx, dtdy]) / grad_sq

        # Plane nearly parallel to the time axis: speed is not observable
        if float(nf @ nf) > max_flow_sq:
            continue

        flows.append(
            NormalFlow(timestamp=float(time_map[y, x]), x=int(x), y=int(y), flow=nf)
        )
        claimed[y, x] = True
        inliers[ys[fit.inliers], xs[fit.inliers]] = True

    logger.debug(
        "Extracted %d normal flows from %d recent pixels (%d candidates)",
        len(flows),
        int(valid.sum()),
        int(candidates.sum()),
    )

    return NormFlowPack(
        flows=flows,
        time_map=time_map,
        polarity_map=polarity_map,
        inlier_mask=inliers,
        claimed_mask=claimed,
        candidate_mask=candidates,
        timestamp=time_latest,
        decay_sec=config.decay_sec,
    )
