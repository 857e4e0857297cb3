"""Recursive tracking of 2D lines from normal-flow observations.

A line is kept in implicit form

    x * cos(theta) + y * sin(theta) = rho

with (cos, sin) the unit normal. Each line carries exponentially decayed
sufficient statistics of its supporting points, so re-fitting it after a
new association is closed-form and O(1).

Activity of all lines decays with every observation by exp(-|nf| * dt), the
fraction of a pixel the edge moved since the previous observation. Lines
that stop receiving support fade and are the first evicted once the active
set is full.
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass, field

import numpy as np

from ..config import LineTrackerConfig
from .normal_flow import NormalFlow, NormFlowPack

logger = logging.getLogger(__name__)

# Ids are unique for the lifetime of the process
_line_ids = itertools.count()


@dataclass
class LineParamUpdate:
    """Decayed sums of supporting point coordinates.

    Attributes:
        x: Sum of x
        y: Sum of y
        xx: Sum of x^2
        yy: Sum of y^2
        xy: Sum of x*y
    """

    x: float
    y: float
    xx: float
    yy: float
    xy: float

    @classmethod
    def from_point(cls, x: float, y: float) -> LineParamUpdate:
        """Create statistics holding a single point."""
        return cls(x=x, y=y, xx=x * x, yy=y * y, xy=x * y)

    def update(self, x: float, y: float, decay: float) -> None:
        """Decay the sums and add a new point."""
        self.xy = decay * self.xy + x * y
        self.yy = decay * self.yy + y * y
        self.xx = decay * self.xx + x * x
        self.x = decay * self.x + x
        self.y = decay * self.y + y

    def obtain_lines(self, omega: float) -> tuple[np.ndarray, np.ndarray] | None:
        """Solve the weighted line fit in closed form.

        The scatter matrix (scaled by omega) has orientation given by

            a = omega * (yy - xx) + x^2 - y^2
            b = 2 * (omega * xy - x * y)
            tan(2 * phi) = b / -a

        which has two orthogonal solutions. Both are returned; choosing one
        is left to the caller.

        Args:
            omega: Total weight of the sums (the line activity), > 0

        Returns:
            Two (3,) candidates (cos, sin, rho), the first one being the
            normal of least scatter, or None if the scatter is degenerate
        """
        a = omega * (self.yy - self.xx) + self.x * self.x - self.y * self.y
        b = 2.0 * (omega * self.xy - self.x * self.y)

        discriminant = a * a + b * b
        if not math.isfinite(discriminant) or discriminant <= 0.0:
            return None

        # Axis of largest scatter; the normal is perpendicular to it
        phi = 0.5 * math.atan2(b, -a)
        candidates = []
        for theta in (phi + 0.5 * math.pi, phi):
            c, s = math.cos(theta), math.sin(theta)
            rho = (self.x * c + self.y * s) / omega
            candidates.append(np.array([c, s, rho]))
        return candidates[0], candidates[1]


@dataclass
class EventLine:
    """A tracked line hypothesis.

    Attributes:
        id: Unique id
        param: (3,) implicit parameters (cos, sin, rho)
        timestamp: Time of the last decay/update (s)
        activity: Decaying support weight, >= 0
        stats: Sufficient statistics of the supporting points
        observations: Normal flows associated to this line, oldest first
    """

    id: int
    param: np.ndarray
    timestamp: float
    activity: float
    stats: LineParamUpdate
    observations: list[NormalFlow] = field(default_factory=list)

    @classmethod
    def from_normal_flow(cls, nf: NormalFlow) -> EventLine:
        """Create a line through the flow's pixel, normal along the flow."""
        direction = nf.direction
        return cls(
            id=next(_line_ids),
            param=np.array([direction[0], direction[1], float(nf.pixel @ direction)]),
            timestamp=nf.timestamp,
            activity=1.0,
            stats=LineParamUpdate.from_point(float(nf.x), float(nf.y)),
            observations=[nf],
        )

    def point_to_line(self, p: np.ndarray) -> float:
        """Signed distance of a point to the line."""
        return float(p @ self.param[:2] - self.param[2])

    def direction_cos(self, direction: np.ndarray) -> float:
        """Cosine between the line normal and a unit direction."""
        return float(self.param[:2] @ direction)

    @property
    def normal(self) -> np.ndarray:
        """Return unit normal (cos, sin)."""
        return self.param[:2].copy()

    @property
    def rho(self) -> float:
        """Return offset along the normal."""
        return float(self.param[2])


class LineTracker:
    """Maintains a bounded set of lines supported by normal flow.

    Observations must be processed in time order. ``process_pack`` starts a
    fresh tracking session for every pack, since consecutive packs re-extract
    the flows of overlapping time windows, and sorts the pack once before
    consuming it. Line ids stay unique across sessions.
    """

    def __init__(self, config: LineTrackerConfig | None = None) -> None:
        """Initialize tracker with an empty active set.

        Args:
            config: Association thresholds and capacity (defaults if None)
        """
        self._config = config if config is not None else LineTrackerConfig()
        # Active lines keyed by id, in creation order
        self._lines: dict[int, EventLine] = {}
        self._last_time: float | None = None
        self._num_created = 0
        self._num_evicted = 0

    def reset(self) -> None:
        """Drop all active lines and the decay reference time."""
        self._lines.clear()
        self._last_time = None

    def process_pack(self, pack: NormFlowPack) -> None:
        """Track the flows of one pack, in time order, from an empty line set."""
        self.reset()
        for nf in pack.sorted_flows():
            self.process(nf)
        logger.debug(
            "Processed %d flows, %d active lines", len(pack), len(self._lines)
        )

    def process(self, nf: NormalFlow) -> EventLine:
        """Consume one normal-flow observation.

        Args:
            nf: Observation, not older than the previous one

        Returns:
            The line the observation was associated to or created
        """
        if self._last_time is None:
            self._last_time = nf.timestamp
        dt = max(0.0, nf.timestamp - self._last_time)
        decay = math.exp(-nf.norm * dt)
        self._last_time = nf.timestamp

        p = nf.pixel
        direction = nf.direction
        matched: EventLine | None = None

        for line in self._lines.values():
            line.activity *= decay
            line.timestamp = nf.timestamp

            if abs(line.point_to_line(p)) > self._config.distance_thd:
                continue
            if line.direction_cos(direction) < self._config.orientation_thd:
                continue
            # Strongest supported line wins the association
            if matched is None or matched.activity < line.activity:
                matched = line

        if matched is None:
            return self._create_line(nf)

        matched.activity += 1.0
        matched.observations.append(nf)
        matched.stats.update(float(nf.x), float(nf.y), decay)

        candidates = matched.stats.obtain_lines(matched.activity)
        if candidates is not None:
            matched.param = self._select_candidate(matched.param, candidates)
        return matched

    def _create_line(self, nf: NormalFlow) -> EventLine:
        if len(self._lines) >= self._config.max_line_count:
            weakest = min(self._lines.values(), key=lambda line: line.activity)
            del self._lines[weakest.id]
            self._num_evicted += 1

        line = EventLine.from_normal_flow(nf)
        self._lines[line.id] = line
        self._num_created += 1
        return line

    @staticmethod
    def _select_candidate(
        previous: np.ndarray, candidates: tuple[np.ndarray, np.ndarray]
    ) -> np.ndarray:
        """Pick the candidate whose normal is closest to the previous normal.

        The chosen parameters are sign-aligned with the previous normal so
        the line keeps facing the direction of motion.
        """
        cosines = [float(previous[:2] @ c[:2]) for c in candidates]
        best = int(np.argmax(np.abs(cosines)))
        chosen = candidates[best]
        return -chosen if cosines[best] < 0.0 else chosen

    def get_line(self, line_id: int) -> EventLine | None:
        """Get an active line by id."""
        return self._lines.get(line_id)

    def clear(self) -> None:
        """Drop all lines."""
        self._lines.clear()
        self._last_time = None

    @property
    def lines(self) -> list[EventLine]:
        """Active lines in creation order."""
        return list(self._lines.values())

    @property
    def num_lines(self) -> int:
        """Number of active lines."""
        return len(self._lines)

    @property
    def num_created(self) -> int:
        """Number of lines created so far."""
        return self._num_created

    @property
    def num_evicted(self) -> int:
        """Number of lines evicted so far."""
        return self._num_evicted

    @property
    def config(self) -> LineTrackerConfig:
        """Return tracker options."""
        return self._config
