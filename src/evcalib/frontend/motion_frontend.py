"""Event motion frontend: surface -> normal flow -> line tracking."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import CalibConfig
from .camera import PinholeCamera
from .event_surface import ActiveEventSurface
from .events import EventArray
from .line_tracker import EventLine, LineTracker
from .normal_flow import NormalFlowExtractor, NormFlowPack

logger = logging.getLogger(__name__)


@dataclass
class MotionFrame:
    """Output of the frontend for one event batch.

    Attributes:
        pack: Normal flows extracted after ingesting the batch
        lines: Snapshot of the active lines after tracking
        num_events: Events in the batch
        num_refreshed: Events that passed the refractory filter
    """

    pack: NormFlowPack
    lines: list[EventLine]
    num_events: int
    num_refreshed: int


class EventMotionFrontend:
    """Runs the event-domain pipeline on consecutive event batches.

    Example usage:
        frontend = EventMotionFrontend(camera, config)
        for batch in batches:
            frame = frontend.process(batch)
            print(len(frame.pack), len(frame.lines))
    """

    def __init__(self, camera: PinholeCamera, config: CalibConfig | None = None) -> None:
        """Initialize frontend.

        Args:
            camera: Event camera model (resolution, optional undistortion)
            config: Full configuration (defaults if None)
        """
        config = config if config is not None else CalibConfig()
        self._surface = ActiveEventSurface(
            width=camera.width,
            height=camera.height,
            filter_threshold=config.event_surface.filter_threshold,
            camera=camera,
        )
        self._extractor = NormalFlowExtractor(self._surface, config.normal_flow)
        self._tracker = LineTracker(config.line_tracker)

    def process(self, events: EventArray) -> MotionFrame:
        """Ingest a batch, extract normal flow and update the line tracker."""
        refreshed = self._surface.ingest_array(events)
        pack = self._extractor.extract()
        self._tracker.process_pack(pack)

        logger.debug(
            "Batch of %d events -> %d flows, %d lines",
            len(events),
            len(pack),
            self._tracker.num_lines,
        )
        return MotionFrame(
            pack=pack,
            lines=self._tracker.lines,
            num_events=len(events),
            num_refreshed=int(refreshed.sum()),
        )

    @property
    def surface(self) -> ActiveEventSurface:
        """Return the surface of active events."""
        return self._surface

    @property
    def tracker(self) -> LineTracker:
        """Return the line tracker."""
        return self._tracker
