"""Surface of Active Events (SAE) for asynchronous event streams.

The surface stores, per pixel and polarity, the time of the most recent
event. Dense time-surface images are derived from it on demand:

    value(x, y) = exp(-(t_latest - t_sae(x, y)) / decay)

A refractory filter suppresses bursts of same-polarity events at one pixel:
an event only refreshes the surface if it is older than the filter
threshold relative to the previous event of that polarity, or if an event
of the opposite polarity happened more recently.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

from .camera import PinholeCamera
from .events import Event, EventArray

logger = logging.getLogger(__name__)

# BGR colours used when painting events
_POSITIVE_COLOR = (255, 0, 0)
_NEGATIVE_COLOR = (0, 0, 255)


class ActiveEventSurface:
    """Per-pixel, per-polarity record of the latest event timestamps.

    Grids are indexed [polarity, row, column], polarity 1 is positive.

    Two grids are kept per polarity:
    - ``last_seen``: time of the latest event, whether filtered or not
    - ``surface``: time of the latest event that passed the refractory filter

    Example usage:
        surface = ActiveEventSurface(width=346, height=260, filter_threshold=1e-3)
        surface.ingest_array(events)
        times, polarities = surface.raw_time_surface()
    """

    def __init__(
        self,
        width: int,
        height: int,
        filter_threshold: float = 1e-3,
        camera: PinholeCamera | None = None,
    ) -> None:
        """Initialize an empty surface.

        Args:
            width: Sensor width in pixels
            height: Sensor height in pixels
            filter_threshold: Refractory period in seconds
            camera: Optional camera model used to undistort dense outputs.
                Must match the sensor resolution.

        Raises:
            ValueError: If sizes are invalid or the camera resolution differs
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid sensor size {width}x{height}")
        if filter_threshold < 0:
            raise ValueError(f"filter_threshold must be >= 0, got {filter_threshold}")
        if camera is not None and camera.image_size != (width, height):
            raise ValueError(
                f"Camera resolution {camera.image_size} does not match "
                f"surface size {(width, height)}"
            )

        self._width = int(width)
        self._height = int(height)
        self._filter_threshold = float(filter_threshold)
        self._camera = camera

        self._surface = np.zeros((2, self._height, self._width), dtype=np.float64)
        self._last_seen = np.zeros((2, self._height, self._width), dtype=np.float64)
        self._time_latest = 0.0
        self._event_image = np.zeros((self._height, self._width, 3), dtype=np.uint8)

    def ingest(self, event: Event, draw: bool = False) -> bool:
        """Add a single event to the surface.

        Pixel coordinates are not range-checked; callers must pass events
        inside the sensor (see EventReader).

        Args:
            event: Event to ingest
            draw: Also paint the event into the event image

        Returns:
            True if the event refreshed the surface, False if it was only
            recorded as seen (refractory filter)
        """
        return self._ingest(event.timestamp, event.x, event.y, event.polarity, draw)

    def ingest_array(self, events: EventArray, draw: bool = False) -> np.ndarray:
        """Add a batch of events in time order.

        Args:
            events: Batch of events
            draw: Also paint the events into the event image

        Returns:
            (N,) bool mask, True for events that refreshed the surface
        """
        accepted = np.zeros(len(events), dtype=bool)
        for i, (t, x, y, p) in enumerate(
            zip(events.timestamps, events.xs, events.ys, events.polarities)
        ):
            accepted[i] = self._ingest(float(t), int(x), int(y), bool(p), draw)

        logger.debug(
            "Ingested %d events, %d passed the refractory filter",
            len(events),
            int(accepted.sum()),
        )
        return accepted

    def _ingest(self, t: float, x: int, y: int, polarity: bool, draw: bool) -> bool:
        pol = 1 if polarity else 0
        pol_inv = 1 - pol

        t_last = self._last_seen[pol, y, x]
        t_last_inv = self._last_seen[pol_inv, y, x]

        refreshed = (t > t_last + self._filter_threshold) or (t_last_inv > t_last)
        if refreshed:
            self._surface[pol, y, x] = t
        self._last_seen[pol, y, x] = t
        self._time_latest = t

        if draw:
            self._event_image[y, x] = _POSITIVE_COLOR if polarity else _NEGATIVE_COLOR

        return refreshed

    def time_surface(
        self,
        ignore_polarity: bool = True,
        decay_sec: float = 0.02,
        median_blur_radius: int = 0,
        undistort: bool = False,
    ) -> np.ndarray:
        """Render the exponentially decayed time surface.

        Args:
            ignore_polarity: If False, values are signed by the most recent
                polarity and mapped to [0, 255] with 127.5 as "no activity"
            decay_sec: Decay time constant in seconds
            median_blur_radius: Median filter radius, 0 disables smoothing
            undistort: Remove lens distortion (requires a camera)

        Returns:
            (height, width) uint8 image
        """
        if decay_sec <= 0:
            raise ValueError(f"decay_sec must be positive, got {decay_sec}")

        most_recent = np.maximum(self._surface[0], self._surface[1])
        values = np.exp(-(self._time_latest - most_recent) / decay_sec)

        if ignore_polarity:
            values = 255.0 * values
        else:
            values = values * self._polarity_sign()
            values = 255.0 * (values + 1.0) / 2.0

        image = np.clip(np.rint(values), 0, 255).astype(np.uint8)

        if median_blur_radius > 0:
            image = cv2.medianBlur(image, 2 * median_blur_radius + 1)

        if undistort:
            image = self._undistort(image, nearest=False)
        return image

    def raw_time_surface(
        self,
        ignore_polarity: bool = True,
        undistort: bool = False,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Return the undecayed most-recent timestamp and polarity maps.

        Args:
            ignore_polarity: If False, timestamps are multiplied by -1 where
                the most recent event was negative
            undistort: Remove lens distortion (requires a camera). Nearest
                neighbour lookup keeps timestamps unblended.

        Returns:
            Tuple of (time_map, polarity_map): (height, width) float64
            timestamps (0 where no event occurred) and (height, width)
            uint8 map with 1 for positive, 0 for negative
        """
        time_map = np.maximum(self._surface[0], self._surface[1])
        polarity_map = (self._surface[1] > self._surface[0]).astype(np.uint8)

        if not ignore_polarity:
            time_map = time_map * self._polarity_sign()

        if undistort:
            time_map = self._undistort(time_map, nearest=True)
            polarity_map = self._undistort(polarity_map, nearest=True)
        return time_map, polarity_map

    def event_image(self, reset: bool = False, undistort: bool = False) -> np.ndarray:
        """Return the BGR image of drawn events.

        Args:
            reset: Clear the image after copying it
            undistort: Remove lens distortion (requires a camera)

        Returns:
            (height, width, 3) uint8 image; blue = positive, red = negative
        """
        image = self._event_image.copy()
        if reset:
            self._event_image[:] = 0
        if undistort:
            image = self._undistort(image, nearest=True)
        return image

    def _polarity_sign(self) -> np.ndarray:
        return np.where(self._surface[1] > self._surface[0], 1.0, -1.0)

    def _undistort(self, image: np.ndarray, nearest: bool) -> np.ndarray:
        if self._camera is None:
            raise ValueError("Undistortion requested but the surface has no camera model")
        return self._camera.undistort_image(image, nearest=nearest)

    def surface_time(self, x: int, y: int, polarity: bool) -> float:
        """Return the filtered surface timestamp at a pixel."""
        return float(self._surface[1 if polarity else 0, y, x])

    def last_seen_time(self, x: int, y: int, polarity: bool) -> float:
        """Return the unfiltered last-seen timestamp at a pixel."""
        return float(self._last_seen[1 if polarity else 0, y, x])

    def reset(self) -> None:
        """Forget all events."""
        self._surface[:] = 0.0
        self._last_seen[:] = 0.0
        self._event_image[:] = 0
        self._time_latest = 0.0

    @property
    def time_latest(self) -> float:
        """Timestamp of the most recently ingested event."""
        return self._time_latest

    @property
    def filter_threshold(self) -> float:
        """Refractory period in seconds."""
        return self._filter_threshold

    @property
    def camera(self) -> PinholeCamera | None:
        """Camera model used for undistortion, if any."""
        return self._camera

    @property
    def width(self) -> int:
        """Sensor width in pixels."""
        return self._width

    @property
    def height(self) -> int:
        """Sensor height in pixels."""
        return self._height
