"""Asynchronous event primitives."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True)
class Event:
    """A single brightness-change event.

    Attributes:
        timestamp: Occurrence time in seconds
        x: Pixel column
        y: Pixel row
        polarity: True for a positive (ON) event, False for negative (OFF)
    """

    timestamp: float
    x: int
    y: int
    polarity: bool

    @property
    def pixel(self) -> tuple[int, int]:
        """Return pixel coordinates as (x, y)."""
        return (self.x, self.y)


@dataclass
class EventArray:
    """A time-ordered batch of events.

    Events are stored column-wise so that large batches stay cheap to slice
    and export. Rows are sorted by timestamp on construction.

    Attributes:
        timestamps: (N,) float64 event times in seconds
        xs: (N,) int32 pixel columns
        ys: (N,) int32 pixel rows
        polarities: (N,) bool polarities
    """

    timestamps: np.ndarray
    xs: np.ndarray
    ys: np.ndarray
    polarities: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))

    def __post_init__(self) -> None:
        """Normalize dtypes and enforce time ordering."""
        self.timestamps = np.asarray(self.timestamps, dtype=np.float64).reshape(-1)
        self.xs = np.asarray(self.xs, dtype=np.int32).reshape(-1)
        self.ys = np.asarray(self.ys, dtype=np.int32).reshape(-1)
        self.polarities = np.asarray(self.polarities, dtype=bool).reshape(-1)

        n = len(self.timestamps)
        if not (len(self.xs) == len(self.ys) == len(self.polarities) == n):
            raise ValueError(
                "Event columns must have equal length, got "
                f"t={n}, x={len(self.xs)}, y={len(self.ys)}, p={len(self.polarities)}"
            )

        if n > 1 and np.any(np.diff(self.timestamps) < 0):
            order = np.argsort(self.timestamps, kind="stable")
            self.timestamps = self.timestamps[order]
            self.xs = self.xs[order]
            self.ys = self.ys[order]
            self.polarities = self.polarities[order]

    @classmethod
    def from_events(cls, events: list[Event]) -> EventArray:
        """Build a batch from individual events."""
        return cls(
            timestamps=np.array([e.timestamp for e in events], dtype=np.float64),
            xs=np.array([e.x for e in events], dtype=np.int32),
            ys=np.array([e.y for e in events], dtype=np.int32),
            polarities=np.array([e.polarity for e in events], dtype=bool),
        )

    @classmethod
    def empty(cls) -> EventArray:
        """Create a batch without events."""
        return cls(
            timestamps=np.zeros(0),
            xs=np.zeros(0, dtype=np.int32),
            ys=np.zeros(0, dtype=np.int32),
            polarities=np.zeros(0, dtype=bool),
        )

    def slice_time(self, start: float, end: float) -> EventArray:
        """Return events with ``start <= t < end``."""
        lo = int(np.searchsorted(self.timestamps, start, side="left"))
        hi = int(np.searchsorted(self.timestamps, end, side="left"))
        return EventArray(
            timestamps=self.timestamps[lo:hi],
            xs=self.xs[lo:hi],
            ys=self.ys[lo:hi],
            polarities=self.polarities[lo:hi],
        )

    def select(self, mask: np.ndarray) -> EventArray:
        """Return the events flagged by a boolean mask."""
        mask = np.asarray(mask, dtype=bool)
        return EventArray(
            timestamps=self.timestamps[mask],
            xs=self.xs[mask],
            ys=self.ys[mask],
            polarities=self.polarities[mask],
        )

    def __len__(self) -> int:
        return len(self.timestamps)

    def __iter__(self):
        for t, x, y, p in zip(self.timestamps, self.xs, self.ys, self.polarities):
            yield Event(timestamp=float(t), x=int(x), y=int(y), polarity=bool(p))

    @property
    def start_time(self) -> float | None:
        """Timestamp of the first event."""
        return float(self.timestamps[0]) if len(self) else None

    @property
    def end_time(self) -> float | None:
        """Timestamp of the last event."""
        return float(self.timestamps[-1]) if len(self) else None
