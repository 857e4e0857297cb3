"""Plain-text event stream reader and writer.

One event per row: ``t x y p`` with t in seconds, integer pixel
coordinates and polarity 1 (positive) or 0/-1 (negative). Fields may be
separated by whitespace or commas; lines starting with ``#`` are comments.
"""

from __future__ import annotations

import re
from pathlib import Path

from ..frontend.events import EventArray

_SEPARATOR = re.compile(r"[,\s]+")


class EventReader:
    """Reader for a text event file of one camera topic.

    Example usage:
        reader = EventReader("data/dvs_events.txt", width=346, height=260)
        batch = reader.get_events_between(t_start, t_end)
        print(len(batch), batch.start_time)
    """

    def __init__(
        self,
        path: str | Path,
        width: int | None = None,
        height: int | None = None,
    ) -> None:
        """Initialize event reader.

        Args:
            path: Path to the event file
            width: Sensor width; if given, columns are range-checked
            height: Sensor height; if given, rows are range-checked

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: On malformed rows or out-of-range pixels
        """
        self._path = Path(path)
        if not self._path.exists():
            raise FileNotFoundError(f"Event file not found: {self._path}")

        self._width = width
        self._height = height
        self._events = self._load_events()

    def _load_events(self) -> EventArray:
        ts: list[float] = []
        xs: list[int] = []
        ys: list[int] = []
        ps: list[bool] = []

        with open(self._path, "r") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                parts = _SEPARATOR.split(line)
                if len(parts) < 4:
                    raise ValueError(
                        f"{self._path}:{line_no}: expected 't x y p', got '{line}'"
                    )
                try:
                    t = float(parts[0])
                    x = int(parts[1])
                    y = int(parts[2])
                    p = float(parts[3]) > 0
                except ValueError as e:
                    raise ValueError(f"{self._path}:{line_no}: {e}") from e

                if self._width is not None and not 0 <= x < self._width:
                    raise ValueError(
                        f"{self._path}:{line_no}: x={x} outside sensor width {self._width}"
                    )
                if self._height is not None and not 0 <= y < self._height:
                    raise ValueError(
                        f"{self._path}:{line_no}: y={y} outside sensor height {self._height}"
                    )

                ts.append(t)
                xs.append(x)
                ys.append(y)
                ps.append(p)

        return EventArray(timestamps=ts, xs=xs, ys=ys, polarities=ps)

    def get_events_between(self, start: float, end: float) -> EventArray:
        """Get events with start <= t < end."""
        return self._events.slice_time(start, end)

    @property
    def events(self) -> EventArray:
        """All events of the file, time sorted."""
        return self._events

    @property
    def start_time(self) -> float | None:
        """First event time."""
        return self._events.start_time

    @property
    def end_time(self) -> float | None:
        """Last event time."""
        return self._events.end_time

    def __len__(self) -> int:
        """Number of events."""
        return len(self._events)


def write_events(path: str | Path, events: EventArray) -> None:
    """Write events as ``t x y p`` rows (p is 1 or 0)."""
    with open(path, "w") as f:
        for t, x, y, p in zip(events.timestamps, events.xs, events.ys, events.polarities):
            f.write(f"{t:.9f} {x} {y} {int(p)}\n")
