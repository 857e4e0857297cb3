"""I/O for event streams and the external tracker workspace."""

from .event_reader import EventReader, write_events
from .tracking_io import TrackingWorkspace

__all__ = [
    "EventReader",
    "write_events",
    "TrackingWorkspace",
]
