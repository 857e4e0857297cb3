"""Exception types raised by the calibration initializer."""

from __future__ import annotations

from pathlib import Path


class CalibrationError(Exception):
    """Base class for all calibration failures."""


class WorkspaceError(CalibrationError):
    """An output workspace directory could not be created or written."""

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = Path(path)
        super().__init__(f"Cannot prepare workspace '{self.path}': {reason}")


class NeedsExternalTrackingError(CalibrationError):
    """External feature tracking has to run before initialization can continue.

    This is a recoverable condition: event batches have been exported to
    ``export_paths`` and the initializer can be re-run once the tracking
    results exist next to them.
    """

    def __init__(self, export_paths: dict[str, Path]) -> None:
        self.export_paths = dict(export_paths)
        listing = ", ".join(f"'{t}' -> {p}" for t, p in self.export_paths.items())
        super().__init__(
            "External feature tracking results are missing. Events were exported "
            f"for out-of-process tracking ({listing}); run the tracker and resume."
        )


class InsufficientExcitationError(CalibrationError):
    """The rotation extrinsic never became well-conditioned."""

    def __init__(self, topic: str, num_samples: int) -> None:
        self.topic = topic
        self.num_samples = num_samples
        super().__init__(
            f"Rotation extrinsic of '{topic}' is not observable from {num_samples} "
            "chained rotations. The sensor motion lacks rotational excitation "
            "about at least two axes, or the feature tracks are too poor; record "
            "data with richer rotation or improve the tracking results."
        )
