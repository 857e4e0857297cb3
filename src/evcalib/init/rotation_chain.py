"""Chaining of windowed relative rotations into anchored absolute rotations."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

# Window bounds are computed as start + i * width; allow for rounding
_CONTINUITY_TOLERANCE = 1e-9


@dataclass
class RelativeRotation:
    """Relative camera rotation recovered over one time window.

    Attributes:
        start_time: Window start t0 (s)
        end_time: Window end t1 (s)
        rotation: R_{C(t1)->C(t0)}
    """

    start_time: float
    end_time: float
    rotation: np.ndarray

    def __post_init__(self) -> None:
        """Validate inputs."""
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Window end {self.end_time} must be after start {self.start_time}"
            )


@dataclass(frozen=True, eq=False)
class ChainedRotation:
    """Absolute camera rotation relative to the anchor of its run.

    Attributes:
        timestamp: Time of this sample (s)
        rotation: R_{C(t)->C(anchor)}; identity at the anchor itself
        anchor_time: Start time of the contiguous run
        segment: Index of the contiguous run
    """

    timestamp: float
    rotation: np.ndarray
    anchor_time: float
    segment: int

    @property
    def is_anchor(self) -> bool:
        """True for the identity sample that opens a run."""
        return self.timestamp == self.anchor_time


class RotationChain:
    """Accumulates relative rotations of time-ordered windows.

    A window that starts where the previous one ended extends the current
    run: R_anchor_t1 = R_anchor_t0 @ R_t0_t1. Any gap resets the anchor to
    identity at the new window's start.

    Example usage:
        chain = RotationChain()
        for window in windows:
            chain.add(window)
        R = chain.entries[-1].rotation
    """

    def __init__(self) -> None:
        """Initialize empty chain."""
        self._entries: list[ChainedRotation] = []
        self._segment = -1

    def add(self, relative: RelativeRotation) -> ChainedRotation:
        """Append one window and return the chained sample at its end."""
        last = self._entries[-1] if self._entries else None

        continuous = last is not None and math.isclose(
            relative.start_time, last.timestamp, rel_tol=0.0, abs_tol=_CONTINUITY_TOLERANCE
        )
        if last is not None and relative.start_time < last.timestamp - _CONTINUITY_TOLERANCE:
            raise ValueError(
                f"Window starting at {relative.start_time} precedes chain end {last.timestamp}"
            )

        if not continuous:
            self._segment += 1
            last = ChainedRotation(
                timestamp=relative.start_time,
                rotation=np.eye(3),
                anchor_time=relative.start_time,
                segment=self._segment,
            )
            self._entries.append(last)

        entry = ChainedRotation(
            timestamp=relative.end_time,
            rotation=last.rotation @ relative.rotation,
            anchor_time=last.anchor_time,
            segment=self._segment,
        )
        self._entries.append(entry)
        return entry

    def anchored_samples(self) -> list[ChainedRotation]:
        """Non-anchor samples, each paired implicitly with its run's anchor."""
        return [entry for entry in self._entries if not entry.is_anchor]

    def consecutive_pairs(self) -> list[tuple[ChainedRotation, ChainedRotation]]:
        """Pairs of neighbouring samples within the same run."""
        return [
            (a, b)
            for a, b in zip(self._entries[:-1], self._entries[1:])
            if a.segment == b.segment
        ]

    @property
    def entries(self) -> list[ChainedRotation]:
        """All chained samples in time order."""
        return list(self._entries)

    @property
    def num_segments(self) -> int:
        """Number of contiguous runs."""
        return self._segment + 1

    def __len__(self) -> int:
        return len(self._entries)
