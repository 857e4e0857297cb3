"""Shared store of estimated calibration parameters."""

from __future__ import annotations

import numpy as np


class CalibParameters:
    """Per-topic sensor-to-body rotations and time offsets.

    Each value may be written once per topic; initialization results are
    never silently overwritten.
    """

    def __init__(self) -> None:
        """Initialize empty store."""
        self._so3_sensor_to_body: dict[str, np.ndarray] = {}
        self._time_offset: dict[str, float] = {}

    def set_rotation(self, topic: str, rotation: np.ndarray) -> None:
        """Store R_body_sensor for a topic.

        Raises:
            ValueError: If the topic already has a rotation or R is not 3x3
        """
        rotation = np.asarray(rotation, dtype=np.float64)
        if rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {rotation.shape}")
        if topic in self._so3_sensor_to_body:
            raise ValueError(f"Rotation of topic '{topic}' is already set")
        self._so3_sensor_to_body[topic] = rotation.copy()

    def set_time_offset(self, topic: str, offset: float) -> None:
        """Store the time offset (t_body = t_sensor + offset) for a topic.

        Raises:
            ValueError: If the topic already has a time offset
        """
        if topic in self._time_offset:
            raise ValueError(f"Time offset of topic '{topic}' is already set")
        self._time_offset[topic] = float(offset)

    def rotation(self, topic: str) -> np.ndarray | None:
        """Return R_body_sensor of a topic, or None if unset."""
        rotation = self._so3_sensor_to_body.get(topic)
        return None if rotation is None else rotation.copy()

    def time_offset(self, topic: str) -> float | None:
        """Return the time offset of a topic, or None if unset."""
        return self._time_offset.get(topic)

    @property
    def topics(self) -> list[str]:
        """Topics with a stored rotation."""
        return sorted(self._so3_sensor_to_body)

    def to_dict(self) -> dict[str, dict]:
        """Plain mapping, suitable for YAML output."""
        return {
            topic: {
                "so3_sensor_to_body": self._so3_sensor_to_body[topic].tolist(),
                "time_offset": self._time_offset.get(topic),
            }
            for topic in self.topics
        }
