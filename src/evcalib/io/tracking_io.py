"""Per-topic workspace shared with an out-of-process feature tracker.

Layout under ``<output_dir>/events/<topic>/``:

    batches.yaml              index of exported event batches
    batches/batch_<k>.txt     filtered events, rows 't x y p'
    tracking_results.csv      tracker output, rows 't,x,y,theta,id'
"""

from __future__ import annotations

import logging
import math
from pathlib import Path

import numpy as np
import yaml

from ..errors import WorkspaceError
from ..frontend.event_surface import ActiveEventSurface
from ..frontend.events import EventArray
from ..init.feature_traces import FeatureTrace
from .event_reader import write_events

logger = logging.getLogger(__name__)

TRACKING_RESULTS_NAME = "tracking_results.csv"
BATCH_INDEX_NAME = "batches.yaml"


def topic_directory_name(topic: str) -> str:
    """File-system friendly name of a topic ('/dvs/events' -> '_dvs_events')."""
    return topic.replace("/", "_")


class TrackingWorkspace:
    """Workspace directory of one event-camera topic.

    Example usage:
        workspace = TrackingWorkspace("./output", "/dvs/events")
        workspace.prepare()
        if not workspace.has_tracking_results():
            workspace.export_batches(events, 0.2, 1e-3, 346, 260)
    """

    def __init__(self, output_dir: str | Path, topic: str) -> None:
        """Initialize workspace.

        Args:
            output_dir: Root output directory of the calibration
            topic: Event-camera topic name
        """
        self._topic = topic
        self._directory = Path(output_dir) / "events" / topic_directory_name(topic)

    def prepare(self) -> Path:
        """Create the workspace directory if needed.

        Raises:
            WorkspaceError: If the directory cannot be created
        """
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(self._directory, str(e)) from e
        return self._directory

    def has_tracking_results(self) -> bool:
        """True if the tracker output exists."""
        return self.tracking_results_path.is_file()

    def export_batches(
        self,
        events: EventArray,
        batch_duration: float,
        filter_threshold: float,
        width: int,
        height: int,
    ) -> Path:
        """Write refractory-filtered events as fixed-duration batch files.

        Args:
            events: Events of the topic, already restricted to the valid range
            batch_duration: Duration of each batch (s)
            filter_threshold: Refractory period of the filtering surface (s)
            width: Sensor width
            height: Sensor height

        Returns:
            Directory holding the batch files

        Raises:
            WorkspaceError: If the files cannot be written
        """
        surface = ActiveEventSurface(width, height, filter_threshold=filter_threshold)
        kept = events.select(surface.ingest_array(events))

        batches_dir = self._directory / "batches"
        index = {
            "topic": self._topic,
            "resolution": [width, height],
            "batch_duration": batch_duration,
            "batches": [],
        }

        try:
            batches_dir.mkdir(parents=True, exist_ok=True)
            if len(kept) > 0:
                start = kept.start_time
                num_batches = max(1, math.ceil((kept.end_time - start) / batch_duration))
                for k in range(num_batches):
                    t0 = start + k * batch_duration
                    # Last batch is closed so the final event is not lost
                    t1 = start + (k + 1) * batch_duration
                    batch = kept.slice_time(t0, t1 if k < num_batches - 1 else math.inf)
                    name = f"batch_{k}.txt"
                    write_events(batches_dir / name, batch)
                    index["batches"].append(
                        {
                            "file": f"batches/{name}",
                            "start_time": float(t0),
                            "end_time": float(t1),
                            "num_events": len(batch),
                        }
                    )

            with open(self._directory / BATCH_INDEX_NAME, "w") as f:
                yaml.safe_dump(index, f, sort_keys=False)
        except OSError as e:
            raise WorkspaceError(batches_dir, str(e)) from e

        logger.info(
            "Exported %d of %d events of '%s' in %d batches to %s",
            len(kept),
            len(events),
            self._topic,
            len(index["batches"]),
            batches_dir,
        )
        return batches_dir

    def load_tracking_results(self) -> list[FeatureTrace]:
        """Load tracker output as feature traces, ordered by id.

        Rows are 't,x,y,theta,id'; theta is ignored. A header or comment
        line starting with '#' or a non-numeric field is skipped only on
        the first line. Repeated timestamps of one feature keep the first
        sample.

        Raises:
            FileNotFoundError: If the results file doesn't exist
            ValueError: On malformed rows
        """
        path = self.tracking_results_path
        if not path.exists():
            raise FileNotFoundError(f"Tracking results not found: {path}")

        samples: dict[int, list[tuple[float, float, float]]] = {}
        with open(path, "r") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                parts = [p.strip() for p in line.split(",")]
                try:
                    if len(parts) < 5:
                        raise ValueError(f"expected 't,x,y,theta,id', got '{line}'")
                    t, x, y = float(parts[0]), float(parts[1]), float(parts[2])
                    feature_id = int(float(parts[4]))
                except ValueError as e:
                    if line_no == 1:
                        continue
                    raise ValueError(f"{path}:{line_no}: {e}") from e

                samples.setdefault(feature_id, []).append((t, x, y))

        traces = []
        for feature_id in sorted(samples):
            rows = np.array(sorted(samples[feature_id], key=lambda s: s[0]))
            _, first = np.unique(rows[:, 0], return_index=True)
            rows = rows[np.sort(first)]
            traces.append(FeatureTrace(feature_id, rows[:, 0], rows[:, 1:3]))

        logger.info("Loaded %d feature traces from %s", len(traces), path)
        return traces

    def write_tracking_results(self, traces: list[FeatureTrace]) -> Path:
        """Write traces in the tracker output format (theta = 0)."""
        path = self.tracking_results_path
        with open(path, "w") as f:
            for trace in traces:
                for t, (x, y) in zip(trace.timestamps, trace.positions):
                    f.write(f"{t:.9f},{x:.6f},{y:.6f},0,{trace.feature_id}\n")
        return path

    @property
    def topic(self) -> str:
        """Topic name."""
        return self._topic

    @property
    def directory(self) -> Path:
        """Workspace directory."""
        return self._directory

    @property
    def tracking_results_path(self) -> Path:
        """Path of the tracker output."""
        return self._directory / TRACKING_RESULTS_NAME

    @property
    def batch_index_path(self) -> Path:
        """Path of the batch index."""
        return self._directory / BATCH_INDEX_NAME
