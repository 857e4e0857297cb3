#!/usr/bin/env python3
"""Demo script for the event motion frontend on a synthetic moving edge.

Generates events of a straight edge sweeping across the sensor, extracts
normal flow batch by batch and tracks the edge as a line. Overview images of
the last batch are written to evcalib_output/flow_demo.

Usage:
    uv run python examples/flow_demo.py
"""

import logging
from pathlib import Path

import cv2
import numpy as np

from evcalib import CalibConfig, EventArray, EventMotionFrontend, PinholeCamera
from evcalib.frontend.camera import CameraIntrinsics
from evcalib.frontend.drawing import lines_image, pack_overview


def moving_edge_events(
    width: int, height: int, speed: float, angle: float, duration: float
) -> EventArray:
    """Events of an edge with normal (cos a, sin a) moving at `speed` px/s."""
    normal = np.array([np.cos(angle), np.sin(angle)])
    ys, xs = np.mgrid[0:height, 0:width]
    # Signed distance of every pixel to the edge at t = 0
    offset = xs * normal[0] + ys * normal[1]
    crossing = (offset - offset.min()) / speed

    mask = crossing <= duration
    return EventArray(
        timestamps=crossing[mask],
        xs=xs[mask],
        ys=ys[mask],
        polarities=np.ones(int(mask.sum()), dtype=bool),
    )


def main() -> None:
    """Run the frontend demo."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Configuration
    width, height = 240, 180
    speed = 300.0  # pixels per second
    angle = np.pi / 6
    batch_duration = 0.01
    output_dir = Path("evcalib_output/flow_demo")

    camera = PinholeCamera(CameraIntrinsics(200.0, 200.0, width / 2, height / 2), width, height)
    config = CalibConfig()
    config.normal_flow.decay_sec = 0.05
    frontend = EventMotionFrontend(camera, config)

    events = moving_edge_events(width, height, speed, angle, duration=0.5)
    print(f"Generated {len(events)} events over {events.end_time:.3f} s")
    print()
    print(f"{'Batch':>6} {'Events':>7} {'Fresh':>7} {'Flows':>6} {'Lines':>6} {'Mean flow':>12}")
    print("-" * 50)

    frame = None
    t = events.start_time
    i = 0
    while t <= events.end_time:
        batch = events.slice_time(t, t + batch_duration)
        t += batch_duration
        if len(batch) == 0:
            continue

        frame = frontend.process(batch)
        flows = frame.pack.flows
        mean_flow = np.mean([nf.flow for nf in flows], axis=0) if flows else np.zeros(2)
        if i % 5 == 0:
            print(
                f"{i:6d} {frame.num_events:7d} {frame.num_refreshed:7d} "
                f"{len(frame.pack):6d} {len(frame.lines):6d} "
                f"[{mean_flow[0]:5.0f}, {mean_flow[1]:5.0f}]"
            )
        i += 1

    if frame is None:
        return

    expected = speed * np.array([np.cos(angle), np.sin(angle)])
    print()
    print(f"Expected flow: [{expected[0]:.0f}, {expected[1]:.0f}] px/s")
    for line in frame.lines:
        cos, sin, rho = line.param
        print(
            f"Line {line.id}: normal [{cos:.3f}, {sin:.3f}] rho {rho:.1f} "
            f"activity {line.activity:.2f} ({len(line.observations)} observations)"
        )

    output_dir.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(output_dir / "overview.png"), pack_overview(frame.pack, dt=batch_duration))
    cv2.imwrite(str(output_dir / "lines.png"), lines_image(frame.pack, frame.lines))
    print()
    print(f"Done! Images written to {output_dir}")


if __name__ == "__main__":
    main()
