#!/usr/bin/env python3
"""Demo script for event-inertial rotation initialization on synthetic data.

Runs the two-step workflow:
    1. The initializer exports event batches and asks for external tracking.
    2. A stand-in tracker writes feature traces of a purely rotating camera,
       and the initializer recovers the sensor-to-body rotation and time offset.

Usage:
    uv run python examples/rotation_init_demo.py
"""

import logging
import shutil

import numpy as np
import yaml
from scipy.spatial.transform import Rotation

from evcalib import (
    AlignmentStatus,
    CalibConfig,
    EventArray,
    EventInertialRotationInitializer,
    FeatureTrace,
    PinholeCamera,
    ScipyRotationSpline,
    TrackingWorkspace,
)
from evcalib.frontend.camera import CameraIntrinsics
from evcalib.init.so3 import angle_between

TOPIC = "/dvs/events"


def body_orientation(t: float) -> np.ndarray:
    """World-from-body orientation oscillating about all three axes."""
    rotvec = np.array([
        0.3 * np.sin(2 * np.pi * 0.7 * t),
        0.25 * np.sin(2 * np.pi * 0.5 * t + 1.0),
        0.3 * np.sin(2 * np.pi * 0.9 * t + 2.0),
    ])
    return Rotation.from_rotvec(rotvec).as_matrix()


def track_landmarks(camera, orientation, times, num_landmarks=300, seed=0):
    """Stand-in for the external tracker: project distant landmarks."""
    rng = np.random.default_rng(seed)
    world = np.column_stack([
        rng.uniform(-1.5, 1.5, num_landmarks),
        rng.uniform(-1.1, 1.1, num_landmarks),
        np.ones(num_landmarks),
    ]) @ orientation(times[len(times) // 2]).T
    K = camera.intrinsics.to_matrix()

    traces = []
    for n in range(num_landmarks):
        samples = []
        for t in times:
            ray = orientation(t).T @ world[n]
            u, v, w = K @ ray
            if w > 0.1 and 0 <= u / w < camera.width and 0 <= v / w < camera.height:
                samples.append((t, u / w, v / w))
            elif samples:
                break
        if len(samples) >= 3:
            samples = np.array(samples)
            traces.append(FeatureTrace(len(traces), samples[:, 0], samples[:, 1:]))
    return traces


def main() -> None:
    """Run the rotation initialization demo."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Configuration
    duration = 4.0
    true_rotation = Rotation.from_rotvec([0.2, -0.3, 0.5]).as_matrix()
    true_offset = 0.008
    config = CalibConfig(output_dir="evcalib_output/rotation_init_demo")
    config.rotation_init.min_solver_window = 30

    shutil.rmtree(config.output_dir, ignore_errors=True)

    camera = PinholeCamera(CameraIntrinsics(200.0, 200.0, 320.0, 240.0), 640, 480)
    knots = np.linspace(0.0, duration, int(duration * 200) + 1)
    spline = ScipyRotationSpline(knots, np.stack([body_orientation(t) for t in knots]))

    # Step 1: no tracking results yet, events are exported
    rng = np.random.default_rng(1)
    events = EventArray(
        timestamps=np.sort(rng.uniform(0.0, duration, 20000)),
        xs=rng.integers(0, camera.width, 20000),
        ys=rng.integers(0, camera.height, 20000),
        polarities=rng.random(20000) > 0.5,
    )
    initializer = EventInertialRotationInitializer({TOPIC: camera}, spline, config)
    result = initializer.initialize({TOPIC: events})
    print(f"Step 1 status: {result.status.value}")
    for topic, path in result.export_paths.items():
        with open(path / "batches.yaml") as f:
            index = yaml.safe_load(f)
        print(f"  {topic}: {len(index['batches'])} batches exported to {path}")

    # Step 2: the tracker has run, initialize again
    t_min, t_max = initializer.valid_time_range
    width = config.rotation_init.window_duration
    times = t_min + width * np.arange(int(np.floor((t_max - t_min) / width + 1e-9)) + 1)

    def camera_orientation(t: float) -> np.ndarray:
        return body_orientation(t + true_offset) @ true_rotation

    traces = track_landmarks(camera, camera_orientation, times)
    TrackingWorkspace(config.output_dir, TOPIC).write_tracking_results(traces)
    print(f"Tracker wrote {len(traces)} feature traces")

    result = initializer.initialize()
    print(f"Step 2 status: {result.status.value}")
    if result.status is not AlignmentStatus.SUCCESS:
        result.raise_for_status()

    rotation = result.rotations[TOPIC]
    offset = result.time_offsets[TOPIC]
    print()
    print("=" * 60)
    print("RESULT")
    print("=" * 60)
    print(f"Rotation error:    {np.degrees(angle_between(rotation, true_rotation)):.4f} deg")
    print(f"Time offset:       {offset * 1e3:.3f} ms (true {true_offset * 1e3:.3f} ms)")
    print(yaml.safe_dump(initializer.parameters.to_dict(), sort_keys=False))


if __name__ == "__main__":
    main()
