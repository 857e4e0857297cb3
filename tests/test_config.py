"""Tests for configuration loading and the camera model."""

from pathlib import Path

import numpy as np
import pytest

from evcalib.config import (
    CalibConfig,
    LineTrackerConfig,
    NormalFlowConfig,
    TrackFilterConfig,
    config_from_dict,
    load_config,
)
from evcalib.frontend.camera import CameraIntrinsics, DistortionCoeffs, PinholeCamera


class TestConfig:
    """Test suite for CalibConfig and load_config."""

    def test_defaults(self):
        """Defaults match the documented values."""
        config = CalibConfig()
        assert config.event_surface.filter_threshold == 1e-3
        assert config.normal_flow.decay_sec == 0.02
        assert config.normal_flow.win_size == 2
        assert config.normal_flow.neighbor_dist == 2
        assert config.normal_flow.good_ratio_thd == 0.9
        assert config.normal_flow.max_flow_norm == 4e3
        assert config.line_tracker.distance_thd == 3.0
        assert config.line_tracker.orientation_thd == 0.8
        assert config.line_tracker.max_line_count == 50
        assert config.rotation_init.window_duration == pytest.approx(1.0 / 30.0)
        assert config.rotation_init.min_solver_window == 50
        assert config.track_filter.length_fraction == 0.1

    def test_load_yaml(self, tmp_path: Path):
        """Sections override defaults key by key."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "normal_flow:\n"
            "  decay_sec: 0.05\n"
            "line_tracker:\n"
            "  max_line_count: 10\n"
            "output_dir: /tmp/calib\n"
        )

        config = load_config(path)

        assert config.normal_flow.decay_sec == 0.05
        assert config.normal_flow.win_size == 2
        assert config.line_tracker.max_line_count == 10
        assert config.output_dir == "/tmp/calib"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        """An empty file is a default configuration."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == CalibConfig()

    def test_missing_file(self, tmp_path: Path):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_unknown_key(self):
        """Unknown keys are reported with their section."""
        with pytest.raises(ValueError, match="normal_flow"):
            config_from_dict({"normal_flow": {"decay": 0.1}})

    def test_unknown_section(self):
        """Unknown sections are rejected."""
        with pytest.raises(ValueError, match="imu"):
            config_from_dict({"imu": {}})

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: NormalFlowConfig(decay_sec=0.0),
            lambda: NormalFlowConfig(good_ratio_thd=1.5),
            lambda: LineTrackerConfig(max_line_count=0),
            lambda: TrackFilterConfig(age_fraction=1.0),
        ],
    )
    def test_invalid_values(self, factory):
        """Out-of-range options raise ValueError."""
        with pytest.raises(ValueError):
            factory()


class TestPinholeCamera:
    """Test suite for PinholeCamera."""

    def test_from_yaml(self, tmp_path: Path):
        """EuRoC-style calibration files are parsed."""
        path = tmp_path / "sensor.yaml"
        path.write_text(
            "intrinsics: [200.0, 201.0, 170.0, 130.0]\n"
            "distortion_coefficients: [-0.1, 0.01, 0.0, 0.0]\n"
            "resolution: [346, 260]\n"
        )

        camera = PinholeCamera.from_yaml(path)

        assert camera.image_size == (346, 260)
        assert camera.intrinsics.fy == 201.0
        assert camera.distortion.k1 == -0.1
        assert camera.focal_length == pytest.approx(200.5)

    def test_from_yaml_missing_resolution(self, tmp_path: Path):
        """Files without a resolution are rejected."""
        path = tmp_path / "sensor.yaml"
        path.write_text("intrinsics: [200.0, 200.0, 170.0, 130.0]\n")
        with pytest.raises(ValueError):
            PinholeCamera.from_yaml(path)

    def test_bearings_are_unit_rays(self):
        """The principal point maps to the optical axis."""
        camera = PinholeCamera(CameraIntrinsics(100.0, 100.0, 50.0, 40.0), 100, 80)
        bearings = camera.bearings(np.array([[50.0, 40.0], [150.0, 40.0]]))

        np.testing.assert_allclose(bearings[0], [0.0, 0.0, 1.0], atol=1e-12)
        np.testing.assert_allclose(bearings[1], np.array([1.0, 0.0, 1.0]) / np.sqrt(2), atol=1e-9)

    def test_undistort_points_inverts_distortion(self):
        """Distorted projections are mapped back to normalized coordinates."""
        distortion = DistortionCoeffs(k1=-0.2, k2=0.05)
        camera = PinholeCamera(CameraIntrinsics(200.0, 200.0, 160.0, 120.0), 320, 240, distortion)

        normalized = np.array([0.3, -0.2])
        r2 = normalized @ normalized
        distorted = normalized * (1 + distortion.k1 * r2 + distortion.k2 * r2 * r2)
        pixel = np.array([[200.0 * distorted[0] + 160.0, 200.0 * distorted[1] + 120.0]])

        np.testing.assert_allclose(camera.undistort_points(pixel)[0], normalized, atol=1e-3)

    def test_undistort_image_keeps_shape(self):
        """Dense undistortion preserves the image size."""
        camera = PinholeCamera(
            CameraIntrinsics(200.0, 200.0, 160.0, 120.0), 320, 240, DistortionCoeffs(k1=-0.2)
        )
        image = np.full((240, 320), 7, dtype=np.uint8)
        assert camera.undistort_image(image, nearest=True).shape == (240, 320)
