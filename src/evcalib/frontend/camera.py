"""Pinhole event-camera model: calibration loading and undistortion."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np
import yaml


@dataclass
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole model)."""

    fx: float  # Focal length x (pixels)
    fy: float  # Focal length y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )


@dataclass
class DistortionCoeffs:
    """Radial-tangential distortion coefficients."""

    k1: float = 0.0  # Radial distortion coefficient 1
    k2: float = 0.0  # Radial distortion coefficient 2
    p1: float = 0.0  # Tangential distortion coefficient 1
    p2: float = 0.0  # Tangential distortion coefficient 2

    def to_array(self) -> np.ndarray:
        """Return distortion coefficients as (4,) array for OpenCV."""
        return np.array([self.k1, self.k2, self.p1, self.p2], dtype=np.float64)

    @property
    def is_zero(self) -> bool:
        """Return True if the model has no distortion."""
        return not np.any(self.to_array())


class PinholeCamera:
    """Monocular pinhole camera with radial-tangential distortion.

    Holds the sensor resolution and precomputed undistortion lookup tables.
    Used by the event surface to undistort dense maps and by the rotation
    initializer to turn tracked pixels into bearing vectors.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        width: int,
        height: int,
        distortion: DistortionCoeffs | None = None,
    ) -> None:
        """Initialize camera model.

        Args:
            intrinsics: Pinhole intrinsics
            width: Image width in pixels
            height: Image height in pixels
            distortion: Distortion coefficients (default: none)

        Raises:
            ValueError: If the resolution is not positive
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid resolution {width}x{height}")

        self._intrinsics = intrinsics
        self._distortion = distortion if distortion is not None else DistortionCoeffs()
        self._width = int(width)
        self._height = int(height)

        # Lookup tables are only needed when there is distortion to remove
        self._map_x: np.ndarray | None = None
        self._map_y: np.ndarray | None = None
        if not self._distortion.is_zero:
            self._compute_undistortion_maps()

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> PinholeCamera:
        """Load camera calibration from an EuRoC-style sensor.yaml.

        Expected keys: ``intrinsics`` [fu, fv, cu, cv], ``resolution``
        [width, height] and optionally ``distortion_coefficients``
        [k1, k2, p1, p2].

        Args:
            yaml_path: Path to sensor.yaml file

        Returns:
            PinholeCamera

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is invalid
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Calibration file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Calibration root must be a mapping in {yaml_path}")

        intrinsics_list = data.get("intrinsics")
        if intrinsics_list is None or len(intrinsics_list) != 4:
            raise ValueError(f"Invalid intrinsics in {yaml_path}")

        resolution = data.get("resolution")
        if resolution is None or len(resolution) != 2:
            raise ValueError(f"Invalid resolution in {yaml_path}")

        distortion = DistortionCoeffs()
        distortion_list = data.get("distortion_coefficients")
        if distortion_list is not None:
            if len(distortion_list) != 4:
                raise ValueError(f"Invalid distortion coefficients in {yaml_path}")
            distortion = DistortionCoeffs(*[float(v) for v in distortion_list])

        return cls(
            intrinsics=CameraIntrinsics(*[float(v) for v in intrinsics_list]),
            width=int(resolution[0]),
            height=int(resolution[1]),
            distortion=distortion,
        )

    def _compute_undistortion_maps(self) -> None:
        """Pre-compute undistortion maps for fast remapping."""
        K = self._intrinsics.to_matrix()
        self._map_x, self._map_y = cv2.initUndistortRectifyMap(
            cameraMatrix=K,
            distCoeffs=self._distortion.to_array(),
            R=None,
            newCameraMatrix=K,
            size=(self._width, self._height),
            m1type=cv2.CV_32FC1,
        )

    def undistort_image(self, image: np.ndarray, nearest: bool = False) -> np.ndarray:
        """Remove lens distortion from a dense image.

        Args:
            image: Image of shape (height, width[, channels])
            nearest: Use nearest-neighbour lookup. Required for maps whose
                values must not be blended (timestamps, polarities).

        Returns:
            Undistorted image (a copy when there is no distortion)
        """
        if self._map_x is None or self._map_y is None:
            return image.copy()

        interpolation = cv2.INTER_NEAREST if nearest else cv2.INTER_LINEAR
        return cv2.remap(image, self._map_x, self._map_y, interpolation=interpolation)

    def undistort_points(self, pixels: np.ndarray) -> np.ndarray:
        """Map distorted pixels to normalized image coordinates.

        Args:
            pixels: Nx2 array of pixel coordinates

        Returns:
            Nx2 array of normalized coordinates (x/z, y/z)
        """
        pixels = np.asarray(pixels, dtype=np.float64).reshape(-1, 2)
        if len(pixels) == 0:
            return np.empty((0, 2), dtype=np.float64)

        normalized = cv2.undistortPoints(
            pixels.reshape(-1, 1, 2),
            self._intrinsics.to_matrix(),
            self._distortion.to_array(),
        )
        return normalized.reshape(-1, 2)

    def bearings(self, pixels: np.ndarray) -> np.ndarray:
        """Convert pixels to unit bearing vectors in the camera frame.

        Args:
            pixels: Nx2 array of pixel coordinates

        Returns:
            Nx3 array of unit vectors
        """
        normalized = self.undistort_points(pixels)
        rays = np.hstack([normalized, np.ones((len(normalized), 1))])
        return rays / np.linalg.norm(rays, axis=1, keepdims=True)

    def contains(self, x: int, y: int) -> bool:
        """Return True if the pixel lies inside the image."""
        return 0 <= x < self._width and 0 <= y < self._height

    @property
    def intrinsics(self) -> CameraIntrinsics:
        """Return pinhole intrinsics."""
        return self._intrinsics

    @property
    def distortion(self) -> DistortionCoeffs:
        """Return distortion coefficients."""
        return self._distortion

    @property
    def width(self) -> int:
        """Image width in pixels."""
        return self._width

    @property
    def height(self) -> int:
        """Image height in pixels."""
        return self._height

    @property
    def image_size(self) -> tuple[int, int]:
        """Return image size as (width, height)."""
        return (self._width, self._height)

    @property
    def focal_length(self) -> float:
        """Return mean focal length in pixels."""
        return 0.5 * (self._intrinsics.fx + self._intrinsics.fy)
