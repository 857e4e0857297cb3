"""Tests for RotationChain."""

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from evcalib.init.rotation_chain import RelativeRotation, RotationChain

WINDOW = 1.0 / 30.0


def rot_z(angle: float) -> np.ndarray:
    """Rotation about the z axis."""
    return Rotation.from_rotvec([0.0, 0.0, angle]).as_matrix()


def window(i: int, angle: float, start: float = 0.5) -> RelativeRotation:
    """Relative rotation over the i-th window of a 30 Hz grid."""
    return RelativeRotation(
        start_time=start + i * WINDOW,
        end_time=start + (i + 1) * WINDOW,
        rotation=rot_z(angle),
    )


class TestRotationChain:
    """Test suite for rotation chaining."""

    def test_composes_contiguous_windows(self):
        """The chained rotation after four windows is R1 R2 R3 R4."""
        rotations = [rot_z(a) for a in (0.1, 0.2, 0.3, 0.4)]
        chain = RotationChain()
        for i, R in enumerate(rotations):
            chain.add(RelativeRotation(0.5 + i * WINDOW, 0.5 + (i + 1) * WINDOW, R))

        expected = rotations[0] @ rotations[1] @ rotations[2] @ rotations[3]
        np.testing.assert_allclose(chain.entries[-1].rotation, expected, atol=1e-12)
        assert chain.entries[-1].timestamp == pytest.approx(0.5 + 4 * WINDOW)
        assert chain.num_segments == 1
        assert len(chain) == 5

    def test_first_sample_is_identity_anchor(self):
        """A run opens with the identity at the window start."""
        chain = RotationChain()
        chain.add(window(0, 0.1))

        anchor = chain.entries[0]
        assert anchor.is_anchor
        np.testing.assert_array_equal(anchor.rotation, np.eye(3))
        assert anchor.timestamp == 0.5

    def test_discontinuity_resets_anchor(self):
        """After a gap the chained rotation equals the new relative rotation alone."""
        chain = RotationChain()
        chain.add(window(0, 0.1))
        chain.add(window(1, 0.2))
        entry = chain.add(window(3, 0.3))

        np.testing.assert_allclose(entry.rotation, rot_z(0.3), atol=1e-12)
        assert entry.anchor_time == pytest.approx(0.5 + 3 * WINDOW)
        assert entry.segment == 1
        assert chain.num_segments == 2

    def test_consecutive_pairs_stay_within_runs(self):
        """Neighbouring samples across a gap are not paired."""
        chain = RotationChain()
        chain.add(window(0, 0.1))
        chain.add(window(1, 0.2))
        chain.add(window(3, 0.3))

        pairs = chain.consecutive_pairs()
        assert len(pairs) == 3
        assert all(a.segment == b.segment for a, b in pairs)
        for a, b in pairs:
            relative = a.rotation.T @ b.rotation
            assert np.linalg.norm(Rotation.from_matrix(relative).as_rotvec()) > 0.0

    def test_anchored_samples_exclude_anchors(self):
        """Only samples carrying rotation information are listed."""
        chain = RotationChain()
        chain.add(window(0, 0.1))
        chain.add(window(2, 0.2))

        samples = chain.anchored_samples()
        assert len(samples) == 2
        assert not any(s.is_anchor for s in samples)

    def test_out_of_order_window_rejected(self):
        """A window starting before the chain end is an error."""
        chain = RotationChain()
        chain.add(window(2, 0.1))
        with pytest.raises(ValueError):
            chain.add(window(0, 0.1))

    def test_invalid_window(self):
        """Empty windows are rejected."""
        with pytest.raises(ValueError):
            RelativeRotation(start_time=1.0, end_time=1.0, rotation=np.eye(3))
