"""Event-inertial rotation initialization."""

from .feature_traces import FeatureTrace, apply_quality_filters, clip_traces
from .spline import BodyRotationSpline, ScipyRotationSpline
from .rotation_only import RelativeRotationResult, RotationOnlySolver
from .rotation_chain import ChainedRotation, RelativeRotation, RotationChain
from .hand_eye import HandEyeResult, solve_hand_eye_rotation
from .alignment import AlignmentEstimate, RotationAlignmentEstimator
from .parameters import CalibParameters
from .initializer import AlignmentResult, AlignmentStatus, EventInertialRotationInitializer

__all__ = [
    "FeatureTrace",
    "apply_quality_filters",
    "clip_traces",
    "BodyRotationSpline",
    "ScipyRotationSpline",
    "RelativeRotationResult",
    "RotationOnlySolver",
    "RelativeRotation",
    "ChainedRotation",
    "RotationChain",
    "HandEyeResult",
    "solve_hand_eye_rotation",
    "AlignmentEstimate",
    "RotationAlignmentEstimator",
    "CalibParameters",
    "AlignmentResult",
    "AlignmentStatus",
    "EventInertialRotationInitializer",
]
