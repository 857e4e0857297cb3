"""evcalib - event-camera motion frontend and event-inertial rotation initialization."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import CalibConfig, load_config
from .errors import (
    CalibrationError,
    InsufficientExcitationError,
    NeedsExternalTrackingError,
    WorkspaceError,
)
from .frontend import (
    ActiveEventSurface,
    Event,
    EventArray,
    EventLine,
    EventMotionFrontend,
    LineTracker,
    NormalFlow,
    NormalFlowExtractor,
    NormFlowPack,
    PinholeCamera,
)
# init before io: the tracker workspace returns init.FeatureTrace
from .init import (
    AlignmentResult,
    AlignmentStatus,
    CalibParameters,
    EventInertialRotationInitializer,
    FeatureTrace,
    RotationChain,
    ScipyRotationSpline,
)
from .io import EventReader, TrackingWorkspace

__all__ = [
    "__version__",
    # Configuration / errors
    "CalibConfig",
    "load_config",
    "CalibrationError",
    "WorkspaceError",
    "NeedsExternalTrackingError",
    "InsufficientExcitationError",
    # Frontend
    "Event",
    "EventArray",
    "PinholeCamera",
    "ActiveEventSurface",
    "NormalFlow",
    "NormFlowPack",
    "NormalFlowExtractor",
    "EventLine",
    "LineTracker",
    "EventMotionFrontend",
    # Initialization
    "FeatureTrace",
    "RotationChain",
    "ScipyRotationSpline",
    "CalibParameters",
    "AlignmentResult",
    "AlignmentStatus",
    "EventInertialRotationInitializer",
    # I/O
    "EventReader",
    "TrackingWorkspace",
]
