"""Event-domain frontend: surface of active events, normal flow and lines."""

from .camera import CameraIntrinsics, DistortionCoeffs, PinholeCamera
from .event_surface import ActiveEventSurface
from .events import Event, EventArray
from .line_tracker import EventLine, LineParamUpdate, LineTracker
from .motion_frontend import EventMotionFrontend, MotionFrame
from .normal_flow import NormalFlow, NormalFlowExtractor, NormFlowPack, extract_normal_flows
from .plane_ransac import PlaneFit, fit_local_plane, fit_plane

__all__ = [
    "Event",
    "EventArray",
    "CameraIntrinsics",
    "DistortionCoeffs",
    "PinholeCamera",
    "ActiveEventSurface",
    "PlaneFit",
    "fit_plane",
    "fit_local_plane",
    "NormalFlow",
    "NormFlowPack",
    "NormalFlowExtractor",
    "extract_normal_flows",
    "EventLine",
    "LineParamUpdate",
    "LineTracker",
    "EventMotionFrontend",
    "MotionFrame",
]
