"""Offscreen rendering of time surfaces, normal flows and tracked lines.

All functions return new BGR images and never open windows.
"""

from __future__ import annotations

import cv2
import numpy as np

from .events import EventArray
from .line_tracker import EventLine
from .normal_flow import NormFlowPack

CANDIDATE_COLOR = (0, 0, 255)  # seed with enough support, plane rejected
ACCEPTED_COLOR = (0, 255, 0)  # seed that produced a flow
FLOW_COLOR = (0, 255, 255)
LINE_COLOR = (255, 0, 0)


def decayed_image(pack: NormFlowPack) -> np.ndarray:
    """Render the pack's raw time map as a grayscale BGR time surface."""
    assigned = pack.time_map >= 1e-3
    values = np.where(
        assigned, np.exp(-(pack.timestamp - pack.time_map) / pack.decay_sec), 0.0
    )
    gray = np.clip(np.rint(255.0 * values), 0, 255).astype(np.uint8)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def seeds_image(pack: NormFlowPack) -> np.ndarray:
    """Mark candidate seeds red and accepted seeds green."""
    image = decayed_image(pack)
    image[pack.candidate_mask] = CANDIDATE_COLOR
    image[pack.claimed_mask] = ACCEPTED_COLOR
    return image


def flow_image(pack: NormFlowPack, scale: float = 0.01) -> np.ndarray:
    """Draw each normal flow as a segment starting at its pixel.

    Args:
        pack: Extraction batch
        scale: Seconds of motion to draw (segment = scale * flow)
    """
    image = decayed_image(pack)
    for nf in pack.flows:
        start = (int(nf.x), int(nf.y))
        end = nf.pixel + scale * nf.flow
        cv2.line(image, start, (int(round(end[0])), int(round(end[1]))), FLOW_COLOR, 1)
    return image


def events_image(events: EventArray, height: int, width: int) -> np.ndarray:
    """Paint events blue (positive) and red (negative) on black."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[events.ys[events.polarities], events.xs[events.polarities]] = (255, 0, 0)
    negative = ~events.polarities
    image[events.ys[negative], events.xs[negative]] = (0, 0, 255)
    return image


def pack_overview(pack: NormFlowPack, dt: float) -> np.ndarray:
    """2x2 mosaic: seeds | flows over active events | plane-inlier events."""
    height, width = pack.time_map.shape
    top = np.hstack([seeds_image(pack), flow_image(pack)])
    bottom = np.hstack(
        [
            events_image(pack.active_events(dt), height, width),
            events_image(pack.norm_flow_events(), height, width),
        ]
    )
    return np.vstack([top, bottom])


def draw_line(
    image: np.ndarray,
    cos: float,
    sin: float,
    rho: float,
    color: tuple[int, int, int] = LINE_COLOR,
) -> np.ndarray:
    """Draw the line x*cos + y*sin = rho across the whole image in place.

    Returns:
        The same image, for chaining
    """
    height, width = image.shape[:2]
    if abs(sin) < 1e-12 and abs(cos) < 1e-12:
        return image

    if abs(sin) >= abs(cos):
        # Mostly horizontal: evaluate y at the left and right border
        p1 = (0.0, rho / sin)
        p2 = (float(width), (rho - cos * width) / sin)
    else:
        p1 = (rho / cos, 0.0)
        p2 = ((rho - sin * height) / cos, float(height))

    cv2.line(
        image,
        (int(round(p1[0])), int(round(p1[1]))),
        (int(round(p2[0])), int(round(p2[1]))),
        color,
        1,
    )
    return image


def lines_image(pack: NormFlowPack, lines: list[EventLine]) -> np.ndarray:
    """Draw tracked lines and their supporting observations over a pack."""
    image = flow_image(pack)
    for line in lines:
        draw_line(image, line.param[0], line.param[1], line.param[2])
        for nf in line.observations:
            cv2.circle(image, (int(nf.x), int(nf.y)), 1, LINE_COLOR, -1)
    return image
