"""
Core geometry types and transform math for layers.

All layer geometry lives in model space: the base document's pixel grid,
origin top-left, independent of any display scale. Functions here are pure;
they never mutate a layer and never raise for bad input (values are clamped
or treated as zero instead).
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from overlay_studio.config import settings


class ResizeHandle(str, Enum):
    """Corner handles of a layer's bounding box."""
    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"


@dataclass
class Point2D:
    """A 2D point."""
    x: float
    y: float

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y])


@dataclass
class Bounds:
    """Axis-aligned box of an unrotated layer, in model space."""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Point2D:
        return Point2D(x=self.x + self.width / 2, y=self.y + self.height / 2)

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 1.0


def finite(value: Optional[float], default: float = 0.0) -> float:
    """Return value as float, or default when it is None, NaN or infinite."""
    if value is None:
        return default
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


def clamp_size(value: float, min_size: Optional[float] = None) -> float:
    """Floor a width or height at the minimum layer size."""
    min_size = settings.min_layer_size if min_size is None else min_size
    return max(min_size, finite(value, min_size))


def resize(
    handle: ResizeHandle,
    dx: float,
    dy: float,
    start: Bounds,
    aspect_locked: bool,
    min_size: Optional[float] = None,
) -> Bounds:
    """
    Compute new bounds for a corner-handle resize.

    The corner opposite the dragged handle stays fixed while the dragged
    corner follows the pointer. With aspect lock, height is derived from the
    new width using the starting ratio, so vertical pointer motion is ignored.
    The minimum size floor is applied after the ratio adjustment.

    Args:
        handle: Which corner is being dragged
        dx, dy: Pointer delta since grab, already in model space
        start: Layer bounds at grab time
        aspect_locked: Keep start.width / start.height
        min_size: Floor for width and height (defaults to settings)

    Returns:
        New bounds for the layer
    """
    handle = ResizeHandle(handle)
    dx = finite(dx)
    dy = finite(dy)
    ratio = start.aspect_ratio

    grows_right = handle in (ResizeHandle.NE, ResizeHandle.SE)
    grows_down = handle in (ResizeHandle.SW, ResizeHandle.SE)

    width = start.width + dx if grows_right else start.width - dx
    if aspect_locked:
        height = width / ratio
    else:
        height = start.height + dy if grows_down else start.height - dy

    width = clamp_size(width, min_size)
    height = clamp_size(height, min_size)

    # West/north handles move the origin so the east/south edge stays put
    x = start.x if grows_right else start.x + start.width - width
    y = start.y if grows_down else start.y + start.height - height

    return Bounds(x=x, y=y, width=width, height=height)


def pointer_angle(pointer: Point2D, pivot: Point2D) -> float:
    """Angle in degrees of the pointer around the pivot (screen space, y down)."""
    return math.degrees(math.atan2(
        finite(pointer.y) - finite(pivot.y),
        finite(pointer.x) - finite(pivot.x),
    ))


def rotate(pointer: Point2D, pivot: Point2D, start_angle_offset: float) -> float:
    """
    Rotation in degrees for a pointer dragged around a pivot.

    Both points are in screen space. Angles are unaffected by uniform
    scaling, so no view-scale correction is applied here.
    """
    return pointer_angle(pointer, pivot) - finite(start_angle_offset)


def normalize_rotation(degrees: float) -> float:
    """Map an unbounded rotation onto [-180, 180) for display."""
    return ((finite(degrees) + 180.0) % 360.0) - 180.0


def bounding_box_of_rotated(
    width: float,
    height: float,
    rotation_deg: float,
) -> Tuple[float, float]:
    """
    Size of the axis-aligned box enclosing a rotated rectangle.

    Returns: (bw, bh)
    """
    theta = math.radians(finite(rotation_deg))
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)

    bw = abs(width * cos_t) + abs(height * sin_t)
    bh = abs(width * sin_t) + abs(height * cos_t)

    return bw, bh


def rotated_corners(bounds: Bounds, rotation_deg: float) -> np.ndarray:
    """
    Corners of a layer rotated about its center, in model space.

    Returns: (4, 2) array ordered nw, ne, se, sw
    """
    center = bounds.center
    half_w = bounds.width / 2
    half_h = bounds.height / 2

    theta = math.radians(finite(rotation_deg))
    rotation = np.array([
        [math.cos(theta), -math.sin(theta)],
        [math.sin(theta),  math.cos(theta)],
    ])

    local = np.array([
        [-half_w, -half_h],
        [ half_w, -half_h],
        [ half_w,  half_h],
        [-half_w,  half_h],
    ])

    return local @ rotation.T + center.to_array()


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity."""
    return int(math.floor(finite(value) + 0.5))
