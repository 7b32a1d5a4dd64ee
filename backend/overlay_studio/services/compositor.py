"""
Compositor: renders the base document and its layers at native resolution.

The output is always exactly base.natural_width x base.natural_height,
independent of zoom or fit state. Stack order is the only paint order.

Each layer is drawn like a 2D canvas drawImage call: translate to the layer's
model-space center, rotate, draw the source scaled to (width, height)
centered on the origin, with the layer's opacity as global alpha and its
canonical blend operator. Blending follows the W3C compositing formulas:

    Cs' = (1 - ab) * Cs + ab * B(Cb, Cs)
    ao  = as + ab * (1 - as)
    Co  = (as * Cs' + ab * Cb * (1 - as)) / ao
"""

import io
import logging
import math
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from overlay_studio.config import settings
from overlay_studio.services.blend_modes import BlendMode
from overlay_studio.services.errors import RenderError
from overlay_studio.services.geometry import Bounds, rotated_corners
from overlay_studio.services.ingestion import PIL_FORMATS, output_mime
from overlay_studio.services.layer_stack import BaseDocument, Layer

logger = logging.getLogger(__name__)

EPS = 1e-6


# ============================================================
# Blend Functions  B(Cb, Cs) on straight-alpha RGB in [0, 1]
# ============================================================

def _normal(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cs


def _multiply(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb * cs


def _screen(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb + cs - cb * cs


def _hard_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.where(
        cs <= 0.5,
        _multiply(cb, 2.0 * cs),
        _screen(cb, 2.0 * cs - 1.0),
    )


def _overlay(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return _hard_light(cs, cb)


def _darken(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.minimum(cb, cs)


def _lighten(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.maximum(cb, cs)


def _color_dodge(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    dodged = np.minimum(1.0, cb / np.maximum(1.0 - cs, EPS))
    return np.where(cb <= 0.0, 0.0, np.where(cs >= 1.0, 1.0, dodged))


def _color_burn(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    burned = 1.0 - np.minimum(1.0, (1.0 - cb) / np.maximum(cs, EPS))
    return np.where(cb >= 1.0, 1.0, np.where(cs <= 0.0, 0.0, burned))


def _soft_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    d = np.where(cb <= 0.25, ((16.0 * cb - 12.0) * cb + 4.0) * cb, np.sqrt(cb))
    return np.where(
        cs <= 0.5,
        cb - (1.0 - 2.0 * cs) * cb * (1.0 - cb),
        cb + (2.0 * cs - 1.0) * (d - cb),
    )


def _difference(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.abs(cb - cs)


def _exclusion(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb + cs - 2.0 * cb * cs


# --- Non-separable helpers ---

def _lum(c: np.ndarray) -> np.ndarray:
    return 0.3 * c[..., 0:1] + 0.59 * c[..., 1:2] + 0.11 * c[..., 2:3]


def _clip_color(c: np.ndarray) -> np.ndarray:
    l = _lum(c)
    n = c.min(axis=-1, keepdims=True)
    x = c.max(axis=-1, keepdims=True)
    c = np.where(n < 0.0, l + (c - l) * l / np.maximum(l - n, EPS), c)
    c = np.where(x > 1.0, l + (c - l) * (1.0 - l) / np.maximum(x - l, EPS), c)
    return c


def _set_lum(c: np.ndarray, l: np.ndarray) -> np.ndarray:
    return _clip_color(c + (l - _lum(c)))


def _sat(c: np.ndarray) -> np.ndarray:
    return c.max(axis=-1, keepdims=True) - c.min(axis=-1, keepdims=True)


def _set_sat(c: np.ndarray, s: np.ndarray) -> np.ndarray:
    c_min = c.min(axis=-1, keepdims=True)
    c_range = _sat(c)
    return np.where(c_range > 0.0, (c - c_min) * s / np.maximum(c_range, EPS), 0.0)


def _hue(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return _set_lum(_set_sat(cs, _sat(cb)), _lum(cb))


def _saturation(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return _set_lum(_set_sat(cb, _sat(cs)), _lum(cb))


def _color(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return _set_lum(cs, _lum(cb))


def _luminosity(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return _set_lum(cb, _lum(cs))


BLEND_FUNCTIONS: Dict[BlendMode, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    BlendMode.NORMAL: _normal,
    BlendMode.MULTIPLY: _multiply,
    BlendMode.SCREEN: _screen,
    BlendMode.OVERLAY: _overlay,
    BlendMode.DARKEN: _darken,
    BlendMode.LIGHTEN: _lighten,
    BlendMode.COLOR_DODGE: _color_dodge,
    BlendMode.COLOR_BURN: _color_burn,
    BlendMode.HARD_LIGHT: _hard_light,
    BlendMode.SOFT_LIGHT: _soft_light,
    BlendMode.DIFFERENCE: _difference,
    BlendMode.EXCLUSION: _exclusion,
    BlendMode.HUE: _hue,
    BlendMode.SATURATION: _saturation,
    BlendMode.COLOR: _color,
    BlendMode.LUMINOSITY: _luminosity,
}

if set(BLEND_FUNCTIONS) != set(BlendMode):
    raise RuntimeError("Every blend mode needs a blend function")


# ============================================================
# Raster Helpers
# ============================================================

def to_float(pixels: np.ndarray) -> np.ndarray:
    """uint8 RGBA -> float32 straight-alpha RGBA in [0, 1]."""
    return pixels.astype(np.float32) / 255.0


def to_uint8(canvas: np.ndarray) -> np.ndarray:
    """float32 RGBA in [0, 1] -> uint8 RGBA."""
    return np.clip(np.rint(canvas * 255.0), 0, 255).astype(np.uint8)


def premultiply(rgba: np.ndarray) -> np.ndarray:
    out = rgba.copy()
    out[..., :3] *= out[..., 3:4]
    return out


def unpremultiply(rgba: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split premultiplied RGBA into straight RGB and alpha."""
    alpha = rgba[..., 3:4]
    rgb = np.where(alpha > EPS, rgba[..., :3] / np.maximum(alpha, EPS), 0.0)
    return np.clip(rgb, 0.0, 1.0), np.clip(alpha, 0.0, 1.0)


def new_surface(width: int, height: int) -> np.ndarray:
    """Allocate a transparent float32 RGBA surface."""
    if int(width) * int(height) > settings.max_surface_pixels:
        raise RenderError(
            "RENDER_FAILED",
            f"Surface {width}x{height} exceeds {settings.max_surface_pixels} pixels",
            {"width": width, "height": height, "max_pixels": settings.max_surface_pixels},
        )
    try:
        return np.zeros((int(height), int(width), 4), dtype=np.float32)
    except (MemoryError, ValueError) as e:
        raise RenderError(
            "RENDER_FAILED",
            f"Cannot allocate a {width}x{height} surface",
            {"width": width, "height": height, "error": str(e)},
        ) from e


def resample(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Scale a uint8 RGBA raster to (width, height) in premultiplied space.

    Returns: premultiplied float32 RGBA
    """
    src = premultiply(to_float(pixels))
    src_h, src_w = src.shape[:2]
    if (width, height) == (src_w, src_h):
        return src
    shrinking = width < src_w or height < src_h
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
    try:
        return cv2.resize(src, (width, height), interpolation=interpolation)
    except (cv2.error, MemoryError) as e:
        raise RenderError(
            "RENDER_FAILED",
            f"Cannot resample {src_w}x{src_h} to {width}x{height}",
            {"width": width, "height": height, "error": str(e)},
        ) from e


def layer_matrix(
    src_size: Tuple[int, int],
    bounds: Bounds,
    rotation_deg: float,
    offset: Tuple[float, float] = (0.0, 0.0),
) -> np.ndarray:
    """
    2x3 affine mapping source pixel indices to destination pixel indices.

    Continuous coordinates are used throughout (pixel i spans [i, i+1)), so
    the half-pixel shift is folded into the translation.

    Args:
        src_size: (width, height) of the source raster
        bounds: Layer box in destination space
        rotation_deg: Clockwise rotation about the box center (y down)
        offset: Top-left of the destination window, subtracted from the result
    """
    src_w, src_h = src_size
    theta = math.radians(rotation_deg)
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)

    rotation = np.array([[cos_t, -sin_t], [sin_t, cos_t]], dtype=np.float64)
    scale = np.diag([bounds.width / src_w, bounds.height / src_h])
    linear = rotation @ scale

    center = bounds.center.to_array()
    translation = center - rotation @ np.array([bounds.width / 2, bounds.height / 2])
    translation = translation + linear @ np.array([0.5, 0.5]) - 0.5
    translation = translation - np.asarray(offset, dtype=np.float64)

    return np.hstack([linear, translation.reshape(2, 1)])


def box_coverage(
    bounds: Bounds,
    rotation_deg: float,
    window: Tuple[int, int, int, int],
) -> np.ndarray:
    """
    Fraction of each destination pixel covered by the rotated layer box.

    Pixel centers of the window (x0, y0, x1, y1) are taken into the layer's
    own frame and the pixel's extent is intersected with [0, w) x [0, h)
    per axis. Axis-aligned edges on whole pixels give exact 0 or 1.

    Returns: float32 array of shape (y1 - y0, x1 - x0, 1)
    """
    x0, y0, x1, y1 = window
    theta = math.radians(rotation_deg)
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    center = bounds.center

    dx = np.arange(x0, x1, dtype=np.float64) + 0.5 - center.x
    dy = np.arange(y0, y1, dtype=np.float64) + 0.5 - center.y
    gx, gy = np.meshgrid(dx, dy)

    local_x = cos_t * gx + sin_t * gy + bounds.width / 2
    local_y = -sin_t * gx + cos_t * gy + bounds.height / 2

    def span(local: np.ndarray, size: float) -> np.ndarray:
        inside = np.minimum(local + 0.5, size) - np.maximum(local - 0.5, 0.0)
        return np.clip(inside, 0.0, 1.0)

    coverage = span(local_x, bounds.width) * span(local_y, bounds.height)
    return coverage.astype(np.float32)[..., np.newaxis]


# ============================================================
# Drawing
# ============================================================

def composite_region(
    canvas: np.ndarray,
    src_rgb: np.ndarray,
    src_alpha: np.ndarray,
    mode: BlendMode,
) -> None:
    """Blend a straight-alpha source onto a canvas window in place."""
    cb = canvas[..., :3]
    ab = canvas[..., 3:4]
    a_s = src_alpha

    blended = BLEND_FUNCTIONS[BlendMode(mode)](cb, src_rgb)
    mixed = (1.0 - ab) * src_rgb + ab * blended

    a_o = a_s + ab * (1.0 - a_s)
    c_o = a_s * mixed + ab * cb * (1.0 - a_s)

    canvas[..., :3] = np.where(a_o > EPS, c_o / np.maximum(a_o, EPS), 0.0)
    canvas[..., 3:4] = a_o


def draw_raster(
    canvas: np.ndarray,
    pixels: np.ndarray,
    bounds: Bounds,
    rotation_deg: float = 0.0,
    opacity: float = 1.0,
    mode: BlendMode = BlendMode.NORMAL,
) -> None:
    """
    Draw a uint8 RGBA raster into a float canvas, scaled to bounds and
    rotated about the bounds center.

    Only the window covered by the rotated box is touched.
    """
    canvas_h, canvas_w = canvas.shape[:2]
    if bounds.width <= 0 or bounds.height <= 0 or opacity <= 0:
        return

    corners = rotated_corners(bounds, rotation_deg)
    x0 = max(0, int(math.floor(corners[:, 0].min())))
    y0 = max(0, int(math.floor(corners[:, 1].min())))
    x1 = min(canvas_w, int(math.ceil(corners[:, 0].max())))
    y1 = min(canvas_h, int(math.ceil(corners[:, 1].max())))
    if x1 <= x0 or y1 <= y0:
        return

    # Shrink with area averaging first; warpAffine alone would alias
    src_h, src_w = pixels.shape[:2]
    target_w = max(1, min(src_w, int(round(bounds.width))))
    target_h = max(1, min(src_h, int(round(bounds.height))))
    src = resample(pixels, target_w, target_h)

    # Edges are clamped when sampling; the box itself decides coverage
    matrix = layer_matrix((target_w, target_h), bounds, rotation_deg, offset=(x0, y0))
    try:
        warped = cv2.warpAffine(
            src,
            matrix,
            (x1 - x0, y1 - y0),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_REPLICATE,
        )
    except (cv2.error, MemoryError) as e:
        raise RenderError(
            "RENDER_FAILED",
            f"Cannot draw a {bounds.width}x{bounds.height} layer",
            {"window": [x0, y0, x1, y1], "error": str(e)},
        ) from e

    src_rgb, src_alpha = unpremultiply(warped)
    coverage = box_coverage(bounds, rotation_deg, (x0, y0, x1, y1))
    src_alpha = src_alpha * coverage * float(np.clip(opacity, 0.0, 1.0))

    composite_region(canvas[y0:y1, x0:x1], src_rgb, src_alpha, mode)


def render(base: BaseDocument, layers: Iterable[Layer]) -> np.ndarray:
    """
    Render the base and layers at the base's native resolution.

    Args:
        base: Base document (bottom of the stack, drawn opaque as is)
        layers: Layers in stack order; invisible layers are skipped

    Returns:
        uint8 RGBA array of shape (natural_height, natural_width, 4)

    Raises:
        RenderError: If the output surface cannot be created
    """
    start_time = time.time()

    canvas = new_surface(base.natural_width, base.natural_height)
    canvas[...] = to_float(base.raster.pixels)

    drawn = 0
    for layer in layers:
        if not layer.visible:
            continue
        draw_raster(
            canvas,
            layer.raster.pixels,
            layer.bounds,
            rotation_deg=layer.rotation,
            opacity=layer.opacity,
            mode=layer.blend_mode,
        )
        drawn += 1

    processing_time = int((time.time() - start_time) * 1000)
    logger.info(
        f"Rendered {base.natural_width}x{base.natural_height} with {drawn} layers "
        f"in {processing_time}ms"
    )

    return to_uint8(canvas)


def encode(pixels: np.ndarray, mime_type: Optional[str] = None) -> bytes:
    """
    Serialize an RGBA raster.

    JPEG has no alpha channel: transparent areas come out black, like a
    canvas exported to JPEG. JPEG uses a fixed high quality; PNG and WebP
    are lossless.
    """
    mime_type = output_mime(mime_type)
    image = Image.fromarray(np.ascontiguousarray(pixels))
    options = {}

    if mime_type == "image/jpeg":
        flat = premultiply(to_float(pixels))
        image = Image.fromarray(np.ascontiguousarray(to_uint8(flat)[..., :3]))
        options = {"quality": settings.jpeg_quality}
    elif mime_type == "image/webp":
        options = {"lossless": True}

    buffer = io.BytesIO()
    try:
        image.save(buffer, format=PIL_FORMATS[mime_type], **options)
    except (OSError, ValueError) as e:
        raise RenderError(
            "RENDER_FAILED",
            f"Failed to encode image as {mime_type}",
            {"mime_type": mime_type, "error": str(e)},
        ) from e

    return buffer.getvalue()
