"""
Export service.

Every export renders once and hands back a named byte payload. Filenames
are `<sanitizedBaseName>_<suffix>.<ext>` where the suffix is `composite`,
`original`, `crop_<w>x<h>` or `rot_<deg>deg_<w>x<h>`.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Optional

from overlay_studio.config import settings
from overlay_studio.services.compositor import (
    draw_raster,
    encode,
    new_surface,
    render,
    to_uint8,
)
from overlay_studio.services.geometry import Bounds, bounding_box_of_rotated, round_half_up
from overlay_studio.services.ingestion import RasterImage, extension_for_mime
from overlay_studio.services.layer_stack import BaseDocument, Layer, LayerStack

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"\.[^.]+$")
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]+")


@dataclass
class ExportPayload:
    """A rendered file ready to hand to the user."""
    filename: str
    media_type: str
    content: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def sanitize_file_base(name: Optional[str], default: Optional[str] = None) -> str:
    """Strip the extension and replace characters outside [A-Za-z0-9_-] with '_'."""
    name = name or default or settings.default_base_name
    return _UNSAFE_RE.sub("_", _EXTENSION_RE.sub("", name))


class ExportService:
    """Builds composite, passthrough and single-layer exports."""

    def export_composite(
        self,
        base: Optional[BaseDocument],
        stack: LayerStack,
    ) -> Optional[ExportPayload]:
        """
        Flatten the whole document in the base's format and resolution.

        Returns None when there is no base document.
        """
        if base is None:
            return None

        start_time = time.time()
        pixels = render(base, stack.visible_layers())
        content = encode(pixels, base.mime_type)

        filename = (
            f"{sanitize_file_base(base.name, settings.default_composite_name)}"
            f"_composite.{extension_for_mime(base.mime_type)}"
        )

        processing_time = int((time.time() - start_time) * 1000)
        logger.info(f"Exported {filename} ({len(content)} bytes) in {processing_time}ms")

        return ExportPayload(filename=filename, media_type=base.mime_type, content=content)

    def export_original(self, raster: Optional[RasterImage]) -> Optional[ExportPayload]:
        """Hand back the ingested bytes untouched."""
        if raster is None:
            return None
        filename = f"{sanitize_file_base(raster.name)}_original.{raster.extension}"
        return ExportPayload(
            filename=filename,
            media_type=raster.mime_type,
            content=raster.content,
        )

    def export_layer_crop(self, layer: Optional[Layer]) -> Optional[ExportPayload]:
        """
        The layer's source scaled to its current box, without rotation.

        Opacity and blend mode are ignored.
        """
        if layer is None:
            return None

        width = max(1, round_half_up(layer.width))
        height = max(1, round_half_up(layer.height))

        surface = new_surface(width, height)
        draw_raster(surface, layer.raster.pixels, Bounds(x=0, y=0, width=width, height=height))

        content = encode(to_uint8(surface), "image/png")
        filename = f"{sanitize_file_base(layer.raster.name or layer.name)}_crop_{width}x{height}.png"

        logger.info(f"Exported {filename} ({len(content)} bytes)")
        return ExportPayload(filename=filename, media_type="image/png", content=content)

    def export_layer_transformed(self, layer: Optional[Layer]) -> Optional[ExportPayload]:
        """
        The layer as it renders, rotated and isolated on a canvas sized to
        its rotated bounding box. Opacity and blend mode are ignored.
        """
        if layer is None:
            return None

        bw, bh = bounding_box_of_rotated(layer.width, layer.height, layer.rotation)
        width = max(1, round_half_up(bw))
        height = max(1, round_half_up(bh))

        surface = new_surface(width, height)
        centered = Bounds(
            x=width / 2 - layer.width / 2,
            y=height / 2 - layer.height / 2,
            width=layer.width,
            height=layer.height,
        )
        draw_raster(surface, layer.raster.pixels, centered, rotation_deg=layer.rotation)

        content = encode(to_uint8(surface), "image/png")
        filename = (
            f"{sanitize_file_base(layer.raster.name or layer.name)}"
            f"_rot_{round_half_up(layer.rotation)}deg_{width}x{height}.png"
        )

        logger.info(f"Exported {filename} ({len(content)} bytes)")
        return ExportPayload(filename=filename, media_type="image/png", content=content)


# Global service instance
export_service = ExportService()
