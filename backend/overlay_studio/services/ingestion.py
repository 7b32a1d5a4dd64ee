"""
Image ingestion service.

Decodes uploaded files into RGBA rasters. Decoding is the only logically
asynchronous step in the system: a batch is decoded concurrently, but the
results are returned in the original file order so callers can apply stack
mutations deterministically.
"""

import asyncio
import io
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np
from fastapi.concurrency import run_in_threadpool
from PIL import Image, UnidentifiedImageError

from overlay_studio.config import settings
from overlay_studio.services.errors import IngestionError

logger = logging.getLogger(__name__)

DEFAULT_MIME = "image/png"

# Formats the compositor can write back out
OUTPUT_MIME_TYPES = ("image/png", "image/jpeg", "image/webp")

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}

PIL_FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/webp": "WEBP",
}


@dataclass
class IncomingFile:
    """A file handed over by the upload or clipboard collaborator."""
    filename: str
    content: bytes
    content_type: Optional[str] = None


@dataclass
class RasterImage:
    """
    A decoded source image.

    `pixels` is an (H, W, 4) uint8 RGBA array; `content` keeps the original
    bytes so the file can be handed back without re-encoding.
    """
    pixels: np.ndarray
    name: str
    mime_type: str
    content: bytes

    @property
    def natural_width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def natural_height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def extension(self) -> str:
        return extension_for_mime(self.mime_type)


def infer_mime_from_name(name: Optional[str]) -> Optional[str]:
    """Guess a mime type from a filename extension."""
    n = (name or "").lower()
    if n.endswith(".png"):
        return "image/png"
    if n.endswith(".jpg") or n.endswith(".jpeg"):
        return "image/jpeg"
    if n.endswith(".webp"):
        return "image/webp"
    return None


def extension_for_mime(mime_type: Optional[str]) -> str:
    """File extension for a mime type; png for anything unknown."""
    return MIME_EXTENSIONS.get(mime_type or "", "png")


def output_mime(mime_type: Optional[str]) -> str:
    """Restrict a mime type to the set the compositor can encode."""
    return mime_type if mime_type in OUTPUT_MIME_TYPES else DEFAULT_MIME


def resolve_mime(filename: Optional[str], content_type: Optional[str]) -> str:
    """Declared content type, else inferred from the name, else png."""
    if content_type and content_type != "application/octet-stream":
        return content_type
    return infer_mime_from_name(filename) or DEFAULT_MIME


def decode_image(
    content: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> RasterImage:
    """
    Decode file bytes into an RGBA raster.

    Args:
        content: Raw file bytes
        filename: Original filename (used for the layer name and mime inference)
        content_type: Declared mime type, if any

    Returns:
        RasterImage owning its pixels and original bytes

    Raises:
        IngestionError: If the file is empty, too large, not an image or corrupt
    """
    name = filename or settings.default_base_name
    mime_type = resolve_mime(filename, content_type)

    if not content:
        raise IngestionError(
            "EMPTY_FILE",
            f"File '{name}' is empty",
            {"filename": name},
        )

    if len(content) > settings.max_file_size_bytes:
        raise IngestionError(
            "FILE_TOO_LARGE",
            f"File '{name}' exceeds the {settings.max_file_size_mb}MB limit",
            {
                "filename": name,
                "size_bytes": len(content),
                "max_bytes": settings.max_file_size_bytes,
            },
        )

    if not mime_type.startswith("image/"):
        raise IngestionError(
            "INVALID_FILE_TYPE",
            f"File '{name}' is not an image",
            {"filename": name, "received_type": mime_type},
        )

    try:
        with Image.open(io.BytesIO(content)) as image:
            image.load()
            rgba = image.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise IngestionError(
            "INVALID_IMAGE",
            f"Could not decode image '{name}'",
            {"filename": name, "error": str(e)},
        ) from e

    pixels = np.array(rgba, dtype=np.uint8)

    logger.debug(f"Decoded {name} ({mime_type}) {pixels.shape[1]}x{pixels.shape[0]}")

    return RasterImage(
        pixels=pixels,
        name=name,
        mime_type=mime_type,
        content=bytes(content),
    )


def _decode_or_error(incoming: IncomingFile) -> Union[RasterImage, IngestionError]:
    try:
        return decode_image(incoming.content, incoming.filename, incoming.content_type)
    except IngestionError as e:
        logger.warning(f"Ingestion failed for {incoming.filename}: {e.code} - {e.message}")
        return e


async def decode_batch(
    files: Sequence[IncomingFile],
) -> List[Union[RasterImage, IngestionError]]:
    """
    Decode a batch of files concurrently.

    Each slot of the result holds either the decoded raster or the
    IngestionError for the file at the same index. Completion order does not
    affect result order.
    """
    start_time = time.time()

    results = await asyncio.gather(
        *(run_in_threadpool(_decode_or_error, f) for f in files)
    )

    processing_time = int((time.time() - start_time) * 1000)
    failed = sum(1 for r in results if isinstance(r, IngestionError))
    logger.info(
        f"Decoded batch of {len(files)} files ({failed} failed) in {processing_time}ms"
    )

    return list(results)
