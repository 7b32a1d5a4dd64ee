"""
Shared fixtures for building rasters and image files in tests.
"""

import io
import time

import numpy as np
import pytest
from PIL import Image

from overlay_studio.services import ingestion
from overlay_studio.services.ingestion import RasterImage
from overlay_studio.services.layer_stack import BaseDocument


def solid_pixels(width, height, color=(255, 255, 255, 255)):
    """(H, W, 4) uint8 array filled with one RGBA color."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[...] = color
    return pixels


def encode_bytes(pixels, fmt="PNG"):
    """Encode an RGBA array as file bytes."""
    image = Image.fromarray(pixels)
    if fmt == "JPEG":
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_raster(width, height, color=(255, 255, 255, 255), name="layer.png", mime_type="image/png"):
    """A decoded raster whose original bytes are a matching PNG."""
    pixels = solid_pixels(width, height, color)
    return RasterImage(
        pixels=pixels,
        name=name,
        mime_type=mime_type,
        content=encode_bytes(pixels),
    )


@pytest.fixture
def raster_factory():
    return make_raster


@pytest.fixture
def png_factory():
    def _png(width, height, color=(255, 255, 255, 255)):
        return encode_bytes(solid_pixels(width, height, color))
    return _png


@pytest.fixture
def white_base():
    """800x600 opaque white PNG base document."""
    return BaseDocument.from_raster(make_raster(800, 600, name="base.png"))


@pytest.fixture
def staggered_decoding(monkeypatch):
    """
    Delay decoding per filename so a batch finishes out of file order.

    Returns (delays, finished): fill `delays` with seconds per filename;
    `finished` collects filenames in completion order.
    """
    delays = {}
    finished = []
    decode = ingestion._decode_or_error

    def _delayed(incoming):
        time.sleep(delays.get(incoming.filename, 0.0))
        result = decode(incoming)
        finished.append(incoming.filename)
        return result

    monkeypatch.setattr(ingestion, "_decode_or_error", _delayed)
    return delays, finished
